"""
Cloud Provider Factory

This module provides a factory function to get the volume attachment
provider selected by configuration. The reconciliation core only depends
on the ``VolumeAttachmentProvider`` interface.

Usage:
    from providers import get_cloud_provider

    provider = get_cloud_provider()
    state = provider.describe_volume("us-east-1", "vol-0123456789abcdef0")

Configuration:
    Set CLOUD_PROVIDER environment variable:
    - 'aws' (default): Amazon Web Services (EBS on EC2)

    Credentials come from the standard boto3 chain (environment, profile,
    instance role). Regions are taken per call from the node's labels.
"""

import logging
import os
from typing import Optional

from .base import (
    InstanceNotFoundError,
    ProviderError,
    ProviderThrottledError,
    ProviderTimeoutError,
    VOLUME_STATE_AVAILABLE,
    VolumeAttachmentProvider,
    VolumeNotFoundError,
    VolumeProviderState,
)

logger = logging.getLogger(__name__)

# Cached provider instance
_provider_instance: Optional[VolumeAttachmentProvider] = None


def get_cloud_provider(
    provider_name: Optional[str] = None,
    force_new: bool = False,
    **kwargs
) -> VolumeAttachmentProvider:
    """
    Get the configured cloud provider instance.

    The provider instance is cached; use force_new=True to create a new
    instance.

    Args:
        provider_name: Override the provider (defaults to CLOUD_PROVIDER env var)
        force_new: Force creation of new instance (bypass cache)
        **kwargs: Provider-specific configuration options (default_timeout)

    Returns:
        VolumeAttachmentProvider instance

    Raises:
        ValueError: If provider name is not recognized
    """
    global _provider_instance

    if _provider_instance is not None and not force_new and provider_name is None:
        return _provider_instance

    name = provider_name or os.environ.get("CLOUD_PROVIDER", "aws")
    name = name.lower()

    logger.info(f"Initializing cloud provider: {name}")

    if name == "aws":
        from .aws import AWSProvider, DEFAULT_TIMEOUT_SECONDS
        timeout = kwargs.get("default_timeout") or DEFAULT_TIMEOUT_SECONDS
        provider = AWSProvider(default_timeout=timeout)

    else:
        raise ValueError(
            f"Unknown cloud provider: {name}. "
            f"Valid options: aws"
        )

    if not force_new:
        _provider_instance = provider

    return provider


def clear_provider_cache():
    """Clear the cached provider instance."""
    global _provider_instance
    _provider_instance = None


__all__ = [
    # Factory functions
    "get_cloud_provider",
    "clear_provider_cache",
    # Base classes
    "VolumeAttachmentProvider",
    # Data classes
    "VolumeProviderState",
    "VOLUME_STATE_AVAILABLE",
    # Exceptions
    "ProviderError",
    "VolumeNotFoundError",
    "InstanceNotFoundError",
    "ProviderThrottledError",
    "ProviderTimeoutError",
]
