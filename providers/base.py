"""
Abstract base classes for cloud provider interfaces.

This module defines the interface the volume attachment controller needs
from a cloud platform. The reconciliation core only talks to this
interface, so the provider behind it can be swapped without touching the
attach/detach logic.

The provider is the source of truth for attachment state. Node objects in
the cluster only cache what the provider last reported.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

# Volume lifecycle states reported by the provider
VOLUME_STATE_AVAILABLE = "available"


@dataclass
class VolumeProviderState:
    """Authoritative attachment state of a single volume."""
    volume_id: str
    state: str  # 'available', 'in-use', 'creating', 'deleting', ...
    attached_instance_id: str | None = None
    attached_device: str | None = None

    @property
    def is_available(self) -> bool:
        return self.state == VOLUME_STATE_AVAILABLE

    def is_attached_to(self, instance_id: str) -> bool:
        return (
            self.attached_instance_id is not None
            and self.attached_device is not None
            and self.attached_instance_id == instance_id
        )

    def is_attached_elsewhere(self, instance_id: str) -> bool:
        return (
            self.attached_instance_id is not None
            and self.attached_device is not None
            and self.attached_instance_id != instance_id
        )


class VolumeAttachmentProvider(ABC):
    """
    Abstract interface for block storage attachment operations.

    Implementations:
    - AWS: EBS volumes attached to EC2 instances

    All calls are scoped by region and must be bounded by ``timeout``
    seconds. Implementations raise ``ProviderError`` subclasses and never
    leak SDK exceptions.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name (aws, ...)."""
        pass

    @abstractmethod
    def describe_volume(
        self,
        region: str,
        volume_id: str,
        timeout: float | None = None
    ) -> VolumeProviderState:
        """
        Get the live lifecycle and attachment state of a volume.

        Args:
            region: Region the volume lives in
            volume_id: Provider-native volume identifier
            timeout: Upper bound in seconds for the call

        Returns:
            VolumeProviderState for the volume

        Raises:
            VolumeNotFoundError: If the provider does not know the volume
            ProviderError: If the call failed
        """
        pass

    @abstractmethod
    def attach_volume(
        self,
        region: str,
        volume_id: str,
        instance_id: str,
        device: str,
        timeout: float | None = None
    ) -> None:
        """
        Attach a volume to an instance at the given device path.

        Raises:
            ProviderError: If the provider rejected or failed the call
        """
        pass

    @abstractmethod
    def detach_volume(
        self,
        region: str,
        volume_id: str,
        instance_id: str,
        timeout: float | None = None
    ) -> None:
        """
        Detach a volume from an instance.

        Raises:
            ProviderError: If the provider rejected or failed the call
        """
        pass

    @abstractmethod
    def instance_exists(
        self,
        region: str,
        instance_id: str,
        timeout: float | None = None
    ) -> bool:
        """
        Check whether a compute instance is still alive.

        Returns:
            False if the provider reports the instance as unknown or has
            no status for it, True otherwise

        Raises:
            ProviderError: If the call failed for another reason
        """
        pass


class ProviderError(Exception):
    """Base exception for provider errors."""

    def __init__(self, message: str, provider: str, operation: str, details: dict | None = None):
        self.provider = provider
        self.operation = operation
        self.details = details or {}
        super().__init__(f"[{provider}] {operation}: {message}")


class VolumeNotFoundError(ProviderError):
    """Volume does not exist."""
    pass


class InstanceNotFoundError(ProviderError):
    """Instance does not exist."""
    pass


class ProviderThrottledError(ProviderError):
    """Provider rate limited the request."""
    pass


class ProviderTimeoutError(ProviderError):
    """Provider call did not complete in time."""
    pass
