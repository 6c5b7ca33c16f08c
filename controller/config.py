"""Environment configuration for the volume attach controller"""

import os
from dataclasses import dataclass


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ControllerConfig:
    poll_interval_seconds: int = 10
    provider_timeout_seconds: int = 30
    cloud_provider: str = "aws"
    volume_prefix: str = "kubernetes.io/aws-ebs/"
    node_cleanup_enabled: bool = True
    node_heartbeat_timeout_seconds: int = 30
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "ControllerConfig":
        """Read configuration from environment variables"""
        return cls(
            poll_interval_seconds=int(os.environ.get("POLL_INTERVAL_SECONDS", "10")),
            provider_timeout_seconds=int(os.environ.get("PROVIDER_TIMEOUT_SECONDS", "30")),
            cloud_provider=os.environ.get("CLOUD_PROVIDER", "aws"),
            volume_prefix=os.environ.get("VOLUME_NAMESPACE_PREFIX", "kubernetes.io/aws-ebs/"),
            node_cleanup_enabled=_env_bool("NODE_CLEANUP_ENABLED", "true"),
            node_heartbeat_timeout_seconds=int(
                os.environ.get("NODE_HEARTBEAT_TIMEOUT_SECONDS", "30")
            ),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )
