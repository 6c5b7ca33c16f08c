"""
AWS Cloud Provider Implementation

EBS volume attachment on EC2 instances via boto3.
"""

import logging

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectTimeoutError,
    ReadTimeoutError,
)

from .base import (
    InstanceNotFoundError,
    ProviderError,
    ProviderThrottledError,
    ProviderTimeoutError,
    VolumeAttachmentProvider,
    VolumeNotFoundError,
    VolumeProviderState,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30

THROTTLING_ERROR_CODES = [
    "RequestLimitExceeded",
    "Throttling",
    "TooManyRequestsException",
]


class AWSProvider(VolumeAttachmentProvider):
    """AWS implementation of VolumeAttachmentProvider."""

    def __init__(self, default_timeout: float = DEFAULT_TIMEOUT_SECONDS, session=None):
        self.default_timeout = default_timeout
        self._session = session
        # (region, timeout) -> ec2 client
        self._ec2_clients = {}

    @property
    def name(self) -> str:
        return "aws"

    @property
    def session(self):
        if self._session is None:
            self._session = boto3.Session()
        return self._session

    def ec2(self, region: str, timeout: float | None = None):
        """Get a cached EC2 client for a region with bounded socket timeouts."""
        timeout = timeout or self.default_timeout
        key = (region, timeout)
        if key not in self._ec2_clients:
            # Retries are left to the next reconciliation pass so a single
            # call cannot outlive its timeout.
            client_config = Config(
                connect_timeout=timeout,
                read_timeout=timeout,
                retries={"max_attempts": 1, "mode": "standard"},
            )
            self._ec2_clients[key] = self.session.client(
                "ec2", region_name=region, config=client_config
            )
        return self._ec2_clients[key]

    def _translate_error(self, error: Exception, operation: str, **details) -> ProviderError:
        """Map a botocore exception onto the provider error hierarchy."""
        if isinstance(error, ClientError):
            error_code = error.response.get("Error", {}).get("Code", "")
            details["code"] = error_code
            if error_code == "InvalidVolume.NotFound":
                return VolumeNotFoundError(str(error), self.name, operation, details)
            if error_code == "InvalidInstanceID.NotFound":
                return InstanceNotFoundError(str(error), self.name, operation, details)
            if error_code in THROTTLING_ERROR_CODES:
                return ProviderThrottledError(str(error), self.name, operation, details)
            return ProviderError(str(error), self.name, operation, details)

        if isinstance(error, (ConnectTimeoutError, ReadTimeoutError)):
            return ProviderTimeoutError(str(error), self.name, operation, details)

        return ProviderError(str(error), self.name, operation, details)

    # === Block Storage (EBS) ===

    def describe_volume(
        self,
        region: str,
        volume_id: str,
        timeout: float | None = None
    ) -> VolumeProviderState:
        """Get EBS volume lifecycle state and attachment."""
        try:
            response = self.ec2(region, timeout).describe_volumes(VolumeIds=[volume_id])
        except (ClientError, BotoCoreError) as e:
            raise self._translate_error(
                e, "describe_volume", region=region, volume_id=volume_id
            ) from e

        volumes = response.get("Volumes", [])
        if not volumes:
            raise VolumeNotFoundError(
                f"Volume {volume_id} not found",
                self.name,
                "describe_volume",
                {"region": region, "volume_id": volume_id},
            )

        return parse_volume_state(volumes[0])

    def attach_volume(
        self,
        region: str,
        volume_id: str,
        instance_id: str,
        device: str,
        timeout: float | None = None
    ) -> None:
        """Attach EBS volume to EC2 instance."""
        try:
            self.ec2(region, timeout).attach_volume(
                VolumeId=volume_id,
                InstanceId=instance_id,
                Device=device,
            )
        except (ClientError, BotoCoreError) as e:
            raise self._translate_error(
                e,
                "attach_volume",
                region=region,
                volume_id=volume_id,
                instance_id=instance_id,
                device=device,
            ) from e

    def detach_volume(
        self,
        region: str,
        volume_id: str,
        instance_id: str,
        timeout: float | None = None
    ) -> None:
        """Detach EBS volume from EC2 instance."""
        try:
            self.ec2(region, timeout).detach_volume(
                VolumeId=volume_id,
                InstanceId=instance_id,
            )
        except (ClientError, BotoCoreError) as e:
            raise self._translate_error(
                e,
                "detach_volume",
                region=region,
                volume_id=volume_id,
                instance_id=instance_id,
            ) from e

    # === Compute ===

    def instance_exists(
        self,
        region: str,
        instance_id: str,
        timeout: float | None = None
    ) -> bool:
        """Check EC2 instance status; unknown or stopped instances have no status."""
        try:
            response = self.ec2(region, timeout).describe_instance_status(
                InstanceIds=[instance_id]
            )
        except (ClientError, BotoCoreError) as e:
            error = self._translate_error(
                e, "describe_instance_status", region=region, instance_id=instance_id
            )
            if isinstance(error, InstanceNotFoundError):
                return False
            raise error from e

        return len(response.get("InstanceStatuses", [])) > 0


def parse_volume_state(aws_volume: dict) -> VolumeProviderState:
    """
    Parse a describe_volumes entry into a VolumeProviderState.

    Only a single attachment carrying both an instance and a device is
    treated as an attachment; multi-attach volumes are not managed.
    """
    attached_instance_id = None
    attached_device = None

    attachments = aws_volume.get("Attachments", [])
    if len(attachments) == 1:
        attached_instance_id = attachments[0].get("InstanceId")
        attached_device = attachments[0].get("Device")
    elif len(attachments) > 1:
        logger.warning(
            f"Volume {aws_volume.get('VolumeId')} has multiple "
            f"attachments: {[a.get('InstanceId') for a in attachments]}"
        )

    return VolumeProviderState(
        volume_id=aws_volume["VolumeId"],
        state=aws_volume.get("State", ""),
        attached_instance_id=attached_instance_id,
        attached_device=attached_device,
    )
