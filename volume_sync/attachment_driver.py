"""
Attach/detach orchestration against the cloud provider.

Every operation probes the provider for the volume's live state before
mutating anything, and turns the call into a no-op when the desired end
state already holds:

- attach: volume already attached to this node's instance -> return the
  device the provider reports, no attach call.
- detach: volume already available, attached to another instance, or gone
  -> nothing to undo, no detach call.

Anything else the provider reports as an error is raised to the caller.
Nothing is retried here; the next reconciliation pass is the retry.
"""

import logging
import time

from providers import (
    ProviderTimeoutError,
    VolumeAttachmentProvider,
    VolumeNotFoundError,
    VolumeProviderState,
)

from .device_allocator import DeviceAllocator
from .errors import ReferenceParseError
from .references import LastPathSegmentResolver, ReferenceResolver

logger = logging.getLogger(__name__)

DEFAULT_OPERATION_TIMEOUT_SECONDS = 30


class OperationDeadline:
    """Wall-clock budget shared by the provider calls of one operation."""

    def __init__(self, timeout: float, provider: str, operation: str, clock=time.monotonic):
        self.timeout = timeout
        self.provider = provider
        self.operation = operation
        self.clock = clock
        self.expires_at = clock() + timeout

    def check(self, step: str) -> None:
        if self.clock() >= self.expires_at:
            raise ProviderTimeoutError(
                f"deadline of {self.timeout}s exceeded before {step}",
                self.provider,
                self.operation,
            )


class AttachmentDriver:
    """Runs single attach and detach operations for a node."""

    def __init__(
        self,
        provider: VolumeAttachmentProvider,
        resolver: ReferenceResolver | None = None,
        allocator: DeviceAllocator | None = None,
        timeout: float = DEFAULT_OPERATION_TIMEOUT_SECONDS,
        clock=time.monotonic,
    ):
        self.provider = provider
        self.resolver = resolver or LastPathSegmentResolver()
        self.allocator = allocator or DeviceAllocator()
        self.timeout = timeout
        self.clock = clock

    def _deadline(self, operation: str) -> OperationDeadline:
        return OperationDeadline(self.timeout, self.provider.name, operation, self.clock)

    def resolve_ids(self, volume_ref: str, node) -> tuple[str, str, str]:
        """
        Get (region, volume_id, instance_id) for a volume on a node.

        Raises:
            ReferenceParseError: If any of the three cannot be determined
        """
        if not node.region:
            raise ReferenceParseError(node.name, "node has no region label")
        instance_id = self.resolver.resolve(node.provider_instance_ref)
        volume_id = self.resolver.resolve(volume_ref)
        return node.region, volume_id, instance_id

    def probe(self, region: str, volume_id: str) -> VolumeProviderState:
        """Get the provider's authoritative state for a volume."""
        return self.provider.describe_volume(region, volume_id, timeout=self.timeout)

    def attach(self, volume_ref: str, node) -> str:
        """
        Attach a volume to the node's instance.

        Returns:
            The device path the volume is (or is being) attached at

        Raises:
            ReferenceParseError: Malformed node or volume reference
            NoFreeDeviceSlotsError: Node has no free device path
            ProviderError: Provider call failed, timed out or was rejected
        """
        region, volume_id, instance_id = self.resolve_ids(volume_ref, node)
        deadline = self._deadline("attach")

        state = self.probe(region, volume_id)
        if state.is_attached_to(instance_id):
            logger.info(
                f"Volume {volume_ref} is already attached to {node.name} "
                f"at {state.attached_device}"
            )
            return state.attached_device

        device = self.allocator.allocate(node)
        deadline.check("attach_volume")
        logger.info(
            f"Attaching volume {volume_id} to instance {instance_id} "
            f"({node.name}) at {device}"
        )
        self.provider.attach_volume(
            region, volume_id, instance_id, device, timeout=self.timeout
        )
        return device

    def detach(self, volume_ref: str, node) -> bool:
        """
        Detach a volume from the node's instance.

        Returns:
            True if a detach call was issued, False if nothing needed undoing

        Raises:
            ReferenceParseError: Malformed node or volume reference
            ProviderError: Provider call failed, timed out or was rejected
        """
        region, volume_id, instance_id = self.resolve_ids(volume_ref, node)
        deadline = self._deadline("detach")

        try:
            state = self.probe(region, volume_id)
        except VolumeNotFoundError:
            logger.info(f"Volume {volume_ref} no longer exists, nothing to detach")
            return False

        if state.is_available:
            logger.info(f"Volume {volume_ref} is already detached")
            return False

        if state.is_attached_elsewhere(instance_id):
            logger.info(
                f"Volume {volume_ref} is attached to other instance "
                f"{state.attached_instance_id}, not {node.name}"
            )
            return False

        deadline.check("detach_volume")
        logger.info(
            f"Detaching volume {volume_id} from instance {instance_id} ({node.name})"
        )
        self.provider.detach_volume(region, volume_id, instance_id, timeout=self.timeout)
        return True
