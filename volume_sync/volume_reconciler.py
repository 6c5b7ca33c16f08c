"""
Volume Attachment Reconciliation

Makes each managed node's attached volumes converge toward the volumes its
workloads need, by attaching and detaching EBS volumes at the provider and
recording the outcome in node status.

Reconciliation Rules (one pass):
1. Unmanaged nodes (annotation not "true") are skipped entirely.
2. Detach phase, all nodes first: a volume of this provider that is in
   volumesAttached but not in volumesInUse is detached at the provider,
   then removed from volumesAttached.
3. Attach phase: a volume of this provider that is in volumesInUse but not
   in volumesAttached is attached at the provider, then added to
   volumesAttached.
4. A failure only affects the volume it happened on. The pass keeps going
   and the next pass retries.

Detaching everywhere before attaching anywhere narrows, but does not
close, the window in which a volume moving between nodes is still held
by the source when the destination attach is tried. The provider rejects
that attach and the next pass picks it up. There is no cross-node lock.

The node objects are only a cache. Every mutation is preceded by a
provider probe in the attachment driver, so passes can overlap or repeat
safely.
"""

import logging

from providers import ProviderError, ProviderTimeoutError

from .attachment_driver import AttachmentDriver
from .errors import NoFreeDeviceSlotsError, NodeStatusUpdateError, ReferenceParseError
from .node_inventory import AttachedVolume, Node, NodeInventory
from .node_status import NodeStatusSynchronizer

logger = logging.getLogger(__name__)

EBS_VOLUME_PREFIX = "kubernetes.io/aws-ebs/"


def new_pass_stats() -> dict[str, int]:
    return {
        "nodes": 0,
        "managed_nodes": 0,
        "skipped_unmanaged": 0,
        "detach_needed": 0,
        "detached": 0,
        "detach_noop": 0,
        "attach_needed": 0,
        "attached": 0,
        "status_updates": 0,
        "parse_errors": 0,
        "provider_errors": 0,
        "provider_timeouts": 0,
        "device_exhausted": 0,
        "status_errors": 0,
        "errors": 0,
    }


class VolumeReconciler:
    """Runs reconciliation passes over the node inventory."""

    def __init__(
        self,
        inventory: NodeInventory,
        driver: AttachmentDriver,
        synchronizer: NodeStatusSynchronizer | None = None,
        volume_prefix: str = EBS_VOLUME_PREFIX,
    ):
        self.inventory = inventory
        self.driver = driver
        self.synchronizer = synchronizer or NodeStatusSynchronizer(inventory)
        self.volume_prefix = volume_prefix

    def is_provider_volume(self, volume_ref: str) -> bool:
        return volume_ref.startswith(self.volume_prefix)

    def run_pass(self, nodes: list[Node] | None = None) -> dict[str, int]:
        """
        Run one reconciliation pass.

        Args:
            nodes: Node snapshot to reconcile; listed from the inventory
                when not given

        Returns:
            Dictionary with pass statistics

        Raises:
            ApiException: If listing the nodes failed; nothing was attempted
                and the poll loop backs off before retrying
        """
        stats = new_pass_stats()

        if nodes is None:
            nodes = self.inventory.list_nodes()

        stats["nodes"] = len(nodes)
        managed = []
        for node in nodes:
            if node.attach_detach_managed:
                managed.append(node)
            else:
                stats["skipped_unmanaged"] += 1
                logger.debug(f"Skipping node {node.name}: attach/detach not controller-managed")
        stats["managed_nodes"] = len(managed)

        logger.info(f"Reconciling volumes on {len(managed)} of {len(nodes)} nodes")

        # Detach everywhere before attaching anywhere
        for node in managed:
            self.detach_unused_volumes(node, stats)

        for node in managed:
            self.attach_required_volumes(node, stats)

        logger.info(f"Volume reconciliation pass complete: {stats}")
        return stats

    def detach_unused_volumes(self, node: Node, stats: dict[str, int]) -> None:
        handled = set()
        for attached in list(node.volumes_attached):
            volume_ref = attached.name
            if volume_ref in handled:
                continue
            if not self.is_provider_volume(volume_ref) or node.is_volume_in_use(volume_ref):
                continue
            handled.add(volume_ref)

            stats["detach_needed"] += 1
            logger.info(f"Need to detach volume {volume_ref} from {node.name}")

            try:
                issued = self.driver.detach(volume_ref, node)
            except Exception as e:
                self._record_failure(stats, e, "detach", volume_ref, node)
                continue

            if issued:
                stats["detached"] += 1
            else:
                stats["detach_noop"] += 1

            try:
                self.synchronizer.remove_attachment(node, volume_ref)
                stats["status_updates"] += 1
            except Exception as e:
                self._record_failure(stats, e, "record detach of", volume_ref, node)

    def attach_required_volumes(self, node: Node, stats: dict[str, int]) -> None:
        for volume_ref in list(node.volumes_in_use):
            if not self.is_provider_volume(volume_ref) or node.is_volume_attached(volume_ref):
                continue

            stats["attach_needed"] += 1
            logger.info(f"Need to attach volume {volume_ref} to {node.name}")

            try:
                device = self.driver.attach(volume_ref, node)
            except Exception as e:
                self._record_failure(stats, e, "attach", volume_ref, node)
                continue

            stats["attached"] += 1

            try:
                self.synchronizer.add_attachment(node, volume_ref, device)
                stats["status_updates"] += 1
            except Exception as e:
                self._record_failure(stats, e, "record attach of", volume_ref, node)
                # The provider holds the device now; later allocations in
                # this pass must not hand it out again.
                if not node.is_volume_attached(volume_ref):
                    node.volumes_attached.append(
                        AttachedVolume(name=volume_ref, device_path=device)
                    )

    def _record_failure(
        self,
        stats: dict[str, int],
        error: Exception,
        action: str,
        volume_ref: str,
        node: Node
    ) -> None:
        """Log and count a per-volume failure; the pass continues."""
        stats["errors"] += 1
        context = f"Unable to {action} volume {volume_ref} on node {node.name}"

        if isinstance(error, ReferenceParseError):
            stats["parse_errors"] += 1
            logger.error(f"{context}: {error}. Fix the reference; skipping.")
        elif isinstance(error, NoFreeDeviceSlotsError):
            stats["device_exhausted"] += 1
            logger.error(
                f"{context}: {error}. Possible device slot leak, "
                f"check volumesAttached on {node.name}."
            )
        elif isinstance(error, ProviderTimeoutError):
            stats["provider_timeouts"] += 1
            logger.error(f"{context}: provider call timed out: {error}")
        elif isinstance(error, ProviderError):
            stats["provider_errors"] += 1
            logger.error(f"{context}: {error}")
        elif isinstance(error, NodeStatusUpdateError):
            stats["status_errors"] += 1
            logger.error(
                f"{context}: {error}. Provider state changed; "
                f"node status will catch up next pass."
            )
        else:
            logger.error(f"{context}: {error}", exc_info=True)
