"""
Writes attach/detach outcomes back into node status.

Each update replaces the whole ``status.volumesAttached`` field, computed
from the node's working copy, rather than merging into it. The server's
answer becomes the new working copy so later updates in the same pass
start from what was actually stored.
"""

import logging

from .node_inventory import AttachedVolume, NodeInventory

logger = logging.getLogger(__name__)


class NodeStatusSynchronizer:
    """Applies attachment changes to a node's persisted status."""

    def __init__(self, inventory: NodeInventory):
        self.inventory = inventory

    def add_attachment(self, node, volume_ref: str, device_path: str) -> list[AttachedVolume]:
        """
        Record a volume as attached at device_path.

        Raises:
            NodeStatusUpdateError: If the patch failed
        """
        volumes = [v for v in node.volumes_attached if v.name != volume_ref]
        volumes.append(AttachedVolume(name=volume_ref, device_path=device_path))

        result = self.inventory.replace_volumes_attached(node.name, volumes)
        node.volumes_attached = result
        logger.info(
            f"Adding volume {volume_ref} for node {node.name} succeeded. "
            f"VolumesAttached: {[(v.name, v.device_path) for v in result]}"
        )
        return result

    def remove_attachment(self, node, volume_ref: str) -> list[AttachedVolume]:
        """
        Drop every entry for a volume from the node's attached set.

        Raises:
            NodeStatusUpdateError: If the patch failed
        """
        volumes = [v for v in node.volumes_attached if v.name != volume_ref]

        result = self.inventory.replace_volumes_attached(node.name, volumes)
        node.volumes_attached = result
        logger.info(
            f"Removing volume {volume_ref} from node {node.name} succeeded. "
            f"VolumesAttached: {[(v.name, v.device_path) for v in result]}"
        )
        return result
