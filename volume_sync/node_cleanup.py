"""
Node liveness cleanup.

Removes Node objects whose backing compute instance no longer exists. A
node is only checked against the provider when its Ready heartbeat is
stale; a provider error keeps the node.
"""

import logging
from datetime import UTC, datetime, timedelta

from providers import ProviderError, VolumeAttachmentProvider

from .errors import ReferenceParseError
from .node_inventory import Node, NodeInventory
from .references import LastPathSegmentResolver, ReferenceResolver

logger = logging.getLogger(__name__)

DEFAULT_HEARTBEAT_TIMEOUT_SECONDS = 30


def has_ready_condition(
    node: Node,
    now: datetime | None = None,
    heartbeat_timeout: float = DEFAULT_HEARTBEAT_TIMEOUT_SECONDS
) -> bool:
    """True if the node's Ready heartbeat is newer than heartbeat_timeout."""
    if node.ready_heartbeat is None:
        return False
    now = now or datetime.now(UTC)
    heartbeat = node.ready_heartbeat
    if heartbeat.tzinfo is None:
        heartbeat = heartbeat.replace(tzinfo=UTC)
    return heartbeat > now - timedelta(seconds=heartbeat_timeout)


class NodeCleaner:
    """Deletes unresponsive nodes whose instance is gone."""

    def __init__(
        self,
        inventory: NodeInventory,
        provider: VolumeAttachmentProvider,
        resolver: ReferenceResolver | None = None,
        heartbeat_timeout: float = DEFAULT_HEARTBEAT_TIMEOUT_SECONDS,
        provider_timeout: float | None = None,
    ):
        self.inventory = inventory
        self.provider = provider
        self.resolver = resolver or LastPathSegmentResolver()
        self.heartbeat_timeout = heartbeat_timeout
        self.provider_timeout = provider_timeout

    def should_remove_node(self, node: Node) -> bool:
        """Ask the provider whether the node's instance still exists."""
        try:
            if not node.region:
                raise ReferenceParseError(node.name, "node has no region label")
            instance_id = self.resolver.resolve(node.provider_instance_ref)
            return not self.provider.instance_exists(
                node.region, instance_id, timeout=self.provider_timeout
            )
        except (ReferenceParseError, ProviderError) as e:
            logger.error(f"Cannot check instance of node {node.name}: {e}")
            return False

    def run_pass(self, nodes: list[Node] | None = None) -> dict[str, int]:
        """
        Check every node once.

        Returns:
            Dictionary with cleanup statistics

        Raises:
            ApiException: If listing the nodes failed
        """
        stats = {
            "checked": 0,
            "unresponsive": 0,
            "removed": 0,
            "errors": 0,
        }

        if nodes is None:
            nodes = self.inventory.list_nodes()

        now = datetime.now(UTC)
        for node in nodes:
            stats["checked"] += 1
            if has_ready_condition(node, now, self.heartbeat_timeout):
                continue

            stats["unresponsive"] += 1
            if not self.should_remove_node(node):
                logger.info(f"Node {node.name} seems unresponsive, but alive")
                continue

            logger.info(f"Removing node {node.name}")
            try:
                self.inventory.delete_node(node.name)
                stats["removed"] += 1
            except Exception as e:
                logger.error(f"Failed to remove node {node.name}: {e}", exc_info=True)
                stats["errors"] += 1

        return stats
