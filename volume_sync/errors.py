"""
Exceptions raised by the volume reconciliation core.

Provider failures use the ``providers`` exception hierarchy; these cover
the cluster side and the core's own checks.
"""


class ReconcileError(Exception):
    """Base exception for reconciliation errors."""
    pass


class ReferenceParseError(ReconcileError):
    """A node or volume reference does not follow the naming convention."""

    def __init__(self, reference: str, reason: str):
        self.reference = reference
        self.reason = reason
        super().__init__(f"Cannot resolve reference {reference!r}: {reason}")


class NoFreeDeviceSlotsError(ReconcileError):
    """Every device path in the slot space is already in use on the node."""

    def __init__(self, node_name: str, slots: int):
        self.node_name = node_name
        self.slots = slots
        super().__init__(
            f"All {slots} device names are in use on node {node_name}"
        )


class NodeStatusUpdateError(ReconcileError):
    """Patching a node's status failed."""

    def __init__(self, node_name: str, message: str, status: int | None = None):
        self.node_name = node_name
        self.status = status
        super().__init__(f"Failed to update status of node {node_name}: {message}")
