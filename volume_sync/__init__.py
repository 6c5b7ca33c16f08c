"""
Volume attachment reconciliation for cluster nodes
"""

# Reference resolution
from .references import LastPathSegmentResolver, ReferenceResolver

# Device allocation
from .device_allocator import DeviceAllocator

# Provider-side attach/detach
from .attachment_driver import AttachmentDriver

# Node inventory and status updates
from .node_inventory import AttachedVolume, Node, NodeInventory, node_from_k8s
from .node_status import NodeStatusSynchronizer

# Reconcilers
from .volume_reconciler import EBS_VOLUME_PREFIX, VolumeReconciler
from .node_cleanup import NodeCleaner, has_ready_condition

# Kubernetes client utilities
from .k8s_client import setup_kubernetes_client

# Errors
from .errors import (
    NodeStatusUpdateError,
    NoFreeDeviceSlotsError,
    ReconcileError,
    ReferenceParseError,
)

__all__ = [
    # References
    "ReferenceResolver",
    "LastPathSegmentResolver",
    # Devices
    "DeviceAllocator",
    # Driver
    "AttachmentDriver",
    # Nodes
    "AttachedVolume",
    "Node",
    "NodeInventory",
    "node_from_k8s",
    "NodeStatusSynchronizer",
    # Reconcilers
    "EBS_VOLUME_PREFIX",
    "VolumeReconciler",
    "NodeCleaner",
    "has_ready_condition",
    # Kubernetes
    "setup_kubernetes_client",
    # Errors
    "ReconcileError",
    "ReferenceParseError",
    "NoFreeDeviceSlotsError",
    "NodeStatusUpdateError",
]
