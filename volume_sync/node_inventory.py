"""
Cluster node inventory.

Wraps the Kubernetes CoreV1Api calls the controller needs and converts
``V1Node`` objects into the small working-copy models used during a
reconciliation pass.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime

import urllib3
from kubernetes import client
from kubernetes.client.rest import ApiException

from .errors import NodeStatusUpdateError

logger = logging.getLogger(__name__)

REGION_LABEL = "failure-domain.beta.kubernetes.io/region"
TOPOLOGY_REGION_LABEL = "topology.kubernetes.io/region"
MANAGED_ATTACH_DETACH_ANNOTATION = "volumes.kubernetes.io/controller-managed-attach-detach"
VOLUMES_ATTACHED_PATH = "/status/volumesAttached"


@dataclass
class AttachedVolume:
    """One entry of a node's status.volumesAttached."""
    name: str
    device_path: str

    def to_k8s(self) -> dict[str, str]:
        return {"name": self.name, "devicePath": self.device_path}


@dataclass
class Node:
    """Working copy of the node fields the controller reads."""
    name: str
    provider_instance_ref: str = ""
    region: str = ""
    volumes_in_use: list[str] = field(default_factory=list)
    volumes_attached: list[AttachedVolume] = field(default_factory=list)
    attach_detach_managed: bool = False
    ready_heartbeat: datetime | None = None

    def is_volume_in_use(self, volume_ref: str) -> bool:
        return volume_ref in self.volumes_in_use

    def is_volume_attached(self, volume_ref: str) -> bool:
        return any(v.name == volume_ref for v in self.volumes_attached)


def attached_volumes_from_k8s(items) -> list[AttachedVolume]:
    return [
        AttachedVolume(name=item.name, device_path=item.device_path)
        for item in items or []
    ]


def node_from_k8s(k8s_node) -> Node:
    """Build a Node working copy from a kubernetes V1Node."""
    metadata = k8s_node.metadata
    labels = metadata.labels or {}
    annotations = metadata.annotations or {}
    spec = k8s_node.spec
    status = k8s_node.status

    ready_heartbeat = None
    volumes_in_use = []
    volumes_attached = []
    if status is not None:
        for condition in status.conditions or []:
            if condition.type == "Ready":
                ready_heartbeat = condition.last_heartbeat_time
                break
        volumes_in_use = list(status.volumes_in_use or [])
        volumes_attached = attached_volumes_from_k8s(status.volumes_attached)

    return Node(
        name=metadata.name,
        provider_instance_ref=(spec.provider_id if spec is not None else None) or "",
        region=labels.get(REGION_LABEL) or labels.get(TOPOLOGY_REGION_LABEL) or "",
        volumes_in_use=volumes_in_use,
        volumes_attached=volumes_attached,
        attach_detach_managed=annotations.get(MANAGED_ATTACH_DETACH_ANNOTATION) == "true",
        ready_heartbeat=ready_heartbeat,
    )


class NodeInventory:
    """Reads and updates Node objects through the Kubernetes API."""

    def __init__(self, core_api: client.CoreV1Api, request_timeout: float | None = None):
        """
        Initialize node inventory.

        Args:
            core_api: Kubernetes Core API client
            request_timeout: Optional per-request timeout in seconds
        """
        self.core_api = core_api
        self.request_timeout = request_timeout

    def _request_kwargs(self) -> dict:
        if self.request_timeout:
            return {"_request_timeout": self.request_timeout}
        return {}

    def list_nodes(self) -> list[Node]:
        """Get a point-in-time snapshot of all nodes."""
        response = self.core_api.list_node(**self._request_kwargs())
        return [node_from_k8s(item) for item in response.items]

    def replace_volumes_attached(
        self,
        node_name: str,
        volumes: list[AttachedVolume]
    ) -> list[AttachedVolume]:
        """
        Replace status.volumesAttached with a JSON patch.

        Only this one field is sent, so concurrent writers of other status
        fields are not clobbered. The op is "add" rather than "replace":
        the API server omits an empty volumesAttached from the node, and
        "replace" fails on a missing member while "add" sets it either way.

        Returns:
            The server's resulting volumesAttached

        Raises:
            NodeStatusUpdateError: If the patch was rejected or not delivered
        """
        patch = [
            {
                "op": "add",
                "path": VOLUMES_ATTACHED_PATH,
                "value": [v.to_k8s() for v in volumes],
            }
        ]
        try:
            updated = self.core_api.patch_node_status(
                node_name, patch, **self._request_kwargs()
            )
        except ApiException as e:
            raise NodeStatusUpdateError(node_name, f"{e.status} {e.reason}", e.status) from e
        except urllib3.exceptions.HTTPError as e:
            raise NodeStatusUpdateError(node_name, str(e)) from e

        status = updated.status if updated is not None else None
        return attached_volumes_from_k8s(status.volumes_attached if status else None)

    def delete_node(self, node_name: str) -> None:
        """Delete a node object from the cluster."""
        self.core_api.delete_node(node_name, **self._request_kwargs())
