"""
Shared pytest fixtures for unit tests.
"""
from datetime import UTC, datetime
from typing import Any
from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from providers import VolumeAttachmentProvider, VolumeProviderState


TEST_REGION = "us-east-1"


# ============================================================================
# Mock Kubernetes Client Fixtures
# ============================================================================

def _status_patch_applier(documents: dict[str, dict]):
    """
    Apply JSON patches to per-node status documents like the API server.

    Empty volumesAttached is omitted from the stored document, and a
    "replace" of a missing member is rejected with 422.
    """
    def _apply(name, body, **kwargs):
        status = documents.setdefault(name, {})
        for operation in body:
            key = operation["path"].rsplit("/", 1)[-1]
            if operation["op"] == "replace" and key not in status:
                raise ApiException(
                    status=422,
                    reason=f"can't replace a non-existent object '{key}'",
                )
            status[key] = operation["value"]
        if not status.get("volumesAttached"):
            status.pop("volumesAttached", None)

        return client.V1Node(
            metadata=client.V1ObjectMeta(name=name),
            status=client.V1NodeStatus(
                volumes_attached=[
                    client.V1AttachedVolume(name=v["name"], device_path=v["devicePath"])
                    for v in status.get("volumesAttached", [])
                ] or None
            ),
        )
    return _apply


@pytest.fixture
def mock_k8s_core_api():
    """Mock Kubernetes CoreV1Api; status patches are applied to node_status_documents."""
    api = MagicMock()
    api.node_status_documents = {}
    api.list_node.return_value = MagicMock(items=[])
    api.patch_node_status.side_effect = _status_patch_applier(api.node_status_documents)
    api.delete_node.return_value = None
    return api


# ============================================================================
# Mock AWS Client Fixtures
# ============================================================================

@pytest.fixture
def mock_ec2_client():
    """Mock boto3 EC2 client."""
    client_ = MagicMock()
    client_.describe_volumes.return_value = {"Volumes": []}
    client_.attach_volume.return_value = {}
    client_.detach_volume.return_value = {}
    client_.describe_instance_status.return_value = {"InstanceStatuses": []}
    return client_


@pytest.fixture
def mock_provider():
    """Mock VolumeAttachmentProvider; volumes are available by default."""
    provider = MagicMock(spec=VolumeAttachmentProvider)
    provider.name = "aws"
    provider.describe_volume.side_effect = lambda region, volume_id, timeout=None: (
        VolumeProviderState(volume_id=volume_id, state="available")
    )
    provider.attach_volume.return_value = None
    provider.detach_volume.return_value = None
    provider.instance_exists.return_value = True
    return provider


# ============================================================================
# Test Data Factory Fixtures
# ============================================================================

@pytest.fixture
def sample_k8s_node():
    """Factory for kubernetes V1Node objects."""
    def _create(
        name: str = "node-1",
        instance_id: str = "i-0123456789abcdef0",
        region: str | None = TEST_REGION,
        managed: bool = True,
        volumes_in_use: list[str] | None = None,
        volumes_attached: list[tuple[str, str]] | None = None,
        heartbeat: datetime | None = None,
        **kwargs
    ) -> client.V1Node:
        labels = kwargs.get("labels", {})
        if region is not None:
            labels = {"failure-domain.beta.kubernetes.io/region": region, **labels}
        annotations = {}
        if managed:
            annotations["volumes.kubernetes.io/controller-managed-attach-detach"] = "true"
        return client.V1Node(
            metadata=client.V1ObjectMeta(
                name=name,
                labels=labels,
                annotations=annotations,
            ),
            spec=client.V1NodeSpec(
                provider_id=kwargs.get(
                    "provider_id", f"aws:///{region or 'us-east-1'}a/{instance_id}"
                )
            ),
            status=client.V1NodeStatus(
                volumes_in_use=volumes_in_use,
                volumes_attached=[
                    client.V1AttachedVolume(name=v, device_path=d)
                    for v, d in (volumes_attached or [])
                ] or None,
                conditions=[
                    client.V1NodeCondition(
                        type="Ready",
                        status="True",
                        last_heartbeat_time=heartbeat or datetime.now(UTC),
                    )
                ],
            ),
        )
    return _create


@pytest.fixture
def sample_node(sample_k8s_node):
    """Factory for Node working copies."""
    from volume_sync.node_inventory import node_from_k8s

    def _create(**kwargs: Any):
        return node_from_k8s(sample_k8s_node(**kwargs))
    return _create


@pytest.fixture
def volume_state():
    """Factory for provider volume states."""
    def _create(
        volume_id: str = "vol-0aaa",
        state: str = "available",
        instance_id: str | None = None,
        device: str | None = None,
    ) -> VolumeProviderState:
        return VolumeProviderState(
            volume_id=volume_id,
            state=state,
            attached_instance_id=instance_id,
            attached_device=device,
        )
    return _create
