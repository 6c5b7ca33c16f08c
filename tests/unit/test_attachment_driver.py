"""
Unit tests for the attachment driver.
"""
from unittest.mock import MagicMock

import pytest

from providers import (
    ProviderError,
    ProviderTimeoutError,
    VolumeNotFoundError,
    VolumeProviderState,
)

INSTANCE_ID = "i-0123456789abcdef0"
VOLUME_REF = "kubernetes.io/aws-ebs/vol-0aaa"


@pytest.fixture
def driver(mock_provider):
    from volume_sync.attachment_driver import AttachmentDriver
    return AttachmentDriver(mock_provider)


# ============================================================================
# Attach Tests
# ============================================================================

class TestAttach:
    """Tests for AttachmentDriver.attach."""

    def test_attach_available_volume(self, driver, mock_provider, sample_node):
        """An available volume is attached at the first free device."""
        node = sample_node(instance_id=INSTANCE_ID)

        device = driver.attach(VOLUME_REF, node)

        assert device == "/dev/xvdba"
        mock_provider.describe_volume.assert_called_once_with(
            "us-east-1", "vol-0aaa", timeout=30
        )
        mock_provider.attach_volume.assert_called_once_with(
            "us-east-1", "vol-0aaa", INSTANCE_ID, "/dev/xvdba", timeout=30
        )

    def test_attach_already_attached_here_returns_provider_device(
        self, driver, mock_provider, sample_node, volume_state
    ):
        """Volume attached to this instance returns its device, no attach call."""
        mock_provider.describe_volume.side_effect = None
        mock_provider.describe_volume.return_value = volume_state(
            state="in-use", instance_id=INSTANCE_ID, device="/dev/xvdbq"
        )
        node = sample_node(instance_id=INSTANCE_ID)

        assert driver.attach(VOLUME_REF, node) == "/dev/xvdbq"
        mock_provider.attach_volume.assert_not_called()

    def test_attach_twice_issues_one_attach_call(
        self, driver, mock_provider, sample_node, volume_state
    ):
        """Retrying after a partial success returns the same device."""
        mock_provider.describe_volume.side_effect = [
            volume_state(state="available"),
            volume_state(state="in-use", instance_id=INSTANCE_ID, device="/dev/xvdba"),
        ]
        node = sample_node(instance_id=INSTANCE_ID)

        first = driver.attach(VOLUME_REF, node)
        second = driver.attach(VOLUME_REF, node)

        assert first == second == "/dev/xvdba"
        assert mock_provider.attach_volume.call_count == 1

    def test_attach_uses_node_devices(self, driver, mock_provider, sample_node):
        """Devices already on the node are not reused."""
        node = sample_node(
            instance_id=INSTANCE_ID,
            volumes_attached=[("kubernetes.io/aws-ebs/vol-0bbb", "/dev/xvdba")],
        )

        assert driver.attach(VOLUME_REF, node) == "/dev/xvdbb"

    def test_attach_attached_elsewhere_propagates_provider_error(
        self, driver, mock_provider, sample_node, volume_state
    ):
        """The provider's rejection of an attach is raised to the caller."""
        mock_provider.describe_volume.side_effect = None
        mock_provider.describe_volume.return_value = volume_state(
            state="in-use", instance_id="i-other", device="/dev/xvdba"
        )
        mock_provider.attach_volume.side_effect = ProviderError(
            "VolumeInUse", "aws", "attach_volume"
        )
        node = sample_node(instance_id=INSTANCE_ID)

        with pytest.raises(ProviderError):
            driver.attach(VOLUME_REF, node)

    def test_attach_probe_failure_propagates(self, driver, mock_provider, sample_node):
        """A failed probe never leads to an attach call."""
        mock_provider.describe_volume.side_effect = ProviderError(
            "boom", "aws", "describe_volume"
        )
        node = sample_node(instance_id=INSTANCE_ID)

        with pytest.raises(ProviderError):
            driver.attach(VOLUME_REF, node)
        mock_provider.attach_volume.assert_not_called()

    def test_attach_no_free_device(self, driver, mock_provider, sample_node):
        """Device exhaustion raises before any attach call."""
        from volume_sync.errors import NoFreeDeviceSlotsError

        attached = [
            (f"kubernetes.io/aws-ebs/vol-{i}", device)
            for i, device in enumerate(driver.allocator.candidates())
        ]
        node = sample_node(instance_id=INSTANCE_ID, volumes_attached=attached)

        with pytest.raises(NoFreeDeviceSlotsError):
            driver.attach(VOLUME_REF, node)
        mock_provider.attach_volume.assert_not_called()

    def test_attach_deadline_exceeded(self, mock_provider, sample_node):
        """No attach call is made once the operation deadline has passed."""
        from volume_sync.attachment_driver import AttachmentDriver

        clock = MagicMock(side_effect=[0.0, 31.0])
        driver = AttachmentDriver(mock_provider, timeout=30, clock=clock)
        node = sample_node(instance_id=INSTANCE_ID)

        with pytest.raises(ProviderTimeoutError):
            driver.attach(VOLUME_REF, node)
        mock_provider.attach_volume.assert_not_called()

    def test_attach_malformed_volume_ref(self, driver, mock_provider, sample_node):
        """A volume reference without path segments is not resolved."""
        from volume_sync.errors import ReferenceParseError

        node = sample_node(instance_id=INSTANCE_ID)

        with pytest.raises(ReferenceParseError):
            driver.attach("vol-0aaa", node)
        mock_provider.describe_volume.assert_not_called()

    def test_attach_node_without_region(self, driver, mock_provider, sample_node):
        """A node without a region label cannot be resolved."""
        from volume_sync.errors import ReferenceParseError

        node = sample_node(region=None)

        with pytest.raises(ReferenceParseError):
            driver.attach(VOLUME_REF, node)
        mock_provider.describe_volume.assert_not_called()


# ============================================================================
# Detach Tests
# ============================================================================

class TestDetach:
    """Tests for AttachmentDriver.detach."""

    def test_detach_attached_here(self, driver, mock_provider, sample_node, volume_state):
        """A volume attached to this instance is detached."""
        mock_provider.describe_volume.side_effect = None
        mock_provider.describe_volume.return_value = volume_state(
            state="in-use", instance_id=INSTANCE_ID, device="/dev/xvdba"
        )
        node = sample_node(instance_id=INSTANCE_ID)

        assert driver.detach(VOLUME_REF, node) is True
        mock_provider.detach_volume.assert_called_once_with(
            "us-east-1", "vol-0aaa", INSTANCE_ID, timeout=30
        )

    def test_detach_already_available_is_noop(self, driver, mock_provider, sample_node):
        """An available volume needs no detach call."""
        node = sample_node(instance_id=INSTANCE_ID)

        assert driver.detach(VOLUME_REF, node) is False
        mock_provider.detach_volume.assert_not_called()

    def test_detach_attached_elsewhere_is_noop(
        self, driver, mock_provider, sample_node, volume_state
    ):
        """A volume held by another instance is left alone."""
        mock_provider.describe_volume.side_effect = None
        mock_provider.describe_volume.return_value = volume_state(
            state="in-use", instance_id="i-other", device="/dev/xvdba"
        )
        node = sample_node(instance_id=INSTANCE_ID)

        assert driver.detach(VOLUME_REF, node) is False
        mock_provider.detach_volume.assert_not_called()

    def test_detach_missing_volume_is_noop(self, driver, mock_provider, sample_node):
        """A volume the provider no longer knows has nothing to detach."""
        mock_provider.describe_volume.side_effect = VolumeNotFoundError(
            "gone", "aws", "describe_volume"
        )
        node = sample_node(instance_id=INSTANCE_ID)

        assert driver.detach(VOLUME_REF, node) is False
        mock_provider.detach_volume.assert_not_called()

    def test_detach_in_transition_still_detaches(
        self, driver, mock_provider, sample_node
    ):
        """A non-available volume without a clear attachment is still detached."""
        mock_provider.describe_volume.side_effect = None
        mock_provider.describe_volume.return_value = VolumeProviderState(
            volume_id="vol-0aaa", state="in-use"
        )
        node = sample_node(instance_id=INSTANCE_ID)

        assert driver.detach(VOLUME_REF, node) is True
        mock_provider.detach_volume.assert_called_once()

    def test_detach_provider_error_propagates(
        self, driver, mock_provider, sample_node, volume_state
    ):
        """A failed detach call is raised to the caller."""
        mock_provider.describe_volume.side_effect = None
        mock_provider.describe_volume.return_value = volume_state(
            state="in-use", instance_id=INSTANCE_ID, device="/dev/xvdba"
        )
        mock_provider.detach_volume.side_effect = ProviderError(
            "IncorrectState", "aws", "detach_volume"
        )
        node = sample_node(instance_id=INSTANCE_ID)

        with pytest.raises(ProviderError):
            driver.detach(VOLUME_REF, node)

    def test_detach_deadline_exceeded(self, mock_provider, sample_node, volume_state):
        """No detach call is made once the operation deadline has passed."""
        from volume_sync.attachment_driver import AttachmentDriver

        mock_provider.describe_volume.side_effect = None
        mock_provider.describe_volume.return_value = volume_state(
            state="in-use", instance_id=INSTANCE_ID, device="/dev/xvdba"
        )
        clock = MagicMock(side_effect=[100.0, 130.0])
        driver = AttachmentDriver(mock_provider, timeout=30, clock=clock)
        node = sample_node(instance_id=INSTANCE_ID)

        with pytest.raises(ProviderTimeoutError):
            driver.detach(VOLUME_REF, node)
        mock_provider.detach_volume.assert_not_called()
