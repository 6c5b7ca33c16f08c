"""
Device name allocation for new attachments.

Device paths come from a fixed space: ``/dev/xvd`` followed by one of two
prefix letters and a suffix letter ``a``-``z``, 52 slots per node. The
first free candidate in that order is chosen, so allocating against the
same attachment snapshot always yields the same device.
"""

import logging
import string
from collections.abc import Iterable, Iterator

from .errors import NoFreeDeviceSlotsError

logger = logging.getLogger(__name__)

DEVICE_BASE = "/dev/xvd"
DEVICE_PREFIXES = "bc"
DEVICE_SUFFIXES = string.ascii_lowercase


class DeviceAllocator:
    """Picks the first unused device path for a node."""

    def __init__(
        self,
        base: str = DEVICE_BASE,
        prefixes: str = DEVICE_PREFIXES,
        suffixes: str = DEVICE_SUFFIXES,
    ):
        self.base = base
        self.prefixes = prefixes
        self.suffixes = suffixes

    @property
    def slot_count(self) -> int:
        return len(self.prefixes) * len(self.suffixes)

    def candidates(self) -> Iterator[str]:
        for prefix in self.prefixes:
            for suffix in self.suffixes:
                yield f"{self.base}{prefix}{suffix}"

    def allocate(self, node) -> str:
        """
        Get a free device path for the node.

        Only the device paths in ``node.volumes_attached`` are considered;
        which volume holds a device does not matter.

        Raises:
            NoFreeDeviceSlotsError: If every candidate is taken
        """
        return self.allocate_from(
            (attached.device_path for attached in node.volumes_attached),
            node_name=node.name,
        )

    def allocate_from(self, devices_in_use: Iterable[str], node_name: str = "") -> str:
        in_use = set(devices_in_use)
        for device in self.candidates():
            if device not in in_use:
                return device

        logger.error(
            f"No free device names on node {node_name}: "
            f"{len(in_use)} devices in use ({sorted(in_use)})"
        )
        raise NoFreeDeviceSlotsError(node_name, self.slot_count)
