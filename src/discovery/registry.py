"""
Per-call device registry: merges, reconciles and filters discovery results
"""

import logging
from typing import Dict, List, Optional, Iterable

from .models import DiscoveredDevice, DeviceFilter, DeviceType, unique_capabilities

logger = logging.getLogger(__name__)

GENERIC_PROVIDERS = {"http", "generic", "generic-ble"}


def _specificity(device: DiscoveredDevice) -> int:
    """Rank how much a classification tells us about a device"""
    score = 0
    if device.provider not in GENERIC_PROVIDERS:
        score += 2
    if device.type != DeviceType.OTHER:
        score += 1
    return score


class DeviceRegistry:
    """Id-keyed device map scoped to a single discovery call

    Only mutated from the event loop that runs the discovery, so no lock.
    """

    def __init__(self, dedupe_by_endpoint: bool = True):
        self.dedupe_by_endpoint = dedupe_by_endpoint
        self._devices: Dict[str, DiscoveredDevice] = {}
        self._endpoints: Dict[tuple, str] = {}

    def __len__(self) -> int:
        return len(self._devices)

    def add(self, device: DiscoveredDevice) -> bool:
        """Add a device, returns True when it was not already known"""
        if device.id in self._devices:
            self._devices[device.id] = device
            return False

        endpoint = device.endpoint if self.dedupe_by_endpoint else None
        if endpoint and endpoint in self._endpoints:
            existing_id = self._endpoints[endpoint]
            existing = self._devices[existing_id]
            kept, dropped = (device, existing) if _specificity(device) > _specificity(existing) else (existing, device)
            kept.capabilities = unique_capabilities(kept.capabilities, dropped.capabilities)
            if kept is device:
                del self._devices[existing_id]
                self._devices[device.id] = device
                self._endpoints[endpoint] = device.id
            logger.debug(f"Reconciled {dropped.id} into {kept.id} (same endpoint {endpoint[0]}:{endpoint[1]})")
            return False

        self._devices[device.id] = device
        if endpoint:
            self._endpoints[endpoint] = device.id
        return True

    def extend(self, devices: Iterable[DiscoveredDevice]) -> int:
        return sum(1 for device in devices if self.add(device))

    def devices(self) -> List[DiscoveredDevice]:
        return list(self._devices.values())

    @classmethod
    def merge(cls, *device_lists: Iterable[DiscoveredDevice],
              dedupe_by_endpoint: bool = True) -> List[DiscoveredDevice]:
        """Merge several result lists into one id-unique list"""
        registry = cls(dedupe_by_endpoint=dedupe_by_endpoint)
        for devices in device_lists:
            registry.extend(devices)
        return registry.devices()

    @staticmethod
    def filter(devices: Iterable[DiscoveredDevice],
               device_filter: Optional[DeviceFilter] = None) -> List[DiscoveredDevice]:
        if not device_filter:
            return list(devices)
        return [device for device in devices if device_filter.matches(device)]
