"""
Main discovery manager: fans one discovery request out across WiFi and Bluetooth
"""

import time
import logging
from typing import List, Optional, Iterable

from .models import DiscoveredDevice, DeviceFilter, ConnectionType
from .network_discovery import NetworkProbe
from .bluetooth import BluetoothProbe, UserGesture, DevicePicker
from .registry import DeviceRegistry
from exceptions import BluetoothPlatformError

logger = logging.getLogger(__name__)


class DeviceDiscovery:
    """Main discovery service for smart-home devices"""

    def __init__(self, network_probe: NetworkProbe, bluetooth_probe: BluetoothProbe):
        self.network = network_probe
        self.bluetooth = bluetooth_probe

    async def discover_all(self, connection_type: ConnectionType = ConnectionType.BOTH,
                           timeout_ms: Optional[int] = None,
                           device_filter: Optional[DeviceFilter] = None,
                           gesture: Optional[UserGesture] = None,
                           accepted_services: Optional[Iterable[str]] = None,
                           picker: Optional[DevicePicker] = None) -> List[DiscoveredDevice]:
        """
        Discover devices for one request.
        Bluetooth only runs when the request carries a user gesture; a headless
        request for BOTH silently degrades to WiFi only.
        """
        start_time = time.time()
        results: List[List[DiscoveredDevice]] = []

        if connection_type in (ConnectionType.WIFI, ConnectionType.BOTH):
            results.append(await self.network.discover(timeout_ms))

        if connection_type in (ConnectionType.BLUETOOTH, ConnectionType.BOTH):
            if gesture is None:
                logger.info("Bluetooth discovery skipped: no user gesture on this request")
            else:
                try:
                    device = await self.bluetooth.request_device(accepted_services, gesture, picker)
                except BluetoothPlatformError as e:
                    if connection_type == ConnectionType.BLUETOOTH:
                        raise
                    logger.warning(f"Bluetooth unavailable, returning WiFi results only: {e}")
                    device = None
                if device:
                    results.append([device])

        devices = DeviceRegistry.filter(
            DeviceRegistry.merge(*results, dedupe_by_endpoint=self.network.dedupe_by_endpoint),
            device_filter
        )
        logger.info(f"[PASS] Discovery ({connection_type.value}): {len(devices)} devices in {time.time() - start_time:.1f}s")
        return devices
