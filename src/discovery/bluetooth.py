"""
Bluetooth Low Energy discovery through a user-gesture-gated, single-select picker
"""

import time
import uuid
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from bleak import BleakScanner
from bleak.exc import BleakError

from .models import DiscoveredDevice, DeviceType, ConnectionType, unique_capabilities
from exceptions import BluetoothPlatformError, GestureRequiredError

logger = logging.getLogger(__name__)

# Standard 16-bit GATT service UUIDs expanded to the Bluetooth base UUID
GATT_SERVICES = {
    "generic_access": "00001800-0000-1000-8000-00805f9b34fb",
    "generic_attribute": "00001801-0000-1000-8000-00805f9b34fb",
    "device_information": "0000180a-0000-1000-8000-00805f9b34fb",
    "heart_rate": "0000180d-0000-1000-8000-00805f9b34fb",
    "battery_service": "0000180f-0000-1000-8000-00805f9b34fb",
    "human_interface_device": "00001812-0000-1000-8000-00805f9b34fb",
    "environmental_sensing": "0000181a-0000-1000-8000-00805f9b34fb",
}

# Bluetooth SIG company identifiers seen in manufacturer data
COMPANY_IDS = {
    0x004C: "Apple",
    0x0006: "Microsoft",
    0x0075: "Samsung",
    0x00E0: "Google",
    0x0157: "Xiaomi",
    0x0969: "Govee",
}


def normalize_service(service: str) -> str:
    """Accept GATT names, 16-bit short UUIDs or full UUIDs"""
    service = service.strip().lower()
    if service in GATT_SERVICES:
        return GATT_SERVICES[service]
    if len(service) == 4:
        return f"0000{service}-0000-1000-8000-00805f9b34fb"
    if service.startswith("0x") and len(service) == 6:
        return f"0000{service[2:]}-0000-1000-8000-00805f9b34fb"
    return service


@dataclass
class UserGesture:
    """Single-use proof that a Bluetooth request comes from a direct user action"""
    source: str
    token: str = field(default_factory=lambda: uuid.uuid4().hex)
    issued_at: float = field(default_factory=time.monotonic)
    consumed: bool = False

    def is_fresh(self, ttl_seconds: float) -> bool:
        return not self.consumed and (time.monotonic() - self.issued_at) <= ttl_seconds


@dataclass
class BluetoothCandidate:
    """A device visible to the picker"""
    address: str
    name: Optional[str]
    rssi: Optional[int] = None
    service_uuids: List[str] = field(default_factory=list)
    manufacturer_ids: List[int] = field(default_factory=list)


Chooser = Callable[[List[BluetoothCandidate]], Optional[BluetoothCandidate]]


def choose_by_address(address: str) -> Chooser:
    """Chooser that picks the candidate the user selected, or cancels"""
    wanted = address.lower()

    def chooser(candidates: List[BluetoothCandidate]) -> Optional[BluetoothCandidate]:
        return next((c for c in candidates if c.address.lower() == wanted), None)

    return chooser


def choose_strongest(candidates: List[BluetoothCandidate]) -> Optional[BluetoothCandidate]:
    """Chooser that picks the closest named device"""
    named = [c for c in candidates if c.name]
    if not named:
        return None
    return max(named, key=lambda c: c.rssi if c.rssi is not None else -1000)


class DevicePicker:
    """Presents nearby devices and returns the single one the user picked (None = cancelled)"""

    async def pick(self, accepted_services: List[str]) -> Optional[BluetoothCandidate]:
        raise NotImplementedError


class BleakDevicePicker(DevicePicker):
    """Picker backed by a bleak scan and a chooser callback"""

    def __init__(self, chooser: Chooser = choose_strongest, scan_timeout: float = 5.0):
        self.chooser = chooser
        self.scan_timeout = scan_timeout

    async def pick(self, accepted_services: List[str]) -> Optional[BluetoothCandidate]:
        try:
            discovered = await BleakScanner.discover(timeout=self.scan_timeout, return_adv=True)
        except (BleakError, OSError) as e:
            raise BluetoothPlatformError(f"Bluetooth adapter unavailable: {e}") from e

        candidates = []
        for address, (ble_device, adv) in discovered.items():
            candidates.append(BluetoothCandidate(
                address=address,
                name=adv.local_name or ble_device.name,
                rssi=adv.rssi,
                service_uuids=[u.lower() for u in (adv.service_uuids or [])],
                manufacturer_ids=list((adv.manufacturer_data or {}).keys()),
            ))

        logger.debug(f"Bluetooth picker: {len(candidates)} candidates")
        return self.chooser(candidates)


class BluetoothProbe:
    """Requests exactly one BLE device per user gesture"""

    def __init__(self, config: dict, picker: Optional[DevicePicker] = None):
        self.config = config
        self.gesture_ttl = config.get('gesture_ttl_seconds', 5.0)
        self.optional_services = config.get('optional_services', [])
        self.picker = picker or BleakDevicePicker(scan_timeout=config.get('scan_timeout_seconds', 5.0))

    def issue_gesture(self, source: str) -> UserGesture:
        """Called by the UI-facing layer when the user clicks 'add Bluetooth device'"""
        return UserGesture(source=source)

    async def request_device(self, accepted_services: Optional[Iterable[str]] = None,
                             gesture: Optional[UserGesture] = None,
                             picker: Optional[DevicePicker] = None) -> Optional[DiscoveredDevice]:
        """
        Returns the picked device, or None when the user cancelled.
        Raises GestureRequiredError without a fresh gesture and
        BluetoothPlatformError when the adapter cannot be used.
        """
        if gesture is None or not gesture.is_fresh(self.gesture_ttl):
            raise GestureRequiredError("Bluetooth requests must come from a direct user action")
        gesture.consumed = True

        services = [normalize_service(s) for s in (accepted_services or self.optional_services)]
        try:
            candidate = await (picker or self.picker).pick(services)
        except BluetoothPlatformError:
            raise
        except Exception as e:
            raise BluetoothPlatformError(f"Bluetooth request failed: {e}") from e

        if candidate is None:
            logger.info(f"Bluetooth request cancelled ({gesture.source})")
            return None

        device = self.candidate_to_device(candidate, services)
        logger.info(f"[OK] Bluetooth device selected: {device.name} ({candidate.address})")
        return device

    @staticmethod
    def candidate_to_device(candidate: BluetoothCandidate,
                            accepted_services: List[str]) -> DiscoveredDevice:
        """Refine type and capabilities from the advertised services we may access"""
        device_type = DeviceType.OTHER
        capabilities: List[str] = []
        accepted = set(accepted_services)
        visible = [s for s in candidate.service_uuids if not accepted or s in accepted]

        for service in visible:
            if service == GATT_SERVICES["environmental_sensing"]:
                device_type = DeviceType.SENSOR
                capabilities = unique_capabilities(capabilities, ["read_temperature", "read_humidity"])
            elif service == GATT_SERVICES["battery_service"]:
                capabilities = unique_capabilities(capabilities, ["read_battery"])
            elif service == GATT_SERVICES["heart_rate"]:
                device_type = DeviceType.SENSOR
                capabilities = unique_capabilities(capabilities, ["read_heart_rate"])
            elif service == GATT_SERVICES["human_interface_device"]:
                capabilities = unique_capabilities(capabilities, ["input", "output"])

        manufacturer = next(
            (COMPANY_IDS[i] for i in candidate.manufacturer_ids if i in COMPANY_IDS), "Unknown"
        )
        name = candidate.name or "Bluetooth device"
        metadata: Dict = {
            "bluetoothAddress": candidate.address,
            "manufacturer": manufacturer,
        }
        if candidate.rssi is not None:
            metadata["signalStrength"] = candidate.rssi

        return DiscoveredDevice(
            id=f"ble-{candidate.address or name}",
            name=name,
            type=device_type,
            connection_type=ConnectionType.BLUETOOTH,
            provider="generic-ble",
            capabilities=capabilities or ["read", "write"],
            metadata=metadata,
        )
