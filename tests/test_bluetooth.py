"""
Unit tests for the gesture-gated Bluetooth probe and the discovery manager's
handling of Bluetooth alongside WiFi.
"""
import time
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from bleak.exc import BleakError

from discovery.bluetooth import (
    BluetoothProbe, BluetoothCandidate, BleakDevicePicker, DevicePicker, UserGesture,
    GATT_SERVICES, normalize_service, choose_by_address, choose_strongest,
)
from discovery.manager import DeviceDiscovery
from discovery.models import ConnectionType, DeviceType, DiscoveredDevice
from exceptions import GestureRequiredError, BluetoothPlatformError


class FakePicker(DevicePicker):
    """Picker that returns a fixed candidate (or raises) and records calls."""

    def __init__(self, candidate=None, error=None):
        self.candidate = candidate
        self.error = error
        self.calls = []

    async def pick(self, accepted_services):
        self.calls.append(accepted_services)
        if self.error:
            raise self.error
        return self.candidate


def _candidate(*services, address="AA:BB:CC:DD:EE:FF", name="Thermo", rssi=-60, manufacturer_ids=None):
    return BluetoothCandidate(
        address=address,
        name=name,
        rssi=rssi,
        service_uuids=[GATT_SERVICES[s] for s in services],
        manufacturer_ids=manufacturer_ids or [],
    )


@pytest.fixture
def bluetooth_config(config):
    return config["bluetooth"]


# ---------------------------------------------------------------------------
# Gesture gating
# ---------------------------------------------------------------------------

class TestGesture:

    @pytest.mark.asyncio
    async def test_missing_gesture_is_rejected(self, bluetooth_config):
        picker = FakePicker(_candidate())
        probe = BluetoothProbe(bluetooth_config, picker=picker)

        with pytest.raises(GestureRequiredError):
            await probe.request_device(["battery_service"], gesture=None)
        assert picker.calls == []

    @pytest.mark.asyncio
    async def test_stale_gesture_is_rejected(self, bluetooth_config):
        probe = BluetoothProbe(bluetooth_config, picker=FakePicker(_candidate()))
        stale = UserGesture(source="test", issued_at=time.monotonic() - 30)

        with pytest.raises(GestureRequiredError):
            await probe.request_device(None, gesture=stale)

    @pytest.mark.asyncio
    async def test_gesture_is_single_use(self, bluetooth_config):
        probe = BluetoothProbe(bluetooth_config, picker=FakePicker(_candidate()))
        gesture = probe.issue_gesture("click")

        assert await probe.request_device(None, gesture) is not None
        with pytest.raises(GestureRequiredError):
            await probe.request_device(None, gesture)


# ---------------------------------------------------------------------------
# Device selection and refinement
# ---------------------------------------------------------------------------

class TestRequestDevice:

    @pytest.mark.asyncio
    async def test_environmental_sensor_with_battery(self, bluetooth_config):
        candidate = _candidate("environmental_sensing", "battery_service", manufacturer_ids=[0x0969])
        probe = BluetoothProbe(bluetooth_config, picker=FakePicker(candidate))

        device = await probe.request_device(
            ["environmental_sensing", "battery_service"], probe.issue_gesture("click")
        )

        assert device.id == "ble-AA:BB:CC:DD:EE:FF"
        assert device.type == DeviceType.SENSOR
        assert device.connection_type == ConnectionType.BLUETOOTH
        assert device.provider == "generic-ble"
        assert device.capabilities == ["read_temperature", "read_humidity", "read_battery"]
        assert device.metadata == {
            "bluetoothAddress": "AA:BB:CC:DD:EE:FF",
            "manufacturer": "Govee",
            "signalStrength": -60,
        }

    @pytest.mark.asyncio
    async def test_services_outside_accepted_set_do_not_refine(self, bluetooth_config):
        probe = BluetoothProbe(bluetooth_config, picker=FakePicker(_candidate("heart_rate")))

        device = await probe.request_device(["battery_service"], probe.issue_gesture("click"))

        assert device.type == DeviceType.OTHER
        assert device.capabilities == ["read", "write"]

    @pytest.mark.asyncio
    async def test_heart_rate_and_hid(self, bluetooth_config):
        probe = BluetoothProbe(bluetooth_config, picker=FakePicker(_candidate("heart_rate", "human_interface_device")))

        device = await probe.request_device(
            ["heart_rate", "human_interface_device"], probe.issue_gesture("click")
        )

        assert device.type == DeviceType.SENSOR
        assert device.capabilities == ["read_heart_rate", "input", "output"]

    @pytest.mark.asyncio
    async def test_default_services_refine_heart_rate(self, bluetooth_config):
        picker = FakePicker(_candidate("heart_rate"))
        probe = BluetoothProbe(bluetooth_config, picker=picker)

        device = await probe.request_device(None, probe.issue_gesture("click"))

        assert GATT_SERVICES["heart_rate"] in picker.calls[0]
        assert GATT_SERVICES["human_interface_device"] in picker.calls[0]
        assert device.type == DeviceType.SENSOR
        assert device.capabilities == ["read_heart_rate"]

    @pytest.mark.asyncio
    async def test_cancelled_picker_returns_none(self, bluetooth_config):
        probe = BluetoothProbe(bluetooth_config, picker=FakePicker(None))
        assert await probe.request_device(None, probe.issue_gesture("click")) is None

    @pytest.mark.asyncio
    async def test_picker_failure_becomes_platform_error(self, bluetooth_config):
        probe = BluetoothProbe(bluetooth_config, picker=FakePicker(error=RuntimeError("adapter off")))

        with pytest.raises(BluetoothPlatformError):
            await probe.request_device(None, probe.issue_gesture("click"))

    @pytest.mark.asyncio
    async def test_bleak_error_becomes_platform_error(self):
        picker = BleakDevicePicker(scan_timeout=0.1)

        with patch("discovery.bluetooth.BleakScanner.discover", AsyncMock(side_effect=BleakError("No adapter"))):
            with pytest.raises(BluetoothPlatformError):
                await picker.pick([])

    @pytest.mark.asyncio
    async def test_bleak_picker_builds_candidates(self):
        ble_device = MagicMock()
        ble_device.name = "Band"
        adv = MagicMock(local_name=None, rssi=-40,
                        service_uuids=[GATT_SERVICES["heart_rate"].upper()],
                        manufacturer_data={0x004C: b"\x01"})
        picker = BleakDevicePicker(chooser=choose_by_address("11:22:33:44:55:66"), scan_timeout=0.1)

        with patch("discovery.bluetooth.BleakScanner.discover",
                   AsyncMock(return_value={"11:22:33:44:55:66": (ble_device, adv)})):
            candidate = await picker.pick([])

        assert candidate.name == "Band"
        assert candidate.service_uuids == [GATT_SERVICES["heart_rate"]]
        assert candidate.manufacturer_ids == [0x004C]


class TestHelpers:

    def test_normalize_service_forms(self):
        battery = GATT_SERVICES["battery_service"]
        assert normalize_service("battery_service") == battery
        assert normalize_service("180F") == battery
        assert normalize_service("0x180f") == battery
        assert normalize_service(battery.upper()) == battery

    def test_choosers(self):
        near = _candidate(address="01", name="Near", rssi=-30)
        far = _candidate(address="02", name="Far", rssi=-90)
        unnamed = _candidate(address="03", name=None, rssi=-10)

        assert choose_strongest([far, near, unnamed]) is near
        assert choose_by_address("02")([near, far]) is far
        assert choose_by_address("99")([near, far]) is None


# ---------------------------------------------------------------------------
# Discovery manager
# ---------------------------------------------------------------------------

def _wifi_device():
    return DiscoveredDevice(
        id="wled-192.168.1.5-80", name="WLED", type=DeviceType.LIGHT,
        connection_type=ConnectionType.WIFI, provider="wled",
        metadata={"ip": "192.168.1.5", "port": 80},
    )


@pytest.fixture
def network_probe():
    probe = MagicMock()
    probe.discover = AsyncMock(return_value=[_wifi_device()])
    probe.dedupe_by_endpoint = True
    return probe


class TestDeviceDiscovery:

    @pytest.mark.asyncio
    async def test_headless_request_skips_bluetooth(self, network_probe, bluetooth_config):
        picker = FakePicker(_candidate())
        discovery = DeviceDiscovery(network_probe, BluetoothProbe(bluetooth_config, picker=picker))

        devices = await discovery.discover_all(ConnectionType.BOTH)

        assert [d.id for d in devices] == ["wled-192.168.1.5-80"]
        assert picker.calls == []

    @pytest.mark.asyncio
    async def test_gesture_adds_bluetooth_device(self, network_probe, bluetooth_config):
        bluetooth = BluetoothProbe(bluetooth_config, picker=FakePicker(_candidate("battery_service")))
        discovery = DeviceDiscovery(network_probe, bluetooth)

        devices = await discovery.discover_all(ConnectionType.BOTH, gesture=bluetooth.issue_gesture("click"))

        assert [d.connection_type for d in devices] == [ConnectionType.WIFI, ConnectionType.BLUETOOTH]

    @pytest.mark.asyncio
    async def test_platform_error_degrades_to_wifi_in_both_mode(self, network_probe, bluetooth_config):
        bluetooth = BluetoothProbe(bluetooth_config, picker=FakePicker(error=BluetoothPlatformError("off")))
        discovery = DeviceDiscovery(network_probe, bluetooth)

        devices = await discovery.discover_all(ConnectionType.BOTH, gesture=bluetooth.issue_gesture("click"))

        assert len(devices) == 1

    @pytest.mark.asyncio
    async def test_platform_error_raised_for_bluetooth_only(self, network_probe, bluetooth_config):
        bluetooth = BluetoothProbe(bluetooth_config, picker=FakePicker(error=BluetoothPlatformError("off")))
        discovery = DeviceDiscovery(network_probe, bluetooth)

        with pytest.raises(BluetoothPlatformError):
            await discovery.discover_all(ConnectionType.BLUETOOTH, gesture=bluetooth.issue_gesture("click"))
        network_probe.discover.assert_not_awaited()
