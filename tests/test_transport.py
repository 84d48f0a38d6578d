"""
Unit tests for the device transport and the Hue command conversion.
"""
import asyncio
import aiohttp
import pytest
from unittest.mock import AsyncMock, MagicMock

from database.models import DeviceRecord
from exceptions import DeviceCommandError
from routines.transport import (
    DeviceTransport, convert_to_hue_command, hex_to_xy, kelvin_to_mired, split_command,
)
from fakes import FakeResponse, FakeSession


def _hue_light(is_group=False, provider="hue"):
    return DeviceRecord(
        device_id="dev-hue",
        user_id="user-1",
        name="Salon",
        provider=provider,
        device_type="LIGHT",
        metadata={"bridgeIp": "192.168.1.2", "username": "abc123", "hueId": "4", "isGroup": is_group},
    )


def _store(device):
    store = MagicMock()
    store.get_device = AsyncMock(return_value=device)
    store.update_device_last_seen = AsyncMock(return_value=True)
    return store


# ---------------------------------------------------------------------------
# Hue conversion
# ---------------------------------------------------------------------------

class TestHueConversion:

    def test_turn_on_with_brightness_and_temperature(self):
        command = convert_to_hue_command("turn_on", {"brightness": 80, "colorTemperature": 4000})
        assert command == {"on": True, "bri": 203, "ct": 250}

    def test_turn_off(self):
        assert convert_to_hue_command("off") == {"on": False}

    def test_set_brightness_bounds(self):
        assert convert_to_hue_command("set_brightness", {"brightness": 100})["bri"] == 254
        assert convert_to_hue_command("set_brightness", {"brightness": 0})["bri"] == 0

    def test_set_color(self):
        command = convert_to_hue_command("set_color", {"color": "#ffffff"})
        assert command["on"] is True
        assert command["xy"] == pytest.approx([0.3127, 0.329], abs=1e-3)

    def test_invalid_color_is_ignored(self):
        assert convert_to_hue_command("set_color", {"color": "red"}) == {"on": True}

    def test_color_temperature_is_clamped(self):
        assert kelvin_to_mired(2000) == 500
        assert kelvin_to_mired(10000) == 153
        assert convert_to_hue_command("set_color_temperature", {})["ct"] == 250

    def test_transition_time_in_deciseconds(self):
        assert convert_to_hue_command("on", {"transitionTime": 1.5})["transitiontime"] == 15

    def test_unknown_action_sends_nothing(self):
        assert convert_to_hue_command("execute", {}) == {}

    def test_black_does_not_divide_by_zero(self):
        assert hex_to_xy("#000000") == [0.0, 0.0]

    def test_split_command_forms(self):
        assert split_command({"action": "on", "payload": {"brightness": 10}}) == ("on", {"brightness": 10})
        assert split_command({"action": "on", "brightness": 10}) == ("on", {"brightness": 10})
        assert split_command(None) == ("execute", {})


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

class TestDispatch:

    @pytest.mark.asyncio
    async def test_missing_device_id(self):
        transport = DeviceTransport(_store(None))
        with pytest.raises(DeviceCommandError):
            await transport.dispatch_device_command(None, {})

    @pytest.mark.asyncio
    async def test_unknown_device(self):
        transport = DeviceTransport(_store(None))
        with pytest.raises(DeviceCommandError, match="Device not found"):
            await transport.dispatch_device_command("ghost", {"action": "on"})

    @pytest.mark.asyncio
    async def test_other_providers_are_queued(self):
        device = DeviceRecord("dev-tuya", "user-1", "Plug", "tuya", "OUTLET")
        transport = DeviceTransport(_store(device))

        response = await transport.dispatch_device_command("dev-tuya", {"action": "turn_on"})

        assert response.status == "queued"
        assert response.detail == "Connector tuya not implemented"
        assert response.to_dict()["deviceId"] == "dev-tuya"

    @pytest.mark.asyncio
    async def test_hue_light_command_is_sent(self):
        store = _store(_hue_light())
        session = FakeSession(FakeResponse(json_data=[{"success": {"/lights/4/state/on": True}}]))
        transport = DeviceTransport(store, session_factory=lambda timeout: session)

        response = await transport.dispatch_device_command(
            "dev-hue", {"action": "turn_on", "payload": {"brightness": 50}}
        )

        method, url, kwargs = session.requests[0]
        assert method == "PUT"
        assert url == "http://192.168.1.2/api/abc123/lights/4/state"
        assert kwargs["json"] == {"on": True, "bri": 127}
        assert response.status == "sent"
        store.update_device_last_seen.assert_awaited_once_with("dev-hue")

    @pytest.mark.asyncio
    async def test_hue_group_uses_group_action(self):
        session = FakeSession(FakeResponse(json_data=[{"success": {}}]))
        transport = DeviceTransport(_store(_hue_light(is_group=True)), session_factory=lambda timeout: session)

        await transport.dispatch_device_command("dev-hue", {"action": "off"})

        assert session.requests[0][1] == "http://192.168.1.2/api/abc123/groups/4/action"

    @pytest.mark.asyncio
    async def test_bridge_error_is_reported(self):
        session = FakeSession(FakeResponse(json_data=[{"error": {"description": "unauthorized user"}}]))
        transport = DeviceTransport(_store(_hue_light()), session_factory=lambda timeout: session)

        response = await transport.dispatch_device_command("dev-hue", {"action": "on"})

        assert response.status == "error"
        assert response.detail == "unauthorized user"

    @pytest.mark.asyncio
    async def test_unreachable_bridge_is_reported(self):
        session = FakeSession(error=aiohttp.ClientConnectionError("Connection refused"))
        transport = DeviceTransport(_store(_hue_light()), session_factory=lambda timeout: session)

        response = await transport.dispatch_device_command("dev-hue", {"action": "on"})

        assert response.status == "error"
        assert "Connection refused" in response.detail

    @pytest.mark.asyncio
    async def test_philips_hue_provider_tag_is_routed_to_bridge(self):
        store = _store(_hue_light(provider="philips-hue"))
        session = FakeSession(FakeResponse(json_data=[{"success": {"/lights/4/state/on": True}}]))
        transport = DeviceTransport(store, session_factory=lambda timeout: session)

        response = await transport.dispatch_device_command("dev-hue", {"action": "turn_on"})

        assert session.requests[0][0] == "PUT"
        assert response.status == "sent"
        assert response.provider == "philips-hue"

    @pytest.mark.asyncio
    async def test_bridge_timeout_is_reported(self):
        session = FakeSession(error=asyncio.TimeoutError())
        transport = DeviceTransport(_store(_hue_light()), session_factory=lambda timeout: session)

        response = await transport.dispatch_device_command("dev-hue", {"action": "on"})

        assert response.status == "error"
        assert response.detail == "Unknown error"

    @pytest.mark.asyncio
    async def test_incomplete_hue_metadata(self):
        device = DeviceRecord("dev-hue", "user-1", "Salon", "hue", "LIGHT", metadata={"bridgeIp": "1.2.3.4"})
        transport = DeviceTransport(_store(device))

        response = await transport.dispatch_device_command("dev-hue", {"action": "on"})

        assert response.status == "error"
        assert response.detail == "Incomplete Hue configuration for this device"
