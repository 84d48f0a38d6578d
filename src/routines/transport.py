"""
Device transport: routes a DEVICE_COMMAND step to the connector for the
device's provider. Philips Hue bridges are driven over their local REST API;
every other provider is acknowledged as queued.
"""

import asyncio
import re
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import aiohttp

from http_helper import create_service_session
from exceptions import DeviceCommandError

logger = logging.getLogger(__name__)

HEX_COLOR = re.compile(r'^#?([a-f\d]{2})([a-f\d]{2})([a-f\d]{2})$', re.IGNORECASE)

# Hue accepts 153 (6500K) to 500 (2000K)
MIRED_MIN = 153
MIRED_MAX = 500

# Provider tags for devices reached through a Hue bridge
HUE_PROVIDERS = ("hue", "philips-hue")


@dataclass
class DeviceCommandResponse:
    device_id: str
    provider: str
    action: str
    payload: Optional[Dict[str, Any]]
    status: str  # queued | sent | error
    detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deviceId": self.device_id,
            "provider": self.provider,
            "action": self.action,
            "payload": self.payload,
            "status": self.status,
            "detail": self.detail,
        }


def hex_to_xy(color: str) -> Optional[List[float]]:
    """Convert #rrggbb to CIE 1931 xy coordinates"""
    match = HEX_COLOR.match(color or "")
    if not match:
        return None

    def linear(channel: str) -> float:
        c = int(channel, 16) / 255
        return ((c + 0.055) / 1.055) ** 2.4 if c > 0.04045 else c / 12.92

    r, g, b = (linear(c) for c in match.groups())
    x = r * 0.4124 + g * 0.3576 + b * 0.1805
    y = r * 0.2126 + g * 0.7152 + b * 0.0722
    z = r * 0.0193 + g * 0.1192 + b * 0.9505
    total = x + y + z
    if total == 0:
        return [0.0, 0.0]
    return [round(x / total, 4), round(y / total, 4)]


def kelvin_to_mired(kelvin: float) -> int:
    return max(MIRED_MIN, min(MIRED_MAX, round(1_000_000 / kelvin)))


def brightness_to_bri(percent: float) -> int:
    """0-100 % to the bridge's 0-254 scale"""
    return round(max(0, min(100, percent)) / 100 * 254)


def convert_to_hue_command(action: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Translate a generic device action into a Hue light state body"""
    params = params or {}
    command: Dict[str, Any] = {}

    if action in ("turn_on", "on"):
        command["on"] = True
        if params.get("brightness"):
            command["bri"] = brightness_to_bri(params["brightness"])
        if params.get("color"):
            xy = hex_to_xy(params["color"])
            if xy:
                command["xy"] = xy
        if params.get("colorTemperature"):
            command["ct"] = kelvin_to_mired(params["colorTemperature"])

    elif action in ("turn_off", "off"):
        command["on"] = False

    elif action == "set_brightness":
        command["on"] = True
        command["bri"] = brightness_to_bri(params.get("brightness", 100))

    elif action == "set_color":
        command["on"] = True
        xy = hex_to_xy(params.get("color", ""))
        if xy:
            command["xy"] = xy

    elif action == "set_color_temperature":
        command["on"] = True
        command["ct"] = kelvin_to_mired(params.get("temperature") or 4000)

    if params.get("transitionTime"):
        # seconds to deciseconds
        command["transitiontime"] = round(params["transitionTime"] * 10)

    return command


def split_command(payload: Optional[Dict[str, Any]]):
    """Steps carry {action, payload: {...}} or {action, ...params}"""
    payload = dict(payload or {})
    action = payload.pop("action", None) or "execute"
    nested = payload.get("payload")
    params = nested if isinstance(nested, dict) else payload
    return action, params


class DeviceTransport:
    """Dispatches device commands through the provider's connector"""

    def __init__(self, device_store, timeout_seconds: float = 5,
                 session_factory: Callable[..., aiohttp.ClientSession] = create_service_session):
        self.device_store = device_store
        self.timeout_seconds = timeout_seconds
        self.session_factory = session_factory

    async def dispatch_device_command(self, device_id: Optional[str],
                                      payload: Optional[Dict[str, Any]]) -> DeviceCommandResponse:
        """
        Send one command to one device.
        Unknown or missing devices raise DeviceCommandError; connector
        failures come back as a response with status 'error'.
        """
        if not device_id:
            raise DeviceCommandError("A device id is required for this action")

        device = await self.device_store.get_device(device_id)
        if device is None:
            raise DeviceCommandError(f"Device not found: {device_id}", device_id)

        action, params = split_command(payload)

        try:
            if device.provider.lower() in HUE_PROVIDERS:
                return await self._dispatch_hue(device, action, params)

            logger.info(f"Command '{action}' for {device_id} queued: no connector for {device.provider}")
            return DeviceCommandResponse(
                device_id=device.device_id,
                provider=device.provider,
                action=action,
                payload=params,
                status="queued",
                detail=f"Connector {device.provider} not implemented"
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, DeviceCommandError, ValueError) as e:
            logger.warning(f"Command '{action}' for {device_id} failed: {e}")
            return DeviceCommandResponse(
                device_id=device.device_id,
                provider=device.provider,
                action=action,
                payload=params,
                status="error",
                detail=str(e) or "Unknown error"
            )

    async def _dispatch_hue(self, device, action: str, params: Dict[str, Any]) -> DeviceCommandResponse:
        metadata = device.metadata or {}
        bridge_ip = metadata.get("bridgeIp")
        username = metadata.get("username")
        hue_id = metadata.get("hueId")

        if not bridge_ip or not username or not hue_id:
            raise DeviceCommandError("Incomplete Hue configuration for this device", device.device_id)

        if metadata.get("isGroup"):
            url = f"http://{bridge_ip}/api/{username}/groups/{hue_id}/action"
        else:
            url = f"http://{bridge_ip}/api/{username}/lights/{hue_id}/state"

        body = convert_to_hue_command(action, params)
        logger.debug(f"PUT {url} {body}")

        async with self.session_factory(self.timeout_seconds) as session:
            async with session.put(url, json=body) as response:
                data = await response.json(content_type=None)

        first = data[0] if isinstance(data, list) and data else {}
        if first.get("error"):
            raise DeviceCommandError(first["error"].get("description") or "Unknown bridge error",
                                     device.device_id)

        sent = "success" in first
        await self.device_store.update_device_last_seen(device.device_id)

        return DeviceCommandResponse(
            device_id=device.device_id,
            provider=device.provider,
            action=action,
            payload=params,
            status="sent" if sent else "error",
            detail="Command executed" if sent else "Bridge did not acknowledge the command"
        )
