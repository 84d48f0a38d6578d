"""
Device classification heuristics shared by the discovery strategies
"""

import re
from typing import List, Optional, Tuple

from .models import DeviceType, unique_capabilities

LIGHT_CAPABILITIES = ["turn_on", "turn_off", "set_brightness"]
MEDIA_CAPABILITIES = ["play", "pause", "set_volume"]
SWITCH_CAPABILITIES = ["turn_on", "turn_off"]
CLIMATE_CAPABILITIES = ["set_temperature", "get_temperature"]
SENSOR_CAPABILITIES = ["read_temperature", "read_humidity"]

# mDNS service type fragment -> (type, provider, capabilities)
SERVICE_TYPE_MAP = [
    ("hap", DeviceType.LIGHT, "homekit", LIGHT_CAPABILITIES),
    ("homekit", DeviceType.LIGHT, "homekit", LIGHT_CAPABILITIES),
    ("googlecast", DeviceType.MEDIA, "googlecast", MEDIA_CAPABILITIES),
    ("sonos", DeviceType.MEDIA, "sonos", MEDIA_CAPABILITIES),
    ("wled", DeviceType.LIGHT, "wled", LIGHT_CAPABILITIES + ["set_color"]),
    ("airplay", DeviceType.MEDIA, "airplay", ["play", "set_volume"]),
    ("tuya", DeviceType.OUTLET, "tuya", SWITCH_CAPABILITIES),
]

# Advertised-name keywords -> (type, provider override, capabilities)
NAME_KEYWORDS = [
    (("light", "ampoule", "lamp"), DeviceType.LIGHT, None, LIGHT_CAPABILITIES),
    (("thermostat", "nest"), DeviceType.THERMOSTAT, "nest", CLIMATE_CAPABILITIES),
    (("sensor", "capteur"), DeviceType.SENSOR, None, SENSOR_CAPABILITIES),
    (("plug", "prise"), DeviceType.OUTLET, None, SWITCH_CAPABILITIES),
]

# HTTP body fingerprints -> (type, provider, capabilities); first match wins
BODY_FINGERPRINTS = [
    (("philips hue", "hue bridge", "ipbridge"), DeviceType.LIGHT, "philips-hue", LIGHT_CAPABILITIES + ["set_color"]),
    (("wled",), DeviceType.LIGHT, "wled", LIGHT_CAPABILITIES + ["set_color"]),
    (("tasmota",), DeviceType.OUTLET, "tasmota", SWITCH_CAPABILITIES),
    (("shelly",), DeviceType.OUTLET, "shelly", SWITCH_CAPABILITIES),
    (("esphome",), DeviceType.SENSOR, "esphome", SENSOR_CAPABILITIES),
    (("sonos",), DeviceType.MEDIA, "sonos", MEDIA_CAPABILITIES),
    (("tuya", "smart life"), DeviceType.OUTLET, "tuya", SWITCH_CAPABILITIES),
    (("yeelight",), DeviceType.LIGHT, "yeelight", LIGHT_CAPABILITIES),
    (("ecobee", "thermostat"), DeviceType.THERMOSTAT, "thermostat", CLIMATE_CAPABILITIES),
]

TITLE_PATTERN = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)

Classification = Tuple[DeviceType, str, List[str]]


def classify_service(service_type: str, name: str) -> Classification:
    """Classify an mDNS advertisement by service type, then refine by name"""
    device_type = DeviceType.OTHER
    provider = "generic"
    capabilities: List[str] = []

    service_type = service_type.lower()
    for fragment, mapped_type, mapped_provider, mapped_capabilities in SERVICE_TYPE_MAP:
        if fragment in service_type:
            device_type, provider, capabilities = mapped_type, mapped_provider, list(mapped_capabilities)
            break

    device_type, provider, capabilities = refine_by_name(name, device_type, provider, capabilities)
    return device_type, provider, capabilities


def refine_by_name(name: str, device_type: DeviceType, provider: str,
                   capabilities: List[str]) -> Classification:
    """Case-insensitive keyword refinement of an existing classification"""
    name_lower = (name or "").lower()
    for keywords, keyword_type, keyword_provider, keyword_capabilities in NAME_KEYWORDS:
        if any(keyword in name_lower for keyword in keywords):
            return (keyword_type,
                    keyword_provider or provider,
                    unique_capabilities(capabilities, keyword_capabilities))
    return device_type, provider, capabilities


def classify_http_body(body: str) -> Optional[Classification]:
    """Sniff a probe response body for a vendor fingerprint"""
    body_lower = (body or "").lower()
    for tokens, device_type, provider, capabilities in BODY_FINGERPRINTS:
        if any(token in body_lower for token in tokens):
            return device_type, provider, list(capabilities)
    return None


def extract_title(body: str) -> Optional[str]:
    """Return the HTML <title> text, whitespace-collapsed"""
    match = TITLE_PATTERN.search(body or "")
    if not match:
        return None
    title = " ".join(match.group(1).split())
    return title or None


def service_display_name(full_name: str, service_type: str) -> str:
    """Strip the '._type._tcp.local.' suffix from an mDNS instance name"""
    suffix = f".{service_type}"
    if full_name.endswith(suffix):
        full_name = full_name[:-len(suffix)]
    return full_name.replace("\\032", " ").strip() or "Unknown device"
