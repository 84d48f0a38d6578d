"""
Discovery data structures and models
"""

from enum import Enum
from typing import List, Dict, Optional, Any, Iterable
from dataclasses import dataclass, field, replace


class DeviceType(Enum):
    """Kind of controllable device"""
    LIGHT = "LIGHT"
    THERMOSTAT = "THERMOSTAT"
    MEDIA = "MEDIA"
    OUTLET = "OUTLET"
    SENSOR = "SENSOR"
    OTHER = "OTHER"


class ConnectionType(Enum):
    """Radio a device is reachable through"""
    WIFI = "WIFI"
    BLUETOOTH = "BLUETOOTH"
    BOTH = "BOTH"


def unique_capabilities(*groups: Iterable[str]) -> List[str]:
    """Concatenate capability groups, dropping duplicates but keeping first-seen order"""
    seen = []
    for group in groups:
        for capability in group:
            if capability not in seen:
                seen.append(capability)
    return seen


@dataclass
class DiscoveredDevice:
    """Represents a device found during one discovery call"""
    id: str
    name: str
    type: DeviceType
    connection_type: ConnectionType
    provider: str
    capabilities: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def endpoint(self) -> Optional[tuple]:
        """(ip, port) for network devices, None otherwise"""
        ip = self.metadata.get("ip")
        if not ip:
            return None
        return ip, self.metadata.get("port")

    def with_metadata(self, **updates) -> 'DiscoveredDevice':
        """Return a copy with extra metadata"""
        return replace(self, capabilities=list(self.capabilities),
                       metadata={**self.metadata, **updates})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "connectionType": self.connection_type.value,
            "provider": self.provider,
            "capabilities": list(self.capabilities),
            "metadata": {k: v for k, v in self.metadata.items() if v is not None},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DiscoveredDevice':
        return cls(
            id=data["id"],
            name=data.get("name") or data["id"],
            type=DeviceType(data.get("type", "OTHER")),
            connection_type=ConnectionType(data.get("connectionType", "WIFI")),
            provider=data.get("provider", "generic"),
            capabilities=unique_capabilities(data.get("capabilities") or []),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class DeviceFilter:
    """Caller-supplied narrowing of a discovery result"""
    type: Optional[DeviceType] = None
    manufacturer: Optional[str] = None

    def matches(self, device: DiscoveredDevice) -> bool:
        if self.type and device.type != self.type:
            return False
        if self.manufacturer:
            manufacturer = device.metadata.get("manufacturer") or ""
            if manufacturer.lower() != self.manufacturer.lower():
                return False
        return True


@dataclass
class DiscoveryResult:
    """Results from one discovery strategy"""
    devices: List[DiscoveredDevice]
    method: str
    duration_seconds: float
    probes_attempted: int
    success_count: int


@dataclass
class ConnectionResult:
    """Outcome of a connector capability probe"""
    success: bool
    device: Optional[DiscoveredDevice] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success}
        if self.device:
            result["device"] = self.device.to_dict()
        if self.error:
            result["error"] = self.error
        return result
