"""
Device discovery and connection API routes
"""

from fastapi import APIRouter, HTTPException, Header, Query
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
import logging

from discovery.models import DiscoveredDevice, DeviceType, ConnectionType, DeviceFilter
from discovery.bluetooth import BleakDevicePicker, choose_by_address
from exceptions import GestureRequiredError, BluetoothPlatformError

logger = logging.getLogger(__name__)


# Request models
class DeviceFilterModel(BaseModel):
    type: Optional[DeviceType] = None
    manufacturer: Optional[str] = None


class DiscoverRequest(BaseModel):
    connection_type: ConnectionType = ConnectionType.BOTH
    timeout_ms: Optional[int] = Field(default=None, gt=0, le=60000)
    filter: Optional[DeviceFilterModel] = None


class ConnectRequest(BaseModel):
    device: Dict[str, Any]
    credentials: Optional[Dict[str, Any]] = None


class TestConnectionRequest(BaseModel):
    device: Dict[str, Any]


class BluetoothRequest(BaseModel):
    accepted_services: Optional[List[str]] = None
    address: Optional[str] = None


def _parse_device(data: Dict[str, Any]) -> DiscoveredDevice:
    try:
        return DiscoveredDevice.from_dict(data)
    except (KeyError, ValueError, TypeError) as e:
        raise HTTPException(status_code=422, detail=f"Invalid device: {e}")


def create_device_routes(db_manager, discovery, connector, bluetooth_probe):
    """Create device discovery and connection routes"""
    router = APIRouter(prefix="/api/devices", tags=["devices"])

    async def _discover(connection_type: ConnectionType, timeout_ms: Optional[int],
                        device_filter: Optional[DeviceFilter]):
        # Headless requests carry no user gesture, so Bluetooth is skipped here
        devices = await discovery.discover_all(
            connection_type=connection_type,
            timeout_ms=timeout_ms,
            device_filter=device_filter
        )
        return {
            "devices": [d.to_dict() for d in devices],
            "count": len(devices),
            "connectionType": connection_type.value
        }

    @router.get("/discover")
    async def discover_devices(connection_type: ConnectionType = ConnectionType.BOTH,
                               timeout_ms: Optional[int] = Query(default=None, gt=0, le=60000),
                               type: Optional[DeviceType] = None,
                               manufacturer: Optional[str] = None):
        """Discover devices on the local network"""
        device_filter = DeviceFilter(type=type, manufacturer=manufacturer) if (type or manufacturer) else None
        try:
            return await _discover(connection_type, timeout_ms, device_filter)
        except Exception as e:
            logger.error(f"Discovery failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/discover")
    async def discover_devices_with_filter(request: DiscoverRequest):
        """Discover devices with a JSON filter body"""
        device_filter = None
        if request.filter:
            device_filter = DeviceFilter(type=request.filter.type, manufacturer=request.filter.manufacturer)
        try:
            return await _discover(request.connection_type, request.timeout_ms, device_filter)
        except Exception as e:
            logger.error(f"Discovery failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @router.post("/bluetooth/request")
    async def request_bluetooth_device(request: BluetoothRequest):
        """User clicked 'add Bluetooth device': issue a gesture and run the picker once"""
        gesture = bluetooth_probe.issue_gesture("api")
        picker = None
        if request.address:
            picker = BleakDevicePicker(chooser=choose_by_address(request.address),
                                       scan_timeout=bluetooth_probe.config.get('scan_timeout_seconds', 5.0))

        try:
            device = await bluetooth_probe.request_device(request.accepted_services, gesture, picker)
        except GestureRequiredError as e:
            raise HTTPException(status_code=403, detail=str(e))
        except BluetoothPlatformError as e:
            logger.warning(f"Bluetooth request failed: {e}")
            raise HTTPException(status_code=503, detail=str(e))

        return {
            "device": device.to_dict() if device else None,
            "cancelled": device is None
        }

    @router.post("/connect")
    async def connect_device(request: ConnectRequest, x_user_id: Optional[str] = Header(default=None)):
        """Verify credentials for a discovered device and register it for the caller"""
        device = _parse_device(request.device)
        result = await connector.connect(device, request.credentials)

        if result.success and x_user_id:
            saved = await db_manager.save_device(x_user_id, result.device)
            if not saved:
                raise HTTPException(status_code=500, detail="Device connected but could not be saved")

        return result.to_dict()

    @router.post("/test")
    async def test_device_connection(request: TestConnectionRequest):
        """Check that a device still answers on its network endpoint"""
        device = _parse_device(request.device)
        result = await connector.test_connection(device)
        return result.to_dict()

    return router
