"""
Device connector: checks a discovered device is controllable before it is handed
to the external device registry
"""

import asyncio
import aiohttp
import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Any

from .models import DiscoveredDevice, ConnectionResult, ConnectionType
from http_helper import create_probe_session, MAX_REDIRECTS

logger = logging.getLogger(__name__)


class DeviceConnector:
    """Capability probe, not durable pairing"""

    def __init__(self, config: dict):
        self.config = config
        self.credential_requirements: Dict[str, list] = {
            provider.lower(): fields
            for provider, fields in config.get('credential_requirements', {}).items()
        }
        self.connect_timeout = config.get('connect_timeout_ms', 1500) / 1000

    def missing_credentials(self, device: DiscoveredDevice,
                            credentials: Optional[Dict[str, Any]]) -> list:
        required = self.credential_requirements.get(device.provider.lower(), [])
        credentials = credentials or {}
        return [field for field in required if not credentials.get(field)]

    async def connect(self, device: DiscoveredDevice,
                      credentials: Optional[Dict[str, Any]] = None) -> ConnectionResult:
        """Validate credentials for the provider and stamp the connection time"""
        missing = self.missing_credentials(device, credentials)
        if missing:
            logger.info(f"Connect refused for {device.id}: missing {', '.join(missing)}")
            return ConnectionResult(
                success=False,
                error=f"Credentials required for provider {device.provider}: {', '.join(missing)}"
            )

        connected = device.with_metadata(
            connected=True,
            connectedAt=datetime.now(timezone.utc).isoformat()
        )
        logger.info(f"[OK] Device connected: {device.name} ({device.id})")
        return ConnectionResult(success=True, device=connected)

    async def test_connection(self, device: DiscoveredDevice) -> ConnectionResult:
        """Single short reachability probe for network devices"""
        if device.connection_type == ConnectionType.BLUETOOTH:
            return ConnectionResult(success=False, device=device,
                                    error="Bluetooth devices can only be tested from the browser")

        ip = device.metadata.get("ip")
        if not ip:
            return ConnectionResult(success=False, device=device, error="Device has no IP address")

        url = f"http://{ip}:{device.metadata.get('port') or 80}/"
        try:
            async with create_probe_session(self.connect_timeout, limit=1) as session:
                async with session.get(url, max_redirects=MAX_REDIRECTS) as response:
                    if response.status >= 500:
                        return ConnectionResult(success=False, device=device,
                                                error=f"HTTP {response.status}")
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.debug(f"Connection test failed for {url}: {e!r}")
            return ConnectionResult(success=False, device=device, error=f"Unreachable: {url}")

        return ConnectionResult(success=True, device=device)
