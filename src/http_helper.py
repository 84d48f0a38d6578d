# HTTP Helper for device probes and platform service calls
# Local devices are always plain HTTP; platform services may use TLS

import aiohttp
import logging

logger = logging.getLogger(__name__)

PROBE_USER_AGENT = "Synexa-Device-Scanner/1.0"

# Device web UIs often redirect / to a landing page
MAX_REDIRECTS = 3


def create_probe_session(timeout_seconds: float = 0.8, limit: int = 20) -> aiohttp.ClientSession:
    """
    Create aiohttp session for LAN device probes (always HTTP)
    The connector limit caps the number of in-flight probe connections
    """
    connector = aiohttp.TCPConnector(
        limit=limit,
        limit_per_host=2,
        ssl=False,
        force_close=True,
        enable_cleanup_closed=True
    )

    return aiohttp.ClientSession(
        connector=connector,
        timeout=aiohttp.ClientTimeout(total=timeout_seconds),
        headers={"User-Agent": PROBE_USER_AGENT}
    )


def create_service_session(timeout_seconds: float = 10) -> aiohttp.ClientSession:
    """
    Create aiohttp session for platform service calls (traffic, news, bridges)
    """
    connector = aiohttp.TCPConnector(
        limit=20,
        limit_per_host=5,
        force_close=False,
        enable_cleanup_closed=True
    )

    return aiohttp.ClientSession(
        connector=connector,
        timeout=aiohttp.ClientTimeout(total=timeout_seconds)
    )
