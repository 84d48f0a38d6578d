"""
Platform Services Module
HTTP clients for the traffic and news collaborators used to enrich notifications
"""

import asyncio
import logging
from typing import Optional, Dict, Any

import aiohttp

from http_helper import create_service_session
from exceptions import CollaboratorError

logger = logging.getLogger(__name__)


class PlatformService:
    """Shared session handling for one platform collaborator"""

    name = "platform"
    path_key = ""

    def __init__(self, config: Dict[str, Any]):
        self.config = config['services']
        self.url = self.config['base_url'].rstrip('/') + self.config[self.path_key]
        self.timeout_seconds = self.config['timeout_seconds']

        self.session: Optional[aiohttp.ClientSession] = None
        self.request_count = 0
        self.error_count = 0
        self.last_error: Optional[str] = None

    async def start(self):
        if self.session is None or self.session.closed:
            self.session = create_service_session(self.timeout_seconds)
            logger.info(f"{self.name.capitalize()} service ready: {self.url}")

    async def stop(self):
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None
        logger.info(f"{self.name.capitalize()} service stopped")

    async def _get(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """GET the collaborator endpoint, raising CollaboratorError on any unusable answer"""
        await self.start()
        self.request_count += 1

        try:
            async with self.session.get(self.url, params=params) as response:
                if response.status != 200:
                    error_text = await response.text()
                    self._record_error(f"HTTP {response.status}: {error_text[:100]}")
                    raise CollaboratorError(self.name, f"HTTP {response.status}", response.status)

                data = await response.json(content_type=None)

        except aiohttp.ClientError as e:
            self._record_error(str(e))
            raise CollaboratorError(self.name, f"connection error: {e}") from e
        except asyncio.TimeoutError as e:
            self._record_error("timeout")
            raise CollaboratorError(self.name, "timed out") from e

        if not isinstance(data, dict):
            self._record_error("unexpected response body")
            raise CollaboratorError(self.name, "unexpected response body")
        return data

    def _record_error(self, message: str):
        self.error_count += 1
        self.last_error = message
        logger.warning(f"{self.name.capitalize()} service error: {message}")

    def get_status(self) -> Dict[str, Any]:
        return {
            'url': self.url,
            'connected': self.session is not None and not self.session.closed,
            'request_count': self.request_count,
            'error_count': self.error_count,
            'last_error': self.last_error,
        }


class TrafficService(PlatformService):
    """Route and travel-time lookups"""

    name = "traffic"
    path_key = "traffic_path"

    async def get_route(self, destination: str, lat: Optional[float] = None,
                        lng: Optional[float] = None) -> Dict[str, Any]:
        params = {'destination': destination}
        if lat is not None and lng is not None:
            params['lat'] = str(lat)
            params['lng'] = str(lng)

        logger.debug(f"Fetching traffic to {destination}")
        return await self._get(params)


class NewsService(PlatformService):
    """Headline search"""

    name = "news"
    path_key = "news_path"

    async def search(self, query: str) -> Dict[str, Any]:
        logger.debug(f"Searching news for '{query}'")
        return await self._get({'q': query})
