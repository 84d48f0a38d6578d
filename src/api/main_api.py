"""
Main FastAPI application setup
Local HTTP API for device discovery, device connection and routine automation
"""

from fastapi import FastAPI
from typing import Dict, List, Optional
import logging

from .system_routes import create_system_routes
from .device_routes import create_device_routes
from .routine_routes import create_routine_routes

logger = logging.getLogger(__name__)


class AutomationAPI:
    """Local HTTP API for devices and routines"""

    def __init__(self, database_manager, config: Dict, discovery, connector, bluetooth_probe,
                 engine, platform_services: Optional[List] = None, lifespan=None):
        self.db = database_manager
        self.config = config
        self.discovery = discovery
        self.connector = connector
        self.bluetooth = bluetooth_probe
        self.engine = engine
        self.platform_services = platform_services or []
        self.app = FastAPI(
            title="Home Automation Server",
            description="Local API for smart-home device discovery and routine automation",
            version="1.0.0",
            lifespan=lifespan
        )
        self._setup_routes()

    def _setup_routes(self):
        """Setup FastAPI routes using modular approach"""
        self.app.include_router(create_system_routes(self.db, self.config, self.platform_services))
        self.app.include_router(create_device_routes(self.db, self.discovery, self.connector, self.bluetooth))
        self.app.include_router(create_routine_routes(self.db, self.engine))
        logger.debug(f"API routes registered: {len(self.app.routes)}")
