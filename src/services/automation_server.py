"""
Automation Server - Main orchestrator for all services
"""

import asyncio
import logging
from typing import Dict, Any

import uvicorn

from config_loader import load_config, setup_logging
from database.manager import DatabaseManager
from discovery import DeviceDiscovery, NetworkProbe, BluetoothProbe, DeviceConnector
from routines import DeviceTransport, StepExecutor, RoutineEngine, create_scheduler
from services.platform_services import TrafficService, NewsService
from api.main_api import AutomationAPI

logger = logging.getLogger(__name__)


class AutomationComponents:
    """Wires every collaborator from one configuration"""

    def __init__(self, config: Dict[str, Any], lifespan=None):
        self.config = config
        self.db = DatabaseManager(config)

        self.network_probe = NetworkProbe(config['network'])
        self.bluetooth_probe = BluetoothProbe(config['bluetooth'])
        self.discovery = DeviceDiscovery(self.network_probe, self.bluetooth_probe)
        self.connector = DeviceConnector(config['devices'])

        self.traffic = TrafficService(config)
        self.news = NewsService(config)
        self.platform_services = [self.traffic, self.news]

        self.transport = DeviceTransport(self.db)
        self.executor = StepExecutor(
            transport=self.transport,
            task_store=self.db,
            profile_store=self.db,
            traffic_service=self.traffic,
            news_service=self.news
        )
        self.engine = RoutineEngine(self.db, self.executor, create_scheduler(config['routines']))

        self.api = AutomationAPI(
            self.db, config, self.discovery, self.connector, self.bluetooth_probe,
            self.engine, self.platform_services, lifespan=lifespan
        )

    async def start(self):
        await self.db.initialize()
        logger.info("Database initialized successfully")

        for service in self.platform_services:
            await service.start()

    async def stop(self):
        for service in self.platform_services:
            await service.stop()
        await self.db.close()


class AutomationServer:
    """Main server: API plus background health monitoring"""

    def __init__(self, config_path: str = "config/config.yaml"):
        self.config = load_config(config_path)
        setup_logging(self.config)

        self.components = AutomationComponents(self.config)
        self.db = self.components.db
        self.api = self.components.api

        self.running = False
        self.tasks = []

    async def start(self):
        """Start all server services"""
        logger.info("[LAUNCH] Starting Home Automation Server...")

        try:
            await self.components.start()

            self.running = True
            self.tasks = [
                asyncio.create_task(self._monitoring_service())
            ]

            logger.info(f"All services started successfully ({len(self.tasks)} background tasks)")

            await self._start_api_server()

        except Exception as e:
            logger.error(f"Server startup failed: {e}")
            await self.stop()
            raise

    async def stop(self):
        """Stop all server services gracefully"""
        if not self.running and not self.tasks:
            return
        logger.info("Stopping server...")
        self.running = False

        for task in self.tasks:
            task.cancel()

        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)
        self.tasks = []

        await self.components.stop()
        logger.info("Server stopped")

    async def _monitoring_service(self):
        """Background service for system health monitoring"""
        check_interval = self.config['monitoring']['health_check_interval_minutes'] * 60

        logger.info(f"Monitoring service started (every {check_interval/60:.0f} minutes)")

        while self.running:
            try:
                await asyncio.sleep(check_interval)

                if not self.running:
                    break

                database_ok = await self.db.health_check()
                service_errors = {
                    service.name: service.get_status()['error_count']
                    for service in self.components.platform_services
                }

                logger.info(f"Health check: database {'OK' if database_ok else 'ERROR'}, "
                            f"service errors {service_errors}")

                for service in self.components.platform_services:
                    status = service.get_status()
                    if status['error_count'] > 0:
                        logger.warning(f"{service.name} service has {status['error_count']} errors, "
                                       f"last: {status['last_error']}")

            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Monitoring service error: {e}")

    async def _start_api_server(self):
        """Start the FastAPI server"""
        config = uvicorn.Config(
            self.api.app,
            host=self.config['api']['host'],
            port=self.config['api']['port'],
            log_level="info",
            access_log=False
        )

        server = uvicorn.Server(config)

        logger.info(f"Starting API server on {self.config['api']['host']}:{self.config['api']['port']}")
        logger.info(f"API documentation: http://localhost:{self.config['api']['port']}/docs")

        if self.config['routines']['enforce_delays']:
            logger.info(f"Step delays enforced in-process (max {self.config['routines']['max_delay_seconds']}s)")
        else:
            logger.info("Step delays are recorded but not enforced")

        await server.serve()
