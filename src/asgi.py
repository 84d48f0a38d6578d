"""
ASGI entry point for uvicorn
This module exposes the FastAPI app for use with uvicorn command line
"""

import os
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from config_loader import load_config, setup_logging
from services.automation_server import AutomationComponents

Path("logs").mkdir(exist_ok=True)

config = load_config(os.environ.get('CONFIG_FILE', 'config/config.yaml'))
setup_logging(config)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app):
    """Initialize database and platform services on startup, release them on shutdown"""
    logger.info("Starting up application...")
    await components.start()
    yield
    logger.info("Shutting down application...")
    await components.stop()
    logger.info("Application shut down complete")


logger.info("Initializing application components...")
components = AutomationComponents(config, lifespan=lifespan)

# Expose the FastAPI app for uvicorn
app = components.api.app

logger.info("ASGI app ready for uvicorn")
