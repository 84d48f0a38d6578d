"""
Home Automation Local Server - Main Entry Point
Runs the API and background monitoring until SIGINT/SIGTERM
"""

import asyncio
import signal
import sys
import logging
import os
from pathlib import Path

from services.automation_server import AutomationServer

logger = logging.getLogger(__name__)


async def serve(config_path: str) -> int:
    """Run the server until it exits or a shutdown signal arrives"""
    loop = asyncio.get_running_loop()
    stop_requested = asyncio.Event()

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop_requested.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C still raises KeyboardInterrupt
            pass

    logger.info(f"Using configuration file: {config_path}")
    server = None
    stop_task = asyncio.create_task(stop_requested.wait())

    try:
        server = AutomationServer(config_path=config_path)
        server_task = asyncio.create_task(server.start())

        done, _ = await asyncio.wait({server_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)

        if stop_task in done:
            logger.info("Shutdown signal received")
            server_task.cancel()
            await asyncio.gather(server_task, return_exceptions=True)
        else:
            server_task.result()
        return 0

    except Exception as e:
        logger.error(f"Server failed: {e}")
        return 1
    finally:
        stop_task.cancel()
        if server:
            await server.stop()


def run():
    """Console entry point"""
    Path("logs").mkdir(exist_ok=True)
    config_path = os.environ.get('CONFIG_FILE', 'config/config.yaml')

    try:
        sys.exit(asyncio.run(serve(config_path)))
    except KeyboardInterrupt:
        print("\nServer stopped by user")
        sys.exit(0)


if __name__ == "__main__":
    run()
