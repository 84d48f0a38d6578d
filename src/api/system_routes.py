"""
System health and monitoring API routes
"""

from fastapi import APIRouter, HTTPException
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)


def create_system_routes(db_manager, config, platform_services=None):
    """Create system monitoring routes"""
    router = APIRouter(prefix="/api", tags=["system"])

    @router.get("/system/health")
    async def system_health():
        """System health check"""
        try:
            database_ok = await db_manager.health_check()

            services = {
                service.name: service.get_status()
                for service in (platform_services or [])
            }

            return {
                "status": "healthy" if database_ok else "degraded",
                "database": "connected" if database_ok else "unavailable",
                "services": services,
                "routines": {
                    "enforce_delays": config['routines']['enforce_delays']
                },
                "timestamp": datetime.now(timezone.utc).isoformat()
            }

        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return {
                "status": "unhealthy",
                "error": str(e),
                "timestamp": datetime.now(timezone.utc).isoformat()
            }

    @router.get("/system/services/{name}")
    async def platform_service_status(name: str):
        """Request counters and last error for one platform service"""
        for service in platform_services or []:
            if service.name == name:
                return {"name": name, **service.get_status()}
        raise HTTPException(status_code=404, detail=f"Unknown platform service: {name}")

    return router
