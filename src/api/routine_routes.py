"""
Routine API routes
"""

from fastapi import APIRouter, HTTPException, Header, Query
from pydantic import BaseModel
from typing import Any, Dict, Optional
import logging

from routines.models import ExecutionContext
from routines.payloads import RoutineDefinition
from exceptions import RoutineNotFoundError, PersistenceError

logger = logging.getLogger(__name__)


class ExecuteRoutineRequest(BaseModel):
    dry_run: bool = False
    metadata: Optional[Dict[str, Any]] = None


def _require_user(x_user_id: Optional[str]) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="X-User-Id header required")
    return x_user_id


def create_routine_routes(db_manager, engine):
    """Create routine authoring and execution routes"""
    router = APIRouter(prefix="/api/routines", tags=["routines"])

    @router.post("", status_code=201)
    async def create_routine(definition: RoutineDefinition, x_user_id: Optional[str] = Header(default=None)):
        """Save a routine; step payloads are validated against their action type"""
        user_id = _require_user(x_user_id)
        try:
            routine = await db_manager.create_routine(user_id, definition)
        except Exception as e:
            logger.error(f"Failed to save routine '{definition.name}': {e}")
            raise HTTPException(status_code=500, detail="Failed to save routine")
        return routine.to_dict()

    @router.post("/{routine_id}/execute", status_code=202)
    async def execute_routine(routine_id: str, request: Optional[ExecuteRoutineRequest] = None,
                              x_user_id: Optional[str] = Header(default=None)):
        """Run every step of a routine and return the recorded log"""
        user_id = _require_user(x_user_id)
        request = request or ExecuteRoutineRequest()
        context = ExecutionContext(user_id=user_id)

        try:
            result = await engine.execute_routine(
                routine_id, context, dry_run=request.dry_run, metadata=request.metadata
            )
        except RoutineNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except PersistenceError as e:
            logger.error(f"Routine {routine_id} ran but could not be recorded: {e}")
            raise HTTPException(status_code=500, detail=str(e))

        return result.to_dict()

    @router.get("/{routine_id}/logs")
    async def get_routine_logs(routine_id: str, limit: int = Query(default=20, ge=1, le=200),
                               x_user_id: Optional[str] = Header(default=None)):
        """Most recent run logs for a routine owned by the caller"""
        user_id = _require_user(x_user_id)
        try:
            routine = await db_manager.get_routine(routine_id, user_id)
            if routine is None:
                raise HTTPException(status_code=404, detail=f"Routine not found: {routine_id}")
            logs = await db_manager.get_routine_logs(routine_id, limit)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error getting logs for routine {routine_id}: {e}")
            raise HTTPException(status_code=500, detail=str(e))

        return {
            "routineId": routine_id,
            "logs": [log.to_dict() for log in logs],
            "count": len(logs)
        }

    return router
