"""
Step executor: runs a single routine step and turns every outcome into a StepResult
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from .models import (
    ActionType, RoutineStep, StepResult, StepStatus,
    ExecutionContext, ExecutionOptions
)
from .intent import classify_notification_intent, NotificationIntent
from exceptions import CollaboratorError

logger = logging.getLogger(__name__)

DEFAULT_DESTINATION = "Travail"
DEFAULT_ORIGIN = "Position actuelle"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class StepExecutor:
    """Executes one step against the transport, the stores and the platform services"""

    def __init__(self, transport, task_store, profile_store, traffic_service, news_service,
                 classify_intent: Callable[..., NotificationIntent] = classify_notification_intent):
        self.transport = transport
        self.task_store = task_store
        self.profile_store = profile_store
        self.traffic = traffic_service
        self.news = news_service
        self.classify_intent = classify_intent

        self._handlers = {
            ActionType.DEVICE_COMMAND: self._device_command,
            ActionType.NOTIFICATION: self._notification,
            ActionType.TASK_CREATE: self._task_create,
            ActionType.MEDIA_PLAY: self._media_play,
        }

    async def execute_step(self, step: RoutineStep, options: ExecutionOptions,
                           context: Optional[ExecutionContext] = None) -> StepResult:
        """Never raises: unexpected errors become a failed result"""
        if options.dry_run:
            return self._result(step, StepStatus.SUCCESS, output={"info": "Dry run only"})

        handler = self._handlers.get(step.action_type)
        if handler is None:
            return self._result(step, StepStatus.SKIPPED, output={"info": "Action not implemented"})

        try:
            return await handler(step, context or ExecutionContext())
        except Exception as e:
            logger.error(f"Step {step.order} ({step.id}) raised: {e}")
            return self._result(step, StepStatus.FAILED, error=str(e) or "Unknown error")

    @staticmethod
    def _result(step: RoutineStep, status: StepStatus, output: Any = None,
                error: Optional[str] = None) -> StepResult:
        return StepResult(
            step_id=step.id,
            order=step.order,
            action_type=step.action_type,
            status=status,
            output=output,
            error=error,
        )

    # ================== DEVICE_COMMAND ==================

    async def _device_command(self, step: RoutineStep, context: ExecutionContext) -> StepResult:
        if not step.device_id:
            return self._result(step, StepStatus.SKIPPED, output={
                "info": "No device selected. This action needs a connected device.",
                "suggestion": "Connect a device from the devices page or change this step to a notification.",
            })

        try:
            response = await self.transport.dispatch_device_command(step.device_id, step.payload)
        except Exception as e:
            return self._result(step, StepStatus.FAILED, error=str(e) or "Device command failed")

        if response.status == "error":
            return self._result(step, StepStatus.FAILED, output=response.to_dict(),
                                error=response.detail or "Device command failed")
        return self._result(step, StepStatus.SUCCESS, output=response.to_dict())

    # ================== NOTIFICATION ==================

    async def _notification(self, step: RoutineStep, context: ExecutionContext) -> StepResult:
        payload = step.payload or {}
        message = payload.get("message") or "Notification"
        intent = self.classify_intent(message, payload.get("type"))

        output: Dict[str, Any] = {"message": message}
        profile = None
        if (intent.traffic or intent.departure) and context.user_id:
            profile = await self._load_profile(context.user_id)

        if intent.traffic:
            output.update(await self._traffic_output(payload, context, profile))
        if intent.news:
            output.update(await self._news_output(intent.news_query))
        if intent.departure and profile is not None and profile.has_work_location:
            output["requiresWeather"] = True
            output["weatherLocation"] = {
                "lat": profile.work_lat,
                "lng": profile.work_lng,
                "address": profile.work_address,
            }

        return self._result(step, StepStatus.SUCCESS, output=output)

    async def _load_profile(self, user_id: str):
        try:
            return await self.profile_store.get_user_profile(user_id)
        except Exception as e:
            logger.warning(f"User profile unavailable for {user_id}: {e}")
            return None

    async def _traffic_output(self, payload: Dict[str, Any], context: ExecutionContext,
                              profile) -> Dict[str, Any]:
        destination = payload.get("destination") or ""
        lat = lng = None
        if not destination and profile is not None:
            if profile.work_address:
                destination, lat, lng = profile.work_address, profile.work_lat, profile.work_lng
            elif profile.home_address:
                destination, lat, lng = profile.home_address, profile.home_lat, profile.home_lng
        destination = destination or DEFAULT_DESTINATION

        def placeholder(text: str) -> Dict[str, Any]:
            return {
                "type": "traffic",
                "requiresLocation": True,
                "data": {
                    "origin": DEFAULT_ORIGIN,
                    "destination": destination,
                    "message": text,
                    "routes": [],
                },
            }

        if not context.user_id:
            return placeholder("Fetching traffic information...")

        try:
            data = await self.traffic.get_route(destination, lat, lng)
        except CollaboratorError as e:
            logger.info(f"Traffic unavailable: {e}")
            return placeholder("Fetching traffic information...")
        except Exception as e:
            logger.warning(f"Traffic lookup failed: {e}")
            return placeholder("Could not retrieve traffic information")

        routes = data.get("routes") or []
        if routes:
            summary = f"Traffic to {destination}: {routes[0].get('duration') or 'N/A'}"
        else:
            summary = f"Traffic information for {destination}"

        return {
            "type": "traffic",
            "requiresLocation": True,
            "data": {
                "origin": data.get("origin") or DEFAULT_ORIGIN,
                "destination": data.get("destination") or destination,
                "userLocation": data.get("userLocation"),
                "destinationLocation": data.get("destinationLocation"),
                "routes": routes,
                "lastUpdate": data.get("lastUpdate") or _now_iso(),
                "message": summary,
            },
        }

    async def _news_output(self, query: str) -> Dict[str, Any]:
        try:
            data = await self.news.search(query)
        except CollaboratorError as e:
            logger.info(f"News unavailable: {e}")
            fallback = "News is unavailable right now"
        except Exception as e:
            logger.warning(f"News lookup failed: {e}")
            fallback = "Could not retrieve news"
        else:
            return {
                "type": "news",
                "data": {
                    "query": query,
                    "articles": data.get("articles") or [],
                    "totalResults": data.get("totalResults") or 0,
                    "sources": data.get("sources") or [],
                    "lastUpdate": data.get("lastUpdate") or _now_iso(),
                },
            }

        return {"type": "news", "data": {"query": query, "articles": [], "message": fallback}}

    # ================== TASK_CREATE ==================

    async def _task_create(self, step: RoutineStep, context: ExecutionContext) -> StepResult:
        title = ((step.payload or {}).get("title") or "").strip()
        if not title:
            return self._result(step, StepStatus.FAILED, error="Task title is required")
        if not context.user_id:
            return self._result(step, StepStatus.FAILED, error="A user is required to create a task")

        try:
            task = await self.task_store.create_task(context.user_id, title)
        except Exception as e:
            return self._result(step, StepStatus.FAILED, error=str(e) or "Task creation failed")

        return self._result(step, StepStatus.SUCCESS, output={"task": task})

    # ================== MEDIA_PLAY ==================

    async def _media_play(self, step: RoutineStep, context: ExecutionContext) -> StepResult:
        return self._result(step, StepStatus.SKIPPED, output={"info": "Media playback is not available yet"})
