"""
Pacing between routine steps
"""

import asyncio
import logging
from typing import Awaitable, Callable

from .models import RoutineStep, ExecutionContext

logger = logging.getLogger(__name__)


class StepScheduler:
    """Called by the engine before any step that declares delay_seconds"""

    async def before_step(self, step: RoutineStep, context: ExecutionContext) -> None:
        raise NotImplementedError


class ImmediateScheduler(StepScheduler):
    """Runs steps back to back; declared delays are logged and ignored"""

    async def before_step(self, step: RoutineStep, context: ExecutionContext) -> None:
        logger.info(f"Step {step.order} declares a {step.delay_seconds}s delay - not enforced")


class SleepScheduler(StepScheduler):
    """Holds the run in-process for the declared delay, capped at max_delay_seconds"""

    def __init__(self, max_delay_seconds: float = 300,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.max_delay_seconds = max_delay_seconds
        self._sleep = sleep

    async def before_step(self, step: RoutineStep, context: ExecutionContext) -> None:
        delay = min(float(step.delay_seconds or 0), self.max_delay_seconds)
        if delay <= 0:
            return
        if delay < (step.delay_seconds or 0):
            logger.warning(f"Step {step.order} delay capped at {delay:.0f}s (declared {step.delay_seconds}s)")
        logger.debug(f"Waiting {delay:.0f}s before step {step.order}")
        await self._sleep(delay)


def create_scheduler(config: dict) -> StepScheduler:
    if config.get('enforce_delays', False):
        return SleepScheduler(config.get('max_delay_seconds', 300))
    return ImmediateScheduler()
