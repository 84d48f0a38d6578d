"""
Routine engine: loads a routine, runs every step in order and records one run log
"""

import time
import logging
from typing import Any, Dict, List, Optional

from .models import (
    ExecutionContext, ExecutionOptions, RoutineExecutionResult,
    StepResult, compute_run_status
)
from .executor import StepExecutor
from .scheduler import StepScheduler, ImmediateScheduler
from exceptions import RoutineNotFoundError, PersistenceError

logger = logging.getLogger(__name__)


class RoutineEngine:
    """
    Sequential routine runner.
    Only RoutineNotFoundError and PersistenceError reach the caller; every
    step outcome, including unexpected exceptions, is captured in its result.
    """

    def __init__(self, routine_store, executor: StepExecutor,
                 scheduler: Optional[StepScheduler] = None):
        self.store = routine_store
        self.executor = executor
        self.scheduler = scheduler or ImmediateScheduler()

    async def execute_routine(self, routine_id: str, context: ExecutionContext,
                              dry_run: bool = False,
                              metadata: Optional[Dict[str, Any]] = None) -> RoutineExecutionResult:
        start_time = time.time()

        try:
            routine = await self.store.get_routine(routine_id, context.user_id)
        except Exception as e:
            raise PersistenceError(f"Failed to load routine {routine_id}: {e}") from e

        if routine is None:
            raise RoutineNotFoundError(routine_id)

        logger.info(f"[ROUTINE] Running '{routine.name}' ({routine.id}): "
                    f"{len(routine.steps)} steps{' (dry run)' if dry_run else ''}")

        options = ExecutionOptions(dry_run=dry_run, metadata=metadata)
        results: List[StepResult] = []

        for step in sorted(routine.steps, key=lambda s: s.order):
            if not dry_run and step.delay_seconds and step.delay_seconds > 0:
                try:
                    await self.scheduler.before_step(step, context)
                except Exception as e:
                    logger.warning(f"Scheduler error before step {step.order}: {e}")

            result = await self.executor.execute_step(step, options, context)
            results.append(result)
            logger.debug(f"Step {step.order} ({result.to_dict()['actionType']}): {result.status.value}")

        status = compute_run_status(results)
        details = {"results": [r.to_dict() for r in results], "metadata": metadata}

        try:
            log = await self.store.create_routine_log(routine.id, status, details)
        except Exception as e:
            logger.error(f"Failed to persist run log for routine {routine.id}: {e}")
            raise PersistenceError(f"Failed to persist routine log: {e}") from e

        logger.info(f"[ROUTINE] '{routine.name}' finished: {status.value} in {time.time() - start_time:.2f}s")
        return RoutineExecutionResult(routine=routine, log=log, results=results)
