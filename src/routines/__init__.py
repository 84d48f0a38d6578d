"""
Routine automation: models, step execution and the sequential engine
"""

from .models import (
    TriggerType, ActionType, StepStatus, RunStatus,
    Routine, RoutineStep, StepResult, RoutineLog,
    ExecutionContext, ExecutionOptions, RoutineExecutionResult, compute_run_status
)
from .payloads import RoutineDefinition
from .intent import classify_notification_intent, NotificationIntent
from .scheduler import StepScheduler, ImmediateScheduler, SleepScheduler, create_scheduler
from .transport import DeviceTransport, DeviceCommandResponse
from .executor import StepExecutor
from .engine import RoutineEngine

__all__ = [
    'TriggerType', 'ActionType', 'StepStatus', 'RunStatus',
    'Routine', 'RoutineStep', 'StepResult', 'RoutineLog',
    'ExecutionContext', 'ExecutionOptions', 'RoutineExecutionResult', 'compute_run_status',
    'RoutineDefinition',
    'classify_notification_intent', 'NotificationIntent',
    'StepScheduler', 'ImmediateScheduler', 'SleepScheduler', 'create_scheduler',
    'DeviceTransport', 'DeviceCommandResponse',
    'StepExecutor', 'RoutineEngine',
]
