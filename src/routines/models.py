"""
Routine data structures: routines, steps, step results and run logs
"""

from enum import Enum
from typing import List, Dict, Optional, Any, Union
from dataclasses import dataclass, field
from datetime import datetime


class TriggerType(Enum):
    MANUAL = "MANUAL"
    SCHEDULE = "SCHEDULE"
    VOICE = "VOICE"
    LOCATION = "LOCATION"
    SENSOR = "SENSOR"


class ActionType(Enum):
    DEVICE_COMMAND = "DEVICE_COMMAND"
    NOTIFICATION = "NOTIFICATION"
    TASK_CREATE = "TASK_CREATE"
    MEDIA_PLAY = "MEDIA_PLAY"
    CUSTOM = "CUSTOM"


class StepStatus(Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class RunStatus(Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


def parse_action_type(value: Union[str, ActionType]) -> Union[ActionType, str]:
    """Known action types become enum members; unknown ones stay raw strings"""
    if isinstance(value, ActionType):
        return value
    try:
        return ActionType(value)
    except ValueError:
        return value


def _enum_value(value) -> Any:
    return value.value if isinstance(value, Enum) else value


@dataclass
class RoutineStep:
    """One action inside a routine"""
    id: str
    order: int
    action_type: Union[ActionType, str]
    payload: Dict[str, Any] = field(default_factory=dict)
    device_id: Optional[str] = None
    delay_seconds: Optional[int] = None


@dataclass
class Routine:
    """User-authored ordered sequence of steps"""
    id: str
    user_id: str
    name: str
    trigger_type: TriggerType = TriggerType.MANUAL
    trigger_data: Dict[str, Any] = field(default_factory=dict)
    active: bool = True
    description: Optional[str] = None
    steps: List[RoutineStep] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "name": self.name,
            "description": self.description,
            "triggerType": self.trigger_type.value,
            "triggerData": self.trigger_data,
            "active": self.active,
            "steps": [{
                "id": s.id,
                "order": s.order,
                "actionType": _enum_value(s.action_type),
                "payload": s.payload,
                "deviceId": s.device_id,
                "delaySeconds": s.delay_seconds,
            } for s in self.steps],
        }


@dataclass
class StepResult:
    """Outcome of executing one step"""
    step_id: str
    order: int
    action_type: Union[ActionType, str]
    status: StepStatus
    output: Optional[Any] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "stepId": self.step_id,
            "order": self.order,
            "actionType": _enum_value(self.action_type),
            "status": self.status.value,
        }
        if self.output is not None:
            data["output"] = self.output
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StepResult':
        return cls(
            step_id=data["stepId"],
            order=data["order"],
            action_type=parse_action_type(data["actionType"]),
            status=StepStatus(data["status"]),
            output=data.get("output"),
            error=data.get("error"),
        )


def compute_run_status(results: List[StepResult]) -> RunStatus:
    """success iff every step succeeded; failed iff nothing succeeded and something failed"""
    statuses = [r.status for r in results]
    if all(s == StepStatus.SUCCESS for s in statuses):
        return RunStatus.SUCCESS
    if StepStatus.SUCCESS not in statuses and StepStatus.FAILED in statuses:
        return RunStatus.FAILED
    return RunStatus.PARTIAL


@dataclass
class RoutineLog:
    """Immutable record of one routine run"""
    id: str
    routine_id: str
    status: RunStatus
    results: List[StepResult]
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    def details(self) -> Dict[str, Any]:
        return {"results": [r.to_dict() for r in self.results], "metadata": self.metadata}

    @classmethod
    def from_details(cls, log_id: str, routine_id: str, status: str,
                     details: Dict[str, Any], created_at: Optional[datetime] = None) -> 'RoutineLog':
        details = details or {}
        return cls(
            id=log_id,
            routine_id=routine_id,
            status=RunStatus(status),
            results=[StepResult.from_dict(r) for r in details.get("results", [])],
            metadata=details.get("metadata"),
            created_at=created_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "routineId": self.routine_id,
            "status": self.status.value,
            "details": self.details(),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class ExecutionContext:
    """Who a routine runs for; passed explicitly into every step"""
    user_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ExecutionOptions:
    dry_run: bool = False
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class RoutineExecutionResult:
    routine: Routine
    log: RoutineLog
    results: List[StepResult]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "routine": self.routine.to_dict(),
            "log": self.log.to_dict(),
            "results": [r.to_dict() for r in self.results],
        }
