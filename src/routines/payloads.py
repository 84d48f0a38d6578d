"""
Step payload schemas, one per action type, validated when a routine is saved
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .models import TriggerType


class DeviceCommandPayload(BaseModel):
    model_config = ConfigDict(extra='allow')

    action: str = "execute"


class NotificationPayload(BaseModel):
    model_config = ConfigDict(extra='allow')

    message: str = "Notification"
    type: Optional[Literal["traffic", "news", "weather"]] = None
    destination: Optional[str] = None


class TaskCreatePayload(BaseModel):
    model_config = ConfigDict(extra='allow')

    title: str = Field(min_length=1)


class MediaPlayPayload(BaseModel):
    model_config = ConfigDict(extra='allow')

    uri: Optional[str] = None
    query: Optional[str] = None


class CustomPayload(BaseModel):
    model_config = ConfigDict(extra='allow')


class _StepBase(BaseModel):
    device_id: Optional[str] = None
    delay_seconds: Optional[int] = Field(default=None, ge=0)


class DeviceCommandStep(_StepBase):
    action_type: Literal["DEVICE_COMMAND"]
    payload: DeviceCommandPayload = Field(default_factory=DeviceCommandPayload)


class NotificationStep(_StepBase):
    action_type: Literal["NOTIFICATION"]
    payload: NotificationPayload = Field(default_factory=NotificationPayload)


class TaskCreateStep(_StepBase):
    action_type: Literal["TASK_CREATE"]
    payload: TaskCreatePayload


class MediaPlayStep(_StepBase):
    action_type: Literal["MEDIA_PLAY"]
    payload: MediaPlayPayload = Field(default_factory=MediaPlayPayload)


class CustomStep(_StepBase):
    action_type: Literal["CUSTOM"]
    payload: CustomPayload = Field(default_factory=CustomPayload)


StepDefinition = Annotated[
    Union[DeviceCommandStep, NotificationStep, TaskCreateStep, MediaPlayStep, CustomStep],
    Field(discriminator="action_type"),
]


class RoutineDefinition(BaseModel):
    """Routine as submitted for saving"""
    name: str = Field(min_length=1)
    description: Optional[str] = None
    trigger_type: TriggerType = TriggerType.MANUAL
    trigger_data: Dict[str, Any] = Field(default_factory=dict)
    active: bool = True
    steps: List[StepDefinition] = Field(default_factory=list)

