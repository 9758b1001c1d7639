"""
Build lifecycle events.

The host build engine reports what happens through four events. They are
the only input of the span tree, so any host (a Python build tool, a
subprocess runner, a recorded event log) can be traced by translating its
callbacks into these models.

JSON form, one object per event:

    {"kind": "build_started", "build_name": "build", "task_names": ["test"]}
    {"kind": "task_started", "task_path": ":test", "task_type": "pytest"}
    {"kind": "task_finished", "task_path": ":test", "outcome": "FAILED",
     "failure_message": "Assertion failed"}
    {"kind": "build_finished"}

Every event accepts an optional ``timestamp_ns``; when absent the event is
stamped with the time it is processed.
"""

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class TaskOutcome(str, Enum):
    """Outcome of a single task execution."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    UP_TO_DATE = "UP_TO_DATE"
    SKIPPED = "SKIPPED"
    FROM_CACHE = "FROM_CACHE"

    @property
    def is_failure(self) -> bool:
        return self is TaskOutcome.FAILED


class _LifecycleEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp_ns: Optional[int] = Field(None, ge=0)


class BuildStarted(_LifecycleEvent):
    kind: Literal["build_started"] = "build_started"
    build_name: str = Field(..., min_length=1)
    task_names: List[str] = Field(default_factory=list)


class TaskStarted(_LifecycleEvent):
    kind: Literal["task_started"] = "task_started"
    task_path: str = Field(..., min_length=1)
    task_type: str = ""


class TaskFinished(_LifecycleEvent):
    kind: Literal["task_finished"] = "task_finished"
    task_path: str = Field(..., min_length=1)
    outcome: TaskOutcome = TaskOutcome.SUCCESS
    failure_message: Optional[str] = None


class BuildFinished(_LifecycleEvent):
    kind: Literal["build_finished"] = "build_finished"
    failure_message: Optional[str] = None


LifecycleEvent = Annotated[
    Union[BuildStarted, TaskStarted, TaskFinished, BuildFinished],
    Field(discriminator="kind"),
]

_event_adapter: TypeAdapter = TypeAdapter(LifecycleEvent)


def parse_event(data: Union[str, bytes, dict]) -> LifecycleEvent:
    """Parse one lifecycle event from a JSON document or a mapping.

    Raises:
        pydantic.ValidationError: if the payload is not a known event.
    """
    if isinstance(data, (str, bytes)):
        return _event_adapter.validate_json(data)
    return _event_adapter.validate_python(data)
