"""
Progress events streamed to the caller while a workflow runs.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class BaseStreamEvent(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    timestamp: str = Field(default_factory=_timestamp)

    @property
    def terminal(self) -> bool:
        return False


class StepStartEvent(BaseStreamEvent):
    type: Literal["step-start"] = "step-start"
    step_id: str
    step_name: str


class StepCompleteEvent(BaseStreamEvent):
    type: Literal["step-complete"] = "step-complete"
    step_id: str
    step_name: str
    output: Any = None
    duration_ms: int


class StepErrorEvent(BaseStreamEvent):
    type: Literal["step-error"] = "step-error"
    step_id: str
    step_name: str
    error: str
    duration_ms: int


class WorkflowCompleteEvent(BaseStreamEvent):
    type: Literal["workflow-complete"] = "workflow-complete"
    output: Any = None
    total_duration_ms: int

    @property
    def terminal(self) -> bool:
        return True


class WorkflowErrorEvent(BaseStreamEvent):
    type: Literal["workflow-error"] = "workflow-error"
    error: str
    failed_step_id: Optional[str] = None
    missing_connections: Optional[List[str]] = None
    total_duration_ms: int

    @property
    def terminal(self) -> bool:
        return True


ExecutionEvent = Annotated[
    Union[
        StepStartEvent,
        StepCompleteEvent,
        StepErrorEvent,
        WorkflowCompleteEvent,
        WorkflowErrorEvent,
    ],
    Field(discriminator="type"),
]

_event_adapter: TypeAdapter[ExecutionEvent] = TypeAdapter(ExecutionEvent)


def parse_event(payload: Any) -> ExecutionEvent:
    if isinstance(payload, (str, bytes)):
        return _event_adapter.validate_json(payload)
    return _event_adapter.validate_python(payload)


def event_payload(event: BaseStreamEvent) -> dict[str, Any]:
    payload = event.model_dump(by_alias=True)
    for key in ("failedStepId", "missingConnections"):
        if key in payload and payload[key] is None:
            payload.pop(key)
    return payload


def format_sse_event(event: BaseStreamEvent) -> str:
    """Format an event as a Server-Sent Events ``data:`` frame."""
    try:
        json_data = json.dumps(event_payload(event), default=str)
    except (TypeError, ValueError) as exc:
        json_data = json.dumps(
            {
                "type": "workflow-error",
                "error": f"Serialization error: {exc}",
                "totalDurationMs": 0,
                "timestamp": _timestamp(),
            }
        )
    return f"data: {json_data}\n\n"
