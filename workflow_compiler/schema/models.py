"""
Pydantic models describing the workflow definition produced by the editor.

Field names follow the editor's camelCase JSON; Python code accesses the
snake_case attribute names.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


# -----------------------------
# JSON-ish values
# -----------------------------
JSONPrimitive = Union[str, int, float, bool, None]
JSONValue = Union[JSONPrimitive, Dict[str, Any], List[Any]]
JsonSchema = Dict[str, Any]  # draft-07/2020-12 style dict


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


def _empty_object_schema() -> JsonSchema:
    return {"type": "object", "properties": {}, "required": []}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# -----------------------------
# Steps
# -----------------------------
class StepType(str, Enum):
    external_tool = "externalTool"
    custom_code = "customCode"
    control_flow = "controlFlow"
    table_query = "tableQuery"
    table_write = "tableWrite"


# Step type names written by older editor builds.
LEGACY_STEP_TYPES: Dict[str, StepType] = {
    "composio": StepType.external_tool,
    "custom": StepType.custom_code,
    "control": StepType.control_flow,
    "query_table": StepType.table_query,
    "write_table": StepType.table_write,
}


class ControlType(str, Enum):
    branch = "branch"
    parallel = "parallel"
    loop = "loop"
    foreach = "foreach"
    wait = "wait"
    suspend = "suspend"


class Position(CamelModel):
    x: float = 0
    y: float = 0


class WorkflowStep(CamelModel):
    id: str = Field(min_length=1)
    type: StepType
    list_index: int
    name: str = ""
    description: Optional[str] = None
    position: Position = Field(default_factory=Position)

    # externalTool
    tool_id: Optional[str] = None
    toolkit_slug: Optional[str] = None
    toolkit_name: Optional[str] = None

    # customCode
    code: Optional[str] = None

    # controlFlow
    control_type: Optional[ControlType] = None
    control_config: Optional[Dict[str, Any]] = None

    # tableQuery / tableWrite
    table_ref: Optional[str] = None
    table_config: Optional[Dict[str, Any]] = None

    input_schema: JsonSchema = Field(default_factory=_empty_object_schema)
    output_schema: JsonSchema = Field(default_factory=_empty_object_schema)

    @field_validator("type", mode="before")
    @classmethod
    def _accept_legacy_type(cls, value: Any) -> Any:
        if isinstance(value, str) and value in LEGACY_STEP_TYPES:
            return LEGACY_STEP_TYPES[value]
        return value

    @property
    def display_name(self) -> str:
        return self.name or self.tool_id or self.id


# -----------------------------
# Bindings
# -----------------------------
class SourceType(str, Enum):
    step_output = "step-output"
    workflow_input = "workflow-input"
    literal = "literal"


class FieldBinding(CamelModel):
    source_type: SourceType
    source_step_id: Optional[str] = None
    source_path: Optional[str] = None
    workflow_input_name: Optional[str] = None
    literal_value: Optional[JSONValue] = None


class StepBindings(CamelModel):
    input_bindings: Dict[str, FieldBinding] = Field(default_factory=dict)


# -----------------------------
# Workflow level settings
# -----------------------------
class DataMapping(CamelModel):
    """Legacy visual mapping drawn on the canvas. Kept for round-tripping only."""

    id: str
    source_step_id: Optional[str] = None
    source_path: Optional[str] = None
    target_step_id: Optional[str] = None
    target_field: Optional[str] = None


class ControlFlowConfig(CamelModel):
    type: str = "sequential"
    order: List[str] = Field(default_factory=list)


class RuntimeInputType(str, Enum):
    string = "string"
    number = "number"
    boolean = "boolean"
    array = "array"
    object = "object"


class RuntimeInputConfig(CamelModel):
    key: str = Field(min_length=1)
    label: Optional[str] = None
    type: RuntimeInputType = RuntimeInputType.string
    required: bool = False
    default: Optional[JSONValue] = None
    description: Optional[str] = None


class WorkflowConfig(CamelModel):
    key: str
    value: Optional[JSONValue] = None
    description: Optional[str] = None


class WorkflowDefinition(CamelModel):
    id: str = Field(min_length=1)
    name: str
    description: str = ""

    input_schema: JsonSchema = Field(default_factory=_empty_object_schema)
    output_schema: JsonSchema = Field(default_factory=_empty_object_schema)

    steps: List[WorkflowStep] = Field(default_factory=list)
    mappings: List[DataMapping] = Field(default_factory=list)
    control_flow: ControlFlowConfig = Field(default_factory=ControlFlowConfig)

    connections: Dict[str, Optional[str]] = Field(default_factory=dict)
    runtime_inputs: List[RuntimeInputConfig] = Field(default_factory=list)
    configs: List[WorkflowConfig] = Field(default_factory=list)

    # Editor state; passed to the compiler when no explicit bindings are given.
    bindings: Optional[Dict[str, StepBindings]] = None

    created_at: str = Field(default_factory=_now_iso)
    last_modified: str = Field(default_factory=_now_iso)
    created_by: str = "user"
    published: bool = False

    @model_validator(mode="after")
    def _check_unique_step_ids(self) -> "WorkflowDefinition":
        seen: set[str] = set()
        duplicates: List[str] = []
        for step in self.steps:
            if step.id in seen:
                duplicates.append(step.id)
            seen.add(step.id)
        if duplicates:
            raise ValueError(f"Duplicate step ids: {', '.join(sorted(set(duplicates)))}")
        return self


def create_empty_workflow(workflow_id: str, name: str) -> WorkflowDefinition:
    now = _now_iso()
    return WorkflowDefinition(
        id=workflow_id,
        name=name,
        control_flow=ControlFlowConfig(type="sequential", order=[]),
        created_at=now,
        last_modified=now,
    )
