from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import Field

from workflow_compiler.schema.models import CamelModel, WorkflowDefinition


class PipelineMetadataModel(CamelModel):
    required_connections: List[str] = Field(default_factory=list)
    step_count: int = 0


class SaveWorkflowResponse(CamelModel):
    workflow: WorkflowDefinition
    metadata: PipelineMetadataModel
    warnings: List[str] = Field(default_factory=list)


class WorkflowResponse(CamelModel):
    workflow: WorkflowDefinition
    metadata: Optional[PipelineMetadataModel] = None
    errors: List[str] = Field(default_factory=list)
    source: Optional[str] = None


class WorkflowSummary(CamelModel):
    id: str
    name: str
    step_count: int
    last_modified: str


class WorkflowListResponse(CamelModel):
    items: List[WorkflowSummary]


class ExecuteRequest(CamelModel):
    input_data: Dict[str, Any] = Field(default_factory=dict)


class ExecutionInfoResponse(CamelModel):
    workflow_id: str
    can_execute: bool
    errors: List[str] = Field(default_factory=list)
    missing_connections: List[str] = Field(default_factory=list)
    resolved_connections: Dict[str, str] = Field(default_factory=dict)


class ExecutionBlockedResponse(CamelModel):
    message: str
    errors: List[str] = Field(default_factory=list)
    missing_connections: List[str] = Field(default_factory=list)
