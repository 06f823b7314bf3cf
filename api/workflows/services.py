from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Mapping, Optional

from fastapi import HTTPException

from api.workflows import models as api_models
from api.workflows.store import StoredWorkflow, WorkflowStore
from shared.composio import ComposioConnectionLister, ComposioToolExecutor
from shared.logger import get_logger
from workflow_compiler import CompilationResult, CompilerContext, PipelineMetadata, compile_workflow
from workflow_compiler.compiler.compose import CompiledPipeline
from workflow_compiler.compiler.parse import parse_workflow_definition
from workflow_compiler.errors import ValidationPhaseError
from workflow_compiler.registry.pipeline_registry import PipelineRegistry, RegisteredPipeline
from workflow_compiler.runtime.collaborators import ConnectionLister, ToolExecutor
from workflow_compiler.runtime.connections import resolve_connections
from workflow_compiler.runtime.events import format_sse_event
from workflow_compiler.runtime.execution import ExecutionEngine
from workflow_compiler.schema.models import WorkflowDefinition

logger = get_logger("api.workflows.services")


@dataclass
class WorkflowServices:
    """Everything the workflow routes need, held on ``app.state.workflows``."""

    tool_executor: ToolExecutor
    connection_lister: ConnectionLister
    store: WorkflowStore = field(default_factory=WorkflowStore)
    registry: PipelineRegistry = field(default_factory=PipelineRegistry)
    compiler_context: Optional[CompilerContext] = None
    engine: ExecutionEngine = field(init=False)

    def __post_init__(self) -> None:
        self.engine = ExecutionEngine(self.tool_executor, self.connection_lister)
        if self.compiler_context is None:
            self.compiler_context = CompilerContext.from_config()


class ExecutionBlocked(Exception):
    """Raised before a run starts; rendered as HTTP 400 by the router."""

    def __init__(self, body: api_models.ExecutionBlockedResponse) -> None:
        super().__init__(body.message)
        self.body = body


def build_default_services() -> WorkflowServices:
    return WorkflowServices(
        tool_executor=ComposioToolExecutor(),
        connection_lister=ComposioConnectionLister(),
    )


def _metadata_model(entry: RegisteredPipeline) -> api_models.PipelineMetadataModel:
    return api_models.PipelineMetadataModel.model_validate(entry.result.metadata.as_dict())


def _get_owned(services: WorkflowServices, caller_id: str, workflow_id: str) -> StoredWorkflow:
    record = services.store.get(workflow_id)
    if record is None or record.owner_id != caller_id:
        raise HTTPException(status_code=404, detail=f"Workflow '{workflow_id}' not found")
    return record


def _compile_and_register(services: WorkflowServices, definition: WorkflowDefinition) -> RegisteredPipeline:
    """
    Compile ``definition`` and register the result. A crash inside code
    generation is recorded as a compile error with no executable artifact, so
    the stored definition stays usable for editing.
    """

    try:
        result = compile_workflow(definition, context=services.compiler_context)
    except Exception as exc:
        logger.exception("Code generation failed for workflow %s", definition.id)
        result = CompilationResult(
            pipeline=None,
            metadata=PipelineMetadata(required_connections=(), step_count=len(definition.steps)),
            errors=(f"Code generation failed: {exc.__class__.__name__}: {exc}",),
        )
    return services.registry.register(definition.id, result)


def save_workflow(
    services: WorkflowServices,
    caller_id: str,
    workflow_id: str,
    payload: Mapping[str, Any],
) -> api_models.SaveWorkflowResponse:
    """
    Validate, compile and register a workflow. Compile problems never block a
    save; they come back as warnings.
    """

    existing = services.store.get(workflow_id)
    if existing is not None and existing.owner_id != caller_id:
        raise HTTPException(status_code=404, detail=f"Workflow '{workflow_id}' not found")

    data = dict(payload)
    body_id = data.get("id")
    if body_id is not None and body_id != workflow_id:
        raise HTTPException(
            status_code=422,
            detail=f"Workflow id '{body_id}' does not match path id '{workflow_id}'",
        )
    data["id"] = workflow_id

    try:
        definition = parse_workflow_definition(data)
    except ValidationPhaseError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    services.store.save(caller_id, definition)
    entry = _compile_and_register(services, definition)
    result = entry.result
    logger.info(
        "Saved workflow %s for caller %s with %d warning(s)", workflow_id, caller_id, len(result.errors)
    )
    return api_models.SaveWorkflowResponse(
        workflow=definition,
        metadata=_metadata_model(entry),
        warnings=list(result.errors),
    )


def get_workflow(services: WorkflowServices, caller_id: str, workflow_id: str) -> api_models.WorkflowResponse:
    record = _get_owned(services, caller_id, workflow_id)
    entry = services.registry.maybe_get(workflow_id)
    return api_models.WorkflowResponse(
        workflow=record.definition,
        metadata=_metadata_model(entry) if entry else None,
        errors=list(entry.errors) if entry else [],
        source=entry.result.source if entry else None,
    )


def list_workflows(services: WorkflowServices, caller_id: str) -> api_models.WorkflowListResponse:
    items = [
        api_models.WorkflowSummary(
            id=record.definition.id,
            name=record.definition.name,
            step_count=len(record.definition.steps),
            last_modified=record.definition.last_modified,
        )
        for record in services.store.list_for(caller_id)
    ]
    items.sort(key=lambda item: item.id)
    return api_models.WorkflowListResponse(items=items)


def delete_workflow(services: WorkflowServices, caller_id: str, workflow_id: str) -> None:
    _get_owned(services, caller_id, workflow_id)
    services.store.delete(workflow_id)
    services.registry.invalidate(workflow_id)
    logger.info("Deleted workflow %s", workflow_id)


def _registered_pipeline(services: WorkflowServices, caller_id: str, workflow_id: str) -> RegisteredPipeline:
    record = _get_owned(services, caller_id, workflow_id)
    entry = services.registry.maybe_get(workflow_id)
    if entry is None:
        # Definitions saved before the registry was populated are compiled on demand
        entry = _compile_and_register(services, record.definition)
    return entry


async def get_execution_info(
    services: WorkflowServices, caller_id: str, workflow_id: str
) -> api_models.ExecutionInfoResponse:
    entry = _registered_pipeline(services, caller_id, workflow_id)
    resolution = await resolve_connections(
        entry.result.metadata.required_connections, caller_id, services.connection_lister
    )
    errors = list(entry.errors) + list(resolution.errors)
    return api_models.ExecutionInfoResponse(
        workflow_id=workflow_id,
        can_execute=not errors,
        errors=errors,
        missing_connections=resolution.missing_connections,
        resolved_connections=resolution.bindings,
    )


async def prepare_execution(
    services: WorkflowServices, caller_id: str, workflow_id: str
) -> CompiledPipeline:
    entry = _registered_pipeline(services, caller_id, workflow_id)
    if entry.errors or entry.pipeline is None:
        raise ExecutionBlocked(
            api_models.ExecutionBlockedResponse(
                message="Workflow has compilation errors",
                errors=list(entry.errors),
            )
        )

    resolution = await resolve_connections(
        entry.result.metadata.required_connections, caller_id, services.connection_lister
    )
    if not resolution.valid:
        raise ExecutionBlocked(
            api_models.ExecutionBlockedResponse(
                message="Workflow validation failed",
                errors=resolution.errors,
                missing_connections=resolution.missing_connections,
            )
        )
    return entry.pipeline


async def stream_execution(
    services: WorkflowServices,
    pipeline: CompiledPipeline,
    input_data: Dict[str, Any],
    caller_id: str,
) -> AsyncIterator[str]:
    async for event in services.engine.stream(pipeline, input_data, caller_id):
        yield format_sse_event(event)
