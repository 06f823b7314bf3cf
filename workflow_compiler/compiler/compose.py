"""
Stage 4: Compose compiled steps and mappers into one linear pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from shared.logger import get_logger
from workflow_compiler.compiler.context import CompilerContext, IdentifierAllocator
from workflow_compiler.compiler.mapping import compile_step_mapper
from workflow_compiler.compiler.render import render_pipeline
from workflow_compiler.compiler.steps import CompiledStep, compile_step, unsupported_control_flow
from workflow_compiler.errors import CompileError
from workflow_compiler.runtime.context import WorkflowRuntimeContext
from workflow_compiler.runtime.input_validation import coerce_inputs
from workflow_compiler.schema.input_schema import effective_input_schema
from workflow_compiler.schema.models import (
    RuntimeInputConfig,
    StepBindings,
    StepType,
    WorkflowDefinition,
)
from workflow_compiler.schema.translator import (
    SchemaValidator,
    translate_declared_schema,
    translate_schema,
)

logger = get_logger("workflow_compiler.compiler.compose")


@dataclass(frozen=True)
class PipelineMetadata:
    required_connections: Tuple[str, ...]
    step_count: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "requiredConnections": list(self.required_connections),
            "stepCount": self.step_count,
        }


@dataclass(frozen=True)
class CompiledPipeline:
    """
    Immutable executable artifact. Safe to share between concurrent runs; all
    per-run state lives in the WorkflowRuntimeContext passed to each call.
    """

    workflow_id: str
    workflow_name: str
    steps: Tuple[CompiledStep, ...]
    input_validator: SchemaValidator
    output_validator: SchemaValidator
    metadata: PipelineMetadata
    runtime_inputs: Tuple[RuntimeInputConfig, ...] = ()

    def prepare_input(self, input_data: Mapping[str, Any] | None) -> Dict[str, Any]:
        coerced = coerce_inputs(self.runtime_inputs, input_data)
        self.input_validator.validate(coerced, prefix="input")
        return coerced

    async def run_step(
        self, step: CompiledStep, value: Any, context: WorkflowRuntimeContext
    ) -> Any:
        if step.mapper is not None:
            value = step.mapper(context)
        step.input_validator.validate(value, prefix=f"{step.step_id}.input")
        output = await step.execute(value, context)
        if step.check_output:
            step.output_validator.validate(output, prefix=f"{step.step_id}.output")
        context.step_results[step.step_id] = output
        return output

    def finish(self, value: Any) -> Any:
        return self.output_validator.validate(value, prefix="output")

    async def run(self, input_data: Mapping[str, Any] | None, context: WorkflowRuntimeContext) -> Any:
        """
        Run every step without progress reporting. The execution engine drives
        the same primitives step by step to stream events.
        """

        value: Any = self.prepare_input(input_data)
        context.init_data = value
        for step in self.steps:
            value = await self.run_step(step, value, context)
        return self.finish(value)


@dataclass(frozen=True)
class CompilationResult:
    pipeline: Optional[CompiledPipeline]
    metadata: PipelineMetadata
    errors: Tuple[str, ...] = ()
    source: str = ""
    step_errors: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


def compose_pipeline(
    definition: WorkflowDefinition,
    bindings: Mapping[str, StepBindings],
    context: CompilerContext,
) -> CompilationResult:
    errors: List[str] = []
    step_errors: Dict[str, str] = {}

    ordered = sorted(definition.steps, key=lambda step: step.list_index)
    steps_by_id = {step.id: step for step in ordered}

    control_error = unsupported_control_flow(ordered)
    if control_error:
        errors.append(control_error)

    allocator = IdentifierAllocator()
    compiled: List[CompiledStep] = []
    for step in ordered:
        if step.type == StepType.control_flow:
            continue
        try:
            mapper = compile_step_mapper(step, bindings.get(step.id), steps_by_id)
            compiled.append(compile_step(step, allocator, mapper=mapper))
        except CompileError as exc:
            message = f'Failed to compile step "{step.display_name}": {exc}'
            errors.append(message)
            step_errors[step.id] = str(exc)

    required = sorted(
        {
            step.toolkit_slug
            for step in compiled
            if step.kind == StepType.external_tool
            and step.toolkit_slug
            and context.requires_connection(step.toolkit_slug)
        }
    )
    metadata = PipelineMetadata(
        required_connections=tuple(required),
        step_count=len(definition.steps),
    )

    pipeline = CompiledPipeline(
        workflow_id=definition.id,
        workflow_name=definition.name,
        steps=tuple(compiled),
        input_validator=translate_schema(effective_input_schema(definition)),
        output_validator=translate_declared_schema(definition.output_schema),
        metadata=metadata,
        runtime_inputs=tuple(definition.runtime_inputs),
    )

    if errors:
        logger.warning(
            "Workflow %s compiled with %d error(s): %s", definition.id, len(errors), "; ".join(errors)
        )
    else:
        logger.info("Compiled workflow %s (%d steps)", definition.id, len(compiled))

    return CompilationResult(
        pipeline=pipeline,
        metadata=metadata,
        errors=tuple(errors),
        source=render_pipeline(definition, pipeline),
        step_errors=step_errors,
    )


__all__ = [
    "CompilationResult",
    "CompiledPipeline",
    "PipelineMetadata",
    "compose_pipeline",
]
