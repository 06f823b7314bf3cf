"""
Stage 3: Compile individual workflow steps into executable units.

Each supported step type becomes a ``CompiledStep`` whose ``execute`` coroutine
receives the (possibly mapped) input and the run's WorkflowRuntimeContext.
Control flow steps are recognised and rejected; they never reach the pipeline.
"""

from __future__ import annotations

import json
import textwrap
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, List, Optional

from workflow_compiler.compiler.context import IdentifierAllocator
from workflow_compiler.compiler.mapping import StepMapper
from workflow_compiler.errors import CompileError, StepExecutionError
from workflow_compiler.runtime.collaborators import TableRequest
from workflow_compiler.runtime.context import WorkflowRuntimeContext
from workflow_compiler.schema.models import StepType, WorkflowStep
from workflow_compiler.schema.translator import SchemaValidator, translate_declared_schema

StepProcedure = Callable[[Any, WorkflowRuntimeContext], Awaitable[Any]]


@dataclass(frozen=True)
class CompiledStep:
    compiled_id: str
    step_id: str
    step_name: str
    kind: StepType
    input_validator: SchemaValidator
    output_validator: SchemaValidator
    execute: StepProcedure
    source: str
    mapper: Optional[StepMapper] = None
    toolkit_slug: Optional[str] = None
    # False for external tools; their catalog schemas describe the provider envelope.
    check_output: bool = True


def unsupported_control_flow(steps: Iterable[WorkflowStep]) -> Optional[str]:
    control_types: List[str] = [
        step.control_type.value if step.control_type else "unknown"
        for step in steps
        if step.type == StepType.control_flow
    ]
    if not control_types:
        return None
    return f"Control flow steps ({', '.join(control_types)}) not yet supported"


def compile_step(
    step: WorkflowStep,
    allocator: IdentifierAllocator,
    *,
    mapper: Optional[StepMapper] = None,
) -> CompiledStep:
    if step.type == StepType.control_flow:
        kind = step.control_type.value if step.control_type else "unknown"
        raise CompileError(f"Control flow steps ({kind}) not yet supported", step_id=step.id)

    compiled_id = allocator.allocate(step.name or step.id)
    input_validator = translate_declared_schema(step.input_schema)
    output_validator = translate_declared_schema(step.output_schema)

    if step.type == StepType.external_tool:
        execute, source = _compile_external_tool(step, compiled_id)
        check_output = False
    elif step.type == StepType.custom_code:
        execute, source = _compile_custom_code(step, compiled_id)
        check_output = True
    elif step.type in (StepType.table_query, StepType.table_write):
        execute, source = _compile_table_step(step, compiled_id)
        check_output = True
    else:  # pragma: no cover - StepType is closed
        raise CompileError(f"Unsupported step type '{step.type}'", step_id=step.id)

    return CompiledStep(
        compiled_id=compiled_id,
        step_id=step.id,
        step_name=step.display_name,
        kind=step.type,
        input_validator=input_validator,
        output_validator=output_validator,
        execute=execute,
        source=source,
        mapper=mapper,
        toolkit_slug=step.toolkit_slug if step.type == StepType.external_tool else None,
        check_output=check_output,
    )


# ----------------------------------------------------------------------------
# externalTool
# ----------------------------------------------------------------------------
def _compile_external_tool(step: WorkflowStep, compiled_id: str):
    if not step.tool_id or not step.toolkit_slug:
        raise CompileError(
            "external tool steps require both toolId and toolkitSlug", step_id=step.id
        )

    step_id = step.id
    tool_id = step.tool_id
    toolkit_slug = step.toolkit_slug

    async def execute(input_data: Any, context: WorkflowRuntimeContext) -> Any:
        if context.tool_executor is None:
            raise StepExecutionError("No tool executor configured for this run", step_id=step_id)
        account_id = context.connections.get(toolkit_slug)
        result = await context.tool_executor.execute(
            tool_id,
            arguments=dict(input_data or {}),
            authorized_account_id=account_id,
            caller_id=context.caller_id,
        )
        if not result.successful:
            raise StepExecutionError(result.error or "Tool execution failed", step_id=step_id)
        return result.data

    source = "\n".join(
        [
            f"async def {compiled_id}(input_data, context):",
            f"    account_id = context.connections.get({json.dumps(toolkit_slug)})",
            "    result = await context.tool_executor.execute(",
            f"        {json.dumps(tool_id)},",
            "        arguments=input_data,",
            "        authorized_account_id=account_id,",
            "        caller_id=context.caller_id,",
            "    )",
            "    if not result.successful:",
            '        raise StepExecutionError(result.error or "Tool execution failed")',
            "    return result.data",
        ]
    )
    return execute, source


# ----------------------------------------------------------------------------
# customCode
# ----------------------------------------------------------------------------
def _compile_custom_code(step: WorkflowStep, compiled_id: str):
    """
    The author's code becomes the verbatim body of
    ``async def <name>(input_data, context)``. It runs with the full privileges
    of the engine process; nothing here sandboxes or limits it.
    """

    body = step.code if step.code and step.code.strip() else "return input_data"
    source = f"async def {compiled_id}(input_data, context):\n{textwrap.indent(body, '    ')}"

    try:
        code_obj = compile(source, f"<workflow step {step.id}>", "exec")
    except SyntaxError as exc:
        raise CompileError(
            f"custom code has a syntax error on line {max((exc.lineno or 1) - 1, 1)}: {exc.msg}",
            step_id=step.id,
        ) from exc
    except (ValueError, RecursionError, MemoryError) as exc:
        # null bytes, or expressions nested too deeply for the bytecode compiler
        raise CompileError(
            f"custom code could not be compiled: {exc.__class__.__name__}: {exc}",
            step_id=step.id,
        ) from exc

    # Executing the module body only defines the function; no author code runs here.
    namespace: dict[str, Any] = {"__name__": f"workflow_step_{compiled_id}"}
    exec(code_obj, namespace)
    return namespace[compiled_id], source


# ----------------------------------------------------------------------------
# tableQuery / tableWrite
# ----------------------------------------------------------------------------
def _compile_table_step(step: WorkflowStep, compiled_id: str):
    step_id = step.id
    operation = "query" if step.type == StepType.table_query else "write"
    table_ref = step.table_ref
    table_config = dict(step.table_config or {})

    async def execute(input_data: Any, context: WorkflowRuntimeContext) -> Any:
        if context.records is None:
            return input_data
        return await context.records(
            TableRequest(
                operation=operation,
                step_id=step_id,
                table_ref=table_ref,
                table_config=table_config,
                input_data=input_data,
            )
        )

    source = "\n".join(
        [
            f"async def {compiled_id}(input_data, context):",
            "    if context.records is None:",
            "        return input_data",
            "    return await context.records(",
            f"        TableRequest(operation={json.dumps(operation)}, table_ref={json.dumps(table_ref)}, input_data=input_data)",
            "    )",
        ]
    )
    return execute, source
