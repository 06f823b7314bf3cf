"""
Public entrypoint for compiling workflow definitions into executable pipelines.
"""

from __future__ import annotations

from typing import Any, Optional

from workflow_compiler.compiler.compose import (
    CompilationResult,
    CompiledPipeline,
    PipelineMetadata,
    compose_pipeline,
)
from workflow_compiler.compiler.context import CompilerContext
from workflow_compiler.compiler.parse import parse_step_bindings, parse_workflow_definition


def compile_workflow(
    definition: Any,
    bindings: Any = None,
    *,
    context: Optional[CompilerContext] = None,
) -> CompilationResult:
    """
    Compile a workflow definition plus its step bindings.

    Raises ValidationPhaseError when the definition itself is malformed. Problems
    with individual steps never raise; they are reported in ``result.errors``
    and the offending steps are left out of the pipeline.
    """

    workflow = parse_workflow_definition(definition)
    if bindings is None:
        bindings = workflow.bindings or {}
    step_bindings = parse_step_bindings(bindings)
    return compose_pipeline(workflow, step_bindings, context or CompilerContext.from_config())


__all__ = [
    "CompilationResult",
    "CompiledPipeline",
    "CompilerContext",
    "PipelineMetadata",
    "compile_workflow",
]
