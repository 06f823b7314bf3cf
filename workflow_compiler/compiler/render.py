"""
Stage 5: Render a compiled pipeline as reviewable Python-style source.

The rendering is what gets persisted next to the definition for auditing. It
is never imported or executed; the in-memory CompiledPipeline is what runs.
Output depends only on the definition and bindings, so identical inputs render
byte-identical text.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, List

from workflow_compiler.schema.models import WorkflowDefinition

if TYPE_CHECKING:
    from workflow_compiler.compiler.compose import CompiledPipeline


def render_pipeline(definition: WorkflowDefinition, pipeline: "CompiledPipeline") -> str:
    sections: List[str] = [
        f"# Workflow: {_one_line(definition.name)} ({definition.id})",
        "# Compiled pipeline listing. Steps run top to bottom; a mapper runs",
        "# immediately before the step it feeds.",
        "",
        f"input_schema = {pipeline.input_validator.render()}",
        f"output_schema = {pipeline.output_validator.render()}",
    ]

    chain: List[str] = []
    for step in pipeline.steps:
        sections.append("")
        sections.append(
            f"# step {json.dumps(step.step_id)} ({step.kind.value}): {_one_line(step.step_name)}"
        )
        sections.append(f"{step.compiled_id}_input = {step.input_validator.render()}")
        sections.append(f"{step.compiled_id}_output = {step.output_validator.render()}")
        sections.append("")
        sections.append(step.source)
        mapper_name = "None"
        if step.mapper is not None:
            mapper_name = f"map_{step.compiled_id}"
            sections.append("")
            sections.append(step.mapper.render(mapper_name))
        chain.append(f"    ({json.dumps(step.step_id)}, {mapper_name}, {step.compiled_id}),")

    sections.append("")
    sections.append("pipeline = [")
    sections.extend(chain)
    sections.append("]")
    sections.append("")
    sections.append(
        "workflow_metadata = " + json.dumps(pipeline.metadata.as_dict(), indent=2, sort_keys=True)
    )
    return "\n".join(sections) + "\n"


def _one_line(text: str) -> str:
    return " ".join((text or "").split())
