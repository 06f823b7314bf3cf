"""
Derive a workflow's top-level input schema from the runtime inputs declared in
the editor's inputs panel.
"""

from __future__ import annotations

from typing import Any, Dict, List, Sequence

from workflow_compiler.schema.models import JsonSchema, RuntimeInputConfig, WorkflowDefinition


def input_schema_from_runtime_inputs(runtime_inputs: Sequence[RuntimeInputConfig]) -> JsonSchema:
    properties: Dict[str, Any] = {}
    required: List[str] = []

    for runtime_input in runtime_inputs:
        property_schema: Dict[str, Any] = {"type": runtime_input.type.value}
        if runtime_input.description:
            property_schema["description"] = runtime_input.description
        if runtime_input.default is not None:
            property_schema["default"] = runtime_input.default
        properties[runtime_input.key] = property_schema
        if runtime_input.required:
            required.append(runtime_input.key)

    return {"type": "object", "properties": properties, "required": required}


def effective_input_schema(definition: WorkflowDefinition) -> JsonSchema:
    """
    Runtime inputs win over the stored inputSchema; the editor keeps the two in
    sync but older definitions only carry one of them.
    """

    if definition.runtime_inputs:
        return input_schema_from_runtime_inputs(definition.runtime_inputs)
    return definition.input_schema
