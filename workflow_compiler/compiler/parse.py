"""
Stage 1: Parse JSON into a strongly typed WorkflowDefinition and step bindings.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping

from pydantic import ValidationError

from workflow_compiler.errors import ValidationPhaseError
from workflow_compiler.schema.models import StepBindings, WorkflowDefinition


def _load_json(payload: Any, what: str) -> Any:
    if isinstance(payload, (str, bytes)):
        try:
            return json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ValidationPhaseError(f"Invalid {what} JSON payload: {exc}") from exc
    return payload


def parse_workflow_definition(payload: Any) -> WorkflowDefinition:
    """
    Accepts either a JSON string, a mapping or an existing WorkflowDefinition and
    returns a validated WorkflowDefinition instance.
    """

    if isinstance(payload, WorkflowDefinition):
        return payload

    data = _load_json(payload, "workflow")
    if not isinstance(data, Mapping):
        raise ValidationPhaseError(
            f"Unsupported payload type {type(data).__name__}; expected str or Mapping"
        )

    try:
        return WorkflowDefinition.model_validate(data)
    except ValidationError as exc:
        raise ValidationPhaseError(f"Workflow definition validation failed: {exc}") from exc


def parse_step_bindings(payload: Any) -> Dict[str, StepBindings]:
    """
    Bindings arrive keyed by step id: ``{stepId: {"inputBindings": {...}}}``.
    """

    if payload is None:
        return {}

    data = _load_json(payload, "bindings")
    if not isinstance(data, Mapping):
        raise ValidationPhaseError(
            f"Unsupported bindings type {type(data).__name__}; expected Mapping"
        )

    parsed: Dict[str, StepBindings] = {}
    for step_id, entry in data.items():
        if isinstance(entry, StepBindings):
            parsed[step_id] = entry
            continue
        try:
            parsed[step_id] = StepBindings.model_validate(entry)
        except ValidationError as exc:
            raise ValidationPhaseError(f"Bindings for step '{step_id}' are invalid: {exc}") from exc
    return parsed
