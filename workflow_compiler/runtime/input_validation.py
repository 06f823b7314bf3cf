from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Sequence

from workflow_compiler.errors import WorkflowCompilerError
from workflow_compiler.schema.models import RuntimeInputConfig, RuntimeInputType


def coerce_inputs(
    runtime_inputs: Sequence[RuntimeInputConfig], provided_inputs: Mapping[str, Any] | None
) -> Dict[str, Any]:
    """
    Validate and coerce run input against the workflow's declared runtime inputs.

    - Applies defaults declared on each RuntimeInputConfig.
    - Attempts type coercion for common literal formats (strings for numbers, etc.).
    - Raises WorkflowCompilerError if a required input is missing or cannot be coerced.
    """

    incoming: Dict[str, Any] = dict(provided_inputs or {})
    coerced: Dict[str, Any] = {}
    errors: list[str] = []

    for definition in runtime_inputs:
        name = definition.key
        if name not in incoming:
            if definition.default is not None:
                try:
                    coerced[name] = _coerce_value(definition.default, definition)
                except WorkflowCompilerError as exc:
                    errors.append(str(exc))
                continue
            if definition.required:
                errors.append(f"Input '{name}' is required but was not provided")
            continue

        try:
            value = _coerce_value(incoming[name], definition)
        except WorkflowCompilerError as exc:
            errors.append(str(exc))
            continue
        if value is not None:
            coerced[name] = value

    if errors:
        raise WorkflowCompilerError("; ".join(errors))

    # Undeclared inputs pass through untouched.
    declared = {definition.key for definition in runtime_inputs}
    for extra_name, extra_value in incoming.items():
        if extra_name not in declared:
            coerced[extra_name] = extra_value

    return coerced


def _coerce_value(value: Any, definition: RuntimeInputConfig) -> Any:
    name = definition.key
    if value is None:
        if definition.required:
            raise _input_error(name, "cannot be null")
        return None

    expected_type = definition.type

    if expected_type == RuntimeInputType.string:
        if isinstance(value, str):
            return value
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return str(value)
        raise _input_error(name, "must be a string-compatible value")

    if expected_type == RuntimeInputType.number:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            value_str = value.strip()
            if value_str == "":
                raise _input_error(name, "must be a valid number")
            try:
                parsed = float(value_str)
            except ValueError:
                raise _input_error(name, f"'{value}' is not a valid number")
            return int(parsed) if parsed.is_integer() and "." not in value_str else parsed
        raise _input_error(name, "must be a number")

    if expected_type == RuntimeInputType.boolean:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in {"true", "1", "yes", "on"}:
                return True
            if lowered in {"false", "0", "no", "off"}:
                return False
            raise _input_error(name, f"'{value}' is not a valid boolean literal")
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        raise _input_error(name, "must be a boolean")

    if expected_type == RuntimeInputType.object:
        if isinstance(value, dict):
            return value
        if isinstance(value, str):
            return _parse_json_literal(value, dict, name)
        raise _input_error(name, "must be an object/dict")

    if expected_type == RuntimeInputType.array:
        if isinstance(value, list):
            return value
        if isinstance(value, tuple):
            return list(value)
        if isinstance(value, str):
            return _parse_json_literal(value, list, name)
        raise _input_error(name, "must be an array/list")

    return value


def _parse_json_literal(value: str, expected_type: type, input_name: str) -> Any:
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as exc:
        raise _input_error(input_name, f"invalid JSON literal: {exc.msg}") from exc

    if not isinstance(parsed, expected_type):
        type_name = "object" if expected_type is dict else "array"
        raise _input_error(input_name, f"JSON literal must decode to a {type_name}")
    return parsed


def _input_error(input_name: str, detail: str) -> WorkflowCompilerError:
    return WorkflowCompilerError(f"Input '{input_name}' {detail}")
