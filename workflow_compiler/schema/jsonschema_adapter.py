from __future__ import annotations

import json
from threading import Lock
from typing import Any, Dict, List

from jsonschema import ValidationError
from jsonschema.validators import Draft202012Validator, validator_for

from workflow_compiler.errors import SchemaValidationError
from workflow_compiler.schema.models import JsonSchema

ValidatorType = Draft202012Validator

_validator_cache: Dict[str, ValidatorType] = {}
_cache_lock = Lock()


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def get_validator(schema: JsonSchema) -> ValidatorType:
    """
    Compile (and cache) a jsonschema validator for the provided schema.
    """

    key = canonical_json(schema)
    with _cache_lock:
        validator = _validator_cache.get(key)
        if validator is None:
            validator_cls = validator_for(schema, default=Draft202012Validator)
            validator = validator_cls(schema)
            _validator_cache[key] = validator
    return validator


def clear_validator_cache() -> None:
    with _cache_lock:
        _validator_cache.clear()


def collect_errors(schema: JsonSchema, instance: Any, *, prefix: str = "$") -> List[str]:
    validator = get_validator(schema)
    errors = sorted(
        validator.iter_errors(instance),
        key=lambda err: ([str(token) for token in err.absolute_path], err.message),
    )
    return [format_validation_error(error, prefix=prefix) for error in errors]


def validate_instance(schema: JsonSchema, instance: Any, *, prefix: str = "$") -> None:
    """
    Validate an instance against the provided schema, raising SchemaValidationError
    with every violation joined into one message.
    """

    errors = collect_errors(schema, instance, prefix=prefix)
    if errors:
        raise SchemaValidationError("; ".join(errors))


def format_validation_error(error: ValidationError, *, prefix: str = "$") -> str:
    """
    Convert a jsonschema.ValidationError into a human-friendly error string.
    """

    path = prefix
    for token in error.absolute_path:
        if isinstance(token, int):
            path += f"[{token}]"
        else:
            path += f".{token}"
    return f"{path}: {error.message}"


__all__ = [
    "ValidationError",
    "canonical_json",
    "clear_validator_cache",
    "collect_errors",
    "format_validation_error",
    "get_validator",
    "validate_instance",
]
