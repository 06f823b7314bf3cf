"""
Schema translator: abstract type descriptors -> runtime validators.

A descriptor is the editor's JSON-schema-like shape
``{type, properties?, items?, required?, enum?}``. Translation normalises it to
the subset of JSON Schema the engine honours and wraps it in a
``SchemaValidator`` that can both check values and render itself as text for
the audited pipeline listing.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping

from workflow_compiler.schema.jsonschema_adapter import canonical_json, collect_errors, validate_instance
from workflow_compiler.schema.models import JsonSchema

KNOWN_TYPES = ("string", "number", "integer", "boolean", "object", "array", "null")


@dataclass(frozen=True)
class SchemaValidator:
    schema: JsonSchema

    @property
    def permissive(self) -> bool:
        return not self.schema

    def validate(self, value: Any, *, prefix: str = "$") -> Any:
        if self.permissive:
            return value
        validate_instance(self.schema, value, prefix=prefix)
        return value

    def is_valid(self, value: Any) -> bool:
        if self.permissive:
            return True
        return not collect_errors(self.schema, value)

    def render(self) -> str:
        return render_schema(self.schema)

    def fingerprint(self) -> str:
        return canonical_json(self.schema)


ANY = SchemaValidator(schema={})


def translate_schema(descriptor: Any) -> SchemaValidator:
    """
    Build a validator for the given descriptor. Missing or empty descriptors
    yield the permissive validator.
    """

    normalized = normalize_descriptor(descriptor)
    if not normalized:
        return ANY
    return SchemaValidator(schema=normalized)


def translate_declared_schema(descriptor: Any) -> SchemaValidator:
    """
    Same as ``translate_schema`` except that the empty object schema the editor
    seeds on every step and workflow counts as "not declared" and yields the
    permissive validator instead of requiring an object.
    """

    if is_unspecified(descriptor):
        return ANY
    return translate_schema(descriptor)


def is_unspecified(descriptor: Any) -> bool:
    if not isinstance(descriptor, Mapping) or not descriptor:
        return True
    if descriptor.get("type") not in (None, "object"):
        return False
    return not any(descriptor.get(key) for key in ("properties", "required", "enum"))


def normalize_descriptor(descriptor: Any) -> JsonSchema:
    if not isinstance(descriptor, Mapping) or not descriptor:
        return {}

    # enum restricts the value set regardless of the declared base type
    enum = descriptor.get("enum")
    if isinstance(enum, list) and enum:
        return {"enum": list(enum)}

    declared = descriptor.get("type")
    normalized: Dict[str, Any] = {}
    if isinstance(declared, str) and declared in KNOWN_TYPES:
        normalized["type"] = declared
    elif isinstance(declared, list):
        types = [item for item in declared if item in KNOWN_TYPES]
        if types:
            normalized["type"] = types

    properties = descriptor.get("properties")
    if declared == "object" or isinstance(properties, Mapping):
        props: Dict[str, JsonSchema] = {}
        for name, child in (properties or {}).items():
            props[str(name)] = normalize_descriptor(child)
        if props:
            normalized["properties"] = props
        required = _unique_strings(descriptor.get("required"))
        if required:
            normalized["required"] = required

    if declared == "array":
        items = descriptor.get("items")
        if isinstance(items, Mapping) and items:
            normalized["items"] = normalize_descriptor(items)

    return normalized


def _unique_strings(values: Any) -> List[str]:
    if not isinstance(values, list):
        return []
    seen: List[str] = []
    for value in values:
        if isinstance(value, str) and value not in seen:
            seen.append(value)
    return seen


# ----------------------------------------------------------------------------
# Rendering
# ----------------------------------------------------------------------------
def render_schema(schema: JsonSchema, indent: int = 0) -> str:
    if not schema:
        return "schema.any()"
    if "enum" in schema:
        return f"schema.enum({_literal(schema['enum'])})"

    declared = schema.get("type")
    if isinstance(declared, list):
        return f"schema.union({_literal(declared)})"
    if declared == "array":
        items = schema.get("items")
        if items:
            return f"schema.array({render_schema(items, indent)})"
        return "schema.array()"
    if declared == "object" or "properties" in schema:
        return _render_object(schema, indent)
    if declared:
        return f"schema.{declared}()"
    return "schema.any()"


def _render_object(schema: JsonSchema, indent: int) -> str:
    properties = schema.get("properties") or {}
    required = schema.get("required") or []
    suffix = f", required={_literal(required)}" if required else ""
    if not properties:
        return f"schema.object({{}}{suffix})"
    pad = "    " * (indent + 1)
    lines = [
        f"{pad}{json.dumps(name)}: {render_schema(child, indent + 1)},"
        for name, child in properties.items()
    ]
    body = "\n".join(lines)
    closing = "    " * indent
    return f"schema.object({{\n{body}\n{closing}}}{suffix})"


def _literal(value: Any) -> str:
    return json.dumps(value, sort_keys=True)


__all__ = [
    "ANY",
    "is_unspecified",
    "SchemaValidator",
    "normalize_descriptor",
    "render_schema",
    "translate_declared_schema",
    "translate_schema",
]
