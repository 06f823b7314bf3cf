"""
Stage 2: Compile each step's field bindings into a mapper.

A mapper runs immediately before its step and builds the step's concrete input
from earlier step outputs, the original workflow input, or literals. Binding
references are checked here so that a dangling or forward reference surfaces
as a compile error for that step rather than as a runtime fault.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple

from workflow_compiler.errors import CompileError
from workflow_compiler.runtime.context import WorkflowRuntimeContext
from workflow_compiler.schema.models import (
    FieldBinding,
    SourceType,
    StepBindings,
    StepType,
    WorkflowStep,
)

# Tool steps used to expose the whole ``{successful, data, error}`` envelope;
# bindings saved against it still carry this prefix.
LEGACY_DATA_PREFIX = "data."


def normalize_source_path(path: str) -> Tuple[str, ...]:
    if path.startswith(LEGACY_DATA_PREFIX):
        path = path[len(LEGACY_DATA_PREFIX):]
    return tuple(segment for segment in path.split(".") if segment)


def lookup_path(value: Any, segments: Tuple[str, ...]) -> Any:
    current = value
    for segment in segments:
        if isinstance(current, Mapping):
            current = current.get(segment)
        elif isinstance(current, (list, tuple)) and segment.isdigit():
            index = int(segment)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


@dataclass(frozen=True)
class FieldResolver:
    target: str
    source_type: SourceType
    source_step_id: Optional[str] = None
    path: Optional[Tuple[str, ...]] = None
    input_name: Optional[str] = None
    literal: Any = None

    def resolve(self, context: WorkflowRuntimeContext) -> Any:
        if self.source_type == SourceType.step_output:
            if self.source_step_id is None or self.path is None:
                return None
            return lookup_path(context.get_step_result(self.source_step_id), self.path)
        if self.source_type == SourceType.workflow_input:
            if self.input_name is None:
                return None
            return context.get_init_data().get(self.input_name)
        return copy.deepcopy(self.literal)

    def render(self) -> str:
        if self.source_type == SourceType.step_output:
            if self.source_step_id is None or self.path is None:
                return "None"
            args = ", ".join(json.dumps(part) for part in (self.source_step_id, *self.path))
            return f"step_result({args})"
        if self.source_type == SourceType.workflow_input:
            if self.input_name is None:
                return "None"
            return f"init_data[{json.dumps(self.input_name)}]"
        return repr(self.literal)


@dataclass(frozen=True)
class StepMapper:
    step_id: str
    fields: Tuple[FieldResolver, ...]

    def __call__(self, context: WorkflowRuntimeContext) -> Dict[str, Any]:
        # Unresolved step-output and workflow-input fields are left out so that
        # optional schema properties stay absent; literal None is kept as given.
        mapped: Dict[str, Any] = {}
        for resolver in self.fields:
            value = resolver.resolve(context)
            if value is None and resolver.source_type != SourceType.literal:
                continue
            mapped[resolver.target] = value
        return mapped

    def render(self, name: str) -> str:
        lines = [f"def {name}(step_result, init_data):", "    return {"]
        for resolver in self.fields:
            lines.append(f"        {json.dumps(resolver.target)}: {resolver.render()},")
        lines.append("    }")
        return "\n".join(lines)


def compile_step_mapper(
    step: WorkflowStep,
    bindings: Optional[StepBindings],
    steps_by_id: Mapping[str, WorkflowStep],
) -> Optional[StepMapper]:
    """
    Returns the mapper for ``step`` or None when it has no bindings. Raises
    CompileError listing every invalid binding of the step.
    """

    if bindings is None or not bindings.input_bindings:
        return None

    errors: List[str] = []
    resolvers: List[FieldResolver] = []
    for target, binding in bindings.input_bindings.items():
        problem = _check_binding(step, target, binding, steps_by_id)
        if problem:
            errors.append(problem)
            continue
        resolvers.append(_build_resolver(target, binding))

    if errors:
        raise CompileError("; ".join(errors), step_id=step.id)
    return StepMapper(step_id=step.id, fields=tuple(resolvers))


def _check_binding(
    step: WorkflowStep,
    target: str,
    binding: FieldBinding,
    steps_by_id: Mapping[str, WorkflowStep],
) -> Optional[str]:
    if binding.source_type != SourceType.step_output or not binding.source_step_id:
        return None

    source_id = binding.source_step_id
    source = steps_by_id.get(source_id)
    if source is None:
        return f"field '{target}' references unknown step '{source_id}'"
    if source.id == step.id:
        return f"field '{target}' references its own step"
    if source.list_index >= step.list_index:
        return f"field '{target}' references step '{source_id}' which does not run earlier"
    if source.type == StepType.control_flow:
        return f"field '{target}' references control flow step '{source_id}' which never runs"
    return None


def _build_resolver(target: str, binding: FieldBinding) -> FieldResolver:
    if binding.source_type == SourceType.step_output:
        path = None
        if binding.source_step_id and binding.source_path:
            path = normalize_source_path(binding.source_path)
        return FieldResolver(
            target=target,
            source_type=binding.source_type,
            source_step_id=binding.source_step_id or None,
            path=path,
        )
    if binding.source_type == SourceType.workflow_input:
        return FieldResolver(
            target=target,
            source_type=binding.source_type,
            input_name=binding.workflow_input_name or None,
        )
    return FieldResolver(
        target=target,
        source_type=binding.source_type,
        literal=binding.literal_value,
    )
