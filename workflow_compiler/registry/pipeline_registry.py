"""
In-memory registry of compiled pipelines keyed by workflow id.

Saving a workflow compiles it once and stores the artifact here; execution
requests look the artifact up instead of recompiling.
"""

from __future__ import annotations

from dataclasses import dataclass
from threading import Lock
from typing import Dict, MutableMapping, Optional, Tuple

from workflow_compiler.compiler.compose import CompilationResult, CompiledPipeline


@dataclass(frozen=True)
class RegisteredPipeline:
    workflow_id: str
    result: CompilationResult

    @property
    def pipeline(self) -> Optional[CompiledPipeline]:
        return self.result.pipeline

    @property
    def errors(self) -> Tuple[str, ...]:
        return self.result.errors


class PipelineNotFoundError(KeyError):
    """Raised when no compiled pipeline exists for a workflow id."""


class PipelineRegistry:
    def __init__(self, initial: MutableMapping[str, RegisteredPipeline] | None = None) -> None:
        self._entries: Dict[str, RegisteredPipeline] = dict(initial or {})
        self._lock = Lock()

    def register(self, workflow_id: str, result: CompilationResult) -> RegisteredPipeline:
        entry = RegisteredPipeline(workflow_id=workflow_id, result=result)
        with self._lock:
            self._entries[workflow_id] = entry
        return entry

    def get(self, workflow_id: str) -> RegisteredPipeline:
        with self._lock:
            try:
                return self._entries[workflow_id]
            except KeyError as exc:
                raise PipelineNotFoundError(
                    f"Workflow '{workflow_id}' has not been compiled"
                ) from exc

    def maybe_get(self, workflow_id: str) -> Optional[RegisteredPipeline]:
        with self._lock:
            return self._entries.get(workflow_id)

    def invalidate(self, workflow_id: str) -> bool:
        with self._lock:
            return self._entries.pop(workflow_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, workflow_id: object) -> bool:
        with self._lock:
            return workflow_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
