from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from workflow_compiler.runtime.collaborators import RecordsHandler, ToolExecutor


@dataclass
class WorkflowRuntimeContext:
    """
    Run-scoped data handed to every mapper and step of a compiled pipeline.

    A fresh instance is created per run, so the shared, immutable pipeline never
    holds per-run state.
    """

    caller_id: str
    tool_executor: Optional[ToolExecutor] = None
    connections: Mapping[str, str] = field(default_factory=dict)
    records: Optional[RecordsHandler] = None
    init_data: Mapping[str, Any] = field(default_factory=dict)
    step_results: Dict[str, Any] = field(default_factory=dict)

    def get_step_result(self, step_id: str) -> Any:
        return self.step_results.get(step_id)

    def get_init_data(self) -> Mapping[str, Any]:
        return self.init_data
