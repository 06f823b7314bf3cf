"""
Interfaces of the external collaborators the engine talks to.

Concrete Composio-backed implementations live in ``shared.composio``; tests use
in-memory fakes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, Sequence


@dataclass(frozen=True)
class ToolResult:
    successful: bool
    data: Any = None
    error: Optional[str] = None


class ToolExecutor(Protocol):
    async def execute(
        self,
        tool_id: str,
        *,
        arguments: Dict[str, Any],
        authorized_account_id: Optional[str],
        caller_id: str,
    ) -> ToolResult: ...


@dataclass(frozen=True)
class ConnectedAccount:
    toolkit_slug: str
    status: str
    account_id: str


class ConnectionLister(Protocol):
    async def list(self, caller_id: str) -> Sequence[ConnectedAccount]: ...


@dataclass(frozen=True)
class TableRequest:
    """Hand-off to the Records collaborator for tableQuery / tableWrite steps."""

    operation: str
    step_id: str
    table_ref: Optional[str]
    table_config: Dict[str, Any] = field(default_factory=dict)
    input_data: Any = None


class RecordsHandler(Protocol):
    async def __call__(self, request: TableRequest) -> Any: ...
