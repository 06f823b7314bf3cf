"""
Shared exception hierarchy for the workflow compiler and execution engine.
"""

from __future__ import annotations

from typing import Iterable, List, Optional


class WorkflowCompilerError(Exception):
    """Base class for all compiler related errors."""


class ValidationPhaseError(WorkflowCompilerError):
    """Raised when the workflow definition fails structural checks."""


class CompileError(WorkflowCompilerError):
    """Raised when a single step cannot be compiled. Collected, never fatal to the workflow."""

    def __init__(self, message: str, *, step_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.step_id = step_id


class SchemaValidationError(WorkflowCompilerError):
    """Raised when a value does not satisfy a translated schema."""


class ConnectionMissingError(WorkflowCompilerError):
    """Raised before a run when required toolkit connections are not authorized."""

    def __init__(self, missing: Iterable[str], message: Optional[str] = None) -> None:
        self.missing: List[str] = list(missing)
        super().__init__(message or f"Missing connections: {', '.join(self.missing)}")


class ExecutionError(WorkflowCompilerError):
    """Raised for runtime execution issues (tool failures, invalid outputs, etc)."""


class StepExecutionError(ExecutionError):
    """Raised when a compiled step fails; identifies the failing step."""

    def __init__(self, message: str, *, step_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.step_id = step_id


class TransportError(WorkflowCompilerError):
    """Wraps unexpected exceptions before they reach the event stream."""
