"""
Run lifecycle states of the execution engine.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet


class RunState(str, Enum):
    idle = "idle"
    validating = "validating"
    running = "running"
    completed = "completed"
    failed = "failed"


ALLOWED_TRANSITIONS: Dict[RunState, FrozenSet[RunState]] = {
    RunState.idle: frozenset({RunState.validating, RunState.failed}),
    RunState.validating: frozenset({RunState.running, RunState.failed}),
    RunState.running: frozenset({RunState.completed, RunState.failed}),
    RunState.completed: frozenset(),
    RunState.failed: frozenset(),
}


class RunStateMachine:
    def __init__(self) -> None:
        self.state = RunState.idle
        self.history = [RunState.idle]

    def advance(self, target: RunState) -> None:
        if target not in ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal run transition {self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target)

    @property
    def finished(self) -> bool:
        return self.state in (RunState.completed, RunState.failed)
