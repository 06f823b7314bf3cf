"""
Streaming execution engine for compiled pipelines.

A run resolves the caller's connections, prepares the input, then drives the
pipeline one step at a time and yields progress events. Every run ends with
exactly one terminal event (``workflow-complete`` or ``workflow-error``).
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, AsyncIterator, List, Mapping, Optional

from shared.logger import get_logger
from workflow_compiler.compiler.compose import CompiledPipeline
from workflow_compiler.errors import TransportError, WorkflowCompilerError
from workflow_compiler.runtime.collaborators import ConnectionLister, RecordsHandler, ToolExecutor
from workflow_compiler.runtime.connections import resolve_connections
from workflow_compiler.runtime.context import WorkflowRuntimeContext
from workflow_compiler.runtime.events import (
    BaseStreamEvent,
    StepCompleteEvent,
    StepErrorEvent,
    StepStartEvent,
    WorkflowCompleteEvent,
    WorkflowErrorEvent,
)
from workflow_compiler.runtime.state import RunState, RunStateMachine

logger = get_logger("workflow_compiler.runtime.execution")


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


# Interpreter control flow; never converted into a step failure.
_PROPAGATE = (asyncio.CancelledError, GeneratorExit, KeyboardInterrupt)


def _step_error_message(exc: BaseException) -> str:
    if not isinstance(exc, Exception):
        # SystemExit and friends carry only an exit code
        return f"{exc.__class__.__name__}: {exc}" if str(exc) else exc.__class__.__name__
    return str(exc) or exc.__class__.__name__


class ExecutionEngine:
    def __init__(
        self,
        tool_executor: ToolExecutor,
        connection_lister: ConnectionLister,
        records: Optional[RecordsHandler] = None,
    ) -> None:
        self.tool_executor = tool_executor
        self.connection_lister = connection_lister
        self.records = records

    async def stream(
        self,
        pipeline: CompiledPipeline,
        input_data: Mapping[str, Any] | None,
        caller_id: str,
    ) -> AsyncIterator[BaseStreamEvent]:
        """
        Execute ``pipeline`` for ``caller_id``. Steps run strictly in order; the
        first failing step stops the run and no later step is started.
        """

        machine = RunStateMachine()
        started = time.monotonic()

        try:
            machine.advance(RunState.validating)
            resolution = await resolve_connections(
                pipeline.metadata.required_connections, caller_id, self.connection_lister
            )
            if not resolution.valid:
                machine.advance(RunState.failed)
                yield WorkflowErrorEvent(
                    error="; ".join(resolution.errors),
                    missing_connections=list(resolution.missing_connections),
                    total_duration_ms=_elapsed_ms(started),
                )
                return

            try:
                value: Any = pipeline.prepare_input(input_data)
            except WorkflowCompilerError as exc:
                machine.advance(RunState.failed)
                yield WorkflowErrorEvent(error=str(exc), total_duration_ms=_elapsed_ms(started))
                return

            context = WorkflowRuntimeContext(
                caller_id=caller_id,
                tool_executor=self.tool_executor,
                connections=dict(resolution.bindings),
                records=self.records,
                init_data=value,
            )

            machine.advance(RunState.running)
            logger.info(
                "Running workflow %s for caller %s (%d steps)",
                pipeline.workflow_id,
                caller_id,
                len(pipeline.steps),
            )

            for step in pipeline.steps:
                yield StepStartEvent(step_id=step.step_id, step_name=step.step_name)
                step_started = time.monotonic()
                try:
                    value = await pipeline.run_step(step, value, context)
                except _PROPAGATE:
                    raise
                except BaseException as exc:
                    message = _step_error_message(exc)
                    logger.warning(
                        "Step %s of workflow %s failed: %s", step.step_id, pipeline.workflow_id, message
                    )
                    machine.advance(RunState.failed)
                    yield StepErrorEvent(
                        step_id=step.step_id,
                        step_name=step.step_name,
                        error=message,
                        duration_ms=_elapsed_ms(step_started),
                    )
                    yield WorkflowErrorEvent(
                        error=message,
                        failed_step_id=step.step_id,
                        total_duration_ms=_elapsed_ms(started),
                    )
                    return
                yield StepCompleteEvent(
                    step_id=step.step_id,
                    step_name=step.step_name,
                    output=value,
                    duration_ms=_elapsed_ms(step_started),
                )

            try:
                output = pipeline.finish(value)
            except WorkflowCompilerError as exc:
                machine.advance(RunState.failed)
                yield WorkflowErrorEvent(error=str(exc), total_duration_ms=_elapsed_ms(started))
                return

            machine.advance(RunState.completed)
            logger.info(
                "Workflow %s completed in %dms", pipeline.workflow_id, _elapsed_ms(started)
            )
            yield WorkflowCompleteEvent(output=output, total_duration_ms=_elapsed_ms(started))
        except Exception as exc:
            if machine.finished:
                raise
            logger.exception("Workflow %s aborted", pipeline.workflow_id)
            error = TransportError(f"Workflow execution failed: {exc}")
            yield WorkflowErrorEvent(error=str(error), total_duration_ms=_elapsed_ms(started))

    async def run(
        self,
        pipeline: CompiledPipeline,
        input_data: Mapping[str, Any] | None,
        caller_id: str,
    ) -> List[BaseStreamEvent]:
        return [event async for event in self.stream(pipeline, input_data, caller_id)]

    async def stream_to_channel(
        self,
        pipeline: CompiledPipeline,
        input_data: Mapping[str, Any] | None,
        caller_id: str,
        channel: "asyncio.Queue[Optional[BaseStreamEvent]]",
    ) -> None:
        """Push events onto ``channel`` and close it with a ``None`` sentinel."""
        try:
            async for event in self.stream(pipeline, input_data, caller_id):
                await channel.put(event)
        finally:
            await channel.put(None)


__all__ = ["ExecutionEngine", "RunState"]
