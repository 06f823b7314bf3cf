from __future__ import annotations

import json

from workflow_compiler.runtime.events import (
    StepCompleteEvent,
    WorkflowCompleteEvent,
    WorkflowErrorEvent,
    event_payload,
    format_sse_event,
    parse_event,
)


def test_sse_frame_uses_camel_case_payload() -> None:
    event = StepCompleteEvent(step_id="fetch", step_name="Fetch page", output={"html": "<p>"}, duration_ms=12)

    frame = format_sse_event(event)

    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    payload = json.loads(frame[len("data: "):])
    assert payload["type"] == "step-complete"
    assert payload["stepId"] == "fetch"
    assert payload["stepName"] == "Fetch page"
    assert payload["durationMs"] == 12
    assert payload["output"] == {"html": "<p>"}
    assert "timestamp" in payload


def test_failed_step_id_only_present_when_set() -> None:
    before_run = WorkflowErrorEvent(error="Missing connection", total_duration_ms=1)
    during_run = WorkflowErrorEvent(error="boom", failed_step_id="send", total_duration_ms=5)

    assert "failedStepId" not in event_payload(before_run)
    assert event_payload(during_run)["failedStepId"] == "send"


def test_only_workflow_events_are_terminal() -> None:
    assert WorkflowCompleteEvent(total_duration_ms=0).terminal
    assert WorkflowErrorEvent(error="x", total_duration_ms=0).terminal
    assert not StepCompleteEvent(step_id="a", step_name="a", duration_ms=0).terminal


def test_parse_event_round_trips_wire_payload() -> None:
    wire = format_sse_event(WorkflowCompleteEvent(output={"ok": True}, total_duration_ms=40))

    parsed = parse_event(wire[len("data: "):].strip())

    assert isinstance(parsed, WorkflowCompleteEvent)
    assert parsed.output == {"ok": True}
    assert parsed.total_duration_ms == 40


def test_missing_connections_only_present_on_connection_failures() -> None:
    blocked = WorkflowErrorEvent(
        error='Missing connection for "gmail". Please connect this integration first.',
        missing_connections=["gmail"],
        total_duration_ms=2,
    )
    step_failure = WorkflowErrorEvent(error="boom", failed_step_id="send", total_duration_ms=5)

    assert event_payload(blocked)["missingConnections"] == ["gmail"]
    assert "missingConnections" not in event_payload(step_failure)
