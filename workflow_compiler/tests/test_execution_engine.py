from __future__ import annotations

import asyncio

import pytest

from workflow_compiler import CompilerContext, compile_workflow
from workflow_compiler.runtime.collaborators import ToolResult
from workflow_compiler.runtime.context import WorkflowRuntimeContext
from workflow_compiler.runtime.events import WorkflowCompleteEvent, WorkflowErrorEvent
from workflow_compiler.runtime.execution import ExecutionEngine

from workflow_compiler.tests.fakes import (
    FakeConnectionLister,
    FakeRecords,
    FakeToolExecutor,
    active,
    code_step,
    definition,
    page_title_tools,
    page_title_workflow,
    step_output,
    tool_step,
)

CONTEXT = CompilerContext(no_auth_toolkits=frozenset({"browser_tool"}))


def _compile(payload):
    result = compile_workflow(payload, context=CONTEXT)
    assert result.ok, result.errors
    return result.pipeline


def _types(events):
    return [event.type for event in events]


@pytest.mark.asyncio
async def test_page_title_workflow_end_to_end() -> None:
    pipeline = _compile(page_title_workflow())
    tools = page_title_tools()
    engine = ExecutionEngine(tools, FakeConnectionLister([active("gmail", "ca_gmail")]))

    events = await engine.run(
        pipeline, {"url": "https://example.com", "recipient": "me@example.com"}, "user-1"
    )

    assert _types(events) == [
        "step-start",
        "step-complete",
        "step-start",
        "step-complete",
        "step-start",
        "step-complete",
        "workflow-complete",
    ]
    assert events[3].output == {"title": "Hello from https://example.com"}
    assert isinstance(events[-1], WorkflowCompleteEvent)
    assert events[-1].output == {"id": "msg-1", "subject": "Hello from https://example.com"}

    fetch_call, email_call = tools.calls
    assert fetch_call["arguments"] == {"url": "https://example.com"}
    assert fetch_call["authorized_account_id"] is None
    assert email_call["arguments"] == {
        "recipient_email": "me@example.com",
        "subject": "Hello from https://example.com",
    }
    assert email_call["authorized_account_id"] == "ca_gmail"
    assert email_call["caller_id"] == "user-1"


@pytest.mark.asyncio
async def test_missing_connection_short_circuits_before_any_step() -> None:
    pipeline = _compile(page_title_workflow())
    tools = page_title_tools()
    engine = ExecutionEngine(tools, FakeConnectionLister())

    events = await engine.run(pipeline, {"url": "https://example.com", "recipient": "x"}, "user-1")

    assert _types(events) == ["workflow-error"]
    assert events[0].error == 'Missing connection for "gmail". Please connect this integration first.'
    assert events[0].failed_step_id is None
    assert events[0].missing_connections == ["gmail"]
    assert tools.calls == []


@pytest.mark.asyncio
async def test_failing_step_stops_the_run() -> None:
    payload = definition(
        [
            code_step("one", 0, "return {'value': 1}", name="One"),
            tool_step("two", 1, tool_id="SLACK_SEND_MESSAGE", toolkit_slug="slack", name="Two"),
            code_step("three", 2, "raise AssertionError('must not run')", name="Three"),
        ]
    )
    tools = FakeToolExecutor(
        {"SLACK_SEND_MESSAGE": lambda args: ToolResult(successful=False, error="channel_not_found")}
    )
    engine = ExecutionEngine(tools, FakeConnectionLister([active("slack", "ca_slack")]))

    events = await engine.run(_compile(payload), {}, "user-1")

    assert _types(events) == [
        "step-start",
        "step-complete",
        "step-start",
        "step-error",
        "workflow-error",
    ]
    assert events[3].step_id == "two"
    assert events[3].error == "channel_not_found"
    assert isinstance(events[-1], WorkflowErrorEvent)
    assert events[-1].failed_step_id == "two"
    assert len(tools.calls) == 1


@pytest.mark.asyncio
async def test_tool_failure_without_message_uses_default_error() -> None:
    payload = definition([tool_step("t", 0, tool_id="X_RUN", toolkit_slug="x")])
    tools = FakeToolExecutor({"X_RUN": lambda args: ToolResult(successful=False)})
    engine = ExecutionEngine(tools, FakeConnectionLister([active("x", "ca_x")]))

    events = await engine.run(_compile(payload), {}, "user-1")

    assert events[-1].error == "Tool execution failed"


@pytest.mark.asyncio
async def test_custom_code_exception_becomes_step_error() -> None:
    payload = definition([code_step("boom", 0, "raise ValueError('bad input')")])
    engine = ExecutionEngine(FakeToolExecutor(), FakeConnectionLister())

    events = await engine.run(_compile(payload), {}, "user-1")

    assert _types(events) == ["step-start", "step-error", "workflow-error"]
    assert events[1].error == "bad input"
    assert events[2].failed_step_id == "boom"


@pytest.mark.asyncio
async def test_invalid_step_input_is_reported_as_step_error() -> None:
    payload = definition(
        [
            code_step("produce", 0, "return {'count': 'three'}"),
            code_step(
                "consume",
                1,
                "return input_data",
                input_schema={
                    "type": "object",
                    "properties": {"count": {"type": "number"}},
                    "required": ["count"],
                },
            ),
        ],
        bindings={"consume": {"inputBindings": {"count": step_output("produce", "count")}}},
    )
    engine = ExecutionEngine(FakeToolExecutor(), FakeConnectionLister())

    events = await engine.run(_compile(payload), {}, "user-1")

    assert _types(events)[-2:] == ["step-error", "workflow-error"]
    assert "consume.input.count" in events[-2].error


@pytest.mark.asyncio
async def test_invalid_workflow_input_is_a_workflow_error() -> None:
    payload = definition(
        [code_step("only", 0, "return input_data")],
        runtime_inputs=[{"key": "limit", "type": "number", "required": True}],
    )
    engine = ExecutionEngine(FakeToolExecutor(), FakeConnectionLister())

    events = await engine.run(_compile(payload), {"limit": "many"}, "user-1")

    assert _types(events) == ["workflow-error"]
    assert "Input 'limit'" in events[0].error


@pytest.mark.asyncio
async def test_workflow_output_schema_is_enforced() -> None:
    payload = definition(
        [code_step("only", 0, "return {'status': 'done'}")],
        output_schema={
            "type": "object",
            "properties": {"status": {"type": "string", "enum": ["ok"]}},
            "required": ["status"],
        },
    )
    engine = ExecutionEngine(FakeToolExecutor(), FakeConnectionLister())

    events = await engine.run(_compile(payload), {}, "user-1")

    assert _types(events) == ["step-start", "step-complete", "workflow-error"]
    assert "output.status" in events[-1].error


@pytest.mark.asyncio
async def test_unexpected_collaborator_failure_still_ends_with_one_terminal_event() -> None:
    class ExplodingLister:
        async def list(self, caller_id):
            raise RuntimeError("directory offline")

    payload = definition([tool_step("t", 0, tool_id="X_RUN", toolkit_slug="x")])
    engine = ExecutionEngine(FakeToolExecutor(), ExplodingLister())

    events = await engine.run(_compile(payload), {}, "user-1")

    assert _types(events) == ["workflow-error"]
    assert "directory offline" in events[0].error


@pytest.mark.asyncio
async def test_runs_do_not_share_state() -> None:
    payload = definition(
        [
            code_step("echo", 0, "return {'who': input_data['who']}"),
            code_step("greet", 1, "return {'greeting': 'hi ' + input_data['who']}"),
        ],
        runtime_inputs=[{"key": "who", "type": "string", "required": True}],
        bindings={"echo": {"inputBindings": {"who": {"sourceType": "workflow-input", "workflowInputName": "who"}}}},
    )
    pipeline = _compile(payload)
    engine = ExecutionEngine(FakeToolExecutor(), FakeConnectionLister())

    first, second = await asyncio.gather(
        engine.run(pipeline, {"who": "ada"}, "user-1"),
        engine.run(pipeline, {"who": "grace"}, "user-2"),
    )

    assert first[-1].output == {"greeting": "hi ada"}
    assert second[-1].output == {"greeting": "hi grace"}


@pytest.mark.asyncio
async def test_table_steps_use_records_handler() -> None:
    payload = definition(
        [
            {"id": "save", "type": "tableWrite", "listIndex": 0, "tableRef": "contacts"},
            {"id": "load", "type": "tableQuery", "listIndex": 1, "tableRef": "contacts"},
        ]
    )
    records = FakeRecords()
    engine = ExecutionEngine(FakeToolExecutor(), FakeConnectionLister(), records=records)

    events = await engine.run(_compile(payload), {"name": "Ada"}, "user-1")

    assert events[-1].output == {"rows": [{"name": "Ada"}]}
    assert [request.operation for request in records.requests] == ["write", "query"]


@pytest.mark.asyncio
async def test_stream_to_channel_closes_with_sentinel() -> None:
    pipeline = _compile(definition([code_step("only", 0, "return {'ok': True}")]))
    engine = ExecutionEngine(FakeToolExecutor(), FakeConnectionLister())
    channel: asyncio.Queue = asyncio.Queue()

    await engine.stream_to_channel(pipeline, {}, "user-1", channel)

    received = []
    while True:
        item = channel.get_nowait()
        if item is None:
            break
        received.append(item)
    assert _types(received) == ["step-start", "step-complete", "workflow-complete"]


@pytest.mark.asyncio
async def test_pipeline_run_without_events() -> None:
    pipeline = _compile(page_title_workflow())
    context = WorkflowRuntimeContext(
        caller_id="user-1",
        tool_executor=page_title_tools(),
        connections={"gmail": "ca_gmail"},
    )

    output = await pipeline.run({"url": "https://a.test", "recipient": "r@a.test"}, context)

    assert output["subject"] == "Hello from https://a.test"
    assert set(context.step_results) == {"fetch", "extract", "email"}


@pytest.mark.asyncio
async def test_fetch_extract_send_with_workflow_email_input() -> None:
    payload = definition(
        [
            tool_step("fetchPage", 0, tool_id="BROWSER_TOOL_FETCH_WEBPAGE", toolkit_slug="browser_tool"),
            code_step(
                "extractTitle",
                1,
                "html = input_data['html']\n"
                "return {'title': html.split('<title>')[1].split('</title>')[0]}",
            ),
            tool_step("sendEmail", 2, tool_id="GMAIL_SEND_EMAIL", toolkit_slug="gmail"),
        ],
        bindings={
            "extractTitle": {"inputBindings": {"html": step_output("fetchPage", "html")}},
            "sendEmail": {
                "inputBindings": {
                    "body": step_output("extractTitle", "title"),
                    "to": {"sourceType": "workflow-input", "workflowInputName": "email"},
                }
            },
        },
    )
    tools = FakeToolExecutor(
        {
            "BROWSER_TOOL_FETCH_WEBPAGE": lambda args: ToolResult(
                successful=True, data={"html": "<title>Docs</title>"}
            ),
            "GMAIL_SEND_EMAIL": lambda args: ToolResult(successful=True, data={"sent": True}),
        }
    )
    engine = ExecutionEngine(tools, FakeConnectionLister([active("gmail", "ca_gmail")]))

    events = await engine.run(_compile(payload), {"email": "a@b.com"}, "user-1")

    completed = [event.step_id for event in events if event.type == "step-complete"]
    assert completed == ["fetchPage", "extractTitle", "sendEmail"]
    assert [event.terminal for event in events].count(True) == 1
    assert tools.calls[0]["arguments"] == {"email": "a@b.com"}
    assert tools.calls[1]["arguments"] == {"body": "Docs", "to": "a@b.com"}


@pytest.mark.asyncio
async def test_steps_without_schemas_accept_any_value() -> None:
    payload = definition(
        [
            code_step("greet", 0, "return 'hello'"),
            code_step("letters", 1, "return list(input_data)"),
        ]
    )
    engine = ExecutionEngine(FakeToolExecutor(), FakeConnectionLister())

    events = await engine.run(_compile(payload), {}, "user-1")

    assert _types(events) == [
        "step-start",
        "step-complete",
        "step-start",
        "step-complete",
        "workflow-complete",
    ]
    assert events[1].output == "hello"
    assert events[-1].output == ["h", "e", "l", "l", "o"]


@pytest.mark.asyncio
async def test_optional_bound_field_stays_absent_when_source_is_missing() -> None:
    payload = definition(
        [
            code_step("page", 0, "return {'title': 'T'}"),
            code_step(
                "card",
                1,
                "return input_data",
                input_schema={
                    "type": "object",
                    "properties": {"title": {"type": "string"}, "subtitle": {"type": "string"}},
                    "required": ["title"],
                },
            ),
        ],
        bindings={
            "card": {
                "inputBindings": {
                    "title": step_output("page", "title"),
                    "subtitle": step_output("page", "subtitle"),
                }
            }
        },
    )
    engine = ExecutionEngine(FakeToolExecutor(), FakeConnectionLister())

    events = await engine.run(_compile(payload), {}, "user-1")

    assert _types(events)[-1] == "workflow-complete"
    assert events[-1].output == {"title": "T"}


@pytest.mark.asyncio
async def test_system_exit_in_custom_code_fails_the_step() -> None:
    payload = definition(
        [
            code_step("quit", 0, "raise SystemExit(3)"),
            code_step("after", 1, "raise AssertionError('must not run')"),
        ]
    )
    engine = ExecutionEngine(FakeToolExecutor(), FakeConnectionLister())

    events = await engine.run(_compile(payload), {}, "user-1")

    assert _types(events) == ["step-start", "step-error", "workflow-error"]
    assert events[1].error == "SystemExit: 3"
    assert events[2].failed_step_id == "quit"
    assert [event.terminal for event in events].count(True) == 1


@pytest.mark.asyncio
async def test_cancellation_is_not_reported_as_a_step_failure() -> None:
    payload = definition([code_step("wait", 0, "import asyncio\nraise asyncio.CancelledError()")])
    engine = ExecutionEngine(FakeToolExecutor(), FakeConnectionLister())

    with pytest.raises(asyncio.CancelledError):
        await engine.run(_compile(payload), {}, "user-1")
