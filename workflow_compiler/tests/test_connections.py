from __future__ import annotations

import pytest

from workflow_compiler.errors import ConnectionMissingError
from workflow_compiler.runtime.collaborators import ConnectedAccount
from workflow_compiler.runtime.connections import ensure_connections, resolve_connections

from workflow_compiler.tests.fakes import FakeConnectionLister, active


@pytest.mark.asyncio
async def test_no_requirements_skips_the_lister() -> None:
    lister = FakeConnectionLister()

    resolution = await resolve_connections([], "user-1", lister)

    assert resolution.valid
    assert resolution.bindings == {}
    assert lister.calls == []


@pytest.mark.asyncio
async def test_first_active_account_wins() -> None:
    lister = FakeConnectionLister(
        [
            ConnectedAccount(toolkit_slug="gmail", status="PENDING", account_id="ca_pending"),
            active("gmail", "ca_first"),
            active("gmail", "ca_second"),
            active("slack", "ca_slack"),
        ]
    )

    resolution = await resolve_connections(["gmail", "slack"], "user-1", lister)

    assert resolution.valid
    assert resolution.bindings == {"gmail": "ca_first", "slack": "ca_slack"}
    assert lister.calls == ["user-1"]


@pytest.mark.asyncio
async def test_single_missing_connection_message() -> None:
    lister = FakeConnectionLister(
        [ConnectedAccount(toolkit_slug="gmail", status="INACTIVE", account_id="ca_old")]
    )

    resolution = await resolve_connections(["gmail"], "user-1", lister)

    assert not resolution.valid
    assert resolution.missing_connections == ["gmail"]
    assert resolution.errors == [
        'Missing connection for "gmail". Please connect this integration first.'
    ]


@pytest.mark.asyncio
async def test_multiple_missing_connections_message() -> None:
    lister = FakeConnectionLister([active("gmail", "ca_1")])

    resolution = await resolve_connections(["gmail", "notion", "slack"], "user-1", lister)

    assert resolution.missing_connections == ["notion", "slack"]
    assert resolution.bindings == {"gmail": "ca_1"}
    assert resolution.errors == [
        "Missing connections for: notion, slack. Please connect these integrations first."
    ]


@pytest.mark.asyncio
async def test_ensure_connections_raises_with_missing_list() -> None:
    lister = FakeConnectionLister()

    with pytest.raises(ConnectionMissingError) as excinfo:
        await ensure_connections(["github"], "user-1", lister)

    assert excinfo.value.missing == ["github"]
    assert 'Missing connection for "github"' in str(excinfo.value)

    assert await ensure_connections([], "user-1", lister) == {}


@pytest.mark.asyncio
async def test_partial_authorization_reports_only_the_missing_toolkit() -> None:
    lister = FakeConnectionLister([active("b", "ca_b")])

    resolution = await resolve_connections(["a", "b"], "user-1", lister)

    assert not resolution.valid
    assert resolution.missing_connections == ["a"]
    assert resolution.bindings == {"b": "ca_b"}
