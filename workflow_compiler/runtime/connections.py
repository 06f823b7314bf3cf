"""
Match a pipeline's required toolkits against the caller's authorized accounts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from shared.logger import get_logger
from workflow_compiler.errors import ConnectionMissingError
from workflow_compiler.runtime.collaborators import ConnectedAccount, ConnectionLister

logger = get_logger("workflow_compiler.runtime.connections")

ACTIVE_STATUS = "ACTIVE"

# toolkit slug -> authorized account id
ConnectionBindings = Dict[str, str]


@dataclass
class ConnectionResolution:
    valid: bool
    errors: List[str] = field(default_factory=list)
    missing_connections: List[str] = field(default_factory=list)
    bindings: ConnectionBindings = field(default_factory=dict)

    def raise_for_missing(self) -> ConnectionBindings:
        if not self.valid:
            message = self.errors[0] if self.errors else None
            raise ConnectionMissingError(self.missing_connections, message)
        return self.bindings


def missing_connections_message(missing: List[str]) -> str:
    if len(missing) == 1:
        return f'Missing connection for "{missing[0]}". Please connect this integration first.'
    return (
        f"Missing connections for: {', '.join(missing)}. "
        "Please connect these integrations first."
    )


def match_connections(
    required: Iterable[str], accounts: Iterable[ConnectedAccount]
) -> ConnectionResolution:
    account_list = list(accounts)
    bindings: ConnectionBindings = {}
    missing: List[str] = []

    for toolkit_slug in required:
        if toolkit_slug in bindings or toolkit_slug in missing:
            continue
        account = next(
            (
                candidate
                for candidate in account_list
                if candidate.toolkit_slug == toolkit_slug and candidate.status == ACTIVE_STATUS
            ),
            None,
        )
        if account is None:
            missing.append(toolkit_slug)
        else:
            bindings[toolkit_slug] = account.account_id

    if missing:
        return ConnectionResolution(
            valid=False,
            errors=[missing_connections_message(missing)],
            missing_connections=missing,
            bindings=bindings,
        )
    return ConnectionResolution(valid=True, bindings=bindings)


async def resolve_connections(
    required: Iterable[str],
    caller_id: str,
    lister: ConnectionLister,
) -> ConnectionResolution:
    """
    Look up the caller's accounts and bind an ACTIVE one to every required
    toolkit. Workflows without required connections never hit the lister.
    """

    required_list = list(required)
    if not required_list:
        return ConnectionResolution(valid=True)

    accounts = await lister.list(caller_id)
    resolution = match_connections(required_list, accounts)
    if resolution.valid:
        logger.info("Resolved %d connection(s) for caller %s", len(resolution.bindings), caller_id)
    else:
        logger.warning(
            "Caller %s is missing connections: %s",
            caller_id,
            ", ".join(resolution.missing_connections),
        )
    return resolution


async def ensure_connections(
    required: Iterable[str],
    caller_id: str,
    lister: ConnectionLister,
) -> ConnectionBindings:
    resolution = await resolve_connections(required, caller_id, lister)
    return resolution.raise_for_missing()
