"""
Composio-backed implementations of the tool executor and connection lister.

Both talk to the Composio v3 REST API over httpx. Tests inject an
``httpx.MockTransport`` through the ``transport`` argument.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from shared.config import config
from shared.logger import get_logger
from workflow_compiler.errors import TransportError
from workflow_compiler.runtime.collaborators import ConnectedAccount, ToolResult

logger = get_logger("shared.composio")


def normalize_status(status: Optional[str]) -> str:
    """Map Composio's detailed statuses into ACTIVE / PENDING / INACTIVE."""
    if status in ("INITIALIZING", "INITIATED"):
        return "PENDING"
    if status == "ACTIVE":
        return "ACTIVE"
    return "INACTIVE"


class ComposioClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else config.composio_api_key
        self.base_url = base_url or config.composio_base_url
        self.timeout = timeout if timeout is not None else config.composio_timeout_seconds
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        if not self.api_key:
            logger.error("COMPOSIO_API_KEY is not set in environment")
            raise TransportError("COMPOSIO_API_KEY must be set in the backend environment")
        return {
            "x-api-key": self.api_key,
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
        )


class ComposioToolExecutor(ComposioClient):
    """Runs a single Composio tool on behalf of a caller."""

    async def execute(
        self,
        tool_id: str,
        *,
        arguments: Dict[str, Any],
        authorized_account_id: Optional[str],
        caller_id: str,
    ) -> ToolResult:
        body: Dict[str, Any] = {"arguments": arguments, "user_id": caller_id}
        if authorized_account_id:
            body["connected_account_id"] = authorized_account_id

        logger.info("Executing Composio tool %s for caller %s", tool_id, caller_id)
        try:
            async with self._client() as client:
                response = await client.post(
                    f"/api/v3/tools/execute/{tool_id}",
                    headers=self._headers(),
                    json=body,
                )
        except httpx.HTTPError as exc:
            logger.error("Composio request for %s failed: %s", tool_id, exc)
            return ToolResult(successful=False, error=f"Tool request failed: {exc}")

        if response.status_code not in (200, 201):
            logger.error(
                "Composio tool %s returned %s: %s",
                tool_id,
                response.status_code,
                response.text[:500],
            )
            return ToolResult(
                successful=False,
                error=f"Tool {tool_id} returned HTTP {response.status_code}: {response.text[:500]}",
            )

        payload = response.json()
        return ToolResult(
            successful=bool(payload.get("successful", False)),
            data=payload.get("data"),
            error=payload.get("error"),
        )


class ComposioConnectionLister(ComposioClient):
    """Lists a caller's connected accounts with normalized statuses."""

    async def list(self, caller_id: str) -> List[ConnectedAccount]:
        try:
            async with self._client() as client:
                response = await client.get(
                    "/api/v3/connected_accounts",
                    headers=self._headers(),
                    params={"user_ids": caller_id},
                )
        except httpx.HTTPError as exc:
            raise TransportError(f"Error fetching connected accounts from Composio: {exc}") from exc

        if response.status_code != 200:
            logger.error(
                "Failed to fetch connected accounts from Composio (%s): %s",
                response.status_code,
                response.text[:500],
            )
            raise TransportError(
                f"Error fetching connected accounts from Composio: {response.text[:500]}"
            )

        accounts: List[ConnectedAccount] = []
        for item in response.json().get("items", []):
            toolkit = item.get("toolkit") if isinstance(item.get("toolkit"), dict) else {}
            slug = toolkit.get("slug")
            if not slug or not item.get("id"):
                continue
            accounts.append(
                ConnectedAccount(
                    toolkit_slug=slug,
                    status=normalize_status(item.get("status")),
                    account_id=item["id"],
                )
            )
        logger.debug("Caller %s has %d connected account(s)", caller_id, len(accounts))
        return accounts
