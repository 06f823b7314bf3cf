from __future__ import annotations

from typing import Iterable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from shared.logger import get_logger

logger = get_logger("api.middleware.auth")

CALLER_HEADER = "X-User-Id"


class CallerIdentityMiddleware(BaseHTTPMiddleware):
    """
    Attaches the caller id supplied by the upstream auth proxy to
    ``request.state.caller_id``. Requests without the header keep ``None``
    and are rejected by the routes that need a caller.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        header_name: str = CALLER_HEADER,
        allow_unauthenticated_paths: Optional[Iterable[str]] = None,
    ) -> None:
        super().__init__(app)
        self._header_name = header_name
        self._allowed_paths = set(allow_unauthenticated_paths or [])

    async def dispatch(self, request: Request, call_next):
        request.state.caller_id = None
        if self._should_skip(request):
            return await call_next(request)

        caller_id = (request.headers.get(self._header_name) or "").strip()
        if caller_id:
            request.state.caller_id = caller_id
        else:
            logger.debug("Request to %s has no %s header", request.url.path, self._header_name)
        return await call_next(request)

    def _should_skip(self, request: Request) -> bool:
        if request.method == "OPTIONS":
            return True

        path = request.scope.get("path") or request.url.path
        for allowed in self._allowed_paths:
            normalized = allowed.rstrip("/") or "/"
            if path == normalized or path.startswith(f"{normalized}/"):
                return True
        return False
