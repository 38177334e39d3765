"""
ASGI middleware that attaches a RequestContext to each MCP request.

The context only carries correlation data (request id, source, actor). Tenant
scope always comes from the tool's organization_id argument.
"""

from __future__ import annotations

import uuid
from typing import Optional

from sixgate.context import (
    RequestContext,
    get_current_request_context,
    reset_current_request_context,
    set_current_request_context,
)


def get_current_context(source: str = "mcp") -> RequestContext:
    """Get current request context, or a fresh one if not set."""
    ctx = get_current_request_context()
    if ctx is not None:
        return ctx
    return RequestContext(source=source)


def _header(scope, name: bytes) -> Optional[str]:
    for header_name, header_value in scope.get("headers", []):
        if header_name.lower() == name:
            value = header_value.decode("latin1").strip()
            return value or None
    return None


class MCPRequestContextMiddleware:
    """Pure ASGI wrapper; sets the context for the lifetime of one HTTP request."""

    def __init__(self, app):
        self.app = app

    def __getattr__(self, name):
        return getattr(self.app, name)

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        req_ctx = RequestContext(
            request_id=_header(scope, b"x-request-id") or uuid.uuid4().hex,
            source="mcp",
            actor=_header(scope, b"x-actor"),
        )
        token = set_current_request_context(req_ctx)
        try:
            await self.app(scope, receive, send)
        finally:
            reset_current_request_context(token)


__all__ = ["MCPRequestContextMiddleware", "get_current_context"]
