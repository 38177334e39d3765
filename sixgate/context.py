"""
Request-scoped context objects for core services.

The tenant is never part of the ambient context: every operation receives
organization_id explicitly. The context only carries correlation data for logs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional
import contextvars
import uuid


@dataclass(frozen=True)
class RequestContext:
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    source: Optional[str] = None
    actor: Optional[str] = None


_CURRENT_REQUEST_CONTEXT: contextvars.ContextVar[Optional["RequestContext"]] = contextvars.ContextVar(
    "sixgate_request_context",
    default=None,
)


def get_current_request_context() -> Optional["RequestContext"]:
    return _CURRENT_REQUEST_CONTEXT.get()


def set_current_request_context(context: Optional["RequestContext"]) -> contextvars.Token:
    return _CURRENT_REQUEST_CONTEXT.set(context)


def reset_current_request_context(token: contextvars.Token) -> None:
    _CURRENT_REQUEST_CONTEXT.reset(token)


def resolve_request_context(context: Optional["RequestContext"] = None) -> "RequestContext":
    if context is not None:
        return context
    current = get_current_request_context()
    if current is not None:
        return current
    return RequestContext(source="direct")


__all__ = [
    "RequestContext",
    "get_current_request_context",
    "set_current_request_context",
    "reset_current_request_context",
    "resolve_request_context",
]
