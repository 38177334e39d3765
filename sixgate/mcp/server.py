"""
MCP server wiring and tool registration.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Optional

from fastmcp import FastMCP

import sixgate.config as config
from sixgate import gateway
from sixgate.mcp.context_middleware import MCPRequestContextMiddleware, get_current_context

READ_ONLY_TOOL_ANNOTATIONS = {"readOnlyHint": True}
WRITE_TOOL_ANNOTATIONS = {"destructiveHint": False}

mcp = FastMCP("SixGate")

_REGISTERED_TOOLS: list[tuple[Callable[..., dict], tuple[Any, ...], dict[str, Any]]] = []
_TOOL_REGISTRY_LOCK = threading.Lock()
_LAST_TOOL_COUNT: Optional[int] = None


def mcp_tool(*args, **kwargs):
    """Register a tool with FastMCP and keep a local registry for rebinding."""
    def decorator(fn: Callable[..., dict]):
        _REGISTERED_TOOLS.append((fn, args, kwargs))
        mcp.tool(*args, **kwargs)(fn)
        return fn
    return decorator


def _record_tool_inventory_count(tool_count: int) -> None:
    global _LAST_TOOL_COUNT
    with _TOOL_REGISTRY_LOCK:
        if tool_count == 0 and (_LAST_TOOL_COUNT is None or _LAST_TOOL_COUNT > 0):
            config.logger.warning("tool_inventory_empty", extra={"tool_count": tool_count})
        elif tool_count > 0 and _LAST_TOOL_COUNT == 0:
            config.logger.info("tool_inventory_restored", extra={"tool_count": tool_count})
        _LAST_TOOL_COUNT = tool_count


def _rebind_tool_registry(reason: str) -> None:
    with _TOOL_REGISTRY_LOCK:
        for fn, args, kwargs in _REGISTERED_TOOLS:
            mcp.tool(*args, **kwargs)(fn)
        config.logger.warning(
            "tool_registry_rebind",
            extra={"reason": reason, "tool_count": len(_REGISTERED_TOOLS)},
        )


async def tool_inventory_status(refresh_if_empty: bool = False, reason: str = "") -> dict:
    """Return tool inventory details and optionally rebind when empty."""
    tools = await mcp.get_tools()
    tool_names = sorted(tools.keys())

    refreshed = False
    if refresh_if_empty and not tool_names:
        refreshed = True
        _rebind_tool_registry(reason or "inventory_empty")
        tools = await mcp.get_tools()
        tool_names = sorted(tools.keys())

    tool_count = len(tool_names)
    _record_tool_inventory_count(tool_count)
    return {
        "tool_count": tool_count,
        "tools": tool_names,
        "operations": gateway.list_operations(),
        "refreshed": refreshed,
        "retry_after_seconds": config.TOOL_INVENTORY_RETRY_SECONDS if tool_count == 0 else None,
    }


@mcp.resource(
    "sixgate://tool-inventory",
    name="sixgate_tool_inventory",
    mime_type="application/json",
)
async def tool_inventory_resource() -> dict:
    """Expose tool inventory as a resource for discovery fallbacks."""
    return await tool_inventory_status(refresh_if_empty=True, reason="resource_read")


def _call(name: str, **arguments) -> dict:
    return gateway.call_tool(name, arguments, context=get_current_context())


@mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
def search_smart_codes(
    organization_id: str,
    search_text: str,
    industry: Optional[str] = None,
    module: Optional[str] = None,
) -> dict:
    """Search the smart codes an organization uses, by code fragment or meaning."""
    return _call(
        "search_smart_codes",
        organization_id=organization_id,
        search_text=search_text,
        industry=industry,
        module=module,
    )


@mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
def validate_smart_code(organization_id: str, smart_code: str) -> dict:
    """Check a smart code's format, whether it is in use, and whether a newer version exists."""
    return _call("validate_smart_code", organization_id=organization_id, smart_code=smart_code)


@mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
def query_entities(
    organization_id: str,
    entity_type: Optional[str] = None,
    smart_code: Optional[str] = None,
    filters: Optional[dict] = None,
    select: Optional[list[str]] = None,
    limit: int = config.DEFAULT_ENTITY_LIMIT,
) -> dict:
    """Query entities; filters match dynamic fields or base columns by equality."""
    return _call(
        "query_entities",
        organization_id=organization_id,
        entity_type=entity_type,
        smart_code=smart_code,
        filters=filters,
        select=select,
        limit=limit,
    )


@mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
def query_transactions(
    organization_id: str,
    transaction_type: Optional[str] = None,
    smart_code: Optional[str] = None,
    time: Optional[dict] = None,
    filters: Optional[dict] = None,
    group_by: Optional[list[str]] = None,
    metrics: Optional[list[str]] = None,
    limit: int = config.DEFAULT_TRANSACTION_LIMIT,
) -> dict:
    """Query transactions. time takes start, end and grain; group_by requires time.grain and ignores limit."""
    return _call(
        "query_transactions",
        organization_id=organization_id,
        transaction_type=transaction_type,
        smart_code=smart_code,
        time=time,
        filters=filters,
        group_by=group_by,
        metrics=metrics,
        limit=limit,
    )


@mcp_tool(annotations=READ_ONLY_TOOL_ANNOTATIONS)
def search_relationships(
    organization_id: str,
    from_entity_id: str,
    relationship_type: Optional[str] = None,
    direction: str = "outgoing",
    depth: int = 1,
) -> dict:
    """Traverse relationships from an entity; depth is 1 or 2."""
    return _call(
        "search_relationships",
        organization_id=organization_id,
        from_entity_id=from_entity_id,
        relationship_type=relationship_type,
        direction=direction,
        depth=depth,
    )


@mcp_tool(annotations=WRITE_TOOL_ANNOTATIONS)
def post_transaction(
    organization_id: str,
    transaction_code: str,
    lines: list[dict],
    header: Optional[dict] = None,
    allow_new_smart_code: bool = True,
) -> dict:
    """Post a transaction. transaction_code is its smart code; GL codes must balance."""
    return _call(
        "post_transaction",
        organization_id=organization_id,
        transaction_code=transaction_code,
        lines=lines,
        header=header,
        allow_new_smart_code=allow_new_smart_code,
    )


@mcp_tool(annotations=WRITE_TOOL_ANNOTATIONS)
def create_entity(
    organization_id: str,
    entity_type: str,
    entity_name: str,
    entity_code: Optional[str] = None,
    smart_code: Optional[str] = None,
    status: str = "active",
    metadata: Optional[dict] = None,
    dynamic_fields: Optional[dict] = None,
) -> dict:
    return _call(
        "create_entity",
        organization_id=organization_id,
        entity_type=entity_type,
        entity_name=entity_name,
        entity_code=entity_code,
        smart_code=smart_code,
        status=status,
        metadata=metadata,
        dynamic_fields=dynamic_fields,
    )


@mcp_tool(annotations=WRITE_TOOL_ANNOTATIONS)
def set_dynamic_field(
    organization_id: str,
    entity_id: str,
    field_name: str,
    value: Any,
    field_type: Optional[str] = None,
) -> dict:
    return _call(
        "set_dynamic_field",
        organization_id=organization_id,
        entity_id=entity_id,
        field_name=field_name,
        value=value,
        field_type=field_type,
    )


@mcp_tool(annotations=WRITE_TOOL_ANNOTATIONS)
def create_relationship(
    organization_id: str,
    from_entity_id: str,
    to_entity_id: str,
    relationship_type: str,
    relationship_strength: Optional[float] = None,
    smart_code: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> dict:
    return _call(
        "create_relationship",
        organization_id=organization_id,
        from_entity_id=from_entity_id,
        to_entity_id=to_entity_id,
        relationship_type=relationship_type,
        relationship_strength=relationship_strength,
        smart_code=smart_code,
        metadata=metadata,
    )


mcp_stream_app = MCPRequestContextMiddleware(mcp.http_app(
    path="/",
    transport="streamable-http",
    stateless_http=True,
    json_response=True,
))


class MCPRouteNormalizerASGI:
    """Pure ASGI middleware - no response buffering, SSE-safe."""
    def __init__(self, wrapped_app):
        self.wrapped_app = wrapped_app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http" and scope.get("path") == "/mcp":
            scope = dict(scope)
            scope["path"] = "/mcp/"
        await self.wrapped_app(scope, receive, send)
