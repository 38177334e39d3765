from sixgate.mcp.server import (
    mcp,
    mcp_stream_app,
    tool_inventory_status,
    MCPRouteNormalizerASGI,
)

__all__ = [
    "mcp",
    "mcp_stream_app",
    "tool_inventory_status",
    "MCPRouteNormalizerASGI",
]
