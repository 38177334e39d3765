"""
Standalone FastAPI app wiring for SixGate.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

import sixgate.config as config
from sixgate.db import DB, init_db
from sixgate.mcp import mcp_stream_app, MCPRouteNormalizerASGI
from app.middleware import configure_middleware
from app.routes.health import router as health_router
from app.routes.root import router as root_router
from app.routes.tools import router as tools_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize on startup, cleanup on shutdown."""
    init_db()
    config.logger.info("sixgate_started", extra={"db_backend": config.DB_BACKEND})
    try:
        async with mcp_stream_app.lifespan(mcp_stream_app):
            yield
    finally:
        if DB.engine:
            DB.engine.dispose()


app = FastAPI(title="SixGate", redirect_slashes=False, lifespan=lifespan)
configure_middleware(app)

app.include_router(health_router)
app.include_router(root_router)
app.include_router(tools_router)

app.mount("/mcp/", mcp_stream_app)


# =============================================================================
# ASGI Application (module-level for production deployment)
# =============================================================================

asgi_app = MCPRouteNormalizerASGI(app)
