"""
Root endpoint with service metadata.
"""

from __future__ import annotations

from fastapi import APIRouter

import sixgate.config as config
from sixgate.models import SACRED_TABLES


router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint with service info."""
    return {
        "service": "SixGate",
        "version": config.SERVICE_VERSION,
        "description": "Guarded query and command gateway over the six sacred tables",
        "tables": list(SACRED_TABLES),
        "endpoints": {
            "health": "/health",
            "health_tools": "/health/tools",
            "tools": "/tools",
            "invoke": "/tools/{name}",
            "mcp": "/mcp",
        },
    }
