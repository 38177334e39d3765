"""
SixGate - guarded query and command gateway over the six sacred tables.
Serves the REST tool routes and the MCP streamable-http app.
"""

import os

import uvicorn

from app.main import asgi_app


def main() -> None:
    uvicorn.run(
        asgi_app,
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8080")),
        log_level=os.environ.get("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
