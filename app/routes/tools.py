"""
REST surface over the tool gateway.

``POST /tools/{name}`` takes the argument bag as its JSON body and returns the
same envelope the MCP tools return.
"""

from __future__ import annotations

import json
import uuid

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from sixgate import gateway
from sixgate.context import RequestContext
from sixgate.errors import ValidationIssue
from sixgate.services.shared import is_error, validation_payload


router = APIRouter()


def _status_code(result: dict) -> int:
    if not is_error(result):
        return 200
    if result.get("error_type") == gateway.UNKNOWN_TOOL:
        return 404
    return 400


@router.get("/tools")
async def list_tools():
    """List the operations the gateway dispatches."""
    return {"status": "ok", "operations": gateway.list_operations()}


@router.post("/tools/{name}")
async def invoke_tool(name: str, request: Request):
    """Invoke one operation with the request body as its arguments."""
    raw = await request.body()
    try:
        arguments = json.loads(raw) if raw.strip() else {}
    except json.JSONDecodeError:
        issue = ValidationIssue("request body must be a JSON object", field="arguments", error_type="invalid_type")
        return JSONResponse(validation_payload(name, issue), status_code=400)

    context = RequestContext(
        request_id=request.headers.get("x-request-id") or uuid.uuid4().hex,
        source="rest",
        actor=request.headers.get("x-actor"),
    )
    result = await run_in_threadpool(gateway.call_tool, name, arguments, context=context)
    return JSONResponse(result, status_code=_status_code(result))
