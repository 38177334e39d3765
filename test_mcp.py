#!/usr/bin/env python3
"""Test SixGate MCP protocol against a running server."""
import os

import pytest
import requests

BASE_URL = os.getenv("SIXGATE_MCP_BASE_URL")
ORG_ID = os.getenv("SIXGATE_TEST_ORGANIZATION_ID", "")

if not BASE_URL:
    pytest.skip(
        "Set SIXGATE_MCP_BASE_URL to run MCP integration tests",
        allow_module_level=True,
    )


def mcp_request(method, params=None):
    """Send one JSON-RPC request to the streamable-http endpoint."""
    payload = {
        "jsonrpc": "2.0",
        "id": 1,
        "method": method,
        "params": params or {},
    }
    resp = requests.post(
        f"{BASE_URL}/mcp/",
        json=payload,
        headers={"Accept": "application/json, text/event-stream"},
        timeout=10,
    )
    resp.raise_for_status()
    return resp.json()


def mcp_call(name, arguments=None):
    return mcp_request("tools/call", {"name": name, "arguments": arguments or {}})


def test_tools_list():
    result = mcp_request("tools/list")
    names = {tool["name"] for tool in result["result"]["tools"]}
    assert {"query_entities", "post_transaction", "search_relationships"} <= names


def test_missing_organization_is_a_guardrail():
    result = mcp_call("validate_smart_code", {"organization_id": "", "smart_code": "HERA.X.Y.v1"})
    assert "result" in result
    assert "ORG_FILTER_MISSING" in str(result["result"])


@pytest.mark.skipif(not ORG_ID, reason="Set SIXGATE_TEST_ORGANIZATION_ID for tenant-scoped calls")
def test_unbalanced_journal_is_rejected():
    result = mcp_call(
        "post_transaction",
        {
            "organization_id": ORG_ID,
            "transaction_code": "HERA.ACCOUNTING.GL.ADJUSTMENT.v1",
            "lines": [{"type": "debit", "amount": 1000}, {"type": "credit", "amount": 800}],
        },
    )
    assert "GL_UNBALANCED" in str(result["result"])
