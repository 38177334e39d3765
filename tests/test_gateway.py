from dataclasses import replace
import logging

from sixgate import gateway
from sixgate.context import RequestContext, get_current_request_context


def test_operations_are_listed():
    operations = {op["name"]: op for op in gateway.list_operations()}
    assert set(operations) == {
        "search_smart_codes",
        "validate_smart_code",
        "query_entities",
        "query_transactions",
        "search_relationships",
        "post_transaction",
        "create_entity",
        "set_dynamic_field",
        "create_relationship",
    }
    assert operations["query_entities"]["read_only"] is True
    assert operations["post_transaction"]["read_only"] is False
    assert operations["post_transaction"]["required"] == ["organization_id", "transaction_code", "lines"]
    assert "store" not in operations["query_entities"]["optional"]


def test_missing_organization_checked_first(server_db):
    result = gateway.call_tool("query_entities", {"bogus": 1})
    assert result["guardrail"] == "ORG_FILTER_MISSING"
    assert result["correction"] == "Add organization_id to your request."


def test_unknown_tool(server_db, tenants):
    result = gateway.call_tool("delete_everything", {"organization_id": tenants.a})
    assert result["status"] == "error"
    assert result["guardrail"] is None
    assert result["error_type"] == gateway.UNKNOWN_TOOL


def test_ddl_operation_rejected(server_db, tenants):
    result = gateway.call_tool("create_table", {"organization_id": tenants.a, "table": "customers"})
    assert result["guardrail"] == "DDL_VIOLATION"
    assert result["correction"]


def test_unknown_and_missing_arguments(server_db, tenants):
    unknown = gateway.call_tool("query_entities", {"organization_id": tenants.a, "table": "core_entities"})
    assert unknown["error_type"] == "unknown_argument"
    assert unknown["field"] == "table"

    missing = gateway.call_tool("search_relationships", {"organization_id": tenants.a})
    assert missing["error_type"] == "required"
    assert missing["field"] == "from_entity_id"

    not_a_mapping = gateway.call_tool("query_entities", ["org"])
    assert not_a_mapping["field"] == "arguments"


def test_round_trip_through_gateway(server_db, tenants):
    created = gateway.call_tool(
        "create_entity",
        {
            "organization_id": tenants.a,
            "entity_type": "customer",
            "entity_name": "Ava",
            "dynamic_fields": {"vip_status": True},
        },
    )
    assert created["status"] == "created"

    found = gateway.call_tool(
        "query_entities",
        {"organization_id": tenants.a, "filters": {"vip_status": True}},
    )
    assert found["count"] == 1

    unbalanced = gateway.call_tool(
        "post_transaction",
        {
            "organization_id": tenants.a,
            "transaction_code": "HERA.ACCOUNTING.GL.ADJUSTMENT.v1",
            "lines": [{"type": "debit", "amount": 1000}, {"type": "credit", "amount": 800}],
        },
    )
    assert set(unbalanced) >= {"error", "guardrail", "correction"}
    assert unbalanced["guardrail"] == "GL_UNBALANCED"


def test_request_context_is_scoped_to_the_call(server_db, tenants, caplog):
    context = RequestContext(request_id="req-123", source="test")
    with caplog.at_level(logging.INFO, logger="sixgate"):
        gateway.call_tool("query_entities", {"organization_id": tenants.a}, context=context)

    records = [record for record in caplog.records if record.getMessage() == "tool_call"]
    assert records and records[-1].request_id == "req-123"
    assert get_current_request_context() is None


def test_non_finite_amount_becomes_an_envelope(server_db, tenants):
    result = gateway.call_tool(
        "post_transaction",
        {
            "organization_id": tenants.a,
            "transaction_code": "HERA.ACCOUNTING.GL.ADJUSTMENT.v1",
            "lines": [{"type": "debit", "amount": "NaN"}, {"type": "credit", "amount": 1}],
        },
    )
    assert result["status"] == "error"
    assert result["field"] == "lines[0].amount"
    assert result["error_type"] == "invalid_value"


def test_non_numeric_quantity_becomes_an_envelope(server_db, tenants):
    result = gateway.call_tool(
        "post_transaction",
        {
            "organization_id": tenants.a,
            "transaction_code": "HERA.SALON.SALE.v1",
            "lines": [{"amount": 10, "quantity": [1]}],
        },
    )
    assert result["status"] == "error"
    assert result["field"] == "lines[0].quantity"
    assert result["error_type"] == "invalid_type"


def test_unexpected_failure_is_contained(server_db, tenants, monkeypatch, caplog):
    def explode(organization_id, store=None):
        raise RuntimeError("boom")

    operation = replace(gateway.OPERATIONS["query_entities"], handler=explode)
    monkeypatch.setitem(gateway.OPERATIONS, "query_entities", operation)

    with caplog.at_level(logging.ERROR, logger="sixgate"):
        result = gateway.call_tool("query_entities", {"organization_id": tenants.a})

    assert result["status"] == "error"
    assert result["guardrail"] == "STORE_ERROR"
    assert "boom" not in result["error"]
    assert any(record.getMessage() == "tool_internal_error" and record.exc_info for record in caplog.records)
    assert get_current_request_context() is None
