import pytest

from sixgate.errors import (
    AggregationGrainMissing,
    DDLViolation,
    LedgerImbalance,
    RelationshipDepthExceeded,
    SchemaViolation,
    TenantScopeMissing,
    ValidationIssue,
)
from sixgate.services.guardrails import (
    check_gl_balance,
    check_relationship_depth,
    clamp_limit,
    is_journal_type,
    reject_ddl_operation,
    require_organization,
    require_time_grain,
    resolve_line_side,
)


def test_require_organization():
    assert require_organization("  org-1 ") == "org-1"
    for value in (None, "", "   ", 7):
        with pytest.raises(TenantScopeMissing):
            require_organization(value)


def test_clamp_limit():
    assert clamp_limit(None, default=50, ceiling=1000) == 50
    assert clamp_limit(10, default=50, ceiling=1000) == 10
    assert clamp_limit(5000, default=50, ceiling=1000) == 1000
    for bad in (0, -1, True, "10", 2.5):
        with pytest.raises(ValidationIssue):
            clamp_limit(bad, default=50, ceiling=1000)


def test_relationship_depth():
    assert check_relationship_depth(1) == 1
    assert check_relationship_depth(2) == 2
    with pytest.raises(RelationshipDepthExceeded):
        check_relationship_depth(3)
    with pytest.raises(ValidationIssue):
        check_relationship_depth(0)


def test_time_grain():
    assert require_time_grain("Week") == "week"
    with pytest.raises(AggregationGrainMissing):
        require_time_grain(None)
    with pytest.raises(AggregationGrainMissing):
        require_time_grain("fortnight")


def test_ddl_operations_are_rejected():
    reject_ddl_operation("query_entities")
    with pytest.raises(DDLViolation):
        reject_ddl_operation("create_table")


def test_journal_types_count_as_gl():
    assert is_journal_type("journal_entry")
    assert is_journal_type(" GL_Journal ")
    assert not is_journal_type("sale")
    assert not is_journal_type(None)


def test_line_side_resolution_order():
    assert resolve_line_side({"type": "DR"}) == "debit"
    assert resolve_line_side({"side": "cr"}) == "credit"
    assert resolve_line_side({"metadata": {"entry_type": "credit"}}) == "credit"
    assert resolve_line_side({"debit": 10}) == "debit"
    assert resolve_line_side({"credit": 10, "metadata": {"debit_credit": "debit"}}) == "debit"
    assert resolve_line_side({"amount": 10}) is None


def test_balanced_lines_within_tolerance():
    totals = check_gl_balance([
        {"type": "debit", "amount": 100},
        {"type": "credit", "amount": 99.99},
    ])
    assert totals["DOC"] == {"debits": 100.0, "credits": 99.99}


def test_unbalanced_lines_raise():
    with pytest.raises(LedgerImbalance) as excinfo:
        check_gl_balance([
            {"type": "debit", "amount": 100},
            {"type": "credit", "amount": 90},
        ])
    assert excinfo.value.data["difference"] == 10.0
    assert "debits" in excinfo.value.correction


def test_balance_is_checked_per_currency():
    with pytest.raises(LedgerImbalance) as excinfo:
        check_gl_balance([
            {"debit": 50, "currency": "USD"},
            {"credit": 50, "currency": "USD"},
            {"debit": 20, "currency": "EUR"},
            {"credit": 50, "currency": "USD"},
        ])
    assert excinfo.value.data["currency"] in {"USD", "EUR"}


def test_negative_and_unsided_lines_raise():
    with pytest.raises(LedgerImbalance):
        check_gl_balance([{"type": "debit", "amount": -5}, {"type": "credit", "amount": -5}])
    with pytest.raises(LedgerImbalance):
        check_gl_balance([{"amount": 5}])


def test_store_rejects_foreign_tables_and_unscoped_reads(store, tenants):
    with pytest.raises(SchemaViolation):
        store.select("customers", {"organization_id": tenants.a})
    with pytest.raises(SchemaViolation):
        store.insert("core_entities", {
            "organization_id": tenants.a,
            "entity_type": "customer",
            "entity_name": "Ava",
            "vip_status": True,
        })
    with pytest.raises(TenantScopeMissing):
        store.select("core_entities", {"entity_type": "customer"})
