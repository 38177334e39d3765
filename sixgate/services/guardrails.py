"""
Pre-execution guardrails.

Each check either returns a normalized value or raises the typed violation for
its invariant; none of them touch the store except ``require_tenant_record``.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import sixgate.config as config
from sixgate.errors import (
    AggregationGrainMissing,
    CrossTenantReference,
    DDLViolation,
    LedgerImbalance,
    RelationshipDepthExceeded,
    TenantScopeMissing,
    ValidationIssue,
)
from sixgate.services.shared import logger
from sixgate.store import RowStore

TIME_GRAINS = ("hour", "day", "week", "month", "quarter", "year")

DDL_OPERATIONS = frozenset({
    "create_table",
    "alter_table",
    "drop_table",
    "add_column",
    "drop_column",
    "rename_column",
    "create_index",
})

DEBIT = "debit"
CREDIT = "credit"
_SIDE_ALIASES = {
    "debit": DEBIT,
    "dr": DEBIT,
    "credit": CREDIT,
    "cr": CREDIT,
}
_SIDE_KEYS = ("type", "side", "debit_credit", "entry_type")
GL_TRANSACTION_TYPES = frozenset({"journal_entry", "gl_journal"})


def require_organization(organization_id: Any) -> str:
    if not isinstance(organization_id, str) or not organization_id.strip():
        raise TenantScopeMissing("organization_id is required for every operation")
    return organization_id.strip()


def reject_ddl_operation(operation: str) -> None:
    if operation in DDL_OPERATIONS:
        raise DDLViolation(
            f"operation '{operation}' would alter the schema",
            data={"operation": operation},
        )


def clamp_limit(limit: Any, *, default: int, ceiling: int, field: str = "limit") -> int:
    """Apply the default and hard ceiling to a caller-supplied limit."""
    if limit is None:
        return min(default, ceiling)
    if isinstance(limit, bool) or not isinstance(limit, int):
        raise ValidationIssue(f"{field} must be an integer", field=field, error_type="invalid_type")
    if limit <= 0:
        raise ValidationIssue(f"{field} must be positive", field=field, error_type="out_of_range")
    if limit > ceiling:
        logger.info("limit_clamped", extra={"field": field, "requested": limit, "ceiling": ceiling})
        return ceiling
    return limit


def check_relationship_depth(depth: Any) -> int:
    if isinstance(depth, bool) or not isinstance(depth, int):
        raise ValidationIssue("depth must be an integer", field="depth", error_type="invalid_type")
    if depth < 1:
        raise ValidationIssue("depth must be at least 1", field="depth", error_type="out_of_range")
    if depth > config.MAX_RELATIONSHIP_DEPTH:
        raise RelationshipDepthExceeded(
            f"relationship depth {depth} exceeds the maximum of {config.MAX_RELATIONSHIP_DEPTH}",
            data={"requested_depth": depth, "max_depth": config.MAX_RELATIONSHIP_DEPTH},
        )
    return depth


def require_time_grain(grain: Any) -> str:
    if grain is None or (isinstance(grain, str) and not grain.strip()):
        raise AggregationGrainMissing("group_by requires time.grain")
    if not isinstance(grain, str) or grain.strip().lower() not in TIME_GRAINS:
        raise AggregationGrainMissing(
            f"unknown time grain '{grain}'",
            data={"allowed": list(TIME_GRAINS)},
        )
    return grain.strip().lower()


def is_journal_type(transaction_type: Optional[str]) -> bool:
    return bool(transaction_type) and transaction_type.strip().lower() in GL_TRANSACTION_TYPES


def _to_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, bool):
        raise ValidationIssue(f"{field} must be a number", field=field, error_type="invalid_type")
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationIssue(f"{field} must be a number", field=field, error_type="invalid_type") from exc
    if not number.is_finite():
        raise ValidationIssue(f"{field} must be a finite number", field=field, error_type="invalid_value")
    return number


def resolve_line_amount(line: dict, index: int) -> Decimal:
    field = f"lines[{index}]"
    for key in ("line_amount", "amount"):
        if line.get(key) is not None:
            return _to_decimal(line[key], f"{field}.{key}")
    for key in ("debit", "credit"):
        if line.get(key):
            return _to_decimal(line[key], f"{field}.{key}")
    if line.get("quantity") is not None and line.get("unit_price") is not None:
        quantity = _to_decimal(line["quantity"], f"{field}.quantity")
        unit_price = _to_decimal(line["unit_price"], f"{field}.unit_price")
        return quantity * unit_price
    return Decimal("0")


def resolve_line_side(line: dict) -> Optional[str]:
    metadata = line.get("metadata") if isinstance(line.get("metadata"), dict) else {}
    for source in (line, metadata):
        for key in _SIDE_KEYS:
            value = source.get(key)
            if isinstance(value, str) and value.strip().lower() in _SIDE_ALIASES:
                return _SIDE_ALIASES[value.strip().lower()]
    if line.get("debit"):
        return DEBIT
    if line.get("credit"):
        return CREDIT
    return None


def _line_currency(line: dict) -> str:
    metadata = line.get("metadata") if isinstance(line.get("metadata"), dict) else {}
    return str(line.get("currency") or metadata.get("currency") or "DOC").upper()


def check_gl_balance(lines: list[dict], tolerance: Optional[float] = None) -> dict:
    """Require debits == credits per currency within tolerance; returns the totals."""
    allowed = _to_decimal(config.GL_TOLERANCE if tolerance is None else tolerance, "tolerance")
    totals: dict[str, dict[str, Decimal]] = {}
    for index, line in enumerate(lines):
        side = resolve_line_side(line)
        if side is None:
            raise LedgerImbalance(
                f"GL line {index + 1} is not marked as debit or credit",
                data={"line": index + 1},
            )
        amount = resolve_line_amount(line, index)
        if amount < 0:
            raise LedgerImbalance(
                f"GL line {index + 1} has a negative amount",
                data={"line": index + 1, "amount": str(amount)},
            )
        bucket = totals.setdefault(_line_currency(line), {DEBIT: Decimal("0"), CREDIT: Decimal("0")})
        bucket[side] += amount

    for currency, bucket in totals.items():
        difference = abs(bucket[DEBIT] - bucket[CREDIT])
        if difference > allowed:
            raise LedgerImbalance(
                f"GL not balanced for {currency}: debits={bucket[DEBIT]} credits={bucket[CREDIT]}",
                data={
                    "currency": currency,
                    "total_debits": float(bucket[DEBIT]),
                    "total_credits": float(bucket[CREDIT]),
                    "difference": float(difference),
                },
            )
    return {
        currency: {"debits": float(bucket[DEBIT]), "credits": float(bucket[CREDIT])}
        for currency, bucket in totals.items()
    }


def require_tenant_record(
    store: RowStore,
    table: str,
    organization_id: str,
    record_id: Any,
    *,
    field: str,
) -> dict:
    """Fetch a record by id inside the tenant, or fail as a cross-tenant reference."""
    if not isinstance(record_id, str) or not record_id.strip():
        raise ValidationIssue(f"{field} must be a non-empty string", field=field, error_type="required")
    rows = store.select(table, {"organization_id": organization_id, "id": record_id}, limit=1)
    if not rows:
        raise CrossTenantReference(
            f"{field} does not reference a record in this organization",
            data={"field": field, "id": record_id},
        )
    return rows[0]


__all__ = [
    "TIME_GRAINS",
    "DDL_OPERATIONS",
    "DEBIT",
    "CREDIT",
    "require_organization",
    "reject_ddl_operation",
    "clamp_limit",
    "check_relationship_depth",
    "require_time_grain",
    "is_journal_type",
    "resolve_line_amount",
    "resolve_line_side",
    "check_gl_balance",
    "require_tenant_record",
]
