"""
Shared error types for core services.

Guardrail violations are typed: the gateway maps each subclass to its stable
``GuardrailCode`` and corrective hint without looking at message text.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class ValidationIssue(ValueError):
    def __init__(
        self,
        message: str,
        field: str = "unknown",
        error_type: str = "invalid",
        error_code: str | None = None,
        data: dict | None = None,
    ):
        super().__init__(message)
        self.field = field
        self.error_type = error_type
        self.error_code = error_code
        self.data = data


class GuardrailCode(str, Enum):
    org_filter_missing = "ORG_FILTER_MISSING"
    org_scope_violation = "ORG_SCOPE_VIOLATION"
    table_violation = "TABLE_VIOLATION"
    ddl_violation = "DDL_VIOLATION"
    smart_code_invalid = "SMART_CODE_INVALID"
    smart_code_unknown = "SMART_CODE_UNKNOWN"
    gl_unbalanced = "GL_UNBALANCED"
    fanout_limit = "FANOUT_LIMIT"
    aggregation_grain_missing = "AGGREGATION_GRAIN_MISSING"
    partial_write = "PARTIAL_WRITE"
    store_error = "STORE_ERROR"


class GuardrailViolation(Exception):
    """Base class for invariant violations surfaced to callers."""

    code: GuardrailCode
    correction: str = ""

    def __init__(
        self,
        message: str,
        *,
        correction: Optional[str] = None,
        data: Optional[dict] = None,
    ):
        super().__init__(message)
        if correction is not None:
            self.correction = correction
        self.data = data or {}


class TenantScopeMissing(GuardrailViolation):
    code = GuardrailCode.org_filter_missing
    correction = "Add organization_id to your request."


class CrossTenantReference(GuardrailViolation):
    code = GuardrailCode.org_scope_violation
    correction = "Reference only records that belong to the requesting organization_id."


class SchemaViolation(GuardrailViolation):
    code = GuardrailCode.table_violation
    correction = (
        "Only the six sacred tables exist: core_organizations, core_entities, "
        "core_dynamic_data, core_relationships, universal_transactions, "
        "universal_transaction_lines. Store extra attributes as dynamic fields."
    )


class DDLViolation(GuardrailViolation):
    code = GuardrailCode.ddl_violation
    correction = (
        "Schema changes are not permitted. Model new attributes with set_dynamic_field "
        "and new nouns as entities."
    )


class SmartCodeMalformed(GuardrailViolation):
    code = GuardrailCode.smart_code_invalid
    correction = (
        "Use the format HERA.<INDUSTRY>.<MODULE>...v<N>; call search_smart_codes to find "
        "a valid code."
    )


class SmartCodeUnknown(GuardrailViolation):
    code = GuardrailCode.smart_code_unknown
    correction = (
        "Call search_smart_codes to find an existing code, or allow the first instance "
        "of this code to be created."
    )


class LedgerImbalance(GuardrailViolation):
    code = GuardrailCode.gl_unbalanced
    correction = (
        "Adjust the lines so total debits equal total credits (tolerance 0.01) and mark "
        "every line as debit or credit."
    )


class RelationshipDepthExceeded(GuardrailViolation):
    code = GuardrailCode.fanout_limit
    correction = (
        "Use depth 1 or 2; to go further, page manually by calling search_relationships "
        "again from the returned entity ids."
    )


class AggregationGrainMissing(GuardrailViolation):
    code = GuardrailCode.aggregation_grain_missing
    correction = "Add time.grain (hour, day, week, month, quarter or year) when using group_by."


class PartialWriteState(GuardrailViolation):
    code = GuardrailCode.partial_write
    correction = (
        "The transaction header was stored but its lines were not; repair it by "
        "re-posting the lines or discard the header referenced by transaction_id."
    )

    def __init__(self, message: str, *, transaction_id: str, **kwargs):
        super().__init__(message, **kwargs)
        self.transaction_id = transaction_id
        self.data.setdefault("transaction_id", transaction_id)


class StoreFailure(GuardrailViolation):
    code = GuardrailCode.store_error
    correction = "The store rejected the operation; retry the request or check the arguments."


__all__ = [
    "ValidationIssue",
    "GuardrailCode",
    "GuardrailViolation",
    "TenantScopeMissing",
    "CrossTenantReference",
    "SchemaViolation",
    "DDLViolation",
    "SmartCodeMalformed",
    "SmartCodeUnknown",
    "LedgerImbalance",
    "RelationshipDepthExceeded",
    "AggregationGrainMissing",
    "PartialWriteState",
    "StoreFailure",
]
