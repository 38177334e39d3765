"""
Tool gateway: one entry point from (operation name, argument bag) to a service.

Every outcome is a dict. Failures come back as the error envelope built in
``sixgate.services.shared``; nothing raises across ``call_tool``.
"""

from __future__ import annotations

from dataclasses import dataclass
import inspect
import time
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError

from sixgate.context import (
    RequestContext,
    reset_current_request_context,
    resolve_request_context,
    set_current_request_context,
)
from sixgate.errors import GuardrailViolation, ValidationIssue
from sixgate.services import entities, relationships, smart_codes, transactions
from sixgate.services.guardrails import reject_ddl_operation, require_organization
from sixgate.services.shared import error_payload, internal_error_payload, is_error, logger
from sixgate.store import RowStore

UNKNOWN_TOOL = "unknown_tool"


@dataclass(frozen=True)
class Operation:
    name: str
    handler: Callable[..., dict]
    read_only: bool
    summary: str

    @property
    def parameters(self) -> dict[str, inspect.Parameter]:
        params = inspect.signature(self.handler).parameters
        return {name: param for name, param in params.items() if name != "store"}

    @property
    def required(self) -> list[str]:
        return [
            name for name, param in self.parameters.items()
            if param.default is inspect.Parameter.empty
        ]

    @property
    def optional(self) -> list[str]:
        return [
            name for name, param in self.parameters.items()
            if param.default is not inspect.Parameter.empty
        ]

    def describe(self) -> dict:
        return {
            "name": self.name,
            "summary": self.summary,
            "read_only": self.read_only,
            "required": self.required,
            "optional": self.optional,
        }


def _operations(*ops: Operation) -> dict[str, Operation]:
    return {op.name: op for op in ops}


OPERATIONS = _operations(
    Operation("search_smart_codes", smart_codes.search_smart_codes, True,
              "Search the smart codes in use by an organization."),
    Operation("validate_smart_code", smart_codes.validate_smart_code, True,
              "Check format, existence and version status of a smart code."),
    Operation("query_entities", entities.query_entities, True,
              "Query entities with their dynamic fields flattened in."),
    Operation("query_transactions", transactions.query_transactions, True,
              "Query transactions in a time window, raw or grouped."),
    Operation("search_relationships", relationships.search_relationships, True,
              "Traverse relationships one or two hops from an entity."),
    Operation("post_transaction", transactions.post_transaction, False,
              "Post a transaction header with lines; GL codes must balance."),
    Operation("create_entity", entities.create_entity, False,
              "Create an entity with optional typed dynamic fields."),
    Operation("set_dynamic_field", entities.set_dynamic_field, False,
              "Set one typed dynamic field on an entity."),
    Operation("create_relationship", relationships.create_relationship, False,
              "Link two entities of the same organization."),
)


def list_operations() -> list[dict]:
    return [op.describe() for op in OPERATIONS.values()]


def _resolve_operation(name: Any) -> Operation:
    if not isinstance(name, str) or not name.strip():
        raise ValidationIssue("tool name is required", field="tool", error_type="required")
    reject_ddl_operation(name)
    operation = OPERATIONS.get(name)
    if operation is None:
        raise ValidationIssue(
            f"unknown tool '{name}'",
            field="tool",
            error_type=UNKNOWN_TOOL,
        )
    return operation


def _bind_arguments(operation: Operation, arguments: Any) -> dict:
    if arguments is None:
        arguments = {}
    if not isinstance(arguments, dict):
        raise ValidationIssue("arguments must be an object", field="arguments", error_type="invalid_type")
    org_id = require_organization(arguments.get("organization_id"))

    parameters = operation.parameters
    for key in arguments:
        if key not in parameters:
            raise ValidationIssue(
                f"{operation.name} does not accept '{key}'",
                field=key,
                error_type="unknown_argument",
            )
    for key in operation.required:
        if arguments.get(key) is None:
            raise ValidationIssue(f"{key} is required", field=key, error_type="required")
    return {**arguments, "organization_id": org_id}


def call_tool(
    name: str,
    arguments: Optional[dict] = None,
    *,
    store: Optional[RowStore] = None,
    context: Optional[RequestContext] = None,
) -> dict:
    """Dispatch a named operation and return its result or error envelope."""
    request_context = resolve_request_context(context)
    token = set_current_request_context(request_context)
    tool_name = name if isinstance(name, str) else "unknown"
    started = time.perf_counter()
    try:
        try:
            operation = _resolve_operation(name)
            bound = _bind_arguments(operation, arguments)
        except (GuardrailViolation, ValueError, SQLAlchemyError) as exc:
            return error_payload(tool_name, exc)

        try:
            result = operation.handler(**bound, store=store)
        except Exception as exc:
            result = internal_error_payload(tool_name, exc)
        logger.info(
            "tool_call",
            extra={
                "tool": tool_name,
                "organization_id": bound["organization_id"],
                "request_id": request_context.request_id,
                "source": request_context.source,
                "outcome": "error" if is_error(result) else "ok",
                "duration_ms": int((time.perf_counter() - started) * 1000),
            },
        )
        return result
    finally:
        reset_current_request_context(token)


__all__ = [
    "OPERATIONS",
    "Operation",
    "UNKNOWN_TOOL",
    "call_tool",
    "list_operations",
]
