"""
Shared helpers for gateway services: error envelopes, logging, serialization.
"""

from __future__ import annotations

from datetime import date, datetime
from functools import wraps
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError

import sixgate.config as config
from sixgate.context import get_current_request_context
from sixgate.errors import GuardrailViolation, StoreFailure, ValidationIssue
from sixgate.validators import (
    validate_list as _validate_list,
    validate_mapping as _validate_mapping,
    validate_metadata as _validate_metadata,
    validate_number as _validate_number,
    validate_optional_text as _validate_optional_text,
    validate_required_text as _validate_required_text,
    validate_string_list as _validate_string_list,
)

logger = config.logger

MAX_SHORT_TEXT_LENGTH = config.MAX_SHORT_TEXT_LENGTH
MAX_LIST_ITEMS = config.MAX_LIST_ITEMS

_CORRECTIONS = {
    "required": "Provide a value for '{field}'.",
    "invalid_type": "Pass '{field}' with the documented type.",
    "invalid_value": "Use an allowed value for '{field}'.",
    "max_length": "Shorten '{field}'.",
    "max_items": "Send fewer items in '{field}'.",
    "max_bytes": "Reduce the size of '{field}'.",
    "out_of_range": "Keep '{field}' within the documented range.",
    "not_found": "Check that '{field}' refers to an existing record in this organization.",
    "unknown_argument": "Remove '{field}'; it is not a parameter of this tool.",
    "unknown_tool": "Call one of the tools listed by list_operations.",
}


def to_jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    return value


def _request_id() -> str | None:
    context = get_current_request_context()
    return context.request_id if context else None


def guardrail_payload(tool_name: str, exc: GuardrailViolation) -> dict:
    payload = {
        "status": "error",
        "tool": tool_name,
        "error": str(exc),
        "guardrail": exc.code.value,
        "correction": exc.correction,
    }
    if exc.data:
        payload["details"] = to_jsonable(exc.data)
    return payload


def validation_payload(tool_name: str, exc: ValidationIssue) -> dict:
    template = _CORRECTIONS.get(exc.error_type, "Correct '{field}' and retry.")
    return {
        "status": "error",
        "tool": tool_name,
        "error": str(exc),
        "guardrail": None,
        "correction": template.format(field=exc.field),
        "field": exc.field,
        "error_type": exc.error_type,
    }


def _log_guardrail_violation(tool_name: str, exc: GuardrailViolation) -> None:
    logger.warning(
        "tool_guardrail_violation",
        extra={
            "tool": tool_name,
            "guardrail": exc.code.value,
            "detail": str(exc),
            "request_id": _request_id(),
        },
    )


def _log_validation_issue(tool_name: str, exc: ValidationIssue, warn: bool = False) -> None:
    payload = {
        "tool": tool_name,
        "field": exc.field,
        "error_type": exc.error_type,
        "detail": str(exc),
        "request_id": _request_id(),
    }
    if warn:
        logger.warning("tool_validation_error", extra=payload)
    else:
        logger.info("tool_validation_error", extra=payload)


def error_payload(tool_name: str, exc: Exception) -> dict:
    """Turn a known failure into the caller-facing envelope; re-raise anything else."""
    if isinstance(exc, GuardrailViolation):
        _log_guardrail_violation(tool_name, exc)
        return guardrail_payload(tool_name, exc)
    if isinstance(exc, ValidationIssue):
        _log_validation_issue(tool_name, exc, warn=False)
        return validation_payload(tool_name, exc)
    if isinstance(exc, SQLAlchemyError):
        failure = StoreFailure(f"store error during {tool_name}")
        logger.error(
            "tool_store_error",
            extra={"tool": tool_name, "error_type": type(exc).__name__, "request_id": _request_id()},
        )
        return guardrail_payload(tool_name, failure)
    if isinstance(exc, ValueError):
        issue = ValidationIssue(str(exc), field="unknown", error_type="value_error")
        _log_validation_issue(tool_name, issue, warn=True)
        return validation_payload(tool_name, issue)
    raise exc


def internal_error_payload(tool_name: str, exc: Exception) -> dict:
    """Last stop for failures no service mapped; the caller sees STORE_ERROR only."""
    logger.exception(
        "tool_internal_error",
        extra={"tool": tool_name, "error_type": type(exc).__name__, "request_id": _request_id()},
    )
    return guardrail_payload(tool_name, StoreFailure(f"internal error during {tool_name}"))


def _tool_error_handler(fn: Callable[..., dict]) -> Callable[..., dict]:
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except (GuardrailViolation, ValueError, SQLAlchemyError) as exc:
            return error_payload(fn.__name__, exc)
    return wrapper


def service_tool(fn: Callable[..., dict]) -> Callable[..., dict]:
    return _tool_error_handler(fn)


def is_error(result: dict) -> bool:
    return isinstance(result, dict) and result.get("status") == "error"


__all__ = [
    "logger",
    "service_tool",
    "error_payload",
    "internal_error_payload",
    "guardrail_payload",
    "validation_payload",
    "to_jsonable",
    "is_error",
    "_validate_list",
    "_validate_mapping",
    "_validate_metadata",
    "_validate_number",
    "_validate_optional_text",
    "_validate_required_text",
    "_validate_string_list",
    "MAX_SHORT_TEXT_LENGTH",
    "MAX_LIST_ITEMS",
]
