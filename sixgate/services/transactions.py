"""
Transaction services: windowed/grouped queries and the guarded posting command.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
import secrets
from typing import Any, Optional

import sixgate.config as config
from sixgate.errors import PartialWriteState, StoreFailure, ValidationIssue
from sixgate.services.guardrails import (
    check_gl_balance,
    clamp_limit,
    is_journal_type,
    require_organization,
    require_tenant_record,
    require_time_grain,
    resolve_line_amount,
    resolve_line_side,
)
from sixgate.services.shared import (
    MAX_LIST_ITEMS,
    MAX_SHORT_TEXT_LENGTH,
    _validate_list,
    _validate_mapping,
    _validate_metadata,
    _validate_number,
    _validate_optional_text,
    _validate_string_list,
    logger,
    service_tool,
    to_jsonable,
)
from sixgate.services.smart_codes import ensure_smart_code, is_gl_code, parse_smart_code
from sixgate.store import RowStore, open_store, table_columns
from sixgate.values import as_utc, parse_datetime

TRANSACTION_TABLE = "universal_transactions"
LINE_TABLE = "universal_transaction_lines"

METRICS = ("count", "sum", "avg")
DEFAULT_METRICS = ["count", "sum"]
TIME_DIMENSION = "time"
UNKNOWN = "unknown"

_HEADER_KEYS = {
    "transaction_type",
    "transaction_date",
    "source_entity_id",
    "target_entity_id",
    "total_amount",
    "metadata",
}
_LINE_KEYS = {
    "line_number",
    "entity_id",
    "quantity",
    "unit_price",
    "line_amount",
    "amount",
    "debit",
    "credit",
    "type",
    "side",
    "debit_credit",
    "entry_type",
    "smart_code",
    "metadata",
}


def truncate_to_grain(value: datetime, grain: str, week_start: Optional[str] = None) -> datetime:
    """Floor a timestamp to the start of its hour/day/week/month/quarter/year bucket."""
    moment = as_utc(value)
    if grain == "hour":
        return moment.replace(minute=0, second=0, microsecond=0)
    midnight = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    if grain == "day":
        return midnight
    if grain == "week":
        start = (week_start or config.WEEK_START).lower()
        # weekday(): Monday == 0 ... Sunday == 6
        offset = midnight.weekday() if start == "monday" else (midnight.weekday() + 1) % 7
        return midnight - timedelta(days=offset)
    if grain == "month":
        return midnight.replace(day=1)
    if grain == "quarter":
        return midnight.replace(month=3 * ((midnight.month - 1) // 3) + 1, day=1)
    if grain == "year":
        return midnight.replace(month=1, day=1)
    raise ValueError(f"unsupported grain: {grain}")


def _resolve_window(time_spec: dict) -> tuple[datetime, datetime]:
    end = (
        parse_datetime(time_spec["end"], field="time.end")
        if time_spec.get("end") is not None
        else datetime.now(timezone.utc)
    )
    start = (
        parse_datetime(time_spec["start"], field="time.start")
        if time_spec.get("start") is not None
        else end - timedelta(days=config.DEFAULT_LOOKBACK_DAYS)
    )
    if start > end:
        raise ValidationIssue("time.start must not be after time.end", field="time.start", error_type="out_of_range")
    return start, end


def _split_filters(filters: dict) -> tuple[dict, dict]:
    columns = table_columns(TRANSACTION_TABLE)
    column_filters = {key: value for key, value in filters.items() if key in columns}
    metadata_filters = {key: value for key, value in filters.items() if key not in columns}
    return column_filters, metadata_filters


def _metadata_matches(row: dict, expected: dict) -> bool:
    metadata = row.get("metadata") or {}
    return all(metadata.get(key) == value for key, value in expected.items())


def _dimension_value(row: dict, dimension: str, bucket: datetime) -> str:
    if dimension == TIME_DIMENSION:
        return bucket.isoformat()
    if dimension in table_columns(TRANSACTION_TABLE):
        value = row.get(dimension)
    else:
        value = (row.get("metadata") or {}).get(dimension)
    if value is None:
        return UNKNOWN
    return str(to_jsonable(value))


def aggregate_transactions(
    rows: list[dict],
    group_by: list[str],
    grain: str,
    metrics: list[str],
) -> list[dict]:
    groups: dict[str, dict[str, Any]] = {}
    for row in rows:
        bucket = truncate_to_grain(row["transaction_date"], grain)
        values = {dimension: _dimension_value(row, dimension, bucket) for dimension in group_by}
        key = "|".join(values[dimension] for dimension in group_by)
        group = groups.setdefault(key, {"key": key, "dimensions": values, "_count": 0, "_sum": Decimal("0")})
        group["_count"] += 1
        group["_sum"] += Decimal(str(row.get("total_amount") or 0))

    results = []
    for key in sorted(groups):
        group = groups[key]
        entry = {"key": key, "dimensions": group["dimensions"]}
        count, total = group["_count"], group["_sum"]
        if "count" in metrics:
            entry["count"] = count
        if "sum" in metrics:
            entry["sum"] = float(total)
        if "avg" in metrics:
            entry["avg"] = float(total / count) if count else 0.0
        results.append(entry)
    return results


def _attach_lines(store: RowStore, organization_id: str, transactions: list[dict]) -> list[dict]:
    ids = [txn["id"] for txn in transactions]
    lines = store.select(
        LINE_TABLE,
        {"organization_id": organization_id, "transaction_id__in": ids},
        order_by=["line_number"],
    ) if ids else []
    by_transaction: dict[str, list[dict]] = {}
    for line in lines:
        by_transaction.setdefault(line["transaction_id"], []).append(to_jsonable(line))
    return [
        {**to_jsonable(txn), "lines": by_transaction.get(txn["id"], [])}
        for txn in transactions
    ]


@service_tool
def query_transactions(
    organization_id: str,
    transaction_type: Optional[str] = None,
    smart_code: Optional[str] = None,
    time: Optional[dict] = None,
    filters: Optional[dict] = None,
    group_by: Optional[list[str]] = None,
    metrics: Optional[list[str]] = None,
    limit: Optional[int] = None,
    store: Optional[RowStore] = None,
) -> dict:
    """
    Query a tenant's transactions inside a time window.

    Without ``group_by`` the newest rows come back with their lines, capped at
    the raw preview size. With ``group_by`` a time grain is mandatory and every
    group is returned; ``limit`` is ignored there and the whole window is
    aggregated up to the transaction ceiling.
    """
    org_id = require_organization(organization_id)
    _validate_optional_text(transaction_type, "transaction_type", MAX_SHORT_TEXT_LENGTH)
    _validate_optional_text(smart_code, "smart_code", MAX_SHORT_TEXT_LENGTH)
    time_spec = _validate_mapping(time, "time")
    column_filters, metadata_filters = _split_filters(_validate_mapping(filters, "filters"))
    _validate_string_list(group_by, "group_by", MAX_LIST_ITEMS, MAX_SHORT_TEXT_LENGTH)
    _validate_string_list(metrics, "metrics", len(METRICS), MAX_SHORT_TEXT_LENGTH)
    effective_limit = clamp_limit(
        limit,
        default=config.DEFAULT_TRANSACTION_LIMIT,
        ceiling=config.MAX_TRANSACTION_LIMIT,
    )

    grain = require_time_grain(time_spec.get("grain")) if group_by else None
    requested_metrics = list(metrics) if metrics else list(DEFAULT_METRICS)
    for metric in requested_metrics:
        if metric not in METRICS:
            raise ValidationIssue(
                f"unknown metric '{metric}'; use one of {', '.join(METRICS)}",
                field="metrics",
                error_type="invalid_value",
            )
    start, end = _resolve_window(time_spec)

    store_filters: dict[str, Any] = {
        **column_filters,
        "organization_id": org_id,
        "transaction_date__gte": start,
        "transaction_date__lte": end,
    }
    if transaction_type:
        store_filters["transaction_type"] = transaction_type
    if smart_code:
        store_filters["smart_code"] = smart_code

    # Grouped mode covers the whole window up to the transaction ceiling; raw
    # mode reads one row past ``limit`` so a cut can be reported.
    row_cap = config.MAX_TRANSACTION_LIMIT if group_by else effective_limit
    scan_limit = (config.MAX_TRANSACTION_LIMIT if metadata_filters else row_cap) + 1
    window = {"start": start.isoformat(), "end": end.isoformat()}

    with open_store(store) as rows:
        transactions = rows.select(
            TRANSACTION_TABLE,
            store_filters,
            limit=scan_limit,
            order_by=["-transaction_date", "id"],
        )
        scan_exhausted = len(transactions) >= scan_limit
        if metadata_filters:
            transactions = [txn for txn in transactions if _metadata_matches(txn, metadata_filters)]
        more_available = len(transactions) > row_cap or scan_exhausted
        transactions = transactions[:row_cap]

        if group_by:
            groups = aggregate_transactions(transactions, list(group_by), grain, requested_metrics)
            result = {
                "status": "ok",
                "mode": "aggregated",
                "window": window,
                "grain": grain,
                "group_by": list(group_by),
                "metrics": requested_metrics,
                "rows_scanned": len(transactions),
                "truncated": more_available,
                "warning": None,
                "group_count": len(groups),
                "groups": groups,
            }
            if more_available:
                result["warning"] = (
                    f"Aggregated the newest {len(transactions)} transactions only. "
                    "Narrow the time window to cover the rest."
                )
            return result

        preview = transactions[: config.RAW_TRANSACTION_PREVIEW]
        records = _attach_lines(rows, org_id, preview)

    truncated = more_available or len(transactions) > len(preview)
    result = {
        "status": "ok",
        "mode": "raw",
        "window": window,
        "count": len(records),
        "matched": len(transactions),
        "more_available": more_available,
        "truncated": truncated,
        "warning": None,
        "transactions": records,
    }
    if truncated:
        matched = f"more than {len(transactions)}" if more_available else str(len(transactions))
        result["warning"] = (
            f"Showing {len(records)} of {matched} transactions. "
            "Add group_by with time.grain to aggregate instead."
        )
    return result


def _system_transaction_code() -> str:
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    return f"TXN-{stamp}-{secrets.token_hex(4).upper()}"


def _split_extras(source: dict, known: set[str]) -> tuple[dict, dict]:
    """Separate recognized keys from the rest; the rest lands in metadata."""
    recognized = {key: value for key, value in source.items() if key in known}
    extras = {key: value for key, value in source.items() if key not in known}
    return recognized, extras


def _prepare_lines(lines: list, gl: bool) -> list[dict]:
    prepared = []
    for index, raw in enumerate(lines):
        field = f"lines[{index}]"
        if not isinstance(raw, dict):
            raise ValidationIssue(f"{field} must be an object", field=field, error_type="invalid_type")
        line, extras = _split_extras(raw, _LINE_KEYS)
        _validate_metadata(line.get("metadata"), f"{field}.metadata")
        if line.get("smart_code") is not None:
            parse_smart_code(line["smart_code"], field=f"{field}.smart_code")
        line_number = line.get("line_number", index + 1)
        if isinstance(line_number, bool) or not isinstance(line_number, int) or line_number < 1:
            raise ValidationIssue(
                f"{field}.line_number must be a positive integer",
                field=f"{field}.line_number",
                error_type="invalid_type",
            )

        quantity = line.get("quantity")
        quantity = _validate_number(quantity, f"{field}.quantity") if quantity is not None else 1.0
        unit_price = line.get("unit_price")
        if unit_price is not None:
            unit_price = _validate_number(unit_price, f"{field}.unit_price")

        amount = resolve_line_amount(raw, index)
        metadata = {**extras, **(line.get("metadata") or {})}
        if gl:
            side = resolve_line_side(raw)
            if side:
                metadata["debit_credit"] = side
        prepared.append({
            "line_number": line_number,
            "entity_id": line.get("entity_id"),
            "quantity": quantity,
            "unit_price": unit_price if unit_price is not None else float(amount),
            "line_amount": float(amount),
            "smart_code": line.get("smart_code") or config.DEFAULT_GL_LINE_SMART_CODE,
            "metadata": metadata,
        })
    return prepared


def _mark_partial(store: RowStore, organization_id: str, header: dict, written: int, expected: int) -> None:
    metadata = {
        **(header.get("metadata") or {}),
        "partial_write": {"lines_written": written, "lines_expected": expected},
    }
    try:
        store.update(
            TRANSACTION_TABLE,
            header["id"],
            {"status": "partial", "metadata": metadata},
            organization_id=organization_id,
        )
    except StoreFailure:
        logger.exception(
            "partial_write_mark_failed",
            extra={"organization_id": organization_id, "transaction_id": header["id"]},
        )


@service_tool
def post_transaction(
    organization_id: str,
    transaction_code: str,
    lines: list[dict],
    header: Optional[dict] = None,
    allow_new_smart_code: bool = True,
    store: Optional[RowStore] = None,
) -> dict:
    """
    Post a transaction header plus lines under ``transaction_code`` (a smart code).

    Gates run in order: smart code, line shape and tenant references, GL balance.
    Nothing is written until all of them pass.
    """
    org_id = require_organization(organization_id)
    parsed = parse_smart_code(transaction_code, field="transaction_code")
    if not isinstance(allow_new_smart_code, bool):
        raise ValidationIssue(
            "allow_new_smart_code must be a boolean",
            field="allow_new_smart_code",
            error_type="invalid_type",
        )
    if not lines:
        raise ValidationIssue("lines must contain at least one line", field="lines", error_type="required")
    _validate_list(lines, "lines", config.MAX_TRANSACTION_LINES)
    header_fields, header_extras = _split_extras(_validate_mapping(header, "header"), _HEADER_KEYS)
    _validate_metadata(header_fields.get("metadata"), "header.metadata")
    _validate_optional_text(header_fields.get("transaction_type"), "header.transaction_type", MAX_SHORT_TEXT_LENGTH)

    gl = is_gl_code(parsed.raw) or is_journal_type(header_fields.get("transaction_type"))
    prepared = _prepare_lines(lines, gl)
    transaction_date = (
        parse_datetime(header_fields["transaction_date"], field="header.transaction_date")
        if header_fields.get("transaction_date") is not None
        else datetime.now(timezone.utc)
    )

    with open_store(store) as rows:
        _, report = ensure_smart_code(
            rows,
            org_id,
            transaction_code,
            require_existing=not allow_new_smart_code,
            field="transaction_code",
        )
        for key in ("source_entity_id", "target_entity_id"):
            if header_fields.get(key) is not None:
                require_tenant_record(rows, "core_entities", org_id, header_fields[key], field=f"header.{key}")
        for index, line in enumerate(prepared):
            if line["entity_id"] is not None:
                require_tenant_record(rows, "core_entities", org_id, line["entity_id"], field=f"lines[{index}].entity_id")

        gl_totals = check_gl_balance(lines) if gl else None

        total = sum((Decimal(str(line["line_amount"])) for line in prepared), Decimal("0"))
        header_row = {
            "organization_id": org_id,
            "transaction_type": header_fields.get("transaction_type") or ("journal_entry" if gl else "general"),
            "transaction_code": _system_transaction_code(),
            "smart_code": parsed.raw,
            "transaction_date": transaction_date,
            "source_entity_id": header_fields.get("source_entity_id"),
            "target_entity_id": header_fields.get("target_entity_id"),
            "total_amount": float(total),
            "status": "posted",
            "metadata": {**header_extras, **(header_fields.get("metadata") or {})},
        }

        written: list[dict] = []
        with rows.atomic():
            transaction = rows.insert(TRANSACTION_TABLE, header_row)
            try:
                for line in prepared:
                    written.append(rows.insert(LINE_TABLE, {
                        **line,
                        "organization_id": org_id,
                        "transaction_id": transaction["id"],
                    }))
            except StoreFailure as exc:
                if rows.supports_transactions:
                    raise
                logger.error(
                    "partial_write_detected",
                    extra={
                        "organization_id": org_id,
                        "transaction_id": transaction["id"],
                        "lines_written": len(written),
                        "lines_expected": len(prepared),
                    },
                )
                _mark_partial(rows, org_id, transaction, len(written), len(prepared))
                raise PartialWriteState(
                    f"transaction header {transaction['id']} was written but its lines failed",
                    transaction_id=transaction["id"],
                    data={"lines_written": len(written), "lines_expected": len(prepared)},
                ) from exc

    logger.info(
        "transaction_posted",
        extra={
            "organization_id": org_id,
            "transaction_id": transaction["id"],
            "smart_code": parsed.raw,
            "line_count": len(written),
        },
    )
    result = {
        "status": "posted",
        "transaction": to_jsonable(transaction),
        "lines": to_jsonable(written),
        "line_count": len(written),
        "total_amount": float(total),
    }
    if gl_totals is not None:
        result["gl_totals"] = gl_totals
    if report["upgrade_available"]:
        result["smart_code_warning"] = {
            "message": f"A newer version of {parsed.base_code} is in use",
            "suggested_code": report["suggested_code"],
        }
    return result
