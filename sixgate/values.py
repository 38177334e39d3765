"""
Typed dynamic-field values.

A dynamic field holds exactly one value of one kind. ``DynamicValue`` keeps the
kind and the value together so a date never lands in the text column.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum as PyEnum
from typing import Any, Optional

from sixgate.errors import ValidationIssue


class FieldKind(str, PyEnum):
    text = "text"
    number = "number"
    boolean = "boolean"
    date = "date"


VALUE_COLUMNS = {
    FieldKind.text: "field_value_text",
    FieldKind.number: "field_value_number",
    FieldKind.boolean: "field_value_boolean",
    FieldKind.date: "field_value_date",
}

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off"}


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: Any, *, field: str = "date") -> datetime:
    """Parse an ISO date/datetime string (or date object) into an aware UTC datetime."""
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if not isinstance(value, str) or not value.strip():
        raise ValidationIssue(
            f"{field} must be an ISO date or datetime string",
            field=field,
            error_type="invalid_type",
        )
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValidationIssue(
            f"{field} must be an ISO date or datetime string",
            field=field,
            error_type="invalid_value",
        ) from exc
    return as_utc(parsed)


def infer_kind(value: Any) -> FieldKind:
    if isinstance(value, bool):
        return FieldKind.boolean
    if isinstance(value, (int, float)):
        return FieldKind.number
    if isinstance(value, (date, datetime)):
        return FieldKind.date
    return FieldKind.text


@dataclass(frozen=True)
class DynamicValue:
    kind: FieldKind
    value: Any

    @classmethod
    def of(cls, value: Any, kind: Optional[str] = None, *, field: str = "value") -> "DynamicValue":
        """Build a value of ``kind`` (inferred when omitted), coercing strictly."""
        if value is None:
            raise ValidationIssue(f"{field} is required", field=field, error_type="required")
        if kind is None:
            field_kind = infer_kind(value)
        else:
            try:
                field_kind = FieldKind(str(kind).strip().lower())
            except ValueError as exc:
                allowed = ", ".join(k.value for k in FieldKind)
                raise ValidationIssue(
                    f"field_type must be one of: {allowed}",
                    field="field_type",
                    error_type="invalid_value",
                ) from exc

        if field_kind is FieldKind.boolean:
            if isinstance(value, bool):
                return cls(field_kind, value)
            if isinstance(value, str) and value.strip().lower() in _TRUE_STRINGS | _FALSE_STRINGS:
                return cls(field_kind, value.strip().lower() in _TRUE_STRINGS)
            raise ValidationIssue(f"{field} must be a boolean", field=field, error_type="invalid_type")
        if field_kind is FieldKind.number:
            if isinstance(value, bool):
                raise ValidationIssue(f"{field} must be a number", field=field, error_type="invalid_type")
            try:
                return cls(field_kind, float(value))
            except (TypeError, ValueError) as exc:
                raise ValidationIssue(
                    f"{field} must be a number",
                    field=field,
                    error_type="invalid_type",
                ) from exc
        if field_kind is FieldKind.date:
            return cls(field_kind, parse_datetime(value, field=field))
        if isinstance(value, (dict, list)):
            raise ValidationIssue(
                f"{field} must be a scalar value",
                field=field,
                error_type="invalid_type",
            )
        return cls(field_kind, str(value))

    @classmethod
    def from_row(cls, row: dict) -> Optional["DynamicValue"]:
        """Read the populated value column of a core_dynamic_data row."""
        for kind, column in VALUE_COLUMNS.items():
            raw = row.get(column)
            if raw is None:
                continue
            if kind is FieldKind.date and isinstance(raw, datetime):
                raw = as_utc(raw)
            return cls(kind, raw)
        return None

    def to_columns(self) -> dict:
        """All four value columns, with only this kind's column populated."""
        columns = {column: None for column in VALUE_COLUMNS.values()}
        columns[VALUE_COLUMNS[self.kind]] = self.value
        return columns

    def to_json(self) -> Any:
        if self.kind is FieldKind.date:
            return self.value.isoformat()
        if self.kind is FieldKind.number and float(self.value).is_integer():
            return int(self.value)
        return self.value

    def matches(self, expected: Any) -> bool:
        """Equality against a caller-supplied filter value."""
        if expected is None:
            return False
        try:
            other = DynamicValue.of(expected, self.kind.value)
        except ValidationIssue:
            return False
        if self.kind is FieldKind.number:
            return float(self.value) == float(other.value)
        if self.kind is FieldKind.date:
            return as_utc(self.value) == other.value
        return self.value == other.value
