"""
Tenant-scoped row store over the six sacred tables.

Every call names one of the six tables, only touches that table's fixed columns,
and carries the tenant id as an equality filter. Rows travel as plain dicts keyed
by column name.

Filter keys use a ``column__op`` suffix for non-equality predicates:
``in``, ``startswith``, ``gt``, ``gte``, ``lt``, ``lte``.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence

from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

import sixgate.config as config
from sixgate.db import DB
from sixgate.errors import SchemaViolation, StoreFailure, TenantScopeMissing, ValidationIssue
from sixgate.models import SACRED_MODELS, SACRED_TABLES, TENANT_COLUMNS

logger = config.logger

FILTER_OPERATORS = {"in", "startswith", "gt", "gte", "lt", "lte"}


def _column_attrs(model) -> dict[str, str]:
    """Map column name -> mapped attribute key (``metadata`` -> ``metadata_``)."""
    return {
        attr.columns[0].name: attr.key
        for attr in inspect(model).mapper.column_attrs
    }


_TABLE_COLUMNS = {name: _column_attrs(model) for name, model in SACRED_MODELS.items()}


def table_columns(table: str) -> frozenset[str]:
    require_sacred_table(table)
    return frozenset(_TABLE_COLUMNS[table])


def require_sacred_table(table: str) -> None:
    if table not in SACRED_MODELS:
        raise SchemaViolation(
            f"table '{table}' is not one of the six sacred tables",
            data={"table": table, "allowed": list(SACRED_TABLES)},
        )


def _require_column(table: str, column: str) -> None:
    if column not in _TABLE_COLUMNS[table]:
        raise SchemaViolation(
            f"column '{column}' does not exist on {table}",
            data={"table": table, "column": column},
        )


def split_filter_key(table: str, key: str) -> tuple[str, str]:
    column, _, op = key.partition("__")
    op = op or "eq"
    if op != "eq" and op not in FILTER_OPERATORS:
        raise ValidationIssue(
            f"unsupported filter operator '{op}'",
            field="filters",
            error_type="invalid_value",
        )
    _require_column(table, column)
    return column, op


def _require_tenant(table: str, tenant_id: Any) -> str:
    if not isinstance(tenant_id, str) or not tenant_id.strip():
        raise TenantScopeMissing(
            f"{table} access requires an organization_id filter",
            data={"table": table},
        )
    return tenant_id


class RowStore:
    """Abstract adapter. Subclasses implement the three row operations."""

    supports_transactions = False

    def select(
        self,
        table: str,
        filters: dict,
        limit: Optional[int] = None,
        *,
        order_by: Optional[Sequence[str]] = None,
    ) -> list[dict]:
        raise NotImplementedError

    def insert(self, table: str, row: dict) -> dict:
        raise NotImplementedError

    def update(self, table: str, row_id: str, patch: dict, *, organization_id: str) -> Optional[dict]:
        raise NotImplementedError

    def count(self, table: str, filters: dict) -> int:
        return len(self.select(table, filters))

    def distinct(self, table: str, column: str, filters: dict, limit: Optional[int] = None) -> list[Any]:
        _require_column(table, column)
        values: list[Any] = []
        for row in self.select(table, filters):
            if row.get(column) not in values:
                values.append(row.get(column))
        return values[:limit] if limit is not None else values

    @contextmanager
    def atomic(self) -> Iterator["RowStore"]:
        """Group writes; stores without multi-row transactions just run them in order."""
        yield self

    def _check_select(self, table: str, filters: dict) -> list[tuple[str, str, Any]]:
        require_sacred_table(table)
        tenant_column = TENANT_COLUMNS[table]
        _require_tenant(table, (filters or {}).get(tenant_column))
        return [
            (*split_filter_key(table, key), value)
            for key, value in filters.items()
        ]

    def _check_row(self, table: str, row: dict) -> None:
        require_sacred_table(table)
        for column in row:
            _require_column(table, column)
        _require_tenant(table, row.get(TENANT_COLUMNS[table]))


class SqlRowStore(RowStore):
    """RowStore on a SQLAlchemy session; writes commit per call unless inside ``atomic``."""

    supports_transactions = True

    def __init__(self, session):
        self.session = session
        self._in_atomic = False

    def _serialize(self, table: str, record) -> dict:
        return {
            column: getattr(record, attr)
            for column, attr in _TABLE_COLUMNS[table].items()
        }

    def _filtered_query(self, table: str, filters: dict, query=None):
        """Apply validated filters; returns None when an ``in`` list is empty."""
        predicates = self._check_select(table, filters)
        model = SACRED_MODELS[table]
        attrs = _TABLE_COLUMNS[table]
        query = self.session.query(model) if query is None else query
        for column, op, value in predicates:
            attr = getattr(model, attrs[column])
            if op == "eq":
                query = query.filter(attr.is_(None) if value is None else attr == value)
            elif op == "in":
                values = list(value or [])
                if not values:
                    return None
                query = query.filter(attr.in_(values))
            elif op == "startswith":
                query = query.filter(attr.startswith(value, autoescape=True))
            elif op == "gt":
                query = query.filter(attr > value)
            elif op == "gte":
                query = query.filter(attr >= value)
            elif op == "lt":
                query = query.filter(attr < value)
            elif op == "lte":
                query = query.filter(attr <= value)
        return query

    def select(
        self,
        table: str,
        filters: dict,
        limit: Optional[int] = None,
        *,
        order_by: Optional[Sequence[str]] = None,
    ) -> list[dict]:
        query = self._filtered_query(table, filters)
        if query is None:
            return []
        model = SACRED_MODELS[table]
        attrs = _TABLE_COLUMNS[table]
        for key in order_by or ():
            descending = key.startswith("-")
            column = key.lstrip("-")
            _require_column(table, column)
            attr = getattr(model, attrs[column])
            query = query.order_by(attr.desc() if descending else attr.asc())
        if limit is not None:
            query = query.limit(limit)
        try:
            records = query.all()
        except SQLAlchemyError as exc:
            raise StoreFailure(f"select on {table} failed", data={"table": table}) from exc
        return [self._serialize(table, record) for record in records]

    def count(self, table: str, filters: dict) -> int:
        query = self._filtered_query(table, filters)
        if query is None:
            return 0
        try:
            return query.count()
        except SQLAlchemyError as exc:
            raise StoreFailure(f"count on {table} failed", data={"table": table}) from exc

    def distinct(self, table: str, column: str, filters: dict, limit: Optional[int] = None) -> list[Any]:
        _require_column(table, column)
        attr = getattr(SACRED_MODELS[table], _TABLE_COLUMNS[table][column])
        query = self._filtered_query(table, filters, self.session.query(attr).distinct())
        if query is None:
            return []
        if limit is not None:
            query = query.limit(limit)
        try:
            return [value for (value,) in query.all()]
        except SQLAlchemyError as exc:
            raise StoreFailure(f"distinct on {table} failed", data={"table": table}) from exc

    def insert(self, table: str, row: dict) -> dict:
        self._check_row(table, row)
        model = SACRED_MODELS[table]
        attrs = _TABLE_COLUMNS[table]
        record = model(**{attrs[column]: value for column, value in row.items()})
        try:
            self.session.add(record)
            self.session.flush()
            if not self._in_atomic:
                self.session.commit()
        except SQLAlchemyError as exc:
            if not self._in_atomic:
                self.session.rollback()
            raise StoreFailure(f"insert into {table} failed", data={"table": table}) from exc
        return self._serialize(table, record)

    def update(self, table: str, row_id: str, patch: dict, *, organization_id: str) -> Optional[dict]:
        require_sacred_table(table)
        tenant_column = TENANT_COLUMNS[table]
        _require_tenant(table, organization_id)
        for column in patch:
            _require_column(table, column)
            if column in {"id", tenant_column}:
                raise SchemaViolation(
                    f"column '{column}' is immutable",
                    data={"table": table, "column": column},
                )
        model = SACRED_MODELS[table]
        attrs = _TABLE_COLUMNS[table]
        record = (
            self.session.query(model)
            .filter(model.id == row_id)
            .filter(getattr(model, attrs[tenant_column]) == organization_id)
            .first()
        )
        if record is None:
            return None
        try:
            for column, value in patch.items():
                setattr(record, attrs[column], value)
            self.session.flush()
            if not self._in_atomic:
                self.session.commit()
        except SQLAlchemyError as exc:
            if not self._in_atomic:
                self.session.rollback()
            raise StoreFailure(f"update of {table} failed", data={"table": table}) from exc
        return self._serialize(table, record)

    @contextmanager
    def atomic(self) -> Iterator["SqlRowStore"]:
        if self._in_atomic:
            yield self
            return
        self._in_atomic = True
        try:
            yield self
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        finally:
            self._in_atomic = False


@contextmanager
def open_store(store: Optional[RowStore] = None) -> Iterator[RowStore]:
    """Yield ``store`` as-is, or a request-scoped SqlRowStore on a fresh session."""
    if store is not None:
        yield store
        return
    if DB.SessionLocal is None:
        raise RuntimeError("Database not initialized - SessionLocal is None")
    db = DB.SessionLocal()
    try:
        yield SqlRowStore(db)
    finally:
        db.close()


__all__ = [
    "RowStore",
    "SqlRowStore",
    "open_store",
    "require_sacred_table",
    "split_filter_key",
    "table_columns",
]
