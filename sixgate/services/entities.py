"""
Entity services: projected queries over entities plus their dynamic fields, and
the entity/dynamic-field write commands.

Dynamic fields are not indexed in the store, so ``query_entities`` filters on
them in memory after the fetch. That is O(entities x dynamic fields) per call;
tenants with very large entity counts would need a (field_name, value)
side-index, which this module deliberately does not invent.
"""

from __future__ import annotations

import time
from typing import Any, Optional

import sixgate.config as config
from sixgate.errors import ValidationIssue
from sixgate.services.guardrails import clamp_limit, require_organization, require_tenant_record
from sixgate.services.shared import (
    MAX_LIST_ITEMS,
    MAX_SHORT_TEXT_LENGTH,
    _validate_mapping,
    _validate_metadata,
    _validate_optional_text,
    _validate_required_text,
    _validate_string_list,
    logger,
    service_tool,
    to_jsonable,
)
from sixgate.services.smart_codes import ensure_smart_code
from sixgate.store import RowStore, open_store, table_columns
from sixgate.values import DynamicValue

ENTITY_TABLE = "core_entities"
DYNAMIC_TABLE = "core_dynamic_data"


def _base_columns() -> frozenset[str]:
    return table_columns(ENTITY_TABLE)


def load_dynamic_fields(
    store: RowStore,
    organization_id: str,
    entity_ids: list[str],
) -> dict[str, dict[str, DynamicValue]]:
    """entity_id -> field_name -> typed value, fetched in one batch."""
    if not entity_ids:
        return {}
    rows = store.select(
        DYNAMIC_TABLE,
        {"organization_id": organization_id, "entity_id__in": entity_ids},
    )
    fields: dict[str, dict[str, DynamicValue]] = {}
    for row in rows:
        value = DynamicValue.from_row(row)
        if value is None:
            continue
        fields.setdefault(row["entity_id"], {})[row["field_name"]] = value
    return fields


def project_entity(entity: dict, dynamic: dict[str, DynamicValue]) -> dict:
    """Flatten base columns and dynamic fields; base columns win on name clashes."""
    record = dict(entity)
    for name, value in dynamic.items():
        if name not in record:
            record[name] = value.to_json()
    return to_jsonable(record)


def _matches_filters(entity: dict, dynamic: dict[str, DynamicValue], filters: dict) -> bool:
    for name, expected in filters.items():
        if name in dynamic:
            if not dynamic[name].matches(expected):
                return False
        elif name in entity:
            if entity[name] != expected:
                return False
        else:
            return False
    return True


def _apply_select(record: dict, select: Optional[list[str]]) -> dict:
    if not select:
        return record
    keys = ["id"] + [key for key in select if key != "id"]
    return {key: record.get(key) for key in keys}


@service_tool
def query_entities(
    organization_id: str,
    entity_type: Optional[str] = None,
    smart_code: Optional[str] = None,
    filters: Optional[dict] = None,
    select: Optional[list[str]] = None,
    limit: Optional[int] = None,
    store: Optional[RowStore] = None,
) -> dict:
    """Fetch entities with their dynamic fields, filter and project them."""
    org_id = require_organization(organization_id)
    _validate_optional_text(entity_type, "entity_type", MAX_SHORT_TEXT_LENGTH)
    _validate_optional_text(smart_code, "smart_code", MAX_SHORT_TEXT_LENGTH)
    dynamic_filters = _validate_mapping(filters, "filters")
    _validate_string_list(select, "select", MAX_LIST_ITEMS, MAX_SHORT_TEXT_LENGTH)
    effective_limit = clamp_limit(
        limit,
        default=config.DEFAULT_ENTITY_LIMIT,
        ceiling=config.MAX_ENTITY_LIMIT,
    )

    store_filters: dict[str, Any] = {"organization_id": org_id}
    if entity_type:
        store_filters["entity_type"] = entity_type
    if smart_code:
        store_filters["smart_code"] = smart_code

    # In-memory filters need the whole scan window before the limit applies.
    scan_limit = config.MAX_ENTITY_LIMIT if dynamic_filters else effective_limit

    with open_store(store) as rows:
        entities = rows.select(
            ENTITY_TABLE,
            store_filters,
            limit=scan_limit,
            order_by=["created_at", "id"],
        )
        dynamic = load_dynamic_fields(rows, org_id, [entity["id"] for entity in entities])

    results = []
    for entity in entities:
        fields = dynamic.get(entity["id"], {})
        if dynamic_filters and not _matches_filters(entity, fields, dynamic_filters):
            continue
        results.append(_apply_select(project_entity(entity, fields), select))
        if len(results) >= effective_limit:
            break

    return {
        "status": "ok",
        "count": len(results),
        "limit": effective_limit,
        "entities": results,
    }


def _build_dynamic_values(dynamic_fields: dict) -> dict[str, DynamicValue]:
    base_columns = _base_columns()
    values = {}
    for name, raw in dynamic_fields.items():
        _validate_required_text(name, "dynamic_fields", MAX_SHORT_TEXT_LENGTH)
        if name in base_columns:
            raise ValidationIssue(
                f"dynamic field '{name}' collides with a base entity column",
                field="dynamic_fields",
                error_type="invalid_value",
            )
        values[name] = DynamicValue.of(raw, field=f"dynamic_fields.{name}")
    return values


def _dynamic_row(organization_id: str, entity_id: str, field_name: str, value: DynamicValue) -> dict:
    return {
        "organization_id": organization_id,
        "entity_id": entity_id,
        "field_name": field_name,
        "metadata": {"field_type": value.kind.value},
        **value.to_columns(),
    }


@service_tool
def create_entity(
    organization_id: str,
    entity_type: str,
    entity_name: str,
    entity_code: Optional[str] = None,
    smart_code: Optional[str] = None,
    status: str = "active",
    metadata: Optional[dict] = None,
    dynamic_fields: Optional[dict] = None,
    store: Optional[RowStore] = None,
) -> dict:
    """Create an entity and its typed dynamic fields in one unit."""
    org_id = require_organization(organization_id)
    _validate_required_text(entity_type, "entity_type", MAX_SHORT_TEXT_LENGTH)
    _validate_required_text(entity_name, "entity_name", MAX_SHORT_TEXT_LENGTH)
    _validate_optional_text(entity_code, "entity_code", MAX_SHORT_TEXT_LENGTH)
    _validate_required_text(status, "status", MAX_SHORT_TEXT_LENGTH)
    _validate_metadata(metadata, "metadata")
    values = _build_dynamic_values(_validate_mapping(dynamic_fields, "dynamic_fields"))

    entity_type_value = entity_type.strip()
    code_value = entity_code or f"{entity_type_value.upper()}-{int(time.time() * 1000)}"

    with open_store(store) as rows:
        if smart_code is not None:
            ensure_smart_code(rows, org_id, smart_code)
        with rows.atomic():
            entity = rows.insert(ENTITY_TABLE, {
                "organization_id": org_id,
                "entity_type": entity_type_value,
                "entity_name": entity_name.strip(),
                "entity_code": code_value,
                "smart_code": smart_code,
                "status": status,
                "metadata": metadata or {},
            })
            for name, value in values.items():
                rows.insert(DYNAMIC_TABLE, _dynamic_row(org_id, entity["id"], name, value))

    logger.info(
        "entity_created",
        extra={"organization_id": org_id, "entity_id": entity["id"], "entity_type": entity_type_value},
    )
    return {
        "status": "created",
        "entity": project_entity(entity, values),
    }


@service_tool
def set_dynamic_field(
    organization_id: str,
    entity_id: str,
    field_name: str,
    value: Any,
    field_type: Optional[str] = None,
    store: Optional[RowStore] = None,
) -> dict:
    """Upsert the single value of ``field_name`` on an entity."""
    org_id = require_organization(organization_id)
    _validate_required_text(field_name, "field_name", MAX_SHORT_TEXT_LENGTH)
    if field_name in _base_columns():
        raise ValidationIssue(
            f"'{field_name}' is a base entity column, not a dynamic field",
            field="field_name",
            error_type="invalid_value",
        )
    typed = DynamicValue.of(value, field_type)

    with open_store(store) as rows:
        require_tenant_record(rows, ENTITY_TABLE, org_id, entity_id, field="entity_id")
        existing = rows.select(
            DYNAMIC_TABLE,
            {"organization_id": org_id, "entity_id": entity_id, "field_name": field_name},
            limit=1,
        )
        if existing:
            patch = dict(typed.to_columns())
            patch["metadata"] = {**(existing[0].get("metadata") or {}), "field_type": typed.kind.value}
            row = rows.update(DYNAMIC_TABLE, existing[0]["id"], patch, organization_id=org_id)
            outcome = "updated"
        else:
            row = rows.insert(DYNAMIC_TABLE, _dynamic_row(org_id, entity_id, field_name, typed))
            outcome = "created"

    return {
        "status": outcome,
        "field": {
            "id": row["id"],
            "entity_id": entity_id,
            "field_name": field_name,
            "field_type": typed.kind.value,
            "value": typed.to_json(),
        },
    }
