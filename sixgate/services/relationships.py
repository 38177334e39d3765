"""
Relationship services: bounded one- or two-hop traversal and edge creation.
"""

from __future__ import annotations

from typing import Optional

import sixgate.config as config
from sixgate.errors import ValidationIssue
from sixgate.services.guardrails import (
    check_relationship_depth,
    require_organization,
    require_tenant_record,
)
from sixgate.services.shared import (
    MAX_SHORT_TEXT_LENGTH,
    _validate_metadata,
    _validate_number,
    _validate_optional_text,
    _validate_required_text,
    logger,
    service_tool,
    to_jsonable,
)
from sixgate.services.smart_codes import ensure_smart_code
from sixgate.store import RowStore, open_store

RELATIONSHIP_TABLE = "core_relationships"
DIRECTIONS = ("outgoing", "incoming", "both")


def _level_one(
    store: RowStore,
    organization_id: str,
    entity_id: str,
    relationship_type: Optional[str],
    direction: str,
) -> list[dict]:
    base = {"organization_id": organization_id}
    if relationship_type:
        base["relationship_type"] = relationship_type
    cap = config.RELATIONSHIP_LEVEL1_LIMIT
    order = ["created_at", "id"]

    edges: list[dict] = []
    if direction in ("outgoing", "both"):
        edges.extend(store.select(RELATIONSHIP_TABLE, {**base, "from_entity_id": entity_id}, limit=cap, order_by=order))
    if direction in ("incoming", "both") and len(edges) < cap:
        edges.extend(store.select(
            RELATIONSHIP_TABLE,
            {**base, "to_entity_id": entity_id},
            limit=cap - len(edges),
            order_by=order,
        ))
    return edges[:cap]


def _other_side(edge: dict, entity_id: str) -> str:
    return edge["to_entity_id"] if edge["from_entity_id"] == entity_id else edge["from_entity_id"]


@service_tool
def search_relationships(
    organization_id: str,
    from_entity_id: str,
    relationship_type: Optional[str] = None,
    direction: str = "outgoing",
    depth: int = 1,
    store: Optional[RowStore] = None,
) -> dict:
    """
    Walk edges from ``from_entity_id``.

    Depth 2 expands one more hop from every level-1 neighbour (outgoing edges
    only, no type filter). Level-2 edges are appended as-is, so an edge can show
    up at both levels.
    """
    org_id = require_organization(organization_id)
    check_relationship_depth(depth)
    _validate_required_text(from_entity_id, "from_entity_id", MAX_SHORT_TEXT_LENGTH)
    _validate_optional_text(relationship_type, "relationship_type", MAX_SHORT_TEXT_LENGTH)
    if direction not in DIRECTIONS:
        raise ValidationIssue(
            f"direction must be one of: {', '.join(DIRECTIONS)}",
            field="direction",
            error_type="invalid_value",
        )

    with open_store(store) as rows:
        require_tenant_record(rows, "core_entities", org_id, from_entity_id, field="from_entity_id")
        level_one = _level_one(rows, org_id, from_entity_id, relationship_type, direction)
        level_two: list[dict] = []
        if depth >= 2 and level_one:
            neighbours = list(dict.fromkeys(_other_side(edge, from_entity_id) for edge in level_one))
            level_two = rows.select(
                RELATIONSHIP_TABLE,
                {"organization_id": org_id, "from_entity_id__in": neighbours},
                limit=config.RELATIONSHIP_LEVEL2_LIMIT,
                order_by=["created_at", "id"],
            )

    edges = [{**to_jsonable(edge), "level": 1} for edge in level_one]
    edges.extend({**to_jsonable(edge), "level": 2} for edge in level_two)
    return {
        "status": "ok",
        "from_entity_id": from_entity_id,
        "direction": direction,
        "depth": depth,
        "count": len(edges),
        "level_counts": {"1": len(level_one), "2": len(level_two)},
        "relationships": edges,
    }


@service_tool
def create_relationship(
    organization_id: str,
    from_entity_id: str,
    to_entity_id: str,
    relationship_type: str,
    relationship_strength: Optional[float] = None,
    smart_code: Optional[str] = None,
    metadata: Optional[dict] = None,
    store: Optional[RowStore] = None,
) -> dict:
    org_id = require_organization(organization_id)
    _validate_required_text(from_entity_id, "from_entity_id", MAX_SHORT_TEXT_LENGTH)
    _validate_required_text(to_entity_id, "to_entity_id", MAX_SHORT_TEXT_LENGTH)
    _validate_required_text(relationship_type, "relationship_type", MAX_SHORT_TEXT_LENGTH)
    _validate_metadata(metadata, "metadata")
    strength = None
    if relationship_strength is not None:
        strength = _validate_number(relationship_strength, "relationship_strength")
    if from_entity_id == to_entity_id:
        raise ValidationIssue(
            "an entity cannot be related to itself",
            field="to_entity_id",
            error_type="invalid_value",
        )

    with open_store(store) as rows:
        require_tenant_record(rows, "core_entities", org_id, from_entity_id, field="from_entity_id")
        require_tenant_record(rows, "core_entities", org_id, to_entity_id, field="to_entity_id")
        if smart_code is not None:
            ensure_smart_code(rows, org_id, smart_code)
        edge = rows.insert(RELATIONSHIP_TABLE, {
            "organization_id": org_id,
            "from_entity_id": from_entity_id,
            "to_entity_id": to_entity_id,
            "relationship_type": relationship_type.strip(),
            "relationship_strength": strength,
            "smart_code": smart_code,
            "status": "active",
            "metadata": metadata or {},
        })

    logger.info(
        "relationship_created",
        extra={"organization_id": org_id, "relationship_id": edge["id"], "relationship_type": edge["relationship_type"]},
    )
    return {"status": "created", "relationship": to_jsonable(edge)}
