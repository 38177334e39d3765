"""
SixGate Database Models
The six sacred tables. No other tables or columns may exist.
"""

from datetime import datetime, timezone
import uuid
from sqlalchemy import (
    Column, String, Text, Float, Integer, Boolean,
    DateTime, ForeignKey, Index, UniqueConstraint, JSON,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

import sixgate.config as config

DB_BACKEND = config.DB_BACKEND

JSON_TYPE = JSONB if DB_BACKEND == "postgres" else JSON
ID_TYPE = String(36)


def _uuid_default() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


Base = declarative_base()


# =============================================================================
# Organizations (tenant root)
# =============================================================================

class Organization(Base):
    __tablename__ = "core_organizations"

    id = Column(ID_TYPE, primary_key=True, default=_uuid_default)
    organization_name = Column(String(255), nullable=False)
    organization_code = Column(String(100))
    status = Column(String(50), default="active", nullable=False)
    metadata_ = Column("metadata", JSON_TYPE, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


# =============================================================================
# Entities
# =============================================================================

class Entity(Base):
    __tablename__ = "core_entities"

    id = Column(ID_TYPE, primary_key=True, default=_uuid_default)
    organization_id = Column(ID_TYPE, ForeignKey("core_organizations.id"), nullable=False)
    entity_type = Column(String(100), nullable=False)
    entity_name = Column(String(255), nullable=False)
    entity_code = Column(String(100))
    smart_code = Column(String(255))
    status = Column(String(50), default="active", nullable=False)
    metadata_ = Column("metadata", JSON_TYPE, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_core_entities_org_type", "organization_id", "entity_type"),
        Index("ix_core_entities_org_smart_code", "organization_id", "smart_code"),
    )


class DynamicData(Base):
    __tablename__ = "core_dynamic_data"

    id = Column(ID_TYPE, primary_key=True, default=_uuid_default)
    organization_id = Column(ID_TYPE, ForeignKey("core_organizations.id"), nullable=False)
    entity_id = Column(ID_TYPE, ForeignKey("core_entities.id"), nullable=False)
    field_name = Column(String(100), nullable=False)
    field_value_text = Column(Text)
    field_value_number = Column(Float)
    field_value_boolean = Column(Boolean)
    field_value_date = Column(DateTime(timezone=True))
    smart_code = Column(String(255))
    metadata_ = Column("metadata", JSON_TYPE, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint(
            "organization_id", "entity_id", "field_name",
            name="uq_core_dynamic_data_org_entity_field",
        ),
    )


class Relationship(Base):
    __tablename__ = "core_relationships"

    id = Column(ID_TYPE, primary_key=True, default=_uuid_default)
    organization_id = Column(ID_TYPE, ForeignKey("core_organizations.id"), nullable=False)
    from_entity_id = Column(ID_TYPE, ForeignKey("core_entities.id"), nullable=False)
    to_entity_id = Column(ID_TYPE, ForeignKey("core_entities.id"), nullable=False)
    relationship_type = Column(String(100), nullable=False)
    relationship_strength = Column(Float)
    smart_code = Column(String(255))
    status = Column(String(50), default="active", nullable=False)
    metadata_ = Column("metadata", JSON_TYPE, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("ix_core_relationships_org_from", "organization_id", "from_entity_id"),
        Index("ix_core_relationships_org_to", "organization_id", "to_entity_id"),
    )


# =============================================================================
# Transactions
# =============================================================================

class Transaction(Base):
    __tablename__ = "universal_transactions"

    id = Column(ID_TYPE, primary_key=True, default=_uuid_default)
    organization_id = Column(ID_TYPE, ForeignKey("core_organizations.id"), nullable=False)
    transaction_type = Column(String(100), nullable=False)
    transaction_code = Column(String(100), nullable=False)
    smart_code = Column(String(255), nullable=False)
    transaction_date = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    source_entity_id = Column(ID_TYPE, ForeignKey("core_entities.id"))
    target_entity_id = Column(ID_TYPE, ForeignKey("core_entities.id"))
    total_amount = Column(Float, default=0.0, nullable=False)
    status = Column(String(50), default="posted", nullable=False)
    metadata_ = Column("metadata", JSON_TYPE, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        UniqueConstraint("organization_id", "transaction_code", name="uq_universal_transactions_org_code"),
        Index("ix_universal_transactions_org_date", "organization_id", "transaction_date"),
    )


class TransactionLine(Base):
    __tablename__ = "universal_transaction_lines"

    id = Column(ID_TYPE, primary_key=True, default=_uuid_default)
    organization_id = Column(ID_TYPE, ForeignKey("core_organizations.id"), nullable=False)
    transaction_id = Column(ID_TYPE, ForeignKey("universal_transactions.id"), nullable=False)
    line_number = Column(Integer, nullable=False)
    entity_id = Column(ID_TYPE, ForeignKey("core_entities.id"))
    quantity = Column(Float, default=1.0)
    unit_price = Column(Float)
    line_amount = Column(Float, default=0.0, nullable=False)
    smart_code = Column(String(255))
    metadata_ = Column("metadata", JSON_TYPE, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("ix_universal_transaction_lines_txn", "organization_id", "transaction_id"),
    )


SACRED_MODELS = {
    "core_organizations": Organization,
    "core_entities": Entity,
    "core_dynamic_data": DynamicData,
    "core_relationships": Relationship,
    "universal_transactions": Transaction,
    "universal_transaction_lines": TransactionLine,
}

SACRED_TABLES: tuple[str, ...] = tuple(SACRED_MODELS.keys())

# Column holding the tenant id for each table.
TENANT_COLUMNS = {
    name: ("id" if name == "core_organizations" else "organization_id")
    for name in SACRED_TABLES
}
