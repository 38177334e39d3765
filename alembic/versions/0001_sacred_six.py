"""Create the six sacred tables.

Revision ID: 0001_sacred_six
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_sacred_six"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    bind = op.get_bind()
    is_postgres = bind.dialect.name == "postgresql"

    json_type = postgresql.JSONB() if is_postgres else sa.JSON()
    id_type = sa.String(36)

    # =============================================================================
    # Organizations
    # =============================================================================
    op.create_table(
        "core_organizations",
        sa.Column("id", id_type, nullable=False),
        sa.Column("organization_name", sa.String(255), nullable=False),
        sa.Column("organization_code", sa.String(100), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="active"),
        sa.Column("metadata", json_type, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    # =============================================================================
    # Entities
    # =============================================================================
    op.create_table(
        "core_entities",
        sa.Column("id", id_type, nullable=False),
        sa.Column("organization_id", id_type, nullable=False),
        sa.Column("entity_type", sa.String(100), nullable=False),
        sa.Column("entity_name", sa.String(255), nullable=False),
        sa.Column("entity_code", sa.String(100), nullable=True),
        sa.Column("smart_code", sa.String(255), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="active"),
        sa.Column("metadata", json_type, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["organization_id"], ["core_organizations.id"]),
    )
    op.create_index("ix_core_entities_org_type", "core_entities", ["organization_id", "entity_type"])
    op.create_index("ix_core_entities_org_smart_code", "core_entities", ["organization_id", "smart_code"])

    # =============================================================================
    # Dynamic data (one typed value per entity field)
    # =============================================================================
    op.create_table(
        "core_dynamic_data",
        sa.Column("id", id_type, nullable=False),
        sa.Column("organization_id", id_type, nullable=False),
        sa.Column("entity_id", id_type, nullable=False),
        sa.Column("field_name", sa.String(100), nullable=False),
        sa.Column("field_value_text", sa.Text(), nullable=True),
        sa.Column("field_value_number", sa.Float(), nullable=True),
        sa.Column("field_value_boolean", sa.Boolean(), nullable=True),
        sa.Column("field_value_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("smart_code", sa.String(255), nullable=True),
        sa.Column("metadata", json_type, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["organization_id"], ["core_organizations.id"]),
        sa.ForeignKeyConstraint(["entity_id"], ["core_entities.id"]),
        sa.UniqueConstraint(
            "organization_id", "entity_id", "field_name",
            name="uq_core_dynamic_data_org_entity_field",
        ),
    )

    # =============================================================================
    # Relationships
    # =============================================================================
    op.create_table(
        "core_relationships",
        sa.Column("id", id_type, nullable=False),
        sa.Column("organization_id", id_type, nullable=False),
        sa.Column("from_entity_id", id_type, nullable=False),
        sa.Column("to_entity_id", id_type, nullable=False),
        sa.Column("relationship_type", sa.String(100), nullable=False),
        sa.Column("relationship_strength", sa.Float(), nullable=True),
        sa.Column("smart_code", sa.String(255), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="active"),
        sa.Column("metadata", json_type, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["organization_id"], ["core_organizations.id"]),
        sa.ForeignKeyConstraint(["from_entity_id"], ["core_entities.id"]),
        sa.ForeignKeyConstraint(["to_entity_id"], ["core_entities.id"]),
    )
    op.create_index("ix_core_relationships_org_from", "core_relationships", ["organization_id", "from_entity_id"])
    op.create_index("ix_core_relationships_org_to", "core_relationships", ["organization_id", "to_entity_id"])

    # =============================================================================
    # Transactions
    # =============================================================================
    op.create_table(
        "universal_transactions",
        sa.Column("id", id_type, nullable=False),
        sa.Column("organization_id", id_type, nullable=False),
        sa.Column("transaction_type", sa.String(100), nullable=False),
        sa.Column("transaction_code", sa.String(100), nullable=False),
        sa.Column("smart_code", sa.String(255), nullable=False),
        sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("source_entity_id", id_type, nullable=True),
        sa.Column("target_entity_id", id_type, nullable=True),
        sa.Column("total_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(50), nullable=False, server_default="posted"),
        sa.Column("metadata", json_type, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["organization_id"], ["core_organizations.id"]),
        sa.ForeignKeyConstraint(["source_entity_id"], ["core_entities.id"]),
        sa.ForeignKeyConstraint(["target_entity_id"], ["core_entities.id"]),
        sa.UniqueConstraint("organization_id", "transaction_code", name="uq_universal_transactions_org_code"),
    )
    op.create_index(
        "ix_universal_transactions_org_date",
        "universal_transactions",
        ["organization_id", "transaction_date"],
    )

    # =============================================================================
    # Transaction lines
    # =============================================================================
    op.create_table(
        "universal_transaction_lines",
        sa.Column("id", id_type, nullable=False),
        sa.Column("organization_id", id_type, nullable=False),
        sa.Column("transaction_id", id_type, nullable=False),
        sa.Column("line_number", sa.Integer(), nullable=False),
        sa.Column("entity_id", id_type, nullable=True),
        sa.Column("quantity", sa.Float(), nullable=True),
        sa.Column("unit_price", sa.Float(), nullable=True),
        sa.Column("line_amount", sa.Float(), nullable=False, server_default="0"),
        sa.Column("smart_code", sa.String(255), nullable=True),
        sa.Column("metadata", json_type, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["organization_id"], ["core_organizations.id"]),
        sa.ForeignKeyConstraint(["transaction_id"], ["universal_transactions.id"]),
        sa.ForeignKeyConstraint(["entity_id"], ["core_entities.id"]),
    )
    op.create_index(
        "ix_universal_transaction_lines_txn",
        "universal_transaction_lines",
        ["organization_id", "transaction_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_universal_transaction_lines_txn", table_name="universal_transaction_lines")
    op.drop_table("universal_transaction_lines")
    op.drop_index("ix_universal_transactions_org_date", table_name="universal_transactions")
    op.drop_table("universal_transactions")
    op.drop_index("ix_core_relationships_org_to", table_name="core_relationships")
    op.drop_index("ix_core_relationships_org_from", table_name="core_relationships")
    op.drop_table("core_relationships")
    op.drop_table("core_dynamic_data")
    op.drop_index("ix_core_entities_org_smart_code", table_name="core_entities")
    op.drop_index("ix_core_entities_org_type", table_name="core_entities")
    op.drop_table("core_entities")
    op.drop_table("core_organizations")
