"""Stores, backup stores and product mappings.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    # Primary stores
    op.create_table(
        "stores",
        sa.Column("id", sa.UUID(), nullable=False, server_default=sa.text("uuid_generate_v4()")),
        sa.Column("organization_id", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("shop_domain", sa.String(255), nullable=False),
        sa.Column("api_token", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_stores"),
    )
    op.create_index("ix_stores_organization_id", "stores", ["organization_id"])
    op.create_index("ix_stores_shop_domain", "stores", ["shop_domain"], unique=True)

    # Failover feature flag (one row per store, created lazily)
    op.create_table(
        "multi_store_configs",
        sa.Column("id", sa.UUID(), nullable=False, server_default=sa.text("uuid_generate_v4()")),
        sa.Column("store_id", sa.UUID(), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default="false"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_multi_store_configs"),
        sa.ForeignKeyConstraint(
            ["store_id"],
            ["stores.id"],
            name="fk_multi_store_configs_store_id_stores",
            ondelete="CASCADE",
        ),
    )
    op.create_index(
        "ix_multi_store_configs_store_id", "multi_store_configs", ["store_id"], unique=True
    )

    # Backup stores
    op.create_table(
        "backup_stores",
        sa.Column("id", sa.UUID(), nullable=False, server_default=sa.text("uuid_generate_v4()")),
        sa.Column("store_id", sa.UUID(), nullable=False),
        sa.Column("shop_domain", sa.String(255), nullable=False),
        sa.Column("api_token", sa.Text(), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_backup_stores"),
        sa.ForeignKeyConstraint(
            ["store_id"],
            ["stores.id"],
            name="fk_backup_stores_store_id_stores",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_backup_stores_store_id", "backup_stores", ["store_id"])
    op.create_index(
        "ix_backup_stores_store_domain",
        "backup_stores",
        ["store_id", "shop_domain"],
        unique=True,
    )

    # SKU-keyed variant mappings
    op.create_table(
        "product_mappings",
        sa.Column("id", sa.UUID(), nullable=False, server_default=sa.text("uuid_generate_v4()")),
        sa.Column("store_id", sa.UUID(), nullable=False),
        sa.Column("backup_store_id", sa.UUID(), nullable=False),
        sa.Column("sku", sa.String(255), nullable=False),
        sa.Column("primary_variant_id", sa.String(64), nullable=False),
        sa.Column("backup_variant_id", sa.String(64), nullable=False),
        sa.Column("primary_product_title", sa.String(500), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_product_mappings"),
        sa.ForeignKeyConstraint(
            ["store_id"],
            ["stores.id"],
            name="fk_product_mappings_store_id_stores",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["backup_store_id"],
            ["backup_stores.id"],
            name="fk_product_mappings_backup_store_id_backup_stores",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_product_mappings_store_id", "product_mappings", ["store_id"])
    op.create_index(
        "ix_product_mappings_store_backup_sku",
        "product_mappings",
        ["store_id", "backup_store_id", "sku"],
        unique=True,
    )
    op.create_index(
        "ix_product_mappings_store_backup_variant",
        "product_mappings",
        ["store_id", "backup_store_id", "primary_variant_id"],
    )


def downgrade() -> None:
    op.drop_table("product_mappings")
    op.drop_table("backup_stores")
    op.drop_table("multi_store_configs")
    op.drop_table("stores")
