"""SKU-keyed variant correspondence between a primary and a backup store."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from multistore.models.base import Base, PrimaryStoreMixin

if TYPE_CHECKING:
    from multistore.models.backup_store import BackupStore


class ProductMapping(PrimaryStoreMixin, Base):
    """Maps one primary-store variant to the backup-store variant with the same SKU.

    Rows are written only by the product mapping sync and are unique per
    (store, backup store, SKU). A re-sync overwrites the row in place and
    stamps ``last_synced_at`` with the sync run's timestamp.
    """

    __tablename__ = "product_mappings"

    backup_store_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("backup_stores.id", ondelete="CASCADE"),
        nullable=False,
    )

    sku: Mapped[str] = mapped_column(String(255), nullable=False)

    # Shopify variant ids, kept as strings (they exceed 32-bit and are
    # only ever compared, never computed on)
    primary_variant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    backup_variant_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Diagnostics only
    primary_product_title: Mapped[str | None] = mapped_column(String(500), nullable=True)

    last_synced_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    backup_store: Mapped["BackupStore"] = relationship(
        "BackupStore",
        back_populates="product_mappings",
    )

    __table_args__ = (
        Index(
            "ix_product_mappings_store_backup_sku",
            "store_id",
            "backup_store_id",
            "sku",
            unique=True,
        ),
        Index(
            "ix_product_mappings_store_backup_variant",
            "store_id",
            "backup_store_id",
            "primary_variant_id",
        ),
    )

    def __repr__(self) -> str:
        return f"<ProductMapping {self.sku}: {self.primary_variant_id} -> {self.backup_variant_id}>"
