"""Backup store model for checkout failover."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from multistore.models.base import Base, PrimaryStoreMixin

if TYPE_CHECKING:
    from multistore.models.product_mapping import ProductMapping
    from multistore.models.store import Store


class BackupStore(PrimaryStoreMixin, Base):
    """An alternate Shopify storefront that can receive a rerouted checkout.

    ``shop_domain`` is the canonical domain reported by Shopify when the
    credential was validated, not what the merchant typed.
    """

    __tablename__ = "backup_stores"

    shop_domain: Mapped[str] = mapped_column(String(255), nullable=False)

    # Encrypted Admin API access token
    api_token: Mapped[str] = mapped_column(Text, nullable=False)

    enabled: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    # Start of the latest successful mapping sync; mappings stamped earlier
    # are stale. Null until the first sync.
    last_synced_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Relationships
    store: Mapped["Store"] = relationship(
        "Store",
        back_populates="backup_stores",
    )
    product_mappings: Mapped[list["ProductMapping"]] = relationship(
        "ProductMapping",
        back_populates="backup_store",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index(
            "ix_backup_stores_store_domain",
            "store_id",
            "shop_domain",
            unique=True,
        ),
    )

    def __repr__(self) -> str:
        state = "enabled" if self.enabled else "disabled"
        return f"<BackupStore {self.shop_domain} ({state})>"
