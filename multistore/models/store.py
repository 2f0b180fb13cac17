"""Primary store model."""

from typing import TYPE_CHECKING

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from multistore.models.base import Base

if TYPE_CHECKING:
    from multistore.models.backup_store import BackupStore
    from multistore.models.multi_store_config import MultiStoreConfig


class Store(Base):
    """A merchant's primary Shopify storefront.

    Owns the backup stores that checkout can fail over to and the flag that
    turns failover on. The Admin API token is stored encrypted; a store
    without a token cannot have its catalog synced.
    """

    __tablename__ = "stores"

    # Owner (organization id from the merchant session)
    organization_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Canonical *.myshopify.com domain, used by the storefront script to
    # identify the store at checkout
    shop_domain: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
    )

    # Encrypted Admin API access token
    api_token: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    # Relationships
    multi_store_config: Mapped["MultiStoreConfig | None"] = relationship(
        "MultiStoreConfig",
        back_populates="store",
        uselist=False,
        cascade="all, delete-orphan",
    )
    backup_stores: Mapped[list["BackupStore"]] = relationship(
        "BackupStore",
        back_populates="store",
        cascade="all, delete-orphan",
        order_by="BackupStore.created_at",
    )

    @property
    def has_api_token(self) -> bool:
        return bool(self.api_token)

    def __repr__(self) -> str:
        return f"<Store {self.shop_domain}>"
