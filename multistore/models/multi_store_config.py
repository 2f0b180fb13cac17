"""Per-store failover feature flag."""

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from multistore.models.base import Base

if TYPE_CHECKING:
    from multistore.models.store import Store


class MultiStoreConfig(Base):
    """Gates whether checkouts for a store are routed to backup stores.

    A store with no row is treated as disabled.
    """

    __tablename__ = "multi_store_configs"

    store_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("stores.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
        index=True,
    )

    enabled: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )

    store: Mapped["Store"] = relationship(
        "Store",
        back_populates="multi_store_config",
    )

    def __repr__(self) -> str:
        return f"<MultiStoreConfig store={self.store_id} enabled={self.enabled}>"
