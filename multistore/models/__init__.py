"""SQLAlchemy models."""

from multistore.models.backup_store import BackupStore
from multistore.models.base import Base
from multistore.models.multi_store_config import MultiStoreConfig
from multistore.models.product_mapping import ProductMapping
from multistore.models.store import Store

__all__ = [
    # Base
    "Base",
    # Primary store
    "Store",
    "MultiStoreConfig",
    # Failover
    "BackupStore",
    "ProductMapping",
]
