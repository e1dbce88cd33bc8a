from minstore.config import StoreConfig
from minstore.orm import Entity, EntityRegistry, QueryBuilder, Store

__all__ = ["Entity", "EntityRegistry", "QueryBuilder", "Store", "StoreConfig"]
