############################################################
# entity.py
############################################################

"""
Entity views over normalized store records.

This module implements the typed object layer of the store. Key concepts:

1. SCHEMA:
   - Each Entity subclass names its entity type (`entity = "users"`) and
     declares its fields in `fields()` using `attr()`, `belongs_to()` and
     `has_many()`
   - The schema is built once per entity type and cached by the EntityRegistry

2. RECORDS VS INSTANCES:
   - The store only holds flat records (attribute values, no relationships)
   - Entity instances are disposable read views built from those records;
     they are never kept in sync with later store changes
   - Attribute values are held in a pydantic record model compiled from the
     schema, on a deep copy of the record, so writing to an instance never
     reaches the published state

3. LAZY RELATIONSHIPS:
   - Relationship fields are not resolved at construction
   - The first read of a relationship looks up the related records in the
     instance's store and caches the result on the instance, so traversal
     cost is proportional to what is actually read
   - Because every hop builds fresh instances from flat records, cyclic
     relationships (user -> posts -> user) never recurse on their own and
     never end up in persisted state

4. CLASS API:
   - `init(store, state)` binds an entity class to an explicit Store
   - async `create/insert/update/insert_or_update/delete/delete_all/reset`
     dispatch actions; `find/all/query` read the current snapshot

Example Usage:
```python
class User(Entity):
    entity = "users"

    @classmethod
    def fields(cls):
        return {
            "id": cls.attr(None),
            "name": cls.attr(""),
            "posts": cls.has_many("posts", "user_id"),
        }

store = Store()
User.init(store)
await User.create({"id": 1, "name": "Alice"})
User.find(1).posts  # resolved on first read
```
"""
import logging
from copy import deepcopy
from typing import (
    Any, ClassVar, Dict, List, Mapping, Optional, Type, TypeVar, Union, TYPE_CHECKING
)

from pydantic import BaseModel

from minstore.orm.enregistry import EntityRegistry
from minstore.orm.errors import EntityNotBoundError, SchemaMissingError
from minstore.orm import fields as field_factories
from minstore.orm.fields import Attribute, Relationship, Schema, is_attribute, is_relationship
from minstore.orm.normalize import identity_of, record_identity, Record

if TYPE_CHECKING:
    from minstore.orm.query import QueryBuilder
    from minstore.orm.store import Store

T_Entity = TypeVar("T_Entity", bound="Entity")


class Entity:
    """
    Base class for typed entity views.

    Attribute values live in a pydantic record model compiled from the
    schema; relationship values are resolved lazily and cached on the
    instance. On instances, schema fields take precedence over members of
    this class, so a field may be named `store`, `identity` or `all`. The
    class-level API (`User.all()`, `User.find(1)`) is unaffected.

    Attributes:
        entity: Entity-type name, also the key of the collection in the store
        identity: Stable string identity derived from the `id` field
    """
    entity: ClassVar[str] = ""
    _store: ClassVar[Optional["Store"]] = None
    _logger: ClassVar[logging.Logger] = logging.getLogger("Entity")

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        # Every subclass gets its own binding
        cls._store = None
        if cls.__dict__.get("entity"):
            EntityRegistry.register(cls)

    def __init__(
        self,
        record: Optional[Mapping[str, Any]] = None,
        store: Optional["Store"] = None,
        identity: Optional[str] = None,
    ) -> None:
        self._bound_store = store
        self._identity = identity
        self._data = type(self).record_model().model_validate(deepcopy(dict(record or {})))

    ##############################
    # Schema
    ##############################

    @classmethod
    def fields(cls) -> Dict[str, Union[Attribute, Relationship]]:
        """Field definitions; override in subclasses."""
        return {}

    @classmethod
    def attr(cls, default: Any = None) -> Attribute:
        return field_factories.attr(default)

    @classmethod
    def belongs_to(cls, related: Any, foreign_key: str) -> Relationship:
        return field_factories.belongs_to(related, foreign_key)

    @classmethod
    def has_many(cls, related: Any, foreign_key: str) -> Relationship:
        return field_factories.has_many(related, foreign_key)

    @classmethod
    def get_fields(cls) -> Schema:
        if not cls.entity:
            raise SchemaMissingError(cls.__name__)
        return EntityRegistry.get_fields(cls.entity)

    @classmethod
    def record_model(cls) -> Type[BaseModel]:
        if not cls.entity:
            raise SchemaMissingError(cls.__name__)
        return EntityRegistry.get_record_model(cls.entity)

    @classmethod
    def attribute_names(cls) -> List[str]:
        return [name for name, field in cls.get_fields().items() if is_attribute(field)]

    @classmethod
    def relationship_names(cls) -> List[str]:
        return [name for name, field in cls.get_fields().items() if is_relationship(field)]

    @classmethod
    def _field(cls, name: str) -> Optional[Union[Attribute, Relationship]]:
        if not cls.entity or name.startswith("_"):
            return None
        try:
            return EntityRegistry.get_fields(cls.entity).get(name)
        except SchemaMissingError:
            return None

    ##############################
    # Field access
    ##############################

    def __getattribute__(self, name: str) -> Any:
        field = type(self)._field(name)
        if field is None:
            return object.__getattribute__(self, name)
        if is_attribute(field):
            return getattr(object.__getattribute__(self, "_data"), name)

        # Cached or overridden relationship values take precedence
        cache = object.__getattribute__(self, "__dict__")
        if name in cache:
            return cache[name]
        value = type(self).resolve_relation(self, field)
        cache[name] = value
        return value

    def __setattr__(self, name: str, value: Any) -> None:
        field = type(self)._field(name)
        if field is None:
            object.__setattr__(self, name, value)
        elif is_attribute(field):
            setattr(self._data, name, value)
        else:
            self.__dict__[name] = value

    def _get_identity(self) -> Optional[str]:
        if self._identity is not None:
            return self._identity
        return identity_of(getattr(self._data, "id", None))

    def _get_store(self) -> Optional["Store"]:
        return self._bound_store if self._bound_store is not None else type(self)._store

    @property
    def identity(self) -> Optional[str]:
        return self._get_identity()

    @property
    def store(self) -> Optional["Store"]:
        return self._get_store()

    def to_object(self) -> Record:
        """Detached copy of the attribute values; relationship views are left out."""
        return deepcopy(self._data.model_dump())

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._get_identity()})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entity):
            return NotImplemented
        return type(self) is type(other) and self._data == other._data

    def __hash__(self) -> int:
        return hash((type(self).entity, self._get_identity()))

    ##############################
    # Relationship resolution
    ##############################

    def resolve_relation(self, relation: Relationship) -> Any:
        """
        Look up the records a relationship points at in the current snapshot.

        belongs_to yields the first related instance whose identity equals this
        instance's foreign key value (or None); has_many yields every related
        instance whose foreign key equals this instance's identity, in
        collection order.
        """
        store = self._get_store()
        if store is None:
            return [] if relation.is_many else None

        related_cls = relation.related_entity
        records = store.read_snapshot().get(related_cls.entity) or []

        if relation.is_many:
            identity = self._get_identity()
            if identity is None:
                return []
            return [
                related_cls(record, store=store)
                for record in records
                if identity_of(record.get(relation.foreign_key)) == identity
            ]

        key = identity_of(getattr(self._data, relation.foreign_key, None))
        if key is None:
            return None
        for record in records:
            if record_identity(record) == key:
                return related_cls(record, store=store)
        return None

    def load_related(self: T_Entity, *names: str) -> T_Entity:
        """Force resolution of the named relationships (all when none given)."""
        for name in names or type(self).relationship_names():
            getattr(self, name)
        return self

    def is_loaded(self, name: str) -> bool:
        return name in self.__dict__

    def shallow_copy(self: T_Entity) -> T_Entity:
        copy = type(self).__new__(type(self))
        copy.__dict__.update(self.__dict__)
        copy.__dict__["_data"] = self._data.model_copy()
        return copy

    ##############################
    # Store binding
    ##############################

    @classmethod
    def init(cls, store: "Store", state: Optional[Mapping[str, List[Record]]] = None) -> None:
        """
        Bind this entity class to `store`.

        When `state` is given and differs by value from the store's current
        snapshot, the store is hydrated with it; an equal state is a no-op.
        """
        cls._store = store
        cls._logger.debug(f"Bound '{cls.entity}' to {store!r}")
        if state is not None and store.read_snapshot() != state:
            cls._logger.info(f"State passed to {cls.__name__}.init differs from store, hydrating")
            store.commit("hydrate", {"state": state})

    @classmethod
    def _require_store(cls) -> "Store":
        if cls._store is None:
            cls._logger.error(f"{cls.__name__} used before init()")
            raise EntityNotBoundError(cls.entity or cls.__name__)
        return cls._store

    ##############################
    # Actions
    ##############################

    @classmethod
    async def create(cls: Type[T_Entity], data: Any) -> List[T_Entity]:
        return await cls._require_store().dispatch("create", {"model": cls, "data": data})

    @classmethod
    async def insert(cls: Type[T_Entity], data: Any) -> List[T_Entity]:
        return await cls._require_store().dispatch("insert", {"model": cls, "data": data})

    @classmethod
    async def update(cls: Type[T_Entity], data: Any) -> List[T_Entity]:
        return await cls._require_store().dispatch("update", {"model": cls, "data": data})

    @classmethod
    async def insert_or_update(cls: Type[T_Entity], data: Any) -> List[T_Entity]:
        return await cls._require_store().dispatch("insert_or_update", {"model": cls, "data": data})

    @classmethod
    async def delete(cls: Type[T_Entity], selector: Any) -> List[T_Entity]:
        """Delete by id, by iterable of ids or by predicate; returns the removed instances."""
        return await cls._require_store().dispatch("delete", {"model": cls, "selector": selector})

    @classmethod
    async def delete_all(cls) -> None:
        await cls._require_store().dispatch("delete_all", {"model": cls})

    @classmethod
    async def reset(cls) -> None:
        await cls._require_store().dispatch("reset")

    @classmethod
    async def hydrate(cls, state: Mapping[str, List[Record]]) -> None:
        await cls._require_store().dispatch("hydrate", {"state": state})

    ##############################
    # Reads
    ##############################

    @classmethod
    def _records(cls) -> List[Record]:
        return cls._require_store().read_snapshot().get(cls.entity) or []

    @classmethod
    def find(cls: Type[T_Entity], id: Any) -> Optional[T_Entity]:
        key = identity_of(id)
        store = cls._require_store()
        for record in cls._records():
            if record_identity(record) == key:
                return cls(record, store=store)
        return None

    @classmethod
    def all(cls: Type[T_Entity]) -> List[T_Entity]:
        store = cls._require_store()
        return [cls(record, store=store) for record in cls._records()]

    @classmethod
    def query(cls: Type[T_Entity]) -> "QueryBuilder":
        from minstore.orm.query import QueryBuilder
        return QueryBuilder(cls)
