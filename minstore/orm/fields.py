"""
Field descriptors for entity schemas.

A schema maps field names to one of two tagged descriptor models:

- Attribute: a scalar field with a default and a `make()` normalization rule.
- Relationship: a declarative belongs_to/has_many link to another entity type
  through a foreign key.

The `kind` tag lets pydantic discriminate the union, so schemas may also be
declared as plain dicts (e.g. loaded from configuration) and are validated
into descriptor models on first access.
"""
from copy import deepcopy
from typing import Annotated, Any, Dict, Literal, Mapping, Type, Union, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, create_model

if TYPE_CHECKING:
    from minstore.orm.entity import Entity


class _Missing:
    """Sentinel for 'no value supplied', distinct from an explicit None."""

    _instance = None

    def __new__(cls) -> "_Missing":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


class Attribute(BaseModel):
    """
    Scalar field descriptor.

    `default` is either a static value or a zero-argument factory. Factories
    are called and static values are copied on every `make()`, so mutable
    defaults are never shared between instances.
    """
    kind: Literal["attr"] = "attr"
    default: Any = None

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    def make(self, value: Any = MISSING) -> Any:
        """Return `value` when supplied, else a (fresh) default."""
        if value is not MISSING:
            return value
        return self.default_value()

    def default_value(self) -> Any:
        if callable(self.default):
            return self.default()
        return deepcopy(self.default)


class Relationship(BaseModel):
    """
    Relationship descriptor.

    `related` is an Entity subclass or the entity-type name of one; names are
    resolved through the EntityRegistry when first needed, which allows
    relationships between classes defined in any order.
    """
    kind: Literal["belongs_to", "has_many"]
    related: Any
    foreign_key: str

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    @property
    def related_entity(self) -> Type["Entity"]:
        if isinstance(self.related, str):
            from minstore.orm.enregistry import EntityRegistry
            return EntityRegistry.get(self.related)
        return self.related

    @property
    def related_entity_type(self) -> str:
        return self.related_entity.entity

    @property
    def is_many(self) -> bool:
        return self.kind == "has_many"

    def __repr__(self) -> str:
        related = self.related if isinstance(self.related, str) else self.related.__name__
        return f"Relationship({self.kind}, {related}, foreign_key={self.foreign_key!r})"


FieldDescriptor = Annotated[Union[Attribute, Relationship], Field(discriminator="kind")]
Schema = Dict[str, Union[Attribute, Relationship]]

_descriptor_adapter: TypeAdapter = TypeAdapter(FieldDescriptor)


def as_descriptor(value: Any) -> Union[Attribute, Relationship]:
    """
    Coerce a schema entry into a descriptor model.

    Raises:
        TypeError: If the value is neither a descriptor nor a mapping
        pydantic.ValidationError: If a mapping does not describe a descriptor
    """
    if isinstance(value, (Attribute, Relationship)):
        return value
    if isinstance(value, Mapping):
        return _descriptor_adapter.validate_python(dict(value))
    raise TypeError(f"Expected a field descriptor, got {type(value).__name__}")


def is_attribute(field: Union[Attribute, Relationship]) -> bool:
    return isinstance(field, Attribute)


def is_relationship(field: Union[Attribute, Relationship]) -> bool:
    return isinstance(field, Relationship)


def attr(default: Any = None) -> Attribute:
    return Attribute(default=default)


def belongs_to(related: Any, foreign_key: str) -> Relationship:
    return Relationship(kind="belongs_to", related=related, foreign_key=foreign_key)


def has_many(related: Any, foreign_key: str) -> Relationship:
    return Relationship(kind="has_many", related=related, foreign_key=foreign_key)


##############################
# Record models
##############################

RECORD_MODEL_CONFIG = ConfigDict(
    extra="ignore",
    arbitrary_types_allowed=True,
    protected_namespaces=(),
)


def invalid_field_name(name: str) -> bool:
    """Names that would clash with private entity state or pydantic members."""
    return name.startswith("_") or name.startswith("model_")


def build_record_model(model_name: str, schema: Schema) -> Type[BaseModel]:
    """
    Compile the attribute fields of `schema` into a pydantic model.

    Every attribute becomes an untyped field whose default comes from the
    descriptor, so absent values are filled the same way `make()` fills them.
    Relationships are left out: records never hold relationship data.
    """
    definitions: Dict[str, Any] = {
        name: (Any, Field(default_factory=field.default_value))
        for name, field in schema.items()
        if is_attribute(field)
    }
    return create_model(model_name, __config__=RECORD_MODEL_CONFIG, **definitions)
