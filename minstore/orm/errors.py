"""
Exception hierarchy for the entity store.

Only the normalizer, the instantiator and the store dispatch layer raise.
Mutations never raise for missing targets: an update or delete that matches
nothing is a no-op, not an error.
"""


class MinstoreError(Exception):
    """Base class for every error raised by minstore."""


class SchemaMissingError(MinstoreError, LookupError):
    """No field/relationship mapping is registered for an entity type."""

    def __init__(self, entity_type: str) -> None:
        self.entity_type = entity_type
        super().__init__(f"No schema registered for entity type '{entity_type}'")


class SchemaDefinitionError(MinstoreError, ValueError):
    """A schema declares a field under a reserved name."""

    def __init__(self, entity_type: str, field_name: str) -> None:
        self.entity_type = entity_type
        self.field_name = field_name
        super().__init__(
            f"Field '{field_name}' of '{entity_type}' uses a reserved name "
            f"(names may not start with '_' or 'model_')"
        )


class IdentityMissingError(MinstoreError, ValueError):
    """An input item has no usable `id` while an identity is required."""

    def __init__(self, entity_type: str, item: object) -> None:
        self.entity_type = entity_type
        self.item = item
        super().__init__(f"Item for '{entity_type}' has no 'id': {item!r}")


class UnknownMutationError(MinstoreError, KeyError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown mutation type: {name}")

    def __str__(self) -> str:
        return str(self.args[0])


class UnknownActionError(MinstoreError, KeyError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown action type: {name}")

    def __str__(self) -> str:
        return str(self.args[0])


class UnknownRelationError(MinstoreError, LookupError):
    """A query path segment does not name a relationship."""

    def __init__(self, entity_type: str, segment: str, path: str) -> None:
        self.entity_type = entity_type
        self.segment = segment
        self.path = path
        super().__init__(
            f"'{segment}' in '{path}' is not a relationship of '{entity_type}'"
        )


class EntityNotBoundError(MinstoreError, RuntimeError):
    """The class-level API was used before `Entity.init(store)`."""

    def __init__(self, entity_type: str) -> None:
        self.entity_type = entity_type
        super().__init__(
            f"Entity '{entity_type}' is not bound to a store; call init(store) first"
        )


class ValidationError(MinstoreError, ValueError):
    """
    Raised by consumer layers that validate payloads before calling the
    action methods. The core itself performs no input validation.
    """
