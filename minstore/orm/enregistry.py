import logging
from typing import Any, Dict, Type, TYPE_CHECKING

from pydantic import BaseModel

from minstore.orm.errors import SchemaDefinitionError, SchemaMissingError
from minstore.orm.fields import (
    Schema, as_descriptor, build_record_model, invalid_field_name, is_relationship
)

if TYPE_CHECKING:
    from minstore.orm.entity import Entity

##############################
# Schema Registry Facade
##############################

class EntityRegistry:
    """
    Static registry of entity classes and their schemas.

    Entity classes register themselves by entity-type name when they are
    defined. Schemas are computed lazily: the first `get_fields()` call for an
    entity type invokes the class's `fields()` and the result is cached, so
    each schema is built at most once per process (or until `clear()`). The
    attribute part of each schema is also compiled into a pydantic record
    model, which entity instances use to hold their values.
    """
    _logger = logging.getLogger("EntityRegistry")
    _registry: Dict[str, Type["Entity"]] = {}
    _schemas: Dict[str, Schema] = {}
    _models: Dict[str, Type[BaseModel]] = {}

    @classmethod
    def register(cls, entity_cls: Type["Entity"]) -> None:
        name = entity_cls.entity
        previous = cls._registry.get(name)
        if previous is not None and previous is not entity_cls:
            cls._logger.warning(
                f"Entity type '{name}' re-registered: {previous.__name__} -> {entity_cls.__name__}"
            )
            cls._schemas.pop(name, None)
            cls._models.pop(name, None)
        cls._registry[name] = entity_cls
        cls._logger.debug(f"Registered entity type '{name}' ({entity_cls.__name__})")

    @classmethod
    def get(cls, entity_type: str) -> Type["Entity"]:
        """
        Look up the entity class registered for `entity_type`.

        Raises:
            SchemaMissingError: If no class is registered under that name
        """
        entity_cls = cls._registry.get(entity_type)
        if entity_cls is None:
            cls._logger.error(f"No entity class registered for '{entity_type}'")
            raise SchemaMissingError(entity_type)
        return entity_cls

    @classmethod
    def get_fields(cls, entity_type: str) -> Schema:
        """
        Return the cached schema for `entity_type`, building it on first use.

        Args:
            entity_type: Entity-type name (e.g. "users")

        Returns:
            Ordered mapping of field name to Attribute/Relationship descriptor

        Raises:
            SchemaMissingError: If the entity type is unknown or declares no fields
            SchemaDefinitionError: If a field name is reserved
        """
        schema = cls._schemas.get(entity_type)
        if schema is not None:
            return schema

        entity_cls = cls.get(entity_type)
        raw_fields = entity_cls.fields()
        if not raw_fields:
            cls._logger.error(f"Entity type '{entity_type}' declares no fields")
            raise SchemaMissingError(entity_type)

        for name in raw_fields:
            if invalid_field_name(name):
                cls._logger.error(f"Entity type '{entity_type}' declares reserved field name '{name}'")
                raise SchemaDefinitionError(entity_type, name)

        schema = {name: as_descriptor(value) for name, value in raw_fields.items()}
        cls._schemas[entity_type] = schema
        relations = sum(1 for field in schema.values() if is_relationship(field))
        cls._logger.info(
            f"Built schema for '{entity_type}': {len(schema) - relations} attributes, {relations} relationships"
        )
        return schema

    @classmethod
    def get_record_model(cls, entity_type: str) -> Type[BaseModel]:
        """Return the cached pydantic record model for `entity_type`."""
        model = cls._models.get(entity_type)
        if model is not None:
            return model

        schema = cls.get_fields(entity_type)
        model = build_record_model(f"{cls.get(entity_type).__name__}Record", schema)
        cls._models[entity_type] = model
        cls._logger.debug(f"Compiled record model for '{entity_type}': {list(model.model_fields)}")
        return model

    @classmethod
    def get_registry_status(cls) -> Dict[str, Any]:
        return {
            "entity_types": sorted(cls._registry),
            "cached_schemas": sorted(cls._schemas),
            "record_models": sorted(cls._models),
            "total_entity_types": len(cls._registry),
        }

    @classmethod
    def clear_schemas(cls) -> None:
        cls._schemas.clear()
        cls._models.clear()
        cls._logger.info("Schema cache cleared")

    @classmethod
    def clear(cls) -> None:
        """Drop every registered class and cached schema."""
        cls._registry.clear()
        cls._schemas.clear()
        cls._models.clear()
        cls._logger.info("Registry cleared")
