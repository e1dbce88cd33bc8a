"""
Normalized entity store.

This package keeps entities as flat records in a Store and exposes them as
typed Entity views with lazy relationships and an eager-loading QueryBuilder.
"""
from .entity import Entity
from .enregistry import EntityRegistry
from .errors import (
    EntityNotBoundError,
    IdentityMissingError,
    MinstoreError,
    SchemaDefinitionError,
    SchemaMissingError,
    UnknownActionError,
    UnknownMutationError,
    UnknownRelationError,
    ValidationError,
)
from .fields import Attribute, Relationship, attr, belongs_to, has_many
from .query import QueryBuilder
from .store import Store

__all__ = [
    "Entity",
    "EntityRegistry",
    "Store",
    "QueryBuilder",
    "Attribute",
    "Relationship",
    "attr",
    "belongs_to",
    "has_many",
    "MinstoreError",
    "SchemaMissingError",
    "SchemaDefinitionError",
    "IdentityMissingError",
    "UnknownMutationError",
    "UnknownActionError",
    "UnknownRelationError",
    "EntityNotBoundError",
    "ValidationError",
]
