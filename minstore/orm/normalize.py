"""
Record normalization and entity instantiation.

`normalize()` turns raw input (one mapping or a list of them) into identity
tagged records; `instantiate()` turns those records into typed Entity views.
Both steps run inside actions, before the single commit.
"""
import logging
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Union, Type, TYPE_CHECKING

from minstore.orm.enregistry import EntityRegistry
from minstore.orm.errors import IdentityMissingError

if TYPE_CHECKING:
    from minstore.orm.entity import Entity
    from minstore.orm.store import Store

logger = logging.getLogger("RecordNormalizer")

Record = Dict[str, Any]
StoreState = Dict[str, List[Record]]


class NormalizedRecord(NamedTuple):
    identity: Optional[str]
    record: Record


def identity_of(value: Any) -> Optional[str]:
    """Stringified identity for a business id; None stays None."""
    if value is None:
        return None
    return str(value)


def record_identity(record: Mapping[str, Any]) -> Optional[str]:
    return identity_of(record.get("id"))


def normalize(
    entity_type: str,
    data: Union[Mapping[str, Any], Iterable[Mapping[str, Any]]],
    require_identity: bool = True,
) -> List[NormalizedRecord]:
    """
    Normalize one item or a list of items for `entity_type`.

    Items keep their input order, and repeated ids are kept as separate
    records; callers that need one record per identity use
    `normalized_by_identity()`.

    Args:
        entity_type: Entity-type name the data belongs to
        data: A single mapping or entity instance, or an iterable of them
        require_identity: Raise when an item has no `id`

    Returns:
        List of (identity, record) pairs; records are shallow copies

    Raises:
        IdentityMissingError: If an item has no `id` and one is required
    """
    single = isinstance(data, Mapping) or hasattr(data, "to_object")
    items = [data] if single else list(data)
    normalized: List[NormalizedRecord] = []

    for item in items:
        # Entity instances are accepted as input; only their attributes persist
        if hasattr(item, "to_object"):
            item = item.to_object()
        identity = record_identity(item)
        if identity is None and require_identity:
            logger.error(f"Missing identity while normalizing '{entity_type}': {item!r}")
            raise IdentityMissingError(entity_type, item)
        normalized.append(NormalizedRecord(identity, dict(item)))

    logger.debug(f"Normalized {len(normalized)} '{entity_type}' records")
    return normalized


def normalized_by_identity(normalized: Iterable[NormalizedRecord]) -> Dict[Optional[str], Record]:
    """Identity-keyed view of normalized records; later duplicates win."""
    return {entry.identity: entry.record for entry in normalized}


def instantiate(
    entity_type: Union[str, Type["Entity"]],
    normalized: Iterable[NormalizedRecord],
    store: Optional["Store"] = None,
) -> List["Entity"]:
    """
    Build one Entity instance per normalized record.

    Raises:
        SchemaMissingError: If the entity type has no registered schema
    """
    if isinstance(entity_type, str):
        entity_cls = EntityRegistry.get(entity_type)
    else:
        entity_cls = entity_type
    # Fail before building anything when the schema is missing
    EntityRegistry.get_fields(entity_cls.entity)

    return [
        entity_cls(entry.record, store=store, identity=entry.identity)
        for entry in normalized
    ]
