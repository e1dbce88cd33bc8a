"""
Mutation engine.

Every mutation is a pure function `(state, payload) -> new_state`. Inputs are
never modified: a mutation builds a new top-level mapping and new lists for
the entity types it touches and shares everything else with the previous
state. A mutation that changes nothing returns the state object it was given,
so the store can tell a no-op from a change without comparing content.

Targeting decisions (which record to replace, whether to append) are always
made here, against the state the mutation is applied to, never against a
snapshot captured earlier by an action.
"""
import logging
from copy import deepcopy
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set

from minstore.orm.errors import UnknownMutationError
from minstore.orm.normalize import Record, StoreState, identity_of, record_identity

logger = logging.getLogger("MutationEngine")

Mutation = Callable[[StoreState, Dict[str, Any]], StoreState]
Selector = Any

##############################
# Selector matching
##############################

def is_id_collection(selector: Any) -> bool:
    return isinstance(selector, (list, tuple, set, frozenset))


def build_matcher(selector: Selector, model: Optional[type] = None) -> Callable[[Record], bool]:
    """
    Turn a delete selector into a record predicate.

    Args:
        selector: A single id, a collection of ids, or a predicate over instances
        model: Entity class used to build the instances a predicate receives

    Returns:
        Function telling whether a record is selected
    """
    if callable(selector) and not isinstance(selector, type):
        if model is None:
            raise ValueError("A predicate selector needs the entity model to build instances")
        store = getattr(model, "_store", None)
        return lambda record: bool(selector(model(record, store=store)))

    if is_id_collection(selector):
        wanted: Set[Optional[str]] = {identity_of(value) for value in selector}
        return lambda record: record_identity(record) in wanted

    key = identity_of(selector)
    return lambda record: record_identity(record) == key


def select_matches(records: Iterable[Record], selector: Selector, model: Optional[type] = None) -> List[Record]:
    """Records matched by `selector`, in collection order."""
    matches = build_matcher(selector, model)
    return [record for record in records if matches(record)]


def _records(payload: Mapping[str, Any]) -> List[Record]:
    return [dict(record) for record in payload.get("data") or []]


def _replace(state: StoreState, entity: str, records: List[Record]) -> StoreState:
    new_state = dict(state)
    new_state[entity] = records
    return new_state

##############################
# Mutations
##############################

def create(state: StoreState, payload: Dict[str, Any]) -> StoreState:
    """Replace the whole collection for the entity."""
    entity = payload["entity"]
    records = _records(payload)
    logger.debug(f"create: {entity} <- {len(records)} records")
    return _replace(state, entity, records)


def insert(state: StoreState, payload: Dict[str, Any]) -> StoreState:
    """Append records without de-duplication."""
    entity = payload["entity"]
    records = _records(payload)
    logger.debug(f"insert: {entity} += {len(records)} records")
    return _replace(state, entity, list(state.get(entity) or []) + records)


def update(state: StoreState, payload: Dict[str, Any]) -> StoreState:
    """Replace records whose identity matches; unmatched items are ignored."""
    entity = payload["entity"]
    current = state.get(entity)
    if current is None:
        logger.debug(f"update: no '{entity}' collection, nothing to do")
        return state

    replacements: Dict[Optional[str], Record] = {}
    for record in _records(payload):
        replacements[record_identity(record)] = record

    changed = 0
    updated: List[Record] = []
    for record in current:
        identity = record_identity(record)
        if identity is not None and identity in replacements:
            updated.append(replacements[identity])
            changed += 1
        else:
            updated.append(record)

    logger.debug(f"update: {entity} replaced {changed} records")
    if not changed:
        return state
    return _replace(state, entity, updated)


def insert_or_update(state: StoreState, payload: Dict[str, Any]) -> StoreState:
    """Replace the first record with a matching identity, else append."""
    entity = payload["entity"]
    collection = list(state.get(entity) or [])

    positions: Dict[str, int] = {}
    for index, record in enumerate(collection):
        identity = record_identity(record)
        if identity is not None and identity not in positions:
            positions[identity] = index

    replaced = appended = 0
    for record in _records(payload):
        identity = record_identity(record)
        if identity is not None and identity in positions:
            collection[positions[identity]] = record
            replaced += 1
        else:
            if identity is not None:
                positions[identity] = len(collection)
            collection.append(record)
            appended += 1

    logger.debug(f"insert_or_update: {entity} replaced {replaced}, appended {appended}")
    return _replace(state, entity, collection)


def delete(state: StoreState, payload: Dict[str, Any]) -> StoreState:
    """Remove every record matched by the selector."""
    entity = payload["entity"]
    current = state.get(entity)
    if current is None:
        logger.debug(f"delete: no '{entity}' collection, nothing to do")
        return state

    matches = build_matcher(payload.get("selector"), payload.get("model"))
    kept = [record for record in current if not matches(record)]
    logger.debug(f"delete: {entity} removed {len(current) - len(kept)} records")
    if len(kept) == len(current):
        return state
    return _replace(state, entity, kept)


def delete_all(state: StoreState, payload: Dict[str, Any]) -> StoreState:
    entity = payload["entity"]
    if entity in state and not state[entity]:
        return state
    logger.debug(f"delete_all: {entity}")
    return _replace(state, entity, [])


def reset(state: StoreState, payload: Optional[Dict[str, Any]] = None) -> StoreState:
    if not state:
        return state
    logger.debug(f"reset: dropping {len(state)} collections")
    return {}


def hydrate(state: StoreState, payload: Dict[str, Any]) -> StoreState:
    """
    Replace the whole state with an externally sourced snapshot.

    The snapshot is compared by value first; an equal snapshot leaves the
    state object untouched. Otherwise it replaces the state wholesale (no
    merge), as a deep copy so the caller keeps no handle into the store.
    """
    new_state = payload["state"]
    if state == new_state:
        logger.debug("hydrate: snapshot equals current state, skipping")
        return state
    logger.debug(f"hydrate: replacing state with {len(new_state)} collections")
    return {entity: list(records) for entity, records in deepcopy(dict(new_state)).items()}


MUTATIONS: Dict[str, Mutation] = {
    "create": create,
    "insert": insert,
    "update": update,
    "insert_or_update": insert_or_update,
    "delete": delete,
    "delete_all": delete_all,
    "reset": reset,
    "hydrate": hydrate,
}


def get_mutation(name: str) -> Mutation:
    mutation = MUTATIONS.get(name)
    if mutation is None:
        logger.error(f"Unknown mutation type: {name}")
        raise UnknownMutationError(name)
    return mutation
