"""
Action pipeline.

Actions are the asynchronous write entry points of the store. Each one does
its planning work (normalize, instantiate, select) and then proposes exactly
one mutation through `context.commit`. Actions hand the mutation only
`{entity, data}`; which records are replaced or appended is decided by the
mutation at commit time, against the latest committed state.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, TYPE_CHECKING

from minstore.config import StoreConfig
from minstore.orm.errors import UnknownActionError
from minstore.orm.mutations import select_matches
from minstore.orm.normalize import StoreState, instantiate, normalize
from minstore.orm.tracer import trace_action

if TYPE_CHECKING:
    from minstore.orm.entity import Entity
    from minstore.orm.store import Store

logger = logging.getLogger("ActionPipeline")


@dataclass
class ActionContext:
    """What an action may touch: the latest state and commit."""
    store: "Store"
    commit_count: int = 0

    @property
    def state(self) -> StoreState:
        return self.store.read_snapshot()

    @property
    def config(self) -> StoreConfig:
        return self.store.config

    def commit(self, mutation: str, payload: Optional[Dict[str, Any]] = None) -> None:
        self.store.commit(mutation, payload)
        self.commit_count += 1


Action = Callable[[ActionContext, Any], Awaitable[Any]]


async def _write(context: ActionContext, mutation: str, payload: Dict[str, Any]) -> List["Entity"]:
    model = payload["model"]
    normalized = normalize(
        model.entity,
        payload.get("data") or [],
        require_identity=context.config.require_identity,
    )
    instances = instantiate(model, normalized, store=context.store)
    records = [instance.to_object() for instance in instances]

    # Other pending actions may run here; the mutation re-derives its
    # targets from whatever state is current when the commit is applied.
    await asyncio.sleep(0)

    context.commit(mutation, {"entity": model.entity, "data": records})
    return instances


@trace_action
async def create(context: ActionContext, payload: Dict[str, Any]) -> List["Entity"]:
    return await _write(context, "create", payload)


@trace_action
async def insert(context: ActionContext, payload: Dict[str, Any]) -> List["Entity"]:
    return await _write(context, "insert", payload)


@trace_action
async def update(context: ActionContext, payload: Dict[str, Any]) -> List["Entity"]:
    return await _write(context, "update", payload)


@trace_action
async def insert_or_update(context: ActionContext, payload: Dict[str, Any]) -> List["Entity"]:
    return await _write(context, "insert_or_update", payload)


@trace_action
async def delete(context: ActionContext, payload: Dict[str, Any]) -> List["Entity"]:
    """
    Remove the records matched by `payload["selector"]`.

    The matches are computed against the current state right before the
    commit so the removed instances can be returned, in collection order.
    """
    model = payload["model"]
    selector = payload.get("selector")
    records = context.state.get(model.entity) or []
    removed = [
        model(record, store=context.store)
        for record in select_matches(records, selector, model)
    ]
    context.commit("delete", {"entity": model.entity, "selector": selector, "model": model})
    return removed


@trace_action
async def delete_all(context: ActionContext, payload: Dict[str, Any]) -> None:
    context.commit("delete_all", {"entity": payload["model"].entity})


@trace_action
async def reset(context: ActionContext, payload: Any = None) -> None:
    context.commit("reset")


@trace_action
async def hydrate(context: ActionContext, payload: Dict[str, Any]) -> None:
    context.commit("hydrate", {"state": payload["state"]})


ACTIONS: Dict[str, Action] = {
    "create": create,
    "insert": insert,
    "update": update,
    "insert_or_update": insert_or_update,
    "delete": delete,
    "delete_all": delete_all,
    "reset": reset,
    "hydrate": hydrate,
}


def get_action(name: str) -> Action:
    action = ACTIONS.get(name)
    if action is None:
        logger.error(f"Unknown action type: {name}")
        raise UnknownActionError(name)
    return action
