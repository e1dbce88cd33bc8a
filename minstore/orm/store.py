"""
In-process state container.

The Store owns the whole-store value `{entity_type: [record, ...]}` and is the
only place a new value is published. Callers propose changes with
`commit(mutation, payload)`; the store applies the named mutation to the
latest state and publishes the result under a lock, so commits are applied
one at a time and each mutation always sees the most recent prior state.

Main components:
- Store.commit / Store.read_snapshot: the state-container boundary
- Store.dispatch: async entry point running registered actions
- Store.subscribe: change listeners (e.g. a UI re-render scheduler)
"""
import inspect
import logging
import threading
from copy import deepcopy
from io import StringIO
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from minstore.config import StoreConfig, configure_logging
from minstore.orm.actions import ActionContext, get_action
from minstore.orm.mutations import get_mutation
from minstore.orm.normalize import Record, StoreState

Listener = Callable[[StoreState, str], Any]


class Store:
    """State container applying mutations one at a time."""

    # Setup logging
    _log_stream = StringIO()
    _logger = logging.getLogger('Store')
    _handler = logging.StreamHandler(_log_stream)
    _handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    _logger.addHandler(_handler)
    _logger.setLevel(logging.INFO)

    def __init__(
        self,
        initial_state: Optional[Mapping[str, List[Record]]] = None,
        config: Optional[StoreConfig] = None,
    ) -> None:
        self.config = config or StoreConfig()
        configure_logging(self.config)
        self._state: StoreState = {
            entity: list(records) for entity, records in deepcopy(dict(initial_state or {})).items()
        }
        self._lock = threading.RLock()
        self._version = 0
        self._listeners: List[Listener] = []
        self._logger.info(f"Store created with {len(self._state)} collections")

    @classmethod
    def get_logs(cls) -> str:
        """Get all logs as text."""
        return cls._log_stream.getvalue()

    @classmethod
    def clear_logs(cls) -> None:
        cls._log_stream.truncate(0)
        cls._log_stream.seek(0)

    @classmethod
    def set_log_level(cls, level: Union[int, str]) -> None:
        cls._logger.setLevel(level)
        cls._logger.info(f"Log level set to {level}")

    @property
    def version(self) -> int:
        """Number of state values published since creation."""
        return self._version

    def read_snapshot(self) -> StoreState:
        """
        Current state value.

        The returned mapping is the published value itself and must be treated
        as read-only; mutations always build new values instead of editing it.
        """
        return self._state

    def commit(self, mutation: str, payload: Optional[Dict[str, Any]] = None) -> None:
        """
        Apply `mutation` to the latest state and publish the result.

        Raises:
            UnknownMutationError: If no mutation is registered under that name
        """
        apply = get_mutation(mutation)

        with self._lock:
            previous = self._state
            new_state = apply(previous, payload or {})
            if new_state is previous:
                self._logger.debug(f"Mutation '{mutation}' left the state unchanged")
                return
            self._state = new_state
            self._version += 1
            version = self._version
            listeners = list(self._listeners)

        self._logger.info(f"Committed '{mutation}' (version {version})")
        for listener in listeners:
            listener(new_state, mutation)

    async def dispatch(self, action: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        """
        Run the action registered under `action`.

        Raises:
            UnknownActionError: If no action is registered under that name
        """
        handler = get_action(action)
        context = ActionContext(self)
        result = handler(context, payload)
        if inspect.isawaitable(result):
            result = await result
        return result

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Call `listener(new_state, mutation)` after every published change.

        Returns:
            Function removing the listener again
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def get_status(self) -> Dict[str, Any]:
        state = self._state
        return {
            "version": self._version,
            "collections": {entity: len(records) for entity, records in state.items()},
            "listeners": len(self._listeners),
        }

    def __repr__(self) -> str:
        return f"Store(version={self._version}, collections={sorted(self._state)})"
