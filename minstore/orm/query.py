"""
Eager-loading query builder.

    Invoice.query().with_("rows", lambda q: q.order_by("order")).find(1)

`with_` registers dot-separated relation paths, each with its own sub-query
for the entity type at the end of the path. `find`/`get` resolve every
registered path ahead of use and apply the sub-query ordering at the terminal
hop. Only the named paths are materialized; every relationship below them
stays lazy and resolves on first read.
"""
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from minstore.orm.dependency.graph import RelationGraph

OrderSpec = Tuple[str, str]
SubQuery = Callable[["QueryBuilder"], Any]

DIRECTIONS = ("asc", "desc")


def _sort_key(value: Any) -> Tuple[int, str, Any]:
    # None sorts last; non-numeric values are grouped by type name so that
    # mixed columns never compare an int with a str
    if value is None:
        return (1, "", 0)
    if isinstance(value, (int, float)):
        return (0, "", value)
    return (0, type(value).__name__, value)


class QueryBuilder:
    """Fluent eager-load specification for one entity type."""
    _logger = logging.getLogger("QueryBuilder")

    def __init__(self, model: Any) -> None:
        self.model = model
        self.relations: Dict[str, "QueryBuilder"] = {}
        self.orders: List[OrderSpec] = []

    def with_(self, relations: Union[str, Sequence[str]], query: Optional[SubQuery] = None) -> "QueryBuilder":
        """
        Eager-load one or more relation paths.

        Args:
            relations: A dot path ("rows.taxes") or a list of them
            query: Optional callable configuring the sub-query of each path

        Raises:
            UnknownRelationError: If a path segment is not a relationship
        """
        paths = [relations] if isinstance(relations, str) else list(relations)
        for path in paths:
            related = RelationGraph.resolve_path(self.model, path)
            sub_query = QueryBuilder(related)
            if query is not None:
                query(sub_query)
            self.relations[path] = sub_query
            self._logger.debug(f"{self.model.entity}: eager-load '{path}' ({related.entity})")
        return self

    def order_by(self, field: str, direction: str = "asc") -> "QueryBuilder":
        """Add an ordering; the first `order_by` call is the primary key."""
        direction = direction.lower()
        if direction not in DIRECTIONS:
            raise ValueError(f"Order direction must be 'asc' or 'desc', got {direction!r}")
        self.orders.append((field, direction))
        return self

    def apply_order(self, items: Iterable[Any]) -> List[Any]:
        """
        Return `items` sorted by the registered orderings.

        Sorting is stable: items comparing equal keep their relative order.
        Orderings are applied from the last to the first, so the first one
        decides and later ones only break ties. Numbers sort before values of
        other types, which are grouped by type name; None sorts last.
        Values of one type must be comparable with each other.
        """
        ordered = list(items)
        for field, direction in reversed(self.orders):
            ordered.sort(
                key=lambda item: _sort_key(getattr(item, field, None)),
                reverse=direction == "desc",
            )
        return ordered

    def find(self, id: Any) -> Optional[Any]:
        """
        Find one instance by id with the registered relations loaded.

        The instance is a copy, so nothing attached while loading reaches the
        store or any other instance. Returns None when no record matches.
        """
        instance = self.model.find(id)
        if instance is None:
            self._logger.debug(f"{self.model.entity}: no instance with id {id!r}")
            return None

        instance = instance.shallow_copy()
        self.load_relations(instance)
        return instance

    def get(self) -> List[Any]:
        """All instances, ordered, with the registered relations loaded."""
        instances = self.apply_order(self.model.all())
        for instance in instances:
            self.load_relations(instance)
        return instances

    def first(self) -> Optional[Any]:
        instances = self.get()
        return instances[0] if instances else None

    def load_relations(self, instance: Any) -> None:
        for path, sub_query in self.relations.items():
            terminal_items = self._load_path(instance, path.split("."), sub_query)
            if sub_query.relations:
                for item in terminal_items:
                    sub_query.load_relations(item)

    def _load_path(self, owner: Any, segments: List[str], sub_query: "QueryBuilder") -> List[Any]:
        """
        Walk `segments` from `owner`, resolving every hop.

        Lists at the terminal hop are ordered by `sub_query` and written back
        onto their owner, where they take precedence over lazy resolution.

        Returns:
            The instances reached at the terminal hop
        """
        current = [owner]
        last = len(segments) - 1

        for depth, segment in enumerate(segments):
            reached: List[Any] = []
            for item in current:
                value = getattr(item, segment)
                if isinstance(value, list):
                    if depth == last:
                        value = sub_query.apply_order(value)
                        item.__dict__[segment] = value
                    reached.extend(value)
                elif value is not None:
                    reached.append(value)
            current = reached

        return current
