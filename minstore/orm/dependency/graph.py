"""
Implementation of the entity relation graph.

This module computes the schema-level graph of entity types linked by
relationship descriptors. Relationships between entity types are frequently
cyclic (a post belongs to a user, a user has many posts), so the graph is the
place where such cycles are detected and where dot-separated relation paths
are resolved to their terminal entity type without touching any data.
"""
from typing import Dict, Set, List, Optional, Any, Tuple, Type
from enum import Enum
import logging
from pydantic import BaseModel, Field, ConfigDict

from minstore.orm.errors import UnknownRelationError
from minstore.orm.fields import Relationship, is_relationship

logger = logging.getLogger("RelationGraph")

class CycleStatus(Enum):
    """Status of cycle detection."""
    NO_CYCLE = 0
    CYCLE_DETECTED = 1

class GraphNode(BaseModel):
    """Represents one entity type in the relation graph."""
    entity_cls: Any = Field(exclude=True)  # Entity subclass (excluded from serialization)
    entity_type: str
    dependencies: Set[str] = Field(default_factory=set)  # entity types this type links to
    dependents: Set[str] = Field(default_factory=set)  # entity types linking to this type

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def add_dependency(self, entity_type: str) -> None:
        self.dependencies.add(entity_type)

    def add_dependent(self, entity_type: str) -> None:
        self.dependents.add(entity_type)

    def __str__(self) -> str:
        return f"Node({self.entity_type}, deps={len(self.dependencies)}, dependents={len(self.dependents)})"

    def __repr__(self) -> str:
        return self.__str__()

class RelationGraph(BaseModel):
    """
    Computes and maintains the relation graph of entity types.

    This class provides methods to:
    1. Build the graph reachable from a root entity class
    2. Detect cycles in the graph
    3. Get a topological sort of entity types (leaves first)
    4. Resolve dot-separated relation paths to their terminal entity class
    """
    nodes: Dict[str, GraphNode] = Field(default_factory=dict)
    cycles: List[List[str]] = Field(default_factory=list)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def build_graph(self, root_entity: Any) -> CycleStatus:
        """
        Build the relation graph starting from a root entity class.

        Args:
            root_entity: Entity subclass to start from

        Returns:
            CycleStatus indicating if any cycles were detected
        """
        logger.debug(f"Building relation graph for {root_entity.entity}")

        self.nodes.clear()
        self.cycles.clear()

        to_process = [root_entity]
        adjacency: Dict[str, Set[str]] = {}

        # Breadth-first collection of entity types and their direct links
        while to_process:
            entity_cls = to_process.pop(0)
            entity_type = entity_cls.entity
            if entity_type in adjacency:
                continue

            if entity_type not in self.nodes:
                self.nodes[entity_type] = GraphNode(entity_cls=entity_cls, entity_type=entity_type)

            linked: Set[str] = set()
            for _, relation in self._find_relationships(entity_cls):
                related_cls = relation.related_entity
                related_type = related_cls.entity
                linked.add(related_type)

                if related_type not in self.nodes:
                    self.nodes[related_type] = GraphNode(entity_cls=related_cls, entity_type=related_type)

                self.nodes[entity_type].add_dependency(related_type)
                self.nodes[related_type].add_dependent(entity_type)

                if related_type not in adjacency:
                    to_process.append(related_cls)

            adjacency[entity_type] = linked

        has_cycle = False
        visited: Set[str] = set()
        path: List[str] = []

        def find_cycles(entity_type: str) -> None:
            nonlocal has_cycle

            if entity_type in path:
                cycle = path[path.index(entity_type):] + [entity_type]
                if not any(self._same_cycle(cycle, known) for known in self.cycles):
                    logger.debug(f"Detected cycle: {cycle}")
                    self.cycles.append(cycle)
                has_cycle = True
                return
            if entity_type in visited:
                return

            path.append(entity_type)
            for linked_type in sorted(adjacency.get(entity_type, ())):
                find_cycles(linked_type)
            path.pop()
            visited.add(entity_type)

        for entity_type in self.nodes:
            find_cycles(entity_type)

        logger.info(f"Built relation graph with {len(self.nodes)} nodes")
        if self.cycles:
            logger.info(f"Detected {len(self.cycles)} cycles in the relation graph")

        return CycleStatus.CYCLE_DETECTED if has_cycle else CycleStatus.NO_CYCLE

    @staticmethod
    def _same_cycle(a: List[str], b: List[str]) -> bool:
        """Cycles are equal when they visit the same types in the same rotation."""
        ring_a, ring_b = a[:-1], b[:-1]
        if len(ring_a) != len(ring_b):
            return False
        doubled = ring_b + ring_b
        return any(doubled[i:i + len(ring_a)] == ring_a for i in range(len(ring_b)))

    @staticmethod
    def _find_relationships(entity_cls: Any) -> List[Tuple[str, Relationship]]:
        """Return (field name, descriptor) pairs for every relationship field."""
        return [
            (name, field)
            for name, field in entity_cls.get_fields().items()
            if is_relationship(field)
        ]

    def get_node(self, entity_type: str) -> Optional[GraphNode]:
        return self.nodes.get(entity_type)

    def get_dependent_types(self, entity_type: str) -> Set[str]:
        """Entity types that declare a relationship to `entity_type`."""
        node = self.get_node(entity_type)
        if node:
            return node.dependents
        return set()

    def is_graph_root(self, entity_type: str) -> bool:
        """An entity type is a root when no other type links to it."""
        node = self.get_node(entity_type)
        if node:
            return len(node.dependents) == 0
        return True

    def get_topological_sort(self) -> List[Any]:
        """
        Return entity classes ordered by link depth (leaves first).

        Cycles do not prevent ordering: a type already on the current path
        contributes depth 0, so the walk always terminates.
        """
        depths: Dict[str, int] = {}

        def calculate_depth(entity_type: str, path: Optional[Set[str]] = None) -> int:
            if path is None:
                path = set()
            if entity_type in path:
                return 0
            if entity_type in depths:
                return depths[entity_type]

            node = self.nodes.get(entity_type)
            if not node or not node.dependencies:
                depths[entity_type] = 0
                return 0

            inner = path | {entity_type}
            max_depth = 0
            for dep_type in node.dependencies:
                if dep_type in self.nodes:
                    max_depth = max(max_depth, calculate_depth(dep_type, inner) + 1)

            depths[entity_type] = max_depth
            return max_depth

        for entity_type in self.nodes:
            if entity_type not in depths:
                calculate_depth(entity_type)

        ordered = sorted(self.nodes, key=lambda entity_type: depths.get(entity_type, 0))
        return [self.nodes[entity_type].entity_cls for entity_type in ordered]

    def get_cycles(self) -> List[List[str]]:
        return self.cycles

    @staticmethod
    def resolve_path(entity_cls: Any, path: str) -> Any:
        """
        Follow a dot-separated relation path from `entity_cls`.

        Args:
            entity_cls: Entity subclass the path starts from
            path: Relation names joined by '.', e.g. "rows.taxes"

        Returns:
            The entity class at the end of the path

        Raises:
            UnknownRelationError: If a segment does not name a relationship
        """
        current = entity_cls
        for segment in path.split("."):
            field = current.get_fields().get(segment)
            if field is None or not is_relationship(field):
                logger.error(f"Unknown relation '{segment}' on '{current.entity}' in path '{path}'")
                raise UnknownRelationError(current.entity, segment, path)
            current = field.related_entity
        return current
