"""
Entity relation graph.

This module provides utilities to compute the graph of entity types linked by
relationships and to detect circular relationship definitions.
"""
from .graph import RelationGraph, CycleStatus, GraphNode

__all__ = ["RelationGraph", "CycleStatus", "GraphNode"]
