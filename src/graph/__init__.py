"""Graph module for task dependency management.

This module provides the DependencyGraph engine (cycle detection, topological
order, critical path, parallel batches), its validation report and the
combined scheduling analysis built on top of it.
"""

from src.graph.analysis import GraphAnalysis, analyze_graph, best_effort_order, find_blocking_tasks
from src.graph.dependency_graph import (
    CyclicGraphError,
    DependencyGraph,
    GraphError,
    InvalidEdgeError,
)
from src.graph.models import CycleReport, DependencyEdge, EdgeType, TaskNode
from src.graph.validator import GraphValidator, ValidationReport

__all__ = [
    "CycleReport",
    "CyclicGraphError",
    "DependencyEdge",
    "DependencyGraph",
    "EdgeType",
    "GraphAnalysis",
    "GraphError",
    "GraphValidator",
    "InvalidEdgeError",
    "TaskNode",
    "ValidationReport",
    "analyze_graph",
    "best_effort_order",
    "find_blocking_tasks",
]
