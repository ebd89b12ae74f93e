"""Combined scheduling analysis over a dependency graph.

``analyze_graph`` gathers everything a planning session shows about a task
list in one pass: validity, cycles, execution order, critical path, parallel
batches, blocking tasks and recommendations. Views that are undefined on a
cyclic graph are left empty rather than approximated.

``best_effort_order`` is the one place where an approximate order is
produced for cyclic graphs, and callers have to ask for it by name.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from src.graph.dependency_graph import CyclicGraphError
from src.graph.validator import GraphValidator, ValidationReport

if TYPE_CHECKING:
    from src.graph.dependency_graph import DependencyGraph

logger = structlog.get_logger(__name__)

DEFAULT_MAX_CRITICAL_PATH_TASKS = 5

PRIORITY_RANK = {"critical": 4, "high": 3, "medium": 2, "low": 1}

SETUP_CATEGORY = "setup"
TESTING_CATEGORY = "testing"


@dataclass
class GraphAnalysis:
    """Scheduling views derived from a dependency graph.

    Attributes:
        is_valid: Mirrors the validation report
        has_cycles: Whether hard edges form a cycle
        cycles: Detected cycles
        topological_order: Execution order, None when the graph is cyclic
        critical_path: Longest weighted chain, empty when cyclic
        critical_path_length: Cumulative weight of the critical path
        parallel_batches: Earliest-start batches, empty when cyclic
        blocking_tasks: Tasks with an above-average number of dependents
        recommendations: Human-readable planning advice
        report: The full validation report
    """

    is_valid: bool
    has_cycles: bool
    cycles: list[list[str]] = field(default_factory=list)
    topological_order: list[str] | None = None
    critical_path: list[str] = field(default_factory=list)
    critical_path_length: float = 0
    parallel_batches: list[list[str]] = field(default_factory=list)
    blocking_tasks: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    report: ValidationReport = field(default_factory=ValidationReport)

    def to_dict(self) -> dict:
        """Plain-data form of the analysis, suitable for JSON export."""
        return {
            "is_valid": self.is_valid,
            "has_cycles": self.has_cycles,
            "cycles": self.cycles,
            "topological_order": self.topological_order,
            "critical_path": self.critical_path,
            "critical_path_length": self.critical_path_length,
            "parallel_batches": self.parallel_batches,
            "blocking_tasks": self.blocking_tasks,
            "recommendations": self.recommendations,
            "validation": self.report.to_dict(),
        }


def find_blocking_tasks(graph: "DependencyGraph") -> list[str]:
    """Return tasks with more hard dependents than the average task.

    Args:
        graph: Graph to inspect

    Returns:
        Task ids in insertion order
    """
    if len(graph) == 0:
        return []

    counts = {node_id: len(graph.dependents_of(node_id)) for node_id in graph.node_ids}
    average = sum(counts.values()) / len(counts)

    return [node_id for node_id, count in counts.items() if count > average]


def best_effort_order(graph: "DependencyGraph") -> list[str]:
    """Return an execution order even when the graph has cycles.

    On an acyclic graph this is the topological order. Otherwise tasks are
    sorted by priority (critical first), then weight (lighter first), then
    insertion order, and the result does not respect dependencies.

    Args:
        graph: Graph to order

    Returns:
        Every node id exactly once
    """
    try:
        return graph.topological_sort()
    except CyclicGraphError as e:
        logger.warning(
            "best_effort_order_fallback",
            reason="cyclic_graph",
            cycle_count=len(e.cycles),
        )

    position = {node_id: index for index, node_id in enumerate(graph.node_ids)}
    return [
        node.id
        for node in sorted(
            graph.nodes,
            key=lambda node: (
                -PRIORITY_RANK.get((node.priority or "").lower(), 0),
                node.weight,
                position[node.id],
            ),
        )
    ]


def _recommendations(
    graph: "DependencyGraph",
    analysis: GraphAnalysis,
    max_critical_path_tasks: int,
) -> list[str]:
    recommendations = []

    if analysis.has_cycles:
        recommendations.append(
            "Circular dependencies detected. Review task relationships to resolve conflicts.",
        )

    categories = {(node.category or "").lower() for node in graph.nodes}
    if graph.nodes and SETUP_CATEGORY not in categories:
        recommendations.append("Consider adding project setup tasks before implementing features.")
    if graph.nodes and TESTING_CATEGORY not in categories:
        recommendations.append("Add testing tasks to ensure code quality and reliability.")

    if len(analysis.critical_path) > max_critical_path_tasks:
        recommendations.append(
            f"Critical path has {len(analysis.critical_path)} tasks. "
            "Consider breaking down large tasks.",
        )

    if analysis.report.likely_generation_failure:
        recommendations.append(
            "Most tasks have no dependencies. Regenerate the dependency list for this plan.",
        )

    return recommendations


def analyze_graph(
    graph: "DependencyGraph",
    validator: GraphValidator | None = None,
    max_critical_path_tasks: int = DEFAULT_MAX_CRITICAL_PATH_TASKS,
) -> GraphAnalysis:
    """Run validation and compute every scheduling view. Never raises.

    Args:
        graph: Graph to analyse
        validator: Validator to use (default settings when None)
        max_critical_path_tasks: Critical path size that triggers a recommendation

    Returns:
        GraphAnalysis with the derived views
    """
    logger.info("graph_analysis_started", task_count=len(graph))

    report = (validator or GraphValidator()).validate(graph)
    analysis = GraphAnalysis(
        is_valid=report.is_valid,
        has_cycles=report.has_cycles,
        cycles=report.cycles,
        blocking_tasks=find_blocking_tasks(graph),
        report=report,
    )

    if not report.has_cycles:
        analysis.topological_order = graph.topological_sort()
        analysis.critical_path = graph.critical_path()
        analysis.critical_path_length = graph.critical_path_length()
        analysis.parallel_batches = graph.parallel_batches()

    analysis.recommendations = _recommendations(graph, analysis, max_critical_path_tasks)

    logger.info(
        "graph_analysis_complete",
        is_valid=analysis.is_valid,
        critical_path_length=analysis.critical_path_length,
        batch_count=len(analysis.parallel_batches),
    )

    return analysis
