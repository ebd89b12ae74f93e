"""Graph validation with cycle, dangling-edge and isolation reporting.

This module builds the advisory report callers consult before asking a
DependencyGraph for an order, a critical path or parallel batches. Building
the report never raises: every finding is recorded as an error or a warning
and the caller decides what to block on.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from src.graph.dependency_graph import CyclicGraphError
from src.graph.models import DependencyEdge

if TYPE_CHECKING:
    from src.graph.dependency_graph import DependencyGraph

logger = structlog.get_logger(__name__)

DEFAULT_ISOLATION_RATIO = 0.5


@dataclass
class ValidationReport:
    """Report containing validation results for a dependency graph.

    Attributes:
        is_valid: False when cycles, dangling edges or rejected self-loops exist
        errors: Error messages (should normally block downstream work)
        warnings: Warning messages (advisory only)
        has_cycles: Whether hard edges form at least one cycle
        cycles: Detected cycles, each closing back on its first node
        dangling_edges: Edges whose source or target is not a known node
        isolated_nodes: Nodes with neither incoming nor outgoing edges
        rejected_self_loops: Node ids for which a self-loop was attempted
        soft_violations: Soft edges contradicted by the hard-edge order
        likely_generation_failure: Most nodes are isolated in a multi-node graph
    """

    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    has_cycles: bool = False
    cycles: list[list[str]] = field(default_factory=list)
    dangling_edges: list[DependencyEdge] = field(default_factory=list)
    isolated_nodes: list[str] = field(default_factory=list)
    rejected_self_loops: list[str] = field(default_factory=list)
    soft_violations: list[DependencyEdge] = field(default_factory=list)
    likely_generation_failure: bool = False

    def add_error(self, message: str) -> None:
        """Add an error message and mark validation as failed."""
        self.errors.append(message)
        self.is_valid = False
        logger.error("validation_error", message=message)

    def add_warning(self, message: str) -> None:
        """Add a warning message without failing validation."""
        self.warnings.append(message)
        logger.warning("validation_warning", message=message)

    def to_dict(self) -> dict:
        """Plain-data form of the report, suitable for JSON export."""
        return {
            "is_valid": self.is_valid,
            "has_cycles": self.has_cycles,
            "cycles": [list(cycle) for cycle in self.cycles],
            "dangling_edges": [_edge_dict(edge) for edge in self.dangling_edges],
            "isolated_nodes": list(self.isolated_nodes),
            "rejected_self_loops": list(self.rejected_self_loops),
            "soft_violations": [_edge_dict(edge) for edge in self.soft_violations],
            "likely_generation_failure": self.likely_generation_failure,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }

    def summary(self) -> str:
        """Generate a human-readable summary of the validation report."""
        lines = []
        lines.append(f"Validation Status: {'PASS' if self.is_valid else 'FAIL'}")
        lines.append(f"Errors: {len(self.errors)}")
        lines.append(f"Warnings: {len(self.warnings)}")
        lines.append(f"Cycles: {len(self.cycles)}")
        lines.append(f"Dangling Edges: {len(self.dangling_edges)}")
        lines.append(f"Isolated Tasks: {len(self.isolated_nodes)}")

        if self.errors:
            lines.append("\nErrors:")
            lines.extend(f"  - {error}" for error in self.errors)

        if self.warnings:
            lines.append("\nWarnings:")
            lines.extend(f"  - {warning}" for warning in self.warnings)

        if self.cycles:
            lines.append("\nCycles Detected:")
            for i, cycle in enumerate(self.cycles, 1):
                lines.append(f"  {i}. {' -> '.join(cycle)}")

        return "\n".join(lines)


def _edge_dict(edge: DependencyEdge) -> dict:
    return {
        "source": edge.source,
        "target": edge.target,
        "type": edge.type.value,
        "weight": edge.weight,
    }


class GraphValidator:
    """Validator for dependency graphs with detailed error reporting.

    Checks performed:
    - Hard-edge cycles, with the cycle paths
    - Dangling edges (unknown source or target)
    - Rejected self-loop attempts
    - Isolated tasks, and whether isolation looks like a generation failure
    - Soft edges that the hard-edge order contradicts
    """

    def __init__(self, isolation_ratio: float = DEFAULT_ISOLATION_RATIO):
        """Initialize the graph validator.

        Args:
            isolation_ratio: Share of isolated nodes (0-1) above which a
                multi-node graph is flagged as a likely generation failure
        """
        if not 0 <= isolation_ratio <= 1:
            msg = f"isolation_ratio must be between 0 and 1, got {isolation_ratio}"
            raise ValueError(msg)
        self.isolation_ratio = isolation_ratio

    def validate(self, graph: "DependencyGraph") -> ValidationReport:
        """Validate a dependency graph and generate a detailed report.

        Args:
            graph: The DependencyGraph to validate

        Returns:
            ValidationReport containing all validation results
        """
        logger.info("starting_graph_validation", task_count=len(graph))

        report = ValidationReport()

        cycle_report = graph.detect_cycles()
        report.has_cycles = cycle_report.has_cycles
        report.cycles = cycle_report.cycles
        for cycle in cycle_report.cycles:
            report.add_error(f"Cycle detected: {' -> '.join(cycle)}")

        report.dangling_edges = self._find_dangling_edges(graph)
        for edge in report.dangling_edges:
            missing = [end for end in (edge.source, edge.target) if not graph.has_node(end)]
            report.add_error(
                f"Edge {edge.source} -> {edge.target} references unknown tasks: "
                f"{', '.join(missing)}",
            )

        report.rejected_self_loops = graph.rejected_self_loops
        for node_id in report.rejected_self_loops:
            report.add_error(f"Self-loop rejected: {node_id} -> {node_id}")

        self._check_isolation(graph, report)

        # Soft edges can only be checked against an order that exists
        if not report.has_cycles:
            report.soft_violations = self._find_soft_violations(graph)
            for edge in report.soft_violations:
                report.add_warning(
                    f"Soft dependency {edge.source} -> {edge.target} is not honoured "
                    "by the hard dependency order",
                )

        logger.info(
            "graph_validation_complete",
            is_valid=report.is_valid,
            error_count=len(report.errors),
            warning_count=len(report.warnings),
        )

        return report

    def _find_dangling_edges(self, graph: "DependencyGraph") -> list[DependencyEdge]:
        dangling = [
            edge
            for edge in graph.edges
            if not graph.has_node(edge.source) or not graph.has_node(edge.target)
        ]

        if dangling:
            logger.debug("dangling_edges_found", count=len(dangling))

        return dangling

    def _find_isolated_nodes(self, graph: "DependencyGraph") -> list[str]:
        return [
            node_id
            for node_id in graph.node_ids
            if not graph.neighbors(node_id) and not graph.predecessors(node_id)
        ]

    def _check_isolation(self, graph: "DependencyGraph", report: ValidationReport) -> None:
        isolated = self._find_isolated_nodes(graph)
        report.isolated_nodes = isolated
        if not isolated:
            return

        report.add_warning(f"Isolated tasks with no dependencies: {', '.join(isolated)}")

        total = len(graph)
        if total > 1 and len(isolated) / total > self.isolation_ratio:
            report.likely_generation_failure = True
            report.add_warning(
                f"{len(isolated)} of {total} tasks are isolated; "
                "dependency generation probably failed",
            )

    def _find_soft_violations(self, graph: "DependencyGraph") -> list[DependencyEdge]:
        try:
            order = graph.topological_sort()
        except CyclicGraphError:
            return []

        position = {node_id: index for index, node_id in enumerate(order)}
        return [
            edge
            for edge in graph.edges
            if not edge.is_hard
            and edge.source in position
            and edge.target in position
            and position[edge.source] > position[edge.target]
        ]
