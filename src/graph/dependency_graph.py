"""Task dependency graph with ordering, critical-path and batching queries.

This module provides the DependencyGraph class which stores tasks (nodes) and
their dependencies (edges) and derives execution views from them: cycle
detection, topological order, critical path and parallel batches.

Only HARD edges between known nodes take part in the derived views. SOFT
edges and edges pointing at unknown node ids are kept so validation can
report on them.
"""

from collections import deque
from typing import TYPE_CHECKING

import structlog

from src.graph.models import DEFAULT_NODE_WEIGHT, CycleReport, DependencyEdge, EdgeType, TaskNode

if TYPE_CHECKING:
    from collections.abc import Iterable

    from src.graph.validator import ValidationReport

logger = structlog.get_logger(__name__)


class GraphError(Exception):
    """Base exception for dependency graph failures."""

    def __init__(self, message: str):
        """Initialize the exception with a descriptive message.

        Args:
            message: Description of the graph error
        """
        super().__init__(message)
        self.message = message


class InvalidEdgeError(GraphError):
    """Exception raised when an edge is rejected at the mutation boundary.

    Self-loops are never allowed into the edge set.
    """

    def __init__(self, message: str, source: str | None = None, target: str | None = None):
        """Initialize the exception.

        Args:
            message: Description of why the edge was rejected
            source: Source id of the rejected edge
            target: Target id of the rejected edge
        """
        super().__init__(message)
        self.source = source
        self.target = target


class CyclicGraphError(GraphError):
    """Exception raised when an operation needs an acyclic graph but hard cycles exist.

    A cycle means tasks have circular dependencies, so there is no valid
    execution order, critical path or batch schedule.
    """

    def __init__(self, message: str, cycles: list[list[str]] | None = None):
        """Initialize the exception.

        Args:
            message: Description of the cycle error
            cycles: Example cycles found in the graph
        """
        super().__init__(message)
        self.cycles = cycles or []


class DependencyGraph:
    """Directed graph of tasks and their dependencies.

    An edge ``source -> target`` means ``target`` cannot start until
    ``source`` completes. Nodes and edges remember their insertion order,
    which is used to break ties so repeated queries on an unchanged graph
    return identical results.

    Thread-safety:
        Concurrent readers of a graph that is no longer being mutated are
        safe. Mutation from several threads at once is not supported.

    Example:
        >>> graph = DependencyGraph()
        >>> graph.add_node(TaskNode("setup", "Project setup"))
        >>> graph.add_node(TaskNode("api", "Build API"))
        >>> graph.add_edge("setup", "api")
        >>> graph.topological_sort()
        ['setup', 'api']
    """

    def __init__(self):
        """Initialize an empty dependency graph."""
        self._nodes: dict[str, TaskNode] = {}
        self._edges: dict[tuple[str, str], DependencyEdge] = {}
        # Adjacency keyed by id; dict keys keep edge insertion order
        self._successors: dict[str, dict[str, None]] = {}
        self._predecessors: dict[str, dict[str, None]] = {}
        self._rejected_self_loops: list[str] = []

        logger.debug("dependency_graph_initialized")

    # ------------------------------------------------------------------
    # Construction & mutation
    # ------------------------------------------------------------------

    def add_node(self, node: TaskNode) -> None:
        """Insert a node, or replace the attributes of an existing one.

        Existing edges are untouched and a replaced node keeps its original
        insertion position.

        Args:
            node: The task node to store
        """
        replaced = node.id in self._nodes
        self._nodes[node.id] = node

        logger.debug(
            "node_added_to_graph",
            node_id=node.id,
            weight=node.weight,
            category=node.category,
            replaced=replaced,
        )

    def remove_node(self, node_id: str) -> None:
        """Remove a node and every edge incident to it.

        Removing an unknown id is a no-op.

        Args:
            node_id: Id of the node to remove
        """
        incident = [
            *((node_id, target) for target in self._successors.get(node_id, {})),
            *((source, node_id) for source in self._predecessors.get(node_id, {})),
        ]
        for source, target in incident:
            self._discard_edge(source, target)

        self._successors.pop(node_id, None)
        self._predecessors.pop(node_id, None)
        self._rejected_self_loops = [n for n in self._rejected_self_loops if n != node_id]
        removed = self._nodes.pop(node_id, None) is not None

        if removed or incident:
            logger.debug(
                "node_removed_from_graph",
                node_id=node_id,
                edges_removed=len(incident),
            )

    def add_edge(
        self,
        source: str,
        target: str,
        edge_type: EdgeType | str = EdgeType.HARD,
        weight: float | None = None,
    ) -> DependencyEdge:
        """Upsert the directed edge ``source -> target``.

        Endpoints do not need to exist yet; edges to unknown ids are reported
        as dangling by validation. Re-adding an existing pair replaces the
        previous edge.

        Args:
            source: Id of the task that must finish first
            target: Id of the task that waits for ``source``
            edge_type: HARD or SOFT (enum or its string value)
            weight: Optional edge cost; defaults to the source node's weight

        Returns:
            The stored edge

        Raises:
            InvalidEdgeError: If ``source == target`` or the weight is negative
        """
        if source == target:
            if source not in self._rejected_self_loops:
                self._rejected_self_loops.append(source)
            logger.warning("self_loop_rejected", node_id=source)
            msg = f"Self-loop rejected: {source} -> {target}"
            raise InvalidEdgeError(msg, source=source, target=target)

        if weight is not None and weight < 0:
            msg = f"Edge weight must be non-negative, got {weight} for {source} -> {target}"
            raise InvalidEdgeError(msg, source=source, target=target)

        edge = DependencyEdge(source=source, target=target, type=EdgeType(edge_type), weight=weight)
        self._edges[(source, target)] = edge
        self._successors.setdefault(source, {})[target] = None
        self._predecessors.setdefault(target, {})[source] = None

        logger.debug(
            "edge_added_to_graph",
            source=source,
            target=target,
            edge_type=edge.type.value,
            weight=weight,
        )

        return edge

    def remove_edge(self, source: str, target: str) -> None:
        """Remove the edge ``source -> target`` if present.

        Args:
            source: Edge source id
            target: Edge target id
        """
        if self._discard_edge(source, target):
            logger.debug("edge_removed_from_graph", source=source, target=target)

    def _discard_edge(self, source: str, target: str) -> bool:
        if self._edges.pop((source, target), None) is None:
            return False
        self._successors.get(source, {}).pop(target, None)
        self._predecessors.get(target, {}).pop(source, None)
        return True

    def neighbors(self, node_id: str) -> list[str]:
        """Return ids of tasks that depend on ``node_id``, in insertion order."""
        return list(self._successors.get(node_id, {}))

    def predecessors(self, node_id: str) -> list[str]:
        """Return ids of tasks ``node_id`` depends on, in insertion order."""
        return list(self._predecessors.get(node_id, {}))

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def nodes(self) -> list[TaskNode]:
        """All nodes in insertion order."""
        return list(self._nodes.values())

    @property
    def node_ids(self) -> list[str]:
        """All node ids in insertion order."""
        return list(self._nodes)

    @property
    def edges(self) -> list[DependencyEdge]:
        """All edges in insertion order, including soft and dangling ones."""
        return list(self._edges.values())

    @property
    def rejected_self_loops(self) -> list[str]:
        """Ids for which a self-loop was attempted and rejected."""
        return list(self._rejected_self_loops)

    def get_node(self, node_id: str) -> TaskNode | None:
        return self._nodes.get(node_id)

    def get_edge(self, source: str, target: str) -> DependencyEdge | None:
        return self._edges.get((source, target))

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def edge_weight(self, source: str, target: str) -> float:
        """Resolve the weight of an edge used for longest-path relaxation.

        An explicit edge weight wins; otherwise the source node's weight is
        used, or the default weight when the source is unknown.
        """
        edge = self._edges.get((source, target))
        if edge is not None and edge.weight is not None:
            return edge.weight
        node = self._nodes.get(source)
        return node.weight if node is not None else DEFAULT_NODE_WEIGHT

    def _hard_successors(self, node_id: str) -> list[str]:
        return [
            target
            for target in self._successors.get(node_id, {})
            if target in self._nodes and self._edges[(node_id, target)].is_hard
        ]

    def _hard_predecessors(self, node_id: str) -> list[str]:
        return [
            source
            for source in self._predecessors.get(node_id, {})
            if source in self._nodes and self._edges[(source, node_id)].is_hard
        ]

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def detect_cycles(self) -> CycleReport:
        """Find directed cycles formed by hard edges.

        Runs a depth-first traversal from every unvisited node while keeping
        the current path on a stack. Reaching a node that is still on the
        stack closes a cycle, reported as the path suffix starting at that
        node plus the node again. The scan carries on afterwards, so several
        cycles can be reported in a single call.

        Returns:
            CycleReport with ``has_cycles`` and the example cycles
        """
        visited: set[str] = set()
        on_stack: set[str] = set()
        path: list[str] = []
        cycles: list[list[str]] = []

        for start in self._nodes:
            if start in visited:
                continue

            visited.add(start)
            on_stack.add(start)
            path.append(start)
            # Iterative to stay clear of the recursion limit on long chains
            stack = [(start, iter(self._hard_successors(start)))]

            while stack:
                node, children = stack[-1]
                for child in children:
                    if child in on_stack:
                        cycle_start_idx = path.index(child)
                        cycles.append([*path[cycle_start_idx:], child])
                    elif child not in visited:
                        visited.add(child)
                        on_stack.add(child)
                        path.append(child)
                        stack.append((child, iter(self._hard_successors(child))))
                        break
                else:
                    # Backtrack
                    stack.pop()
                    on_stack.discard(node)
                    path.pop()

        if cycles:
            logger.info("cycles_detected", cycle_count=len(cycles), cycles=cycles)

        return CycleReport(has_cycles=bool(cycles), cycles=cycles)

    def topological_sort(self) -> list[str]:
        """Return every node id in an order that respects all hard edges.

        Uses Kahn's algorithm. The queue is seeded with zero in-degree nodes
        in insertion order, which keeps the output deterministic.

        Returns:
            Node ids, each appearing after all of its hard predecessors

        Raises:
            CyclicGraphError: If hard edges form a cycle
        """
        in_degree = {node_id: 0 for node_id in self._nodes}
        for node_id in self._nodes:
            for child in self._hard_successors(node_id):
                in_degree[child] += 1

        queue = deque(node_id for node_id, degree in in_degree.items() if degree == 0)
        order: list[str] = []

        while queue:
            node_id = queue.popleft()
            order.append(node_id)
            for child in self._hard_successors(node_id):
                in_degree[child] -= 1
                if in_degree[child] == 0:
                    queue.append(child)

        if len(order) < len(self._nodes):
            self._raise_cyclic("topological_sort")

        return order

    def _raise_cyclic(self, operation: str) -> None:
        cycles = self.detect_cycles().cycles
        cycle_paths = "; ".join(" -> ".join(cycle) for cycle in cycles)
        logger.error(
            "operation_requires_acyclic_graph",
            operation=operation,
            cycle_count=len(cycles),
        )
        msg = f"Cycle detected in dependency graph, cannot compute {operation}: {cycle_paths}"
        raise CyclicGraphError(msg, cycles=cycles)

    def _longest_paths(self) -> tuple[dict[str, float], dict[str, str | None], str | None]:
        order = self.topological_sort()
        if not order:
            return {}, {}, None

        dist = {node_id: self._nodes[node_id].weight for node_id in order}
        prev: dict[str, str | None] = dict.fromkeys(order)

        for node_id in order:
            for child in self._hard_successors(node_id):
                candidate = dist[node_id] + self.edge_weight(node_id, child)
                if candidate > dist[child]:
                    dist[child] = candidate
                    prev[child] = node_id

        # Ties on distance go to the later-inserted node
        position = {node_id: index for index, node_id in enumerate(self._nodes)}
        end = max(order, key=lambda node_id: (dist[node_id], position[node_id]))

        return dist, prev, end

    def critical_path(self) -> list[str]:
        """Return the longest weighted chain of hard dependencies.

        Distances start at each node's own weight and are relaxed along the
        topological order using the edge weights. The node with the largest
        distance ends the path, which is rebuilt by following predecessor
        links.

        Note:
            An edge without an explicit weight costs its source node's
            weight, so that weight is counted on top of the source's own
            distance, and a relaxed target's own weight is not added.
            ``critical_path_length()`` is therefore not a plain sum of task
            weights along the path. It becomes one when every edge weight is
            set to its target node's weight.

        Returns:
            Node ids from the start of the critical path to its end; empty
            for an empty graph

        Raises:
            CyclicGraphError: If hard edges form a cycle
        """
        _, prev, end = self._longest_paths()

        path: list[str] = []
        current = end
        while current is not None:
            path.append(current)
            current = prev[current]
        path.reverse()

        logger.debug("critical_path_computed", path=path, length=len(path))

        return path

    def critical_path_length(self) -> float:
        """Return the cumulative weight of the critical path (0 when empty).

        Raises:
            CyclicGraphError: If hard edges form a cycle
        """
        dist, _, end = self._longest_paths()
        return dist[end] if end is not None else 0

    def parallel_batches(self) -> list[list[str]]:
        """Group nodes into batches that can run side by side.

        A node's level is 0 without hard predecessors, otherwise one more than
        the highest level among them. Batch ``k`` holds every node of level
        ``k``, in insertion order.

        Returns:
            Batches ordered by increasing level

        Raises:
            CyclicGraphError: If hard edges form a cycle
        """
        order = self.topological_sort()
        if not order:
            return []

        level: dict[str, int] = {}
        for node_id in order:
            parents = self._hard_predecessors(node_id)
            level[node_id] = 1 + max(level[parent] for parent in parents) if parents else 0

        batches: list[list[str]] = [[] for _ in range(max(level.values()) + 1)]
        for node_id in self._nodes:
            batches[level[node_id]].append(node_id)

        logger.debug(
            "parallel_batches_computed",
            batch_count=len(batches),
            batch_sizes=[len(batch) for batch in batches],
        )

        return batches

    def validate(self, isolation_ratio: float | None = None) -> "ValidationReport":
        """Build an advisory validation report. Never raises.

        Args:
            isolation_ratio: Share of isolated nodes above which the plan is
                flagged as a likely generation failure

        Returns:
            ValidationReport describing cycles, dangling edges, isolated
            nodes, rejected self-loops and soft-edge violations
        """
        from src.graph.validator import GraphValidator

        validator = GraphValidator() if isolation_ratio is None else GraphValidator(isolation_ratio)
        return validator.validate(self)

    # ------------------------------------------------------------------
    # Readiness & reachability
    # ------------------------------------------------------------------

    def root_tasks(self) -> list[str]:
        """Return nodes with no hard predecessors, in insertion order."""
        return [node_id for node_id in self._nodes if not self._hard_predecessors(node_id)]

    def dependencies_of(self, node_id: str, transitive: bool = False) -> list[str]:
        """Return the hard dependencies of a node.

        Args:
            node_id: Node to inspect
            transitive: Include indirect dependencies as well

        Returns:
            Direct dependencies in insertion order, or when ``transitive``
            every ancestor ordered nearest first
        """
        if not transitive:
            return self._hard_predecessors(node_id)

        seen: set[str] = {node_id}
        result: list[str] = []
        queue = deque(self._hard_predecessors(node_id))
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            result.append(current)
            queue.extend(self._hard_predecessors(current))

        return result

    def dependents_of(self, node_id: str) -> list[str]:
        """Return nodes that directly wait on ``node_id`` through hard edges."""
        return self._hard_successors(node_id)

    def is_ready(self, node_id: str, completed: "Iterable[str]") -> bool:
        """Check whether all hard dependencies of a node are completed."""
        done = set(completed)
        return all(parent in done for parent in self._hard_predecessors(node_id))

    def ready_tasks(self, completed: "Iterable[str]") -> list[str]:
        """Return not-yet-completed nodes whose hard dependencies are all completed."""
        done = set(completed)
        return [
            node_id
            for node_id in self._nodes
            if node_id not in done and self.is_ready(node_id, done)
        ]

    # ------------------------------------------------------------------
    # Misc
    # ------------------------------------------------------------------

    def get_stats(self) -> dict[str, int]:
        """Get statistics about the current graph.

        Returns:
            Dictionary with node, edge, hard/soft edge and dangling edge counts
        """
        hard = sum(1 for edge in self._edges.values() if edge.is_hard)
        dangling = sum(
            1
            for edge in self._edges.values()
            if edge.source not in self._nodes or edge.target not in self._nodes
        )
        stats = {
            "total_tasks": len(self._nodes),
            "total_edges": len(self._edges),
            "hard_edges": hard,
            "soft_edges": len(self._edges) - hard,
            "dangling_edges": dangling,
        }

        logger.debug("graph_stats_retrieved", **stats)

        return stats

    def copy(self) -> "DependencyGraph":
        """Create an independent copy with the same nodes, edges and order.

        Node and edge records are shared; they are treated as read-only.
        """
        new_graph = DependencyGraph()
        new_graph._nodes = dict(self._nodes)
        new_graph._edges = dict(self._edges)
        new_graph._successors = {key: dict(value) for key, value in self._successors.items()}
        new_graph._predecessors = {key: dict(value) for key, value in self._predecessors.items()}
        new_graph._rejected_self_loops = list(self._rejected_self_loops)

        logger.debug("dependency_graph_copied", task_count=len(self._nodes))

        return new_graph
