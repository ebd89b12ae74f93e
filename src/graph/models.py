"""Data records for the task dependency graph.

Nodes are tasks, edges are precedence constraints between them. The records
are plain dataclasses; the graph owns them and hands out the same instances
to callers, so treat them as read-only once added.
"""

from dataclasses import dataclass, field
from enum import Enum

DEFAULT_NODE_WEIGHT = 1.0


class EdgeType(Enum):
    """Strength of a dependency edge.

    HARD edges must be respected by every ordering. SOFT edges are advisory
    hints and only ever produce warnings.
    """

    HARD = "hard"
    SOFT = "soft"


@dataclass
class TaskNode:
    """A single unit of work in the plan.

    Attributes:
        id: Stable unique identifier
        title: Human-readable label (may repeat across tasks)
        weight: Non-negative cost used for critical-path length
        category: Optional classification (setup, feature, testing, ...)
        priority: Optional priority (low, medium, high, critical)
    """

    id: str
    title: str = ""
    weight: float = DEFAULT_NODE_WEIGHT
    category: str | None = None
    priority: str | None = None

    def __post_init__(self) -> None:
        if not self.id:
            msg = "Task node id must be a non-empty string"
            raise ValueError(msg)
        if self.weight < 0:
            msg = f"Task node weight must be non-negative, got {self.weight} for {self.id}"
            raise ValueError(msg)
        if not self.title:
            self.title = self.id


@dataclass
class DependencyEdge:
    """Directed dependency ``source -> target``.

    ``target`` cannot start until ``source`` completes. ``weight`` is None
    when the caller did not set one; the graph then resolves it to the
    source node's weight.
    """

    source: str
    target: str
    type: EdgeType = EdgeType.HARD
    weight: float | None = None

    @property
    def is_hard(self) -> bool:
        return self.type is EdgeType.HARD


@dataclass
class CycleReport:
    """Result of cycle detection over hard edges.

    Attributes:
        has_cycles: Whether at least one cycle exists
        cycles: Example cycles, each closing back on its first node
    """

    has_cycles: bool = False
    cycles: list[list[str]] = field(default_factory=list)
