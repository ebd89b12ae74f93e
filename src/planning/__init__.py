"""Planning module: task plan loading and dependency-ordered execution.

This module turns task descriptors from the generation step into a
DependencyGraph and drives per-task work (such as research enrichment)
batch by batch in dependency order.
"""

from src.planning.scheduler import BatchScheduler, TaskOutcome, TaskStatus
from src.planning.task_loader import (
    EdgeDescriptor,
    TaskDescriptor,
    TaskPlan,
    TaskPlanError,
    build_graph,
    load_task_plan,
    parse_task_plan,
)

__all__ = [
    "BatchScheduler",
    "EdgeDescriptor",
    "TaskDescriptor",
    "TaskOutcome",
    "TaskPlan",
    "TaskPlanError",
    "TaskStatus",
    "build_graph",
    "load_task_plan",
    "parse_task_plan",
]
