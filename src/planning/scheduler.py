"""Batch scheduler driving per-task work in dependency order.

The scheduler is a caller of the graph engine: it asks the graph for its
parallel batches and runs an async handler (for example a per-task research
call) for every task, one batch after another. Within a batch, handlers run
concurrently under an asyncio.Semaphore. The graph never sees any of this
execution; retries and cancellation of the handler remain the handler's
business.

Example:
    >>> async def research(task):
    ...     return await client.research(task.title)
    >>> scheduler = BatchScheduler(graph, max_concurrent=3)
    >>> outcomes = await scheduler.run(research)
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from src.config import SchedulerConfig
from src.graph.dependency_graph import DependencyGraph
from src.graph.models import TaskNode
from src.log_config import bound_context, get_logger

# Initialize logger
logger = get_logger(__name__)

TaskHandler = Callable[[TaskNode], Awaitable[Any]]


class TaskStatus(Enum):
    """Final state of a scheduled task."""

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class TaskOutcome:
    """Result of running the handler for one task.

    Attributes:
        task_id: Id of the task
        status: Final status
        batch_index: Index of the batch the task belonged to
        duration_seconds: Handler run time (0 for skipped tasks)
        result: Handler return value when completed
        error: Error message when failed or skipped
    """

    task_id: str
    status: TaskStatus
    batch_index: int
    duration_seconds: float = 0.0
    result: Any = None
    error: str | None = None


class BatchScheduler:
    """Run an async handler for every task, respecting parallel batches.

    A task whose hard dependency failed or was skipped is itself skipped, so
    independent branches keep going while broken ones stop early.

    Attributes:
        graph: Graph providing the batches
        max_concurrent: Maximum handlers running at the same time
        task_timeout_seconds: Optional per-task timeout
        outcomes: Outcomes of the last run, keyed by task id
    """

    def __init__(
        self,
        graph: DependencyGraph,
        max_concurrent: int = 5,
        task_timeout_seconds: float | None = None,
    ):
        """Initialize the scheduler.

        Args:
            graph: Graph whose tasks are scheduled
            max_concurrent: Maximum concurrent handlers (must be >= 1)
            task_timeout_seconds: Optional per-task timeout in seconds

        Raises:
            ValueError: If max_concurrent is lower than 1
        """
        if max_concurrent < 1:
            msg = f"max_concurrent must be at least 1, got {max_concurrent}"
            raise ValueError(msg)

        self.graph = graph
        self.max_concurrent = max_concurrent
        self.task_timeout_seconds = task_timeout_seconds
        self.outcomes: dict[str, TaskOutcome] = {}

        logger.info(
            "batch_scheduler_initialized",
            max_concurrent=max_concurrent,
            timeout_seconds=task_timeout_seconds,
        )

    @classmethod
    def from_config(cls, graph: DependencyGraph, config: SchedulerConfig) -> "BatchScheduler":
        """Create a scheduler from configuration."""
        return cls(
            graph,
            max_concurrent=config.max_concurrent,
            task_timeout_seconds=config.task_timeout_seconds,
        )

    async def run(self, handler: TaskHandler) -> list[TaskOutcome]:
        """Run ``handler`` for every task, batch by batch.

        Args:
            handler: Coroutine function called with each TaskNode

        Returns:
            One TaskOutcome per task, in batch order

        Raises:
            CyclicGraphError: If the graph has hard cycles (raised before any
                handler runs)
        """
        batches = self.graph.parallel_batches()
        semaphore = asyncio.Semaphore(self.max_concurrent)
        unfinished: set[str] = set()
        self.outcomes = {}

        logger.info(
            "scheduling_started",
            total_tasks=len(self.graph),
            batch_count=len(batches),
        )

        for batch_index, batch in enumerate(batches):
            runnable = []
            for task_id in batch:
                blocked_by = [
                    dep for dep in self.graph.dependencies_of(task_id) if dep in unfinished
                ]
                if blocked_by:
                    self.outcomes[task_id] = TaskOutcome(
                        task_id=task_id,
                        status=TaskStatus.SKIPPED,
                        batch_index=batch_index,
                        error=f"Dependencies did not complete: {', '.join(blocked_by)}",
                    )
                    unfinished.add(task_id)
                    logger.warning("task_skipped", task_id=task_id, blocked_by=blocked_by)
                else:
                    runnable.append(task_id)

            logger.info(
                "dispatching_batch",
                batch_index=batch_index,
                task_ids=runnable,
                skipped=len(batch) - len(runnable),
            )

            results = await asyncio.gather(
                *(self._run_task(task_id, batch_index, handler, semaphore) for task_id in runnable),
            )

            for outcome in results:
                self.outcomes[outcome.task_id] = outcome
                if outcome.status is not TaskStatus.COMPLETED:
                    unfinished.add(outcome.task_id)

        ordered = [self.outcomes[task_id] for batch in batches for task_id in batch]

        logger.info("scheduling_complete", **self.get_summary())

        return ordered

    async def _run_task(
        self,
        task_id: str,
        batch_index: int,
        handler: TaskHandler,
        semaphore: asyncio.Semaphore,
    ) -> TaskOutcome:
        node = self.graph.get_node(task_id)

        async with semaphore:
            with bound_context(task_id=task_id, batch_index=batch_index):
                start_time = datetime.now(UTC)
                try:
                    logger.debug("task_started")
                    if self.task_timeout_seconds is None:
                        result = await handler(node)
                    else:
                        result = await asyncio.wait_for(handler(node), self.task_timeout_seconds)
                except Exception as e:
                    error = str(e)
                    # Only a configured timeout is reported as one; a handler's
                    # own TimeoutError is an ordinary failure
                    if isinstance(e, asyncio.TimeoutError) and self.task_timeout_seconds is not None:
                        logger.warning("task_timed_out", timeout_seconds=self.task_timeout_seconds)
                        error = f"Timed out after {self.task_timeout_seconds}s"
                    else:
                        logger.exception("task_failed", error=error, error_type=type(e).__name__)
                    return TaskOutcome(
                        task_id=task_id,
                        status=TaskStatus.FAILED,
                        batch_index=batch_index,
                        duration_seconds=self._elapsed(start_time),
                        error=error,
                    )

                logger.debug("task_completed")
                return TaskOutcome(
                    task_id=task_id,
                    status=TaskStatus.COMPLETED,
                    batch_index=batch_index,
                    duration_seconds=self._elapsed(start_time),
                    result=result,
                )

    @staticmethod
    def _elapsed(start_time: datetime) -> float:
        return (datetime.now(UTC) - start_time).total_seconds()

    def get_summary(self) -> dict[str, int]:
        """Count outcomes of the last run by status.

        Returns:
            Dictionary with total, completed, failed and skipped counts
        """
        statuses = [outcome.status for outcome in self.outcomes.values()]
        return {
            "total": len(statuses),
            "completed": statuses.count(TaskStatus.COMPLETED),
            "failed": statuses.count(TaskStatus.FAILED),
            "skipped": statuses.count(TaskStatus.SKIPPED),
        }
