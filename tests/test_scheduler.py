"""Unit tests for the BatchScheduler."""

import asyncio

import pytest

from src.config import SchedulerConfig
from src.graph.dependency_graph import CyclicGraphError, DependencyGraph
from src.graph.models import TaskNode
from src.planning.scheduler import BatchScheduler, TaskStatus


def make_graph(node_ids, edges=()):
    graph = DependencyGraph()
    for node_id in node_ids:
        graph.add_node(TaskNode(node_id))
    for source, target in edges:
        graph.add_edge(source, target)
    return graph


@pytest.fixture
def diamond() -> DependencyGraph:
    """Fixture providing setup -> (api, ui) -> tests."""
    return make_graph(
        ["setup", "api", "ui", "tests"],
        [("setup", "api"), ("setup", "ui"), ("api", "tests"), ("ui", "tests")],
    )


class TestBatchScheduler:
    """Test dependency-ordered execution."""

    def test_invalid_concurrency(self, diamond):
        """Test max_concurrent must be positive."""
        with pytest.raises(ValueError, match="max_concurrent"):
            BatchScheduler(diamond, max_concurrent=0)

    def test_from_config(self, diamond):
        """Test construction from SchedulerConfig."""
        scheduler = BatchScheduler.from_config(
            diamond,
            SchedulerConfig(max_concurrent=3, task_timeout_seconds=12),
        )

        assert scheduler.max_concurrent == 3
        assert scheduler.task_timeout_seconds == 12

    @pytest.mark.asyncio
    async def test_runs_in_dependency_order(self, diamond):
        """Test every task runs after its dependencies."""
        started: list[str] = []

        async def handler(task: TaskNode) -> str:
            started.append(task.id)
            await asyncio.sleep(0)
            return task.id.upper()

        outcomes = await BatchScheduler(diamond).run(handler)

        assert [o.task_id for o in outcomes] == ["setup", "api", "ui", "tests"]
        assert all(o.status is TaskStatus.COMPLETED for o in outcomes)
        assert outcomes[0].result == "SETUP"
        assert [o.batch_index for o in outcomes] == [0, 1, 1, 2]
        assert started[0] == "setup"
        assert started[-1] == "tests"

    @pytest.mark.asyncio
    async def test_concurrency_limit(self):
        """Test no more than max_concurrent handlers run at once."""
        graph = make_graph([f"t{i}" for i in range(6)])
        running = 0
        peak = 0

        async def handler(task: TaskNode) -> None:
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        await BatchScheduler(graph, max_concurrent=2).run(handler)

        assert peak == 2

    @pytest.mark.asyncio
    async def test_failure_skips_dependents_only(self, diamond):
        """Test a failed task skips its dependents but not independent tasks."""

        async def handler(task: TaskNode) -> None:
            if task.id == "api":
                msg = "research service unavailable"
                raise RuntimeError(msg)

        scheduler = BatchScheduler(diamond)
        outcomes = {o.task_id: o for o in await scheduler.run(handler)}

        assert outcomes["setup"].status is TaskStatus.COMPLETED
        assert outcomes["ui"].status is TaskStatus.COMPLETED
        assert outcomes["api"].status is TaskStatus.FAILED
        assert outcomes["api"].error == "research service unavailable"
        assert outcomes["tests"].status is TaskStatus.SKIPPED
        assert "api" in outcomes["tests"].error
        assert scheduler.get_summary() == {"total": 4, "completed": 2, "failed": 1, "skipped": 1}

    @pytest.mark.asyncio
    async def test_skips_propagate_transitively(self):
        """Test skipped tasks also skip their own dependents."""
        graph = make_graph(["a", "b", "c"], [("a", "b"), ("b", "c")])

        async def handler(task: TaskNode) -> None:
            if task.id == "a":
                msg = "boom"
                raise ValueError(msg)

        outcomes = await BatchScheduler(graph).run(handler)

        assert [o.status for o in outcomes] == [
            TaskStatus.FAILED,
            TaskStatus.SKIPPED,
            TaskStatus.SKIPPED,
        ]

    @pytest.mark.asyncio
    async def test_timeout_marks_failed(self):
        """Test a handler exceeding the timeout is marked failed."""
        graph = make_graph(["slow"])

        async def handler(task: TaskNode) -> None:
            await asyncio.sleep(1)

        outcomes = await BatchScheduler(graph, task_timeout_seconds=0.01).run(handler)

        assert outcomes[0].status is TaskStatus.FAILED
        assert "Timed out" in outcomes[0].error

    @pytest.mark.asyncio
    async def test_handler_timeout_error_without_configured_timeout(self):
        """Test a TimeoutError raised by the handler is an ordinary failure."""
        graph = make_graph(["fetch"])

        async def handler(task: TaskNode) -> None:
            msg = "upstream read timed out"
            raise TimeoutError(msg)

        outcomes = await BatchScheduler(graph).run(handler)

        assert outcomes[0].status is TaskStatus.FAILED
        assert outcomes[0].error == "upstream read timed out"

    @pytest.mark.asyncio
    async def test_cyclic_graph_raises_before_running(self):
        """Test nothing runs when the graph is cyclic."""
        graph = make_graph(["a", "b"], [("a", "b"), ("b", "a")])
        calls: list[str] = []

        async def handler(task: TaskNode) -> None:
            calls.append(task.id)

        with pytest.raises(CyclicGraphError):
            await BatchScheduler(graph).run(handler)

        assert calls == []

    @pytest.mark.asyncio
    async def test_empty_graph(self):
        """Test an empty graph produces no outcomes."""

        async def handler(task: TaskNode) -> None:
            return None

        scheduler = BatchScheduler(DependencyGraph())

        assert await scheduler.run(handler) == []
        assert scheduler.get_summary()["total"] == 0
