"""Task plan loading and dependency graph construction.

The upstream generation step hands over a list of task descriptors. This
module validates them with Pydantic and turns them into a DependencyGraph:

- each task becomes a node (its id is generated as ``task-N`` when missing)
- ``dependencies`` become hard edges, ``soft_dependencies`` soft edges
- references are resolved by task id first, then by task title
- references that resolve to nothing are kept verbatim so validation can
  report them as dangling edges
"""

import json
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import AliasChoices, BaseModel, Field, ValidationError

from src.config import GraphConfig
from src.graph.dependency_graph import DependencyGraph, InvalidEdgeError
from src.graph.models import EdgeType, TaskNode

logger = structlog.get_logger(__name__)


class TaskPlanError(Exception):
    """Exception raised when a task plan cannot be read or is malformed."""

    def __init__(self, message: str, path: str | None = None):
        """Initialize the exception.

        Args:
            message: Description of the problem
            path: Plan file involved, if any
        """
        super().__init__(message)
        self.message = message
        self.path = path


class TaskDescriptor(BaseModel):
    """One generated task as supplied by the planning step."""

    id: str | None = Field(default=None, description="Stable task id")
    title: str = Field(min_length=1, description="Human-readable title")
    category: str | None = Field(default=None, description="Task category")
    weight: float | None = Field(default=None, ge=0, description="Explicit cost estimate")
    priority: str | None = Field(
        default=None,
        pattern=r"^(low|medium|high|critical)$",
        description="Task priority",
    )
    dependencies: list[str] = Field(
        default_factory=list,
        description="Ids or titles of tasks that must finish first",
    )
    soft_dependencies: list[str] = Field(
        default_factory=list,
        description="Ids or titles of tasks that should preferably finish first",
    )

    model_config = {"str_strip_whitespace": True}


class EdgeDescriptor(BaseModel):
    """An explicit dependency edge, accepting ``source/target`` or ``from/to``."""

    source: str = Field(validation_alias=AliasChoices("source", "from"), min_length=1)
    target: str = Field(validation_alias=AliasChoices("target", "to"), min_length=1)
    type: EdgeType = EdgeType.HARD
    weight: float | None = Field(default=None, ge=0)

    model_config = {"str_strip_whitespace": True}


class TaskPlan(BaseModel):
    """A task list plus optional explicit edges."""

    tasks: list[TaskDescriptor] = Field(default_factory=list)
    edges: list[EdgeDescriptor] = Field(default_factory=list)


def parse_task_plan(data: Any, path: str | None = None) -> TaskPlan:
    """Validate raw plan data.

    Args:
        data: Either a mapping with ``tasks``/``edges`` or a bare task list
        path: Source file, used in error messages

    Returns:
        Validated TaskPlan

    Raises:
        TaskPlanError: If the data does not match the plan schema
    """
    if isinstance(data, list):
        data = {"tasks": data}

    if not isinstance(data, dict):
        msg = "Task plan must be a mapping with a 'tasks' list or a list of tasks"
        raise TaskPlanError(msg, path=path)

    try:
        return TaskPlan.model_validate(data)
    except ValidationError as e:
        logger.exception("task_plan_validation_failed", path=path, error_count=e.error_count())
        msg = f"Invalid task plan: {e}"
        raise TaskPlanError(msg, path=path) from e


def load_task_plan(path: str | Path) -> TaskPlan:
    """Load a task plan from a YAML or JSON file.

    Args:
        path: Path to the plan file

    Returns:
        Validated TaskPlan

    Raises:
        TaskPlanError: If the file is missing, unreadable or malformed
    """
    plan_path = Path(path)

    if not plan_path.exists():
        msg = f"Task plan file not found: {plan_path}"
        raise TaskPlanError(msg, path=str(plan_path))

    logger.info("loading_task_plan", path=str(plan_path))

    try:
        with plan_path.open(encoding="utf-8") as f:
            if plan_path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        logger.exception("task_plan_parse_error", path=str(plan_path), error=str(e))
        msg = f"Could not parse task plan {plan_path}: {e}"
        raise TaskPlanError(msg, path=str(plan_path)) from e
    except (OSError, UnicodeDecodeError) as e:
        logger.exception("task_plan_read_error", path=str(plan_path), error=str(e))
        msg = f"Could not read task plan {plan_path}: {e}"
        raise TaskPlanError(msg, path=str(plan_path)) from e

    if data is None:
        msg = f"Task plan file is empty: {plan_path}"
        raise TaskPlanError(msg, path=str(plan_path))

    plan = parse_task_plan(data, path=str(plan_path))

    logger.info(
        "task_plan_loaded",
        path=str(plan_path),
        task_count=len(plan.tasks),
        explicit_edge_count=len(plan.edges),
    )

    return plan


def _task_nodes(plan: TaskPlan, config: GraphConfig) -> list[tuple[TaskNode, TaskDescriptor]]:
    taken = {task.id for task in plan.tasks if task.id}
    nodes = []
    for index, task in enumerate(plan.tasks, 1):
        task_id = task.id
        if not task_id:
            # Generated ids never collide with explicit ones
            number = index
            while f"task-{number}" in taken:
                number += 1
            task_id = f"task-{number}"
            taken.add(task_id)

        weight = task.weight if task.weight is not None else config.weight_for(task.category)
        node = TaskNode(
            id=task_id,
            title=task.title,
            weight=weight,
            category=task.category,
            priority=task.priority,
        )
        nodes.append((node, task))
    return nodes


def _title_index(nodes: list[tuple[TaskNode, TaskDescriptor]]) -> dict[str, str]:
    titles: dict[str, str] = {}
    for node, _ in nodes:
        if node.title in titles and titles[node.title] != node.id:
            logger.warning(
                "duplicate_task_title",
                title=node.title,
                kept_id=titles[node.title],
                ignored_id=node.id,
            )
            continue
        titles[node.title] = node.id
    return titles


def _resolve(reference: str, node_ids: set[str], titles: dict[str, str]) -> str:
    if reference in node_ids:
        return reference
    if reference in titles:
        return titles[reference]

    logger.warning("unresolved_dependency_reference", reference=reference)
    return reference


def build_graph(plan: TaskPlan, config: GraphConfig | None = None) -> DependencyGraph:
    """Build a DependencyGraph from a task plan.

    Self-references are rejected by the graph and show up in its validation
    report; they do not abort construction.

    Args:
        plan: Validated task plan
        config: Graph settings used for category weights (defaults when None)

    Returns:
        Populated DependencyGraph
    """
    config = config or GraphConfig()
    graph = DependencyGraph()

    nodes = _task_nodes(plan, config)
    for node, _ in nodes:
        if graph.has_node(node.id):
            logger.warning("duplicate_task_id_replaced", task_id=node.id)
        graph.add_node(node)

    node_ids = set(graph.node_ids)
    titles = _title_index(nodes)

    def add(source: str, target: str, edge_type: EdgeType, weight: float | None = None) -> None:
        try:
            graph.add_edge(source, target, edge_type, weight)
        except InvalidEdgeError as e:
            logger.warning("plan_edge_rejected", source=source, target=target, reason=e.message)

    for node, task in nodes:
        for reference in task.dependencies:
            add(_resolve(reference, node_ids, titles), node.id, EdgeType.HARD)
        for reference in task.soft_dependencies:
            add(_resolve(reference, node_ids, titles), node.id, EdgeType.SOFT)

    for edge in plan.edges:
        add(
            _resolve(edge.source, node_ids, titles),
            _resolve(edge.target, node_ids, titles),
            edge.type,
            edge.weight,
        )

    logger.info("dependency_graph_built", **graph.get_stats())

    return graph
