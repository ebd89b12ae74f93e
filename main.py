#!/usr/bin/env python3
"""Command-line entry point for task plan analysis.

Loads a task plan (YAML or JSON), builds the dependency graph, validates it
and prints the scheduling analysis (order, critical path, parallel batches,
blocking tasks, recommendations) as JSON on stdout. Logs go to stderr.
"""

import argparse
import json
import sys
import uuid

import structlog

from src.config import PlannerConfig, load_config
from src.graph.analysis import analyze_graph, best_effort_order
from src.graph.validator import GraphValidator
from src.log_config import bind_correlation_id, configure_logging, unbind_correlation_id
from src.planning.task_loader import TaskPlanError, build_graph, load_task_plan

# Initialize logger (will be configured after loading config)
logger = structlog.get_logger(__name__)


def run(args: argparse.Namespace) -> int:
    """Analyse a task plan file.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 when the plan is valid, 1 otherwise)
    """
    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        configure_logging(args.log_level or "INFO", json_logs=not args.console_logs)
        logger.exception("configuration_error", error=str(e))
        return 1

    configure_logging(
        args.log_level or config.logging_level,
        json_logs=config.json_logs and not args.console_logs,
    )
    bind_correlation_id(uuid.uuid4().hex)

    try:
        for warning in config.validate_config():
            logger.warning("configuration_warning", message=warning)

        return _analyse(args, config)
    finally:
        unbind_correlation_id()


def _analyse(args: argparse.Namespace, config: PlannerConfig) -> int:
    try:
        plan = load_task_plan(args.tasks_file)
    except TaskPlanError as e:
        logger.error("task_plan_error", error=e.message, path=e.path)
        return 1

    graph = build_graph(plan, config.graph)
    analysis = analyze_graph(
        graph,
        validator=GraphValidator(config.graph.isolation_ratio),
        max_critical_path_tasks=config.graph.max_critical_path_tasks,
    )

    output = analysis.to_dict()
    if args.best_effort:
        output["best_effort_order"] = best_effort_order(graph)

    print(json.dumps(output, indent=2))

    if not analysis.is_valid:
        logger.warning("task_plan_invalid", error_count=len(analysis.report.errors))
        return 1

    return 0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list (defaults to sys.argv)

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="Analyse a task plan: cycles, execution order, critical path, batches",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Analyse a plan with default settings
  python main.py tasks.yaml

  # Use a configuration file and readable logs
  python main.py tasks.yaml --config planner.yaml --console-logs

  # Include a best-effort order even if the plan has cycles
  python main.py tasks.json --best-effort
        """,
    )

    parser.add_argument("tasks_file", help="Path to the task plan (YAML or JSON)")

    parser.add_argument(
        "-c",
        "--config",
        type=str,
        default=None,
        help="Path to configuration YAML file (default: planner.yaml if present)",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override the configured logging level",
    )

    parser.add_argument(
        "--console-logs",
        action="store_true",
        help="Render logs for the console instead of JSON",
    )

    parser.add_argument(
        "--best-effort",
        action="store_true",
        help="Add a best-effort order that is produced even for cyclic plans",
    )

    return parser.parse_args(argv)


def main() -> None:
    """Main entry point."""
    sys.exit(run(parse_args()))


if __name__ == "__main__":
    main()
