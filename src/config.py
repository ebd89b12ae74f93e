"""Configuration Management with Pydantic.

This module implements configuration models using Pydantic for parsing and
validation of YAML/JSON configuration files with environment variable overrides.
"""

import os
from pathlib import Path

import structlog
import yaml
from pydantic import BaseModel, Field, field_validator

# Initialize logger
logger = structlog.get_logger(__name__)

# Constants
MAX_CONCURRENT_TASKS = 50
HIGH_ISOLATION_RATIO = 0.9

# Estimated hours per task category, used when a task has no explicit weight
DEFAULT_CATEGORY_WEIGHTS: dict[str, float] = {
    "setup": 4,
    "architecture": 6,
    "feature": 10,
    "testing": 6,
    "documentation": 2,
    "deployment": 4,
    "optimization": 6,
}


class GraphConfig(BaseModel):
    """Dependency graph settings.

    Attributes:
        default_weight: Node weight when neither weight nor known category is given
        category_weights: Estimated weight per task category
        isolation_ratio: Share of isolated tasks flagged as a generation failure
        max_critical_path_tasks: Critical path size above which a split is recommended
    """

    default_weight: float = Field(
        default=1.0,
        ge=0,
        description="Fallback node weight",
    )
    category_weights: dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_CATEGORY_WEIGHTS),
        description="Estimated weight per task category",
    )
    isolation_ratio: float = Field(
        default=0.5,
        ge=0,
        le=1,
        description="Isolated share that marks a likely generation failure",
    )
    max_critical_path_tasks: int = Field(
        default=5,
        ge=1,
        description="Critical path length that triggers a recommendation",
    )

    @field_validator("category_weights")
    @classmethod
    def validate_category_weights(cls, v: dict[str, float]) -> dict[str, float]:
        """Normalize category names and reject negative weights.

        Args:
            v: Mapping of category name to weight

        Returns:
            Mapping with lower-cased category names

        Raises:
            ValueError: If any weight is negative
        """
        normalized = {}
        for category, weight in v.items():
            if weight < 0:
                msg = f"Weight for category '{category}' must be non-negative"
                raise ValueError(msg)
            normalized[category.strip().lower()] = weight
        return normalized

    def weight_for(self, category: str | None) -> float:
        """Return the estimated weight for a category, or the default weight."""
        if category is None:
            return self.default_weight
        return self.category_weights.get(category.strip().lower(), self.default_weight)


class SchedulerConfig(BaseModel):
    """Batch scheduler settings.

    Attributes:
        max_concurrent: Maximum number of tasks run at the same time
        task_timeout_seconds: Optional per-task timeout in seconds
    """

    max_concurrent: int = Field(
        default=5,
        ge=1,
        le=MAX_CONCURRENT_TASKS,
        description="Maximum concurrent task handlers",
    )
    task_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Per-task timeout in seconds",
    )


class PlannerConfig(BaseModel):
    """Main configuration combining all settings.

    Attributes:
        graph: Dependency graph configuration
        scheduler: Batch scheduler configuration
        logging_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Render logs as JSON (True) or for the console (False)
    """

    graph: GraphConfig = Field(default_factory=GraphConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    logging_level: str = Field(
        default="INFO",
        description="Logging level",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
    )
    json_logs: bool = Field(
        default=True,
        description="Use JSON log rendering",
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> "PlannerConfig":
        """Load configuration from a YAML (or JSON) file.

        Args:
            path: Path to the configuration file

        Returns:
            Parsed and validated PlannerConfig instance

        Raises:
            FileNotFoundError: If configuration file doesn't exist
            ValueError: If configuration is invalid
        """
        config_path = Path(path)

        if not config_path.exists():
            msg = f"Configuration file not found: {config_path}"
            raise FileNotFoundError(msg)

        logger.info("loading_configuration", path=str(config_path))

        try:
            with config_path.open() as f:
                config_data = yaml.safe_load(f)

            if not config_data:
                msg = "Configuration file is empty"
                raise ValueError(msg)

            if not isinstance(config_data, dict):
                msg = "Configuration file must contain a mapping"
                raise ValueError(msg)

            # Apply environment variable overrides
            config_data = cls._apply_env_overrides(config_data)

            # Parse and validate configuration
            config = cls(**config_data)
        except yaml.YAMLError as e:
            logger.exception("yaml_parse_error", error=str(e), path=str(config_path))
            msg = f"Invalid YAML in configuration file: {e}"
            raise ValueError(msg) from e
        else:
            logger.info(
                "configuration_loaded",
                max_concurrent=config.scheduler.max_concurrent,
                logging_level=config.logging_level,
            )

            return config

    @classmethod
    def from_env(cls) -> "PlannerConfig":
        """Build configuration from defaults plus environment overrides."""
        return cls(**cls._apply_env_overrides({}))

    @classmethod
    def _apply_env_overrides(cls, config_data: dict) -> dict:
        """Apply environment variable overrides to configuration.

        Environment variables follow the pattern: PLANNER_<SECTION>_<KEY>
        Example: PLANNER_GRAPH_ISOLATION_RATIO, PLANNER_SCHEDULER_MAX_CONCURRENT

        Args:
            config_data: Base configuration dictionary from file

        Returns:
            Configuration dictionary with environment overrides applied
        """
        env_overrides = {
            # Graph configuration
            ("graph", "default_weight"): "PLANNER_GRAPH_DEFAULT_WEIGHT",
            ("graph", "isolation_ratio"): "PLANNER_GRAPH_ISOLATION_RATIO",
            ("graph", "max_critical_path_tasks"): "PLANNER_GRAPH_MAX_CRITICAL_PATH_TASKS",
            # Scheduler configuration
            ("scheduler", "max_concurrent"): "PLANNER_SCHEDULER_MAX_CONCURRENT",
            ("scheduler", "task_timeout_seconds"): "PLANNER_SCHEDULER_TASK_TIMEOUT",
            # Logging
            ("logging_level",): "PLANNER_LOGGING_LEVEL",
            ("json_logs",): "PLANNER_JSON_LOGS",
        }

        for path, env_var in env_overrides.items():
            value = os.environ.get(env_var)
            if value is not None:
                # Navigate to nested config section
                current = config_data
                for key in path[:-1]:
                    if key not in current:
                        current[key] = {}
                    current = current[key]

                # Convert string values to appropriate types
                final_key = path[-1]
                if env_var.endswith(("_CONCURRENT", "_TASKS")):
                    value = int(value)
                elif env_var.endswith(("_WEIGHT", "_RATIO", "_TIMEOUT")):
                    value = float(value)
                elif env_var.endswith("_LOGS"):
                    value = value.lower() in ("true", "1", "yes")

                current[final_key] = value
                logger.debug(
                    "env_override_applied",
                    env_var=env_var,
                    config_path=".".join(path),
                )

        return config_data

    def validate_config(self) -> list[str]:
        """Validate configuration and return list of warnings.

        Returns:
            List of validation warning messages (empty if no warnings)
        """
        warnings = []

        if self.graph.isolation_ratio >= HIGH_ISOLATION_RATIO:
            warnings.append(
                f"Isolation ratio is high ({self.graph.isolation_ratio}) - "
                "failed dependency generation may go unnoticed",
            )

        if self.scheduler.max_concurrent == MAX_CONCURRENT_TASKS:
            warnings.append(
                f"Using maximum concurrent tasks ({MAX_CONCURRENT_TASKS}) - "
                "downstream services may throttle",
            )

        if self.scheduler.task_timeout_seconds is None:
            warnings.append("No per-task timeout set - a stuck task blocks its batch")

        return warnings


def load_config(config_path: str | Path | None = None) -> PlannerConfig:
    """Load configuration from file.

    Args:
        config_path: Path to configuration file. If None, looks for planner.yaml,
            planner.yml or planner.json in the current directory and falls back
            to defaults (with environment overrides) when none exists.

    Returns:
        Loaded PlannerConfig instance

    Raises:
        FileNotFoundError: If an explicit config path does not exist
        ValueError: If config file is invalid
    """
    if config_path is None:
        for default_name in ["planner.yaml", "planner.yml", "planner.json"]:
            default_path = Path(default_name)
            if default_path.exists():
                config_path = default_path
                break
        else:
            logger.debug("no_configuration_file_using_defaults")
            return PlannerConfig.from_env()

    return PlannerConfig.from_yaml(config_path)


# Export main configuration class
__all__ = [
    "DEFAULT_CATEGORY_WEIGHTS",
    "GraphConfig",
    "PlannerConfig",
    "SchedulerConfig",
    "load_config",
]
