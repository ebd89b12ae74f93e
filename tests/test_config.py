"""Unit tests for configuration management module."""

import json
from pathlib import Path
from typing import Any

import pytest
import yaml
from pydantic import ValidationError

from src.config import (
    DEFAULT_CATEGORY_WEIGHTS,
    GraphConfig,
    PlannerConfig,
    SchedulerConfig,
    load_config,
)


@pytest.fixture
def valid_config_dict() -> dict[str, Any]:
    """Fixture providing valid configuration dictionary."""
    return {
        "graph": {
            "default_weight": 2,
            "category_weights": {"setup": 3, "Feature": 8},
            "isolation_ratio": 0.6,
            "max_critical_path_tasks": 7,
        },
        "scheduler": {
            "max_concurrent": 4,
            "task_timeout_seconds": 120,
        },
        "logging_level": "DEBUG",
        "json_logs": False,
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, valid_config_dict: dict[str, Any]) -> Path:
    """Fixture providing temporary YAML config file."""
    config_path = tmp_path / "planner.yaml"
    with config_path.open("w") as f:
        yaml.dump(valid_config_dict, f)
    return config_path


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove planner environment overrides for every test."""
    for var in (
        "PLANNER_GRAPH_DEFAULT_WEIGHT",
        "PLANNER_GRAPH_ISOLATION_RATIO",
        "PLANNER_GRAPH_MAX_CRITICAL_PATH_TASKS",
        "PLANNER_SCHEDULER_MAX_CONCURRENT",
        "PLANNER_SCHEDULER_TASK_TIMEOUT",
        "PLANNER_LOGGING_LEVEL",
        "PLANNER_JSON_LOGS",
    ):
        monkeypatch.delenv(var, raising=False)


class TestGraphConfig:
    """Test GraphConfig model."""

    def test_defaults(self):
        """Test default graph settings."""
        config = GraphConfig()

        assert config.default_weight == 1.0
        assert config.isolation_ratio == 0.5
        assert config.category_weights == DEFAULT_CATEGORY_WEIGHTS

    def test_category_names_normalized(self):
        """Test category names are lower-cased and stripped."""
        config = GraphConfig(category_weights={" Testing ": 5})

        assert config.category_weights == {"testing": 5}
        assert config.weight_for("TESTING") == 5

    def test_weight_for_unknown_category(self):
        """Test unknown or missing categories fall back to the default weight."""
        config = GraphConfig(default_weight=3)

        assert config.weight_for(None) == 3
        assert config.weight_for("research") == 3
        assert config.weight_for("setup") == 4

    def test_negative_category_weight_rejected(self):
        """Test negative category weights are rejected."""
        with pytest.raises(ValidationError, match="non-negative"):
            GraphConfig(category_weights={"setup": -1})

    def test_isolation_ratio_bounds(self):
        """Test the isolation ratio must stay within 0..1."""
        with pytest.raises(ValidationError):
            GraphConfig(isolation_ratio=1.2)


class TestSchedulerConfig:
    """Test SchedulerConfig model."""

    def test_defaults(self):
        """Test default scheduler settings."""
        config = SchedulerConfig()

        assert config.max_concurrent == 5
        assert config.task_timeout_seconds is None

    def test_max_concurrent_bounds(self):
        """Test concurrency must be between 1 and 50."""
        with pytest.raises(ValidationError):
            SchedulerConfig(max_concurrent=0)
        with pytest.raises(ValidationError):
            SchedulerConfig(max_concurrent=51)


class TestPlannerConfig:
    """Test PlannerConfig loading."""

    def test_from_yaml(self, temp_config_file):
        """Test loading a YAML configuration file."""
        config = PlannerConfig.from_yaml(temp_config_file)

        assert config.graph.default_weight == 2
        assert config.graph.category_weights == {"setup": 3, "feature": 8}
        assert config.scheduler.max_concurrent == 4
        assert config.logging_level == "DEBUG"
        assert config.json_logs is False

    def test_from_json(self, tmp_path, valid_config_dict):
        """Test JSON files load through the YAML parser."""
        config_path = tmp_path / "planner.json"
        config_path.write_text(json.dumps(valid_config_dict))

        config = PlannerConfig.from_yaml(config_path)

        assert config.scheduler.task_timeout_seconds == 120

    def test_missing_file(self, tmp_path):
        """Test a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            PlannerConfig.from_yaml(tmp_path / "missing.yaml")

    def test_empty_file(self, tmp_path):
        """Test an empty file is rejected."""
        config_path = tmp_path / "planner.yaml"
        config_path.write_text("")

        with pytest.raises(ValueError, match="empty"):
            PlannerConfig.from_yaml(config_path)

    def test_invalid_yaml(self, tmp_path):
        """Test malformed YAML is reported as ValueError."""
        config_path = tmp_path / "planner.yaml"
        config_path.write_text("graph: [oops")

        with pytest.raises(ValueError, match="Invalid YAML"):
            PlannerConfig.from_yaml(config_path)

    def test_invalid_logging_level(self, tmp_path):
        """Test an unknown logging level is rejected."""
        config_path = tmp_path / "planner.yaml"
        config_path.write_text("logging_level: LOUD\n")

        with pytest.raises(ValidationError):
            PlannerConfig.from_yaml(config_path)

    def test_env_overrides(self, temp_config_file, monkeypatch):
        """Test environment variables override file values with type conversion."""
        monkeypatch.setenv("PLANNER_SCHEDULER_MAX_CONCURRENT", "9")
        monkeypatch.setenv("PLANNER_GRAPH_ISOLATION_RATIO", "0.75")
        monkeypatch.setenv("PLANNER_JSON_LOGS", "yes")
        monkeypatch.setenv("PLANNER_LOGGING_LEVEL", "WARNING")

        config = PlannerConfig.from_yaml(temp_config_file)

        assert config.scheduler.max_concurrent == 9
        assert config.graph.isolation_ratio == 0.75
        assert config.json_logs is True
        assert config.logging_level == "WARNING"

    def test_from_env_without_file(self, monkeypatch):
        """Test defaults plus environment overrides without a file."""
        monkeypatch.setenv("PLANNER_SCHEDULER_TASK_TIMEOUT", "30")

        config = PlannerConfig.from_env()

        assert config.scheduler.task_timeout_seconds == 30
        assert config.graph.default_weight == 1.0

    def test_validate_config_warnings(self):
        """Test advisory configuration warnings."""
        config = PlannerConfig(
            graph=GraphConfig(isolation_ratio=0.95),
            scheduler=SchedulerConfig(max_concurrent=50),
        )

        warnings = config.validate_config()

        assert len(warnings) == 3
        assert any("Isolation ratio is high" in w for w in warnings)
        assert any("maximum concurrent tasks" in w for w in warnings)
        assert any("No per-task timeout" in w for w in warnings)

    def test_validate_config_clean(self, temp_config_file):
        """Test a sensible configuration has no warnings."""
        assert PlannerConfig.from_yaml(temp_config_file).validate_config() == []


class TestLoadConfig:
    """Test the load_config helper."""

    def test_explicit_path(self, temp_config_file):
        """Test loading from an explicit path."""
        assert load_config(temp_config_file).scheduler.max_concurrent == 4

    def test_default_file_in_cwd(self, temp_config_file, monkeypatch):
        """Test planner.yaml in the working directory is picked up."""
        monkeypatch.chdir(temp_config_file.parent)

        assert load_config().logging_level == "DEBUG"

    def test_defaults_without_file(self, tmp_path, monkeypatch):
        """Test defaults are used when no file exists."""
        monkeypatch.chdir(tmp_path)

        config = load_config()

        assert config.logging_level == "INFO"
        assert config.scheduler.max_concurrent == 5

    def test_missing_explicit_path(self, tmp_path):
        """Test an explicit missing path raises."""
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")
