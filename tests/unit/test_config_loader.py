"""Tests for pipeline config loading."""

from pathlib import Path

import pytest

from boostsec.delivery_pipeline.config_loader import load_pipeline_config, select_stages
from boostsec.delivery_pipeline.errors import ConfigurationError
from boostsec.delivery_pipeline.models.pipeline_config import (
    BuildPublishStageConfig,
    ScanStageConfig,
)

EXAMPLE_CONFIG = Path(__file__).parents[2] / "pipeline.example.yaml"

MINIMAL_CONFIG = """
version: "1.0"
name: app
source:
  path: /srv/app
stages:
  - name: checkout
    kind: checkout
  - name: test
    kind: command
    command: [make, test]
  - name: lint
    kind: command
    command: [make, lint]
    enabled: false
"""


def test_load_example_config() -> None:
    """The bundled example pipeline loads and validates."""
    config = load_pipeline_config(EXAMPLE_CONFIG)

    assert config.name == "sample-app"
    assert config.stage_names() == [
        "checkout",
        "install",
        "analyze",
        "dependency-audit",
        "filesystem-scan",
        "build",
        "image-scan",
        "deploy",
    ]
    build = config.stages[5]
    assert isinstance(build, BuildPublishStageConfig)
    assert build.tag_strategy == "commit"
    audit = config.stages[3]
    assert isinstance(audit, ScanStageConfig)
    assert audit.blocking is False


def test_load_missing_config(tmp_path: Path) -> None:
    """load_pipeline_config raises when the file does not exist."""
    with pytest.raises(ConfigurationError, match="not found"):
        load_pipeline_config(tmp_path / "pipeline.yaml")


def test_load_invalid_yaml(tmp_path: Path) -> None:
    """load_pipeline_config raises on malformed YAML."""
    path = tmp_path / "pipeline.yaml"
    path.write_text("stages: [unclosed\n")
    with pytest.raises(ConfigurationError, match="Invalid YAML"):
        load_pipeline_config(path)


def test_load_empty_config(tmp_path: Path) -> None:
    """load_pipeline_config raises on an empty file."""
    path = tmp_path / "pipeline.yaml"
    path.write_text("")
    with pytest.raises(ConfigurationError, match="Empty pipeline config"):
        load_pipeline_config(path)


def test_load_invalid_schema(tmp_path: Path) -> None:
    """load_pipeline_config raises when the document fails validation."""
    path = tmp_path / "pipeline.yaml"
    path.write_text("version: '1.0'\nname: app\n")
    with pytest.raises(ConfigurationError, match="Invalid pipeline config schema"):
        load_pipeline_config(path)


@pytest.fixture
def minimal_config_path(tmp_path: Path) -> Path:
    """Write a small pipeline with one disabled stage."""
    path = tmp_path / "pipeline.yaml"
    path.write_text(MINIMAL_CONFIG)
    return path


def test_select_all_enabled_stages(minimal_config_path: Path) -> None:
    """An empty selection selects every enabled stage."""
    config = load_pipeline_config(minimal_config_path)
    assert select_stages(config, []) == {"checkout", "test"}


def test_select_named_stages(minimal_config_path: Path) -> None:
    """A selection keeps only the named stages."""
    config = load_pipeline_config(minimal_config_path)
    assert select_stages(config, ["test"]) == {"test"}


def test_select_disabled_stage(minimal_config_path: Path) -> None:
    """Selecting a disabled stage is a configuration error."""
    config = load_pipeline_config(minimal_config_path)
    with pytest.raises(ConfigurationError, match="Disabled stages selected"):
        select_stages(config, ["test", "lint"])


def test_select_unknown_stage(minimal_config_path: Path) -> None:
    """Selecting an unconfigured stage is a configuration error."""
    config = load_pipeline_config(minimal_config_path)
    with pytest.raises(ConfigurationError, match="Unknown stages selected"):
        select_stages(config, ["deploy"])


@pytest.mark.parametrize(
    ("section", "replacement"),
    [
        ("stages:\n", "notifier:\n  timeout: soon\nstages:\n"),
        (
            "stages:\n",
            "stages:\n"
            "  - name: deploy\n"
            "    kind: deploy\n"
            "    lock_timeout: soon\n"
            "    target:\n"
            "      kind: container\n"
            "      container_name: app\n"
            "      host_port: 3000\n"
            "      container_port: 3000\n",
        ),
    ],
)
def test_load_invalid_duration(
    tmp_path: Path, section: str, replacement: str
) -> None:
    """Malformed durations are rejected when the config is loaded."""
    path = tmp_path / "pipeline.yaml"
    path.write_text(MINIMAL_CONFIG.replace(section, replacement))
    with pytest.raises(ConfigurationError, match="Invalid duration"):
        load_pipeline_config(path)
