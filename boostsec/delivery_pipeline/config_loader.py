"""Load and validate pipeline definitions from YAML files."""

from collections.abc import Sequence
from pathlib import Path

import yaml
from pydantic import ValidationError

from boostsec.delivery_pipeline.errors import ConfigurationError
from boostsec.delivery_pipeline.models.pipeline_config import PipelineConfig


def load_pipeline_config(config_path: Path) -> PipelineConfig:
    """Load the pipeline definition at config_path.

    Args:
        config_path: Path to the pipeline YAML file

    Returns:
        Parsed pipeline configuration

    Raises:
        ConfigurationError: If the file is missing, empty, not valid YAML,
            or doesn't match the schema

    """
    if not config_path.exists():
        raise ConfigurationError(f"Pipeline config not found: {config_path}")

    try:
        with config_path.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if data is None:
        raise ConfigurationError(f"Empty pipeline config: {config_path}")

    try:
        return PipelineConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid pipeline config schema in {config_path}: {e}"
        ) from e


def select_stages(config: PipelineConfig, names: Sequence[str]) -> set[str]:
    """Resolve a stage selection against the configured stages.

    An empty selection selects every enabled stage.

    Raises:
        ConfigurationError: If a selected stage is not configured or disabled

    """
    configured = config.stage_names()
    unknown = [name for name in names if name not in configured]
    if unknown:
        raise ConfigurationError(
            f"Unknown stages selected: {unknown}. Configured stages: {configured}"
        )

    disabled = [
        stage.name
        for stage in config.stages
        if stage.name in names and not stage.enabled
    ]
    if disabled:
        raise ConfigurationError(f"Disabled stages selected: {disabled}")

    selected = set(names) if names else set(configured)
    return {stage.name for stage in config.stages if stage.enabled} & selected
