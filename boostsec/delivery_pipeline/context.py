"""Scoped state shared by the stages of one run."""

import logging
import os
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import BaseModel, SecretStr

from boostsec.delivery_pipeline.errors import ConfigurationError
from boostsec.delivery_pipeline.invoker import ToolInvoker
from boostsec.delivery_pipeline.models.artifact import Artifact
from boostsec.delivery_pipeline.models.pipeline_config import PipelineConfig
from boostsec.delivery_pipeline.models.quality_gate import QualityGateVerdict
from boostsec.delivery_pipeline.models.scan_report import ScanReport
from boostsec.delivery_pipeline.models.trigger import Trigger
from boostsec.delivery_pipeline.workspace import Workspace, WorkspaceManager

logger = logging.getLogger(__name__)


class Credential(BaseModel):
    """Named set of secret values resolved for one run."""

    name: str
    values: dict[str, SecretStr]

    def get(self, field_name: str) -> str:
        """Return the secret value of a field.

        Raises:
            ConfigurationError: If the credential has no such field

        """
        if field_name not in self.values:
            raise ConfigurationError(
                f"Credential {self.name} has no field {field_name!r}"
            )
        return self.values[field_name].get_secret_value()


def resolve_credentials(
    specs: Mapping[str, Mapping[str, str]], environ: Mapping[str, str]
) -> dict[str, Credential]:
    """Resolve credential specs (field to environment variable) from environ.

    Raises:
        ConfigurationError: If any referenced environment variable is unset

    """
    missing: list[str] = []
    credentials: dict[str, Credential] = {}
    for name, fields in specs.items():
        values: dict[str, SecretStr] = {}
        for field_name, env_var in fields.items():
            value = environ.get(env_var)
            if value is None:
                missing.append(f"{name}.{field_name} ({env_var})")
                continue
            values[field_name] = SecretStr(value)
        credentials[name] = Credential(name=name, values=values)

    if missing:
        raise ConfigurationError(f"Missing credentials: {', '.join(missing)}")
    return credentials


@dataclass
class RunContext:
    """Everything a stage may read or produce during a run."""

    run_id: str
    config: PipelineConfig
    workspace: Workspace
    workspace_manager: WorkspaceManager
    invoker: ToolInvoker
    trigger: Trigger = field(default_factory=Trigger)
    credentials: dict[str, Credential] = field(default_factory=dict)
    artifacts: list[Artifact] = field(default_factory=list)
    reports: dict[str, ScanReport] = field(default_factory=dict)
    verdicts: dict[str, QualityGateVerdict] = field(default_factory=dict)

    def credential(self, name: str) -> Credential:
        """Return a resolved credential by name.

        Raises:
            ConfigurationError: If the credential is unknown or already released

        """
        if name not in self.credentials:
            raise ConfigurationError(f"Credential {name!r} is not available")
        return self.credentials[name]

    def credential_env(self, mapping: Mapping[str, str]) -> dict[str, str]:
        """Build environment variables from 'name.field' credential references."""
        env: dict[str, str] = {}
        for env_var, reference in mapping.items():
            name, _, field_name = reference.partition(".")
            env[env_var] = self.credential(name).get(field_name or "value")
        return env

    @property
    def latest_artifact(self) -> Artifact | None:
        """Return the most recently published artifact of this run."""
        return self.artifacts[-1] if self.artifacts else None

    def placeholders(self) -> dict[str, str]:
        """Return the values available to command templates."""
        values = {
            "workspace": str(self.workspace.path),
            "run_id": self.run_id,
            "container_name": self.workspace.container_name,
            "commit": self.workspace.commit or "",
        }
        if self.latest_artifact is not None:
            values["image"] = self.latest_artifact.reference
            values["image_digest"] = self.latest_artifact.pinned_reference
        return values

    def render(self, command: Sequence[str]) -> list[str]:
        """Substitute placeholders in command arguments.

        Raises:
            ConfigurationError: If an argument references an unavailable value

        """
        values = self.placeholders()
        rendered: list[str] = []
        for arg in command:
            try:
                rendered.append(arg.format_map(values))
            except KeyError as e:
                raise ConfigurationError(
                    f"Placeholder {e} in {arg!r} is not available in this run"
                ) from e
            except ValueError as e:
                raise ConfigurationError(
                    f"Malformed placeholder in {arg!r}: {e}"
                ) from e
        return rendered


@asynccontextmanager
async def open_run_context(
    config: PipelineConfig,
    run_id: str,
    trigger: Trigger | None = None,
    invoker: ToolInvoker | None = None,
    workspace_manager: WorkspaceManager | None = None,
    environ: Mapping[str, str] | None = None,
) -> AsyncIterator[RunContext]:
    """Acquire credentials and a workspace for one run, releasing both on exit.

    Raises:
        ConfigurationError: If credentials are missing or the workspace exists

    """
    invoker = invoker or ToolInvoker()
    manager = workspace_manager or WorkspaceManager(
        Path(config.workspace.root), invoker=invoker, keep=config.workspace.keep
    )
    credentials = resolve_credentials(
        config.credentials, os.environ if environ is None else environ
    )
    workspace = manager.allocate(config.name, run_id)
    context = RunContext(
        run_id=run_id,
        config=config,
        workspace=workspace,
        workspace_manager=manager,
        invoker=invoker,
        trigger=trigger or Trigger(),
        credentials=credentials,
    )
    try:
        yield context
    finally:
        context.credentials.clear()
        await manager.release(context.workspace)
        logger.info(f"Released credentials and workspace of run {run_id}")
