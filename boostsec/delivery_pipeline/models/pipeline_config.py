"""Configuration models for pipeline definitions loaded from YAML."""

import re
from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from boostsec.delivery_pipeline.models.quality_gate import MetricThreshold
from boostsec.delivery_pipeline.models.scan_report import Severity

_DURATION_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smh]?)\s*$")
_DURATION_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600}


def parse_duration(value: str) -> float:
    """Parse a duration such as '300s', '5m' or '1h' into seconds.

    Raises:
        ValueError: If the duration is malformed or not positive

    """
    match = _DURATION_PATTERN.match(value)
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    seconds = float(match.group(1)) * _DURATION_UNITS[match.group(2)]
    if seconds <= 0:
        raise ValueError(f"Duration must be positive: {value!r}")
    return seconds


class SourceConfig(BaseModel):
    """Where the pipeline checks out its source tree from."""

    url: str | None = Field(default=None, description="Git repository URL")
    path: str | None = Field(default=None, description="Local directory to copy")
    ref: str = Field(default="main", description="Branch or tag to check out")

    @model_validator(mode="after")
    def _check_location(self) -> "SourceConfig":
        if not self.url and not self.path:
            raise ValueError("source requires either url or path")
        return self


class WorkspaceConfig(BaseModel):
    """Workspace allocation settings."""

    root: str = Field(
        default="/tmp/delivery-pipeline", description="Parent directory of workspaces"
    )
    keep: bool = Field(default=False, description="Keep workspaces after the run")


class RegistryConfig(BaseModel):
    """Container registry the build stage publishes to."""

    host: str = Field(default="docker.io", description="Registry host")
    repository: str = Field(..., description="Image repository (e.g., org/app)")
    credential: str | None = Field(
        default=None, description="Name of the credential used for docker login"
    )
    push_retries: int = Field(
        default=3, ge=0, description="Retries after a failed push"
    )
    backoff_seconds: float = Field(
        default=2.0, ge=0, description="Base delay of the exponential push backoff"
    )


class NotifierConfig(BaseModel):
    """Where terminal run status is reported."""

    kind: Literal["log", "slack"] = Field(default="log", description="Notifier type")
    webhook_env: str | None = Field(
        default=None, description="Environment variable holding the webhook URL"
    )
    channel: str | None = Field(default=None, description="Channel override")
    timeout: str = Field(default="30s", description="Delivery timeout")

    @field_validator("timeout")
    @classmethod
    def _check_timeout(cls, value: str) -> str:
        parse_duration(value)
        return value

    @model_validator(mode="after")
    def _check_webhook(self) -> "NotifierConfig":
        if self.kind == "slack" and not self.webhook_env:
            raise ValueError("slack notifier requires webhook_env")
        return self


class BaseStageConfig(BaseModel):
    """Settings shared by every stage."""

    name: str = Field(..., min_length=1, description="Unique stage name")
    blocking: bool = Field(default=True, description="Whether failure halts the run")
    timeout: str = Field(default="10m", description="Stage timeout (e.g., '5m')")
    enabled: bool = Field(default=True, description="Skip the stage when false")

    @field_validator("timeout")
    @classmethod
    def _check_timeout(cls, value: str) -> str:
        parse_duration(value)
        return value

    @property
    def timeout_seconds(self) -> float:
        """Return the timeout in seconds."""
        return parse_duration(self.timeout)


class CheckoutStageConfig(BaseStageConfig):
    """Prepare the workspace from the configured source."""

    kind: Literal["checkout"]


class CommandStageConfig(BaseStageConfig):
    """Run an arbitrary command in the workspace."""

    kind: Literal["command"]
    command: list[str] = Field(..., min_length=1, description="Command and arguments")
    env: dict[str, str] = Field(default_factory=dict, description="Extra environment")
    credentials: dict[str, str] = Field(
        default_factory=dict,
        description="Environment variable to credential reference (name.field)",
    )
    output_files: list[str] = Field(
        default_factory=list, description="Declared output files relative to workspace"
    )
    allowed_exit_codes: list[int] = Field(default_factory=lambda: [0])


class MetricsSourceConfig(BaseModel):
    """Where the static analysis metrics are read from."""

    file: str | None = Field(default=None, description="JSON metrics file path")
    server_url: str | None = Field(default=None, description="Analysis server URL")
    project_key: str | None = Field(default=None, description="Server project key")
    credential: str | None = Field(
        default=None, description="Credential holding the server 'token' field"
    )

    @model_validator(mode="after")
    def _check_source(self) -> "MetricsSourceConfig":
        if bool(self.file) == bool(self.server_url):
            raise ValueError("metrics requires exactly one of file or server_url")
        if self.server_url and not self.project_key:
            raise ValueError("metrics.server_url requires project_key")
        return self


class StaticAnalysisStageConfig(CommandStageConfig):
    """Run the code-quality scanner and evaluate the quality gate."""

    kind: Literal["static-analysis"]  # type: ignore[assignment]
    thresholds: list[MetricThreshold] = Field(
        ..., min_length=1, description="Quality gate thresholds"
    )
    metrics: MetricsSourceConfig = Field(..., description="Metrics source")


class ScanStageConfig(CommandStageConfig):
    """Run a vulnerability scanner and collect its report."""

    kind: Literal[  # type: ignore[assignment]
        "dependency-audit", "filesystem-scan", "image-scan"
    ]
    report_files: list[str] = Field(
        ..., min_length=1, description="Report files relative to workspace"
    )
    report_format: Literal["auto", "trivy", "dependency-check", "generic"] = "auto"
    fail_on_severity: Severity | None = Field(
        default=None, description="Fail when a finding is at or above this severity"
    )


class BuildPublishStageConfig(BaseStageConfig):
    """Build the container image and push it to the registry."""

    kind: Literal["build-publish"]
    dockerfile: str = Field(default="Dockerfile", description="Dockerfile path")
    context: str = Field(default=".", description="Build context in the workspace")
    build_args: dict[str, str] = Field(default_factory=dict)
    tag_strategy: Literal["run-id", "commit", "content-hash", "fixed"] = "run-id"
    tag: str | None = Field(default=None, description="Tag for the fixed strategy")

    @model_validator(mode="after")
    def _check_tag(self) -> "BuildPublishStageConfig":
        if self.tag_strategy == "fixed" and not self.tag:
            raise ValueError("tag_strategy 'fixed' requires tag")
        return self


class ContainerTargetConfig(BaseModel):
    """Single container replaced on the local docker host."""

    kind: Literal["container"]
    container_name: str = Field(..., description="Name of the running container")
    host_port: int = Field(..., ge=1, le=65535)
    container_port: int = Field(..., ge=1, le=65535)


class KubernetesTargetConfig(BaseModel):
    """Deployment whose container image is replaced in a cluster."""

    kind: Literal["kubernetes"]
    deployment: str = Field(..., description="Deployment name")
    container: str = Field(..., description="Container name in the pod template")
    namespace: str = Field(default="default")
    context: str | None = Field(default=None, description="kubectl context")


class DeployStageConfig(BaseStageConfig):
    """Replace the running instance with the published artifact."""

    kind: Literal["deploy"]
    target: Annotated[
        ContainerTargetConfig | KubernetesTargetConfig, Field(discriminator="kind")
    ]
    lock_dir: str = Field(
        default="/tmp/delivery-pipeline/locks", description="Directory of target locks"
    )
    lock_timeout: str = Field(default="10m", description="Lock acquisition timeout")

    @field_validator("lock_timeout")
    @classmethod
    def _check_lock_timeout(cls, value: str) -> str:
        parse_duration(value)
        return value


StageConfig = Annotated[
    CheckoutStageConfig
    | CommandStageConfig
    | StaticAnalysisStageConfig
    | ScanStageConfig
    | BuildPublishStageConfig
    | DeployStageConfig,
    Field(discriminator="kind"),
]


class PipelineConfig(BaseModel):
    """Complete pipeline definition."""

    version: str = Field(..., description="Pipeline definition schema version")
    name: str = Field(..., min_length=1, description="Pipeline name")
    source: SourceConfig
    workspace: WorkspaceConfig = Field(default_factory=WorkspaceConfig)
    credentials: dict[str, dict[str, str]] = Field(
        default_factory=dict,
        description="Credential name to mapping of field to environment variable",
    )
    registry: RegistryConfig | None = None
    notifier: NotifierConfig = Field(default_factory=NotifierConfig)
    stages: list[StageConfig] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _check_stages(self) -> "PipelineConfig":
        names = [stage.name for stage in self.stages]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate stage names: {duplicates}")

        kinds = {stage.kind for stage in self.stages}
        if "build-publish" in kinds and self.registry is None:
            raise ValueError("build-publish stage requires a registry section")

        referenced = set()
        if self.registry and self.registry.credential:
            referenced.add(self.registry.credential)
        for stage in self.stages:
            if isinstance(stage, CommandStageConfig):
                referenced.update(
                    ref.split(".", 1)[0] for ref in stage.credentials.values()
                )
            if isinstance(stage, StaticAnalysisStageConfig):
                if stage.metrics.credential:
                    referenced.add(stage.metrics.credential)
        unknown = sorted(referenced - set(self.credentials))
        if unknown:
            raise ValueError(f"Unknown credentials referenced: {unknown}")
        return self

    def stage_names(self) -> list[str]:
        """Return stage names in configured order."""
        return [stage.name for stage in self.stages]

    def credential_variables(self) -> set[str]:
        """Return the environment variables holding credential values."""
        return {
            env_var
            for fields in self.credentials.values()
            for env_var in fields.values()
        }
