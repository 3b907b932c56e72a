"""Error types raised by pipeline components."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from boostsec.delivery_pipeline.models.quality_gate import QualityGateVerdict


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    kind = "unexpected"
    always_blocking = False


class ConfigurationError(PipelineError):
    """Raised when the pipeline configuration is malformed or incomplete."""

    kind = "configuration"
    always_blocking = True


class ToolInvocationError(PipelineError):
    """Raised when an external tool exits with an unexpected code."""

    kind = "tool_invocation"

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        """Initialize with the captured process output."""
        super().__init__(message)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr


class StageTimeoutError(ToolInvocationError):
    """Raised when a stage exceeds its timeout."""

    kind = "timeout"


class ReportParseError(ToolInvocationError):
    """Raised when a scanner report cannot be parsed."""


class BlockingFindingsError(PipelineError):
    """Raised when a scan report contains findings at or above a threshold."""

    kind = "blocking_findings"

    def __init__(self, message: str, report_files: list[str] | None = None) -> None:
        """Initialize with the report files holding the findings."""
        super().__init__(message)
        self.report_files = report_files or []


class GateViolationError(PipelineError):
    """Raised when the quality gate verdict is failing."""

    kind = "gate_violation"
    always_blocking = True

    def __init__(self, verdict: "QualityGateVerdict") -> None:
        """Initialize with the failing verdict."""
        super().__init__(
            f"Quality gate failed: {', '.join(verdict.violated)} violated"
        )
        self.verdict = verdict


class BuildError(PipelineError):
    """Raised when the image build fails."""

    kind = "build"
    always_blocking = True


class PublishError(PipelineError):
    """Raised when the registry rejects a push."""

    kind = "publish"
    always_blocking = True

    def __init__(self, message: str, transient: bool = True) -> None:
        """Initialize with whether a retry may succeed."""
        super().__init__(message)
        self.transient = transient


class DeploymentError(PipelineError):
    """Raised when the new instance cannot be started."""

    kind = "deployment"
    always_blocking = True


class NotificationError(PipelineError):
    """Raised when a notification cannot be delivered."""

    kind = "notification"
