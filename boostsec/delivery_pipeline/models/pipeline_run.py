"""Models for pipeline runs and per-stage results."""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

from boostsec.delivery_pipeline.models.trigger import Trigger

StageStatus = Literal["pending", "running", "passed", "failed", "skipped"]
RunStatus = Literal["running", "success", "failed", "aborted"]

_STAGE_TRANSITIONS: dict[str, set[str]] = {
    "pending": {"running", "skipped"},
    "running": {"passed", "failed", "skipped"},
    "passed": set(),
    "failed": set(),
    "skipped": set(),
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class StageResult(BaseModel):
    """Outcome of a single stage within a run."""

    name: str = Field(..., description="Stage name")
    status: StageStatus = Field(default="pending", description="Stage status")
    blocking: bool = Field(default=True, description="Whether failure halts the run")
    artifacts: list[str] = Field(
        default_factory=list, description="Captured output files (report paths)"
    )
    stdout: str = Field(default="", description="Captured standard output")
    stderr: str = Field(default="", description="Captured standard error")
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration: float = Field(default=0.0, description="Execution time in seconds")
    error_kind: str | None = Field(default=None, description="Failure category")
    message: str | None = Field(default=None, description="Error or status details")
    retries: int = Field(default=0, description="Retries performed by the stage")
    details: dict[str, object] = Field(
        default_factory=dict, description="Stage specific data (verdict, digest)"
    )

    @property
    def is_terminal(self) -> bool:
        """Return True once the stage reached passed, failed or skipped."""
        return self.status in {"passed", "failed", "skipped"}

    def _transition(self, status: StageStatus) -> None:
        if status not in _STAGE_TRANSITIONS[self.status]:
            raise ValueError(
                f"Stage {self.name} cannot move from {self.status} to {status}"
            )
        self.status = status

    def start(self) -> None:
        """Mark the stage as running."""
        self._transition("running")
        self.started_at = _now()

    def _close(self, status: StageStatus) -> None:
        self._transition(status)
        self.finished_at = _now()
        if self.started_at is not None:
            self.duration = max(
                0.0, (self.finished_at - self.started_at).total_seconds()
            )

    def passed(self, message: str | None = None) -> None:
        """Mark the stage as passed."""
        self._close("passed")
        self.message = message

    def failed(self, error_kind: str, message: str) -> None:
        """Mark the stage as failed with an error category."""
        self._close("failed")
        self.error_kind = error_kind
        self.message = message

    def skip(self, message: str | None = None) -> None:
        """Mark the stage as skipped."""
        self._close("skipped")
        self.message = message


class PipelineRun(BaseModel):
    """One execution of the pipeline."""

    run_id: str = Field(..., description="Unique run identifier")
    pipeline: str = Field(..., description="Pipeline name")
    trigger: Trigger = Field(default_factory=Trigger)
    started_at: datetime = Field(default_factory=_now)
    finished_at: datetime | None = None
    status: RunStatus = Field(default="running", description="Run status")
    results: list[StageResult] = Field(
        default_factory=list, description="Stage results in execution order"
    )
    message: str | None = Field(
        default=None, description="Why the run ended before its stages ran"
    )

    @property
    def is_terminal(self) -> bool:
        """Return True once the run has a final status."""
        return self.status != "running"

    @property
    def failed_stage(self) -> StageResult | None:
        """Return the first failed blocking stage, if any."""
        for result in self.results:
            if result.status == "failed" and result.blocking:
                return result
        return None

    def result_for(self, name: str) -> StageResult | None:
        """Return the result recorded for a stage name."""
        for result in self.results:
            if result.name == name:
                return result
        return None

    def record(self, result: StageResult) -> None:
        """Append a stage result.

        Raises:
            ValueError: If the run is terminal or the stage already has a result

        """
        if self.is_terminal:
            raise ValueError(f"Run {self.run_id} is {self.status}, cannot record")
        if self.result_for(result.name) is not None:
            raise ValueError(
                f"Run {self.run_id} already has a result for {result.name}"
            )
        self.results.append(result)

    def finish(self, status: Literal["success", "failed", "aborted"]) -> None:
        """Set the terminal status of the run."""
        if self.is_terminal:
            raise ValueError(f"Run {self.run_id} is already {self.status}")
        self.status = status
        self.finished_at = _now()

    @property
    def duration(self) -> float:
        """Return the run duration in seconds."""
        end = self.finished_at or _now()
        return max(0.0, (end - self.started_at).total_seconds())
