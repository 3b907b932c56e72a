"""Abstract base class for pipeline stages."""

from abc import ABC, abstractmethod

from pydantic import BaseModel, Field

from boostsec.delivery_pipeline.context import RunContext
from boostsec.delivery_pipeline.models.pipeline_config import BaseStageConfig


class StageOutcome(BaseModel):
    """What a successful stage hands back to the engine."""

    stdout: str = Field(default="", description="Captured standard output")
    stderr: str = Field(default="", description="Captured standard error")
    artifacts: list[str] = Field(
        default_factory=list, description="Output files produced by the stage"
    )
    retries: int = Field(default=0, description="Retries performed")
    message: str | None = Field(default=None, description="Status details")
    details: dict[str, object] = Field(default_factory=dict)


class Stage(ABC):
    """One discrete step of the pipeline wrapping an external tool."""

    def __init__(self, config: BaseStageConfig) -> None:
        """Initialize stage from its configuration."""
        self.config = config

    @property
    def name(self) -> str:
        """Return the stage name."""
        return self.config.name

    @property
    def blocking(self) -> bool:
        """Return whether a failure halts the run."""
        return self.config.blocking

    @property
    def timeout(self) -> float:
        """Return the stage timeout in seconds."""
        return self.config.timeout_seconds

    @abstractmethod
    async def execute(self, context: RunContext) -> StageOutcome:
        """Run the stage against the run context.

        Args:
            context: Shared state of the current run

        Returns:
            Captured output and stage details

        Raises:
            PipelineError: If the stage fails

        """
