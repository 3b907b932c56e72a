"""Deployment stage replacing the running instance."""

from pathlib import Path

from boostsec.delivery_pipeline.context import RunContext
from boostsec.delivery_pipeline.deployer import DeploymentController
from boostsec.delivery_pipeline.errors import DeploymentError
from boostsec.delivery_pipeline.models.pipeline_config import (
    DeployStageConfig,
    parse_duration,
)
from boostsec.delivery_pipeline.stages.base import Stage, StageOutcome


class DeployStage(Stage):
    """Deploys the artifact published earlier in the same run."""

    config: DeployStageConfig

    def __init__(self, config: DeployStageConfig) -> None:
        """Initialize stage from its configuration."""
        super().__init__(config)

    async def execute(self, context: RunContext) -> StageOutcome:
        """Deploy the latest artifact of the run.

        Raises:
            DeploymentError: If no artifact exists or the new instance fails

        """
        artifact = context.latest_artifact
        if artifact is None:
            raise DeploymentError(f"Run {context.run_id} has not published an artifact")

        controller = DeploymentController(
            self.config.target,
            Path(self.config.lock_dir),
            invoker=context.invoker,
            lock_timeout=parse_duration(self.config.lock_timeout),
        )
        description = await controller.deploy(
            artifact, context.run_id, context.artifacts, context.workspace.path
        )
        return StageOutcome(
            message=description,
            details={
                "target": controller.target_name,
                "artifact": artifact.pinned_reference,
            },
        )
