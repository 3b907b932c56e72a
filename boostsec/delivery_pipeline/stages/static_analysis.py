"""Static analysis stage gated by quality thresholds."""

import logging

from boostsec.delivery_pipeline.context import RunContext
from boostsec.delivery_pipeline.errors import GateViolationError
from boostsec.delivery_pipeline.models.pipeline_config import StaticAnalysisStageConfig
from boostsec.delivery_pipeline.quality_gate import (
    evaluate_quality_gate,
    fetch_server_metrics,
    parse_metrics_file,
)
from boostsec.delivery_pipeline.stages.base import StageOutcome
from boostsec.delivery_pipeline.stages.command import CommandStage

logger = logging.getLogger(__name__)


class StaticAnalysisStage(CommandStage):
    """Runs the code-quality scanner and blocks on a failing quality gate."""

    config: StaticAnalysisStageConfig

    async def collect_metrics(self, context: RunContext) -> dict[str, float]:
        """Read metrics from the configured file or analysis server."""
        source = self.config.metrics
        if source.file:
            return parse_metrics_file(
                context.workspace.path / context.render([source.file])[0]
            )

        token = None
        if source.credential:
            token = context.credential(source.credential).get("token")
        return await fetch_server_metrics(
            source.server_url or "",
            source.project_key or "",
            [threshold.metric for threshold in self.config.thresholds],
            token=token,
        )

    async def execute(self, context: RunContext) -> StageOutcome:
        """Run the scanner, then evaluate the quality gate.

        Raises:
            ToolInvocationError: If the scanner fails
            GateViolationError: If any threshold is violated

        """
        result = await self.run_command(context)
        metrics = await self.collect_metrics(context)

        verdict = evaluate_quality_gate(metrics, self.config.thresholds)
        context.verdicts[self.name] = verdict

        for measurement in verdict.measurements:
            mark = "✓" if measurement.passed else "✗"
            logger.info(
                f"{mark} {measurement.metric}: {measurement.measured} "
                f"{measurement.operator} {measurement.limit:g}"
            )

        if not verdict.passed:
            raise GateViolationError(verdict)

        return StageOutcome(
            stdout=result.stdout,
            stderr=result.stderr,
            artifacts=result.output_files,
            message="Quality gate passed",
            details={"verdict": verdict.model_dump()},
        )
