"""Dependency audit, filesystem and image vulnerability scan stages."""

import logging

from boostsec.delivery_pipeline.context import RunContext
from boostsec.delivery_pipeline.errors import BlockingFindingsError
from boostsec.delivery_pipeline.models.pipeline_config import ScanStageConfig
from boostsec.delivery_pipeline.reports import (
    SeveritySummary,
    has_blocking_findings,
    merge_reports,
    parse_report,
)
from boostsec.delivery_pipeline.stages.base import StageOutcome
from boostsec.delivery_pipeline.stages.command import CommandStage

logger = logging.getLogger(__name__)


class ScanStage(CommandStage):
    """Runs a scanner and turns its report files into a ScanReport."""

    config: ScanStageConfig

    async def execute(self, context: RunContext) -> StageOutcome:
        """Run the scanner and parse its reports.

        Raises:
            ToolInvocationError: If the scanner fails or a report is unreadable
            BlockingFindingsError: If findings reach the configured severity

        """
        result = await self.run_command(context)

        report_names = context.render(self.config.report_files)
        report_paths = [context.workspace.path / name for name in report_names]
        report = merge_reports(
            self.name,
            (
                parse_report(path, self.config.report_format, source=self.name)
                for path in report_paths
            ),
        )
        context.reports[self.name] = report

        summary = SeveritySummary.from_report(report)
        logger.info(f"{self.config.kind} {self.name}: {summary.describe()}")

        report_files = [str(path) for path in report_paths]
        threshold = self.config.fail_on_severity
        if threshold is not None and has_blocking_findings(report, threshold):
            raise BlockingFindingsError(
                f"{summary.describe()} (threshold: {threshold})",
                report_files=report_files,
            )

        return StageOutcome(
            stdout=result.stdout,
            stderr=result.stderr,
            artifacts=sorted(set(result.output_files) | set(report_files)),
            message=summary.describe(),
            details={"summary": dict(summary.counts)},
        )
