"""Pipeline engine executing stages in order against one run."""

import asyncio
import logging
from collections.abc import Collection, Sequence

from boostsec.delivery_pipeline.context import RunContext
from boostsec.delivery_pipeline.errors import (
    BlockingFindingsError,
    GateViolationError,
    PipelineError,
    StageTimeoutError,
    ToolInvocationError,
)
from boostsec.delivery_pipeline.models.pipeline_run import PipelineRun, StageResult
from boostsec.delivery_pipeline.notifiers.base import Notifier
from boostsec.delivery_pipeline.reports import summarize
from boostsec.delivery_pipeline.stages.base import Stage, StageOutcome

logger = logging.getLogger(__name__)


class PipelineEngine:
    """Runs stages strictly sequentially and gates on blocking failures."""

    def __init__(self, notifier: Notifier | None = None) -> None:
        """Initialize engine with the notifier receiving every terminal run."""
        self.notifier = notifier

    async def run(
        self,
        stages: Sequence[Stage],
        context: RunContext,
        selected: Collection[str] | None = None,
    ) -> PipelineRun:
        """Execute stages against the run context.

        Args:
            stages: Stages in configured order
            context: Shared state of the run
            selected: Stage names to execute; others are recorded as skipped.
                None executes every stage.

        Returns:
            The terminal pipeline run

        """
        run = PipelineRun(
            run_id=context.run_id,
            pipeline=context.config.name,
            trigger=context.trigger,
        )
        logger.info("=" * 80)
        logger.info(f"Pipeline {run.pipeline} - run {run.run_id} starting")
        logger.info("=" * 80)

        try:
            await self._execute(run, stages, context, selected)
        finally:
            if not run.is_terminal:
                run.finish("aborted")
            self._log_summary(run)
            await self._notify(run, context)

        return run

    async def _execute(
        self,
        run: PipelineRun,
        stages: Sequence[Stage],
        context: RunContext,
        selected: Collection[str] | None,
    ) -> None:
        for stage in stages:
            result = StageResult(name=stage.name, blocking=stage.blocking)
            run.record(result)

            if selected is not None and stage.name not in selected:
                result.skip("Not selected for this run")
                logger.info(f"Skipping stage {stage.name}")
                continue

            logger.info(f"Stage {stage.name} starting (timeout {stage.timeout:g}s)")
            result.start()
            try:
                outcome = await asyncio.wait_for(
                    stage.execute(context), timeout=stage.timeout
                )
            except asyncio.TimeoutError:
                self._fail(
                    result,
                    StageTimeoutError(
                        f"Stage {stage.name} exceeded its {stage.timeout:g}s timeout"
                    ),
                )
            except asyncio.CancelledError:
                result.failed("cancelled", "Run cancelled")
                run.finish("aborted")
                raise
            except Exception as e:
                self._fail(result, e)
            else:
                self._pass(result, outcome)
                continue

            if result.blocking:
                logger.error(f"Blocking stage {stage.name} failed, aborting run")
                run.finish("aborted")
                return
            logger.warning(f"Non-blocking stage {stage.name} failed, continuing")

        has_failures = any(result.status == "failed" for result in run.results)
        run.finish("failed" if has_failures else "success")

    def _pass(self, result: StageResult, outcome: StageOutcome) -> None:
        result.stdout = outcome.stdout
        result.stderr = outcome.stderr
        result.artifacts = list(outcome.artifacts)
        result.retries = outcome.retries
        result.details = dict(outcome.details)
        result.passed(outcome.message)
        logger.info(f"✓ {result.name}: passed ({result.duration:.2f}s)")

    def _fail(self, result: StageResult, error: Exception) -> None:
        if isinstance(error, PipelineError):
            kind = error.kind
            result.blocking = result.blocking or error.always_blocking
        else:
            kind = "unexpected"
            logger.error(
                f"Unexpected error in stage {result.name}: {type(error).__name__}",
                exc_info=error,
            )

        if isinstance(error, ToolInvocationError):
            result.stdout = error.stdout
            result.stderr = error.stderr
            if error.exit_code is not None:
                result.details["exit_code"] = error.exit_code
        if isinstance(error, BlockingFindingsError):
            result.artifacts = list(error.report_files)
        if isinstance(error, GateViolationError):
            result.details["verdict"] = error.verdict.model_dump()

        result.failed(kind, str(error) or type(error).__name__)
        logger.error(f"✗ {result.name}: {kind}: {result.message}")

    def _log_summary(self, run: PipelineRun) -> None:
        logger.info("=" * 80)
        logger.info(f"Run {run.run_id} finished: {run.status} ({run.duration:.2f}s)")
        logger.info("=" * 80)

    async def _notify(self, run: PipelineRun, context: RunContext) -> None:
        if self.notifier is None:
            return
        summary = summarize(context.reports.values()) if context.reports else None
        await self.notifier.notify(run, summary)
