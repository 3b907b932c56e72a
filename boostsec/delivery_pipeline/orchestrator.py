"""Orchestrates complete pipeline runs from a configuration."""

import asyncio
import logging
import os
from collections.abc import Mapping, Sequence

from boostsec.delivery_pipeline.config_loader import select_stages
from boostsec.delivery_pipeline.context import open_run_context
from boostsec.delivery_pipeline.engine import PipelineEngine
from boostsec.delivery_pipeline.errors import ConfigurationError
from boostsec.delivery_pipeline.invoker import ToolInvoker
from boostsec.delivery_pipeline.models.pipeline_config import (
    BuildPublishStageConfig,
    CheckoutStageConfig,
    CommandStageConfig,
    DeployStageConfig,
    NotifierConfig,
    PipelineConfig,
    ScanStageConfig,
    StaticAnalysisStageConfig,
    parse_duration,
)
from boostsec.delivery_pipeline.models.pipeline_run import PipelineRun
from boostsec.delivery_pipeline.models.trigger import Trigger
from boostsec.delivery_pipeline.notifiers.base import Notifier
from boostsec.delivery_pipeline.notifiers.log import LogNotifier
from boostsec.delivery_pipeline.notifiers.slack import SlackNotifier
from boostsec.delivery_pipeline.stages.base import Stage
from boostsec.delivery_pipeline.stages.checkout import CheckoutStage
from boostsec.delivery_pipeline.stages.command import CommandStage
from boostsec.delivery_pipeline.stages.deploy import DeployStage
from boostsec.delivery_pipeline.stages.publish import BuildPublishStage
from boostsec.delivery_pipeline.stages.scan import ScanStage
from boostsec.delivery_pipeline.stages.static_analysis import StaticAnalysisStage
from boostsec.delivery_pipeline.workspace import new_run_id

logger = logging.getLogger(__name__)


def create_stage(config: object) -> Stage:
    """Create the stage implementing a stage configuration."""
    # Subclasses first: scan and static analysis configs extend the command config.
    if isinstance(config, StaticAnalysisStageConfig):
        return StaticAnalysisStage(config)
    if isinstance(config, ScanStageConfig):
        return ScanStage(config)
    if isinstance(config, CommandStageConfig):
        return CommandStage(config)
    if isinstance(config, CheckoutStageConfig):
        return CheckoutStage(config)
    if isinstance(config, BuildPublishStageConfig):
        return BuildPublishStage(config)
    if isinstance(config, DeployStageConfig):
        return DeployStage(config)
    raise ConfigurationError(f"Unknown stage configuration: {type(config).__name__}")


def create_notifier(config: NotifierConfig, environ: Mapping[str, str]) -> Notifier:
    """Create the notifier described by the configuration.

    Raises:
        ConfigurationError: If the webhook environment variable is unset

    """
    if config.kind == "slack":
        webhook_url = environ.get(config.webhook_env or "")
        if not webhook_url:
            raise ConfigurationError(
                f"Slack webhook variable {config.webhook_env} is not set"
            )
        return SlackNotifier(
            webhook_url, channel=config.channel, timeout=parse_duration(config.timeout)
        )
    return LogNotifier()


class PipelineOrchestrator:
    """Runs the configured pipeline for one or more triggers."""

    def __init__(
        self,
        config: PipelineConfig,
        notifier: Notifier | None = None,
        invoker: ToolInvoker | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize orchestrator.

        Raises:
            ConfigurationError: If a stage or the notifier cannot be created

        """
        self.config = config
        self.environ = os.environ if environ is None else environ
        self.invoker = invoker or ToolInvoker()
        self.invoker.masked_env.update(config.credential_variables())
        self.notifier = notifier or create_notifier(config.notifier, self.environ)
        self.stages = [create_stage(stage) for stage in config.stages]

    async def run(
        self, trigger: Trigger | None = None, stage_names: Sequence[str] = ()
    ) -> PipelineRun:
        """Execute one pipeline run.

        Args:
            trigger: Source reference and overrides; defaults to a manual trigger
            stage_names: Stages to execute; empty executes every enabled stage

        Returns:
            The terminal pipeline run

        Raises:
            ConfigurationError: If the selection, overrides or credentials are
                invalid; raised before any stage runs

        """
        trigger = trigger or Trigger()
        selected = select_stages(self.config, stage_names)
        credential_id = trigger.credential_id
        if credential_id and credential_id not in self.config.credentials:
            raise ConfigurationError(f"Unknown credential id: {credential_id}")

        run_id = new_run_id()
        logger.info(f"Starting run {run_id} ({trigger.origin})")

        async with open_run_context(
            self.config,
            run_id,
            trigger=trigger,
            invoker=self.invoker,
            environ=self.environ,
        ) as context:
            engine = PipelineEngine(self.notifier)
            return await engine.run(self.stages, context, selected)

    async def run_many(
        self, triggers: Sequence[Trigger], stage_names: Sequence[str] = ()
    ) -> list[PipelineRun]:
        """Execute independent runs concurrently, one workspace each."""
        results = await asyncio.gather(
            *(self.run(trigger, stage_names) for trigger in triggers),
            return_exceptions=True,
        )
        return await self._process_results(list(triggers), list(results))

    async def _process_results(
        self,
        triggers: list[Trigger],
        results: list[PipelineRun | BaseException],
    ) -> list[PipelineRun]:
        """Turn run exceptions into aborted runs and report them."""
        final_results: list[PipelineRun] = []
        for trigger, result in zip(triggers, results):
            if isinstance(result, PipelineRun):
                final_results.append(result)
            elif isinstance(result, Exception):
                logger.error(
                    f"Run failed before starting: {type(result).__name__}: {result}",
                    exc_info=result,
                )
                aborted = PipelineRun(
                    run_id="unknown",
                    pipeline=self.config.name,
                    trigger=trigger,
                    message=f"Run failed before starting: {result}",
                )
                aborted.finish("aborted")
                await self.notifier.notify(aborted)
                final_results.append(aborted)
            else:
                raise result
        return final_results
