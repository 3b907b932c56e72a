"""Checkout stage populating the run workspace."""

import logging

from boostsec.delivery_pipeline.context import RunContext
from boostsec.delivery_pipeline.stages.base import Stage, StageOutcome

logger = logging.getLogger(__name__)


class CheckoutStage(Stage):
    """Copies or clones the configured source into the workspace."""

    async def execute(self, context: RunContext) -> StageOutcome:
        """Prepare the workspace, honoring trigger overrides."""
        source = context.config.source
        trigger = context.trigger

        url, path = source.url, source.path
        if trigger.source:
            if "://" in trigger.source or trigger.source.startswith("git@"):
                url, path = trigger.source, None
            else:
                url, path = None, trigger.source

        context.workspace = await context.workspace_manager.prepare(
            context.workspace,
            url=url,
            path=path,
            ref=trigger.ref or source.ref,
            commit=trigger.commit,
        )

        origin = url or path
        commit = context.workspace.commit
        message = f"Checked out {origin}" + (f" at {commit}" if commit else "")
        logger.info(message)
        return StageOutcome(
            message=message,
            details={"source": origin, "commit": commit},
        )
