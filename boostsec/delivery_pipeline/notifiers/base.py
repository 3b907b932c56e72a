"""Abstract base class for run status notifiers."""

import logging
from abc import ABC, abstractmethod

from boostsec.delivery_pipeline.errors import NotificationError
from boostsec.delivery_pipeline.models.pipeline_run import PipelineRun
from boostsec.delivery_pipeline.reports import SeveritySummary

logger = logging.getLogger(__name__)

_STATUS_ICONS = {
    "success": "✅",
    "failed": "❌",
    "aborted": "⛔",
    "running": "⏳",
}

_STAGE_MARKS = {
    "passed": "✓",
    "failed": "✗",
    "skipped": "-",
    "running": "…",
    "pending": "…",
}


def format_run_message(run: PipelineRun, summary: SeveritySummary | None = None) -> str:
    """Format the terminal status of a run as a chat message."""
    icon = _STATUS_ICONS.get(run.status, "")
    lines = [
        f"{icon} Pipeline *{run.pipeline}* run `{run.run_id}`: "
        f"{run.status.upper()} ({run.duration:.1f}s)"
    ]

    if run.message:
        lines.append(run.message)

    failed = run.failed_stage
    if failed is not None:
        lines.append(
            f"Failed stage: *{failed.name}* ({failed.error_kind}): {failed.message}"
        )

    for result in run.results:
        line = f"{_STAGE_MARKS.get(result.status, '?')} {result.name}: {result.status}"
        if result.status == "failed":
            line += f" [{result.error_kind}]"
            if not result.blocking:
                line += " (non-blocking)"
        if result.retries:
            line += f" after {result.retries} retries"
        lines.append(line)

    if summary is not None:
        lines.append(f"Findings: {summary.describe()}")

    return "\n".join(lines)


class Notifier(ABC):
    """Delivers run status messages to an external channel."""

    @abstractmethod
    async def send(self, message: str) -> bool:
        """Deliver a message.

        Args:
            message: Formatted message text

        Returns:
            True if the message was delivered

        Raises:
            NotificationError: If delivery fails

        """

    async def notify(
        self, run: PipelineRun, summary: SeveritySummary | None = None
    ) -> bool:
        """Format and deliver the run status without ever raising.

        Returns:
            True if the message was delivered

        """
        message = format_run_message(run, summary)
        try:
            delivered = await self.send(message)
        except NotificationError as e:
            logger.error(f"Notification for run {run.run_id} failed: {e}")
            return False
        except Exception:
            logger.exception(f"Unexpected notification error for run {run.run_id}")
            return False

        if not delivered:
            logger.error(f"Notification for run {run.run_id} was not delivered")
        return delivered
