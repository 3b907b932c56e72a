"""Notifier that writes run status to the log."""

import logging

from boostsec.delivery_pipeline.notifiers.base import Notifier

logger = logging.getLogger(__name__)


class LogNotifier(Notifier):
    """Logs run status messages."""

    async def send(self, message: str) -> bool:
        """Write the message to the log."""
        for line in message.splitlines():
            logger.info(line)
        return True
