"""Slack incoming-webhook notifier."""

import aiohttp

from boostsec.delivery_pipeline.errors import NotificationError
from boostsec.delivery_pipeline.notifiers.base import Notifier


class SlackNotifier(Notifier):
    """Posts run status messages to a Slack incoming webhook."""

    def __init__(
        self, webhook_url: str, channel: str | None = None, timeout: float = 30
    ) -> None:
        """Initialize notifier with the webhook URL."""
        self.webhook_url = webhook_url
        self.channel = channel
        self.timeout = timeout

    async def send(self, message: str) -> bool:
        """Post the message to the webhook."""
        payload: dict[str, str] = {"text": message}
        if self.channel:
            payload["channel"] = self.channel

        try:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as session:
                async with session.post(self.webhook_url, json=payload) as response:
                    if response.status >= 300:
                        text = await response.text()
                        raise NotificationError(
                            f"Slack webhook rejected message: {response.status} {text}"
                        )
        except aiohttp.ClientError as e:
            raise NotificationError(f"Slack webhook unreachable: {e}") from e

        return True
