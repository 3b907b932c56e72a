"""Container registry operations through the docker CLI."""

import logging
import re
from pathlib import Path

from boostsec.delivery_pipeline.context import Credential
from boostsec.delivery_pipeline.errors import PublishError, ToolInvocationError
from boostsec.delivery_pipeline.invoker import ToolInvoker

logger = logging.getLogger(__name__)

_DIGEST_PATTERN = re.compile(r"digest:\s*(sha256:[0-9a-f]{64})")
_DENIED_MARKERS = ("unauthorized", "denied", "authentication required", "forbidden")


def is_auth_failure(output: str) -> bool:
    """Return True if registry output indicates rejected credentials."""
    lowered = output.lower()
    return any(marker in lowered for marker in _DENIED_MARKERS)


class ContainerRegistry:
    """Registry that images are pushed to."""

    def __init__(self, host: str, invoker: ToolInvoker | None = None) -> None:
        """Initialize registry with its host name."""
        self.host = host
        self.invoker = invoker or ToolInvoker()

    async def login(self, credential: Credential, workdir: Path) -> None:
        """Authenticate the docker CLI against the registry.

        Raises:
            PublishError: If the login is rejected; transient unless the
                credentials were denied

        """
        try:
            result = await self.invoker.invoke(
                [
                    "docker",
                    "login",
                    self.host,
                    "--username",
                    credential.get("username"),
                    "--password-stdin",
                ],
                workdir,
                stdin=credential.get("password"),
            )
        except ToolInvocationError as e:
            raise PublishError(
                f"Registry login to {self.host} failed: {e}", transient=False
            ) from e
        if not result.succeeded:
            raise PublishError(
                f"Registry login to {self.host} failed: {result.stderr.strip()}",
                transient=not is_auth_failure(result.stderr),
            )
        logger.info(f"Logged in to {self.host}")

    async def push(self, image: str, tag: str, workdir: Path) -> str:
        """Push image:tag and return the content digest.

        Raises:
            PublishError: If the push is rejected or reports no digest

        """
        reference = f"{image}:{tag}"
        try:
            result = await self.invoker.invoke(["docker", "push", reference], workdir)
        except ToolInvocationError as e:
            raise PublishError(
                f"Push of {reference} failed: {e}", transient=False
            ) from e

        output = f"{result.stdout}\n{result.stderr}"
        if not result.succeeded:
            raise PublishError(
                f"Push of {reference} rejected: {result.stderr.strip()}",
                transient=not is_auth_failure(output),
            )

        match = _DIGEST_PATTERN.search(output)
        if not match:
            raise PublishError(
                f"No digest in push output for {reference}", transient=False
            )
        logger.info(f"Pushed {reference} ({match.group(1)})")
        return match.group(1)
