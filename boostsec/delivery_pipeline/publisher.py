"""Build container images and publish them to a registry."""

import asyncio
import hashlib
import logging
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, Field

from boostsec.delivery_pipeline.context import Credential
from boostsec.delivery_pipeline.errors import (
    BuildError,
    PublishError,
    ToolInvocationError,
)
from boostsec.delivery_pipeline.invoker import ToolInvoker
from boostsec.delivery_pipeline.models.artifact import Artifact
from boostsec.delivery_pipeline.registry import ContainerRegistry

logger = logging.getLogger(__name__)


class PublishOutcome(BaseModel):
    """Published artifact and the number of push retries it took."""

    artifact: Artifact
    retries: int = Field(default=0, description="Publish attempts beyond the first")


def content_hash_tag(context_dir: Path, length: int = 12) -> str:
    """Return a tag derived from the contents of the build context."""
    digest = hashlib.sha256()
    for path in sorted(context_dir.rglob("*")):
        relative = path.relative_to(context_dir)
        if not path.is_file() or ".git" in relative.parts:
            continue
        digest.update(relative.as_posix().encode())
        digest.update(path.read_bytes())
    return digest.hexdigest()[:length]


class ImageBuilder:
    """Builds container images with the docker CLI."""

    def __init__(self, invoker: ToolInvoker | None = None) -> None:
        """Initialize builder."""
        self.invoker = invoker or ToolInvoker()

    async def build(
        self,
        workdir: Path,
        image: str,
        tag: str,
        dockerfile: str = "Dockerfile",
        context: str = ".",
        build_args: Mapping[str, str] | None = None,
    ) -> None:
        """Build image:tag from the workspace.

        Raises:
            BuildError: If the builder cannot start or exits non-zero

        """
        command = ["docker", "build", "-f", dockerfile, "-t", f"{image}:{tag}"]
        for key, value in (build_args or {}).items():
            command += ["--build-arg", f"{key}={value}"]
        command.append(context)

        try:
            result = await self.invoker.invoke(command, workdir)
        except ToolInvocationError as e:
            raise BuildError(f"Build of {image}:{tag} could not start: {e}") from e

        if not result.succeeded:
            raise BuildError(
                f"Build of {image}:{tag} failed with exit code {result.exit_code}: "
                f"{result.stderr.strip()[-500:]}"
            )
        logger.info(f"Built {image}:{tag}")


class ArtifactPublisher:
    """Builds an artifact once and pushes it with retries."""

    def __init__(
        self,
        builder: ImageBuilder,
        registry: ContainerRegistry,
        push_retries: int = 3,
        backoff_seconds: float = 2.0,
    ) -> None:
        """Initialize publisher with its builder, registry and retry policy."""
        self.builder = builder
        self.registry = registry
        self.push_retries = push_retries
        self.backoff_seconds = backoff_seconds

    async def publish(
        self,
        workdir: Path,
        image: str,
        tag: str,
        run_id: str,
        dockerfile: str = "Dockerfile",
        context: str = ".",
        build_args: Mapping[str, str] | None = None,
        credential: Credential | None = None,
    ) -> PublishOutcome:
        """Build, then log in and push, backing off on transient failures.

        The build is never retried. A successful login is not repeated.

        Raises:
            BuildError: If the build fails
            PublishError: If login or push fails permanently or after every retry

        """
        await self.builder.build(workdir, image, tag, dockerfile, context, build_args)

        logged_in = False
        retries = 0
        while True:
            try:
                if credential is not None and not logged_in:
                    await self.registry.login(credential, workdir)
                    logged_in = True
                digest = await self.registry.push(image, tag, workdir)
                break
            except PublishError as e:
                if not e.transient or retries >= self.push_retries:
                    logger.error(
                        f"Publishing {image}:{tag} failed after {retries} retries"
                    )
                    raise
                delay = self.backoff_seconds * 2**retries
                retries += 1
                logger.warning(
                    f"Publish attempt {retries} failed: {e}. Retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

        artifact = Artifact(name=image, tag=tag, digest=digest, run_id=run_id)
        return PublishOutcome(artifact=artifact, retries=retries)
