"""Build and publish stage producing the run's artifact."""

import asyncio

from boostsec.delivery_pipeline.context import RunContext
from boostsec.delivery_pipeline.errors import ConfigurationError
from boostsec.delivery_pipeline.models.pipeline_config import BuildPublishStageConfig
from boostsec.delivery_pipeline.publisher import (
    ArtifactPublisher,
    ImageBuilder,
    content_hash_tag,
)
from boostsec.delivery_pipeline.registry import ContainerRegistry
from boostsec.delivery_pipeline.stages.base import Stage, StageOutcome


class BuildPublishStage(Stage):
    """Builds the container image and pushes it to the registry."""

    config: BuildPublishStageConfig

    def __init__(self, config: BuildPublishStageConfig) -> None:
        """Initialize stage from its configuration."""
        super().__init__(config)

    async def resolve_tag(self, context: RunContext) -> str:
        """Return the version tag for the configured strategy."""
        strategy = self.config.tag_strategy
        if strategy == "fixed":
            return self.config.tag or ""
        if strategy == "commit":
            if not context.workspace.commit:
                raise ConfigurationError(
                    "tag_strategy 'commit' requires a git checkout"
                )
            return context.workspace.commit[:12]
        if strategy == "content-hash":
            return await asyncio.to_thread(
                content_hash_tag, context.workspace.path / self.config.context
            )
        return context.run_id

    async def execute(self, context: RunContext) -> StageOutcome:
        """Build once, push with retries and record the artifact.

        Raises:
            BuildError: If the build fails
            PublishError: If the image cannot be pushed

        """
        registry_config = context.config.registry
        if registry_config is None:
            raise ConfigurationError("build-publish stage requires a registry section")

        repository = context.trigger.image_name or registry_config.repository
        image = f"{registry_config.host}/{repository}"
        tag = await self.resolve_tag(context)

        credential_name = context.trigger.credential_id or registry_config.credential
        credential = context.credential(credential_name) if credential_name else None

        publisher = ArtifactPublisher(
            ImageBuilder(context.invoker),
            ContainerRegistry(registry_config.host, context.invoker),
            push_retries=registry_config.push_retries,
            backoff_seconds=registry_config.backoff_seconds,
        )
        outcome = await publisher.publish(
            context.workspace.path,
            image,
            tag,
            context.run_id,
            dockerfile=self.config.dockerfile,
            context=self.config.context,
            build_args=self.config.build_args,
            credential=credential,
        )
        context.artifacts.append(outcome.artifact)

        return StageOutcome(
            retries=outcome.retries,
            message=f"Published {outcome.artifact.reference}",
            details={
                "image": image,
                "tag": tag,
                "digest": outcome.artifact.digest,
            },
        )
