"""CLI entry point for the delivery pipeline."""

import asyncio
import json
import logging
import os
import sys
from pathlib import Path

import typer

from boostsec.delivery_pipeline.config_loader import load_pipeline_config, select_stages
from boostsec.delivery_pipeline.errors import ConfigurationError
from boostsec.delivery_pipeline.models.pipeline_run import PipelineRun
from boostsec.delivery_pipeline.models.trigger import Trigger
from boostsec.delivery_pipeline.orchestrator import PipelineOrchestrator
from boostsec.delivery_pipeline.trigger import (
    parse_webhook_payload,
    verify_webhook_signature,
)

# Configure logging - force reconfiguration
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
    force=True,  # Force reconfiguration even if already set up
)
logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_STAGE_FAILED = 1
EXIT_CONFIGURATION_ERROR = 2

app = typer.Typer()


def _fail_configuration(error: Exception) -> typer.Exit:
    logger.error(f"Configuration error: {error}")
    typer.echo(f"Error: {error}", err=True)
    return typer.Exit(code=EXIT_CONFIGURATION_ERROR)


def build_trigger(
    source: str | None,
    ref: str | None,
    commit: str | None,
    image_name: str | None,
    credential_id: str | None,
    webhook_payload: Path | None,
    webhook_signature: str | None,
    webhook_secret_env: str,
) -> Trigger:
    """Build the run trigger from CLI options or a webhook payload file.

    Raises:
        ConfigurationError: If the payload is unreadable or its signature is
            invalid

    """
    if webhook_payload is None:
        return Trigger(
            origin="manual",
            source=source,
            ref=ref,
            commit=commit,
            image_name=image_name,
            credential_id=credential_id,
        )

    try:
        body = webhook_payload.read_bytes()
        payload = json.loads(body)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(
            f"Invalid webhook payload {webhook_payload}: {e}"
        ) from e

    if webhook_signature is not None:
        secret = os.environ.get(webhook_secret_env)
        if not secret:
            raise ConfigurationError(f"Webhook secret {webhook_secret_env} is not set")
        if not verify_webhook_signature(body, webhook_signature, secret):
            raise ConfigurationError("Webhook signature does not match payload")

    if not isinstance(payload, dict):
        raise ConfigurationError("Webhook payload must be a JSON object")
    return parse_webhook_payload(
        payload, image_name=image_name, credential_id=credential_id
    )


def _run_output(run: PipelineRun) -> dict[str, object]:
    return run.model_dump(
        mode="json", exclude={"results": {"__all__": {"stdout", "stderr"}}}
    )


@app.command()
def run(
    config: Path = typer.Option(  # noqa: B008
        ..., help="Path to the pipeline YAML file"
    ),
    stage: list[str] = typer.Option(  # noqa: B008
        [], help="Stage to execute (repeatable); default executes every stage"
    ),
    source: str | None = typer.Option(None, help="Repository URL or local path"),
    ref: str | None = typer.Option(None, help="Branch or tag to check out"),
    commit: str | None = typer.Option(None, help="Commit SHA to check out"),
    image_name: str | None = typer.Option(None, help="Override image repository"),
    credential_id: str | None = typer.Option(None, help="Override registry credential"),
    webhook_payload: Path | None = typer.Option(  # noqa: B008
        None, help="Push event payload (JSON) that triggered the run"
    ),
    webhook_signature: str | None = typer.Option(
        None, help="HMAC-SHA256 signature of the webhook payload"
    ),
    webhook_secret_env: str = typer.Option(
        "PIPELINE_WEBHOOK_SECRET", help="Environment variable holding the secret"
    ),
) -> None:
    """Run the pipeline, or the selected stages of it."""
    logger.info("=" * 80)
    logger.info("Delivery Pipeline - Starting")
    logger.info("=" * 80)
    logger.info(f"Config: {config}")
    logger.info(f"Selected stages: {stage or 'all'}")

    try:
        pipeline_config = load_pipeline_config(config)
        trigger = build_trigger(
            source,
            ref,
            commit,
            image_name,
            credential_id,
            webhook_payload,
            webhook_signature,
            webhook_secret_env,
        )
        orchestrator = PipelineOrchestrator(pipeline_config)
        pipeline_run = asyncio.run(orchestrator.run(trigger, stage))
    except ConfigurationError as e:
        raise _fail_configuration(e)

    typer.echo(json.dumps(_run_output(pipeline_run), indent=2))

    failed = pipeline_run.failed_stage
    if failed is not None:
        logger.error(f"Stage {failed.name} failed: {failed.message}")
        raise typer.Exit(code=EXIT_STAGE_FAILED)


@app.command()
def validate(
    config: Path = typer.Option(  # noqa: B008
        ..., help="Path to the pipeline YAML file"
    ),
    stage: list[str] = typer.Option([], help="Stage selection to check"),  # noqa: B008
) -> None:
    """Validate the pipeline configuration and print the stage plan."""
    try:
        pipeline_config = load_pipeline_config(config)
        selected = select_stages(pipeline_config, stage)
    except ConfigurationError as e:
        raise _fail_configuration(e)

    plan = [
        {
            "name": stage_config.name,
            "kind": stage_config.kind,
            "blocking": stage_config.blocking,
            "timeout": stage_config.timeout,
            "selected": stage_config.name in selected,
        }
        for stage_config in pipeline_config.stages
    ]
    typer.echo(json.dumps({"pipeline": pipeline_config.name, "stages": plan}, indent=2))


if __name__ == "__main__":  # pragma: no cover
    app()
