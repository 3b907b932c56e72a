"""Tests for CLI entry point."""

import hashlib
import hmac
import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from typer.testing import CliRunner, Result

from boostsec.delivery_pipeline.cli import app
from boostsec.delivery_pipeline.models.pipeline_run import PipelineRun, StageResult
from boostsec.delivery_pipeline.models.trigger import Trigger

runner = CliRunner()

PIPELINE_YAML = """
version: "1.0"
name: sample-app
source:
  url: https://github.com/example/sample-app.git
stages:
  - name: checkout
    kind: checkout
  - name: audit
    kind: dependency-audit
    blocking: false
    command: [dependency-check.sh, --scan, .]
    report_files: [dependency-check-report.json]
  - name: test
    kind: command
    command: [make, test]
    timeout: 5m
"""


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    """Write a pipeline config."""
    path = tmp_path / "pipeline.yaml"
    path.write_text(PIPELINE_YAML)
    return path


def _run(*outcomes: tuple[str, str, bool]) -> PipelineRun:
    run = PipelineRun(run_id="run-1", pipeline="sample-app")
    for name, status, blocking in outcomes:
        result = StageResult(name=name, blocking=blocking, stdout="noisy output")
        result.start()
        if status == "passed":
            result.passed()
        else:
            result.failed("tool_invocation", f"{name} exited with code 1")
        run.record(result)
    has_blocking = any(s == "failed" and b for _, s, b in outcomes)
    has_failure = any(s == "failed" for _, s, _ in outcomes)
    run.finish("aborted" if has_blocking else "failed" if has_failure else "success")
    return run


def _invoke_run(
    config_path: Path, run: PipelineRun, *args: str
) -> tuple[Result, AsyncMock]:
    mock_orchestrator = AsyncMock()
    mock_orchestrator.run = AsyncMock(return_value=run)
    with patch(
        "boostsec.delivery_pipeline.cli.PipelineOrchestrator",
        return_value=mock_orchestrator,
    ):
        result = runner.invoke(app, ["run", "--config", str(config_path), *args])
    return result, mock_orchestrator


def test_run_success(config_path: Path) -> None:
    """run prints the run as JSON and exits 0 when every stage passes."""
    result, orchestrator = _invoke_run(
        config_path, _run(("checkout", "passed", True), ("test", "passed", True))
    )

    assert result.exit_code == 0
    output = json.loads(result.stdout)
    assert output["status"] == "success"
    assert [r["name"] for r in output["results"]] == ["checkout", "test"]
    assert "stdout" not in output["results"][0]

    trigger, stages = orchestrator.run.call_args.args
    assert trigger.origin == "manual"
    assert list(stages) == []


def test_run_blocking_failure_exits_1(config_path: Path) -> None:
    """run exits 1 when a blocking stage failed."""
    result, _ = _invoke_run(
        config_path, _run(("checkout", "passed", True), ("test", "failed", True))
    )

    assert result.exit_code == 1
    assert json.loads(result.stdout)["status"] == "aborted"


def test_run_non_blocking_failure_exits_0(config_path: Path) -> None:
    """Failures of non-blocking stages alone do not fail the command."""
    result, _ = _invoke_run(
        config_path, _run(("audit", "failed", False), ("test", "passed", True))
    )

    assert result.exit_code == 0
    assert json.loads(result.stdout)["status"] == "failed"


def test_run_passes_options(config_path: Path) -> None:
    """Trigger options and stage selection reach the orchestrator."""
    _, orchestrator = _invoke_run(
        config_path,
        _run(("test", "passed", True)),
        "--stage",
        "checkout",
        "--stage",
        "test",
        "--ref",
        "release",
        "--commit",
        "abc123",
        "--image-name",
        "org/preview",
    )

    trigger, stages = orchestrator.run.call_args.args
    assert trigger == Trigger(
        origin="manual", ref="release", commit="abc123", image_name="org/preview"
    )
    assert list(stages) == ["checkout", "test"]


def test_run_missing_config_exits_2(tmp_path: Path) -> None:
    """A missing config file is a configuration error."""
    result = runner.invoke(app, ["run", "--config", str(tmp_path / "missing.yaml")])

    assert result.exit_code == 2
    assert "Pipeline config not found" in result.output


def test_run_unknown_stage_exits_2(config_path: Path) -> None:
    """Selecting an unknown stage exits 2 without running anything."""
    result = runner.invoke(
        app,
        ["run", "--config", str(config_path), "--stage", "deploy"],
    )

    assert result.exit_code == 2
    assert "Unknown stages selected" in result.output


def test_run_from_signed_webhook(
    config_path: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """A signed webhook payload becomes the run trigger."""
    body = json.dumps(
        {
            "ref": "refs/heads/feature",
            "after": "deadbeef",
            "repository": {"clone_url": "https://github.com/example/fork.git"},
        }
    ).encode()
    payload_path = tmp_path / "event.json"
    payload_path.write_bytes(body)
    signature = "sha256=" + hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()
    monkeypatch.setenv("PIPELINE_WEBHOOK_SECRET", "s3cret")

    result, orchestrator = _invoke_run(
        config_path,
        _run(("checkout", "passed", True)),
        "--webhook-payload",
        str(payload_path),
        "--webhook-signature",
        signature,
    )

    assert result.exit_code == 0
    trigger = orchestrator.run.call_args.args[0]
    assert trigger.origin == "webhook"
    assert trigger.ref == "feature"
    assert trigger.commit == "deadbeef"
    assert trigger.source == "https://github.com/example/fork.git"


@pytest.mark.parametrize("signature", ["sha256=" + "0" * 64, "sha256=é"])
def test_run_rejects_bad_webhook_signature(
    config_path: Path,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    signature: str,
) -> None:
    """A signature mismatch exits 2."""
    payload_path = tmp_path / "event.json"
    payload_path.write_text(json.dumps({"ref": "main"}))
    monkeypatch.setenv("PIPELINE_WEBHOOK_SECRET", "s3cret")

    result, orchestrator = _invoke_run(
        config_path,
        _run(("checkout", "passed", True)),
        "--webhook-payload",
        str(payload_path),
        "--webhook-signature",
        signature,
    )

    assert result.exit_code == 2
    assert "does not match" in result.output
    orchestrator.run.assert_not_called()


def test_validate_prints_stage_plan(config_path: Path) -> None:
    """validate prints every stage with its selection state."""
    result = runner.invoke(
        app, ["validate", "--config", str(config_path), "--stage", "test"]
    )

    assert result.exit_code == 0
    output = json.loads(result.stdout)
    assert output["pipeline"] == "sample-app"
    assert output["stages"] == [
        {
            "name": "checkout",
            "kind": "checkout",
            "blocking": True,
            "timeout": "10m",
            "selected": False,
        },
        {
            "name": "audit",
            "kind": "dependency-audit",
            "blocking": False,
            "timeout": "10m",
            "selected": False,
        },
        {
            "name": "test",
            "kind": "command",
            "blocking": True,
            "timeout": "5m",
            "selected": True,
        },
    ]


def test_validate_invalid_config(tmp_path: Path) -> None:
    """validate exits 2 on an invalid config."""
    path = tmp_path / "pipeline.yaml"
    path.write_text("version: '1.0'\nname: app\nstages: []\n")

    result = runner.invoke(app, ["validate", "--config", str(path)])

    assert result.exit_code == 2
    assert "Invalid pipeline config schema" in result.output
