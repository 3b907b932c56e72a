"""Tests for pipeline run and stage result models."""

import pytest

from boostsec.delivery_pipeline.models.pipeline_run import PipelineRun, StageResult


def test_stage_result_defaults_to_pending() -> None:
    """StageResult starts pending with no output."""
    result = StageResult(name="build")
    assert result.status == "pending"
    assert result.blocking is True
    assert result.artifacts == []
    assert result.retries == 0
    assert result.is_terminal is False


def test_stage_result_pass_transition() -> None:
    """StageResult moves pending -> running -> passed and records duration."""
    result = StageResult(name="build")
    result.start()
    assert result.status == "running"
    assert result.started_at is not None

    result.passed("done")
    assert result.status == "passed"
    assert result.message == "done"
    assert result.finished_at is not None
    assert result.duration >= 0.0
    assert result.is_terminal is True


def test_stage_result_fail_transition() -> None:
    """StageResult records the error kind when failing."""
    result = StageResult(name="analyze")
    result.start()
    result.failed("gate_violation", "bugs violated")
    assert result.status == "failed"
    assert result.error_kind == "gate_violation"
    assert result.message == "bugs violated"


def test_stage_result_skip_from_pending() -> None:
    """StageResult can be skipped without running."""
    result = StageResult(name="deploy")
    result.skip("Not selected for this run")
    assert result.status == "skipped"


@pytest.mark.parametrize("final", ["passed", "failed", "skipped"])
def test_stage_result_status_is_monotonic(final: str) -> None:
    """StageResult rejects any transition out of a terminal status."""
    result = StageResult(name="build")
    result.start()
    if final == "passed":
        result.passed()
    elif final == "failed":
        result.failed("build", "boom")
    else:
        result.skip()

    with pytest.raises(ValueError, match="cannot move"):
        result.start()
    with pytest.raises(ValueError, match="cannot move"):
        result.passed()


def test_stage_result_cannot_pass_without_running() -> None:
    """StageResult rejects pending -> passed."""
    result = StageResult(name="build")
    with pytest.raises(ValueError):
        result.passed()


def test_pipeline_run_records_in_order() -> None:
    """PipelineRun keeps results in execution order."""
    run = PipelineRun(run_id="r1", pipeline="app")
    run.record(StageResult(name="checkout"))
    run.record(StageResult(name="build"))
    assert [r.name for r in run.results] == ["checkout", "build"]
    assert run.result_for("build") is run.results[1]
    assert run.result_for("deploy") is None


def test_pipeline_run_rejects_duplicate_stage() -> None:
    """PipelineRun never holds two results for the same stage."""
    run = PipelineRun(run_id="r1", pipeline="app")
    run.record(StageResult(name="build"))
    with pytest.raises(ValueError, match="already has a result"):
        run.record(StageResult(name="build"))


def test_pipeline_run_is_immutable_once_terminal() -> None:
    """PipelineRun rejects new results and status changes after finishing."""
    run = PipelineRun(run_id="r1", pipeline="app")
    run.finish("success")
    assert run.is_terminal is True
    assert run.finished_at is not None

    with pytest.raises(ValueError):
        run.record(StageResult(name="late"))
    with pytest.raises(ValueError):
        run.finish("aborted")


def test_pipeline_run_failed_stage_ignores_non_blocking() -> None:
    """failed_stage returns the first failed blocking stage only."""
    run = PipelineRun(run_id="r1", pipeline="app")
    advisory = StageResult(name="audit", blocking=False)
    advisory.start()
    advisory.failed("tool_invocation", "exit 1")
    run.record(advisory)
    assert run.failed_stage is None

    gate = StageResult(name="analyze")
    gate.start()
    gate.failed("gate_violation", "bugs")
    run.record(gate)
    assert run.failed_stage is gate
