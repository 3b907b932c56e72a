"""Tests for scan report and artifact models."""

import pytest
from pydantic import ValidationError

from boostsec.delivery_pipeline.models.artifact import Artifact
from boostsec.delivery_pipeline.models.scan_report import Finding, ScanReport


def test_scan_report_deduplicates_findings() -> None:
    """ScanReport holds findings as a set."""
    finding = Finding(severity="high", finding_id="CVE-2024-0001")
    report = ScanReport(
        source="audit",
        findings=frozenset(
            [finding, Finding(severity="high", finding_id="CVE-2024-0001")]
        ),
    )
    assert len(report.findings) == 1
    assert report.count("high") == 1
    assert report.count("critical") == 0


def test_scan_report_is_frozen() -> None:
    """ScanReport cannot be mutated after creation."""
    report = ScanReport(source="audit")
    with pytest.raises(ValidationError):
        report.source = "other"  # type: ignore[misc]


def test_finding_rejects_unknown_severity() -> None:
    """Finding only accepts normalized severities."""
    with pytest.raises(ValidationError):
        Finding(severity="severe", finding_id="X")  # type: ignore[arg-type]


def test_artifact_references() -> None:
    """Artifact exposes tagged and digest-pinned references."""
    artifact = Artifact(
        name="docker.io/org/app", tag="abc123", digest="sha256:ff", run_id="r1"
    )
    assert artifact.reference == "docker.io/org/app:abc123"
    assert artifact.pinned_reference == "docker.io/org/app@sha256:ff"
