"""Parse scanner reports and aggregate findings by severity."""

import json
import logging
import xml.etree.ElementTree as ET
from collections.abc import Iterable, Iterator, Mapping
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from boostsec.delivery_pipeline.errors import ReportParseError
from boostsec.delivery_pipeline.models.scan_report import (
    SEVERITY_LEVELS,
    SEVERITY_RANK,
    Finding,
    ScanReport,
    Severity,
)

logger = logging.getLogger(__name__)

ReportFormat = Literal["auto", "trivy", "dependency-check", "generic"]

_SEVERITY_ALIASES: dict[str, Severity] = {
    "critical": "critical",
    "high": "high",
    "medium": "medium",
    "moderate": "medium",
    "low": "low",
    "negligible": "low",
    "info": "low",
    "informational": "low",
}


def normalize_severity(value: object) -> Severity:
    """Map a scanner severity label onto the normalized levels."""
    if not isinstance(value, str):
        return "unknown"
    return _SEVERITY_ALIASES.get(value.strip().lower(), "unknown")


class SeveritySummary(BaseModel):
    """Number of findings per severity level."""

    counts: dict[Severity, int] = Field(
        default_factory=lambda: {level: 0 for level in SEVERITY_LEVELS}
    )

    @classmethod
    def from_report(cls, report: ScanReport) -> "SeveritySummary":
        """Count the findings of a single report."""
        return cls(counts={level: report.count(level) for level in SEVERITY_LEVELS})

    def merge(self, other: "SeveritySummary") -> "SeveritySummary":
        """Return a summary whose counts are the sums of both summaries."""
        return SeveritySummary(
            counts={
                level: self.counts.get(level, 0) + other.counts.get(level, 0)
                for level in SEVERITY_LEVELS
            }
        )

    @property
    def total(self) -> int:
        """Return the number of findings across all levels."""
        return sum(self.counts.values())

    def describe(self) -> str:
        """Return a human readable one-line summary."""
        if not self.total:
            return "no findings"
        parts = [
            f"{self.counts[level]} {level}"
            for level in SEVERITY_LEVELS
            if self.counts.get(level)
        ]
        return ", ".join(parts)


def summarize(reports: Iterable[ScanReport]) -> SeveritySummary:
    """Merge any number of reports into one severity summary."""
    summary = SeveritySummary()
    for report in reports:
        summary = summary.merge(SeveritySummary.from_report(report))
    return summary


def has_blocking_findings(report: ScanReport, threshold: Severity) -> bool:
    """Return True if any finding is at or above the threshold severity."""
    limit = SEVERITY_RANK[threshold]
    return any(SEVERITY_RANK[finding.severity] >= limit for finding in report.findings)


def _finding(
    severity: object, finding_id: object, description: object
) -> Finding | None:
    if not isinstance(finding_id, str) or not finding_id:
        return None
    return Finding(
        severity=normalize_severity(severity),
        finding_id=finding_id,
        description=description if isinstance(description, str) else "",
    )


def _trivy_findings(data: Mapping[str, object]) -> Iterator[Finding | None]:
    results = data.get("Results")
    for result in results if isinstance(results, list) else []:
        if not isinstance(result, dict):
            continue
        for key, id_field in (
            ("Vulnerabilities", "VulnerabilityID"),
            ("Misconfigurations", "ID"),
        ):
            entries = result.get(key)
            for entry in entries if isinstance(entries, list) else []:
                if isinstance(entry, dict):
                    yield _finding(
                        entry.get("Severity"),
                        entry.get(id_field),
                        entry.get("Title") or entry.get("Description"),
                    )


def _dependency_check_findings(data: Mapping[str, object]) -> Iterator[Finding | None]:
    dependencies = data.get("dependencies")
    for dependency in dependencies if isinstance(dependencies, list) else []:
        if not isinstance(dependency, dict):
            continue
        vulnerabilities = dependency.get("vulnerabilities")
        for entry in vulnerabilities if isinstance(vulnerabilities, list) else []:
            if isinstance(entry, dict):
                yield _finding(
                    entry.get("severity"), entry.get("name"), entry.get("description")
                )


def _generic_findings(data: Mapping[str, object]) -> Iterator[Finding | None]:
    findings = data.get("findings")
    for entry in findings if isinstance(findings, list) else []:
        if isinstance(entry, dict):
            yield _finding(
                entry.get("severity"),
                entry.get("id") or entry.get("finding_id"),
                entry.get("description"),
            )


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _dependency_check_xml_findings(root: ET.Element) -> Iterator[Finding | None]:
    for element in root.iter():
        if _local_name(element.tag) != "vulnerability":
            continue
        fields = {
            _local_name(child.tag): (child.text or "").strip() for child in element
        }
        yield _finding(
            fields.get("severity"), fields.get("name"), fields.get("description")
        )


def _detect_format(data: Mapping[str, object]) -> ReportFormat:
    if "Results" in data:
        return "trivy"
    if "dependencies" in data:
        return "dependency-check"
    if "findings" in data:
        return "generic"
    raise ValueError("unrecognized report structure")


def parse_report(
    path: Path, report_format: ReportFormat = "auto", source: str | None = None
) -> ScanReport:
    """Parse a scanner report file into a ScanReport.

    Unknown fields are ignored and findings without an identifier are dropped.

    Args:
        path: Report file (JSON, or XML for dependency-check)
        report_format: Report format, detected from the content when "auto"
        source: Name recorded as the report source, defaults to the file name

    Raises:
        ReportParseError: If the file is missing or cannot be parsed

    """
    if not path.exists():
        raise ReportParseError(f"Report file not found: {path}")

    findings: Iterable[Finding | None]
    try:
        text = path.read_text()
        if text.lstrip().startswith("<"):
            if report_format not in {"auto", "dependency-check"}:
                raise ValueError(f"XML is not supported for {report_format} reports")
            findings = list(_dependency_check_xml_findings(ET.fromstring(text)))
        else:
            data = json.loads(text)
            if not isinstance(data, dict):
                raise ValueError("report must be a JSON object")
            fmt = _detect_format(data) if report_format == "auto" else report_format
            parser = {
                "trivy": _trivy_findings,
                "dependency-check": _dependency_check_findings,
                "generic": _generic_findings,
            }[fmt]
            findings = list(parser(data))
    except (ValueError, ET.ParseError) as e:
        raise ReportParseError(f"Invalid report {path}: {e}") from e

    report = ScanReport(
        source=source or path.name,
        findings=frozenset(finding for finding in findings if finding is not None),
    )
    logger.info(f"Parsed {len(report.findings)} findings from {path.name}")
    return report


def merge_reports(source: str, reports: Iterable[ScanReport]) -> ScanReport:
    """Combine the findings of several reports into a new report."""
    findings: frozenset[Finding] = frozenset()
    for report in reports:
        findings = findings | report.findings
    return ScanReport(source=source, findings=findings)
