"""Models for vulnerability and dependency scan reports."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Severity = Literal["critical", "high", "medium", "low", "unknown"]

SEVERITY_LEVELS: tuple[Severity, ...] = ("critical", "high", "medium", "low", "unknown")

SEVERITY_RANK: dict[Severity, int] = {
    "critical": 4,
    "high": 3,
    "medium": 2,
    "low": 1,
    "unknown": 0,
}


class Finding(BaseModel):
    """A single finding reported by a scanner."""

    model_config = ConfigDict(frozen=True)

    severity: Severity = Field(..., description="Normalized severity level")
    finding_id: str = Field(..., description="Scanner identifier (e.g., CVE id)")
    description: str = Field(default="", description="Short finding description")


class ScanReport(BaseModel):
    """Unordered set of findings produced by one scan stage."""

    model_config = ConfigDict(frozen=True)

    source: str = Field(..., description="Stage or file that produced the report")
    findings: frozenset[Finding] = Field(
        default_factory=frozenset, description="Findings in the report"
    )

    def count(self, severity: Severity) -> int:
        """Return the number of findings with the given severity."""
        return sum(1 for finding in self.findings if finding.severity == severity)
