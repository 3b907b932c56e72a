"""Models for quality gate thresholds and verdicts."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Operator = Literal[">=", ">", "<=", "<", "==", "!="]


class MetricThreshold(BaseModel):
    """Threshold applied to a single named metric."""

    model_config = ConfigDict(frozen=True)

    metric: str = Field(..., description="Metric name (e.g., coverage)")
    operator: Operator = Field(..., description="Comparison operator")
    limit: float = Field(..., description="Value the metric is compared against")


class MetricMeasurement(BaseModel):
    """Measured value of a metric compared against its threshold."""

    model_config = ConfigDict(frozen=True)

    metric: str
    operator: Operator
    limit: float
    measured: float | None = Field(
        default=None, description="Measured value, None when the metric is missing"
    )
    passed: bool


class QualityGateVerdict(BaseModel):
    """Pass/fail decision derived from metric thresholds."""

    model_config = ConfigDict(frozen=True)

    passed: bool = Field(..., description="True iff every threshold holds")
    measurements: list[MetricMeasurement] = Field(default_factory=list)
    violated: list[str] = Field(
        default_factory=list, description="Violated metric names in threshold order"
    )
