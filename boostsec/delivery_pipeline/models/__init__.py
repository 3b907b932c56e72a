"""Data models for pipeline configuration, runs, reports and artifacts."""

from boostsec.delivery_pipeline.models.artifact import Artifact
from boostsec.delivery_pipeline.models.pipeline_config import (
    BuildPublishStageConfig,
    CheckoutStageConfig,
    CommandStageConfig,
    DeployStageConfig,
    PipelineConfig,
    ScanStageConfig,
    StaticAnalysisStageConfig,
)
from boostsec.delivery_pipeline.models.pipeline_run import PipelineRun, StageResult
from boostsec.delivery_pipeline.models.quality_gate import (
    MetricMeasurement,
    MetricThreshold,
    QualityGateVerdict,
)
from boostsec.delivery_pipeline.models.scan_report import Finding, ScanReport
from boostsec.delivery_pipeline.models.trigger import Trigger

__all__ = [
    "Artifact",
    "BuildPublishStageConfig",
    "CheckoutStageConfig",
    "CommandStageConfig",
    "DeployStageConfig",
    "Finding",
    "MetricMeasurement",
    "MetricThreshold",
    "PipelineConfig",
    "PipelineRun",
    "QualityGateVerdict",
    "ScanReport",
    "ScanStageConfig",
    "StageResult",
    "StaticAnalysisStageConfig",
    "Trigger",
]
