"""Quality gate evaluation over code-quality metrics."""

import asyncio
import json
import logging
import operator
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path

import aiohttp

from boostsec.delivery_pipeline.errors import ReportParseError, ToolInvocationError
from boostsec.delivery_pipeline.models.quality_gate import (
    MetricMeasurement,
    MetricThreshold,
    QualityGateVerdict,
)

logger = logging.getLogger(__name__)

_OPERATORS: dict[str, Callable[[float, float], bool]] = {
    ">=": operator.ge,
    ">": operator.gt,
    "<=": operator.le,
    "<": operator.lt,
    "==": operator.eq,
    "!=": operator.ne,
}


def evaluate_quality_gate(
    metrics: Mapping[str, float], thresholds: Sequence[MetricThreshold]
) -> QualityGateVerdict:
    """Compare measured metrics against thresholds.

    A metric missing from ``metrics`` violates its threshold.

    Args:
        metrics: Measured value per metric name
        thresholds: Thresholds to apply, in reporting order

    Returns:
        Verdict that passes iff every threshold holds

    """
    measurements: list[MetricMeasurement] = []
    violated: list[str] = []

    for threshold in thresholds:
        measured = metrics.get(threshold.metric)
        holds = measured is not None and _OPERATORS[threshold.operator](
            measured, threshold.limit
        )
        measurements.append(
            MetricMeasurement(
                metric=threshold.metric,
                operator=threshold.operator,
                limit=threshold.limit,
                measured=measured,
                passed=holds,
            )
        )
        if not holds:
            violated.append(threshold.metric)

    return QualityGateVerdict(
        passed=not violated, measurements=measurements, violated=violated
    )


def _coerce_metrics(data: object) -> dict[str, float]:
    """Extract numeric metrics from flat or measures-style JSON."""
    if not isinstance(data, dict):
        raise ValueError("metrics document must be a JSON object")

    component = data.get("component")
    if isinstance(component, dict) and isinstance(component.get("measures"), list):
        entries = component["measures"]
        pairs = [
            (entry.get("metric"), entry.get("value"))
            for entry in entries
            if isinstance(entry, dict)
        ]
    else:
        pairs = list(data.items())

    metrics: dict[str, float] = {}
    for name, value in pairs:
        if not isinstance(name, str):
            continue
        try:
            metrics[name] = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            logger.debug(f"Ignoring non-numeric metric {name}={value!r}")
    return metrics


def parse_metrics_file(path: Path) -> dict[str, float]:
    """Read metrics from a JSON file.

    Accepts ``{"coverage": 85}`` as well as the measures API shape
    ``{"component": {"measures": [{"metric": "coverage", "value": "85"}]}}``.
    Non-numeric values are ignored.

    Raises:
        ReportParseError: If the file is missing or not a JSON object

    """
    if not path.exists():
        raise ReportParseError(f"Metrics file not found: {path}")
    try:
        return _coerce_metrics(json.loads(path.read_text()))
    except ValueError as e:
        raise ReportParseError(f"Invalid metrics file {path}: {e}") from e


async def fetch_server_metrics(
    server_url: str,
    project_key: str,
    metric_keys: Sequence[str],
    token: str | None = None,
    timeout: float = 30,
) -> dict[str, float]:
    """Fetch measures for a project from a code-quality server.

    Raises:
        ToolInvocationError: If the server is unreachable, too slow or does
            not answer with 200

    """
    url = f"{server_url.rstrip('/')}/api/measures/component"
    params = {"component": project_key, "metricKeys": ",".join(metric_keys)}
    auth = aiohttp.BasicAuth(token, "") if token else None

    try:
        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=timeout)
        ) as session:
            async with session.get(url, params=params, auth=auth) as response:
                if response.status != 200:
                    text = await response.text()
                    raise ToolInvocationError(
                        f"Failed to fetch metrics: {response.status} {text}"
                    )
                data: Mapping[str, object] = await response.json()
    except aiohttp.ClientError as e:
        raise ToolInvocationError(
            f"Metrics server {server_url} unreachable: {e}"
        ) from e
    except asyncio.TimeoutError as e:
        raise ToolInvocationError(
            f"Metrics server {server_url} did not answer within {timeout} seconds"
        ) from e

    return _coerce_metrics(data)
