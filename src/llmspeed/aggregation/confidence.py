# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Confidence statistics across repeated trials of the same configuration."""

import logging
from dataclasses import dataclass
from typing import Any

import numpy as np
from pydantic import BaseModel, Field
from scipy import stats

from llmspeed.common.models import RunBatch, RunSummary

logger = logging.getLogger(__name__)

__all__ = [
    "ConfidenceAggregation",
    "ConfidenceMetric",
    "ConfidenceReport",
]

_COUNT_FIELDS = frozenset({"total_tests", "successful_tests", "failed_tests"})


@dataclass(slots=True)
class ConfidenceMetric:
    """Statistics for a single summary metric across runs.

    Attributes:
        mean: Sample mean
        std: Sample standard deviation (ddof=1)
        min: Minimum value
        max: Maximum value
        cv: Coefficient of variation (std/mean)
        se: Standard error (std/sqrt(n))
        ci_low: Lower bound of confidence interval
        ci_high: Upper bound of confidence interval
        t_critical: t-distribution critical value used for CI
        unit: Unit of measurement (e.g., "ms", "tokens/sec")
    """

    mean: float
    std: float
    min: float
    max: float
    cv: float
    se: float
    ci_low: float
    ci_high: float
    t_critical: float
    unit: str


class ConfidenceReport(BaseModel):
    """Result of aggregating a set of repeated trials."""

    aggregation_type: str = "confidence"
    num_runs: int
    num_successful_runs: int
    failed_runs: list[dict[str, Any]] = Field(default_factory=list)
    metrics: dict[str, ConfidenceMetric] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)


def metric_unit(metric_name: str) -> str:
    """Display unit of a RunSummary field."""
    if metric_name.endswith("latency"):
        return "ms"
    if metric_name.endswith(("tokens_per_second", "throughput")):
        return "tokens/sec"
    if metric_name == "error_rate":
        return "ratio"
    return ""


class ConfidenceAggregation:
    """Mean, spread and t-distribution confidence interval of each summary metric.

    Attributes:
        confidence_level: Confidence level for intervals (default: 0.95)
    """

    def __init__(self, confidence_level: float = 0.95):
        """Initialize ConfidenceAggregation.

        Args:
            confidence_level: Confidence level for intervals (0 < level < 1)

        Raises:
            ValueError: If confidence_level is not between 0 and 1
        """
        if not 0 < confidence_level < 1:
            raise ValueError(
                f"Invalid confidence level: {confidence_level}. "
                "Confidence level must be between 0 and 1 (exclusive). "
                "Common values: 0.90 (90%), 0.95 (95%), 0.99 (99%)."
            )
        self.confidence_level = confidence_level

    def aggregate(self, batches: list[RunBatch]) -> ConfidenceReport:
        """Aggregate the summaries of repeated trials.

        A trial counts as successful when at least one of its requests
        succeeded.

        Raises:
            ValueError: If fewer than 2 trials succeeded.
        """
        successful = [b for b in batches if b.summary.successful_tests > 0]
        failed = [
            {"batch_id": b.id, "error_rate": b.summary.error_rate}
            for b in batches
            if b.summary.successful_tests == 0
        ]

        if len(successful) < 2:
            if not successful:
                raise ValueError(
                    "All trials failed - cannot compute confidence statistics. "
                    f"Total trials: {len(batches)}, Failed trials: {len(failed)}."
                )
            raise ValueError(
                "Insufficient successful trials for confidence intervals. "
                f"Got {len(successful)} successful trial(s), but need at least 2. "
                f"Total trials: {len(batches)}, Failed trials: {len(failed)}."
            )
        if failed:
            logger.warning(
                f"Excluding {len(failed)} trial(s) without successful requests"
            )

        return ConfidenceReport(
            num_runs=len(batches),
            num_successful_runs=len(successful),
            failed_runs=failed,
            metrics=self._aggregate_metrics([b.summary for b in successful]),
            metadata={
                "confidence_level": self.confidence_level,
                "batch_ids": [b.id for b in successful],
            },
        )

    def _aggregate_metrics(
        self, summaries: list[RunSummary]
    ) -> dict[str, ConfidenceMetric]:
        aggregated = {}
        for metric_name in RunSummary.model_fields:
            if metric_name in _COUNT_FIELDS:
                continue
            values = [float(getattr(s, metric_name)) for s in summaries]
            aggregated[metric_name] = self._compute_confidence_stats(
                values, metric_name
            )
        return aggregated

    def _compute_confidence_stats(
        self, values: list[float], metric_name: str
    ) -> ConfidenceMetric:
        n = len(values)
        mean = float(np.mean(values))
        std = float(np.std(values, ddof=1))

        # Ratio, not percentage
        cv = std / mean if mean != 0 else float("inf")
        se = std / float(np.sqrt(n))

        alpha = 1 - self.confidence_level
        t_critical = float(stats.t.ppf(1 - alpha / 2, n - 1))
        margin = t_critical * se

        return ConfidenceMetric(
            mean=mean,
            std=std,
            min=float(min(values)),
            max=float(max(values)),
            cv=cv,
            se=se,
            ci_low=mean - margin,
            ci_high=mean + margin,
            t_critical=t_critical,
            unit=metric_unit(metric_name),
        )
