# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Cross-batch comparison and step sweep analysis."""

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import asdict, dataclass
from enum import Enum
from typing import NamedTuple

from pydantic import Field

from llmspeed.common.enums import RunMode
from llmspeed.common.models import LLMSpeedBaseModel, ResultRecord, RunBatch

__all__ = [
    "DEFAULT_PARETO_OBJECTIVES",
    "BatchComparison",
    "ConcurrencyPoint",
    "Objective",
    "OptimizationDirection",
    "StepPerformancePoint",
    "analyze_sweep",
    "analyze_trends",
    "best_concurrency",
    "compare_batches",
    "concurrency_comparison",
    "identify_pareto_optimal",
    "step_performance",
]

# Share of the best round throughput a batch must reach to be a best-concurrency candidate.
TOP_TIER_RATIO = 0.95


class BatchComparison(LLMSpeedBaseModel):
    """Ids of the best batch for each headline metric."""

    batches: tuple[RunBatch, ...] = Field(default=(), repr=False)
    best_latency_batch_id: str
    best_throughput_batch_id: str
    best_round_throughput_batch_id: str
    lowest_error_rate_batch_id: str


def compare_batches(batches: Sequence[RunBatch]) -> BatchComparison:
    """Pick the best batch per metric. Ties keep the earliest batch.

    Raises:
        ValueError: If fewer than 2 batches are given.
    """
    if len(batches) < 2:
        raise ValueError(
            f"Need at least 2 batches to compare, got {len(batches)}."
        )

    best_latency = min(batches, key=lambda b: b.summary.average_latency)
    best_throughput = max(batches, key=lambda b: b.summary.average_throughput)
    best_round = max(batches, key=lambda b: b.summary.average_round_throughput)
    lowest_error = min(batches, key=lambda b: b.summary.error_rate)

    return BatchComparison(
        batches=tuple(batches),
        best_latency_batch_id=best_latency.id,
        best_throughput_batch_id=best_throughput.id,
        best_round_throughput_batch_id=best_round.id,
        lowest_error_rate_batch_id=lowest_error.id,
    )


@dataclass(slots=True)
class ConcurrencyPoint:
    """Headline metrics of one batch, placed on the concurrency axis."""

    batch_id: str
    concurrency: int
    latency: float
    throughput: float
    round_throughput: float
    error_rate: float
    model: str


def concurrency_comparison(batches: Iterable[RunBatch]) -> list[ConcurrencyPoint]:
    """Batches with results as points sorted by configured concurrency.

    ``error_rate`` is expressed as a percentage.
    """
    points = [
        ConcurrencyPoint(
            batch_id=batch.id,
            concurrency=batch.configuration.concurrency,
            latency=batch.summary.average_latency,
            throughput=batch.summary.average_throughput,
            round_throughput=batch.summary.average_round_throughput,
            error_rate=batch.summary.error_rate * 100,
            model=batch.configuration.model,
        )
        for batch in batches
        if batch.results
    ]
    return sorted(points, key=lambda p: p.concurrency)


def best_concurrency(points: Sequence[ConcurrencyPoint]) -> ConcurrencyPoint | None:
    """Lowest-latency point among those within 95% of the best round throughput."""
    if len(points) < 2:
        return None
    top = max(p.round_throughput for p in points)
    top_tier = [p for p in points if p.round_throughput >= top * TOP_TIER_RATIO]
    return min(top_tier, key=lambda p: p.latency, default=None)


@dataclass(slots=True)
class StepPerformancePoint:
    """Averages of one sweep value (concurrency or prompt tokens).

    The ``avg_total_*`` rates are single-stream averages multiplied by the
    step concurrency, an estimate rather than a measured sum.
    """

    x_value: int
    avg_single_output: float
    avg_total_output: float
    avg_single_prefill: float
    avg_total_prefill: float
    avg_ttft: float
    samples: int

    def as_metrics(self) -> dict[str, float]:
        metrics = asdict(self)
        metrics.pop("x_value")
        return metrics


def _step_key(record: ResultRecord, batch: RunBatch, mode: RunMode) -> int | None:
    if mode is RunMode.CONCURRENCY_STEP:
        return record.actual_concurrency or batch.configuration.concurrency
    if mode is RunMode.INPUT_STEP:
        return record.prompt_tokens or record.prompt_length
    return None


def step_performance(
    batches: RunBatch | Iterable[RunBatch], mode: RunMode | None = None
) -> list[StepPerformancePoint]:
    """Per-step averages over successful records of one batch or a whole campaign.

    Args:
        batches: A batch, or every batch of a step campaign.
        mode: Step mode. Defaults to the mode of the first batch's configuration.

    Returns:
        Points sorted by sweep value. Empty for normal-mode batches.
    """
    if isinstance(batches, RunBatch):
        batches = [batches]
    batches = list(batches)
    if not batches:
        return []
    mode = mode or batches[0].configuration.mode
    if not mode.is_step:
        return []

    grouped: dict[int, list[tuple[ResultRecord, RunBatch]]] = defaultdict(list)
    for batch in batches:
        for record in batch.successful_results:
            key = _step_key(record, batch, mode)
            if key:
                grouped[key].append((record, batch))

    points = []
    for key, items in grouped.items():
        n = len(items)
        avg_output = sum(r.output_tokens_per_second for r, _ in items) / n
        avg_prefill = sum(r.prefill_tokens_per_second for r, _ in items) / n
        avg_ttft = sum(r.request_latency for r, _ in items) / n
        first, first_batch = items[0]
        step_concurrency = (
            first.actual_concurrency or first_batch.configuration.concurrency or 1
        )
        points.append(
            StepPerformancePoint(
                x_value=key,
                avg_single_output=avg_output,
                avg_total_output=avg_output * step_concurrency,
                avg_single_prefill=avg_prefill,
                avg_total_prefill=avg_prefill * step_concurrency,
                avg_ttft=avg_ttft,
                samples=n,
            )
        )
    return sorted(points, key=lambda p: p.x_value)


class OptimizationDirection(Enum):
    """Direction of optimization for a metric."""

    MAXIMIZE = "maximize"
    MINIMIZE = "minimize"


class Objective(NamedTuple):
    """An optimization objective over one metric key."""

    metric_key: str
    direction: OptimizationDirection


DEFAULT_PARETO_OBJECTIVES = [
    Objective("avg_total_output", OptimizationDirection.MAXIMIZE),
    Objective("avg_ttft", OptimizationDirection.MINIMIZE),
]


def _dominates(
    candidate: list[float], other: list[float], objectives: list[Objective]
) -> bool:
    strictly_better = False
    for c, o, obj in zip(candidate, other, objectives, strict=True):
        if obj.direction == OptimizationDirection.MAXIMIZE:
            if c < o:
                return False
            strictly_better |= c > o
        else:
            if c > o:
                return False
            strictly_better |= c < o
    return strictly_better


def identify_pareto_optimal(
    per_value_metrics: dict[int, dict[str, float]],
    objectives: list[Objective] | None = None,
) -> list[int]:
    """Sweep values that no other value beats on every objective.

    Args:
        per_value_metrics: Metrics keyed by sweep value.
        objectives: Defaults to max total output rate vs min TTFT.

    Returns:
        Pareto optimal sweep values, ascending.
    """
    if objectives is None:
        objectives = DEFAULT_PARETO_OBJECTIVES

    vectors = {
        value: [metrics[obj.metric_key] for obj in objectives]
        for value, metrics in per_value_metrics.items()
    }
    return sorted(
        value
        for value, vector in vectors.items()
        if not any(
            _dominates(other_vector, vector, objectives)
            for other_value, other_vector in vectors.items()
            if other_value != value
        )
    )


def analyze_trends(
    per_value_metrics: dict[int, dict[str, float]],
    sweep_values: list[int],
    metric_key: str,
) -> dict:
    """Rate of change of a metric along the sweep and where it bends.

    An inflection point is a sweep value where the change flips sign or moves
    by more than half of the previous change.

    Example:
        >>> metrics = {1: {"x": 100}, 2: {"x": 180}, 4: {"x": 270}, 8: {"x": 285}}
        >>> analyze_trends(metrics, [1, 2, 4, 8], "x")
        {'inflection_points': [8], 'rate_of_change': [80, 90, 15]}
    """
    values = [per_value_metrics[v][metric_key] for v in sweep_values]
    rate_of_change = [b - a for a, b in zip(values, values[1:])]

    inflection_points = []
    for i in range(1, len(rate_of_change)):
        prev_rate, curr_rate = rate_of_change[i - 1], rate_of_change[i]
        has_sign_flip = prev_rate * curr_rate < 0
        has_magnitude_change = (
            prev_rate != 0 and abs(curr_rate - prev_rate) > 0.5 * abs(prev_rate)
        )
        if has_sign_flip or has_magnitude_change:
            inflection_points.append(sweep_values[i + 1])

    return {
        "inflection_points": inflection_points,
        "rate_of_change": rate_of_change,
    }


def analyze_sweep(points: Sequence[StepPerformancePoint]) -> dict:
    """Best values, Pareto frontier and trends of a step sweep.

    Returns:
        Dictionary with ``sweep_values``, ``best_configurations``,
        ``pareto_optimal`` and ``trends`` (keyed by metric).
    """
    sweep_values = [p.x_value for p in points]
    per_value = {p.x_value: p.as_metrics() for p in points}

    best_configurations = {}
    if points:
        best_output = max(points, key=lambda p: p.avg_total_output)
        best_ttft = min(points, key=lambda p: p.avg_ttft)
        best_configurations = {
            "best_total_output": {
                "value": best_output.x_value,
                "metric": best_output.avg_total_output,
                "unit": "tokens/sec",
            },
            "best_ttft": {
                "value": best_ttft.x_value,
                "metric": best_ttft.avg_ttft,
                "unit": "ms",
            },
        }

    trends = {}
    if len(sweep_values) > 1:
        for metric_key in ("avg_total_output", "avg_ttft"):
            trends[metric_key] = analyze_trends(per_value, sweep_values, metric_key)

    return {
        "sweep_values": sweep_values,
        "best_configurations": best_configurations,
        "pareto_optimal": identify_pareto_optimal(per_value) if per_value else [],
        "trends": trends,
    }
