# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Display-oriented views derived from controller state."""

from collections.abc import Sequence
from dataclasses import dataclass, field

from llmspeed.common.constants import LIVE_TPS_WINDOW, MAX_LIVE_CHART_POINTS
from llmspeed.common.models import ResultRecord, TelemetrySample

__all__ = [
    "LiveChartPoint",
    "LiveMetrics",
    "compute_live_metrics",
    "format_status",
]


def format_status(
    *,
    complete: bool,
    any_failed: bool,
    step_index: int = 0,
    step_total: int = 0,
    error: str | None = None,
) -> str:
    """Human-readable status line of a run.

    Args:
        complete: Every request has finished.
        any_failed: At least one request failed.
        step_index: One-based position of the run within a campaign.
        step_total: Number of runs in the campaign; the step suffix is only
            added when greater than one.
        error: Terminal error, which takes precedence over everything else.
    """
    if error:
        return f"failed: {error}"
    if complete:
        text = "completed with failures" if any_failed else "completed"
    else:
        text = "in progress (some failed)" if any_failed else "in progress"
    if step_total > 1 and step_index > 0:
        text = f"{text} (step {step_index}/{step_total})"
    return text


@dataclass(slots=True)
class LiveChartPoint:
    index: int
    tps: float
    latency: float


@dataclass(slots=True)
class LiveMetrics:
    """Headline numbers for a live view of the active run."""

    has_telemetry: bool = False
    current_tps: float = 0.0
    average_latency: float = 0.0
    success_rate: float = 100.0
    chart: list[LiveChartPoint] = field(default_factory=list)


def compute_live_metrics(
    results: Sequence[ResultRecord],
    telemetry: Sequence[TelemetrySample] = (),
    chart_points: int = MAX_LIVE_CHART_POINTS,
) -> LiveMetrics:
    """Summarize the retained live streams.

    Current TPS is the latest telemetry instant TPS, else the mean output rate
    of the last few records. Success rate is a percentage and reads 100 before
    any result arrives. Chart indices are one-based positions in ``results``.
    """
    if telemetry:
        current_tps = telemetry[-1].instant_tps
    elif results:
        recent = results[-LIVE_TPS_WINDOW:]
        current_tps = sum(r.output_tokens_per_second for r in recent) / len(recent)
    else:
        current_tps = 0.0

    if not results:
        return LiveMetrics(has_telemetry=bool(telemetry), current_tps=current_tps)

    start = max(len(results) - chart_points, 0)
    return LiveMetrics(
        has_telemetry=bool(telemetry),
        current_tps=current_tps,
        average_latency=sum(r.total_latency for r in results) / len(results),
        success_rate=sum(1 for r in results if r.success) / len(results) * 100,
        chart=[
            LiveChartPoint(
                index=start + i + 1,
                tps=r.output_tokens_per_second,
                latency=r.total_latency,
            )
            for i, r in enumerate(results[start:])
        ],
    )
