# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Run-level summary statistics."""

from collections.abc import Iterable, Sequence

import numpy as np

from llmspeed.common.models import ResultRecord, RoundSummary, RunSummary

__all__ = ["compute_run_summary"]


def _min_avg_max(values: Sequence[float]) -> tuple[float, float, float]:
    if len(values) == 0:
        return 0.0, 0.0, 0.0
    arr = np.asarray(values, dtype=float)
    return float(arr.min()), float(arr.mean()), float(arr.max())


def compute_run_summary(
    results: Sequence[ResultRecord],
    round_summaries: Iterable[RoundSummary] | None = None,
) -> RunSummary:
    """Summarize every record of a run.

    Latency and throughput statistics cover successful records only. Prefill
    and output rate statistics additionally skip non-positive samples, and
    round throughput statistics skip rounds without output throughput.

    Args:
        results: All records of the run, failed ones included.
        round_summaries: Per-round summaries used for round throughput.

    Returns:
        The summary. Every statistic is zero for an empty run.
    """
    if not results:
        return RunSummary()

    ok = [r for r in results if r.success]
    total = len(results)

    min_lat, avg_lat, max_lat = _min_avg_max([r.total_latency for r in ok])
    min_pre, avg_pre, max_pre = _min_avg_max([r.request_latency for r in ok])
    min_out, avg_out, max_out = _min_avg_max([r.output_latency for r in ok])
    min_tp, avg_tp, max_tp = _min_avg_max([r.throughput for r in ok])
    min_pre_tps, avg_pre_tps, max_pre_tps = _min_avg_max(
        [r.prefill_tokens_per_second for r in ok if r.prefill_tokens_per_second > 0]
    )
    min_out_tps, avg_out_tps, max_out_tps = _min_avg_max(
        [r.output_tokens_per_second for r in ok if r.output_tokens_per_second > 0]
    )
    min_round, avg_round, max_round = _min_avg_max(
        [
            s.total_output_tokens_per_second
            for s in round_summaries or ()
            if s.total_output_tokens_per_second > 0
        ]
    )

    return RunSummary(
        total_tests=total,
        successful_tests=len(ok),
        failed_tests=total - len(ok),
        average_latency=avg_lat,
        min_latency=min_lat,
        max_latency=max_lat,
        average_prefill_latency=avg_pre,
        min_prefill_latency=min_pre,
        max_prefill_latency=max_pre,
        average_output_latency=avg_out,
        min_output_latency=min_out,
        max_output_latency=max_out,
        average_prefill_tokens_per_second=avg_pre_tps,
        min_prefill_tokens_per_second=min_pre_tps,
        max_prefill_tokens_per_second=max_pre_tps,
        average_output_tokens_per_second=avg_out_tps,
        min_output_tokens_per_second=min_out_tps,
        max_output_tokens_per_second=max_out_tps,
        average_throughput=avg_tp,
        min_throughput=min_tp,
        max_throughput=max_tp,
        average_round_throughput=avg_round,
        min_round_throughput=min_round,
        max_round_throughput=max_round,
        error_rate=(total - len(ok)) / total,
    )
