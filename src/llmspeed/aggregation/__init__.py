# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Aggregation of result records and run batches."""

from llmspeed.aggregation.comparison import (
    DEFAULT_PARETO_OBJECTIVES,
    BatchComparison,
    ConcurrencyPoint,
    Objective,
    OptimizationDirection,
    StepPerformancePoint,
    analyze_sweep,
    analyze_trends,
    best_concurrency,
    compare_batches,
    concurrency_comparison,
    identify_pareto_optimal,
    step_performance,
)
from llmspeed.aggregation.confidence import (
    ConfidenceAggregation,
    ConfidenceMetric,
    ConfidenceReport,
)
from llmspeed.aggregation.rounds import aggregate_rounds, group_key
from llmspeed.aggregation.summary import compute_run_summary

__all__ = [
    "DEFAULT_PARETO_OBJECTIVES",
    "BatchComparison",
    "ConcurrencyPoint",
    "ConfidenceAggregation",
    "ConfidenceMetric",
    "ConfidenceReport",
    "Objective",
    "OptimizationDirection",
    "StepPerformancePoint",
    "aggregate_rounds",
    "analyze_sweep",
    "analyze_trends",
    "best_concurrency",
    "compare_batches",
    "compute_run_summary",
    "concurrency_comparison",
    "group_key",
    "identify_pareto_optimal",
    "step_performance",
]
