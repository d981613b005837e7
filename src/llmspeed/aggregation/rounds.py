# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Per-round and per-step aggregation of result records."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from llmspeed.common.enums import RunMode
from llmspeed.common.exceptions import AggregationError
from llmspeed.common.models import ResultRecord, RoundSummary

logger = logging.getLogger(__name__)

__all__ = [
    "aggregate_rounds",
    "group_key",
]


def group_key(
    record: ResultRecord, index: int, mode: RunMode, concurrency_hint: int
) -> int:
    """Return the group a record belongs to.

    - normal: the stamped round number, else ``index // concurrency + 1``
    - concurrency_step: the stamped concurrency, else the hint
    - input_step: the reported prompt tokens, else the configured prompt length

    Raises:
        AggregationError: If no positive key can be derived.
    """
    match mode:
        case RunMode.NORMAL:
            if record.round_number:
                key = record.round_number
            elif concurrency_hint > 0:
                key = index // concurrency_hint + 1
            else:
                key = None
        case RunMode.CONCURRENCY_STEP:
            key = record.actual_concurrency or concurrency_hint
        case RunMode.INPUT_STEP:
            key = record.prompt_tokens or record.prompt_length
        case _:
            raise AggregationError(f"Unsupported run mode: {mode!r}")

    if not key or key <= 0:
        raise AggregationError(
            f"Cannot derive a {mode.value} group for record {record.id!r} at index {index}"
        )
    return key


@dataclass(slots=True)
class _GroupAccumulator:
    key: int
    concurrency: int
    total: int = 0
    successful: int = 0
    prompt_tokens: float = 0.0
    completion_tokens: float = 0.0
    total_tokens: float = 0.0
    prefill_latency: float = 0.0
    output_latency: float = 0.0
    total_latency: float = 0.0
    prefill_rate: float = 0.0
    prefill_samples: int = 0
    output_rate: float = 0.0
    output_samples: int = 0

    def add(self, record: ResultRecord) -> None:
        self.total += 1
        if not record.success:
            return
        self.successful += 1
        self.prompt_tokens += record.prompt_tokens or 0
        self.completion_tokens += record.completion_tokens
        self.total_tokens += record.total_tokens
        self.prefill_latency += record.request_latency
        self.output_latency += record.output_latency
        self.total_latency += record.total_latency
        if record.prefill_tokens_per_second > 0:
            self.prefill_rate += record.prefill_tokens_per_second
            self.prefill_samples += 1
        if record.output_tokens_per_second > 0:
            self.output_rate += record.output_tokens_per_second
            self.output_samples += 1

    def summarize(self) -> RoundSummary:
        ok = self.successful
        avg_prefill_rate = (
            self.prefill_rate / self.prefill_samples if self.prefill_samples else 0.0
        )
        avg_output_rate = (
            self.output_rate / self.output_samples if self.output_samples else 0.0
        )
        return RoundSummary(
            round_number=self.key,
            total_requests=self.total,
            successful_requests=ok,
            failed_requests=self.total - ok,
            success_rate=ok / self.total if self.total else 0.0,
            average_prompt_tokens=self.prompt_tokens / ok if ok else 0.0,
            average_completion_tokens=self.completion_tokens / ok if ok else 0.0,
            average_total_tokens=self.total_tokens / ok if ok else 0.0,
            average_prefill_latency=self.prefill_latency / ok if ok else 0.0,
            average_output_latency=self.output_latency / ok if ok else 0.0,
            average_total_latency=self.total_latency / ok if ok else 0.0,
            average_prefill_tokens_per_second=avg_prefill_rate,
            # Estimated as single-stream average times concurrency, not a measured sum.
            total_prefill_tokens_per_second=avg_prefill_rate * self.concurrency,
            average_output_tokens_per_second=avg_output_rate,
            total_output_tokens_per_second=avg_output_rate * self.concurrency,
            concurrency=self.concurrency,
        )


def aggregate_rounds(
    records: Iterable[ResultRecord],
    mode: RunMode,
    concurrency_hint: int,
) -> list[RoundSummary]:
    """Group records by round or step and compute per-group statistics.

    Only successful records feed the averages; failed records still count
    toward the totals. Records whose group cannot be derived are logged and
    skipped.

    Args:
        records: Result records in arrival order.
        mode: Run mode selecting the grouping key.
        concurrency_hint: Configured concurrency. Used for the normal-mode
            index fallback and to scale total rates.

    Returns:
        One RoundSummary per group, sorted ascending by key.
    """
    groups: dict[int, _GroupAccumulator] = {}
    hint = max(concurrency_hint, 1)

    for index, record in enumerate(records):
        try:
            key = group_key(record, index, mode, hint)
        except AggregationError as e:
            logger.warning(f"Skipping record: {e}")
            continue

        acc = groups.get(key)
        if acc is None:
            concurrency = key if mode is RunMode.CONCURRENCY_STEP else hint
            acc = groups[key] = _GroupAccumulator(key=key, concurrency=concurrency)
        acc.add(record)

    return [groups[key].summarize() for key in sorted(groups)]
