# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Records exchanged with an execution engine during and after a run."""

from datetime import datetime, timezone

from pydantic import Field

from llmspeed.common.config.run_config import RunConfiguration
from llmspeed.common.enums import ProgressStatus
from llmspeed.common.models.base_models import LLMSpeedBaseModel

__all__ = [
    "ProgressEvent",
    "ResultRecord",
    "RoundSummary",
    "RunBatch",
    "RunSummary",
    "TelemetrySample",
]


class ResultRecord(LLMSpeedBaseModel):
    """Timings and token counts of a single completed request.

    Latencies are in milliseconds. ``round_number``, ``round_position``,
    ``actual_concurrency`` and ``prompt_tokens`` are None when the engine did
    not stamp them.
    """

    id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    test_number: int = 0
    success: bool
    error: str | None = None

    prompt_tokens: int | None = None
    completion_tokens: int = 0
    total_tokens: int = 0

    request_latency: float = Field(0.0, description="Time to first token (ms).")
    output_latency: float = Field(0.0, description="Decode time (ms).")
    total_latency: float = Field(0.0, description="End to end latency (ms).")
    prefill_tokens_per_second: float = 0.0
    output_tokens_per_second: float = 0.0
    throughput: float = 0.0

    round_number: int | None = None
    round_position: int | None = None
    actual_concurrency: int | None = None
    prompt_length: int | None = Field(
        None, description="Configured target prompt length for this request."
    )


class ProgressEvent(LLMSpeedBaseModel):
    """Per-request lifecycle signal. Delivered at least once, dedup by ``test_id``."""

    test_id: str
    run_id: str = Field(alias="batchId")
    test_number: int = 0
    total_tests: int = 0
    status: ProgressStatus
    message: str | None = None


class TelemetrySample(LLMSpeedBaseModel):
    """Engine-wide snapshot emitted on a fixed interval while a run is active."""

    timestamp: int = Field(description="Unix timestamp in milliseconds.")
    active_tests: int = 0
    completed_tests: int = 0
    total_tests: int = 0
    generated_tokens: int = 0
    instant_tps: float = Field(0.0, alias="instantTPS")
    average_ttft: float = Field(0.0, alias="averageTTFT")
    p95_ttft: float = Field(0.0, alias="p95TTFT")
    step_current: int = 0
    step_total: int = 0


class RoundSummary(LLMSpeedBaseModel):
    """Aggregated metrics of one round (normal mode) or one step (step modes)."""

    round_number: int = Field(description="Group key: round, concurrency or prompt tokens.")
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    success_rate: float = 0.0
    average_prompt_tokens: float = 0.0
    average_completion_tokens: float = 0.0
    average_total_tokens: float = 0.0
    average_prefill_latency: float = 0.0
    average_output_latency: float = 0.0
    average_total_latency: float = 0.0
    average_prefill_tokens_per_second: float = 0.0
    total_prefill_tokens_per_second: float = 0.0
    average_output_tokens_per_second: float = 0.0
    total_output_tokens_per_second: float = 0.0
    concurrency: int = Field(1, description="Concurrency used to scale the totals.")


class RunSummary(LLMSpeedBaseModel):
    """Run-level statistics over every record of a batch."""

    total_tests: int = 0
    successful_tests: int = 0
    failed_tests: int = 0
    average_latency: float = 0.0
    min_latency: float = 0.0
    max_latency: float = 0.0
    average_prefill_latency: float = 0.0
    min_prefill_latency: float = 0.0
    max_prefill_latency: float = 0.0
    average_output_latency: float = 0.0
    min_output_latency: float = 0.0
    max_output_latency: float = 0.0
    average_prefill_tokens_per_second: float = 0.0
    min_prefill_tokens_per_second: float = 0.0
    max_prefill_tokens_per_second: float = 0.0
    average_output_tokens_per_second: float = 0.0
    min_output_tokens_per_second: float = 0.0
    max_output_tokens_per_second: float = 0.0
    average_throughput: float = 0.0
    min_throughput: float = 0.0
    max_throughput: float = 0.0
    average_round_throughput: float = 0.0
    min_round_throughput: float = 0.0
    max_round_throughput: float = 0.0
    error_rate: float = 0.0


class RunBatch(LLMSpeedBaseModel):
    """Everything a finished run produced. Never mutated once finalized."""

    id: str
    start_time: datetime
    end_time: datetime | None = None
    configuration: RunConfiguration
    results: tuple[ResultRecord, ...] = ()
    round_summaries: tuple[RoundSummary, ...] | None = None
    summary: RunSummary = Field(default_factory=RunSummary)

    @classmethod
    def stub(cls, run_id: str, configuration: RunConfiguration) -> "RunBatch":
        """Start acknowledgement: an empty batch carrying only the run id."""
        return cls(
            id=run_id,
            start_time=datetime.now(timezone.utc),
            configuration=configuration,
        )

    @property
    def successful_results(self) -> list[ResultRecord]:
        return [r for r in self.results if r.success]
