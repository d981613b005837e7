# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""In-process execution engine driven by a deterministic latency model.

Useful for dry runs of a campaign and for end to end tests of the controller
without a network. Requests are simulated with ``asyncio.sleep`` scaled by
``time_scale`` (0 makes a run complete as fast as the event loop allows).
"""

import asyncio
import logging
import math
import random
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from llmspeed.aggregation.rounds import aggregate_rounds
from llmspeed.aggregation.summary import compute_run_summary
from llmspeed.common.config import RunConfiguration
from llmspeed.common.constants import MILLIS_PER_SECOND, TELEMETRY_INTERVAL_SEC
from llmspeed.common.enums import ProgressStatus, RunMode
from llmspeed.common.models import (
    ProgressEvent,
    ResultRecord,
    RunBatch,
    TelemetrySample,
)

logger = logging.getLogger(__name__)

__all__ = ["LatencyModel", "SyntheticEngine", "create_engine"]


@dataclass(slots=True)
class LatencyModel:
    """Deterministic request timing model.

    Attributes:
        base_ttft_ms: Time to first token of a minimal prompt.
        prefill_ms_per_token: Additional TTFT per prompt token.
        decode_tokens_per_second: Single-stream decode rate with no contention.
        contention: Fractional slowdown added per extra concurrent request.
        jitter: Relative random spread applied to both phases.
        failure_rate: Probability that a request fails.
    """

    base_ttft_ms: float = 80.0
    prefill_ms_per_token: float = 0.05
    decode_tokens_per_second: float = 60.0
    contention: float = 0.08
    jitter: float = 0.1
    failure_rate: float = 0.0

    def timings(
        self, rng: random.Random, prompt_tokens: int, completion_tokens: int, concurrency: int
    ) -> tuple[float, float]:
        """Return (ttft_ms, decode_ms) for one request."""
        slowdown = 1 + self.contention * max(concurrency - 1, 0)
        ttft = (self.base_ttft_ms + self.prefill_ms_per_token * prompt_tokens) * slowdown
        decode = (
            completion_tokens / self.decode_tokens_per_second * MILLIS_PER_SECOND * slowdown
        )
        ttft *= 1 + rng.uniform(-self.jitter, self.jitter)
        decode *= 1 + rng.uniform(-self.jitter, self.jitter)
        return max(ttft, 1.0), max(decode, 1.0)


def p95_nearest_rank(values: list[float]) -> float:
    """95th percentile using the nearest-rank method."""
    if not values:
        return 0.0
    ordered = sorted(values)
    idx = min(max(math.ceil(len(ordered) * 0.95) - 1, 0), len(ordered) - 1)
    return ordered[idx]


@dataclass(slots=True)
class _SyntheticRun:
    id: str
    config: RunConfiguration
    start_time: datetime
    total_tests: int
    step_total: int
    step_current: int = 0
    active: int = 0
    completed: int = 0
    generated_tokens: int = 0
    last_generated_tokens: int = 0
    ttfts: list[float] = field(default_factory=list)
    results: list[ResultRecord] = field(default_factory=list)
    batch: RunBatch | None = None
    task: asyncio.Task | None = None


class SyntheticEngine:
    """ExecutionEngineProtocol implementation that simulates requests locally."""

    def __init__(
        self,
        latency_model: LatencyModel | None = None,
        time_scale: float = 0.0,
        seed: int = 42,
        telemetry_interval: float = TELEMETRY_INTERVAL_SEC,
    ) -> None:
        if time_scale < 0:
            raise ValueError(f"time_scale must be >= 0, got {time_scale}")
        if telemetry_interval <= 0:
            raise ValueError(
                f"telemetry_interval must be positive, got {telemetry_interval}"
            )
        self.latency_model = latency_model or LatencyModel()
        self.time_scale = time_scale
        self.seed = seed
        self.telemetry_interval = telemetry_interval
        self._runs: dict[str, _SyntheticRun] = {}
        self._active: _SyntheticRun | None = None
        self._progress: list[ProgressEvent] = []
        self._results: list[ResultRecord] = []
        self._telemetry: list[TelemetrySample] = []

    async def start_run(self, config: RunConfiguration) -> RunBatch:
        active = self._active
        if active is not None and active.task is not None and not active.task.done():
            raise RuntimeError(f"Run {active.id} is still active")

        steps = self._expand_steps(config)
        run = _SyntheticRun(
            id=str(uuid.uuid4()),
            config=config,
            start_time=datetime.now(timezone.utc),
            total_tests=sum(config.round_count * conc for conc, _ in steps),
            step_total=len(steps),
        )
        self._runs[run.id] = run
        self._active = run
        self._progress.clear()
        self._results.clear()
        self._telemetry.clear()
        run.task = asyncio.create_task(self._execute(run, steps))
        logger.debug(f"Synthetic run {run.id} started with {run.total_tests} requests")
        return RunBatch.stub(run.id, config)

    async def stop_run(self, run_id: str) -> None:
        run = self._runs.get(run_id)
        if run is None or run.task is None or run.task.done():
            return
        run.task.cancel()
        try:
            await run.task
        except asyncio.CancelledError:
            pass
        logger.debug(f"Synthetic run {run_id} stopped")

    async def poll_progress(self) -> list[ProgressEvent]:
        events, self._progress = self._progress, []
        return events

    async def poll_results(self) -> list[ResultRecord]:
        records, self._results = self._results, []
        return records

    async def poll_telemetry(self) -> list[TelemetrySample]:
        samples, self._telemetry = self._telemetry, []
        return samples

    async def get_run_batch(self, run_id: str) -> RunBatch | None:
        """Return the final batch, waiting for the run to wrap up if needed.

        None for an unknown id or a run that was stopped.
        """
        run = self._runs.get(run_id)
        if run is None:
            return None
        if run.task is not None and not run.task.done():
            await asyncio.wait([run.task])
        return run.batch

    @staticmethod
    def _expand_steps(config: RunConfiguration) -> list[tuple[int, int]]:
        """(concurrency, prompt length) of every step of the run."""
        match config.mode:
            case RunMode.CONCURRENCY_STEP:
                return [(c, config.prompt_length) for c in config.step_range.values()]
            case RunMode.INPUT_STEP:
                return [(config.concurrency, n) for n in config.step_range.values()]
            case _:
                return [(config.concurrency, config.prompt_length)]

    async def _execute(self, run: _SyntheticRun, steps: list[tuple[int, int]]) -> None:
        rng = random.Random(self.seed)
        telemetry = asyncio.create_task(self._telemetry_loop(run))
        test_number = 0
        try:
            for step_index, (concurrency, prompt_length) in enumerate(steps, start=1):
                run.step_current = step_index
                semaphore = asyncio.Semaphore(concurrency)
                requests = []
                for i in range(run.config.round_count * concurrency):
                    test_number += 1
                    requests.append(
                        self._simulate_request(
                            run,
                            semaphore,
                            rng,
                            test_number=test_number,
                            round_number=i // concurrency + 1,
                            round_position=i % concurrency + 1,
                            concurrency=concurrency,
                            prompt_length=prompt_length,
                        )
                    )
                await asyncio.gather(*requests)
        finally:
            telemetry.cancel()
            try:
                await telemetry
            except asyncio.CancelledError:
                pass
            self._emit_telemetry(run)

        round_summaries = aggregate_rounds(
            run.results, run.config.mode, run.config.concurrency
        )
        run.batch = RunBatch(
            id=run.id,
            start_time=run.start_time,
            end_time=datetime.now(timezone.utc),
            configuration=run.config,
            results=tuple(run.results),
            round_summaries=tuple(round_summaries),
            summary=compute_run_summary(run.results, round_summaries),
        )
        logger.debug(f"Synthetic run {run.id} finished")

    async def _simulate_request(
        self,
        run: _SyntheticRun,
        semaphore: asyncio.Semaphore,
        rng: random.Random,
        *,
        test_number: int,
        round_number: int,
        round_position: int,
        concurrency: int,
        prompt_length: int,
    ) -> None:
        async with semaphore:
            test_id = str(uuid.uuid4())
            event = ProgressEvent(
                test_id=test_id,
                run_id=run.id,
                test_number=test_number,
                total_tests=run.total_tests,
                status=ProgressStatus.RUNNING,
            )
            self._progress.append(event)
            run.active += 1

            model = self.latency_model
            failed = rng.random() < model.failure_rate
            completion_tokens = run.config.max_tokens
            ttft, decode = model.timings(rng, prompt_length, completion_tokens, concurrency)
            await asyncio.sleep((ttft + decode) / MILLIS_PER_SECOND * self.time_scale)

            run.active -= 1
            run.completed += 1
            if failed:
                record = ResultRecord(
                    id=test_id,
                    test_number=test_number,
                    success=False,
                    error="simulated request failure",
                    total_latency=ttft,
                    round_number=round_number,
                    round_position=round_position,
                    actual_concurrency=concurrency,
                    prompt_length=prompt_length,
                )
            else:
                run.generated_tokens += completion_tokens
                run.ttfts.append(ttft)
                output_rate = completion_tokens / (decode / MILLIS_PER_SECOND)
                record = ResultRecord(
                    id=test_id,
                    test_number=test_number,
                    success=True,
                    prompt_tokens=prompt_length,
                    completion_tokens=completion_tokens,
                    total_tokens=prompt_length + completion_tokens,
                    request_latency=ttft,
                    output_latency=decode,
                    total_latency=ttft + decode,
                    prefill_tokens_per_second=prompt_length / (ttft / MILLIS_PER_SECOND),
                    output_tokens_per_second=output_rate,
                    throughput=output_rate,
                    round_number=round_number,
                    round_position=round_position,
                    actual_concurrency=concurrency,
                    prompt_length=prompt_length,
                )

            self._progress.append(
                event.model_copy(
                    update={
                        "status": ProgressStatus.FAILED if failed else ProgressStatus.COMPLETED,
                        "message": record.error,
                    }
                )
            )
            run.results.append(record)
            self._results.append(record)

    async def _telemetry_loop(self, run: _SyntheticRun) -> None:
        while True:
            await asyncio.sleep(self.telemetry_interval)
            self._emit_telemetry(run)

    def _emit_telemetry(self, run: _SyntheticRun) -> None:
        token_diff = run.generated_tokens - run.last_generated_tokens
        run.last_generated_tokens = run.generated_tokens
        self._telemetry.append(
            TelemetrySample(
                timestamp=int(time.time() * MILLIS_PER_SECOND),
                active_tests=run.active,
                completed_tests=run.completed,
                total_tests=run.total_tests,
                generated_tokens=run.generated_tokens,
                instant_tps=token_diff / self.telemetry_interval,
                average_ttft=sum(run.ttfts) / len(run.ttfts) if run.ttfts else 0.0,
                p95_ttft=p95_nearest_rank(run.ttfts),
                step_current=run.step_current,
                step_total=run.step_total,
            )
        )


def create_engine(time_scale: float = 0.0, seed: int = 42, failure_rate: float = 0.0) -> SyntheticEngine:
    """Engine factory used by the CLI when no ``--engine`` is given."""
    return SyntheticEngine(
        latency_model=LatencyModel(failure_rate=failure_rate),
        time_scale=time_scale,
        seed=seed,
    )
