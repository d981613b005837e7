# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Run controller: starts runs, polls their streams and sequences campaigns."""

import asyncio
import logging
from collections.abc import Sequence

from llmspeed.aggregation.rounds import aggregate_rounds
from llmspeed.aggregation.summary import compute_run_summary
from llmspeed.common.config import RunConfiguration
from llmspeed.common.enums import ControllerState, RunType
from llmspeed.common.environment import Environment
from llmspeed.common.exceptions import (
    AlreadyRunningError,
    ConfigValidationError,
    FinalizationError,
    LLMSpeedError,
    PollTransientError,
    StartFailure,
)
from llmspeed.common.models import ResultRecord, RunBatch, TelemetrySample
from llmspeed.controller.campaign import CampaignStrategy, RunQueue
from llmspeed.controller.progress import ProgressTracker
from llmspeed.controller.status import LiveMetrics, compute_live_metrics, format_status
from llmspeed.controller.stream_buffer import StreamBuffer
from llmspeed.engine.protocols import ExecutionEngineProtocol

logger = logging.getLogger(__name__)

__all__ = ["RunController"]


class RunController:
    """Drives one run at a time against an execution engine.

    ``start`` launches the first run of a campaign and a ticker task. Every
    tick polls progress, results and telemetry concurrently, merges them into
    bounded buffers, and once every request has finished fetches the final
    batch, records it, and starts the next queued run after a settle delay.

    ``stop`` and ``start`` advance an epoch counter; a tick that was awaiting
    the engine when the epoch moved discards whatever it received.

    Args:
        engine: Execution engine to drive.
        poll_interval: Seconds between ticks.
        finalize_delay: Seconds between completion and fetching the batch.
        settle_delay: Seconds between a finished run and the next queued one.
        auto_tick: Launch the ticker task on start. When False the caller
            drives the controller by awaiting ``tick()``.
    """

    def __init__(
        self,
        engine: ExecutionEngineProtocol,
        *,
        poll_interval: float | None = None,
        finalize_delay: float | None = None,
        settle_delay: float | None = None,
        results_capacity: int | None = None,
        telemetry_capacity: int | None = None,
        history_capacity: int | None = None,
        auto_tick: bool = True,
    ) -> None:
        settings = Environment.CONTROLLER
        self.engine = engine
        self.poll_interval = (
            settings.POLL_INTERVAL if poll_interval is None else poll_interval
        )
        self.finalize_delay = (
            settings.FINALIZE_DELAY if finalize_delay is None else finalize_delay
        )
        self.settle_delay = (
            settings.SETTLE_DELAY if settle_delay is None else settle_delay
        )
        self.auto_tick = auto_tick

        self.results: StreamBuffer[ResultRecord] = StreamBuffer(
            results_capacity or settings.RESULTS_CAPACITY
        )
        self.telemetry: StreamBuffer[TelemetrySample] = StreamBuffer(
            telemetry_capacity or settings.TELEMETRY_CAPACITY
        )
        self.completed_batches: StreamBuffer[RunBatch] = StreamBuffer(
            history_capacity or settings.HISTORY_CAPACITY
        )
        self.current_run_batches: list[RunBatch] = []
        self.current_batch: RunBatch | None = None

        self.tracker = ProgressTracker()
        self.queue = RunQueue()
        self.run_type = RunType.SINGLE
        self.step_total = 0
        self.active_run_id: str | None = None
        self.active_config: RunConfiguration | None = None
        self.active_label: str | None = None
        self.last_error: LLMSpeedError | None = None
        self.poll_errors = 0

        self._state = ControllerState.IDLE
        self._epoch = 0
        self._cooldown = 0.0
        self._tick_epoch: int | None = None
        self._ticker: asyncio.Task | None = None
        self._start_task: asyncio.Task | None = None
        self._detached: set[asyncio.Task] = set()
        self._finished = asyncio.Event()

    @property
    def state(self) -> ControllerState:
        return self._state

    def _set_state(self, state: ControllerState) -> None:
        if state is not self._state:
            logger.debug(f"Controller {self._state.value} -> {state.value}")
        self._state = state
        if state.is_terminal:
            self._finished.set()
        else:
            self._finished.clear()

    def _fail(self, error: LLMSpeedError) -> None:
        self.last_error = error
        self.queue.clear()
        self._set_state(ControllerState.FAILED)
        logger.error(f"Run {self.active_label or self.active_run_id} failed: {error}")

    @property
    def is_running(self) -> bool:
        return self._state.is_active

    @property
    def step_index(self) -> int:
        """One-based position of the active run within the campaign."""
        return self.step_total - self.queue.remaining if self.step_total else 0

    @property
    def status_text(self) -> str:
        match self._state:
            case ControllerState.IDLE:
                return "idle"
            case ControllerState.STOPPED:
                return "stopped"
            case ControllerState.FAILED:
                return format_status(
                    complete=False,
                    any_failed=True,
                    error=str(self.last_error) if self.last_error else "unknown error",
                )
        complete = (
            self._state
            in (
                ControllerState.FINALIZING,
                ControllerState.ADVANCING,
                ControllerState.DONE,
            )
            or self.tracker.is_complete
        )
        step_total = self.step_total if self.run_type is RunType.AUTO else 0
        return format_status(
            complete=complete,
            any_failed=self.tracker.any_failed,
            step_index=self.step_index,
            step_total=step_total,
        )

    def live_metrics(self) -> LiveMetrics:
        return compute_live_metrics(self.results.snapshot(), self.telemetry.snapshot())

    async def start(
        self,
        configs: RunConfiguration | Sequence[RunConfiguration],
        labels: Sequence[str] | None = None,
    ) -> None:
        """Start a single run, or a campaign from a list of configurations.

        A list always runs as an automatic campaign, even with one element.

        Raises:
            AlreadyRunningError: If a run is active.
            ConfigValidationError: If an empty list is given.
            StartFailure: If the engine rejects the first run.
        """
        if isinstance(configs, RunConfiguration):
            await self._begin(RunQueue([configs], labels or ["run"]), RunType.SINGLE)
            return
        configs = list(configs)
        if not configs:
            raise ConfigValidationError("A campaign needs at least one configuration.")
        await self._begin(RunQueue(configs, labels), RunType.AUTO)

    async def start_campaign(
        self, base_config: RunConfiguration, strategy: CampaignStrategy
    ) -> None:
        """Expand a base configuration with a strategy and start the campaign."""
        if self._state.is_active:
            raise AlreadyRunningError(
                f"Cannot start a campaign while the controller is {self._state.value}"
            )
        logger.info(
            f"Starting campaign with strategy: {strategy.__class__.__name__}"
        )
        queue = RunQueue.from_strategy(base_config, strategy)
        await self._begin(
            queue, strategy.run_type, cooldown=strategy.get_cooldown_seconds()
        )

    async def _begin(
        self, queue: RunQueue, run_type: RunType, cooldown: float = 0.0
    ) -> None:
        if self._state.is_active:
            raise AlreadyRunningError(
                f"Cannot start while the controller is {self._state.value}"
            )
        if self._state.is_terminal:
            self._set_state(ControllerState.IDLE)
        await self._cancel_ticker()
        self._epoch += 1
        self.queue = queue
        self.run_type = run_type
        self.step_total = queue.total
        self._cooldown = cooldown
        self.current_run_batches = []
        self.last_error = None
        self.poll_errors = 0

        label, config = queue.pop()
        await self._start_run(label, config)

    async def _start_run(self, label: str, config: RunConfiguration) -> None:
        epoch = self._epoch
        self._set_state(ControllerState.STARTING)
        self.results.clear()
        self.telemetry.clear()
        self.tracker.reset(config.total_requests)
        self.active_run_id = None
        self.active_config = config
        self.active_label = label

        logger.info(
            f"[{self.step_index}/{self.step_total}] Starting {label} "
            f"({config.mode.value}, {config.total_requests} requests)"
        )
        self._start_task = asyncio.current_task()
        try:
            stub = await self.engine.start_run(config)
            if stub is None or not stub.id:
                raise ValueError("engine returned no run id")
        except Exception as e:
            if epoch != self._epoch:
                logger.debug(f"Ignoring start failure of stopped {label}: {e!r}")
                return
            failure = StartFailure(f"Engine rejected {label}: {e}")
            self._fail(failure)
            raise failure from e
        finally:
            if self._start_task is asyncio.current_task():
                self._start_task = None

        if epoch != self._epoch:
            logger.debug(f"Run {stub.id} started after stop, stopping it")
            await self._stop_engine_run(stub.id)
            return

        self.active_run_id = stub.id
        self.tracker.reset(config.total_requests, stub.id)
        self._set_state(ControllerState.POLLING)
        self._ensure_ticker()

    async def stop(self) -> None:
        """Stop the active run without advancing the queue.

        Buffers and the queue are cleared; history is kept.
        """
        if not self._state.is_active:
            logger.debug(f"Ignoring stop while {self._state.value}")
            return
        self._epoch += 1
        run_id = self.active_run_id
        self.queue.clear()
        self.results.clear()
        self.telemetry.clear()
        self._set_state(ControllerState.STOPPED)
        logger.info(f"Stopped {self.active_label or run_id}")
        if run_id:
            await self._stop_engine_run(run_id)
        await self._cancel_ticker()

    async def _stop_engine_run(self, run_id: str) -> None:
        try:
            await self.engine.stop_run(run_id)
        except Exception as e:
            logger.warning(f"Engine failed to stop run {run_id}: {e!r}")

    async def wait(self, timeout: float | None = None) -> ControllerState:
        """Wait until the controller reaches a terminal state."""
        await asyncio.wait_for(self._finished.wait(), timeout)
        return self._state

    async def run(
        self,
        configs: RunConfiguration | Sequence[RunConfiguration],
        timeout: float | None = None,
    ) -> list[RunBatch]:
        """Start, wait for the campaign to end and return its batches."""
        await self.start(configs)
        await self.wait(timeout)
        return list(self.current_run_batches)

    def _ensure_ticker(self) -> None:
        if not self.auto_tick:
            return
        if self._ticker is None or self._ticker.done():
            self._ticker = asyncio.create_task(self._run_ticker())

    async def _cancel_ticker(self) -> None:
        ticker, self._ticker = self._ticker, None
        if ticker is None or ticker.done() or ticker is asyncio.current_task():
            return
        if ticker is self._start_task:
            # Pending start_run: the ticker stops the late run itself
            self._detached.add(ticker)
            ticker.add_done_callback(self._detached.discard)
            return
        ticker.cancel()
        try:
            await ticker
        except asyncio.CancelledError:
            pass

    async def _run_ticker(self) -> None:
        try:
            while self._owns_ticker():
                await self.tick()
                if self._owns_ticker():
                    await asyncio.sleep(self.poll_interval)
        except Exception as e:
            logger.exception("Unexpected error in polling loop")
            error = LLMSpeedError(f"polling loop crashed: {e!r}")
            error.__cause__ = e
            self._fail(error)

    def _owns_ticker(self) -> bool:
        return (
            self._state is ControllerState.POLLING
            and self._ticker is asyncio.current_task()
        )

    async def tick(self) -> None:
        """Poll the engine once and fold the results into controller state.

        No-op unless polling, and skipped while another tick is in flight.
        """
        epoch = self._epoch
        if self._state is not ControllerState.POLLING or self._tick_epoch == epoch:
            return
        self._tick_epoch = epoch
        try:
            progress, results, telemetry = await asyncio.gather(
                self.engine.poll_progress(),
                self.engine.poll_results(),
                self.engine.poll_telemetry(),
                return_exceptions=True,
            )
            if epoch != self._epoch:
                logger.debug("Discarding tick results from a previous epoch")
                return

            if self._poll_ok("telemetry", telemetry):
                self.telemetry.merge(telemetry)
            if self._poll_ok("results", results):
                self.results.merge(results)
            if not self._poll_ok("progress", progress):
                return

            self.tracker.apply(progress)
            if self.tracker.is_complete:
                await self._finalize(epoch)
        finally:
            if self._tick_epoch == epoch:
                self._tick_epoch = None

    def _poll_ok(self, stream: str, outcome: list | BaseException) -> bool:
        if isinstance(outcome, Exception):
            error = PollTransientError(stream, outcome)
            self.poll_errors += 1
            logger.warning(f"{error}; skipping this update")
            return False
        if isinstance(outcome, BaseException):
            raise outcome
        return True

    async def _finalize(self, epoch: int) -> None:
        run_id = self.active_run_id
        self._set_state(ControllerState.FINALIZING)
        logger.info(
            f"{self.active_label} finished {self.tracker.completed_count}/"
            f"{self.tracker.total_tests} requests, fetching results"
        )
        await asyncio.sleep(self.finalize_delay)
        if epoch != self._epoch:
            return

        try:
            batch = await self.engine.get_run_batch(run_id)
        except Exception as e:
            if epoch == self._epoch:
                error = FinalizationError(f"Fetching batch {run_id} failed: {e!r}")
                error.__cause__ = e
                self._fail(error)
            return
        if epoch != self._epoch:
            return
        if batch is None:
            self._fail(FinalizationError(f"Batch {run_id} was not found"))
            return

        batch = self._complete_batch(batch)
        self.current_batch = batch
        self.current_run_batches.append(batch)
        self.completed_batches.merge([batch])
        logger.info(
            f"{self.active_label} completed: {batch.summary.successful_tests}/"
            f"{batch.summary.total_tests} successful"
        )
        await self._advance(epoch)

    @staticmethod
    def _complete_batch(batch: RunBatch) -> RunBatch:
        """Fill in round summaries and the summary when the engine left them out."""
        update = {}
        round_summaries = batch.round_summaries
        if not round_summaries:
            config = batch.configuration
            round_summaries = tuple(
                aggregate_rounds(batch.results, config.mode, config.concurrency)
            )
            update["round_summaries"] = round_summaries
        if batch.results and batch.summary.total_tests == 0:
            update["summary"] = compute_run_summary(batch.results, round_summaries)
        return batch.model_copy(update=update) if update else batch

    async def _advance(self, epoch: int) -> None:
        head = self.queue.pop()
        if head is None:
            self._set_state(ControllerState.DONE)
            logger.info(
                f"All runs complete: {len(self.current_run_batches)}/{self.step_total}"
            )
            return

        self._set_state(ControllerState.ADVANCING)
        delay = self.settle_delay + self._cooldown
        if delay > 0:
            logger.debug(f"Waiting {delay}s before the next run")
        await asyncio.sleep(delay)
        if epoch != self._epoch:
            return
        try:
            await self._start_run(*head)
        except StartFailure:
            # Already recorded by _start_run
            return
