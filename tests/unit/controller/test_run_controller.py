# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Tests for the RunController state machine."""

import asyncio
import logging

import pytest

from llmspeed.common.enums import ControllerState, ProgressStatus, RunMode
from llmspeed.common.exceptions import (
    AlreadyRunningError,
    ConfigValidationError,
    FinalizationError,
    StartFailure,
)
from llmspeed.controller import (
    FixedTrialsStrategy,
    RunController,
    StepSweepStrategy,
)
from tests.harness.engines import FakeEngine
from tests.harness.factories import (
    make_config,
    make_event,
    make_record,
    make_sample,
    make_step_config,
)


class TestSingleRun:
    """Tests for a single run from start to finalization."""

    def test_initial_state(self, controller: RunController):
        assert controller.state is ControllerState.IDLE
        assert controller.status_text == "idle"
        assert not controller.is_running

    @pytest.mark.asyncio
    async def test_run_completes(self, controller, fake_engine, run_config):
        await controller.start(run_config)
        assert controller.state is ControllerState.POLLING
        assert controller.active_run_id == "run-1"
        assert controller.tracker.total_tests == 6
        assert controller.status_text == "in progress"

        fake_engine.queue_completion()
        await controller.tick()

        assert controller.state is ControllerState.DONE
        assert controller.status_text == "completed"
        assert fake_engine.batch_requests == ["run-1"]
        batch = controller.current_batch
        assert batch.id == "run-1"
        assert [r.round_number for r in batch.round_summaries] == [1, 2]
        assert controller.current_run_batches == [batch]
        assert controller.completed_batches.snapshot() == [batch]

    @pytest.mark.asyncio
    async def test_running_update_defers_completion(
        self, controller, fake_engine, run_config
    ):
        await controller.start(run_config)
        fake_engine.queue_completion()
        fake_engine.progress[-1].append(
            make_event("late", ProgressStatus.RUNNING, run_id="run-1")
        )

        await controller.tick()
        assert controller.state is ControllerState.POLLING
        assert controller.tracker.completed_count == 6

        await controller.tick()
        assert controller.state is ControllerState.DONE

    @pytest.mark.asyncio
    async def test_partial_progress_keeps_polling(
        self, controller, fake_engine, run_config
    ):
        await controller.start(run_config)
        fake_engine.progress.append(
            [make_event(f"t{i}", run_id="run-1", total_tests=6) for i in range(4)]
        )
        await controller.tick()
        assert controller.state is ControllerState.POLLING
        assert controller.tracker.fraction == pytest.approx(4 / 6)

    @pytest.mark.asyncio
    async def test_failures_are_reported_in_status(
        self, controller, fake_engine, run_config
    ):
        await controller.start(run_config)
        fake_engine.progress.append(
            [make_event("t0", ProgressStatus.FAILED, run_id="run-1")]
        )
        await controller.tick()
        assert controller.status_text == "in progress (some failed)"

        fake_engine.queue_completion(failed=1)
        await controller.tick()
        assert controller.status_text == "completed with failures"

    @pytest.mark.asyncio
    async def test_streams_are_merged(self, controller, fake_engine, run_config):
        await controller.start(run_config)
        fake_engine.results.append([make_record("a", output_tps=30.0)])
        fake_engine.telemetry.append([make_sample(1, instant_tps=12.0)])
        await controller.tick()
        fake_engine.results.append([make_record("b", success=False)])
        await controller.tick()

        assert [r.id for r in controller.results] == ["a", "b"]
        assert len(controller.telemetry) == 1
        metrics = controller.live_metrics()
        assert metrics.current_tps == 12.0
        assert metrics.success_rate == pytest.approx(50.0)

    @pytest.mark.asyncio
    async def test_buffers_are_bounded(self, fake_engine, run_config):
        controller = RunController(
            fake_engine,
            finalize_delay=0,
            settle_delay=0,
            telemetry_capacity=600,
            auto_tick=False,
        )
        await controller.start(run_config)
        fake_engine.telemetry.append([make_sample(t) for t in range(400)])
        fake_engine.telemetry.append([make_sample(t) for t in range(400, 610)])
        await controller.tick()
        await controller.tick()

        timestamps = [s.timestamp for s in controller.telemetry]
        assert timestamps == list(range(10, 610))

    @pytest.mark.asyncio
    async def test_missing_summaries_are_filled_in(
        self, controller, fake_engine, run_config
    ):
        from llmspeed.common.models import RunBatch

        await controller.start(run_config)
        fake_engine.batches["run-1"] = RunBatch.stub("run-1", run_config).model_copy(
            update={
                "results": tuple(
                    make_record(f"r{i}", round_number=i // 3 + 1) for i in range(6)
                )
            }
        )
        fake_engine.queue_completion()
        await controller.tick()

        batch = controller.current_batch
        assert batch.summary.total_tests == 6
        assert len(batch.round_summaries) == 2
        assert batch.summary.average_round_throughput == pytest.approx(150.0)


class TestCampaign:
    """Tests for sequencing queued runs."""

    @pytest.mark.asyncio
    async def test_runs_in_order(self, controller, fake_engine):
        configs = [make_config(concurrency=c, round_count=1) for c in (1, 2, 3)]
        await controller.start(configs)
        assert controller.status_text == "in progress (step 1/3)"

        for expected_step in (2, 3):
            fake_engine.queue_completion()
            await controller.tick()
            assert controller.state is ControllerState.POLLING
            assert controller.step_index == expected_step
            assert controller.status_text == f"in progress (step {expected_step}/3)"

        fake_engine.queue_completion()
        await controller.tick()

        assert controller.state is ControllerState.DONE
        assert controller.status_text == "completed (step 3/3)"
        assert fake_engine.started == configs
        assert [b.id for b in controller.current_run_batches] == ["run-1", "run-2", "run-3"]
        assert [b.configuration.concurrency for b in controller.current_run_batches] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_single_element_list_is_a_campaign(self, controller, fake_engine):
        await controller.start([make_config()])
        fake_engine.queue_completion()
        await controller.tick()
        assert controller.state is ControllerState.DONE
        assert controller.status_text == "completed"

    @pytest.mark.asyncio
    async def test_empty_campaign_rejected(self, controller):
        with pytest.raises(ConfigValidationError):
            await controller.start([])
        assert controller.state is ControllerState.IDLE

    @pytest.mark.asyncio
    async def test_stale_events_do_not_complete_next_run(self, controller, fake_engine):
        configs = [make_config(round_count=1, concurrency=2)] * 2
        await controller.start(configs)
        fake_engine.queue_completion()
        await controller.tick()
        assert controller.active_run_id == "run-2"

        fake_engine.queue_completion(run_id="run-1")
        await controller.tick()
        assert controller.state is ControllerState.POLLING
        assert controller.tracker.completed_count == 0

    @pytest.mark.asyncio
    async def test_step_sweep_campaign(self, controller, fake_engine):
        base = make_step_config(RunMode.CONCURRENCY_STEP, 1, 3, 1, round_count=2)
        await controller.start_campaign(base, StepSweepStrategy.from_config(base))
        assert controller.active_label == "concurrency_1"

        labels = []
        while controller.state is ControllerState.POLLING:
            labels.append(controller.active_label)
            fake_engine.queue_completion()
            await controller.tick()

        assert controller.state is ControllerState.DONE
        assert labels == ["concurrency_1", "concurrency_2", "concurrency_3"]
        assert [c.concurrency for c in fake_engine.started] == [1, 2, 3]
        assert [c.total_requests for c in fake_engine.started] == [2, 4, 6]

    @pytest.mark.asyncio
    async def test_trials_campaign_with_cooldown(self, fake_engine, monkeypatch):
        sleeps: list[float] = []
        real_sleep = asyncio.sleep

        async def recording_sleep(delay, *args, **kwargs):
            sleeps.append(delay)
            await real_sleep(0)

        controller = RunController(
            fake_engine, finalize_delay=0, settle_delay=1.0, auto_tick=False
        )
        monkeypatch.setattr(
            "llmspeed.controller.run_controller.asyncio.sleep", recording_sleep
        )
        await controller.start_campaign(
            make_config(), FixedTrialsStrategy(num_trials=2, cooldown_seconds=2.0)
        )
        fake_engine.queue_completion()
        await controller.tick()

        assert controller.active_label == "trial_0002"
        assert 3.0 in sleeps

    @pytest.mark.asyncio
    async def test_single_strategy_campaign_is_single(self, controller, fake_engine):
        from llmspeed.controller import SingleRunStrategy

        await controller.start_campaign(make_config(), SingleRunStrategy())
        assert controller.active_label == "run"
        fake_engine.queue_completion()
        await controller.tick()
        assert controller.status_text == "completed"


class TestFailures:
    """Tests for start, poll and finalization failures."""

    @pytest.mark.asyncio
    async def test_start_failure(self, controller, fake_engine, run_config):
        fake_engine.start_errors.append(RuntimeError("engine offline"))

        with pytest.raises(StartFailure) as exc_info:
            await controller.start(run_config)

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert controller.state is ControllerState.FAILED
        assert controller.last_error is exc_info.value
        assert controller.status_text.startswith("failed: ")
        assert "engine offline" in controller.status_text

    @pytest.mark.asyncio
    async def test_start_failure_mid_campaign_clears_queue(
        self, controller, fake_engine
    ):
        configs = [make_config(round_count=1, concurrency=1)] * 3
        fake_engine.start_errors.extend([None, RuntimeError("refused")])
        await controller.start(configs)

        fake_engine.queue_completion()
        await controller.tick()

        assert controller.state is ControllerState.FAILED
        assert isinstance(controller.last_error, StartFailure)
        assert controller.queue.remaining == 0
        assert [b.id for b in controller.current_run_batches] == ["run-1"]
        assert len(fake_engine.started) == 1

    @pytest.mark.asyncio
    async def test_controller_can_restart_after_failure(
        self, controller, fake_engine, run_config
    ):
        fake_engine.start_errors.append(RuntimeError("offline"))
        with pytest.raises(StartFailure):
            await controller.start(run_config)

        await controller.start(run_config)
        assert controller.state is ControllerState.POLLING
        assert controller.last_error is None

    @pytest.mark.asyncio
    async def test_transient_poll_errors_are_skipped(
        self, controller, fake_engine, run_config
    ):
        await controller.start(run_config)
        fake_engine.results.append(RuntimeError("results hiccup"))
        fake_engine.telemetry.append(RuntimeError("telemetry hiccup"))
        fake_engine.queue_completion()

        await controller.tick()

        assert controller.state is ControllerState.DONE
        assert controller.poll_errors == 2

    @pytest.mark.asyncio
    async def test_progress_poll_error_skips_completion_check(
        self, controller, fake_engine, run_config
    ):
        await controller.start(run_config)
        fake_engine.progress.append(RuntimeError("progress hiccup"))
        fake_engine.results.append([make_record("a")])
        fake_engine.queue_completion()

        await controller.tick()
        assert controller.state is ControllerState.POLLING
        assert len(controller.results) == 1

        await controller.tick()
        assert controller.state is ControllerState.DONE

    @pytest.mark.asyncio
    async def test_finalization_error_keeps_history(self, controller, fake_engine):
        configs = [make_config(round_count=1, concurrency=1)] * 3
        await controller.start(configs)
        fake_engine.queue_completion()
        await controller.tick()

        fake_engine.batches["run-2"] = RuntimeError("storage lost")
        fake_engine.queue_completion()
        await controller.tick()

        assert controller.state is ControllerState.FAILED
        assert isinstance(controller.last_error, FinalizationError)
        assert controller.queue.remaining == 0
        assert [b.id for b in controller.completed_batches] == ["run-1"]
        assert len(fake_engine.started) == 2

    @pytest.mark.asyncio
    async def test_missing_batch_is_a_finalization_error(
        self, controller, fake_engine, run_config
    ):
        await controller.start(run_config)
        fake_engine.batches["run-1"] = None
        fake_engine.queue_completion()
        await controller.tick()

        assert controller.state is ControllerState.FAILED
        assert "not found" in controller.status_text


class TestStop:
    """Tests for stop and restart."""

    @pytest.mark.asyncio
    async def test_start_while_running_raises(self, controller, run_config):
        await controller.start(run_config)
        with pytest.raises(AlreadyRunningError):
            await controller.start(run_config)
        with pytest.raises(AlreadyRunningError):
            await controller.start_campaign(run_config, FixedTrialsStrategy(2))

    @pytest.mark.asyncio
    async def test_stop(self, controller, fake_engine):
        await controller.start([make_config()] * 2)
        fake_engine.results.append([make_record("a")])
        await controller.tick()

        await controller.stop()

        assert controller.state is ControllerState.STOPPED
        assert controller.status_text == "stopped"
        assert fake_engine.stopped == ["run-1"]
        assert len(controller.results) == 0
        assert controller.queue.remaining == 0

        fake_engine.queue_completion()
        await controller.tick()
        assert controller.state is ControllerState.STOPPED
        assert fake_engine.batch_requests == []

    @pytest.mark.asyncio
    async def test_stop_when_idle_is_a_no_op(self, controller, fake_engine):
        await controller.stop()
        assert controller.state is ControllerState.IDLE
        assert fake_engine.stopped == []

    @pytest.mark.asyncio
    async def test_stale_tick_is_discarded(self, controller, fake_engine, run_config):
        await controller.start(run_config)
        fake_engine.poll_gate = asyncio.Event()
        fake_engine.queue_completion()

        tick = asyncio.create_task(controller.tick())
        await asyncio.sleep(0)
        await controller.stop()
        fake_engine.poll_gate.set()
        await tick

        assert controller.state is ControllerState.STOPPED
        assert fake_engine.batch_requests == []

        fake_engine.poll_gate = None
        await controller.start(run_config)
        fake_engine.queue_completion()
        await controller.tick()
        assert controller.state is ControllerState.DONE
        assert controller.current_batch.id == "run-2"

    @pytest.mark.asyncio
    async def test_stop_during_start_stops_the_late_run(
        self, controller, fake_engine, run_config
    ):
        fake_engine.start_gate = asyncio.Event()
        start = asyncio.create_task(controller.start(run_config))
        await asyncio.sleep(0)
        assert controller.state is ControllerState.STARTING

        await controller.stop()
        fake_engine.start_gate.set()
        await start

        assert controller.state is ControllerState.STOPPED
        assert fake_engine.stopped == ["run-1"]
        assert controller.active_run_id is None

    @pytest.mark.asyncio
    async def test_stop_while_queued_run_starts_stops_that_run(self, run_config):
        engine = FakeEngine()
        controller = RunController(
            engine, poll_interval=0.01, finalize_delay=0, settle_delay=0
        )
        await controller.start([run_config, run_config])
        engine.start_gate = asyncio.Event()
        engine.queue_completion()
        for _ in range(200):
            if controller.state is ControllerState.STARTING:
                break
            await asyncio.sleep(0.01)
        assert controller.state is ControllerState.STARTING
        assert controller.current_batch.id == "run-1"

        await controller.stop()
        engine.start_gate.set()
        for _ in range(200):
            if engine.stopped:
                break
            await asyncio.sleep(0.01)

        assert engine.run_ids == ["run-1", "run-2"]
        assert engine.stopped == ["run-2"]
        assert controller.state is ControllerState.STOPPED
        assert controller.active_run_id is None

    @pytest.mark.asyncio
    async def test_restart_passes_through_idle(
        self, controller, fake_engine, run_config, caplog
    ):
        caplog.set_level(logging.DEBUG, logger="llmspeed.controller.run_controller")
        await controller.start(run_config)
        fake_engine.queue_completion()
        await controller.tick()
        assert controller.state is ControllerState.DONE

        caplog.clear()
        await controller.start(run_config)

        transitions = [
            r.getMessage() for r in caplog.records if r.getMessage().startswith("Controller ")
        ]
        assert transitions[:3] == [
            "Controller done -> idle",
            "Controller idle -> starting",
            "Controller starting -> polling",
        ]


class TestAutoTick:
    """Tests for the background ticker."""

    @pytest.mark.asyncio
    async def test_run_until_done(self, run_config):
        engine = FakeEngine()
        engine.progress.append(
            [make_event(f"t{i}", run_id="run-1", total_tests=6) for i in range(6)]
        )
        controller = RunController(
            engine, poll_interval=0.01, finalize_delay=0, settle_delay=0
        )

        batches = await controller.run(run_config, timeout=5)

        assert controller.state is ControllerState.DONE
        assert [b.id for b in batches] == ["run-1"]

    @pytest.mark.asyncio
    async def test_wait_times_out_while_running(self, run_config):
        controller = RunController(
            FakeEngine(), poll_interval=0.01, finalize_delay=0, settle_delay=0
        )
        await controller.start(run_config)
        with pytest.raises(asyncio.TimeoutError):
            await controller.wait(timeout=0.05)
        await controller.stop()
        assert controller.state is ControllerState.STOPPED
