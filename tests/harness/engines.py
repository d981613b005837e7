# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Scriptable in-memory execution engine for controller tests."""

import asyncio
from collections import deque

from llmspeed.common.config import RunConfiguration
from llmspeed.common.enums import ProgressStatus
from llmspeed.common.models import RunBatch
from tests.harness.factories import make_batch, make_event, make_record

_EMPTY = object()


class FakeEngine:
    """Engine double driven explicitly by the test.

    Poll responses are queued per stream; an empty queue polls as ``[]``.
    A queued exception is raised by the matching poll. ``get_run_batch``
    returns a batch built from the run's configuration unless one was set
    in ``batches``.
    """

    def __init__(self) -> None:
        self.started: list[RunConfiguration] = []
        self.run_ids: list[str] = []
        self.stopped: list[str] = []
        self.start_errors: deque[Exception | None] = deque()
        self.progress: deque = deque()
        self.results: deque = deque()
        self.telemetry: deque = deque()
        self.batches: dict[str, RunBatch | Exception | None] = {}
        self.batch_requests: list[str] = []
        self.poll_gate: asyncio.Event | None = None
        self.start_gate: asyncio.Event | None = None

    @property
    def current_run_id(self) -> str:
        return self.run_ids[-1]

    async def start_run(self, config: RunConfiguration) -> RunBatch:
        if self.start_gate is not None:
            await self.start_gate.wait()
        error = self.start_errors.popleft() if self.start_errors else None
        if error is not None:
            raise error
        run_id = f"run-{len(self.run_ids) + 1}"
        self.started.append(config)
        self.run_ids.append(run_id)
        return RunBatch.stub(run_id, config)

    async def stop_run(self, run_id: str) -> None:
        self.stopped.append(run_id)

    async def _poll(self, queue: deque) -> list:
        if self.poll_gate is not None:
            await self.poll_gate.wait()
        item = queue.popleft() if queue else []
        if isinstance(item, Exception):
            raise item
        return item

    async def poll_progress(self) -> list:
        return await self._poll(self.progress)

    async def poll_results(self) -> list:
        return await self._poll(self.results)

    async def poll_telemetry(self) -> list:
        return await self._poll(self.telemetry)

    async def get_run_batch(self, run_id: str) -> RunBatch | None:
        self.batch_requests.append(run_id)
        batch = self.batches.get(run_id, _EMPTY)
        if isinstance(batch, Exception):
            raise batch
        if batch is not _EMPTY:
            return batch
        config = self.started[self.run_ids.index(run_id)]
        return make_batch(
            batch_id=run_id,
            config=config,
            results=[
                make_record(f"{run_id}-{i}", round_number=i // config.concurrency + 1)
                for i in range(config.total_requests)
            ],
        )

    def queue_completion(self, run_id: str | None = None, failed: int = 0) -> None:
        """Queue one progress poll that completes every request of a run."""
        run_id = run_id or self.current_run_id
        total = self.started[self.run_ids.index(run_id)].total_requests
        self.progress.append(
            [
                make_event(
                    f"{run_id}-{i}",
                    ProgressStatus.FAILED if i < failed else ProgressStatus.COMPLETED,
                    run_id=run_id,
                    total_tests=total,
                )
                for i in range(total)
            ]
        )
