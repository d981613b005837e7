# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
from typing import Protocol, runtime_checkable

from llmspeed.common.config import RunConfiguration
from llmspeed.common.models import (
    ProgressEvent,
    ResultRecord,
    RunBatch,
    TelemetrySample,
)


@runtime_checkable
class ExecutionEngineProtocol(Protocol):
    """Executes benchmark runs and exposes their incremental streams.

    Every method may raise. The poll methods return only what arrived since
    the previous call; progress events may be delivered more than once.
    """

    async def start_run(self, config: RunConfiguration) -> RunBatch:
        """Start a run and return a stub batch carrying its id."""
        ...

    async def stop_run(self, run_id: str) -> None: ...

    async def poll_progress(self) -> list[ProgressEvent]: ...

    async def poll_results(self) -> list[ResultRecord]: ...

    async def poll_telemetry(self) -> list[TelemetrySample]: ...

    async def get_run_batch(self, run_id: str) -> RunBatch | None:
        """Return the authoritative batch of a finished run, or None if unknown."""
        ...
