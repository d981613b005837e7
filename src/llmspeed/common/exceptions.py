# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Exception hierarchy for llmspeed."""


class LLMSpeedError(Exception):
    """Base class for all llmspeed errors."""


class ConfigValidationError(LLMSpeedError, ValueError):
    """A RunConfiguration is malformed (bad ranges, missing model, invalid headers).

    Raised synchronously before any run starts and never retried.
    """


class AlreadyRunningError(LLMSpeedError):
    """start() was called while a run is still active."""


class StartFailure(LLMSpeedError):
    """The execution engine rejected a start request.

    Aborts the run and any remaining queued runs of the campaign.
    """


class PollTransientError(LLMSpeedError):
    """A single poll call failed during a tick.

    The tick skips the affected update and the controller keeps ticking.
    """

    def __init__(self, stream: str, cause: BaseException) -> None:
        super().__init__(f"Polling {stream} failed: {cause!r}")
        self.stream = stream
        self.cause = cause


class FinalizationError(LLMSpeedError):
    """Fetching the final RunBatch failed after completion was detected."""


class AggregationError(LLMSpeedError):
    """A result record could not be assigned to a round or step group."""
