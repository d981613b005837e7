# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Closed enumerations shared across the controller, engine and aggregation layers."""

from enum import Enum


class RunMode(str, Enum):
    """How a run (or campaign) varies its load.

    The mode also selects the grouping key used when slicing results into
    round or step summaries.
    """

    NORMAL = "normal"
    CONCURRENCY_STEP = "concurrency_step"
    INPUT_STEP = "input_step"

    @property
    def is_step(self) -> bool:
        return self is not RunMode.NORMAL


class ProgressStatus(str, Enum):
    """Lifecycle status carried by a ProgressEvent."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not ProgressStatus.RUNNING


class ControllerState(str, Enum):
    """States of the RunController state machine."""

    IDLE = "idle"
    STARTING = "starting"
    POLLING = "polling"
    FINALIZING = "finalizing"
    ADVANCING = "advancing"
    DONE = "done"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_active(self) -> bool:
        """A run is in flight (start is rejected in these states)."""
        return self in _ACTIVE_STATES

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_ACTIVE_STATES = frozenset(
    {
        ControllerState.STARTING,
        ControllerState.POLLING,
        ControllerState.FINALIZING,
        ControllerState.ADVANCING,
    }
)
_TERMINAL_STATES = frozenset(
    {ControllerState.DONE, ControllerState.FAILED, ControllerState.STOPPED}
)


class RunType(str, Enum):
    """Whether the active campaign is a single run or an automatic queue."""

    SINGLE = "single"
    AUTO = "auto"
