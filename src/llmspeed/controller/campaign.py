# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Campaign strategies and the queue of pending runs."""

import logging
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Iterable, Iterator

from llmspeed.common.config import RunConfiguration, StepRange
from llmspeed.common.constants import (
    DEFAULT_CONCURRENCY_STEP,
    DEFAULT_CONCURRENCY_STEP_START,
    DEFAULT_INPUT_STEP,
    DEFAULT_INPUT_STEP_START,
)
from llmspeed.common.enums import RunMode, RunType
from llmspeed.common.exceptions import ConfigValidationError

logger = logging.getLogger(__name__)

__all__ = [
    "CampaignStrategy",
    "FixedTrialsStrategy",
    "RunQueue",
    "SingleRunStrategy",
    "StepSweepStrategy",
]


class CampaignStrategy(ABC):
    """Base class for campaign strategies.

    Strategies decide:
    1. Which configurations a campaign runs, in order
    2. How to label each run
    3. Cooldown duration between runs
    """

    run_type: RunType = RunType.AUTO

    def validate_config(self, config: RunConfiguration) -> None:  # noqa: B027
        """Reject a base configuration this strategy cannot expand.

        Args:
            config: Base configuration

        Raises:
            ConfigValidationError: If the configuration is unsuitable.
        """

    @abstractmethod
    def expand(self, base_config: RunConfiguration) -> list[RunConfiguration]:
        """Return the configurations of the campaign, in execution order."""

    @abstractmethod
    def get_run_label(self, run_index: int) -> str:
        """Label for the run at a zero-based index."""

    def get_cooldown_seconds(self) -> float:
        """Extra pause between runs on top of the controller's settle delay."""
        return 0.0


class SingleRunStrategy(CampaignStrategy):
    """Run the configuration exactly once, as is."""

    run_type = RunType.SINGLE

    def expand(self, base_config: RunConfiguration) -> list[RunConfiguration]:
        return [base_config]

    def get_run_label(self, run_index: int) -> str:
        return "run"


class FixedTrialsStrategy(CampaignStrategy):
    """Repeat an identical configuration to measure run-to-run variance.

    Attributes:
        num_trials: Number of trials to run
        cooldown_seconds: Extra pause between trials
    """

    def __init__(self, num_trials: int, cooldown_seconds: float = 0.0) -> None:
        """Initialize FixedTrialsStrategy.

        Raises:
            ValueError: If num_trials < 1 or cooldown_seconds < 0
        """
        if num_trials < 1:
            raise ValueError(
                f"Invalid number of trials: {num_trials}. At least one trial is required."
            )
        if cooldown_seconds < 0:
            raise ValueError(
                f"Invalid cooldown duration: {cooldown_seconds} seconds. "
                "Cooldown must be non-negative (0 or greater)."
            )
        self.num_trials = num_trials
        self.cooldown_seconds = cooldown_seconds

    def expand(self, base_config: RunConfiguration) -> list[RunConfiguration]:
        return [base_config] * self.num_trials

    def get_run_label(self, run_index: int) -> str:
        """Zero-padded label: trial_0001, trial_0002, etc."""
        return f"trial_{run_index + 1:04d}"

    def get_cooldown_seconds(self) -> float:
        return self.cooldown_seconds


class StepSweepStrategy(CampaignStrategy):
    """One run per value of a concurrency or prompt-length sweep.

    Each expanded configuration keeps the step mode but collapses its range to
    the single value, so every run is a one-step run and produces its own batch.

    Attributes:
        mode: Which parameter is swept
        values: Sweep values, in execution order
        cooldown_seconds: Extra pause between sweep values
    """

    def __init__(
        self,
        mode: RunMode,
        values: Iterable[int],
        cooldown_seconds: float = 0.0,
    ) -> None:
        """Initialize StepSweepStrategy.

        Raises:
            ValueError: If the mode is not a step mode, values is empty or
                contains non-positive entries, or cooldown_seconds < 0
        """
        values = list(values)
        if not mode.is_step:
            raise ValueError(
                f"StepSweepStrategy requires a step mode, got '{mode.value}'. "
                "Use SingleRunStrategy or FixedTrialsStrategy for normal runs."
            )
        if not values:
            raise ValueError("A step sweep requires at least one value to test.")
        if any(v <= 0 for v in values):
            raise ValueError(f"Sweep values must be positive, got {values}")
        if cooldown_seconds < 0:
            raise ValueError(
                f"Invalid cooldown duration: {cooldown_seconds} seconds. "
                "Cooldown must be non-negative (0 or greater)."
            )
        self.mode = mode
        self.values = values
        self.cooldown_seconds = cooldown_seconds

    @classmethod
    def from_config(
        cls, config: RunConfiguration, cooldown_seconds: float = 0.0
    ) -> "StepSweepStrategy":
        """Sweep the ``start..end`` range carried by a step-mode configuration.

        Raises:
            ConfigValidationError: If the configuration is not in a step mode.
        """
        if not config.mode.is_step:
            raise ConfigValidationError(
                f"Run mode '{config.mode.value}' has no step range to sweep."
            )
        return cls(config.mode, config.step_range.values(), cooldown_seconds)

    @classmethod
    def from_count(
        cls,
        mode: RunMode,
        start: int,
        step: int,
        count: int,
        cooldown_seconds: float = 0.0,
    ) -> "StepSweepStrategy":
        """Sweep ``count`` values from ``start`` in increments of ``step``.

        Non-positive start or step fall back to the mode's defaults.
        """
        if mode is RunMode.INPUT_STEP:
            defaults = (DEFAULT_INPUT_STEP_START, DEFAULT_INPUT_STEP)
        else:
            defaults = (DEFAULT_CONCURRENCY_STEP_START, DEFAULT_CONCURRENCY_STEP)
        step_range = StepRange.from_count(start, step, count, *defaults)
        return cls(mode, step_range.values(), cooldown_seconds)

    @property
    def parameter_name(self) -> str:
        return "concurrency" if self.mode is RunMode.CONCURRENCY_STEP else "prompt_length"

    def validate_config(self, config: RunConfiguration) -> None:
        if config.mode is not self.mode:
            logger.info(
                f"Base configuration mode '{config.mode.value}' overridden by "
                f"{self.mode.value} sweep"
            )

    def expand(self, base_config: RunConfiguration) -> list[RunConfiguration]:
        base = base_config.model_copy(update={"mode": self.mode})
        return [base.for_step_value(value) for value in self.values]

    def get_run_label(self, run_index: int) -> str:
        """Label: concurrency_4, prompt_length_2048, etc."""
        return f"{self.parameter_name}_{self.values[run_index]}"

    def get_cooldown_seconds(self) -> float:
        return self.cooldown_seconds


class RunQueue:
    """Ordered pending configurations of a campaign.

    The controller pops the head only after the previous run has been
    finalized. An empty queue with no active run means the campaign is done.
    """

    def __init__(
        self,
        configs: Iterable[RunConfiguration] = (),
        labels: Iterable[str] | None = None,
    ) -> None:
        configs = list(configs)
        if labels is None:
            labels = [f"run_{i + 1:04d}" for i in range(len(configs))]
        labels = list(labels)
        if len(labels) != len(configs):
            raise ValueError(
                f"Got {len(labels)} labels for {len(configs)} configurations"
            )
        self._pending: deque[tuple[str, RunConfiguration]] = deque(zip(labels, configs))
        self.total = len(configs)

    @classmethod
    def from_strategy(
        cls, base_config: RunConfiguration, strategy: CampaignStrategy
    ) -> "RunQueue":
        strategy.validate_config(base_config)
        configs = strategy.expand(base_config)
        labels = [strategy.get_run_label(i) for i in range(len(configs))]
        logger.debug(
            f"{strategy.__class__.__name__} expanded into {len(configs)} run(s): {labels}"
        )
        return cls(configs, labels)

    def pop(self) -> tuple[str, RunConfiguration] | None:
        """Remove and return the next (label, configuration), or None when empty."""
        return self._pending.popleft() if self._pending else None

    def peek(self) -> tuple[str, RunConfiguration] | None:
        return self._pending[0] if self._pending else None

    def clear(self) -> None:
        self._pending.clear()

    @property
    def remaining(self) -> int:
        return len(self._pending)

    def __len__(self) -> int:
        return len(self._pending)

    def __bool__(self) -> bool:
        return bool(self._pending)

    def __iter__(self) -> Iterator[RunConfiguration]:
        return iter([config for _, config in self._pending])
