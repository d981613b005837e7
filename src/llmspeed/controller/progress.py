# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
import logging
from collections.abc import Iterable

from llmspeed.common.enums import ProgressStatus
from llmspeed.common.models import ProgressEvent

logger = logging.getLogger(__name__)

__all__ = ["ProgressTracker"]


class ProgressTracker:
    """Deduplicates per-request completion signals of the active run.

    Progress events are delivered at least once, so completion is counted
    over the set of distinct terminal ``test_id`` values rather than over
    events.

    Attributes:
        run_id: Run whose events are accepted. None accepts every event.
        total_tests: Number of requests the run is expected to complete.
        has_running_updates: Whether the last ``apply`` saw a running event.
        any_failed: Whether any request of the run failed.
    """

    def __init__(self, total_tests: int = 0, run_id: str | None = None) -> None:
        self._completed_ids: set[str] = set()
        self.total_tests = 0
        self.run_id: str | None = None
        self.has_running_updates = False
        self.any_failed = False
        self.reset(total_tests, run_id)

    def reset(self, total_tests: int, run_id: str | None = None) -> None:
        """Forget everything about the previous run."""
        self._completed_ids.clear()
        self.total_tests = max(total_tests, 0)
        self.run_id = run_id
        self.has_running_updates = False
        self.any_failed = False

    def apply(self, events: Iterable[ProgressEvent]) -> None:
        """Fold one tick's worth of events into the tracker.

        ``has_running_updates`` reflects only this batch of events. Events of
        another run are ignored.
        """
        self.has_running_updates = False
        for event in events:
            if self.run_id is not None and event.run_id != self.run_id:
                logger.debug(
                    f"Ignoring progress event {event.test_id} of stale run {event.run_id}"
                )
                continue
            if event.total_tests > self.total_tests:
                self.total_tests = event.total_tests

            match event.status:
                case ProgressStatus.RUNNING:
                    self.has_running_updates = True
                case ProgressStatus.COMPLETED:
                    self._completed_ids.add(event.test_id)
                case ProgressStatus.FAILED:
                    self._completed_ids.add(event.test_id)
                    self.any_failed = True

    @property
    def completed_count(self) -> int:
        return min(len(self._completed_ids), self.total_tests)

    @property
    def is_complete(self) -> bool:
        """Every expected request has finished and none reported running in the last tick."""
        return (
            self.total_tests > 0
            and self.completed_count >= self.total_tests
            and not self.has_running_updates
        )

    @property
    def fraction(self) -> float:
        return self.completed_count / self.total_tests if self.total_tests else 0.0
