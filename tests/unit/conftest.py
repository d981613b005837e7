# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
import pytest

from llmspeed.common.config import RunConfiguration
from llmspeed.controller import RunController
from tests.harness.engines import FakeEngine
from tests.harness.factories import make_config


@pytest.fixture
def run_config() -> RunConfiguration:
    """Two rounds of three concurrent requests."""
    return make_config(round_count=2, concurrency=3)


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def controller(fake_engine: FakeEngine) -> RunController:
    """Controller driven by explicit ticks with no settling delays."""
    return RunController(
        fake_engine,
        poll_interval=0.01,
        finalize_delay=0,
        settle_delay=0,
        auto_tick=False,
    )
