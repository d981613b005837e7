# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Client-side run orchestration."""

from llmspeed.controller.campaign import (
    CampaignStrategy,
    FixedTrialsStrategy,
    RunQueue,
    SingleRunStrategy,
    StepSweepStrategy,
)
from llmspeed.controller.progress import ProgressTracker
from llmspeed.controller.run_controller import RunController
from llmspeed.controller.status import (
    LiveChartPoint,
    LiveMetrics,
    compute_live_metrics,
    format_status,
)
from llmspeed.controller.stream_buffer import StreamBuffer

__all__ = [
    "CampaignStrategy",
    "FixedTrialsStrategy",
    "LiveChartPoint",
    "LiveMetrics",
    "ProgressTracker",
    "RunController",
    "RunQueue",
    "SingleRunStrategy",
    "StepSweepStrategy",
    "StreamBuffer",
    "compute_live_metrics",
    "format_status",
]
