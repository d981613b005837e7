# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
from llmspeed.common.models.base_models import LLMSpeedBaseModel
from llmspeed.common.models.records import (
    ProgressEvent,
    ResultRecord,
    RoundSummary,
    RunBatch,
    RunSummary,
    TelemetrySample,
)

__all__ = [
    "LLMSpeedBaseModel",
    "ProgressEvent",
    "ResultRecord",
    "RoundSummary",
    "RunBatch",
    "RunSummary",
    "TelemetrySample",
]
