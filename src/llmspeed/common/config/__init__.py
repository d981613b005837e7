# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
from llmspeed.common.config.run_config import (
    DEFAULT_RUN_CONFIGURATION,
    RunConfiguration,
    StepRange,
    validate_run_configuration,
)
from llmspeed.common.config.session import (
    ConfigStore,
    InMemoryConfigStore,
    JsonFileConfigStore,
    SessionState,
    SessionStore,
)

__all__ = [
    "DEFAULT_RUN_CONFIGURATION",
    "ConfigStore",
    "InMemoryConfigStore",
    "JsonFileConfigStore",
    "RunConfiguration",
    "SessionState",
    "SessionStore",
    "StepRange",
    "validate_run_configuration",
]
