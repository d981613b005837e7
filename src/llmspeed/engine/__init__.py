# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
from llmspeed.engine.loader import DEFAULT_ENGINE, load_engine
from llmspeed.engine.protocols import ExecutionEngineProtocol
from llmspeed.engine.synthetic import LatencyModel, SyntheticEngine, create_engine

__all__ = [
    "DEFAULT_ENGINE",
    "ExecutionEngineProtocol",
    "LatencyModel",
    "SyntheticEngine",
    "create_engine",
    "load_engine",
]
