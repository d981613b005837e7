# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

MILLIS_PER_SECOND = 1000
NANOS_PER_MILLIS = 1_000_000
NANOS_PER_SECOND = 1_000_000_000

# Validation limits for a single run
MAX_TEST_ROUNDS = 100
MAX_CONCURRENT_TESTS = 50

# Live stream retention
MAX_REALTIME_RESULTS = 500
MAX_TELEMETRY_POINTS = 600  # 5 minutes at the 500ms telemetry interval
MAX_COMPLETED_BATCHES = 50
MAX_LIVE_CHART_POINTS = 50
LIVE_TPS_WINDOW = 5

TELEMETRY_INTERVAL_SEC = 0.5

DEFAULT_API_ENDPOINT = "https://api.openai.com/v1"
DEFAULT_CONCURRENCY_STEP_START = 1
DEFAULT_CONCURRENCY_STEP = 1
DEFAULT_INPUT_STEP_START = 2048
DEFAULT_INPUT_STEP = 2048
