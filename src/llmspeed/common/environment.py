# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Environment-driven settings.

Every group reads its own prefix, e.g. ``LLMSPEED_CONTROLLER_POLL_INTERVAL=0.25``.
Components read these values at construction time, so tests may monkeypatch
the attributes on ``Environment.<GROUP>`` directly.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from llmspeed.common.constants import (
    MAX_COMPLETED_BATCHES,
    MAX_REALTIME_RESULTS,
    MAX_TELEMETRY_POINTS,
)

__all__ = ["Environment"]


class _ControllerSettings(BaseSettings):
    """Run controller polling cadence, settling delays and buffer capacities."""

    model_config = SettingsConfigDict(env_prefix="LLMSPEED_CONTROLLER_")

    POLL_INTERVAL: float = Field(
        0.5,
        gt=0,
        description="Seconds between polling ticks while a run is active.",
    )
    FINALIZE_DELAY: float = Field(
        0.5,
        ge=0,
        description="Seconds to wait after completion is detected before fetching the final batch.",
    )
    SETTLE_DELAY: float = Field(
        1.0,
        ge=0,
        description="Seconds to wait between queued runs so the engine can release resources.",
    )
    RESULTS_CAPACITY: int = Field(
        MAX_REALTIME_RESULTS,
        ge=1,
        description="Maximum number of live result records retained for charts.",
    )
    TELEMETRY_CAPACITY: int = Field(
        MAX_TELEMETRY_POINTS,
        ge=1,
        description="Maximum number of telemetry samples retained.",
    )
    HISTORY_CAPACITY: int = Field(
        MAX_COMPLETED_BATCHES,
        ge=1,
        description="Maximum number of completed batches kept in the global history.",
    )


class _LoggingSettings(BaseSettings):
    """Console logging."""

    model_config = SettingsConfigDict(env_prefix="LLMSPEED_LOGGING_")

    LEVEL: str = Field("INFO", description="Log level for the llmspeed logger.")
    RICH_TRACEBACKS: bool = Field(
        False, description="Render exception tracebacks with rich."
    )


class _SessionSettings(BaseSettings):
    """Where session state is persisted between invocations."""

    model_config = SettingsConfigDict(env_prefix="LLMSPEED_SESSION_")

    CONFIG_DIR: Path = Field(
        Path.home() / ".config" / "llmspeed",
        description="Directory holding config.json.",
    )
    CONFIG_FILE_NAME: str = Field("config.json", description="Session file name.")


class _Environment(BaseSettings):
    CONTROLLER: _ControllerSettings = Field(default_factory=_ControllerSettings)
    LOGGING: _LoggingSettings = Field(default_factory=_LoggingSettings)
    SESSION: _SessionSettings = Field(default_factory=_SessionSettings)


Environment = _Environment()
