# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Client-side persistence of the last used run settings."""

import logging
import os
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from llmspeed.common.config.run_config import DEFAULT_RUN_CONFIGURATION, StepRange
from llmspeed.common.constants import (
    DEFAULT_CONCURRENCY_STEP,
    DEFAULT_CONCURRENCY_STEP_START,
    DEFAULT_INPUT_STEP,
    DEFAULT_INPUT_STEP_START,
)
from llmspeed.common.enums import RunMode
from llmspeed.common.environment import Environment

logger = logging.getLogger(__name__)

__all__ = [
    "ConfigStore",
    "InMemoryConfigStore",
    "JsonFileConfigStore",
    "SessionState",
    "SessionStore",
]

_CONFIG_FILE_MODE = 0o600
_CREDENTIAL_FIELDS = ("api_endpoint", "api_key", "apiEndpoint", "apiKey")


@runtime_checkable
class ConfigStore(Protocol):
    """Key/value storage the session layer persists through."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...


class InMemoryConfigStore:
    """ConfigStore kept in a plain dict. Used by tests and ephemeral sessions."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any | None:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value


class JsonFileConfigStore:
    """ConfigStore backed by a single JSON object on disk.

    The file is rewritten as a whole on every ``set`` and is created with
    owner-only permissions since it may hold an API key.
    """

    def __init__(self, path: Path | str | None = None) -> None:
        if path is None:
            path = (
                Path(Environment.SESSION.CONFIG_DIR).expanduser()
                / Environment.SESSION.CONFIG_FILE_NAME
            )
        self.path = Path(path)

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = orjson.loads(self.path.read_bytes())
        except orjson.JSONDecodeError:
            logger.warning(f"Ignoring unreadable config file: {self.path}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Ignoring config file without a JSON object: {self.path}")
            return {}
        return data

    def get(self, key: str) -> Any | None:
        return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, _CONFIG_FILE_MODE)
        with os.fdopen(fd, "wb") as f:
            f.write(orjson.dumps(data, option=orjson.OPT_INDENT_2))
        os.chmod(self.path, _CONFIG_FILE_MODE)


class SessionState(BaseModel):
    """Snapshot of the configuration form between launches.

    Attributes:
        config: Last edited run configuration fields (may be partial).
        mode: Last selected run mode.
        concurrency_step_range: Concurrency sweep settings.
        concurrency_step_count: Number of concurrency steps.
        input_step_range: Prompt length sweep settings.
        input_step_count: Number of prompt length steps.
        last_valid_api_endpoint: Endpoint of the last successfully validated API.
        last_valid_api_key: Key of the last successfully validated API.
        selected_model: Last chosen model.
    """

    model_config = ConfigDict(populate_by_name=True)

    config: dict[str, Any] = Field(default_factory=dict)
    mode: RunMode = RunMode.NORMAL
    concurrency_step_range: StepRange = Field(
        default_factory=lambda: StepRange.from_count(
            DEFAULT_CONCURRENCY_STEP_START,
            DEFAULT_CONCURRENCY_STEP,
            10,
            DEFAULT_CONCURRENCY_STEP_START,
            DEFAULT_CONCURRENCY_STEP,
        )
    )
    concurrency_step_count: int = 10
    input_step_range: StepRange = Field(
        default_factory=lambda: StepRange.from_count(
            DEFAULT_INPUT_STEP_START,
            DEFAULT_INPUT_STEP,
            3,
            DEFAULT_INPUT_STEP_START,
            DEFAULT_INPUT_STEP,
        )
    )
    input_step_count: int = 3
    last_valid_api_endpoint: str = ""
    last_valid_api_key: str = ""
    selected_model: str = ""

    def _numeric(self, *names: str) -> float:
        for name in names:
            value = self.config.get(name)
            if isinstance(value, int | float) and not isinstance(value, bool):
                return value
        return 0

    @property
    def is_meaningful(self) -> bool:
        """False for the all-zero snapshot written before any real save."""
        return (
            self._numeric("round_count", "testCount") > 0
            or self._numeric("concurrency", "concurrentTests") > 0
            or self._numeric("timeout") > 0
        )


class SessionStore:
    """Save and restore SessionState through an injected ConfigStore."""

    def __init__(self, store: ConfigStore, key: str = "session") -> None:
        self.store = store
        self.key = key

    def save(self, state: SessionState) -> None:
        self.store.set(self.key, state.model_dump(mode="json"))

    def _load_any(self) -> SessionState | None:
        raw = self.store.get(self.key)
        if raw is None:
            return None
        try:
            return SessionState.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Discarding malformed session state: {e}")
            return None

    def load(self) -> SessionState | None:
        """Load the persisted snapshot.

        Returns:
            The snapshot, or None when nothing usable was persisted.
        """
        state = self._load_any()
        if state is None:
            return None
        if not state.is_meaningful:
            logger.debug("Persisted session state is empty, using defaults")
            return None
        return state

    def remember_valid_api(self, endpoint: str, api_key: str) -> None:
        """Record an endpoint/key pair that was just validated successfully."""
        state = self._load_any() or SessionState()
        self.save(
            state.model_copy(
                update={
                    "last_valid_api_endpoint": endpoint,
                    "last_valid_api_key": api_key,
                }
            )
        )

    def restore_configuration(
        self, defaults: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Merge defaults with the persisted snapshot.

        Endpoint and key never come from the snapshot's config; only the last
        validated pair overrides the defaults. The mode always restarts at
        normal, the selected mode is kept on the state itself.
        """
        merged = dict(DEFAULT_RUN_CONFIGURATION if defaults is None else defaults)
        state = self._load_any()
        if state is None:
            return merged

        if state.is_meaningful:
            merged.update(
                {k: v for k, v in state.config.items() if k not in _CREDENTIAL_FIELDS}
            )
        if state.last_valid_api_endpoint.strip():
            merged["api_endpoint"] = state.last_valid_api_endpoint.strip()
        if state.last_valid_api_key.strip():
            merged["api_key"] = state.last_valid_api_key.strip()
        if state.selected_model:
            merged["model"] = state.selected_model
        merged["mode"] = RunMode.NORMAL.value
        merged["prompt_type"] = "fixed"
        merged["prompt"] = ""
        return merged
