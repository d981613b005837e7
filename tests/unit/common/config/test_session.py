# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Tests for config stores and session persistence."""

import logging
import os
import stat

import pytest

from llmspeed.common.config import (
    DEFAULT_RUN_CONFIGURATION,
    ConfigStore,
    InMemoryConfigStore,
    JsonFileConfigStore,
    SessionState,
    SessionStore,
    StepRange,
    validate_run_configuration,
)
from llmspeed.common.enums import RunMode


@pytest.fixture
def store() -> InMemoryConfigStore:
    return InMemoryConfigStore()


@pytest.fixture
def session_store(store: InMemoryConfigStore) -> SessionStore:
    return SessionStore(store)


def _meaningful_state(**kwargs) -> SessionState:
    kwargs.setdefault("config", {"round_count": 5, "concurrency": 4, "timeout": 30})
    return SessionState(**kwargs)


class TestConfigStores:
    """Tests for the ConfigStore implementations."""

    @pytest.mark.parametrize(
        "factory",
        [InMemoryConfigStore, lambda: JsonFileConfigStore("unused.json")],
    )
    def test_implementations_satisfy_protocol(self, factory):
        assert isinstance(factory(), ConfigStore)

    def test_in_memory_round_trip(self, store):
        assert store.get("missing") is None
        store.set("key", {"a": 1})
        assert store.get("key") == {"a": 1}

    def test_json_file_persists_between_instances(self, tmp_path):
        path = tmp_path / "nested" / "config.json"
        JsonFileConfigStore(path).set("session", {"mode": "normal"})
        JsonFileConfigStore(path).set("other", 1)

        reopened = JsonFileConfigStore(path)
        assert reopened.get("session") == {"mode": "normal"}
        assert reopened.get("other") == 1

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions only")
    def test_json_file_is_owner_only(self, tmp_path):
        path = tmp_path / "config.json"
        JsonFileConfigStore(path).set("session", {"api_key": "secret"})
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    @pytest.mark.parametrize("content", [b"{broken", b"[1, 2, 3]"])
    def test_json_file_ignores_unusable_content(self, tmp_path, caplog, content):
        path = tmp_path / "config.json"
        path.write_bytes(content)
        with caplog.at_level(logging.WARNING):
            assert JsonFileConfigStore(path).get("session") is None
        assert "Ignoring" in caplog.text

    def test_json_file_missing_file_reads_empty(self, tmp_path):
        assert JsonFileConfigStore(tmp_path / "absent.json").get("session") is None


class TestSessionState:
    """Tests for SessionState defaults and emptiness."""

    def test_default_step_ranges(self):
        state = SessionState()
        assert state.concurrency_step_range == StepRange(start=1, end=10, step=1)
        assert state.input_step_range == StepRange(start=2048, end=6144, step=2048)
        assert state.concurrency_step_count == 10
        assert state.input_step_count == 3

    @pytest.mark.parametrize(
        "config,expected",
        [
            ({}, False),
            ({"round_count": 0, "concurrency": 0, "timeout": 0}, False),
            ({"round_count": 2}, True),
            ({"concurrentTests": 3}, True),
            ({"timeout": 60}, True),
            ({"testCount": 0, "concurrency": "5"}, False),
        ],
    )
    def test_is_meaningful(self, config, expected):
        assert SessionState(config=config).is_meaningful is expected


class TestSessionStore:
    """Tests for saving and restoring sessions."""

    def test_load_without_snapshot_returns_none(self, session_store):
        assert session_store.load() is None

    def test_save_then_load(self, session_store):
        state = _meaningful_state(mode=RunMode.INPUT_STEP, selected_model="m")
        session_store.save(state)
        loaded = session_store.load()
        assert loaded == state

    def test_empty_snapshot_is_ignored(self, session_store):
        session_store.save(SessionState(config={"round_count": 0}))
        assert session_store.load() is None

    def test_malformed_snapshot_is_ignored(self, store, session_store, caplog):
        store.set("session", {"mode": "sideways"})
        with caplog.at_level(logging.WARNING):
            assert session_store.load() is None
        assert "malformed" in caplog.text

    def test_restore_without_snapshot_returns_defaults(self, session_store):
        assert session_store.restore_configuration() == DEFAULT_RUN_CONFIGURATION

    def test_restore_never_takes_credentials_from_snapshot(self, session_store):
        session_store.save(
            _meaningful_state(
                config={
                    "round_count": 5,
                    "api_endpoint": "http://stale",
                    "apiKey": "stale-key",
                    "api_key": "stale-key",
                }
            )
        )
        restored = session_store.restore_configuration()
        assert restored["round_count"] == 5
        assert restored["api_endpoint"] == DEFAULT_RUN_CONFIGURATION["api_endpoint"]
        assert restored["api_key"] == ""
        assert "apiKey" not in restored

    def test_restore_applies_last_valid_api(self, session_store):
        session_store.save(_meaningful_state())
        session_store.remember_valid_api(" http://valid ", "key-1")
        restored = session_store.restore_configuration()
        assert restored["api_endpoint"] == "http://valid"
        assert restored["api_key"] == "key-1"

    def test_restore_resets_mode_and_prompt(self, session_store):
        session_store.save(
            _meaningful_state(
                config={
                    "round_count": 5,
                    "mode": "concurrency_step",
                    "prompt_type": "custom",
                    "prompt": "hello",
                },
                mode=RunMode.CONCURRENCY_STEP,
                selected_model="llama",
            )
        )
        restored = session_store.restore_configuration()
        assert restored["mode"] == "normal"
        assert restored["prompt_type"] == "fixed"
        assert restored["prompt"] == ""
        assert restored["model"] == "llama"
        assert validate_run_configuration(restored).round_count == 5

    def test_remember_valid_api_keeps_existing_state(self, session_store):
        session_store.save(_meaningful_state(selected_model="llama"))
        session_store.remember_valid_api("http://valid", "key-1")
        state = session_store.load()
        assert state.selected_model == "llama"
        assert state.last_valid_api_endpoint == "http://valid"

    def test_custom_key(self, store):
        SessionStore(store, key="profile-a").save(_meaningful_state())
        assert store.get("profile-a") is not None
        assert store.get("session") is None

    def test_valid_api_restored_without_saved_configuration(self, session_store):
        session_store.remember_valid_api("http://valid", "key-1")
        assert session_store.load() is None
        restored = session_store.restore_configuration()
        assert restored["api_endpoint"] == "http://valid"
        assert restored["api_key"] == "key-1"
        assert restored["round_count"] == DEFAULT_RUN_CONFIGURATION["round_count"]
