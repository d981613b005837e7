# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Command line interface."""

import sys
from typing import Annotated, Any, Literal

import orjson
from cyclopts import App, Group, Parameter
from rich.console import Console
from rich.panel import Panel

from llmspeed import __version__
from llmspeed.common.config import (
    DEFAULT_RUN_CONFIGURATION,
    JsonFileConfigStore,
    RunConfiguration,
    SessionState,
    SessionStore,
    StepRange,
    validate_run_configuration,
)
from llmspeed.common.constants import (
    DEFAULT_CONCURRENCY_STEP,
    DEFAULT_CONCURRENCY_STEP_START,
    DEFAULT_INPUT_STEP,
    DEFAULT_INPUT_STEP_START,
)
from llmspeed.common.enums import RunMode
from llmspeed.common.exceptions import LLMSpeedError
from llmspeed.common.logging import setup_rich_logging

app = App(name="llmspeed", help="LLM inference speed benchmarking campaigns.", version=__version__)

_ENDPOINT = Group.create_ordered("Endpoint")
_REQUEST = Group.create_ordered("Request")
_LOAD = Group.create_ordered("Load")
_STEP = Group.create_ordered("Step Sweep")
_CAMPAIGN = Group.create_ordered("Campaign")
_ENGINE = Group.create_ordered("Engine")

ModeName = Literal["normal", "concurrency_step", "input_step"]


def _exit_with_error(message: str, title: str = "Error") -> None:
    Console(stderr=True).print(Panel(message, title=title, border_style="red"))
    sys.exit(1)


def build_config_data(
    base: dict[str, Any],
    overrides: dict[str, Any],
    step_start: int | None = None,
    step: int | None = None,
    step_count: int | None = None,
) -> dict[str, Any]:
    """Apply command line overrides on top of a base configuration mapping.

    ``None`` overrides are ignored. In step modes the sweep range is derived
    from ``step_start``, ``step`` and ``step_count``, with the mode's defaults
    for anything non-positive or missing.
    """
    data = dict(base)
    data.update({k: v for k, v in overrides.items() if v is not None})

    mode = RunMode(data.get("mode", RunMode.NORMAL.value))
    if mode.is_step and step_count is not None:
        if mode is RunMode.INPUT_STEP:
            defaults = (DEFAULT_INPUT_STEP_START, DEFAULT_INPUT_STEP)
        else:
            defaults = (DEFAULT_CONCURRENCY_STEP_START, DEFAULT_CONCURRENCY_STEP)
        data["step_range"] = StepRange.from_count(
            step_start or 0, step or 0, step_count, *defaults
        ).model_dump()
    return data


@app.command
def run(
    model: Annotated[
        str | None,
        Parameter(name=("--model", "-m"), group=_ENDPOINT, help="Model to benchmark."),
    ] = None,
    api_endpoint: Annotated[
        str | None, Parameter(name="--api-endpoint", group=_ENDPOINT)
    ] = None,
    api_key: Annotated[str | None, Parameter(name="--api-key", group=_ENDPOINT)] = None,
    prompt_length: Annotated[
        int | None, Parameter(name="--prompt-length", group=_REQUEST)
    ] = None,
    max_tokens: Annotated[int | None, Parameter(name="--max-tokens", group=_REQUEST)] = None,
    temperature: Annotated[
        float | None, Parameter(name="--temperature", group=_REQUEST)
    ] = None,
    timeout: Annotated[
        int | None,
        Parameter(name="--timeout", group=_REQUEST, help="Per-request timeout in seconds."),
    ] = None,
    mode: Annotated[ModeName | None, Parameter(name="--mode", group=_LOAD)] = None,
    rounds: Annotated[
        int | None,
        Parameter(name=("--rounds", "-r"), group=_LOAD, help="Number of rounds (1-100)."),
    ] = None,
    concurrency: Annotated[
        int | None,
        Parameter(
            name=("--concurrency", "-c"),
            group=_LOAD,
            help="Concurrent requests per round (1-50).",
        ),
    ] = None,
    step_start: Annotated[
        int | None, Parameter(name="--step-start", group=_STEP)
    ] = None,
    step: Annotated[int | None, Parameter(name="--step", group=_STEP)] = None,
    step_count: Annotated[
        int | None,
        Parameter(
            name="--step-count",
            group=_STEP,
            help="Number of sweep values; the range ends at start + step * (count - 1).",
        ),
    ] = None,
    trials: Annotated[
        int,
        Parameter(
            name="--trials",
            group=_CAMPAIGN,
            help="Repeat a normal-mode run to compute confidence intervals.",
        ),
    ] = 1,
    cooldown: Annotated[
        float,
        Parameter(
            name="--cooldown-seconds",
            group=_CAMPAIGN,
            help="Extra pause between campaign runs.",
        ),
    ] = 0.0,
    confidence_level: Annotated[
        float, Parameter(name="--confidence-level", group=_CAMPAIGN)
    ] = 0.95,
    campaign_timeout: Annotated[
        float | None,
        Parameter(
            name="--campaign-timeout",
            group=_CAMPAIGN,
            help="Stop the campaign after this many seconds.",
        ),
    ] = None,
    engine: Annotated[
        str | None,
        Parameter(
            name="--engine",
            group=_ENGINE,
            help="Execution engine factory as 'package.module:factory'.",
        ),
    ] = None,
    time_scale: Annotated[
        float,
        Parameter(
            name="--time-scale",
            group=_ENGINE,
            help="Synthetic engine only: wall-clock seconds per simulated second.",
        ),
    ] = 0.0,
    seed: Annotated[int, Parameter(name="--seed", group=_ENGINE)] = 42,
    session: Annotated[
        bool,
        Parameter(
            name="--session",
            help="Start from the saved session and save the configuration afterwards.",
        ),
    ] = False,
    log_level: Annotated[str | None, Parameter(name="--log-level")] = None,
) -> None:
    """Run a benchmark, a step sweep or repeated trials."""
    from llmspeed.cli_runner import run_benchmark

    setup_rich_logging(log_level)

    store = SessionStore(JsonFileConfigStore()) if session else None
    base = store.restore_configuration() if store else dict(DEFAULT_RUN_CONFIGURATION)
    data = build_config_data(
        base,
        {
            "model": model,
            "api_endpoint": api_endpoint,
            "api_key": api_key,
            "prompt_length": prompt_length,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "timeout": timeout,
            "mode": mode,
            "round_count": rounds,
            "concurrency": concurrency,
        },
        step_start=step_start,
        step=step,
        step_count=step_count,
    )

    try:
        config = validate_run_configuration(data)
    except LLMSpeedError as e:
        _exit_with_error(str(e), title="Invalid Configuration")
        return

    engine_kwargs = {} if engine else {"time_scale": time_scale, "seed": seed}
    try:
        run_benchmark(
            config,
            engine_path=engine,
            engine_kwargs=engine_kwargs,
            trials=trials,
            cooldown_seconds=cooldown,
            confidence_level=confidence_level,
            timeout=campaign_timeout,
        )
    except (LLMSpeedError, ValueError) as e:
        _exit_with_error(str(e), title="Benchmark Failed")
    finally:
        if store is not None:
            _save_session(store, config)


def _save_session(store: SessionStore, config: RunConfiguration) -> None:
    update: dict[str, Any] = {
        "config": config.model_dump(mode="json", exclude={"api_key"}),
        "mode": config.mode,
        "selected_model": config.model,
    }
    match config.mode:
        case RunMode.CONCURRENCY_STEP:
            update["concurrency_step_range"] = config.step_range
            update["concurrency_step_count"] = len(config.step_values())
        case RunMode.INPUT_STEP:
            update["input_step_range"] = config.step_range
            update["input_step_count"] = len(config.step_values())
    state = store.load() or SessionState()
    store.save(state.model_copy(update=update))


@app.command
def defaults(
    session: Annotated[
        bool, Parameter(name="--session", help="Merge the saved session into the defaults.")
    ] = False,
) -> None:
    """Print the default run configuration as JSON."""
    data = (
        SessionStore(JsonFileConfigStore()).restore_configuration()
        if session
        else dict(DEFAULT_RUN_CONFIGURATION)
    )
    data["api_key"] = "***" if data.get("api_key") else ""
    Console().print_json(orjson.dumps(data).decode())


def main() -> None:
    app()


if __name__ == "__main__":
    main()
