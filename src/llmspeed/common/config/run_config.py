# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Immutable configuration for a single benchmark run."""

from collections.abc import Mapping
from typing import Annotated, Any, Literal

import orjson
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from llmspeed.common.constants import (
    DEFAULT_API_ENDPOINT,
    MAX_CONCURRENT_TESTS,
    MAX_TEST_ROUNDS,
)
from llmspeed.common.enums import RunMode
from llmspeed.common.exceptions import ConfigValidationError

__all__ = [
    "DEFAULT_RUN_CONFIGURATION",
    "RunConfiguration",
    "StepRange",
    "validate_run_configuration",
]


class StepRange(BaseModel):
    """Inclusive ``start..end`` range walked in increments of ``step``."""

    model_config = ConfigDict(frozen=True)

    start: int = 1
    end: int = 10
    step: int = 1

    @property
    def is_valid(self) -> bool:
        return self.start > 0 and self.step > 0 and self.end >= self.start

    def values(self) -> list[int]:
        """Return every step value in ascending order.

        Raises:
            ConfigValidationError: If the range is not walkable.
        """
        if not self.is_valid:
            raise ConfigValidationError(
                f"Invalid step configuration: start={self.start}, end={self.end}, step={self.step}. "
                "Start and step must be positive and end must be >= start."
            )
        return list(range(self.start, self.end + 1, self.step))

    @classmethod
    def from_count(
        cls, start: int, step: int, count: int, default_start: int, default_step: int
    ) -> "StepRange":
        """Build a range from a start, an increment and a number of steps.

        Non-positive inputs fall back to the given defaults so that a half-filled
        form still yields a usable sweep: ``end = start + step * (count - 1)``.
        """
        safe_count = max(1, count or 1)
        safe_start = start if start > 0 else default_start
        safe_step = step if step > 0 else default_step
        return cls(
            start=safe_start,
            end=safe_start + safe_step * (safe_count - 1),
            step=safe_step,
        )


class RunConfiguration(BaseModel):
    """Parameters for one benchmark run.

    Instances are frozen: the controller never mutates a configuration while it
    runs, and campaign expansion derives new instances with ``model_copy``.
    JSON aliases follow the engine's camelCase wire format.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        use_enum_values=False,
    )

    api_endpoint: str = DEFAULT_API_ENDPOINT
    api_key: str = ""
    model: Annotated[str, Field(description="Model name sent to the target API.")]
    prompt_type: Literal["fixed", "custom"] = "fixed"
    prompt_length: Annotated[
        int, Field(gt=0, description="Target prompt length in tokens.")
    ] = 512
    prompt: str = ""
    max_tokens: Annotated[int, Field(gt=0)] = 128
    temperature: Annotated[float, Field(ge=0, le=2)] = 1.0
    top_p: Annotated[float, Field(ge=0, le=1)] = 0.1
    presence_penalty: Annotated[float, Field(ge=-2, le=2)] = -1.0
    frequency_penalty: Annotated[float, Field(ge=-2, le=2)] = -1.0

    mode: Annotated[RunMode, Field(alias="testMode")] = RunMode.NORMAL
    step_range: StepRange = Field(default_factory=StepRange, alias="stepConfig")

    round_count: Annotated[
        int,
        Field(
            ge=1,
            le=MAX_TEST_ROUNDS,
            alias="testCount",
            description="Number of submission rounds (per step).",
        ),
    ] = 2
    concurrency: Annotated[
        int,
        Field(
            ge=1,
            le=MAX_CONCURRENT_TESTS,
            alias="concurrentTests",
            description="Requests issued concurrently in each round.",
        ),
    ] = 3
    timeout: Annotated[int, Field(gt=0, description="Request timeout in seconds.")] = 60
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("model")
    @classmethod
    def _require_model(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("A model must be selected before starting a run.")
        return v

    @field_validator("headers", mode="before")
    @classmethod
    def _parse_headers(cls, v: Any) -> Any:
        """Accept custom headers as a JSON object string or a mapping."""
        if v is None:
            return {}
        if isinstance(v, str):
            if not v.strip():
                return {}
            try:
                v = orjson.loads(v)
            except orjson.JSONDecodeError as err:
                raise ValueError(f"Custom headers are not valid JSON: {err}") from err
        if not isinstance(v, Mapping):
            raise ValueError(
                f"Custom headers must be a JSON object, got {type(v).__name__}."
            )
        return {str(key): str(value) for key, value in v.items()}

    @model_validator(mode="after")
    def _validate_step_range(self) -> "RunConfiguration":
        if self.mode.is_step and not self.step_range.is_valid:
            raise ValueError(
                f"Invalid step configuration for {self.mode.value}: "
                f"start={self.step_range.start}, end={self.step_range.end}, step={self.step_range.step}. "
                "Check the start value, end value and step size."
            )
        return self

    def step_values(self) -> list[int]:
        """Values walked by this configuration (a single entry in normal mode)."""
        match self.mode:
            case RunMode.CONCURRENCY_STEP | RunMode.INPUT_STEP:
                return self.step_range.values()
            case _:
                return [self.concurrency]

    @property
    def total_requests(self) -> int:
        """Number of requests the run is expected to complete.

        ``round_count * concurrency`` for a normal run. A step configuration
        whose range spans several values is executed as one run by the engine,
        so the expected total sums every step.
        """
        match self.mode:
            case RunMode.CONCURRENCY_STEP:
                return self.round_count * sum(self.step_range.values())
            case RunMode.INPUT_STEP:
                return (
                    self.round_count * self.concurrency * len(self.step_range.values())
                )
            case _:
                return self.round_count * self.concurrency

    def for_step_value(self, value: int) -> "RunConfiguration":
        """Derive the single-step configuration for one value of the sweep."""
        collapsed = StepRange(start=value, end=value, step=1)
        match self.mode:
            case RunMode.CONCURRENCY_STEP:
                return self.model_copy(
                    update={"concurrency": value, "step_range": collapsed}
                )
            case RunMode.INPUT_STEP:
                return self.model_copy(
                    update={"prompt_length": value, "step_range": collapsed}
                )
            case _:
                return self


DEFAULT_RUN_CONFIGURATION: dict[str, Any] = {
    "api_endpoint": DEFAULT_API_ENDPOINT,
    "api_key": "",
    "model": "",
    "prompt_type": "fixed",
    "prompt_length": 512,
    "prompt": "",
    "max_tokens": 128,
    "temperature": 1.0,
    "top_p": 0.1,
    "presence_penalty": -1.0,
    "frequency_penalty": -1.0,
    "mode": RunMode.NORMAL.value,
    "step_range": {"start": 1, "end": 10, "step": 1},
    "round_count": 2,
    "concurrency": 3,
    "timeout": 60,
    "headers": {},
}


def _format_validation_error(err: ValidationError) -> str:
    parts = []
    for error in err.errors():
        location = ".".join(str(loc) for loc in error["loc"]) or "configuration"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


def validate_run_configuration(
    data: Mapping[str, Any] | RunConfiguration,
) -> RunConfiguration:
    """Validate raw configuration data into a RunConfiguration.

    Args:
        data: A mapping using field names or camelCase aliases, or an existing
            configuration (returned unchanged).

    Returns:
        The validated configuration.

    Raises:
        ConfigValidationError: With a flattened, human-readable message.
    """
    if isinstance(data, RunConfiguration):
        return data
    try:
        return RunConfiguration.model_validate(dict(data))
    except ValidationError as err:
        raise ConfigValidationError(_format_validation_error(err)) from err
