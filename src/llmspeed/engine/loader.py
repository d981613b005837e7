# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
import importlib
import logging
from typing import Any

from llmspeed.engine.protocols import ExecutionEngineProtocol

logger = logging.getLogger(__name__)

DEFAULT_ENGINE = "llmspeed.engine.synthetic:create_engine"


def load_engine(spec: str | None = None, **kwargs: Any) -> ExecutionEngineProtocol:
    """Instantiate an execution engine from a ``package.module:factory`` path.

    Args:
        spec: Import path of a zero-argument (or keyword-only) factory or class.
            Defaults to the synthetic engine.
        **kwargs: Passed to the factory.

    Raises:
        ValueError: If the path is malformed, cannot be imported, or the
            factory does not return an execution engine.
    """
    spec = spec or DEFAULT_ENGINE
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(
            f"Invalid engine path: '{spec}'. Expected 'package.module:factory', "
            f"for example '{DEFAULT_ENGINE}'."
        )

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ValueError(f"Cannot import engine module '{module_name}': {e}") from e

    factory = getattr(module, attr, None)
    if factory is None or not callable(factory):
        raise ValueError(f"Module '{module_name}' has no callable '{attr}'")

    engine = factory(**kwargs)
    if not isinstance(engine, ExecutionEngineProtocol):
        raise ValueError(
            f"'{spec}' returned {type(engine).__name__}, which does not implement "
            "start_run/stop_run/poll_progress/poll_results/poll_telemetry/get_run_batch"
        )
    logger.debug(f"Loaded execution engine {type(engine).__name__} from {spec}")
    return engine
