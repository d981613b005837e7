# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class LLMSpeedBaseModel(BaseModel):
    """Base for engine wire models.

    Python code uses snake_case field names; JSON in and out of an execution
    engine uses the camelCase aliases. Instances are immutable once built.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )
