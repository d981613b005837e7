# SPDX-FileCopyrightText: Copyright (c) 2025-2026 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
from collections import deque
from collections.abc import Iterable, Iterator
from typing import Generic, TypeVar

T = TypeVar("T")

__all__ = ["StreamBuffer"]


class StreamBuffer(Generic[T]):
    """Bounded buffer for one incremental stream.

    Items are kept in arrival order. Once ``capacity`` is reached every new
    item evicts the oldest one.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"StreamBuffer capacity must be >= 1, got {capacity}")
        self._items: deque[T] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._items.maxlen  # type: ignore[return-value]

    def merge(self, items: Iterable[T]) -> None:
        self._items.extend(items)

    def snapshot(self) -> list[T]:
        """Copy of the retained items, oldest first."""
        return list(self._items)

    def latest(self) -> T | None:
        return self._items[-1] if self._items else None

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(list(self._items))

    def __bool__(self) -> bool:
        return bool(self._items)

    def __repr__(self) -> str:
        return f"StreamBuffer(len={len(self)}, capacity={self.capacity})"
