from __future__ import annotations

import asyncio
from typing import Generic, TypeVar

from core.models import Record

T = TypeVar("T")


class HarvestState:
    """Everything one harvest run shares between its event sources."""

    def __init__(self, target: int) -> None:
        if target < 0:
            raise ValueError(f"target must be non-negative, got {target}")
        self.target = target
        self.records: list[Record] = []
        self.pending = 0
        self.done = False

    @property
    def collected(self) -> int:
        return len(self.records)

    @property
    def capped(self) -> bool:
        return len(self.records) >= self.target

    def append(self, record: Record) -> bool:
        if self.done or self.capped:
            return False
        self.records.append(record)
        return True


class CompletionCell(Generic[T]):
    """Single-assignment result; only the first resolve or fail counts."""

    def __init__(self) -> None:
        self._future: asyncio.Future[T] = asyncio.get_running_loop().create_future()

    @property
    def resolved(self) -> bool:
        return self._future.done()

    def resolve(self, value: T) -> bool:
        if self._future.done():
            return False
        self._future.set_result(value)
        return True

    def fail(self, exc: BaseException) -> bool:
        """Settle with *exc*; a cancellation cancels the result instead."""
        if self._future.done():
            return False
        if isinstance(exc, asyncio.CancelledError):
            self._future.cancel()
        else:
            self._future.set_exception(exc)
            # mark retrieved; the failing run() raises it to its own caller
            self._future.exception()
        return True

    async def wait(self) -> T:
        return await asyncio.shield(self._future)
