from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


class FetchThrottle:
    """
    Fixed inter-call delay for upstream requests.

    Callers pause between consecutive upstream calls, never before the first
    one of a sequence.
    """

    def __init__(self, *, delay_seconds: float, sleep: SleepFn | None = None) -> None:
        self._delay_seconds = max(0.0, delay_seconds)
        self._sleep: SleepFn = sleep if sleep is not None else asyncio.sleep

    @property
    def delay_seconds(self) -> float:
        return self._delay_seconds

    async def pause(self) -> None:
        if self._delay_seconds <= 0:
            return
        await self._sleep(self._delay_seconds)


async def run_throttled(
    factories: Iterable[Callable[[], Awaitable[T]]],
    *,
    throttle: FetchThrottle,
) -> list[T]:
    results: list[T] = []
    for index, factory in enumerate(factories):
        if index > 0:
            await throttle.pause()
        results.append(await factory())
    return results
