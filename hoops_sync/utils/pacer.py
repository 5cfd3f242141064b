"""Request pacing for bulk provider jobs.

A ``Pacer`` turns a sequence of work items into a lazy sequence of
"ready to fetch now" signals. Each release waits a per-item delay after
the previous item's work, or a per-group delay when a new group starts.
The clock is injectable so pacing is testable without real waits.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Iterator, Sequence
from typing import Protocol, TypeVar

K = TypeVar("K")
T = TypeVar("T")


class Clock(Protocol):
    def monotonic(self) -> float: ...

    def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Wall clock backed by ``time``."""

    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


class VirtualClock:
    """Clock that advances instantly on sleep and records every wait."""

    def __init__(self, start: float = 0.0) -> None:
        self.current = start
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.current

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += seconds

    def advance(self, seconds: float) -> None:
        self.current += seconds


class Pacer:
    """Space out work: ``item_delay_ms`` within a group, ``group_delay_ms`` between groups.

    Delays are gaps between the end of one item's work and the release of
    the next, so a slow item never eats into the cool-down that follows it.
    An item's work ends when the consumer asks for the next item.
    """

    def __init__(
        self,
        item_delay_ms: int,
        group_delay_ms: int = 0,
        clock: Clock | None = None,
    ) -> None:
        self.item_delay_ms = item_delay_ms
        self.group_delay_ms = group_delay_ms
        self.clock: Clock = clock or SystemClock()
        self._last_finished: float | None = None

    def _wait_for(self, delay_ms: int) -> None:
        if self._last_finished is None or delay_ms <= 0:
            return
        remaining = self._last_finished + delay_ms / 1000 - self.clock.monotonic()
        if remaining > 0:
            self.clock.sleep(remaining)

    def _finished(self) -> None:
        self._last_finished = self.clock.monotonic()

    def pace_items(self, items: Iterable[T]) -> Iterator[T]:
        """Yield items one at a time, ``item_delay_ms`` after the previous one is done."""
        for item in items:
            self._wait_for(self.item_delay_ms)
            yield item
            self._finished()

    def pace(self, groups: Iterable[tuple[K, Iterable[T]]]) -> Iterator[tuple[K, T]]:
        """Yield ``(group_key, item)`` pairs with item and group spacing."""
        for group_index, (key, items) in enumerate(groups):
            for item_index, item in enumerate(items):
                if item_index == 0 and group_index > 0:
                    self._wait_for(self.group_delay_ms)
                else:
                    self._wait_for(self.item_delay_ms)
                yield key, item
                self._finished()


def chunked(items: Sequence[T], size: int) -> Iterator[tuple[int, Sequence[T]]]:
    """Split a sequence into ``(chunk_index, chunk)`` pairs of at most ``size`` items."""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for index, start in enumerate(range(0, len(items), size)):
        yield index, items[start:start + size]
