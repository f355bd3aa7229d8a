"""Latest-value broadcast cell.

One writer replaces the value; any number of readers either read the current
reference or subscribe and get woken when a newer value is published:

    cell = StateCell(initial)
    cell.get()                      # current value, no locking
    async for value in cell.subscribe():
        ...                         # current value first, then each newer one

A subscriber that falls behind only ever sees the most recent value.
"""

from __future__ import annotations

import asyncio
import threading
from typing import AsyncIterator, Generic, TypeVar

T = TypeVar("T")


class _Mailbox(Generic[T]):
    """Single-slot inbox bound to the subscriber's event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop
        self.value: T | None = None
        self.version = -1
        self.ready = asyncio.Event()

    def offer(self, value: T, version: int) -> None:
        # Runs on self.loop.
        if version <= self.version:
            return
        self.value = value
        self.version = version
        self.ready.set()


class StateCell(Generic[T]):
    def __init__(self, initial: T):
        # (version, value) swapped as one reference.
        self._current: tuple[int, T] = (0, initial)
        self._subs: set[_Mailbox[T]] = set()
        self._subs_lock = threading.Lock()

    @property
    def version(self) -> int:
        return self._current[0]

    def get(self) -> T:
        return self._current[1]

    def publish(self, value: T) -> None:
        version = self._current[0] + 1
        self._current = (version, value)
        with self._subs_lock:
            subs = list(self._subs)
        for box in subs:
            if box.loop.is_closed():
                continue
            box.loop.call_soon_threadsafe(box.offer, value, version)

    @property
    def subscriber_count(self) -> int:
        with self._subs_lock:
            return len(self._subs)

    async def subscribe(self) -> AsyncIterator[T]:
        box: _Mailbox[T] = _Mailbox(asyncio.get_running_loop())
        with self._subs_lock:
            self._subs.add(box)
        try:
            version, value = self._current
            box.offer(value, version)
            while True:
                await box.ready.wait()
                box.ready.clear()
                yield box.value  # type: ignore[misc]
        finally:
            with self._subs_lock:
                self._subs.discard(box)
