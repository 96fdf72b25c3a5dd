"""Trailing-edge debounce for state record writes."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from .models import StateRecord

__all__ = ["DebouncedWriter", "DEFAULT_DELAY_SECONDS"]

LOGGER = logging.getLogger(__name__)

DEFAULT_DELAY_SECONDS = 0.5

WriteCallback = Callable[[str, StateRecord], Awaitable[None]]


class DebouncedWriter:
    """Coalesces bursts of saves into a single delayed write.

    Only one write is ever pending: scheduling again before the delay
    expires replaces both the timer and the record, so the last state of a
    burst is the one persisted.
    """

    def __init__(
        self,
        write: WriteCallback,
        *,
        delay: float = DEFAULT_DELAY_SECONDS,
        loop_resolver: Callable[[], asyncio.AbstractEventLoop] = asyncio.get_running_loop,
    ) -> None:
        self._write = write
        self._delay = max(0.0, delay)
        self._loop_resolver = loop_resolver
        self._handle: asyncio.TimerHandle | None = None
        self._pending: tuple[str, StateRecord] | None = None
        self._inflight: set[asyncio.Task[None]] = set()

    @property
    def delay(self) -> float:
        return self._delay

    @delay.setter
    def delay(self, value: float) -> None:
        self._delay = max(0.0, value)

    @property
    def pending_path(self) -> str | None:
        """Path of the write waiting for the timer, if any."""

        return self._pending[0] if self._pending is not None else None

    def schedule(self, path: str, record: StateRecord) -> None:
        """Arm (or re-arm) the timer to write ``record`` for ``path``."""

        self._cancel_timer()
        self._pending = (path, record)
        loop = self._loop_resolver()
        self._handle = loop.call_later(self._delay, self._fire)

    def cancel(self) -> None:
        """Drop the pending write without performing it."""

        if self._pending is not None:
            LOGGER.debug("Dropping pending state write for %s", self._pending[0])
        self._cancel_timer()
        self._pending = None

    async def flush(self) -> None:
        """Perform the pending write now, if there is one."""

        pending = self._pending
        self._cancel_timer()
        self._pending = None
        if pending is not None:
            await self._perform(*pending)

    async def drain(self) -> None:
        """Wait for writes already handed off by the timer."""

        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    def _fire(self) -> None:
        self._handle = None
        pending = self._pending
        self._pending = None
        if pending is None:
            return
        task = self._loop_resolver().create_task(self._perform(*pending))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _perform(self, path: str, record: StateRecord) -> None:
        try:
            await self._write(path, record)
        except Exception:
            LOGGER.exception("Debounced state write failed for %s", path)

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
