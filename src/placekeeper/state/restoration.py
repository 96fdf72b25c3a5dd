"""Restores remembered editor state when a document becomes active."""

from __future__ import annotations

import asyncio
import logging
import math
from typing import TYPE_CHECKING, Awaitable, Callable

from ..events import LayoutSettled, Subscription
from .models import LockIcon, StateRecord, is_number

if TYPE_CHECKING:  # pragma: no cover
    from ..engine import StateEngine
    from ..host import EditorHost

__all__ = ["RestorationSequencer", "capture_state"]

LOGGER = logging.getLogger(__name__)

SCROLL_ATTEMPTS = 4
SCROLL_SETTLE_SECONDS = 0.03
SCROLL_TOLERANCE = 0.02
SCROLL_MIN_SLACK = 2.0
STARTUP_ATTEMPTS = 5
BACKOFF_BASE_SECONDS = 0.01

Sleep = Callable[[float], Awaitable[None]]


def capture_state(host: EditorHost) -> StateRecord:
    """Read cursor, scroll and view state from the host's active view."""

    state = StateRecord()
    view_state = host.get_view_state()
    if view_state is not None:
        state.view_state = dict(view_state)
        scroll = host.get_scroll()
        if scroll is not None and not math.isnan(scroll):
            state.scroll = round(float(scroll), 4)
    cursor = host.get_cursor()
    if cursor is not None:
        state.cursor = cursor
    return state


class RestorationSequencer:
    """Reads a document's record and applies it back into the host.

    Activation cycles wait for the host's layout to settle before reading,
    and only one restoration runs at a time; :meth:`wait_idle` lets the save
    path wait for it so a half-restored view is never persisted.
    """

    def __init__(self, engine: StateEngine, *, sleep: Sleep = asyncio.sleep) -> None:
        self._engine = engine
        self._sleep = sleep
        self._current: asyncio.Task[None] | None = None
        self._settle: Subscription | None = None

    @property
    def in_flight(self) -> bool:
        return self._current is not None and not self._current.done()

    async def wait_idle(self) -> None:
        """Return once no restoration is running."""

        while self._current is not None and not self._current.done():
            current = self._current
            if current is asyncio.current_task():
                return
            await asyncio.wait([current])

    def dispose(self) -> None:
        if self._settle is not None:
            self._settle.dispose()
            self._settle = None

    # ------------------------------------------------------------------
    # Document activation
    # ------------------------------------------------------------------
    def begin_activation(self, path: str) -> None:
        """Start a restoration cycle for ``path`` once the layout settles."""

        engine = self._engine
        engine.loading = True
        if engine.last_loaded_path != path:
            engine.last_snapshot = None
        engine.last_loaded_path = path
        self.dispose()

        subscription: Subscription | None = None

        def _on_settled(_event: LayoutSettled) -> None:
            if subscription is not None:
                subscription.dispose()
            if self._settle is subscription:
                self._settle = None
            current = engine.host.active_path()
            if current != path:
                LOGGER.debug(
                    "Layout settled for %s but %s is active; skipping restoration",
                    path,
                    current,
                )
                if engine.last_loaded_path == path:
                    engine.loading = False
                return
            self._start(lambda: self._restore_activated(path))

        subscription = engine.bus.subscribe(LayoutSettled, _on_settled)
        self._settle = subscription

    async def _restore_activated(self, path: str) -> None:
        engine = self._engine
        try:
            record = await engine.record_store.read(path)
            LOGGER.debug("Restoring %s (state found: %s)", path, record is not None)
            if record is not None:
                engine.show_lock_icon(path, await self.lock_icon_for(path, record))
                await self.apply(record)
            else:
                engine.show_lock_icon(path, LockIcon.UNLOCKED)
            if engine.last_loaded_path == path:
                engine.last_snapshot = record
        except Exception:
            LOGGER.exception("Failed to restore state for %s", path)
        finally:
            if engine.last_loaded_path == path:
                engine.loading = False

    async def lock_icon_for(self, path: str, record: StateRecord) -> LockIcon:
        engine = self._engine
        if engine.lock_mode_enabled and is_number(record.timestamp):
            try:
                if not await engine.integrity.verify(path, record.timestamp):
                    LOGGER.warning("Integrity mismatch detected for %s", path)
                    return LockIcon.CORRUPTED
            except Exception:
                LOGGER.exception("Integrity check failed for %s", path)
        return LockIcon.LOCKED if record.is_protected else LockIcon.UNLOCKED

    # ------------------------------------------------------------------
    # Applying state
    # ------------------------------------------------------------------
    async def apply(self, record: StateRecord) -> None:
        """Push ``record`` into the host: view state first, then cursor/scroll."""

        host = self._engine.host
        if record.view_state is not None:
            host.set_view_state(record.view_state)
        await host.wait_for_layout()
        if record.cursor is not None:
            host.set_cursor(record.cursor)
        if record.scroll is not None:
            host.apply_scroll(record.scroll)
            await self._verify_scroll(record.scroll)

    async def _verify_scroll(self, target: float) -> None:
        host = self._engine.host
        allowed = max(target * SCROLL_TOLERANCE, SCROLL_MIN_SLACK)
        for attempt in range(1, SCROLL_ATTEMPTS + 1):
            await self._sleep(SCROLL_SETTLE_SECONDS)
            current = host.get_scroll()
            if current is None:
                LOGGER.debug("Scroll position unavailable; skipping verification")
                return
            if abs(current - target) <= allowed:
                return
            if attempt < SCROLL_ATTEMPTS:
                LOGGER.debug(
                    "Scroll mismatch (target=%s current=%s), retry %d/%d",
                    target,
                    current,
                    attempt,
                    SCROLL_ATTEMPTS,
                )
                host.apply_scroll(target)
        LOGGER.debug("Scroll position close enough, accepting current position")

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------
    async def restore_on_startup(self) -> None:
        """Restore the active document right after launch, with retries."""

        task = self._start(self._perform_startup_restoration)
        await asyncio.wait([task])

    async def _perform_startup_restoration(self) -> None:
        engine = self._engine
        try:
            await self._restore_with_retry(STARTUP_ATTEMPTS)
        except Exception:
            LOGGER.exception("Failed to restore state after %d attempts", STARTUP_ATTEMPTS)
            engine.post_notice("Failed to restore note state. Try reopening the note.", 3000)
            engine.loading = False

    async def _restore_with_retry(self, max_attempts: int) -> None:
        engine = self._engine
        for attempt in range(1, max_attempts + 1):
            try:
                path = engine.host.active_path()
                if not path:
                    if attempt < max_attempts:
                        delay = BACKOFF_BASE_SECONDS * 2 ** (attempt - 1)
                        LOGGER.debug(
                            "Attempt %d/%d: no active document, retrying in %.0fms",
                            attempt,
                            max_attempts,
                            delay * 1000,
                        )
                        await self._sleep(delay)
                        continue
                    LOGGER.warning("No active document found after %d attempts", max_attempts)
                    return

                if engine.loading and engine.last_loaded_path == path:
                    LOGGER.debug("Already restoring %s", path)
                    return

                engine.loading = True
                if engine.last_loaded_path != path:
                    engine.last_snapshot = None
                    engine.last_loaded_path = path
                    record = await engine.record_store.read(path)
                    if record is not None:
                        engine.show_lock_icon(path, await self.lock_icon_for(path, record))
                        await self.apply(record)
                    engine.last_snapshot = record
                engine.loading = False
                return
            except Exception:
                LOGGER.warning(
                    "Restoration attempt %d/%d failed", attempt, max_attempts, exc_info=True
                )
                engine.loading = False
                engine.last_loaded_path = None
                if attempt < max_attempts:
                    await self._sleep(BACKOFF_BASE_SECONDS * 2 ** (attempt - 1))
                else:
                    raise

    # ------------------------------------------------------------------
    # Task bookkeeping
    # ------------------------------------------------------------------
    def _start(self, factory: Callable[[], Awaitable[None]]) -> asyncio.Task[None]:
        previous = self._current

        async def _run() -> None:
            if previous is not None and not previous.done():
                await asyncio.wait([previous])
            await factory()

        task = asyncio.get_running_loop().create_task(_run())
        self._current = task
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[None]) -> None:
        if self._current is task:
            self._current = None
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Restoration task failed", exc_info=exc)
