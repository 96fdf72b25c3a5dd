"""State engine: remembers and restores per-document editor state."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Awaitable, Callable, Coroutine

from .events import (
    DocumentActivated,
    DocumentDeleted,
    DocumentRenamed,
    EditorChanged,
    EventBus,
    LayoutSettled,
    LockStatusChanged,
    NoticePosted,
    Subscription,
)
from .host import EditorHost
from .services.settings import Settings
from .services.storage import StorageMedium
from .state.compare import is_empty_state, states_same
from .state.debounce import DebouncedWriter
from .state.integrity import IntegrityChecker
from .state.lock import LockManager
from .state.models import LockIcon, StateRecord
from .state.record_store import RecordStore, merge_lock_fields
from .state.restoration import RestorationSequencer, capture_state
from .ui.commands import Command, CommandRegistry
from .ui.lock_status import LockStatusIndicator

__all__ = ["StateEngine", "LOCK_COMMAND_ID", "LOCK_COMMAND_NAME"]

LOGGER = logging.getLogger(__name__)

LOCK_COMMAND_ID = "lock-unlock"
LOCK_COMMAND_NAME = "Lock/unlock"

IndicatorFactory = Callable[[Callable[[], None]], LockStatusIndicator]


class StateEngine:
    """Owns the per-session state: last snapshot, loading flag and timers.

    The engine subscribes to the host's events on :meth:`start` and turns
    them into reads, debounced writes and restorations. Event handlers never
    raise; work is spawned as tracked tasks that log their own failures.
    """

    def __init__(
        self,
        *,
        host: EditorHost,
        storage: StorageMedium,
        settings: Settings,
        bus: EventBus | None = None,
        commands: CommandRegistry | None = None,
        indicator_factory: IndicatorFactory | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.host = host
        self.storage = storage
        self.settings = settings
        self.bus = bus or EventBus()
        self.commands = commands or CommandRegistry()
        self._indicator_factory = indicator_factory or LockStatusIndicator

        self.record_store = RecordStore(
            storage, settings.state_dir, effect_check=host.transient_effect_active
        )
        self.integrity = IntegrityChecker(storage)
        self.writer = DebouncedWriter(
            self._write_merged, delay=settings.save_delay_ms / 1000.0
        )
        self.sequencer = RestorationSequencer(self, sleep=sleep)
        self.lock_manager = LockManager(self)
        self.indicator: LockStatusIndicator | None = None

        self.last_snapshot: StateRecord | None = None
        self.last_loaded_path: str | None = None
        self.loading = False

        self._subscriptions: list[Subscription] = []
        self._tasks: set[asyncio.Task[Any]] = set()
        self._started = False

    @property
    def lock_mode_enabled(self) -> bool:
        return bool(self.settings.lock_mode_enabled)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> None:
        """Subscribe to host events and restore the active document."""

        if self._started:
            return
        self._started = True
        bus = self.bus
        self._subscriptions = [
            bus.subscribe(DocumentActivated, self._on_document_activated),
            bus.subscribe(LayoutSettled, self._on_layout_settled),
            bus.subscribe(EditorChanged, self._on_editor_changed),
            bus.subscribe(DocumentRenamed, self._on_document_renamed),
            bus.subscribe(DocumentDeleted, self._on_document_deleted),
        ]
        if self.lock_mode_enabled:
            self.enable_lock_mode()
        LOGGER.debug("State engine started (state_dir=%s)", self.record_store.state_dir)
        await self.sequencer.restore_on_startup()

    async def shutdown(self) -> None:
        """Dispose subscriptions and UI; a save still waiting on its timer is dropped."""

        for subscription in self._subscriptions:
            subscription.dispose()
        self._subscriptions.clear()
        self.sequencer.dispose()
        self.disable_lock_mode()
        self.writer.cancel()
        await self.writer.drain()
        pending = [task for task in self._tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._started = False
        LOGGER.debug("State engine stopped")

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        """Run ``coro`` as a tracked task whose failure is logged."""

        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    async def wait_for_tasks(self) -> None:
        """Wait until spawned work (including tasks it spawns) has finished."""

        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                break
            await asyncio.gather(*pending, return_exceptions=True)
        await self.sequencer.wait_idle()

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("State engine task failed", exc_info=exc)

    # ------------------------------------------------------------------
    # Change detection and saving
    # ------------------------------------------------------------------
    def request_state_check(self) -> asyncio.Task[Any]:
        return self.spawn(self.check_state_changed())

    async def check_state_changed(self) -> bool:
        """Evaluate the active view once restoration is idle; save on change."""

        await self.sequencer.wait_idle()
        path = self.host.active_path()
        if path and self.lock_mode_enabled:
            try:
                await self.lock_manager.enforce_read_only(path)
            except Exception:
                LOGGER.warning("Read-only enforcement failed for %s", path, exc_info=True)
        return await self.perform_state_check()

    async def perform_state_check(self) -> bool:
        """Capture the active view and schedule a save if it changed.

        Returns ``True`` when a write was scheduled.
        """

        path = self.host.active_path()
        if (
            not path
            or not self.last_loaded_path
            or path != self.last_loaded_path
            or self.loading
        ):
            return False

        state = capture_state(self.host)
        if is_empty_state(state):
            LOGGER.debug("Skipping save of empty state for %s", path)
            return False

        previous = self.last_snapshot
        if previous is None:
            self.last_snapshot = state
            return False
        if states_same(state, previous):
            return False

        pending = self.save_state(path, state, fallback=previous)
        if pending is not None:
            self.last_snapshot = pending
        return pending is not None

    def save_state(
        self,
        path: str,
        state: StateRecord,
        *,
        fallback: StateRecord | None = None,
    ) -> StateRecord | None:
        """Schedule a debounced write of ``state`` for ``path``.

        ``fallback`` supplies the lock fields known in memory; the persisted
        ones are merged in by :meth:`_write_merged` when the timer fires.
        Returns the scheduled record, or ``None`` when nothing was scheduled.
        """

        if path != self.host.active_path() or path != self.last_loaded_path:
            LOGGER.debug("Not saving state for %s: document changed or not loaded", path)
            return None
        pending = merge_lock_fields(None, state, fallback)
        self.writer.schedule(path, pending)
        return pending

    async def _write_merged(self, path: str, record: StateRecord) -> None:
        # Lock fields on disk may have changed while the write was pending.
        existing = await self.record_store.read(path, respect_effects=False)
        merged = merge_lock_fields(existing, record)
        await self.record_store.write(path, merged)
        self.remember_lock_fields(path, merged)

    def remember_lock_fields(self, path: str, record: StateRecord) -> None:
        """Copy freshly written lock fields into the in-memory snapshot."""

        if path != self.last_loaded_path:
            return
        if self.last_snapshot is None:
            self.last_snapshot = record
            return
        self.last_snapshot = replace(
            self.last_snapshot, protected=record.protected, timestamp=record.timestamp
        )

    # ------------------------------------------------------------------
    # Document lifecycle
    # ------------------------------------------------------------------
    async def handle_rename(self, old_path: str, new_path: str) -> None:
        if self.writer.pending_path == old_path:
            await self.writer.flush()
        await self.writer.drain()
        await self.record_store.migrate(old_path, new_path)
        if self.last_loaded_path == old_path:
            self.last_loaded_path = new_path
        LOGGER.debug("Followed rename %s -> %s", old_path, new_path)

    async def handle_delete(self, path: str) -> None:
        if self.writer.pending_path == path:
            self.writer.cancel()
        await self.writer.drain()
        await self.record_store.remove(path)
        if self.last_loaded_path == path:
            self.last_loaded_path = None
            self.last_snapshot = None

    # ------------------------------------------------------------------
    # Lock mode
    # ------------------------------------------------------------------
    async def toggle_active_lock(self) -> bool | None:
        """Toggle the lock of the active document; ``None`` if there is none."""

        path = self.host.active_path()
        if not path:
            return None
        return await self.lock_manager.toggle(path)

    def enable_lock_mode(self) -> None:
        """Create the indicator and register the lock command."""

        if self.indicator is None:
            self.indicator = self._indicator_factory(self._on_indicator_clicked)
        if LOCK_COMMAND_ID not in self.commands:
            self.commands.register(
                Command(LOCK_COMMAND_ID, LOCK_COMMAND_NAME, self.toggle_active_lock)
            )
        path = self.host.active_path()
        if path:
            self.spawn(self.refresh_lock_icon(path))

    def disable_lock_mode(self) -> None:
        if self.indicator is not None:
            self.indicator.dispose()
            self.indicator = None
        self.commands.unregister(LOCK_COMMAND_ID)

    async def refresh_lock_icon(self, path: str) -> LockIcon:
        record = await self.record_store.read(path, respect_effects=False)
        icon = LockIcon.UNLOCKED
        if record is not None:
            icon = await self.sequencer.lock_icon_for(path, record)
        self.show_lock_icon(path, icon)
        return icon

    def show_lock_icon(self, path: str | None, icon: LockIcon) -> None:
        if self.indicator is not None:
            self.indicator.update_icon(icon)
        self.bus.publish(LockStatusChanged(path=path, icon=icon))

    def post_notice(self, message: str, timeout_ms: int = 3000) -> None:
        LOGGER.info("Notice: %s", message)
        self.bus.publish(NoticePosted(message=message, timeout_ms=timeout_ms))

    def _on_indicator_clicked(self) -> None:
        self.spawn(self.toggle_active_lock())

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------
    def _on_document_activated(self, event: DocumentActivated) -> None:
        self.sequencer.begin_activation(event.path)

    def _on_layout_settled(self, _event: LayoutSettled) -> None:
        self.request_state_check()

    def _on_editor_changed(self, _event: EditorChanged) -> None:
        self.request_state_check()

    def _on_document_renamed(self, event: DocumentRenamed) -> None:
        self.spawn(self.handle_rename(event.old_path, event.new_path))

    def _on_document_deleted(self, event: DocumentDeleted) -> None:
        self.spawn(self.handle_delete(event.path))
