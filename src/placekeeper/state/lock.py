"""Lock mode: protected documents are kept in read-only presentation."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING

from .models import LockIcon, StateRecord
from .restoration import capture_state

if TYPE_CHECKING:  # pragma: no cover
    from ..engine import StateEngine

__all__ = ["LockManager", "LOCK_NOTICE", "LOCK_NOTICE_TIMEOUT_MS"]

LOGGER = logging.getLogger(__name__)

LOCK_NOTICE = "Lock mode enabled"
LOCK_NOTICE_TIMEOUT_MS = 1000


class LockManager:
    """Toggles the ``protected`` flag and enforces read-only presentation.

    Only ``protected``/``timestamp`` are stored; the "modified externally"
    state is derived at activation time and exists only on the indicator.
    """

    def __init__(self, engine: StateEngine) -> None:
        self._engine = engine

    async def is_locked(self, path: str) -> bool:
        record = await self._engine.record_store.read(path, respect_effects=False)
        return record is not None and record.is_protected

    async def toggle(self, path: str) -> bool:
        """Flip protection for ``path`` and return the new flag."""

        engine = self._engine
        current = await engine.record_store.read(path, respect_effects=False) or StateRecord()
        protect = not current.is_protected

        # The indicator flips before the write lands.
        engine.show_lock_icon(path, LockIcon.LOCKED if protect else LockIcon.UNLOCKED)

        timestamp: int | None = None
        if protect:
            try:
                timestamp = await engine.integrity.fingerprint(path)
            except Exception:
                LOGGER.exception("Failed to acquire timestamp for lock on %s", path)
                timestamp = None

        updated = replace(current, protected=protect, timestamp=timestamp)
        await engine.record_store.write(path, updated)
        engine.remember_lock_fields(path, updated)
        LOGGER.info("%s %s", "Locked" if protect else "Unlocked", path)

        if protect:
            await self.enforce_read_only(path)
        return protect

    async def enforce_read_only(self, path: str) -> bool:
        """Switch the active view of a locked ``path`` to read-only.

        Cursor and scroll survive the mode switch; view state is not
        reapplied since it would carry the editable mode back. Returns
        ``True`` when the switch happened.
        """

        engine = self._engine
        host = engine.host
        if host.active_path() != path:
            return False
        if not await self.is_locked(path):
            return False
        if host.is_read_only():
            return False

        captured = capture_state(host)
        host.set_read_only(True)
        await engine.sequencer.apply(StateRecord(cursor=captured.cursor, scroll=captured.scroll))
        engine.post_notice(LOCK_NOTICE, LOCK_NOTICE_TIMEOUT_MS)
        return True
