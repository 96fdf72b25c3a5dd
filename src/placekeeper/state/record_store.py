"""Per-document JSON records kept inside the state directory."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Mapping

from ..services.storage import StorageMedium
from .keys import state_location
from .models import StateRecord, ValidationReport, apply_lock_defaults

__all__ = ["RecordStore", "merge_lock_fields"]

LOGGER = logging.getLogger(__name__)


class RecordStore:
    """Reads, writes, relocates and validates state records.

    Persistence is best-effort: storage failures are logged and turned into
    ``None`` (reads) or no-ops (writes), never raised to the caller.
    """

    def __init__(
        self,
        storage: StorageMedium,
        state_dir: str,
        *,
        effect_check: Callable[[], bool] | None = None,
    ) -> None:
        self._storage = storage
        self._state_dir = state_dir
        self._effect_check = effect_check

    @property
    def storage(self) -> StorageMedium:
        return self._storage

    @property
    def state_dir(self) -> str:
        return self._state_dir

    @state_dir.setter
    def state_dir(self, value: str) -> None:
        self._state_dir = value
        LOGGER.debug("RecordStore.state_dir set to %s", value)

    def location_for(self, path: str) -> str:
        """Return the storage location of the record owned by ``path``."""

        return state_location(self._state_dir, path)

    # ------------------------------------------------------------------
    # Single-record operations
    # ------------------------------------------------------------------
    async def read(self, path: str, *, respect_effects: bool = True) -> StateRecord | None:
        """Return the record stored for ``path`` or ``None``.

        Missing lock fields are defaulted and a stale ``viewState.file`` is
        rewritten to ``path``; either repair is written back before returning.
        While the host reports a transient visual effect the read is
        suppressed (unless the record needed a path correction or
        ``respect_effects`` is false).
        """

        location = self.location_for(path)
        try:
            if not await self._storage.exists(location):
                return None
            payload = json.loads(await self._storage.read_text(location))
            if not isinstance(payload, dict):
                LOGGER.warning("State record %s is not a JSON object; ignoring", location)
                return None

            changed_defaults = apply_lock_defaults(payload)

            view_state = payload.get("viewState")
            if isinstance(view_state, dict):
                stored_file = view_state.get("file")
                if isinstance(stored_file, str) and stored_file != path:
                    LOGGER.debug(
                        "Correcting viewState.file for %s (was %s)", path, stored_file
                    )
                    view_state["file"] = path
                    await self._storage.write_text(location, _dump(payload))
                    return StateRecord.from_payload(payload)

            if respect_effects and self._transient_effect_active():
                LOGGER.debug("Skipping state read for %s during a transient effect", path)
                return None

            if changed_defaults:
                await self._storage.write_text(location, _dump(payload))
            return StateRecord.from_payload(payload)
        except json.JSONDecodeError as exc:
            LOGGER.warning("State record %s is not valid JSON: %s", location, exc)
        except Exception:
            LOGGER.exception("Error reading state record for %s", path)
        return None

    async def write(self, path: str, record: StateRecord) -> None:
        """Overwrite the record for ``path``; failures are logged only."""

        try:
            await self._persist(path, record)
        except Exception:
            LOGGER.exception("Error writing state record for %s", path)

    async def migrate(self, old_path: str, new_path: str) -> None:
        """Move the record of ``old_path`` so that it is owned by ``new_path``."""

        try:
            record = await self.read(old_path, respect_effects=False)
            if record is None:
                return
            if record.view_state is not None and "file" in record.view_state:
                record.view_state["file"] = new_path
            await self._persist(new_path, record)
            old_location = self.location_for(old_path)
            if old_location != self.location_for(new_path) and await self._storage.exists(
                old_location
            ):
                await self._storage.remove(old_location)
            LOGGER.debug("State record moved from %s to %s", old_path, new_path)
        except Exception:
            LOGGER.exception("Error moving state record from %s to %s", old_path, new_path)

    async def _persist(self, path: str, record: StateRecord) -> None:
        location = self.location_for(path)
        if not await self._storage.exists(self._state_dir):
            await self._storage.mkdir(self._state_dir)
        payload = record.to_payload(fill_defaults=True)
        await self._storage.write_text(location, _dump(payload))
        LOGGER.debug("State saved for %s to %s", path, location)

    async def remove(self, path: str) -> None:
        """Delete the record of ``path`` if there is one."""

        location = self.location_for(path)
        try:
            if await self._storage.exists(location):
                await self._storage.remove(location)
                LOGGER.debug("Deleted state record for %s", path)
        except Exception:
            LOGGER.exception("Error deleting state record for %s", path)

    # ------------------------------------------------------------------
    # Full pass
    # ------------------------------------------------------------------
    async def validate_all(self) -> ValidationReport:
        """Repair or drop every record in the state directory.

        Raises whatever the storage raises when the directory cannot be
        listed; per-record failures are only counted.
        """

        report = ValidationReport()
        if not await self._storage.exists(self._state_dir):
            report.root_missing = True
            return report

        listing = await self._storage.list(self._state_dir)
        entries = [entry for entry in listing.files if entry.lower().endswith(".json")]

        for location in entries:
            report.total += 1
            try:
                await self._validate_entry(location, report)
            except Exception:
                LOGGER.exception("Validation error for state record %s", location)
                report.errors += 1

        LOGGER.info(
            "Validation report: total=%d fixed=%d lock_repairs=%d missing=%d invalid=%d errors=%d",
            report.total,
            report.fixed_paths,
            report.repaired_lock_fields,
            report.removed_missing_note,
            report.removed_invalid_entry,
            report.errors,
        )
        return report

    async def _validate_entry(self, location: str, report: ValidationReport) -> None:
        raw = await self._storage.read_text(location)
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            await self._storage.remove(location)
            report.removed_invalid_entry += 1
            return

        note_path = _owning_path(payload)
        if note_path is None:
            await self._storage.remove(location)
            report.removed_invalid_entry += 1
            return

        if not await self._storage.exists(note_path):
            await self._storage.remove(location)
            report.removed_missing_note += 1
            return

        if apply_lock_defaults(payload):
            await self._storage.write_text(location, _dump(payload))
            report.repaired_lock_fields += 1

    def _transient_effect_active(self) -> bool:
        if self._effect_check is None:
            return False
        return bool(self._effect_check())


def merge_lock_fields(
    existing: StateRecord | None,
    fresh: StateRecord,
    fallback: StateRecord | None = None,
) -> StateRecord:
    """Overlay freshly captured state onto the lock fields already known.

    The persisted record wins for ``protected``/``timestamp``; without one,
    the in-memory ``fallback`` supplies them. Cursor, scroll and view state
    always come from ``fresh``.
    """

    if existing is not None:
        extra = {**existing.extra, **fresh.extra}
        return StateRecord(
            cursor=fresh.cursor if fresh.cursor is not None else existing.cursor,
            scroll=fresh.scroll if fresh.scroll is not None else existing.scroll,
            view_state=fresh.view_state if fresh.view_state is not None else existing.view_state,
            protected=existing.protected if existing.protected is not None else fresh.protected,
            timestamp=_lock_timestamp(existing, fresh),
            extra=extra,
        )
    if fallback is not None:
        return StateRecord(
            cursor=fresh.cursor,
            scroll=fresh.scroll,
            view_state=fresh.view_state,
            protected=fallback.protected,
            timestamp=fallback.timestamp,
            extra=dict(fresh.extra),
        )
    return fresh


def _lock_timestamp(existing: StateRecord, fresh: StateRecord) -> float | None:
    if existing.timestamp is not None or existing.protected is not None:
        return existing.timestamp
    return fresh.timestamp


def _owning_path(payload: Any) -> str | None:
    if not isinstance(payload, Mapping):
        return None
    view_state = payload.get("viewState")
    if not isinstance(view_state, Mapping):
        return None
    file_value = view_state.get("file")
    if isinstance(file_value, str) and file_value:
        return file_value
    return None


def _dump(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, sort_keys=True)

