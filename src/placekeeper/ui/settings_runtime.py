"""Applies settings changes to a running state engine."""

from __future__ import annotations

import logging
from dataclasses import asdict, replace
from typing import TYPE_CHECKING, Any, Mapping

from ..events import SettingsChanged
from ..services.settings import Settings, SettingsStore
from ..state.models import ValidationReport
from ..utils import logging as logging_utils

if TYPE_CHECKING:  # pragma: no cover - imported for type checking only
    from ..engine import StateEngine


_LOGGER = logging.getLogger(__name__)

VALIDATION_STARTED = "Validation started..."
VALIDATION_ROOT_MISSING = "Validation: database directory not found"
VALIDATION_FAILED = "Validation failed. See log."
VALIDATION_NOTICE_MS = 5000


class SettingsRuntime:
    """Backs the settings surface: state directory, lock mode and validation."""

    def __init__(self, engine: StateEngine, store: SettingsStore | None = None) -> None:
        self._engine = engine
        self._store = store
        self._debug_logging_enabled = bool(engine.settings.debug_logging)

    @property
    def settings(self) -> Settings:
        return self._engine.settings

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def set_state_dir(self, value: str) -> None:
        """Point the record store at a new state directory.

        Existing records are not moved; the old directory is simply no
        longer consulted.
        """

        value = value.strip()
        if not value:
            _LOGGER.warning("Ignoring empty state directory")
            return
        self._engine.record_store.state_dir = value
        self._commit(replace(self.settings, state_dir=value))

    def set_lock_mode_enabled(self, enabled: bool) -> None:
        """Enable or disable lock mode live."""

        enabled = bool(enabled)
        self._commit(replace(self.settings, lock_mode_enabled=enabled))
        if enabled:
            self._engine.enable_lock_mode()
        else:
            self._engine.disable_lock_mode()

    def set_save_delay(self, delay_ms: int) -> None:
        delay_ms = max(0, int(delay_ms))
        self._engine.writer.delay = delay_ms / 1000.0
        self._commit(replace(self.settings, save_delay_ms=delay_ms))

    def set_debug_logging(self, enabled: bool) -> None:
        enabled = bool(enabled)
        self._commit(replace(self.settings, debug_logging=enabled))
        if enabled != self._debug_logging_enabled:
            self._update_logging_configuration(enabled)
            self._debug_logging_enabled = enabled

    async def run_validation(self) -> ValidationReport | None:
        """Run a full validation pass and report the outcome as notices."""

        engine = self._engine
        engine.post_notice(VALIDATION_STARTED, 1000)
        try:
            report = await engine.record_store.validate_all()
        except Exception:
            _LOGGER.exception("Validation of %s failed", engine.record_store.state_dir)
            engine.post_notice(VALIDATION_FAILED)
            return None
        if report.root_missing:
            engine.post_notice(VALIDATION_ROOT_MISSING)
        else:
            engine.post_notice(report.summary(), VALIDATION_NOTICE_MS)
        return report

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _commit(self, settings: Settings) -> None:
        previous = asdict(self.settings)
        self._engine.settings = settings
        if self._store is not None:
            try:
                self._store.save(settings)
            except OSError:
                _LOGGER.exception("Unable to persist settings to %s", self._store.path)
        changed = _diff(previous, asdict(settings))
        if changed:
            self._engine.bus.publish(SettingsChanged(settings=changed))

    def _update_logging_configuration(self, debug_enabled: bool) -> None:
        level = logging.DEBUG if debug_enabled else logging.INFO
        try:
            logging_utils.setup_logging(level, force=True)
            _LOGGER.debug("Runtime logging level updated to %s", logging.getLevelName(level))
        except OSError as exc:  # pragma: no cover - unwritable log directory
            _LOGGER.warning("Unable to update logging configuration: %s", exc)


def _diff(before: Mapping[str, Any], after: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in after.items() if before.get(key) != value}
