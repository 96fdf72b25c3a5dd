"""User settings and their JSON persistence."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Mapping

__all__ = [
    "Settings",
    "SettingsStore",
    "DEFAULT_STATE_DIR",
    "DEFAULT_SETTINGS_PATH",
]

LOGGER = logging.getLogger(__name__)
DEFAULT_SETTINGS_PATH = Path.home() / ".placekeeper" / "settings.json"
DEFAULT_STATE_DIR = ".placekeeper/plugins/placekeeper/db"
_SETTINGS_VERSION = 1
_PATH_ENV = "PLACEKEEPER_SETTINGS_PATH"
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}


def _env_bool(value: str) -> bool:
    return value.strip().lower() in _TRUE_VALUES


def _env_int(value: str) -> int:
    return int(value.strip(), 10)


# environment variable -> (field, converter)
_ENV_OVERRIDES: Mapping[str, tuple[str, Callable[[str], Any]]] = {
    "PLACEKEEPER_STATE_DIR": ("state_dir", str),
    "PLACEKEEPER_VAULT": ("vault_path", str),
    "PLACEKEEPER_LOCK_MODE": ("lock_mode_enabled", _env_bool),
    "PLACEKEEPER_DEBUG_LOGGING": ("debug_logging", _env_bool),
    "PLACEKEEPER_SAVE_DELAY_MS": ("save_delay_ms", _env_int),
}


@dataclass(slots=True)
class Settings:
    """User-configurable settings persisted between sessions."""

    state_dir: str = DEFAULT_STATE_DIR
    lock_mode_enabled: bool = True
    save_delay_ms: int = 500
    debug_logging: bool = False
    vault_path: str | None = None


class SettingsStore:
    """Reads and writes :class:`Settings` as a versioned JSON document.

    Values of the wrong type on disk are replaced by their defaults and the
    file is rewritten; so is a file written by another settings version.
    Overrides are layered on top at load time: CLI overrides first, then
    ``PLACEKEEPER_*`` environment variables.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = Path(path or os.environ.get(_PATH_ENV) or DEFAULT_SETTINGS_PATH).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        payload = self._read_payload()
        settings = Settings()
        if payload:
            data, repaired = _normalize_payload(_filter_fields(payload))
            settings = Settings(**data)
            if repaired or payload.get("version") != _SETTINGS_VERSION:
                try:
                    self.save(settings)
                except OSError as exc:  # pragma: no cover - read-only home
                    LOGGER.warning("Failed to migrate settings payload: %s", exc)

        if overrides:
            settings = _with_overrides(settings, overrides, source="CLI")
        env = self._environment_overrides()
        if env:
            settings = _with_overrides(settings, env, source="environment")
        return settings

    def save(self, settings: Settings) -> Path:
        """Write ``settings`` through a temporary file so readers never see a partial file."""

        body = json.dumps({**asdict(settings), "version": _SETTINGS_VERSION}, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        staging = self._path.with_suffix(".tmp")
        staging.write_text(body, encoding="utf-8")
        staging.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not hold a JSON object", self._path)
            return {}
        return payload

    @staticmethod
    def _environment_overrides() -> Dict[str, Any]:
        found: Dict[str, Any] = {}
        for env_name, (field_name, convert) in _ENV_OVERRIDES.items():
            raw = os.environ.get(env_name)
            if raw is None:
                continue
            try:
                found[field_name] = convert(raw)
            except ValueError:
                LOGGER.warning("Ignoring environment override %s=%r", env_name, raw)
        return found


def _with_overrides(settings: Settings, overrides: Mapping[str, Any], *, source: str) -> Settings:
    known = {field.name for field in fields(Settings)}
    accepted = {key: value for key, value in overrides.items() if key in known and value is not None}
    if not accepted:
        return settings
    LOGGER.debug("Applying %s settings overrides: %s", source, sorted(accepted))
    return replace(settings, **accepted)


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    known = {field.name for field in fields(Settings)}
    return {key: value for key, value in payload.items() if key in known}


def _normalize_payload(data: Dict[str, Any]) -> tuple[Dict[str, Any], bool]:
    """Replace wrongly typed values with defaults; report whether anything changed."""

    defaults = Settings()
    changed = False
    for name in ("lock_mode_enabled", "debug_logging"):
        if name in data and not isinstance(data[name], bool):
            data[name] = getattr(defaults, name)
            changed = True
    state_dir = data.get("state_dir")
    if "state_dir" in data and (not isinstance(state_dir, str) or not state_dir.strip()):
        data["state_dir"] = defaults.state_dir
        changed = True
    delay = data.get("save_delay_ms")
    if "save_delay_ms" in data and (
        isinstance(delay, bool) or not isinstance(delay, int) or delay < 0
    ):
        data["save_delay_ms"] = defaults.save_delay_ms
        changed = True
    vault = data.get("vault_path")
    if vault is not None and not isinstance(vault, str):
        data["vault_path"] = None
        changed = True
    return data, changed
