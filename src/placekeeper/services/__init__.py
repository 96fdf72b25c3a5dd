"""Service layer helpers (storage, settings)."""

from .settings import DEFAULT_SETTINGS_PATH, DEFAULT_STATE_DIR, Settings, SettingsStore
from .storage import FileStat, ListResult, LocalStorage, StorageMedium, join_path

__all__ = [
    "DEFAULT_SETTINGS_PATH",
    "DEFAULT_STATE_DIR",
    "FileStat",
    "ListResult",
    "LocalStorage",
    "Settings",
    "SettingsStore",
    "StorageMedium",
    "join_path",
]
