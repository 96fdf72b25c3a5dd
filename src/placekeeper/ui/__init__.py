"""UI package holding the command registry, lock indicator and Qt widgets.

Qt-backed modules (``qt_host``, ``main_window``) are imported explicitly so
the headless pieces stay usable without a display.
"""

from .commands import Command, CommandRegistry
from .lock_status import LockStatusIndicator
from .settings_runtime import SettingsRuntime

__all__ = [
    "Command",
    "CommandRegistry",
    "LockStatusIndicator",
    "SettingsRuntime",
]
