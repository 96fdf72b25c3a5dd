"""Main window hosting a single editor pane and the state engine."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Coroutine

from PySide6.QtGui import QAction, QKeySequence
from PySide6.QtWidgets import (
    QFileDialog,
    QInputDialog,
    QMainWindow,
    QMenu,
    QPlainTextEdit,
)

from ..engine import StateEngine
from ..events import EventBus, NoticePosted
from ..services.settings import Settings, SettingsStore
from ..services.storage import LocalStorage
from .commands import CommandRegistry
from .lock_status import LockStatusIndicator
from .qt_host import QtEditorHost
from .settings_runtime import SettingsRuntime

__all__ = ["MainWindow", "WINDOW_TITLE"]

_LOGGER = logging.getLogger(__name__)

WINDOW_TITLE = "placekeeper"


class MainWindow(QMainWindow):
    """Editor window wiring Qt actions to the state engine."""

    def __init__(
        self,
        settings: Settings,
        *,
        vault: Path,
        settings_store: SettingsStore | None = None,
    ) -> None:
        super().__init__()
        self._vault = Path(vault).expanduser()
        self._storage = LocalStorage(self._vault)
        self._bus = EventBus()
        self._commands = CommandRegistry()

        self._editor = QPlainTextEdit()
        self.setCentralWidget(self._editor)
        self._host = QtEditorHost(self._storage, self._bus, self._editor)
        self._engine = StateEngine(
            host=self._host,
            storage=self._storage,
            settings=settings,
            bus=self._bus,
            commands=self._commands,
            indicator_factory=self._create_indicator,
        )
        self._settings_runtime = SettingsRuntime(self._engine, settings_store)

        self._notice_subscription = self._bus.subscribe(NoticePosted, self._on_notice)
        self._commands_menu: QMenu | None = None
        self._lock_mode_action: QAction | None = None
        self._build_menus()
        self._commands.add_listener(self._rebuild_commands_menu)
        self._refresh_title()
        self.resize(900, 700)

    @property
    def engine(self) -> StateEngine:
        return self._engine

    @property
    def host(self) -> QtEditorHost:
        return self._host

    @property
    def settings_runtime(self) -> SettingsRuntime:
        return self._settings_runtime

    @property
    def commands_menu(self) -> QMenu | None:
        return self._commands_menu

    async def start(self, initial_path: str | None = None) -> None:
        """Start the engine and optionally open ``initial_path``."""

        await self._engine.start()
        self._rebuild_commands_menu()
        if initial_path:
            await self.open_path(initial_path)

    async def shutdown(self) -> None:
        self._notice_subscription.dispose()
        await self._engine.shutdown()

    async def open_path(self, path: str) -> None:
        try:
            await self._host.open_document(path)
        except (OSError, ValueError) as exc:
            _LOGGER.warning("Unable to open %s: %s", path, exc)
            self.statusBar().showMessage(f"Unable to open {path}", 3000)
            return
        self._refresh_title()

    # ------------------------------------------------------------------
    # Menus
    # ------------------------------------------------------------------
    def _build_menus(self) -> None:
        menubar = self.menuBar()

        file_menu = menubar.addMenu("&File")
        self._add_action(file_menu, "&Open…", self._prompt_open, QKeySequence.StandardKey.Open)
        self._add_action(file_menu, "&Save", self._save, QKeySequence.StandardKey.Save)
        self._add_action(file_menu, "&Rename…", self._prompt_rename)
        self._add_action(file_menu, "&Delete", self._delete)
        file_menu.addSeparator()
        self._add_action(file_menu, "&Quit", self.close, QKeySequence.StandardKey.Quit)

        view_menu = menubar.addMenu("&View")
        self._add_action(view_menu, "Toggle &preview", self._host.toggle_mode, "Ctrl+E")
        self._add_action(view_menu, "&Go to line…", self._prompt_goto_line, "Ctrl+G")

        self._commands_menu = menubar.addMenu("&Commands")

        settings_menu = menubar.addMenu("&Settings")
        lock_action = self._add_action(settings_menu, "Enable &lock mode", self._toggle_lock_mode)
        lock_action.setCheckable(True)
        lock_action.setChecked(self._engine.lock_mode_enabled)
        self._lock_mode_action = lock_action
        self._add_action(settings_menu, "State &directory…", self._prompt_state_dir)
        self._add_action(settings_menu, "Run &validation", self._run_validation)

    def _add_action(
        self,
        menu: QMenu,
        text: str,
        callback: Callable[[], Any],
        shortcut: Any | None = None,
    ) -> QAction:
        action = QAction(text, self)
        if shortcut is not None:
            action.setShortcut(QKeySequence(shortcut))
        action.triggered.connect(lambda _checked=False: callback())
        menu.addAction(action)
        return action

    def _rebuild_commands_menu(self) -> None:
        menu = self._commands_menu
        if menu is None:
            return
        menu.clear()
        for command in self._commands.commands():
            command_id = command.command_id
            self._add_action(
                menu,
                command.name,
                lambda command_id=command_id: self._spawn(self._commands.execute(command_id)),
            )
        menu.setEnabled(bool(self._commands.commands()))

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------
    def _prompt_open(self) -> None:
        selected, _filter = QFileDialog.getOpenFileName(
            self, "Open document", str(self._vault), "Markdown (*.md);;All files (*)"
        )
        if not selected:
            return
        try:
            relative = Path(selected).resolve().relative_to(self._vault.resolve())
        except ValueError:
            self.statusBar().showMessage("Documents must live inside the vault", 3000)
            return
        self._spawn(self.open_path(relative.as_posix()))

    def _save(self) -> None:
        self._spawn(self._host.save_document())

    def _prompt_rename(self) -> None:
        current = self._host.active_path()
        if current is None:
            return
        new_path, accepted = QInputDialog.getText(self, "Rename document", "New path:", text=current)
        new_path = new_path.strip()
        if accepted and new_path:
            self._spawn(self._rename(new_path))

    async def _rename(self, new_path: str) -> None:
        try:
            await self._host.rename_document(new_path)
        except (OSError, ValueError) as exc:
            _LOGGER.warning("Rename to %s failed: %s", new_path, exc)
            self.statusBar().showMessage("Rename failed", 3000)
        self._refresh_title()

    def _delete(self) -> None:
        self._spawn(self._delete_active())

    async def _delete_active(self) -> None:
        try:
            await self._host.delete_document()
        except OSError as exc:
            _LOGGER.warning("Delete failed: %s", exc)
            self.statusBar().showMessage("Delete failed", 3000)
        self._refresh_title()

    def _prompt_goto_line(self) -> None:
        if self._host.active_path() is None:
            return
        line, accepted = QInputDialog.getInt(
            self, "Go to line", "Line:", 1, 1, max(1, self._editor.blockCount())
        )
        if accepted:
            self._host.flash_line(line - 1)

    def _toggle_lock_mode(self) -> None:
        enabled = bool(self._lock_mode_action and self._lock_mode_action.isChecked())
        self._settings_runtime.set_lock_mode_enabled(enabled)

    def _prompt_state_dir(self) -> None:
        current = self._engine.record_store.state_dir
        value, accepted = QInputDialog.getText(
            self, "State directory", "Directory inside the vault:", text=current
        )
        if accepted:
            self._settings_runtime.set_state_dir(value)

    def _run_validation(self) -> None:
        self._spawn(self._settings_runtime.run_validation())

    # ------------------------------------------------------------------
    # Event handlers and helpers
    # ------------------------------------------------------------------
    def _create_indicator(self, on_click: Callable[[], None]) -> LockStatusIndicator:
        indicator = LockStatusIndicator(on_click)
        indicator.install(self.statusBar())
        return indicator

    def _on_notice(self, event: NoticePosted) -> None:
        self.statusBar().showMessage(event.message, event.timeout_ms)

    def _refresh_title(self) -> None:
        path = self._host.active_path()
        self.setWindowTitle(f"{path} - {WINDOW_TITLE}" if path else WINDOW_TITLE)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        self._engine.spawn(coro)
