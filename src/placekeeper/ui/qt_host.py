"""PySide6 editor host exposing a ``QPlainTextEdit`` to the state engine."""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import Any, Iterator, Mapping

from ..events import (
    DocumentActivated,
    DocumentDeleted,
    DocumentRenamed,
    EditorChanged,
    EventBus,
    LayoutSettled,
)
from ..host import VIEW_MODE_PREVIEW, VIEW_MODE_SOURCE
from ..services.storage import StorageMedium
from ..state.models import CursorPosition, CursorRange

try:  # pragma: no cover - Qt imports are optional during tests
    from PySide6.QtCore import QCoreApplication, QTimer
    from PySide6.QtGui import QColor, QTextCharFormat, QTextCursor, QTextFormat
    from PySide6.QtWidgets import QPlainTextEdit, QTextEdit
except Exception:  # pragma: no cover - PySide6 not available
    QCoreApplication = None  # type: ignore[assignment,misc]
    QTimer = None  # type: ignore[assignment,misc]
    QColor = None  # type: ignore[assignment,misc]
    QTextCharFormat = None  # type: ignore[assignment,misc]
    QTextCursor = None  # type: ignore[assignment,misc]
    QTextFormat = None  # type: ignore[assignment,misc]
    QPlainTextEdit = None  # type: ignore[assignment,misc]
    QTextEdit = None  # type: ignore[assignment,misc]

__all__ = ["QtEditorHost", "VIEW_TYPE"]

LOGGER = logging.getLogger(__name__)

VIEW_TYPE = "markdown"
FLASH_DURATION_MS = 1500


class QtEditorHost:
    """Implements :class:`~placekeeper.host.EditorHost` for a single editor pane.

    Documents are loaded from and saved to ``storage``; lifecycle changes are
    published on ``bus``. Scroll offsets are expressed in the vertical
    scrollbar's units (first visible block for a plain text edit).
    """

    def __init__(self, storage: StorageMedium, bus: EventBus, editor: Any | None = None) -> None:
        if editor is None:
            if QPlainTextEdit is None:
                raise RuntimeError("PySide6 is required for the Qt editor host.")
            editor = QPlainTextEdit()
        self._storage = storage
        self._bus = bus
        self._editor = editor
        self._path: str | None = None
        self._mode = VIEW_MODE_SOURCE
        self._suppress_changes = 0
        self._flash_active = False
        self._editor.setObjectName("pk-editor")
        self._editor.textChanged.connect(self._on_editor_activity)
        self._editor.cursorPositionChanged.connect(self._on_editor_activity)
        self._editor.verticalScrollBar().valueChanged.connect(self._on_editor_activity)

    @property
    def editor(self) -> Any:
        return self._editor

    @property
    def mode(self) -> str:
        return self._mode

    # ------------------------------------------------------------------
    # EditorHost protocol
    # ------------------------------------------------------------------
    def active_path(self) -> str | None:
        return self._path

    def get_cursor(self) -> CursorRange | None:
        if self._path is None:
            return None
        cursor = self._editor.textCursor()
        return CursorRange(
            start=self._position_to_cursor(cursor.anchor()),
            end=self._position_to_cursor(cursor.position()),
        )

    def set_cursor(self, cursor: CursorRange) -> None:
        if self._path is None:
            return
        text_cursor = self._editor.textCursor()
        text_cursor.setPosition(self._cursor_to_position(cursor.start))
        text_cursor.setPosition(self._cursor_to_position(cursor.end), QTextCursor.MoveMode.KeepAnchor)
        with self._quiet():
            self._editor.setTextCursor(text_cursor)

    def get_scroll(self) -> float | None:
        if self._path is None:
            return None
        return float(self._editor.verticalScrollBar().value())

    def apply_scroll(self, scroll: float) -> None:
        if self._path is None:
            return
        with self._quiet():
            self._editor.verticalScrollBar().setValue(int(round(scroll)))

    def get_view_state(self) -> dict[str, Any] | None:
        if self._path is None:
            return None
        return {
            "type": VIEW_TYPE,
            "file": self._path,
            "state": {"mode": self._mode, "source": False},
        }

    def set_view_state(self, view_state: Mapping[str, Any]) -> None:
        inner = view_state.get("state")
        if not isinstance(inner, Mapping):
            return
        mode = inner.get("mode")
        if mode in (VIEW_MODE_SOURCE, VIEW_MODE_PREVIEW):
            self._set_mode(mode)

    def is_read_only(self) -> bool:
        return self._mode == VIEW_MODE_PREVIEW

    def set_read_only(self, read_only: bool) -> None:
        self._set_mode(VIEW_MODE_PREVIEW if read_only else VIEW_MODE_SOURCE)

    def transient_effect_active(self) -> bool:
        return self._flash_active

    async def wait_for_layout(self) -> None:
        if QCoreApplication is not None and QCoreApplication.instance() is not None:
            QCoreApplication.processEvents()
        await asyncio.sleep(0)

    # ------------------------------------------------------------------
    # Document lifecycle
    # ------------------------------------------------------------------
    async def open_document(self, path: str) -> None:
        """Load ``path`` into the editor and announce the activation."""

        text = await self._storage.read_text(path)
        with self._quiet():
            self._editor.setPlainText(text)
            self._path = path
            self._set_mode(VIEW_MODE_SOURCE)
        LOGGER.debug("Opened %s", path)
        self._bus.publish(DocumentActivated(path=path))
        await self.wait_for_layout()
        self._bus.publish(LayoutSettled())

    async def save_document(self) -> bool:
        if self._path is None:
            return False
        await self._storage.write_text(self._path, self._editor.toPlainText())
        self._editor.document().setModified(False)
        LOGGER.debug("Saved %s", self._path)
        return True

    async def rename_document(self, new_path: str) -> None:
        old_path = self._path
        if old_path is None or new_path == old_path:
            return
        await self._storage.rename(old_path, new_path)
        self._path = new_path
        self._bus.publish(DocumentRenamed(old_path=old_path, new_path=new_path))

    async def delete_document(self) -> None:
        path = self._path
        if path is None:
            return
        await self._storage.remove(path)
        with self._quiet():
            self._path = None
            self._editor.clear()
            self._set_mode(VIEW_MODE_SOURCE)
        self._bus.publish(DocumentDeleted(path=path))

    def toggle_mode(self) -> None:
        """Switch between the editable source and the read-only preview."""

        self.set_read_only(not self.is_read_only())
        self._on_editor_activity()

    def flash_line(self, line: int, duration_ms: int = FLASH_DURATION_MS) -> None:
        """Highlight ``line`` briefly; state reads are suppressed meanwhile."""

        if self._path is None or QTextEdit is None:
            return
        block = self._editor.document().findBlockByNumber(max(0, line))
        highlight = QTextCharFormat()
        highlight.setBackground(QColor("#fff3a0"))
        highlight.setProperty(QTextFormat.Property.FullWidthSelection, True)
        selection = QTextEdit.ExtraSelection()
        selection.format = highlight
        selection.cursor = QTextCursor(block)
        self._editor.setExtraSelections([selection])
        self._flash_active = True
        self._editor.centerCursor()
        QTimer.singleShot(duration_ms, self._end_flash)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _end_flash(self) -> None:
        self._flash_active = False
        self._editor.setExtraSelections([])

    def _set_mode(self, mode: str) -> None:
        self._mode = mode
        self._editor.setReadOnly(mode == VIEW_MODE_PREVIEW)

    def _position_to_cursor(self, position: int) -> CursorPosition:
        block = self._editor.document().findBlock(position)
        return CursorPosition(line=block.blockNumber(), col=position - block.position())

    def _cursor_to_position(self, cursor: CursorPosition) -> int:
        document = self._editor.document()
        line = min(max(cursor.line, 0), max(document.blockCount() - 1, 0))
        block = document.findBlockByNumber(line)
        col = min(max(cursor.col, 0), max(block.length() - 1, 0))
        return block.position() + col

    def _on_editor_activity(self, *_args: Any) -> None:
        if self._suppress_changes or self._path is None:
            return
        self._bus.publish(EditorChanged(path=self._path))

    @contextmanager
    def _quiet(self) -> Iterator[None]:
        self._suppress_changes += 1
        try:
            yield
        finally:
            self._suppress_changes -= 1
