"""Lock mode status indicator with an optional Qt widget."""

from __future__ import annotations

from typing import Any, Callable

from ..state.models import LockIcon

try:  # pragma: no cover - Qt imports are optional during tests
    from PySide6.QtWidgets import QToolButton
except Exception:  # pragma: no cover - PySide6 not available
    QToolButton = None  # type: ignore[assignment,misc]

__all__ = ["LockStatusIndicator"]


class LockStatusIndicator:
    """Three-state lock icon; clicking it toggles the active document."""

    def __init__(self, on_click: Callable[[], None] | None = None) -> None:
        self._on_click = on_click
        self._icon = LockIcon.UNLOCKED
        self._button: Any = None
        self._status_bar: Any = None

    @property
    def icon(self) -> LockIcon:
        return self._icon

    @property
    def text(self) -> str:
        return self._icon.glyph

    @property
    def tooltip(self) -> str:
        return self._icon.tooltip

    def install(self, status_bar: Any | None) -> None:
        """Add the indicator to a Qt status bar when Qt is available."""

        if status_bar is None or QToolButton is None or self._button is not None:
            return
        button = QToolButton()
        button.setObjectName("pk-lock-status")
        button.setAutoRaise(True)
        button.clicked.connect(self.click)
        try:
            status_bar.addPermanentWidget(button)
        except Exception:
            return
        self._button = button
        self._status_bar = status_bar
        self._refresh_widget()

    def update_icon(self, icon: LockIcon) -> None:
        self._icon = icon
        self._refresh_widget()

    def click(self) -> None:
        if self._on_click is not None:
            self._on_click()

    def dispose(self) -> None:
        if self._button is None:
            return
        try:
            if self._status_bar is not None:
                self._status_bar.removeWidget(self._button)
            self._button.deleteLater()
        except Exception:  # pragma: no cover - widget already gone
            pass
        self._button = None
        self._status_bar = None

    def _refresh_widget(self) -> None:
        if self._button is None:
            return
        self._button.setText(self._icon.glyph)
        self._button.setToolTip(self._icon.tooltip)
