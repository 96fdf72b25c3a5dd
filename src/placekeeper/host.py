"""Protocols describing what the state engine needs from the host editor."""

from __future__ import annotations

from typing import Any, Mapping, Protocol, runtime_checkable

from .state.models import CursorRange

__all__ = ["EditorHost", "VIEW_MODE_PREVIEW", "VIEW_MODE_SOURCE"]

VIEW_MODE_SOURCE = "source"
VIEW_MODE_PREVIEW = "preview"


@runtime_checkable
class EditorHost(Protocol):
    """Accessors over the host's active document view.

    All methods act on the currently active view. Getters return ``None``
    when no view is active or the value cannot be determined.
    """

    def active_path(self) -> str | None:
        """Vault-relative path of the active document."""
        ...

    def get_cursor(self) -> CursorRange | None:
        ...

    def set_cursor(self, cursor: CursorRange) -> None:
        ...

    def get_scroll(self) -> float | None:
        ...

    def apply_scroll(self, scroll: float) -> None:
        ...

    def get_view_state(self) -> dict[str, Any] | None:
        """Opaque view-state blob, including ``type`` and ``file``."""
        ...

    def set_view_state(self, view_state: Mapping[str, Any]) -> None:
        ...

    def is_read_only(self) -> bool:
        ...

    def set_read_only(self, read_only: bool) -> None:
        ...

    def transient_effect_active(self) -> bool:
        """``True`` while a visual effect (e.g. a search flash) is running."""
        ...

    async def wait_for_layout(self) -> None:
        """Resolve once the host's presentation has settled."""
        ...
