"""Shared test helpers and stub classes.

Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Mapping

from placekeeper.host import VIEW_MODE_PREVIEW, VIEW_MODE_SOURCE
from placekeeper.state.keys import derive_key
from placekeeper.state.models import CursorRange

STATE_DIR = ".placekeeper/plugins/placekeeper/db"


class FakeHost:
    """In-memory editor host with one active document.

    ``scroll_readings`` lets a test script what ``get_scroll`` reports after
    scroll applications, to simulate a view that lags behind.
    """

    def __init__(self) -> None:
        self.path: str | None = None
        self.cursor: CursorRange | None = None
        self.scroll: float | None = 0.0
        self.mode = VIEW_MODE_SOURCE
        self.effect = False
        self.scroll_readings: list[float | None] = []
        self.applied_scrolls: list[float] = []
        self.calls: list[str] = []

    def open(self, path: str, *, mode: str = VIEW_MODE_SOURCE) -> None:
        self.path = path
        self.mode = mode
        self.cursor = CursorRange.caret(0, 0)
        self.scroll = 0.0

    # EditorHost protocol -------------------------------------------------
    def active_path(self) -> str | None:
        return self.path

    def get_cursor(self) -> CursorRange | None:
        return self.cursor if self.path is not None else None

    def set_cursor(self, cursor: CursorRange) -> None:
        self.calls.append("cursor")
        self.cursor = cursor

    def get_scroll(self) -> float | None:
        if self.path is None:
            return None
        if self.scroll_readings:
            return self.scroll_readings.pop(0)
        return self.scroll

    def apply_scroll(self, scroll: float) -> None:
        self.calls.append("scroll")
        self.applied_scrolls.append(scroll)
        self.scroll = scroll

    def get_view_state(self) -> dict[str, Any] | None:
        if self.path is None:
            return None
        return {"type": "markdown", "file": self.path, "state": {"mode": self.mode}}

    def set_view_state(self, view_state: Mapping[str, Any]) -> None:
        self.calls.append("view")
        inner = view_state.get("state") or {}
        mode = inner.get("mode")
        if mode in (VIEW_MODE_SOURCE, VIEW_MODE_PREVIEW):
            self.mode = mode

    def is_read_only(self) -> bool:
        return self.mode == VIEW_MODE_PREVIEW

    def set_read_only(self, read_only: bool) -> None:
        self.calls.append("read_only")
        self.mode = VIEW_MODE_PREVIEW if read_only else VIEW_MODE_SOURCE

    def transient_effect_active(self) -> bool:
        return self.effect

    async def wait_for_layout(self) -> None:
        self.calls.append("layout")
        await asyncio.sleep(0)


def record_file(root: Path, state_dir: str, path: str) -> Path:
    """Return the on-disk location of the record owned by ``path``."""

    return root / state_dir / f"{derive_key(path)}.json"


def write_record(root: Path, state_dir: str, path: str, payload: Any) -> Path:
    target = record_file(root, state_dir, path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(payload if isinstance(payload, str) else json.dumps(payload), encoding="utf-8")
    return target


def read_record(root: Path, state_dir: str, path: str) -> dict[str, Any]:
    return json.loads(record_file(root, state_dir, path).read_text(encoding="utf-8"))


def write_note(root: Path, path: str, text: str = "# note\n") -> Path:
    target = root / path
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8")
    return target


def view_state(path: str, mode: str = VIEW_MODE_SOURCE) -> dict[str, Any]:
    return {"type": "markdown", "file": path, "state": {"mode": mode}}
