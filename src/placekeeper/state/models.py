"""Dataclasses describing persisted per-document editor state."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

__all__ = [
    "CursorPosition",
    "CursorRange",
    "StateRecord",
    "ValidationReport",
    "LockIcon",
    "is_number",
    "apply_lock_defaults",
]

_KNOWN_FIELDS = frozenset({"cursor", "scroll", "viewState", "protected", "timestamp"})


def is_number(value: Any) -> bool:
    """Return ``True`` for JSON numbers (``bool`` excluded)."""

    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(slots=True, frozen=True)
class CursorPosition:
    """Zero-based line/column coordinate inside a document."""

    line: int = 0
    col: int = 0

    def to_payload(self) -> dict[str, int]:
        return {"line": self.line, "col": self.col}

    @classmethod
    def from_payload(cls, payload: Any) -> CursorPosition | None:
        if not isinstance(payload, Mapping):
            return None
        line = payload.get("line")
        col = payload.get("col")
        if not is_number(line) or not is_number(col):
            return None
        return cls(line=int(line), col=int(col))


@dataclass(slots=True, frozen=True)
class CursorRange:
    """Selection described by its anchor (``start``) and head (``end``)."""

    start: CursorPosition = field(default_factory=CursorPosition)
    end: CursorPosition = field(default_factory=CursorPosition)

    def to_payload(self) -> dict[str, dict[str, int]]:
        return {"start": self.start.to_payload(), "end": self.end.to_payload()}

    @classmethod
    def from_payload(cls, payload: Any) -> CursorRange | None:
        if not isinstance(payload, Mapping):
            return None
        start = CursorPosition.from_payload(payload.get("start"))
        end = CursorPosition.from_payload(payload.get("end"))
        if start is None or end is None:
            return None
        return cls(start=start, end=end)

    @classmethod
    def caret(cls, line: int, col: int) -> CursorRange:
        """Return a collapsed selection at ``line``/``col``."""

        position = CursorPosition(line=line, col=col)
        return cls(start=position, end=position)


@dataclass(slots=True)
class StateRecord:
    """Ephemeral editor state remembered for one document.

    ``protected`` and ``timestamp`` are ``None`` on freshly captured state,
    meaning the lock fields are unknown; :meth:`to_payload` with
    ``fill_defaults`` turns them into ``False``/``None`` the way every write
    does. Unknown top-level keys survive a read/write cycle through ``extra``.
    """

    cursor: CursorRange | None = None
    scroll: float | None = None
    view_state: dict[str, Any] | None = None
    protected: bool | None = None
    timestamp: float | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_payload(self, *, fill_defaults: bool = False) -> dict[str, Any]:
        """Serialize to the JSON shape stored on disk."""

        payload: dict[str, Any] = dict(self.extra)
        if self.cursor is not None:
            payload["cursor"] = self.cursor.to_payload()
        if self.scroll is not None:
            payload["scroll"] = self.scroll
        if self.view_state is not None:
            payload["viewState"] = dict(self.view_state)
        if self.protected is not None:
            payload["protected"] = self.protected
        if self.timestamp is not None or self.protected is not None:
            payload["timestamp"] = self.timestamp
        if fill_defaults:
            apply_lock_defaults(payload)
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> StateRecord:
        """Build a record from a decoded JSON object, dropping malformed fields."""

        scroll = payload.get("scroll")
        view_state = payload.get("viewState")
        protected = payload.get("protected")
        timestamp = payload.get("timestamp")
        return cls(
            cursor=CursorRange.from_payload(payload.get("cursor")),
            scroll=float(scroll) if is_number(scroll) and not math.isnan(scroll) else None,
            view_state=dict(view_state) if isinstance(view_state, Mapping) else None,
            protected=protected if isinstance(protected, bool) else None,
            timestamp=timestamp if is_number(timestamp) else None,
            extra={key: value for key, value in payload.items() if key not in _KNOWN_FIELDS},
        )

    @property
    def view_file(self) -> str | None:
        """Return the ``viewState.file`` back-reference when it is a string."""

        if self.view_state is None:
            return None
        value = self.view_state.get("file")
        return value if isinstance(value, str) else None

    @property
    def is_protected(self) -> bool:
        return self.protected is True


def apply_lock_defaults(payload: dict[str, Any]) -> bool:
    """Fill ``protected``/``timestamp`` defaults in place.

    Returns ``True`` when the payload had to be changed.
    """

    changed = False
    if not isinstance(payload.get("protected"), bool):
        payload["protected"] = False
        changed = True
    timestamp = payload.get("timestamp", ...)
    if timestamp is not None and not is_number(timestamp):
        payload["timestamp"] = None
        changed = True
    return changed


@dataclass(slots=True)
class ValidationReport:
    """Counters produced by a full pass over the state directory.

    ``fixed_paths`` counts ``viewState.file`` rewrites; the owning path is
    read from that same field, so a pass never produces one.
    ``repaired_lock_fields`` counts records whose ``protected``/``timestamp``
    had to be defaulted. Only the former appears in :meth:`summary`.
    """

    total: int = 0
    fixed_paths: int = 0
    repaired_lock_fields: int = 0
    removed_missing_note: int = 0
    removed_invalid_entry: int = 0
    errors: int = 0
    root_missing: bool = False

    def summary(self) -> str:
        return (
            f"Validation completed. Total: {self.total}, "
            f"fixed viewState.file: {self.fixed_paths}, "
            f"removed missing notes: {self.removed_missing_note}, "
            f"removed invalid: {self.removed_invalid_entry}, "
            f"errors: {self.errors}"
        )


class LockIcon(Enum):
    """Visual states of the lock status indicator."""

    UNLOCKED = "unlocked"
    LOCKED = "locked"
    CORRUPTED = "corrupted"

    @property
    def glyph(self) -> str:
        return _GLYPHS[self]

    @property
    def tooltip(self) -> str:
        return _TOOLTIPS[self]


_GLYPHS = {LockIcon.UNLOCKED: "○", LockIcon.LOCKED: "●", LockIcon.CORRUPTED: "✖"}
_TOOLTIPS = {
    LockIcon.UNLOCKED: "Unlocked",
    LockIcon.LOCKED: "Locked",
    LockIcon.CORRUPTED: "Modified externally",
}
