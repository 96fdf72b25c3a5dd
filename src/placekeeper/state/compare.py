"""Change detection between two captured editor states."""

from __future__ import annotations

from .models import StateRecord

__all__ = ["is_empty_state", "states_same"]


def is_empty_state(state: StateRecord) -> bool:
    """Return ``True`` when ``state`` carries no cursor, scroll or view state.

    A scroll offset of exactly ``0`` counts as absent.
    """

    return state.cursor is None and not state.scroll and state.view_state is None


def states_same(left: StateRecord | None, right: StateRecord | None) -> bool:
    """Return ``True`` when persisting ``left`` over ``right`` would be pointless.

    Lock fields are ignored; only cursor, scroll and view state count.
    """

    if left is None and right is None:
        return True
    if left is None or right is None:
        return False

    left_empty = is_empty_state(left)
    right_empty = is_empty_state(right)
    if left_empty and right_empty:
        return True
    if left_empty != right_empty:
        return False

    if (left.cursor is None) != (right.cursor is None):
        return False
    if left.cursor is not None and right.cursor is not None:
        if left.cursor.start.line != right.cursor.start.line:
            return False
        if left.cursor.start.col != right.cursor.start.col:
            return False
        if left.cursor.end.line != right.cursor.end.line:
            return False
        if left.cursor.end.col != right.cursor.end.col:
            return False

    if bool(left.scroll) != bool(right.scroll):
        return False
    if left.scroll and left.scroll != right.scroll:
        return False

    return left.view_state == right.view_state
