"""Tests for the lock status indicator without a status bar."""

from __future__ import annotations

from placekeeper.state.models import LockIcon
from placekeeper.ui.lock_status import LockStatusIndicator


def test_indicator_defaults_to_unlocked() -> None:
    indicator = LockStatusIndicator()

    assert indicator.icon is LockIcon.UNLOCKED
    assert indicator.text == LockIcon.UNLOCKED.glyph
    assert indicator.tooltip == LockIcon.UNLOCKED.tooltip


def test_update_icon_changes_presentation() -> None:
    indicator = LockStatusIndicator()

    indicator.update_icon(LockIcon.CORRUPTED)

    assert indicator.icon is LockIcon.CORRUPTED
    assert indicator.text == LockIcon.CORRUPTED.glyph
    assert indicator.tooltip == LockIcon.CORRUPTED.tooltip


def test_click_invokes_callback() -> None:
    clicks: list[str] = []
    indicator = LockStatusIndicator(lambda: clicks.append("click"))

    indicator.click()
    indicator.click()

    assert clicks == ["click", "click"]


def test_install_without_status_bar_and_dispose_are_noops() -> None:
    indicator = LockStatusIndicator()

    indicator.install(None)
    indicator.update_icon(LockIcon.LOCKED)
    indicator.dispose()

    assert indicator.icon is LockIcon.LOCKED
