"""Tests for :mod:`placekeeper.engine`."""

from __future__ import annotations

import asyncio

import pytest

from placekeeper.engine import LOCK_COMMAND_ID, StateEngine
from placekeeper.events import (
    DocumentActivated,
    DocumentDeleted,
    DocumentRenamed,
    EditorChanged,
    LayoutSettled,
)
from placekeeper.host import VIEW_MODE_PREVIEW
from placekeeper.state.models import CursorRange, LockIcon, StateRecord
from placekeeper.ui.commands import CommandRegistry

from tests.helpers import STATE_DIR, read_record, record_file, view_state, write_note, write_record


@pytest.fixture
def engine(host, storage, settings, no_sleep) -> StateEngine:
    return StateEngine(host=host, storage=storage, settings=settings, sleep=no_sleep)


def _loaded(engine: StateEngine, host, path: str) -> None:
    host.open(path)
    engine.last_loaded_path = path


async def _settle_writes(engine: StateEngine) -> None:
    await engine.wait_for_tasks()
    await asyncio.sleep(engine.writer.delay + 0.02)
    await engine.writer.drain()


@pytest.mark.asyncio
async def test_first_capture_only_sets_baseline(engine, host, tmp_path) -> None:
    _loaded(engine, host, "a.md")

    assert await engine.perform_state_check() is False
    assert engine.last_snapshot is not None

    host.cursor = CursorRange.caret(3, 3)
    assert await engine.perform_state_check() is True
    await engine.writer.flush()

    stored = read_record(tmp_path, STATE_DIR, "a.md")
    assert stored["cursor"]["start"] == {"line": 3, "col": 3}
    assert stored["viewState"]["file"] == "a.md"


@pytest.mark.asyncio
async def test_unchanged_state_is_not_saved(engine, host, tmp_path) -> None:
    _loaded(engine, host, "a.md")
    await engine.perform_state_check()

    assert await engine.perform_state_check() is False
    assert engine.writer.pending_path is None


@pytest.mark.asyncio
async def test_save_preserves_persisted_lock_fields(engine, host, tmp_path) -> None:
    write_record(
        tmp_path, STATE_DIR, "a.md",
        {"scroll": 5, "viewState": view_state("a.md"), "protected": True, "timestamp": 1000},
    )
    _loaded(engine, host, "a.md")
    engine.last_snapshot = StateRecord(scroll=5.0, view_state=view_state("a.md"))

    host.scroll = 80.0
    assert await engine.perform_state_check() is True
    await engine.writer.flush()

    stored = read_record(tmp_path, STATE_DIR, "a.md")
    assert stored["protected"] is True
    assert stored["timestamp"] == 1000
    assert stored["scroll"] == 80.0
    assert engine.last_snapshot.protected is True


@pytest.mark.asyncio
async def test_snapshot_lock_fields_fill_in_when_record_is_missing(engine, host, tmp_path) -> None:
    _loaded(engine, host, "a.md")
    engine.last_snapshot = StateRecord(view_state=view_state("a.md"), protected=True, timestamp=42)

    host.cursor = CursorRange.caret(1, 0)
    assert await engine.perform_state_check() is True
    await engine.writer.flush()

    stored = read_record(tmp_path, STATE_DIR, "a.md")
    assert (stored["protected"], stored["timestamp"]) == (True, 42)


@pytest.mark.asyncio
async def test_lock_during_debounce_window_survives_pending_write(engine, host, tmp_path) -> None:
    write_note(tmp_path, "a.md")
    write_record(
        tmp_path, STATE_DIR, "a.md",
        {"viewState": view_state("a.md"), "protected": False, "timestamp": None},
    )
    _loaded(engine, host, "a.md")
    await engine.perform_state_check()

    host.cursor = CursorRange.caret(4, 2)
    assert await engine.perform_state_check() is True
    assert engine.writer.pending_path == "a.md"

    assert await engine.lock_manager.toggle("a.md") is True
    await engine.writer.flush()

    stored = read_record(tmp_path, STATE_DIR, "a.md")
    assert stored["protected"] is True
    assert isinstance(stored["timestamp"], (int, float))
    assert stored["cursor"]["start"] == {"line": 4, "col": 2}
    assert engine.last_snapshot.protected is True


@pytest.mark.asyncio
async def test_overlapping_checks_persist_the_latest_capture(engine, host, tmp_path) -> None:
    _loaded(engine, host, "a.md")
    await engine.perform_state_check()

    host.cursor = CursorRange.caret(1, 0)
    engine.request_state_check()
    await asyncio.sleep(0)
    host.cursor = CursorRange.caret(2, 0)
    engine.request_state_check()
    await engine.wait_for_tasks()
    await engine.writer.flush()

    stored = read_record(tmp_path, STATE_DIR, "a.md")
    assert stored["cursor"]["start"] == {"line": 2, "col": 0}
    assert engine.last_snapshot.cursor == CursorRange.caret(2, 0)


@pytest.mark.asyncio
async def test_empty_state_is_never_saved(engine, host, monkeypatch) -> None:
    _loaded(engine, host, "a.md")
    host.cursor = None
    monkeypatch.setattr(host, "get_view_state", lambda: None)

    assert await engine.perform_state_check() is False
    assert engine.last_snapshot is None


@pytest.mark.asyncio
async def test_nothing_saved_while_loading_or_for_other_documents(engine, host) -> None:
    _loaded(engine, host, "a.md")
    engine.loading = True
    assert await engine.perform_state_check() is False

    engine.loading = False
    host.open("b.md")
    assert await engine.perform_state_check() is False
    assert engine.last_snapshot is None


@pytest.mark.asyncio
async def test_editor_changes_are_debounced_into_one_write(engine, host, tmp_path) -> None:
    _loaded(engine, host, "a.md")
    await engine.perform_state_check()
    writes: list[StateRecord] = []
    original = engine.writer._write  # type: ignore[attr-defined]

    async def counting_write(path: str, record: StateRecord) -> None:
        writes.append(record)
        await original(path, record)

    engine.writer._write = counting_write  # type: ignore[attr-defined]
    await engine.start()

    for line in (1, 2, 3):
        host.cursor = CursorRange.caret(line, 0)
        engine.bus.publish(EditorChanged(path="a.md"))
        await engine.wait_for_tasks()
    await _settle_writes(engine)

    assert len(writes) == 1
    assert writes[0].cursor == CursorRange.caret(3, 0)
    await engine.shutdown()


@pytest.mark.asyncio
async def test_full_cycle_restores_after_reopen(host, storage, settings, no_sleep, tmp_path) -> None:
    write_note(tmp_path, "a.md")
    first = StateEngine(host=host, storage=storage, settings=settings, sleep=no_sleep)
    await first.start()

    host.open("a.md")
    first.bus.publish(DocumentActivated(path="a.md"))
    first.bus.publish(LayoutSettled())
    await first.wait_for_tasks()

    host.cursor = CursorRange.caret(7, 2)
    host.scroll = 120.0
    first.bus.publish(EditorChanged(path="a.md"))
    await _settle_writes(first)
    await first.shutdown()

    reopened = type(host)()
    reopened.open("a.md")
    second = StateEngine(host=reopened, storage=storage, settings=settings, sleep=no_sleep)
    await second.start()

    assert reopened.cursor == CursorRange.caret(7, 2)
    assert reopened.scroll == 120.0
    await second.shutdown()


@pytest.mark.asyncio
async def test_change_check_waits_for_restoration_in_flight(engine, host, tmp_path, monkeypatch) -> None:
    write_note(tmp_path, "a.md")
    write_record(
        tmp_path, STATE_DIR, "a.md",
        {
            "cursor": {"start": {"line": 5, "col": 1}, "end": {"line": 5, "col": 1}},
            "scroll": 40,
            "viewState": view_state("a.md"),
            "protected": False,
            "timestamp": None,
        },
    )
    gate = asyncio.Event()

    async def held_layout() -> None:
        await gate.wait()

    monkeypatch.setattr(host, "wait_for_layout", held_layout)
    await engine.start()

    host.open("a.md")
    engine.bus.publish(DocumentActivated(path="a.md"))
    engine.bus.publish(LayoutSettled())
    for _ in range(5):
        await asyncio.sleep(0)

    host.cursor = CursorRange.caret(9, 9)
    engine.bus.publish(EditorChanged(path="a.md"))
    for _ in range(5):
        await asyncio.sleep(0)

    assert engine.sequencer.in_flight
    assert engine.last_snapshot is None
    assert engine.writer.pending_path is None

    gate.set()
    await engine.wait_for_tasks()

    assert host.cursor == CursorRange.caret(5, 1)
    assert engine.last_snapshot.cursor == CursorRange.caret(5, 1)
    assert engine.writer.pending_path is None
    assert read_record(tmp_path, STATE_DIR, "a.md")["cursor"]["start"] == {"line": 5, "col": 1}
    await engine.shutdown()


@pytest.mark.asyncio
async def test_locked_document_opens_read_only(host, storage, settings, no_sleep, tmp_path) -> None:
    write_note(tmp_path, "a.md")
    write_record(
        tmp_path, STATE_DIR, "a.md",
        {"viewState": view_state("a.md"), "protected": True, "timestamp": None},
    )
    engine = StateEngine(host=host, storage=storage, settings=settings, sleep=no_sleep)
    await engine.start()

    host.open("a.md")
    engine.bus.publish(DocumentActivated(path="a.md"))
    engine.bus.publish(LayoutSettled())
    await engine.wait_for_tasks()

    assert host.mode == VIEW_MODE_PREVIEW
    assert engine.indicator is not None and engine.indicator.icon is LockIcon.LOCKED
    await engine.shutdown()


@pytest.mark.asyncio
async def test_rename_moves_record_and_follows_active_document(engine, host, tmp_path) -> None:
    write_record(
        tmp_path, STATE_DIR, "old.md",
        {"scroll": 3, "viewState": view_state("old.md"), "protected": False, "timestamp": None},
    )
    _loaded(engine, host, "old.md")
    engine.writer.delay = 10
    engine.writer.schedule("old.md", StateRecord(scroll=9.0, view_state=view_state("old.md")))
    await engine.start()

    host.path = "new.md"
    engine.bus.publish(DocumentRenamed(old_path="old.md", new_path="new.md"))
    await engine.wait_for_tasks()

    assert not record_file(tmp_path, STATE_DIR, "old.md").exists()
    moved = read_record(tmp_path, STATE_DIR, "new.md")
    assert moved["scroll"] == 9.0
    assert moved["viewState"]["file"] == "new.md"
    assert engine.last_loaded_path == "new.md"
    await engine.shutdown()


@pytest.mark.asyncio
async def test_delete_removes_record_and_pending_write(engine, host, tmp_path) -> None:
    write_record(
        tmp_path, STATE_DIR, "a.md",
        {"scroll": 3, "viewState": view_state("a.md"), "protected": False, "timestamp": None},
    )
    _loaded(engine, host, "a.md")
    engine.writer.delay = 10
    engine.writer.schedule("a.md", StateRecord(scroll=9.0))
    await engine.start()

    engine.bus.publish(DocumentDeleted(path="a.md"))
    await engine.wait_for_tasks()
    await engine.shutdown()

    assert not record_file(tmp_path, STATE_DIR, "a.md").exists()
    assert engine.last_loaded_path is None


@pytest.mark.asyncio
async def test_lock_mode_registers_command_and_indicator(host, storage, settings, no_sleep) -> None:
    commands = CommandRegistry()
    engine = StateEngine(host=host, storage=storage, settings=settings, commands=commands, sleep=no_sleep)
    await engine.start()
    assert LOCK_COMMAND_ID in commands
    assert commands.get(LOCK_COMMAND_ID).name == "Lock/unlock"
    assert engine.indicator is not None

    engine.disable_lock_mode()
    assert LOCK_COMMAND_ID not in commands
    assert engine.indicator is None

    engine.enable_lock_mode()
    engine.enable_lock_mode()
    assert [c.command_id for c in commands.commands()] == [LOCK_COMMAND_ID]
    await engine.shutdown()
    assert LOCK_COMMAND_ID not in commands


@pytest.mark.asyncio
async def test_lock_command_toggles_active_document(engine, host, tmp_path) -> None:
    write_note(tmp_path, "a.md")
    await engine.start()
    assert await engine.commands.execute(LOCK_COMMAND_ID) is None

    host.open("a.md")
    assert await engine.commands.execute(LOCK_COMMAND_ID) is True
    assert read_record(tmp_path, STATE_DIR, "a.md")["protected"] is True
    assert engine.indicator.icon is LockIcon.LOCKED
    await engine.shutdown()


@pytest.mark.asyncio
async def test_indicator_click_toggles_lock(engine, host, tmp_path) -> None:
    write_note(tmp_path, "a.md")
    host.open("a.md")
    await engine.start()

    engine.indicator.click()
    await engine.wait_for_tasks()

    assert read_record(tmp_path, STATE_DIR, "a.md")["protected"] is True
    await engine.shutdown()


@pytest.mark.asyncio
async def test_shutdown_drops_pending_write(engine, host, tmp_path) -> None:
    _loaded(engine, host, "a.md")
    engine.writer.delay = 10
    engine.writer.schedule("a.md", StateRecord(scroll=4.0, view_state=view_state("a.md")))

    await engine.shutdown()

    assert engine.writer.pending_path is None
    assert not record_file(tmp_path, STATE_DIR, "a.md").exists()
