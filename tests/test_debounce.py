"""Tests for the trailing-edge state writer."""

from __future__ import annotations

import asyncio

import pytest

from placekeeper.state.debounce import DebouncedWriter
from placekeeper.state.models import StateRecord


class _Recorder:
    def __init__(self, *, fail: bool = False) -> None:
        self.writes: list[tuple[str, StateRecord]] = []
        self.fail = fail

    async def __call__(self, path: str, record: StateRecord) -> None:
        if self.fail:
            raise OSError("disk full")
        self.writes.append((path, record))


@pytest.mark.asyncio
async def test_burst_collapses_to_last_record() -> None:
    recorder = _Recorder()
    writer = DebouncedWriter(recorder, delay=0.02)
    s1, s2, s3 = StateRecord(scroll=1.0), StateRecord(scroll=2.0), StateRecord(scroll=3.0)

    writer.schedule("a.md", s1)
    await asyncio.sleep(0.005)
    writer.schedule("a.md", s2)
    await asyncio.sleep(0.005)
    writer.schedule("a.md", s3)
    await asyncio.sleep(0.06)
    await writer.drain()

    assert recorder.writes == [("a.md", s3)]


@pytest.mark.asyncio
async def test_cancel_drops_pending_write() -> None:
    recorder = _Recorder()
    writer = DebouncedWriter(recorder, delay=0.01)

    writer.schedule("a.md", StateRecord(scroll=1.0))
    assert writer.pending_path == "a.md"
    writer.cancel()
    await asyncio.sleep(0.03)

    assert recorder.writes == []
    assert writer.pending_path is None


@pytest.mark.asyncio
async def test_flush_writes_immediately() -> None:
    recorder = _Recorder()
    writer = DebouncedWriter(recorder, delay=10)
    record = StateRecord(scroll=4.0)

    writer.schedule("a.md", record)
    await writer.flush()

    assert recorder.writes == [("a.md", record)]
    assert writer.pending_path is None
    await writer.flush()
    assert len(recorder.writes) == 1


@pytest.mark.asyncio
async def test_write_failures_are_logged(caplog) -> None:
    writer = DebouncedWriter(_Recorder(fail=True), delay=0)

    with caplog.at_level("ERROR"):
        writer.schedule("a.md", StateRecord(scroll=1.0))
        await asyncio.sleep(0.01)
        await writer.drain()

    assert "Debounced state write failed for a.md" in caplog.text


def test_negative_delay_is_clamped() -> None:
    writer = DebouncedWriter(_Recorder(), delay=-1)
    assert writer.delay == 0.0
    writer.delay = 0.25
    assert writer.delay == 0.25
