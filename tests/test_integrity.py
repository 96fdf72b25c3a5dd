"""Tests for modification-time fingerprints."""

from __future__ import annotations

import os

import pytest

from placekeeper.state.integrity import IntegrityChecker, IntegrityError

from tests.helpers import write_note


@pytest.mark.asyncio
async def test_fingerprint_is_mtime_in_milliseconds(storage, tmp_path) -> None:
    note = write_note(tmp_path, "a.md")
    os.utime(note, ns=(1_700_000_000_123_000_000, 1_700_000_000_123_000_000))

    assert await IntegrityChecker(storage).fingerprint("a.md") == 1_700_000_000_123


@pytest.mark.asyncio
async def test_verify_detects_touch(storage, tmp_path) -> None:
    note = write_note(tmp_path, "a.md")
    checker = IntegrityChecker(storage)
    recorded = await checker.fingerprint("a.md")

    assert await checker.verify("a.md", recorded)

    os.utime(note, ns=((recorded + 5_000) * 1_000_000, (recorded + 5_000) * 1_000_000))
    assert not await checker.verify("a.md", recorded)


@pytest.mark.asyncio
async def test_missing_document_raises(storage) -> None:
    with pytest.raises(IntegrityError):
        await IntegrityChecker(storage).fingerprint("missing.md")
