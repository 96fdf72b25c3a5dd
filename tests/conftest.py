"""Shared pytest fixtures."""

from __future__ import annotations

import asyncio
import os

import pytest

# Tests run headless; use Qt's offscreen platform unless one is configured.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from placekeeper.services.settings import Settings
from placekeeper.services.storage import LocalStorage

from tests.helpers import STATE_DIR, FakeHost


@pytest.fixture
def storage(tmp_path) -> LocalStorage:
    return LocalStorage(tmp_path)


@pytest.fixture
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture
def settings() -> Settings:
    return Settings(state_dir=STATE_DIR, save_delay_ms=10)


@pytest.fixture
def no_sleep():
    """Sleep replacement that records requested delays without waiting."""

    delays: list[float] = []

    async def _sleep(delay: float) -> None:
        delays.append(delay)
        await asyncio.sleep(0)

    _sleep.delays = delays  # type: ignore[attr-defined]
    return _sleep


@pytest.fixture(autouse=True)
def _isolate_settings_env(monkeypatch, tmp_path) -> None:
    for name in (
        "PLACEKEEPER_STATE_DIR",
        "PLACEKEEPER_LOCK_MODE",
        "PLACEKEEPER_SAVE_DELAY_MS",
        "PLACEKEEPER_DEBUG_LOGGING",
        "PLACEKEEPER_VAULT",
        "PLACEKEEPER_SETTINGS_PATH",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PLACEKEEPER_LOG_DIR", str(tmp_path / "logs"))
