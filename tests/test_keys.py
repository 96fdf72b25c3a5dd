"""Tests for storage key derivation."""

from __future__ import annotations

import re

from placekeeper.state.keys import derive_key, state_location

_KEY_PATTERN = re.compile(r"^[0-9a-z]+$")


def test_known_vectors_match_existing_stores() -> None:
    assert derive_key("") == "000"
    assert derive_key("a") == "2p2p1"
    assert derive_key("ab") == "2e92uf2"


def test_key_is_deterministic() -> None:
    path = "Projects/2024/plan.md"
    assert derive_key(path) == derive_key(path)


def test_keys_are_filesystem_safe() -> None:
    for path in ("notes/a b.md", "ünïcödé/日本語.md", "emoji 😀.md", "x" * 5000, ""):
        assert _KEY_PATTERN.match(derive_key(path)), path


def test_length_suffix_counts_utf16_units() -> None:
    # A character outside the BMP is two UTF-16 code units.
    assert derive_key("😀").endswith("2")
    assert derive_key("é").endswith("1")


def test_very_long_paths_stay_bounded() -> None:
    key = derive_key("deep/" * 10_000 + "note.md")
    assert len(key) < 20


def test_collision_rate_is_low() -> None:
    paths = [f"folder{i // 100}/note-{i}.md" for i in range(10_000)]
    keys = {derive_key(path) for path in paths}
    collisions = len(paths) - len(keys)
    assert collisions < len(paths) * 0.01


def test_state_location_joins_directory_and_key() -> None:
    assert state_location("db/", "a") == "db/2p2p1.json"
    assert state_location("db", "a") == "db/2p2p1.json"
