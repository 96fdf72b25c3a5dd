"""Modification-time fingerprints used to detect out-of-band edits."""

from __future__ import annotations

import logging

from ..services.storage import StorageMedium

__all__ = ["IntegrityChecker", "IntegrityError"]

LOGGER = logging.getLogger(__name__)


class IntegrityError(RuntimeError):
    """Raised when a document fingerprint cannot be obtained."""


class IntegrityChecker:
    """Compares a recorded modification time with the document on disk.

    The fingerprint is coarse: touching a file without changing it counts as
    a modification, and a tool that preserves mtime goes unnoticed.
    """

    def __init__(self, storage: StorageMedium) -> None:
        self._storage = storage

    async def fingerprint(self, path: str) -> int:
        """Return the modification time of ``path`` in milliseconds."""

        stat = await self._storage.stat(path)
        if stat is None:
            raise IntegrityError(f"stat() returned no mtime for {path}")
        return stat.mtime

    async def verify(self, path: str, expected: float) -> bool:
        """Return ``True`` when ``path`` still carries the ``expected`` mtime."""

        current = await self.fingerprint(path)
        LOGGER.debug(
            "Integrity check for %s: current=%s recorded=%s", path, current, expected
        )
        return current == expected
