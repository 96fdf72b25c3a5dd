"""Asynchronous storage medium used for both documents and state records.

Paths handed to a :class:`StorageMedium` are vault-relative and use ``/`` as
separator, mirroring how the host addresses documents. Every operation may
raise; callers decide whether a failure is fatal.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Protocol, runtime_checkable

__all__ = ["FileStat", "ListResult", "StorageMedium", "LocalStorage", "join_path"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class FileStat:
    """Subset of ``os.stat`` the engine relies on."""

    mtime: int
    size: int
    is_dir: bool = False


@dataclass(slots=True)
class ListResult:
    """Directory listing with vault-relative child paths."""

    files: list[str] = field(default_factory=list)
    folders: list[str] = field(default_factory=list)


@runtime_checkable
class StorageMedium(Protocol):
    """Protocol for the file-system abstraction backing the state store."""

    async def exists(self, path: str) -> bool:
        ...

    async def read_text(self, path: str) -> str:
        ...

    async def write_text(self, path: str, content: str) -> None:
        ...

    async def mkdir(self, path: str) -> None:
        ...

    async def remove(self, path: str) -> None:
        ...

    async def rename(self, old_path: str, new_path: str) -> None:
        ...

    async def stat(self, path: str) -> FileStat | None:
        ...

    async def list(self, path: str) -> ListResult:
        ...


def join_path(*parts: str) -> str:
    """Join vault-relative path segments with ``/``."""

    cleaned = [part.strip("/") for part in parts if part and part.strip("/")]
    return "/".join(cleaned)


class LocalStorage:
    """:class:`StorageMedium` backed by a directory on the local disk."""

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).expanduser()

    @property
    def root(self) -> Path:
        return self._root

    def resolve(self, path: str) -> Path:
        """Map a vault-relative path onto the local file system."""

        relative = PurePosixPath(path.lstrip("/"))
        if ".." in relative.parts:
            raise ValueError(f"Path escapes the storage root: {path!r}")
        return self._root.joinpath(*relative.parts)

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self.resolve(path).exists)

    async def read_text(self, path: str) -> str:
        return await asyncio.to_thread(self.resolve(path).read_text, encoding="utf-8")

    async def write_text(self, path: str, content: str) -> None:
        await asyncio.to_thread(_atomic_write, self.resolve(path), content)

    async def mkdir(self, path: str) -> None:
        target = self.resolve(path)
        await asyncio.to_thread(target.mkdir, parents=True, exist_ok=True)

    async def remove(self, path: str) -> None:
        await asyncio.to_thread(self.resolve(path).unlink)

    async def rename(self, old_path: str, new_path: str) -> None:
        source = self.resolve(old_path)
        target = self.resolve(new_path)
        await asyncio.to_thread(_move, source, target)

    async def stat(self, path: str) -> FileStat | None:
        try:
            result = await asyncio.to_thread(self.resolve(path).stat)
        except FileNotFoundError:
            return None
        return FileStat(
            mtime=result.st_mtime_ns // 1_000_000,
            size=result.st_size,
            is_dir=os.path.isdir(self.resolve(path)),
        )

    async def list(self, path: str) -> ListResult:
        target = self.resolve(path)
        children = await asyncio.to_thread(lambda: sorted(target.iterdir()))
        listing = ListResult()
        for child in children:
            relative = join_path(path, child.name)
            if child.is_dir():
                listing.folders.append(relative)
            else:
                listing.files.append(relative)
        return listing


def _atomic_write(target: Path, content: str) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    descriptor, tmp_name = tempfile.mkstemp(
        dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(descriptor, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, target)
    finally:
        if os.path.exists(tmp_name):  # pragma: no cover - cleanup path
            try:
                os.unlink(tmp_name)
            except OSError:
                LOGGER.debug("Failed to remove temporary file %s", tmp_name)


def _move(source: Path, target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    os.replace(source, target)
