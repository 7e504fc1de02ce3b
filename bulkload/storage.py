"""
Storage access for bulk import
Enumerates the input files under a path and opens them as byte streams
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, List, Optional, Protocol
from urllib.parse import unquote, urlparse

from .errors import PathNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileHandle:
    """One input file discovered during enumeration, bound to the storage that listed it"""
    path: Path
    size_bytes: int
    storage: Optional["Storage"] = field(default=None, compare=False, repr=False)

    @property
    def name(self) -> str:
        return self.path.name

    def open(self) -> BinaryIO:
        if self.storage is None:
            raise ValueError(f"{self.path} was not listed by a storage")
        return self.storage.open_read(self)

    def __str__(self):
        return str(self.path)


class Storage(Protocol):
    def list_entries(self, path: str) -> List[FileHandle]:
        ...

    def open_read(self, handle: FileHandle) -> BinaryIO:
        ...


def _local_path(path: str) -> Path:
    """Strip a file:// scheme if present"""
    parsed = urlparse(path)
    if parsed.scheme == 'file':
        return Path(unquote(parsed.path))
    return Path(path)


class LocalFileStorage:
    """
    Storage backed by the local (or locally mounted) filesystem.

    Listing is non-recursive and sorted by name so one run always sees the
    same order. A path naming a single file lists as that file.
    """

    def list_entries(self, path: str) -> List[FileHandle]:
        root = _local_path(path)

        if not root.exists():
            raise PathNotFoundError(path)

        if root.is_file():
            candidates = [root]
        else:
            candidates = sorted(root.iterdir(), key=lambda p: p.name)

        handles = []
        for entry in candidates:
            if not entry.is_file():
                logger.debug(f"Skipping non-file entry: {entry}")
                continue
            handles.append(FileHandle(path=entry.absolute(), size_bytes=entry.stat().st_size, storage=self))

        logger.info(f"Scanned {path}: found {len(handles)} files")
        return handles

    def open_read(self, handle: FileHandle) -> BinaryIO:
        return open(handle.path, 'rb')
