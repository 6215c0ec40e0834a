"""Memory-mapped partition files that grow in fixed-size blocks."""

from __future__ import annotations

import logging
import mmap
import os
import struct
import threading
from pathlib import Path

from lnms.reportdb.index import IndexEntry

_HEADER = struct.Struct("<Q")
HEADER_SIZE = _HEADER.size

log = logging.getLogger(__name__)


class FileHandle:
    """An open partition file; its first 8 bytes hold where the last block ends."""

    def __init__(self, path: Path) -> None:
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o755)
        self.file = os.fdopen(fd, "r+b", buffering=0)
        self.lock = threading.RLock()
        try:
            self.size = os.fstat(self.file.fileno()).st_size
            if 0 < self.size < HEADER_SIZE:
                raise ValueError(f"partition file {path} is too short")
            self._map = mmap.mmap(self.file.fileno(), self.size) if self.size else None
            self.last_block_end = _HEADER.unpack_from(self._map, 0)[0] if self._map else HEADER_SIZE
        except BaseException:
            self.file.close()
            raise

    def _check(self, start: int, end: int) -> None:
        if self._map is None or start < 0 or end > self.size or start > end:
            raise ValueError(f"range {start}:{end} outside mapped size {self.size}")

    def read(self, start: int, end: int) -> bytes:
        with self.lock:
            self._check(start, end)
            return self._map[start:end]

    def write(self, offset: int, data: bytes) -> None:
        with self.lock:
            end = offset + len(data)
            self._check(offset, end)
            self._map[offset:end] = data

    def resize(self, new_size: int) -> None:
        """Grow or shrink the file and map it again."""
        with self.lock:
            if self._map is not None:
                self._map.close()
                self._map = None
            os.ftruncate(self.file.fileno(), new_size)
            self.size = new_size
            if new_size:
                self._map = mmap.mmap(self.file.fileno(), new_size)

    def write_header(self) -> None:
        with self.lock:
            _HEADER.pack_into(self._map, 0, self.last_block_end)

    def close(self) -> None:
        with self.lock:
            try:
                if self._map is not None:
                    self._map.close()
                    self._map = None
            finally:
                self.file.close()


class FileManager:
    """Partition files of one store directory."""

    def __init__(self, base_dir: str | Path, growth_size: int) -> None:
        self.base_dir = Path(base_dir)
        self.growth_size = growth_size
        self._handles: dict[int, FileHandle] = {}
        self._lock = threading.Lock()

    def get_handle(self, partition: int) -> FileHandle:
        """The open handle of ``partition``, opening or creating its file on first use."""
        with self._lock:
            handle = self._handles.get(partition)
            if handle is None:
                self.base_dir.mkdir(parents=True, exist_ok=True)
                handle = FileHandle(self.base_dir / f"partition_{partition}.bin")
                self._handles[partition] = handle
            return handle

    def check_capacity(
        self, handle: FileHandle, entries: list[IndexEntry], required_size: int
    ) -> list[IndexEntry]:
        """Return ``entries`` if the last block has room, else a list with a new block appended."""
        with handle.lock:
            if entries:
                last = entries[-1]
                if last.entry_end + required_size <= last.block_end:
                    return entries
            start = handle.last_block_end
            handle.resize(start + self.growth_size)
            entries = [*entries, IndexEntry(start, handle.size, start, start)]
            handle.last_block_end = handle.size
            handle.write_header()
            return entries

    def close(self) -> None:
        with self._lock:
            for handle in self._handles.values():
                try:
                    handle.close()
                except (OSError, ValueError, BufferError) as exc:
                    log.error("FileManager: close failed: %s", exc)
            self._handles.clear()