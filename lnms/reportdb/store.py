"""A store engine: the partition files and indexes of one counter on one day."""

from __future__ import annotations

import struct
from pathlib import Path

from lnms.reportdb.filemanager import FileManager
from lnms.reportdb.index import IndexManager

_ROW_HEADER = struct.Struct("<II")


def partition_id(key: int, partitions: int) -> int:
    """The partition that holds ``key``."""
    if partitions <= 0:
        raise ValueError(f"invalid partition count: {partitions}")
    return key % partitions


class StoreEngine:
    """Appends encoded rows per key and reads them back filtered by timestamp.

    A row is a 4-byte little-endian length, a 4-byte timestamp and ``length``
    bytes of value.
    """

    def __init__(self, base_dir: str | Path, partitions: int, growth_size: int) -> None:
        self.base_dir = Path(base_dir)
        self.partitions = partitions
        self.file_manager = FileManager(self.base_dir, growth_size)
        self.index_manager = IndexManager(self.base_dir, partitions)
        self.used_put = False
        self.last_save = 0.0

    def put(self, key: int, data: bytes) -> None:
        """Append one encoded row to the data of ``key``."""
        self.used_put = True
        file_id = partition_id(key, self.partitions)
        entries = self.index_manager.entry_list(key, file_id, True)
        handle = self.file_manager.get_handle(file_id)
        entries = self.file_manager.check_capacity(handle, entries, len(data))
        with handle.lock:
            last = entries[-1]
            handle.write(last.entry_end, data)
            last.entry_end += len(data)
            self.index_manager.update(key, file_id, entries)

    def get(self, key: int, start: int, end: int) -> list[bytes]:
        """Rows of ``key`` with timestamps in ``[start, end]``, each as timestamp plus value bytes."""
        file_id = partition_id(key, self.partitions)
        entries = self.index_manager.entry_list(key, file_id, self.used_put)
        if not entries:
            return []
        handle = self.file_manager.get_handle(file_id)
        with handle.lock:
            blocks = [handle.read(entry.entry_start, entry.entry_end) for entry in entries]
        rows: list[bytes] = []
        for block in blocks:
            pos = 0
            while pos < len(block):
                length, timestamp = _ROW_HEADER.unpack_from(block, pos)
                row_end = pos + _ROW_HEADER.size + length
                if row_end > len(block):
                    raise ValueError(f"corrupt row at offset {pos} in {self.base_dir}")
                if start <= timestamp <= end:
                    rows.append(block[pos + 4:row_end])
                pos = row_end
        return rows

    def keys(self) -> list[int]:
        """Every key stored in this engine."""
        return self.index_manager.all_keys()

    def save(self) -> None:
        """Write the indexes to disk."""
        self.index_manager.save()

    def close(self) -> None:
        self.file_manager.close()
        self.index_manager.close()