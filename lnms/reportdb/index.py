"""Per-partition indexes that locate each key's data blocks in the partition files."""

from __future__ import annotations

import os
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path

import msgpack


@dataclass
class IndexEntry:
    """One block of a partition file and the part of it that holds a key's entries."""

    block_start: int
    block_end: int
    entry_start: int
    entry_end: int

    def to_dict(self) -> dict:
        return {
            "blockStart": self.block_start,
            "blockEnd": self.block_end,
            "entryStart": self.entry_start,
            "entryEnd": self.entry_end,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "IndexEntry":
        return cls(
            block_start=int(data.get("blockStart", 0)),
            block_end=int(data.get("blockEnd", 0)),
            entry_start=int(data.get("entryStart", 0)),
            entry_end=int(data.get("entryEnd", 0)),
        )


def load_index_file(path: str | Path) -> dict[int, list[IndexEntry]]:
    """Read an index file; a missing file is an empty index."""
    path = Path(path)
    if not path.exists():
        return {}
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise OSError(f"error reading index file: {exc}") from exc
    try:
        raw = msgpack.unpackb(data, raw=False, strict_map_key=False)
    except (ValueError, TypeError, msgpack.UnpackException) as exc:
        raise ValueError(f"error parsing index map: {exc}") from exc
    if not isinstance(raw, dict):
        raise ValueError("error parsing index map: expected a map")
    try:
        return {
            int(key): [IndexEntry.from_dict(item) for item in entries or []]
            for key, entries in raw.items()
        }
    except (TypeError, ValueError, AttributeError) as exc:
        raise ValueError(f"error parsing index map: {exc}") from exc


class IndexManager:
    """Indexes of one store directory, loaded lazily and saved on demand."""

    def __init__(self, base_dir: str | Path, partitions: int) -> None:
        self.base_dir = Path(base_dir)
        self.partitions = partitions
        self._indexes: dict[int, dict[int, list[IndexEntry]]] = {}
        self._lock = threading.RLock()

    def _path(self, index_id: int) -> Path:
        return self.base_dir / f"index_{index_id}.msg"

    def entry_list(self, key: int, index_id: int, for_put: bool = False) -> list[IndexEntry]:
        """The entries of ``key`` in index ``index_id``; empty when the key is unknown."""
        with self._lock:
            index_map = self._indexes.get(index_id)
            if index_map is None:
                index_map = load_index_file(self._path(index_id))
                self._indexes[index_id] = index_map
                if for_put:
                    self.base_dir.mkdir(parents=True, exist_ok=True)
            return list(index_map.get(key, ()))

    def update(self, key: int, index_id: int, entries: list[IndexEntry]) -> None:
        with self._lock:
            self._indexes.setdefault(index_id, {})[key] = entries

    def save(self) -> None:
        """Write every loaded index to its file."""
        with self._lock:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            for index_id, index_map in self._indexes.items():
                payload = msgpack.packb(
                    {key: [entry.to_dict() for entry in entries] for key, entries in index_map.items()},
                    use_bin_type=True,
                )
                fd, tmp_name = tempfile.mkstemp(dir=self.base_dir, suffix=".tmp")
                try:
                    with os.fdopen(fd, "wb") as tmp:
                        tmp.write(payload)
                    os.replace(tmp_name, self._path(index_id))
                except BaseException:
                    Path(tmp_name).unlink(missing_ok=True)
                    raise

    def all_keys(self) -> list[int]:
        """Every key in every partition index, loading indexes from disk as needed."""
        with self._lock:
            if not self._indexes:
                self._indexes = {index_id: {} for index_id in range(self.partitions)}
            keys: list[int] = []
            for index_id, index_map in list(self._indexes.items()):
                if not index_map:
                    index_map = load_index_file(self._path(index_id))
                    self._indexes[index_id] = index_map
                keys.extend(index_map)
            return keys

    def close(self) -> None:
        with self._lock:
            self._indexes.clear()