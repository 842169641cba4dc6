from __future__ import annotations

"""Byte-keyed stores and write branches.

A CacheKVStore is a branch over any parent store: reads fall through, writes
stay buffered until write() flushes them to the parent as one batch. Dropping
a branch without calling write() discards everything it buffered, which is
how a failed operation or block leaves no trace.
"""

from typing import Dict, Iterator, List, Optional, Protocol, Tuple

# value None in a batch means delete
Batch = List[Tuple[bytes, Optional[bytes]]]


class KVStore(Protocol):
    def get(self, key: bytes) -> Optional[bytes]: ...

    def set(self, key: bytes, value: bytes) -> None: ...

    def delete(self, key: bytes) -> None: ...

    def iterate(self, prefix: bytes = b"") -> Iterator[Tuple[bytes, bytes]]: ...

    def write_batch(self, ops: Batch) -> None: ...


def _check_kv(key: bytes, value: Optional[bytes] = None) -> None:
    if not isinstance(key, (bytes, bytearray)) or not key:
        raise TypeError(f"key must be non-empty bytes, got {key!r}")
    if value is not None and not isinstance(value, (bytes, bytearray)):
        raise TypeError(f"value must be bytes, got {type(value)}")


class MemKVStore:
    """Plain in-memory store. Used for tests and `:memory:` nodes."""

    def __init__(self) -> None:
        self._data: Dict[bytes, bytes] = {}

    def get(self, key: bytes) -> Optional[bytes]:
        return self._data.get(bytes(key))

    def set(self, key: bytes, value: bytes) -> None:
        _check_kv(key, value)
        self._data[bytes(key)] = bytes(value)

    def delete(self, key: bytes) -> None:
        self._data.pop(bytes(key), None)

    def iterate(self, prefix: bytes = b"") -> Iterator[Tuple[bytes, bytes]]:
        keys = sorted(k for k in self._data if k.startswith(prefix))
        for k in keys:
            yield k, self._data[k]

    def write_batch(self, ops: Batch) -> None:
        for k, v in ops:
            _check_kv(k, v)
        for k, v in ops:
            if v is None:
                self._data.pop(bytes(k), None)
            else:
                self._data[bytes(k)] = bytes(v)

    def __len__(self) -> int:
        return len(self._data)


class CacheKVStore:
    """Write-buffering branch over a parent store."""

    def __init__(self, parent: KVStore) -> None:
        self._parent = parent
        self._dirty: Dict[bytes, Optional[bytes]] = {}

    def get(self, key: bytes) -> Optional[bytes]:
        k = bytes(key)
        if k in self._dirty:
            return self._dirty[k]
        return self._parent.get(k)

    def set(self, key: bytes, value: bytes) -> None:
        _check_kv(key, value)
        self._dirty[bytes(key)] = bytes(value)

    def delete(self, key: bytes) -> None:
        _check_kv(key)
        self._dirty[bytes(key)] = None

    def iterate(self, prefix: bytes = b"") -> Iterator[Tuple[bytes, bytes]]:
        merged: Dict[bytes, Optional[bytes]] = {k: v for k, v in self._parent.iterate(prefix)}
        for k, v in self._dirty.items():
            if k.startswith(prefix):
                merged[k] = v
        for k in sorted(merged):
            v = merged[k]
            if v is not None:
                yield k, v

    def write_batch(self, ops: Batch) -> None:
        for k, v in ops:
            _check_kv(k, v)
        for k, v in ops:
            self._dirty[bytes(k)] = None if v is None else bytes(v)

    def pending(self) -> Batch:
        return sorted(self._dirty.items())

    def write(self) -> None:
        """Flush buffered writes to the parent as one batch."""
        if not self._dirty:
            return
        ops = self.pending()
        self._parent.write_batch(ops)
        self._dirty.clear()

    def discard(self) -> None:
        self._dirty.clear()


__all__ = ["Batch", "CacheKVStore", "KVStore", "MemKVStore"]
