"""Process-wide lookup stores shared by concurrent requests."""

from __future__ import annotations

from typing import Generic, Protocol, TypeVar

K = TypeVar("K")
V = TypeVar("V")


class KeyValueStore(Protocol[K, V]):
    """Write-once, read-many mapping used for resolution caches."""

    def get(self, key: K) -> V | None: ...

    def put_if_absent(self, key: K, value: V) -> V: ...

    def __contains__(self, key: object) -> bool: ...

    def __len__(self) -> int: ...


class WriteOnceStore(Generic[K, V]):
    """In-memory store whose entries never change or expire once written.

    ``put_if_absent`` returns whichever value ended up stored, so two writers
    racing on the same key always observe the same cached value.
    """

    def __init__(self) -> None:
        self._entries: dict[K, V] = {}
        self.writes = 0

    def get(self, key: K) -> V | None:
        return self._entries.get(key)

    def put_if_absent(self, key: K, value: V) -> V:
        if key in self._entries:
            return self._entries[key]
        self._entries[key] = value
        self.writes += 1
        return value

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
