"""
Shared key-material handle.

The protocol library writes Signal keys (pre-keys, sessions, sender keys,
app-state sync keys) through this object while the lifecycle controller
reads the same data back when persisting. Both sides hold the same
instance; nothing relies on aliasing a raw dict.
"""

import copy
from typing import Any

KeyMaterial = dict[str, dict[str, Any]]


class SignalKeyStore:
    """Mutable mapping of ``key_type -> key_id -> record``."""

    def __init__(self, initial: KeyMaterial | None = None):
        self._data: KeyMaterial = copy.deepcopy(initial) if initial else {}

    async def get(self, key_type: str, ids: list[str]) -> dict[str, Any]:
        """Return the records of ``ids`` that exist under ``key_type``."""
        bucket = self._data.get(key_type, {})
        return {key_id: bucket[key_id] for key_id in ids if key_id in bucket}

    async def set(self, data: dict[str, dict[str, Any | None]]) -> None:
        """Merge records per key type; a None value deletes that key id."""
        for key_type, entries in data.items():
            bucket = self._data.setdefault(key_type, {})
            for key_id, value in entries.items():
                if value is None:
                    bucket.pop(key_id, None)
                else:
                    bucket[key_id] = value
            if not bucket:
                del self._data[key_type]

    def snapshot(self) -> KeyMaterial:
        """Deep copy of the current key material, safe to encode later."""
        return copy.deepcopy(self._data)

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._data.values())
