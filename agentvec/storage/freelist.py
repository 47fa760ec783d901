"""Recycling of deleted vector slots.

The freelist is a LIFO stack of free slot indices: the most recently
freed slot is reused first. It is persisted as a blob in the metadata
store so that it survives restarts.
"""

import struct
import threading

from ..errors import CorruptionError, InvalidInputError

_U64 = struct.Struct("<Q")


class Freelist:
    """Thread-safe LIFO stack of free slot indices."""

    def __init__(self, slots=None):
        self._slots = [] if slots is None else [int(slot) for slot in slots]
        self._lock = threading.Lock()

    def push(self, slot):
        """Add a freed slot to the top of the stack."""
        slot = int(slot)
        if slot < 0:
            raise InvalidInputError(f"slot index must be non-negative, got {slot}")
        with self._lock:
            self._slots.append(slot)

    def pop(self):
        """Remove and return the most recently freed slot, or None if empty."""
        with self._lock:
            return self._slots.pop() if self._slots else None

    def __contains__(self, slot):
        with self._lock:
            return slot in self._slots

    def __len__(self):
        with self._lock:
            return len(self._slots)

    def get_all(self):
        """A copy of all free slots, oldest first."""
        with self._lock:
            return list(self._slots)

    def clear(self):
        """Forget every free slot."""
        with self._lock:
            self._slots.clear()

    def serialize(self):
        """Encode as a little-endian u64 count followed by u64 slot indices."""
        with self._lock:
            slots = list(self._slots)
        return struct.pack(f"<Q{len(slots)}Q", len(slots), *slots)

    @classmethod
    def deserialize(cls, data):
        """Decode bytes produced by :meth:`serialize`; empty data gives an empty list."""
        data = bytes(data)
        if not data:
            return cls()
        if len(data) < _U64.size:
            raise CorruptionError("freelist data too short for its length prefix")
        (count,) = _U64.unpack_from(data, 0)
        expected = _U64.size * (count + 1)
        if len(data) != expected:
            raise CorruptionError(
                f"freelist data has {len(data)} bytes, expected {expected}"
            )
        return cls(struct.unpack_from(f"<{count}Q", data, _U64.size))


class FreelistManager:
    """Keeps a :class:`Freelist` in step with its persisted copy."""

    TABLE_NAME = "freelist"
    DATA_KEY = "slots"

    def __init__(self, freelist=None):
        self.freelist = Freelist() if freelist is None else freelist

    @classmethod
    def load(cls, storage):
        """Load the freelist from a metadata store; missing data gives an empty list."""
        data = storage.get_blob(cls.TABLE_NAME, cls.DATA_KEY)
        if data is None:
            return cls()
        return cls(Freelist.deserialize(data))

    def save(self, storage):
        """Persist the current freelist into a metadata store."""
        with storage.transaction():
            storage.put_blob(self.TABLE_NAME, self.DATA_KEY, self.freelist.serialize())

    def push_and_save(self, slot, storage):
        """Push a freed slot and persist the result."""
        self.freelist.push(slot)
        self.save(storage)

    def pop(self):
        """Take a slot for reuse; the caller saves once its write succeeds."""
        return self.freelist.pop()

    def __len__(self):
        return len(self.freelist)