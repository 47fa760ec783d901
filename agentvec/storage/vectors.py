"""Memory-mapped vector file with fixed-size slots.

Layout: a 64-byte little-endian header (magic u32, version u16,
dimensions u32, slot_count u64, FNV-1a checksum u32 over the preceding
18 bytes, then reserved zeros) followed by slots of ``dimensions``
float32 values. A slot whose first value is NaN is a tombstone.
"""

import mmap
import os
import struct

import numpy as np

from ..errors import (
    CorruptionError,
    DimensionMismatchError,
    DimensionsTooLargeError,
    InvalidInputError,
    NotFoundError,
)

MAGIC = 0x41564543
VERSION = 1
HEADER_SIZE = 64
INITIAL_CAPACITY = 1024
GROWTH_FACTOR = 1.5
TOMBSTONE_MARKER = 0x7FC00000
MAX_DIMENSIONS = 65536

_FLOAT = np.dtype("<f4")
_HEADER = struct.Struct("<IHIQ")
_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")
_CHECKSUM_OFFSET = _HEADER.size
_SLOT_COUNT_OFFSET = 10


def _checksum(data):
    """FNV-1a 32-bit hash."""
    value = 0x811C9DC5
    for byte in data:
        value ^= byte
        value = (value * 0x01000193) & 0xFFFFFFFF
    return value


def _validate_dimensions(dimensions):
    if dimensions <= 0:
        raise InvalidInputError("dimensions must be greater than 0")
    if dimensions > MAX_DIMENSIONS:
        raise DimensionsTooLargeError(MAX_DIMENSIONS, dimensions)


class VectorStorage:
    """Fixed-slot vector storage backed by a memory-mapped file."""

    def __init__(self, file, dimensions, slot_count):
        self._file = file
        self._mmap = mmap.mmap(file.fileno(), 0, access=mmap.ACCESS_WRITE)
        self._dimensions = dimensions
        self._slot_count = slot_count
        self._slot_size = dimensions * _FLOAT.itemsize

    @classmethod
    def create(cls, path, dimensions):
        """Create (or truncate) a vector file at ``path``."""
        _validate_dimensions(dimensions)
        file = open(path, "w+b")
        try:
            file.truncate(HEADER_SIZE + INITIAL_CAPACITY * dimensions * _FLOAT.itemsize)
            storage = cls(file, dimensions, 0)
        except BaseException:
            file.close()
            raise
        storage._write_header()
        return storage

    @classmethod
    def open(cls, path):
        """Open an existing vector file, validating its header."""
        file = open(path, "r+b")
        try:
            if os.fstat(file.fileno()).st_size < HEADER_SIZE:
                raise CorruptionError("vector file too small for header")
            header = file.read(HEADER_SIZE)
            magic, version, dimensions, slot_count = _HEADER.unpack_from(header, 0)
            (stored,) = _U32.unpack_from(header, _CHECKSUM_OFFSET)
            computed = _checksum(header[:_CHECKSUM_OFFSET])
            if computed != stored:
                raise CorruptionError(
                    f"header checksum mismatch: expected 0x{stored:08X}, got 0x{computed:08X}"
                )
            if magic != MAGIC:
                raise CorruptionError(
                    f"invalid magic number: expected 0x{MAGIC:08X}, got 0x{magic:08X}"
                )
            if version != VERSION:
                raise CorruptionError(
                    f"unsupported version: expected {VERSION}, got {version}"
                )
            _validate_dimensions(dimensions)
            return cls(file, dimensions, slot_count)
        except BaseException:
            file.close()
            raise

    def dimensions(self):
        """Vector dimensionality fixed at creation."""
        return self._dimensions

    def slot_count(self):
        """Number of allocated slots."""
        return self._slot_count

    def _offset(self, slot):
        return HEADER_SIZE + slot * self._slot_size

    def _check_slot(self, slot):
        if not 0 <= slot < self._slot_count:
            raise NotFoundError(f"slot {slot} not allocated")

    def allocate_slot(self):
        """Allocate the next slot, growing the file when needed."""
        slot = self._slot_count
        required = self._offset(slot + 1)
        if required > len(self._mmap):
            self._grow(required)
        self._slot_count += 1
        self._update_slot_count()
        return slot

    def _grow(self, min_size):
        new_size = max(min_size, int(len(self._mmap) * GROWTH_FACTOR))
        self._mmap.flush()
        self._mmap.close()
        self._file.truncate(new_size)
        self._mmap = mmap.mmap(self._file.fileno(), 0, access=mmap.ACCESS_WRITE)

    def write_slot(self, slot, vector):
        """Store ``vector`` in an allocated slot."""
        data = np.asarray(vector, dtype=_FLOAT)
        if data.shape != (self._dimensions,):
            raise DimensionMismatchError(self._dimensions, data.size)
        self._check_slot(slot)
        offset = self._offset(slot)
        self._mmap[offset:offset + self._slot_size] = data.tobytes()

    def read_slot(self, slot):
        """Return a copy of the vector stored in ``slot`` as float32 array."""
        self._check_slot(slot)
        offset = self._offset(slot)
        raw = self._mmap[offset:offset + self._slot_size]
        return np.frombuffer(raw, dtype=_FLOAT).astype(np.float32)

    def mark_tombstone(self, slot):
        """Mark ``slot`` as deleted by writing a NaN into its first value."""
        self._check_slot(slot)
        offset = self._offset(slot)
        self._mmap[offset:offset + 4] = _U32.pack(TOMBSTONE_MARKER)

    def is_tombstone(self, slot):
        """True when the slot's first value is NaN."""
        self._check_slot(slot)
        (bits,) = _U32.unpack_from(self._mmap, self._offset(slot))
        is_nan = (bits & 0x7F800000) == 0x7F800000 and (bits & 0x007FFFFF) != 0
        return bits == TOMBSTONE_MARKER or is_nan

    def is_valid(self, slot):
        """True when the slot holds a live vector."""
        return not self.is_tombstone(slot)

    def sync(self):
        """Flush pending writes to disk."""
        self._mmap.flush()
        self._file.flush()
        os.fsync(self._file.fileno())

    def file_size(self):
        """Total size of the file in bytes, including reserved space."""
        return len(self._mmap)

    def used_size(self):
        """Bytes used by the header and allocated slots."""
        return HEADER_SIZE + self._slot_count * self._slot_size

    def _write_header(self):
        header = bytearray(HEADER_SIZE)
        _HEADER.pack_into(header, 0, MAGIC, VERSION, self._dimensions, self._slot_count)
        _U32.pack_into(header, _CHECKSUM_OFFSET, _checksum(header[:_CHECKSUM_OFFSET]))
        self._mmap[0:HEADER_SIZE] = bytes(header)

    def _update_slot_count(self):
        _U64.pack_into(self._mmap, _SLOT_COUNT_OFFSET, self._slot_count)
        checksum = _checksum(self._mmap[0:_CHECKSUM_OFFSET])
        _U32.pack_into(self._mmap, _CHECKSUM_OFFSET, checksum)

    def close(self):
        """Flush and release the mapping and file handle."""
        if self._mmap is not None:
            self._mmap.flush()
            self._mmap.close()
            self._mmap = None
        if not self._file.closed:
            self._file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()