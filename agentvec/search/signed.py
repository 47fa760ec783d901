"""Signed 8-bit quantization for dot-product and cosine similarity.

Values are scaled (by 127 for normalized vectors) and clamped to
-127..127, keeping the sign so that opposite directions still give
negative dot products.
"""

from dataclasses import dataclass

import numpy as np

from ..errors import DimensionMismatchError, InvalidInputError

_F32 = np.float32
_NORMALIZED_SCALE = 127.0


def _as_vector(values, dimensions, dtype):
    array = np.asarray(values, dtype=dtype)
    if array.shape != (dimensions,):
        raise DimensionMismatchError(dimensions, array.size)
    return array


def _quantize(values, scale):
    """Scale, clamp to -127..127 and truncate toward zero; NaN becomes 0."""
    scaled = np.clip(values * _F32(scale), -127.0, 127.0)
    return np.nan_to_num(scaled, nan=0.0).astype(np.int8)


def _dot(a, b):
    return int(np.dot(a.astype(np.int64), b.astype(np.int64)))


@dataclass(frozen=True)
class SignedQuantizer:
    """Quantizer mapping float32 values onto signed int8 codes."""

    dimensions: int
    scale: float = _NORMALIZED_SCALE

    @classmethod
    def for_normalized(cls, dimensions):
        """Quantizer for vectors whose values lie in [-1, 1]."""
        return cls(dimensions, _NORMALIZED_SCALE)

    @classmethod
    def with_scale(cls, dimensions, scale):
        """Quantizer with a custom scale factor."""
        return cls(dimensions, float(scale))

    def quantize(self, vector):
        """Quantize a float vector to int8 codes."""
        return _quantize(_as_vector(vector, self.dimensions, _F32), self.scale)

    def dot_product(self, a, b):
        """Integer dot product of two code vectors; higher means more similar."""
        return _dot(
            _as_vector(a, self.dimensions, np.int8),
            _as_vector(b, self.dimensions, np.int8),
        )


class SignedQuantizedVectors:
    """Ordered collection of vectors stored as signed int8 codes."""

    def __init__(self, dimensions):
        self.dimensions = dimensions
        self.scale = _NORMALIZED_SCALE
        self._data = np.zeros((0, dimensions), dtype=np.int8)
        self._data.flags.writeable = False

    @classmethod
    def from_f32_vectors(cls, vectors):
        """Quantize a sequence of equal-length float vectors.

        An empty sequence gives an empty collection of dimension 0.
        """
        rows = [np.asarray(vector, dtype=_F32) for vector in vectors]
        if not rows:
            return cls(0)
        if rows[0].ndim != 1:
            raise InvalidInputError("vectors must be one-dimensional")
        dimensions = rows[0].shape[0]
        for row in rows:
            if row.shape != (dimensions,):
                raise DimensionMismatchError(dimensions, row.size)
        storage = cls(dimensions)
        data = _quantize(np.stack(rows), storage.scale)
        data.flags.writeable = False
        storage._data = data
        return storage

    def __getitem__(self, index):
        return self._data[index]

    def __len__(self):
        return self._data.shape[0]

    def dot_product(self, a_idx, b_idx):
        """Integer dot product between two stored vectors."""
        return _dot(self[a_idx], self[b_idx])

    def dot_product_with_query(self, query, index):
        """Integer dot product between a quantized query and a stored vector."""
        return _dot(_as_vector(query, self.dimensions, np.int8), self[index])

    def quantize(self, vector):
        """Quantize a float vector with this collection's scale."""
        values = np.asarray(vector, dtype=_F32)
        if values.ndim != 1:
            raise InvalidInputError("vector must be one-dimensional")
        return _quantize(values, self.scale)