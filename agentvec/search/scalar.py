"""Unsigned 8-bit scalar quantization of float32 vectors.

Each dimension is mapped linearly from its calibrated [min, max] range
onto 0..255, giving a 4x size reduction while keeping approximate
distance relationships for candidate ranking.
"""

import numpy as np

from ..errors import DimensionMismatchError, InvalidInputError

_F32 = np.float32
_EPS = np.finfo(np.float32).eps
_CODES = np.arange(256, dtype=np.float32)


def _inverse(scales):
    inverse = np.zeros_like(scales)
    mask = scales >= _EPS
    inverse[mask] = _F32(1.0) / scales[mask]
    return inverse


def _as_vector(values, dimensions, dtype):
    array = np.asarray(values, dtype=dtype)
    if array.shape != (dimensions,):
        raise DimensionMismatchError(dimensions, array.size)
    return array


class ScalarQuantizer:
    """Per-dimension linear quantizer from float32 to uint8."""

    def __init__(self, mins, scales):
        self._mins = np.array(mins, dtype=_F32)
        self._scales = np.array(scales, dtype=_F32)
        if self._mins.ndim != 1 or self._mins.shape != self._scales.shape:
            raise InvalidInputError("mins and scales must be 1-D and of equal length")
        self._inv_scales = _inverse(self._scales)

    @classmethod
    def fit(cls, vectors):
        """Calibrate per-dimension ranges from an iterable of vectors."""
        iterator = iter(vectors)
        first = next(iterator, None)
        if first is None:
            raise InvalidInputError("need at least one vector to fit")
        first = np.asarray(first, dtype=_F32)
        if first.ndim != 1:
            raise InvalidInputError("vectors must be one-dimensional")
        dimensions = first.shape[0]
        mins = np.full(dimensions, np.finfo(np.float32).max, dtype=_F32)
        maxs = np.full(dimensions, np.finfo(np.float32).min, dtype=_F32)
        np.fmin(mins, first, out=mins)
        np.fmax(maxs, first, out=maxs)
        for vector in iterator:
            vector = _as_vector(vector, dimensions, _F32)
            np.fmin(mins, vector, out=mins)
            np.fmax(maxs, vector, out=maxs)
        ranges = maxs - mins
        scales = np.where(ranges < _EPS, _F32(1.0), ranges / _F32(255.0)).astype(_F32)
        return cls(mins, scales)

    @classmethod
    def with_params(cls, mins, scales):
        """Build a quantizer from precomputed minimums and scale factors."""
        return cls(mins, scales)

    def dimensions(self):
        """Number of dimensions the quantizer was calibrated for."""
        return self._mins.shape[0]

    def quantize(self, vector):
        """Map a float vector onto uint8 codes, clamping to 0..255."""
        values = _as_vector(vector, self.dimensions(), _F32)
        normalized = np.clip((values - self._mins) * self._inv_scales, 0.0, 255.0)
        return np.nan_to_num(normalized, nan=0.0).astype(np.uint8)

    def dequantize(self, quantized):
        """Approximately reconstruct float values from codes (lossy)."""
        codes = _as_vector(quantized, self.dimensions(), np.uint8)
        return (codes.astype(_F32) * self._scales + self._mins).astype(_F32)

    def _codes(self, values):
        return _as_vector(values, self.dimensions(), np.uint8).astype(np.int64)

    def dot_product_quantized(self, a, b):
        """Integer dot product of two code vectors; monotone with similarity."""
        return int(np.dot(self._codes(a), self._codes(b)))

    def l2_squared_quantized(self, a, b):
        """Integer squared Euclidean distance between two code vectors."""
        diff = self._codes(a) - self._codes(b)
        return int(np.dot(diff, diff))

    def precompute_query_tables(self, query):
        """Tables of query[i] * dequantize(code, i) for every dimension and code."""
        values = _as_vector(query, self.dimensions(), _F32)
        reconstructed = _CODES[None, :] * self._scales[:, None] + self._mins[:, None]
        return QueryTables((values[:, None] * reconstructed).astype(_F32))


class QueryTables:
    """Per-dimension lookup tables for fast query-to-code dot products."""

    def __init__(self, tables):
        self._tables = np.asarray(tables, dtype=_F32)
        if self._tables.ndim != 2 or self._tables.shape[1] != 256:
            raise InvalidInputError("query tables must have shape (dimensions, 256)")
        self._rows = np.arange(self._tables.shape[0])

    @property
    def dimensions(self):
        return self._tables.shape[0]

    def dot_product(self, quantized):
        """Approximate dot product between the query and a code vector."""
        codes = _as_vector(quantized, self.dimensions, np.uint8)
        return float(self._tables[self._rows, codes].sum(dtype=_F32))


class QuantizedVectors:
    """Ordered collection of vectors stored as uint8 codes."""

    def __init__(self, quantizer):
        self.quantizer = quantizer
        self._rows = []

    @classmethod
    def from_vectors(cls, quantizer, vectors):
        """Quantize every vector of an iterable into a new collection."""
        storage = cls(quantizer)
        for vector in vectors:
            storage.append(vector)
        return storage

    def append(self, vector):
        """Quantize and store one vector."""
        codes = self.quantizer.quantize(vector)
        codes.flags.writeable = False
        self._rows.append(codes)

    def __getitem__(self, index):
        return self._rows[index]

    def __len__(self):
        return len(self._rows)

    def dot_product(self, query_quantized, index):
        """Integer dot product between a quantized query and a stored vector."""
        return self.quantizer.dot_product_quantized(query_quantized, self[index])

    def l2_squared(self, query_quantized, index):
        """Integer squared distance between a quantized query and a stored vector."""
        return self.quantizer.l2_squared_quantized(query_quantized, self[index])