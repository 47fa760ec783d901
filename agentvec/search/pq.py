"""Product quantization for fast approximate distance computation.

Vectors are split into equal subvectors and each subvector is replaced by
the index of its nearest centroid in a per-subquantizer codebook of 256
entries, so a vector becomes one byte per subquantizer. Distances from an
unquantized query to encoded vectors are then sums of table lookups.
"""

import itertools
from dataclasses import dataclass

import numpy as np

from ..errors import DimensionMismatchError, InvalidInputError

_F32 = np.float32
_NUM_CENTROIDS = 256


@dataclass
class PQConfig:
    """Training parameters for a :class:`ProductQuantizer`."""

    num_subquantizers: int = 48
    num_centroids: int = _NUM_CENTROIDS
    training_iterations: int = 10
    training_sample_size: int = 10000

    @classmethod
    def for_dimension(cls, dim):
        """Default configuration with a subquantizer count suited to ``dim``."""
        for m in (48, 32, 16, 8):
            if dim % m == 0:
                return cls(num_subquantizers=m)
        return cls(num_subquantizers=dim)


def _kmeans(subvectors, k, iterations):
    """Deterministic k-means++-style initialisation followed by Lloyd iterations."""
    n, dims = subvectors.shape
    centroids = np.empty((k, dims), dtype=_F32)
    centroids[0] = subvectors[0]
    min_distances = np.full(n, np.finfo(np.float32).max, dtype=_F32)

    for c in range(1, k):
        diff = subvectors - centroids[c - 1]
        np.minimum(min_distances, (diff * diff).sum(axis=1), out=min_distances)
        total = _F32(min_distances.sum(dtype=_F32))
        if total <= 0.0:
            centroids[c] = subvectors[c % n]
            continue
        threshold = total * _F32(c / k)
        cumulative = np.cumsum(min_distances, dtype=_F32)
        selected = int(np.searchsorted(cumulative, threshold, side="left"))
        centroids[c] = subvectors[min(selected, n - 1)]

    point_norms = (subvectors * subvectors).sum(axis=1)
    for _ in range(iterations):
        centroid_norms = (centroids * centroids).sum(axis=1)
        distances = (
            point_norms[:, None] - 2.0 * (subvectors @ centroids.T) + centroid_norms[None, :]
        )
        assignments = np.argmin(distances, axis=1)

        counts = np.bincount(assignments, minlength=k)
        sums = np.zeros((k, dims), dtype=np.float64)
        np.add.at(sums, assignments, subvectors)
        filled = counts > 0
        updated = centroids.copy()
        updated[filled] = (sums[filled] / counts[filled, None]).astype(_F32)
        centroids = updated

    return centroids


class ProductQuantizer:
    """Trained codebooks mapping vectors to one-byte-per-subvector codes."""

    def __init__(self, codebooks, higher_is_better):
        self._codebooks = np.asarray(codebooks, dtype=_F32)
        if self._codebooks.ndim != 3 or self._codebooks.shape[1] != _NUM_CENTROIDS:
            raise InvalidInputError(
                "codebooks must have shape (subquantizers, 256, dims_per_subquantizer)"
            )
        self.higher_is_better = bool(higher_is_better)
        self._m, _, self._dims_per_sub = self._codebooks.shape
        self._dim = self._m * self._dims_per_sub
        self._rows = np.arange(self._m)

    @classmethod
    def train(cls, vectors, dim, config, higher_is_better):
        """Learn codebooks by k-means over each subvector of the sample vectors."""
        m = config.num_subquantizers
        k = config.num_centroids
        if m <= 0 or dim % m != 0:
            raise InvalidInputError(
                f"dimension {dim} must be divisible by num_subquantizers {m}"
            )
        if k != _NUM_CENTROIDS:
            raise InvalidInputError("num_centroids must be 256 for 8-bit codes")
        dims_per_sub = dim // m

        rows = []
        for vector in itertools.islice(vectors, config.training_sample_size):
            row = np.asarray(vector, dtype=_F32)
            if row.shape != (dim,):
                raise DimensionMismatchError(dim, row.size)
            rows.append(row)

        if not rows:
            return cls(np.zeros((m, k, dims_per_sub), dtype=_F32), higher_is_better)

        training = np.stack(rows).reshape(len(rows), m, dims_per_sub)
        codebooks = np.stack(
            [
                _kmeans(np.ascontiguousarray(training[:, sub]), k, config.training_iterations)
                for sub in range(m)
            ]
        )
        return cls(codebooks, higher_is_better)

    def _split(self, vectors):
        array = np.asarray(vectors, dtype=_F32)
        if array.ndim != 2 or array.shape[1] != self._dim:
            size = array.shape[-1] if array.ndim else array.size
            raise DimensionMismatchError(self._dim, size)
        return array.reshape(array.shape[0], self._m, self._dims_per_sub)

    def _encode_rows(self, vectors):
        subvectors = self._split(vectors)
        codes = np.empty((subvectors.shape[0], self._m), dtype=np.uint8)
        for sub in range(self._m):
            diff = subvectors[:, sub, None, :] - self._codebooks[sub][None, :, :]
            codes[:, sub] = np.argmin((diff * diff).sum(axis=2), axis=1)
        return codes

    def encode(self, vector):
        """Encode one vector as ``code_size()`` bytes (uint8 array)."""
        row = np.asarray(vector, dtype=_F32)
        if row.shape != (self._dim,):
            raise DimensionMismatchError(self._dim, row.size)
        return self._encode_rows(row[None, :])[0]

    def encode_batch(self, vectors):
        """Encode many vectors; returns a list of uint8 code arrays."""
        rows = [np.asarray(vector, dtype=_F32) for vector in vectors]
        if not rows:
            return []
        return list(self._encode_rows(np.stack(rows)))

    def precompute_table(self, query):
        """Distance from each query subvector to every centroid."""
        subvectors = self._split(np.asarray(query, dtype=_F32)[None, :])[0]
        if self.higher_is_better:
            table = (self._codebooks * subvectors[:, None, :]).sum(axis=2)
        else:
            diff = self._codebooks - subvectors[:, None, :]
            table = (diff * diff).sum(axis=2)
        return PQDistanceTable(table.astype(_F32), self.higher_is_better)

    def code_size(self):
        """Bytes per encoded vector (number of subquantizers)."""
        return self._m

    def dims_per_subquantizer(self):
        """Number of dimensions covered by each subquantizer."""
        return self._dims_per_sub

    def asymmetric_distance(self, query, code):
        """Distance between an unquantized query and an encoded vector."""
        codes = np.asarray(code, dtype=np.intp)
        count = codes.shape[0]
        if count > self._m:
            raise DimensionMismatchError(self._m, count)
        query_subs = self._split(np.asarray(query, dtype=_F32)[None, :])[0][:count]
        centroids = self._codebooks[self._rows[:count], codes]
        if self.higher_is_better:
            return float((query_subs * centroids).sum(dtype=_F32))
        diff = query_subs - centroids
        return float((diff * diff).sum(dtype=_F32))

    def is_better(self, a, b):
        """True when distance ``a`` ranks ahead of ``b``."""
        return a > b if self.higher_is_better else a < b

    def worst_distance(self):
        """The distance every real distance beats."""
        return float("-inf") if self.higher_is_better else float("inf")


class PQDistanceTable:
    """Precomputed query-to-centroid distances for O(M) lookups per vector."""

    def __init__(self, table, higher_is_better):
        self._table = np.asarray(table, dtype=_F32)
        if self._table.ndim != 2 or self._table.shape[1] != _NUM_CENTROIDS:
            raise InvalidInputError("distance table must have shape (subquantizers, 256)")
        self.higher_is_better = bool(higher_is_better)
        self._rows = np.arange(self._table.shape[0])

    def distance(self, code):
        """Approximate distance from the query to an encoded vector."""
        codes = np.asarray(code, dtype=np.intp)
        if codes.shape != self._rows.shape:
            raise DimensionMismatchError(self._rows.shape[0], codes.size)
        return float(self._table[self._rows, codes].sum(dtype=_F32))

    def distances(self, codes):
        """Distances to several encoded vectors, in order."""
        return [self.distance(code) for code in codes]

    def is_better(self, a, b):
        """True when distance ``a`` ranks ahead of ``b``."""
        return a > b if self.higher_is_better else a < b

    def worst_distance(self):
        """The distance every real distance beats."""
        return float("-inf") if self.higher_is_better else float("inf")


class PQVectors:
    """Contiguous storage of PQ codes for a set of vectors."""

    def __init__(self, codes):
        self._codes = np.asarray(codes, dtype=np.uint8)
        if self._codes.ndim != 2:
            raise InvalidInputError("codes must be a 2-D array")
        self._codes.flags.writeable = False

    @classmethod
    def from_vectors(cls, pq, vectors):
        """Encode ``vectors`` with quantizer ``pq``."""
        encoded = pq.encode_batch(vectors)
        if not encoded:
            return cls(np.zeros((0, pq.code_size()), dtype=np.uint8))
        return cls(np.stack(encoded))

    def get_code(self, idx):
        """The code of the vector at ``idx``."""
        return self._codes[idx]

    def __len__(self):
        return self._codes.shape[0]

    def code_size(self):
        """Bytes per stored vector."""
        return self._codes.shape[1]