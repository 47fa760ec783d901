# agentvec

Building blocks for an embedded vector store, using NumPy and the
standard library:

- **Vector storage** (`agentvec.storage.vectors.VectorStorage`): a
  memory-mapped file of fixed-size slots holding float32 vectors behind a
  64-byte header protected by an FNV-1a checksum. Deleted slots are marked
  with a NaN tombstone.
- **Record metadata** (`agentvec.storage.metadata`): `Record` objects with
  JSON metadata, creation time, optional TTL and a `RecordStatus`
  (`PENDING`, `ACTIVE`, `TOMBSTONE`), kept in a SQLite-backed
  `MetadataStorage` with nestable transactions and a table of named blobs.
- **Freelist** (`agentvec.storage.freelist`): a thread-safe LIFO `Freelist`
  of freed slots, saved to and loaded from a `MetadataStorage` by
  `FreelistManager`.
- **Quantization** (`agentvec.search`):
  - `scalar.ScalarQuantizer`: per-dimension unsigned 8-bit codes, with
    `QueryTables` for table-based dot products and `QuantizedVectors` for
    storing codes;
  - `signed.SignedQuantizer`: signed 8-bit codes for normalized vectors,
    with `SignedQuantizedVectors`;
  - `pq.ProductQuantizer`: product quantization with k-means codebooks of
    256 centroids per subquantizer, `PQDistanceTable` for lookup-based
    distances and `PQVectors` for storing codes.

All errors derive from `agentvec.errors.AgentVecError`:
`CorruptionError`, `InvalidInputError`, `NotFoundError`,
`DimensionMismatchError` and `DimensionsTooLargeError`.

## Installation

```
pip install .
```

## Storing vectors

```python
from agentvec.storage.vectors import VectorStorage

with VectorStorage.create("vectors.bin", 3) as storage:
    slot = storage.allocate_slot()          # 0
    storage.write_slot(slot, [1.0, 2.0, 3.0])
    storage.sync()

with VectorStorage.open("vectors.bin") as storage:
    print(storage.slot_count())             # 1
    print(storage.read_slot(0))             # [1. 2. 3.]  (float32 array)
    storage.mark_tombstone(0)
    print(storage.is_valid(0))              # False
```

The file starts with room for 1024 slots and grows by a factor of 1.5 when
more are allocated. Dimensions must be between 1 and 65536. Writing a
vector of the wrong length raises `DimensionMismatchError`; touching an
unallocated slot raises `NotFoundError`; a damaged header raises
`CorruptionError`.

## Records and metadata

```python
from agentvec.storage.metadata import MetadataStorage, Record, RecordStatus

with MetadataStorage("meta.db") as meta:
    with meta.transaction():
        record = Record.create("doc-1", 0, {"topic": "notes"}, 3600, RecordStatus.PENDING)
        meta.insert_record(record)
        meta.update_record_status("doc-1", RecordStatus.ACTIVE)
    print(meta.get_record("doc-1").metadata)   # {'topic': 'notes'}
    print(meta.count_active())                 # 1
    for rec in meta.iter_records():
        print(rec.id, rec.slot_offset, rec.expires_at)
```

A record is expired once the current time reaches `expires_at`; a TTL of 0
expires it at once. `transaction()` rolls back everything in its block if
the block raises.

## Recycling slots

```python
from agentvec.storage.freelist import FreelistManager

with MetadataStorage("meta.db") as meta:
    manager = FreelistManager.load(meta)
    manager.push_and_save(5, meta)
    slot = manager.pop()       # 5
    manager.save(meta)
```

## Quantization

```python
import numpy as np
from agentvec.search.scalar import ScalarQuantizer
from agentvec.search.signed import SignedQuantizer
from agentvec.search.pq import PQConfig, ProductQuantizer, PQVectors

vectors = np.random.default_rng(0).uniform(-1, 1, (1000, 384)).astype(np.float32)

quantizer = ScalarQuantizer.fit(vectors)
a, b = quantizer.quantize(vectors[0]), quantizer.quantize(vectors[1])
print(quantizer.dot_product_quantized(a, b))

signed = SignedQuantizer.for_normalized(384)
unit = vectors[0] / np.linalg.norm(vectors[0])
print(signed.dot_product(signed.quantize(unit), signed.quantize(unit)))

config = PQConfig.for_dimension(384)          # 48 subquantizers
pq = ProductQuantizer.train(vectors, 384, config, True)
codes = PQVectors.from_vectors(pq, vectors)
table = pq.precompute_table(vectors[0])
print(table.distance(codes.get_code(0)))
```

With `higher_is_better=True` product-quantization distances are dot
products; with `False` they are squared Euclidean distances.

## What this package does not do

These are components only. There is no database or collection layer that
ties vector files, records and the freelist together, no nearest-neighbour
index or search API, no crash-recovery routine, no server and no command
line program.

## Running the tests

```
pip install .[test]
pytest
```