"""Transactional record metadata backed by SQLite.

Each record maps an ID to its vector slot, user metadata (kept as a JSON
string), timestamps and a status used for crash recovery. A second table
holds named binary blobs so other components, such as the freelist, can
persist state in the same transactional store.
"""

import contextlib
import dataclasses
import enum
import itertools
import json
import os
import sqlite3
import time
from dataclasses import dataclass
from typing import Any, Iterator, Optional

from ..errors import CorruptionError

_SCHEMA = (
    "CREATE TABLE IF NOT EXISTS records (id TEXT PRIMARY KEY, data BLOB NOT NULL)",
    "CREATE TABLE IF NOT EXISTS blobs ("
    " tbl TEXT NOT NULL, key TEXT NOT NULL, data BLOB NOT NULL,"
    " PRIMARY KEY (tbl, key))",
)


def current_unix_time():
    """Current Unix timestamp in whole seconds."""
    return max(int(time.time()), 0)


def _encode_metadata(metadata):
    try:
        return json.dumps(metadata)
    except (TypeError, ValueError):
        return "{}"


class RecordStatus(enum.Enum):
    """Lifecycle state of a record."""

    PENDING = 0
    ACTIVE = 1
    TOMBSTONE = 2


@dataclass
class Record:
    """A stored record: ID, vector slot, metadata, timestamps and status."""

    id: str
    slot_offset: int
    metadata_json: str = "{}"
    created_at: int = 0
    expires_at: Optional[int] = None
    status: RecordStatus = RecordStatus.ACTIVE

    @classmethod
    def create(cls, id, slot_offset, metadata, ttl=None, status=RecordStatus.ACTIVE):
        """Build a record stamped with the current time; ``ttl`` is in seconds."""
        now = current_unix_time()
        return cls(
            id=str(id),
            slot_offset=slot_offset,
            metadata_json=_encode_metadata(metadata),
            created_at=now,
            expires_at=None if ttl is None else now + ttl,
            status=status,
        )

    @property
    def metadata(self) -> Any:
        """The user metadata decoded from JSON, or None if it cannot be decoded."""
        try:
            return json.loads(self.metadata_json)
        except ValueError:
            return None

    @metadata.setter
    def metadata(self, value):
        self.metadata_json = _encode_metadata(value)

    def is_expired(self):
        """True once the current time has reached the expiry time."""
        return self.expires_at is not None and current_unix_time() >= self.expires_at

    def is_active(self):
        """True when the record is active and not expired."""
        return self.status is RecordStatus.ACTIVE and not self.is_expired()

    def serialize(self):
        """Encode the record as bytes for storage."""
        return json.dumps(
            {
                "id": self.id,
                "slot_offset": self.slot_offset,
                "metadata": self.metadata_json,
                "created_at": self.created_at,
                "expires_at": self.expires_at,
                "status": self.status.value,
            },
            separators=(",", ":"),
        ).encode("utf-8")

    @classmethod
    def deserialize(cls, data):
        """Decode a record previously produced by :meth:`serialize`."""
        try:
            fields = json.loads(bytes(data))
            expires_at = fields["expires_at"]
            return cls(
                id=str(fields["id"]),
                slot_offset=int(fields["slot_offset"]),
                metadata_json=str(fields["metadata"]),
                created_at=int(fields["created_at"]),
                expires_at=None if expires_at is None else int(expires_at),
                status=RecordStatus(fields["status"]),
            )
        except (ValueError, KeyError, TypeError) as exc:
            raise CorruptionError(f"cannot decode record: {exc}") from exc


class MetadataStorage:
    """Record and blob storage in a single SQLite database file."""

    def __init__(self, path):
        self._conn = sqlite3.connect(os.fspath(path), isolation_level=None)
        self._savepoints = itertools.count()
        with self.transaction():
            for statement in _SCHEMA:
                self._conn.execute(statement)

    @contextlib.contextmanager
    def transaction(self):
        """Group operations atomically; rolled back if the block raises.

        Transactions may be nested; an inner failure rolls back only the
        inner block.
        """
        name = f"sp{next(self._savepoints)}"
        self._conn.execute(f"SAVEPOINT {name}")
        try:
            yield self
        except BaseException:
            self._conn.execute(f"ROLLBACK TO {name}")
            self._conn.execute(f"RELEASE {name}")
            raise
        self._conn.execute(f"RELEASE {name}")

    def insert_record(self, record):
        """Insert or replace a record."""
        self._conn.execute(
            "INSERT OR REPLACE INTO records (id, data) VALUES (?, ?)",
            (record.id, record.serialize()),
        )

    def get_record(self, id):
        """Return the record with ``id``, or None if absent."""
        row = self._conn.execute("SELECT data FROM records WHERE id = ?", (id,)).fetchone()
        return None if row is None else Record.deserialize(row[0])

    def update_record_status(self, id, status):
        """Change a record's status; returns False if the record does not exist."""
        with self.transaction():
            record = self.get_record(id)
            if record is None:
                return False
            self.insert_record(dataclasses.replace(record, status=status))
        return True

    def delete_record(self, id):
        """Remove a record; returns whether it existed."""
        cursor = self._conn.execute("DELETE FROM records WHERE id = ?", (id,))
        return cursor.rowcount > 0

    def iter_records(self) -> Iterator[Record]:
        """Yield every record in ID order."""
        rows = self._conn.execute("SELECT data FROM records ORDER BY id").fetchall()
        for (data,) in rows:
            yield Record.deserialize(data)

    def count_active(self):
        """Number of records that are active and not expired."""
        return sum(1 for record in self.iter_records() if record.is_active())

    def get_blob(self, table, key):
        """Return the bytes stored under ``(table, key)``, or None."""
        row = self._conn.execute(
            "SELECT data FROM blobs WHERE tbl = ? AND key = ?", (table, key)
        ).fetchone()
        return None if row is None else bytes(row[0])

    def put_blob(self, table, key, data):
        """Store bytes under ``(table, key)``, replacing any previous value."""
        self._conn.execute(
            "INSERT OR REPLACE INTO blobs (tbl, key, data) VALUES (?, ?, ?)",
            (table, key, bytes(data)),
        )

    def compact(self):
        """Reclaim unused space in the database file."""
        self._conn.execute("VACUUM")

    def close(self):
        """Close the underlying database connection."""
        self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()