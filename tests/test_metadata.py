import pytest

from agentvec.errors import CorruptionError
from agentvec.storage.metadata import (
    MetadataStorage,
    Record,
    RecordStatus,
    current_unix_time,
)


@pytest.fixture
def storage(tmp_path):
    with MetadataStorage(tmp_path / "meta.db") as store:
        yield store


def test_record_creation():
    record = Record.create("test_id", 42, {"key": "value"}, None, RecordStatus.ACTIVE)
    assert record.id == "test_id"
    assert record.slot_offset == 42
    assert record.metadata["key"] == "value"
    assert record.created_at > 0
    assert record.expires_at is None
    assert not record.is_expired()
    assert record.is_active()


def test_record_with_ttl():
    record = Record.create("test", 0, {}, 3600, RecordStatus.ACTIVE)
    assert record.expires_at == record.created_at + 3600
    assert not record.is_expired()


def test_record_expired():
    record = Record.create("test", 0, {}, 0, RecordStatus.ACTIVE)
    record.expires_at = 0
    assert record.is_expired()
    assert not record.is_active()


def test_ttl_zero_expires_immediately():
    record = Record.create("test", 0, {}, 0, RecordStatus.ACTIVE)
    assert record.is_expired()


def test_tombstone_is_not_active():
    record = Record.create("test", 0, {}, None, RecordStatus.TOMBSTONE)
    assert not record.is_active()


def test_unserializable_metadata_falls_back_to_empty_object():
    record = Record.create("test", 0, {"bad": object()}, None, RecordStatus.ACTIVE)
    assert record.metadata == {}


def test_metadata_setter():
    record = Record.create("test", 0, {}, None, RecordStatus.ACTIVE)
    record.metadata = {"a": [1, 2]}
    assert record.metadata == {"a": [1, 2]}


def test_current_unix_time_is_recent():
    assert current_unix_time() > 1_600_000_000


def test_record_serialization():
    record = Record.create("test", 42, {"nested": {"value": 123}}, 3600, RecordStatus.ACTIVE)
    decoded = Record.deserialize(record.serialize())
    assert decoded.id == record.id
    assert decoded.slot_offset == record.slot_offset
    assert decoded.metadata == record.metadata
    assert decoded.created_at == record.created_at
    assert decoded.expires_at == record.expires_at
    assert decoded.status == record.status
    assert decoded == record


def test_deserialize_garbage_raises():
    with pytest.raises(CorruptionError):
        Record.deserialize(b"\x00\x01not a record")


def test_deserialize_missing_field_raises():
    with pytest.raises(CorruptionError):
        Record.deserialize(b'{"id": "x"}')


def test_metadata_storage_records(storage):
    record = Record.create("id1", 0, {"x": 1}, None, RecordStatus.ACTIVE)
    with storage.transaction():
        storage.insert_record(record)

    retrieved = storage.get_record("id1")
    assert retrieved is not None
    assert retrieved.id == "id1"
    assert retrieved.metadata == {"x": 1}

    assert storage.count_active() == 1

    with storage.transaction():
        assert storage.delete_record("id1") is True

    assert storage.get_record("id1") is None


def test_delete_missing_record(storage):
    assert storage.delete_record("nope") is False


def test_update_record_status(storage):
    storage.insert_record(Record.create("id1", 0, {}, None, RecordStatus.PENDING))
    with storage.transaction():
        assert storage.update_record_status("id1", RecordStatus.ACTIVE) is True
    assert storage.get_record("id1").status is RecordStatus.ACTIVE


def test_update_missing_record_status(storage):
    assert storage.update_record_status("missing", RecordStatus.ACTIVE) is False


def test_iter_records(storage):
    with storage.transaction():
        for i in range(5):
            storage.insert_record(
                Record.create(f"id{i}", i, {"idx": i}, None, RecordStatus.ACTIVE)
            )
    records = list(storage.iter_records())
    assert len(records) == 5
    assert [r.id for r in records] == ["id0", "id1", "id2", "id3", "id4"]
    assert [r.metadata["idx"] for r in records] == [0, 1, 2, 3, 4]


def test_count_active_skips_inactive(storage):
    storage.insert_record(Record.create("a", 0, {}, None, RecordStatus.ACTIVE))
    storage.insert_record(Record.create("b", 1, {}, None, RecordStatus.PENDING))
    storage.insert_record(Record.create("c", 2, {}, None, RecordStatus.TOMBSTONE))
    storage.insert_record(Record.create("d", 3, {}, 0, RecordStatus.ACTIVE))
    assert storage.count_active() == 1


def test_transaction_rollback(storage):
    storage.insert_record(Record.create("keep", 0, {}, None, RecordStatus.ACTIVE))
    with pytest.raises(RuntimeError):
        with storage.transaction():
            storage.insert_record(Record.create("drop", 1, {}, None, RecordStatus.ACTIVE))
            storage.delete_record("keep")
            raise RuntimeError("abort")
    assert storage.get_record("drop") is None
    assert storage.get_record("keep") is not None


def test_nested_transaction_rollback_is_local(storage):
    with storage.transaction():
        storage.insert_record(Record.create("outer", 0, {}, None, RecordStatus.ACTIVE))
        with pytest.raises(ValueError):
            with storage.transaction():
                storage.insert_record(Record.create("inner", 1, {}, None, RecordStatus.ACTIVE))
                raise ValueError("inner")
    assert storage.get_record("outer") is not None
    assert storage.get_record("inner") is None


def test_blobs(storage):
    assert storage.get_blob("freelist", "slots") is None
    storage.put_blob("freelist", "slots", b"\x01\x02")
    assert storage.get_blob("freelist", "slots") == b"\x01\x02"
    storage.put_blob("freelist", "slots", b"\x03")
    assert storage.get_blob("freelist", "slots") == b"\x03"
    assert storage.get_blob("other", "slots") is None


def test_persistence_and_compact(tmp_path):
    path = tmp_path / "meta.db"
    with MetadataStorage(path) as store:
        store.insert_record(Record.create("id1", 7, {"k": "v"}, None, RecordStatus.ACTIVE))
        store.put_blob("t", "k", b"data")
        store.compact()
    with MetadataStorage(path) as store:
        record = store.get_record("id1")
        assert record.slot_offset == 7
        assert record.metadata == {"k": "v"}
        assert store.get_blob("t", "k") == b"data"