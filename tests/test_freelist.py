import struct

import pytest

from agentvec.errors import CorruptionError, InvalidInputError
from agentvec.storage.freelist import Freelist, FreelistManager
from agentvec.storage.metadata import MetadataStorage


def test_freelist_push_pop():
    fl = Freelist()
    assert len(fl) == 0
    assert fl.pop() is None

    fl.push(5)
    fl.push(10)
    fl.push(15)

    assert len(fl) == 3
    assert fl.pop() == 15
    assert fl.pop() == 10
    assert fl.pop() == 5
    assert fl.pop() is None


def test_freelist_contains():
    fl = Freelist()
    fl.push(42)
    fl.push(100)
    assert 42 in fl
    assert 100 in fl
    assert 0 not in fl


def test_freelist_serialize_round_trip():
    fl = Freelist()
    for slot in (1, 2, 3):
        fl.push(slot)

    fl2 = Freelist.deserialize(fl.serialize())
    assert len(fl2) == 3
    assert fl2.pop() == 3
    assert fl2.pop() == 2
    assert fl2.pop() == 1


def test_freelist_serialized_layout():
    fl = Freelist([7])
    assert fl.serialize() == struct.pack("<QQ", 1, 7)
    assert Freelist().serialize() == struct.pack("<Q", 0)


def test_freelist_deserialize_empty():
    fl = Freelist.deserialize(b"")
    assert len(fl) == 0


@pytest.mark.parametrize("data", [b"\x01\x02", struct.pack("<QQ", 2, 1)])
def test_freelist_deserialize_corrupt(data):
    with pytest.raises(CorruptionError):
        Freelist.deserialize(data)


def test_freelist_push_negative_rejected():
    fl = Freelist()
    with pytest.raises(InvalidInputError):
        fl.push(-1)


def test_freelist_clear():
    fl = Freelist()
    fl.push(1)
    fl.push(2)
    fl.clear()
    assert len(fl) == 0


def test_freelist_get_all():
    fl = Freelist()
    for slot in (1, 2, 3):
        fl.push(slot)
    assert fl.get_all() == [1, 2, 3]


def test_freelist_manager():
    mgr = FreelistManager()
    assert len(mgr) == 0
    assert mgr.pop() is None

    mgr.freelist.push(42)
    assert len(mgr) == 1
    assert mgr.pop() == 42
    assert len(mgr) == 0


def test_manager_load_missing_is_empty(tmp_path):
    with MetadataStorage(tmp_path / "meta.db") as storage:
        mgr = FreelistManager.load(storage)
        assert len(mgr) == 0


def test_manager_persists_through_storage(tmp_path):
    path = tmp_path / "meta.db"
    with MetadataStorage(path) as storage:
        mgr = FreelistManager()
        mgr.push_and_save(4, storage)
        mgr.push_and_save(9, storage)
        mgr.freelist.push(11)  # not saved

    with MetadataStorage(path) as storage:
        loaded = FreelistManager.load(storage)
        assert loaded.freelist.get_all() == [4, 9]
        assert loaded.pop() == 9
        loaded.save(storage)

    with MetadataStorage(path) as storage:
        assert FreelistManager.load(storage).freelist.get_all() == [4]