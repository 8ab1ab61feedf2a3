"""
Tests for storage backends and unit-of-work support
"""

import logging
import tempfile
import threading
from pathlib import Path

import pytest

from shxdw_bank.storage import (
    DuplicateKeyError, InMemoryStorage, SQLiteStorage, StorageInterface, create_storage
)


@pytest.fixture(params=["memory", "sqlite"])
def storage(request):
    """Each test runs against both backends"""
    if request.param == "memory":
        backend = InMemoryStorage()
        yield backend
        backend.close()
    else:
        with tempfile.TemporaryDirectory() as temp_dir:
            backend = SQLiteStorage(Path(temp_dir) / "test.db")
            yield backend
            backend.close()


def record(record_id, **fields):
    data = {
        "id": record_id,
        "created_at": "2026-01-01T00:00:00+00:00",
        "updated_at": "2026-01-01T00:00:00+00:00",
    }
    data.update(fields)
    return data


class TestBasicOperations:

    def test_insert_load_exists(self, storage):
        storage.insert("items", 1, record(1, name="first"))

        assert storage.load("items", 1)["name"] == "first"
        assert storage.exists("items", 1)
        assert not storage.exists("items", 2)
        assert storage.load("items", 2) is None

    def test_save_replaces_by_id(self, storage):
        storage.insert("items", 1, record(1, name="first"))
        storage.save("items", 1, record(1, name="renamed"))

        assert storage.load("items", 1)["name"] == "renamed"
        assert storage.count("items") == 1

    def test_find_load_all_count_delete(self, storage):
        storage.insert("items", 1, record(1, colour="red", size=1))
        storage.insert("items", 2, record(2, colour="blue", size=2))
        storage.insert("items", 3, record(3, colour="red", size=3))

        reds = storage.find("items", {"colour": "red"})
        assert [r["id"] for r in reds] == [1, 3]
        assert storage.find("items", {"colour": "red", "size": 3})[0]["id"] == 3
        assert storage.find("items", {"colour": "green"}) == []
        assert [r["id"] for r in storage.load_all("items")] == [1, 2, 3]

        assert storage.delete("items", 2)
        assert not storage.delete("items", 2)
        assert storage.count("items") == 2

        storage.clear_table("items")
        assert storage.count("items") == 0

    def test_loaded_records_are_copies(self, storage):
        storage.insert("items", 1, record(1, tags=["a"]))
        loaded = storage.load("items", 1)
        loaded["tags"].append("b")

        assert storage.load("items", 1)["tags"] == ["a"]

    def test_next_id_is_sequential_per_name(self, storage):
        assert [storage.next_id("clients") for _ in range(3)] == [1, 2, 3]
        assert storage.next_id("accounts") == 1
        assert storage.next_id("clients") == 4


class TestUniqueness:

    def test_duplicate_id_rejected(self, storage):
        storage.insert("items", 1, record(1))
        with pytest.raises(DuplicateKeyError) as exc_info:
            storage.insert("items", 1, record(1))
        assert exc_info.value.field == "id"

    def test_unique_field_rejected_on_insert(self, storage):
        storage.add_unique_constraint("accounts", "number")
        storage.insert("accounts", 1, record(1, number="SHX-10000-100"))

        with pytest.raises(DuplicateKeyError) as exc_info:
            storage.insert("accounts", 2, record(2, number="SHX-10000-100"))

        assert exc_info.value.field == "number"
        assert exc_info.value.value == "SHX-10000-100"
        assert storage.count("accounts") == 1

    def test_unique_field_rejected_on_save(self, storage):
        storage.add_unique_constraint("accounts", "number")
        storage.insert("accounts", 1, record(1, number="A"))
        storage.insert("accounts", 2, record(2, number="B"))

        with pytest.raises(DuplicateKeyError):
            storage.save("accounts", 2, record(2, number="A"))

        assert storage.load("accounts", 2)["number"] == "B"
        assert storage.count("accounts") == 2

    def test_resaving_same_record_is_allowed(self, storage):
        storage.add_unique_constraint("accounts", "number")
        storage.insert("accounts", 1, record(1, number="A", balance="0"))
        storage.save("accounts", 1, record(1, number="A", balance="10"))

        assert storage.load("accounts", 1)["balance"] == "10"

    def test_number_freed_by_delete_can_be_reused(self, storage):
        storage.add_unique_constraint("accounts", "number")
        storage.insert("accounts", 1, record(1, number="A"))
        storage.delete("accounts", 1)
        storage.insert("accounts", 2, record(2, number="A"))

        assert storage.find("accounts", {"number": "A"})[0]["id"] == 2


class TestUnitOfWork:

    def test_atomic_commits(self, storage):
        with storage.atomic():
            storage.insert("items", 1, record(1))
            storage.insert("items", 2, record(2))

        assert storage.count("items") == 2

    def test_atomic_rolls_back_on_error(self, storage):
        storage.insert("items", 1, record(1, value="before"))

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("items", 1, record(1, value="after"))
                storage.insert("items", 2, record(2))
                raise RuntimeError("boom")

        assert storage.load("items", 1)["value"] == "before"
        assert not storage.exists("items", 2)

    def test_rollback_restores_sequences(self, storage):
        storage.next_id("items")
        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.next_id("items")
                raise RuntimeError("boom")

        assert storage.next_id("items") == 2

    def test_nested_atomic_joins_outer(self, storage):
        with pytest.raises(RuntimeError):
            with storage.atomic():
                with storage.atomic():
                    storage.insert("items", 1, record(1))
                assert storage.exists("items", 1)
                raise RuntimeError("outer fails")

        assert not storage.exists("items", 1)

    def test_other_threads_wait_for_the_unit(self, storage):
        storage.insert("items", 1, record(1, value="before"))
        inside = threading.Event()
        seen = []

        def reader():
            inside.wait()
            seen.append(storage.load("items", 1)["value"])

        thread = threading.Thread(target=reader)
        thread.start()
        with storage.atomic():
            storage.save("items", 1, record(1, value="middle"))
            inside.set()
            thread.join(timeout=0.2)
            storage.save("items", 1, record(1, value="after"))
        thread.join()

        assert seen == ["after"]


class TestSQLitePersistence:

    def test_data_survives_reopen(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = Path(temp_dir) / "bank.db"
            storage = SQLiteStorage(db_path)
            storage.add_unique_constraint("accounts", "number")
            storage.insert("accounts", storage.next_id("accounts"), record(1, number="A"))
            storage.close()

            reopened = SQLiteStorage(db_path)
            reopened.add_unique_constraint("accounts", "number")
            assert reopened.load("accounts", 1)["number"] == "A"
            assert reopened.next_id("accounts") == 2
            with pytest.raises(DuplicateKeyError):
                reopened.insert("accounts", 2, record(2, number="A"))
            reopened.close()

    def test_rejects_unsafe_table_names(self):
        storage = SQLiteStorage()
        with pytest.raises(ValueError):
            storage.insert("items; DROP TABLE x", 1, record(1))
        storage.close()


class TestCreateStorage:

    def test_memory_url(self, caplog):
        caplog.set_level(logging.WARNING, logger="shxdw.storage")
        assert isinstance(create_storage("memory://"), InMemoryStorage)
        assert "in-memory storage" in caplog.text

    def test_file_path(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            storage = create_storage(str(Path(temp_dir) / "bank.db"))
            assert isinstance(storage, SQLiteStorage)
            assert isinstance(storage, StorageInterface)
            storage.close()
