"""
Tests for storage backends, transaction support and timestamp normalization
"""

import pytest
from decimal import Decimal
from datetime import date, datetime, timedelta, timezone

from lending_core.errors import InvalidTimestamp
from lending_core.storage import (
    InMemoryStorage, SQLiteStorage, create_storage, normalize_timestamp
)


test_data = {
    "id": "loan_001",
    "principal": "1000.00",
    "status": "active",
}


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, tmp_path):
    if request.param == "memory":
        backend = InMemoryStorage()
    else:
        backend = SQLiteStorage(tmp_path / "test.db")
    yield backend
    backend.close()


class TestStorageBackends:
    """Test CRUD operations on every backend"""

    def test_save_and_load(self, storage):
        storage.save("loans", "loan_001", test_data)
        assert storage.load("loans", "loan_001") == test_data
        assert storage.load("loans", "missing") is None

    def test_exists_count_and_find(self, storage):
        storage.save("loans", "a", {"id": "a", "status": "active"})
        storage.save("loans", "b", {"id": "b", "status": "overdue"})
        storage.save("loans", "c", {"id": "c", "status": "active"})

        assert storage.exists("loans", "a")
        assert not storage.exists("loans", "z")
        assert storage.count("loans") == 3
        assert {r["id"] for r in storage.find("loans", {"status": "active"})} == {"a", "c"}
        assert len(storage.load_all("loans")) == 3

    def test_save_replaces(self, storage):
        storage.save("loans", "a", {"id": "a", "status": "active"})
        storage.save("loans", "a", {"id": "a", "status": "finalized"})

        assert storage.count("loans") == 1
        assert storage.load("loans", "a")["status"] == "finalized"

    def test_loaded_records_are_copies(self, storage):
        storage.save("loans", "a", {"id": "a", "status": "active"})
        loaded = storage.load("loans", "a")
        loaded["status"] = "mutated"
        assert storage.load("loans", "a")["status"] == "active"


class TestTransactions:
    """Test atomic blocks"""

    def test_commit(self, storage):
        with storage.atomic():
            storage.save("loans", "a", {"id": "a"})
            storage.save("loans", "b", {"id": "b"})
        assert storage.count("loans") == 2

    def test_rollback_on_error(self, storage):
        storage.save("loans", "a", {"id": "a", "status": "active"})

        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("loans", "a", {"id": "a", "status": "overdue"})
                storage.save("loans", "b", {"id": "b"})
                raise RuntimeError("boom")

        assert storage.load("loans", "a")["status"] == "active"
        assert storage.load("loans", "b") is None

    def test_nested_blocks_join_outer(self, storage):
        storage.save("loans", "a", {"id": "a"})

        with pytest.raises(RuntimeError):
            with storage.atomic():
                with storage.atomic():
                    storage.save("loans", "b", {"id": "b"})
                raise RuntimeError("outer fails after inner completes")

        assert storage.load("loans", "b") is None

    def test_storage_usable_after_rollback(self, storage):
        storage.save("loans", "a", {"id": "a"})
        with pytest.raises(ValueError):
            with storage.atomic():
                raise ValueError("bad")

        storage.save("loans", "b", {"id": "b"})
        assert storage.count("loans") == 2


class TestCreateStorage:
    """Test backend selection"""

    def test_memory(self):
        assert isinstance(create_storage("memory"), InMemoryStorage)

    def test_sqlite(self, tmp_path):
        backend = create_storage("sqlite", tmp_path / "x.db")
        assert isinstance(backend, SQLiteStorage)
        backend.close()

    def test_unknown_backend(self):
        with pytest.raises(ValueError, match="Unknown storage backend"):
            create_storage("postgres")


class _StoreTimestamp:
    """Stand-in for a document store's timestamp object"""

    def to_datetime(self):
        return datetime(2024, 1, 15, 10, tzinfo=timezone.utc)


class TestNormalizeTimestamp:
    """Test the persistence-boundary timestamp normalization"""

    expected = datetime(2024, 1, 15, 10, tzinfo=timezone.utc)

    def test_aware_datetime_converted_to_utc(self):
        value = datetime(2024, 1, 15, 5, tzinfo=timezone(timedelta(hours=-5)))
        assert normalize_timestamp(value) == self.expected
        assert normalize_timestamp(value).tzinfo == timezone.utc

    def test_naive_datetime_taken_as_utc(self):
        assert normalize_timestamp(datetime(2024, 1, 15, 10)) == self.expected

    def test_date_is_midnight(self):
        assert normalize_timestamp(date(2024, 1, 15)) == datetime(2024, 1, 15, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [
        "2024-01-15T10:00:00Z",
        "2024-01-15T10:00:00+00:00",
        "2024-01-15T05:00:00-05:00",
    ])
    def test_iso_strings(self, value):
        assert normalize_timestamp(value) == self.expected

    def test_epoch_milliseconds(self):
        assert normalize_timestamp(1705312800000) == self.expected

    def test_seconds_object(self):
        assert normalize_timestamp({"seconds": 1705312800, "nanoseconds": 0}) == self.expected

    def test_underscore_seconds_object(self):
        value = normalize_timestamp({"_seconds": 1705312800, "_nanoseconds": 500000000})
        assert value == self.expected.replace(microsecond=500000)

    def test_object_with_to_datetime(self):
        assert normalize_timestamp(_StoreTimestamp()) == self.expected

    @pytest.mark.parametrize("value", [None, "not a date", True, {"foo": 1}, ["2024"]])
    def test_unrecognized_values(self, value):
        with pytest.raises(InvalidTimestamp):
            normalize_timestamp(value)

    def test_non_finite_epoch(self):
        with pytest.raises(InvalidTimestamp, match="out of range"):
            normalize_timestamp(Decimal("NaN"))
