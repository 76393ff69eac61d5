"""Tests for the status record store."""

import itertools
import json
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from status_board.errors import InvalidStatusKeyError, InvalidTimestampError, StatusStoreError
from status_board.status_store import StatusStore, format_timestamp, parse_timestamp

KEYS = ["last_emptied", "last_cleaned"]
T1 = "2026-01-29T15:32:41.000Z"


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "data" / "status.json"


@pytest.fixture
def store(store_path):
    return StatusStore(store_path, KEYS)


class TestRead:
    def test_first_read_creates_record(self, store, store_path):
        """A missing file is created with every key set to the same timestamp."""
        record = store.read()

        assert set(record) == set(KEYS)
        assert record["last_emptied"] == record["last_cleaned"]
        assert record["last_emptied"].endswith("Z")
        assert json.loads(store_path.read_text()) == record

    def test_read_is_idempotent(self, store, store_path):
        first = store.read()
        on_disk = store_path.read_bytes()

        second = store.read()

        assert first == second
        assert store_path.read_bytes() == on_disk

    def test_read_existing_record(self, store, store_path):
        store_path.parent.mkdir(parents=True)
        store_path.write_text(json.dumps({"last_emptied": T1, "last_cleaned": T1}))

        assert store.read() == {"last_emptied": T1, "last_cleaned": T1}

    def test_corrupt_record_raises(self, store, store_path):
        store_path.parent.mkdir(parents=True)
        store_path.write_text("{not json")

        with pytest.raises(StatusStoreError):
            store.read()

    def test_non_mapping_record_raises(self, store, store_path):
        store_path.parent.mkdir(parents=True)
        store_path.write_text(json.dumps(["last_emptied"]))

        with pytest.raises(StatusStoreError):
            store.read()

    def test_concurrent_first_reads_create_one_record(self, store, store_path, monkeypatch):
        # Every call yields a distinct time, so a second initialization would show
        ticks = itertools.count()
        monkeypatch.setattr(
            "status_board.status_store.now_timestamp",
            lambda: f"2030-01-01T00:00:{next(ticks) % 60:02d}.000Z",
        )
        readers = 16
        barrier = threading.Barrier(readers)

        def read(_):
            barrier.wait()
            return store.read()

        with ThreadPoolExecutor(max_workers=readers) as pool:
            records = list(pool.map(read, range(readers)))

        assert all(record == records[0] for record in records)
        assert json.loads(store_path.read_text()) == records[0]
        assert len(set(records[0].values())) == 1
        assert next(ticks) == 1


class TestUpdate:
    def test_update_replaces_one_key(self, store):
        initial = store.read()

        record = store.update("last_emptied", T1)

        assert record == {"last_emptied": T1, "last_cleaned": initial["last_cleaned"]}
        assert store.read() == record

    def test_update_before_first_read_initializes(self, store, store_path):
        record = store.update("last_cleaned", T1)

        assert record["last_cleaned"] == T1
        assert record["last_emptied"] != T1
        assert store_path.exists()

    def test_unknown_key_is_rejected(self, store, store_path):
        before = store.read()
        on_disk = store_path.read_bytes()

        with pytest.raises(InvalidStatusKeyError) as exc_info:
            store.update("nonexistent_key", T1)

        assert exc_info.value.key == "nonexistent_key"
        assert exc_info.value.status_code == 400
        assert store.read() == before
        assert store_path.read_bytes() == on_disk

    def test_key_set_comes_from_persisted_record(self, store, store_path):
        """A key missing from the file is rejected even if it is configured."""
        store_path.parent.mkdir(parents=True)
        store_path.write_text(json.dumps({"last_emptied": T1}))

        with pytest.raises(InvalidStatusKeyError):
            store.update("last_cleaned", T1)

    def test_no_temp_files_left_behind(self, store, store_path):
        store.update("last_emptied", T1)

        assert [p.name for p in store_path.parent.iterdir()] == ["status.json"]

    def test_concurrent_updates_keep_every_write(self, tmp_path):
        keys = [f"key_{i}" for i in range(16)]
        store = StatusStore(tmp_path / "status.json", keys)
        store.read()
        barrier = threading.Barrier(len(keys))

        def write(i):
            barrier.wait()
            return store.update(keys[i], f"2030-01-01T00:00:{i:02d}.000Z")

        with ThreadPoolExecutor(max_workers=len(keys)) as pool:
            list(pool.map(write, range(len(keys))))

        final = store.read()
        assert final == {key: f"2030-01-01T00:00:{i:02d}.000Z" for i, key in enumerate(keys)}


class TestTimestamps:
    def test_parse_normalizes_to_utc_millis(self):
        assert parse_timestamp("2026-01-29T15:32:41Z") == T1
        assert parse_timestamp("2026-01-29T17:32:41.000+02:00") == T1

    def test_parse_rejects_garbage(self):
        with pytest.raises(InvalidTimestampError):
            parse_timestamp("yesterday")

    def test_naive_datetimes_are_treated_as_utc(self):
        from datetime import datetime

        assert format_timestamp(datetime(2026, 1, 29, 15, 32, 41)) == T1
