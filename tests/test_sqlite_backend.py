"""Tests for the SQLite record storage."""

import threading

import pytest

from common.types import EventType
from clusterid.exceptions import AlreadyExistsError, StorageError
from clusterid.storage.sqlite_backend import SqliteRecordStorage

NAMESPACE = "kube-system"
NAME = "ingress-uid"


class TestDatabaseSetup:
    """Test schema creation."""

    def test_init_creates_tables(self, sqlite_storage):
        with sqlite_storage.get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table'")
            tables = {row[0] for row in cursor.fetchall()}

        assert {"records", "record_versions"} <= tables

    def test_init_creates_parent_directories(self, tmp_path):
        storage = SqliteRecordStorage(str(tmp_path / "nested" / "dir" / "records.db"))

        storage.init_database()

        assert (tmp_path / "nested" / "dir" / "records.db").exists()

    def test_init_is_idempotent(self, sqlite_storage):
        sqlite_storage.init_database()

        assert sqlite_storage.list(NAMESPACE) == []

    def test_unopenable_database_raises_storage_error(self, tmp_path):
        storage = SqliteRecordStorage(str(tmp_path))

        with pytest.raises(StorageError):
            storage.list(NAMESPACE)


class TestRecordOperations:
    """Test create, update, delete and list."""

    def test_create_and_get(self, sqlite_storage):
        created = sqlite_storage.create_if_absent(NAMESPACE, NAME, {"cluster": "a", "provider": "a"})

        fetched = sqlite_storage.get(NAMESPACE, NAME)

        assert fetched == created
        assert fetched.data == {"cluster": "a", "provider": "a"}

    def test_create_existing_raises(self, sqlite_storage):
        sqlite_storage.create_if_absent(NAMESPACE, NAME, {"cluster": "a"})

        with pytest.raises(AlreadyExistsError):
            sqlite_storage.create_if_absent(NAMESPACE, NAME, {"cluster": "b"})

        assert sqlite_storage.get(NAMESPACE, NAME).data == {"cluster": "a"}

    def test_update_merges_and_bumps_version(self, sqlite_storage):
        created = sqlite_storage.create_if_absent(NAMESPACE, NAME, {"cluster": "a", "provider": "a"})

        updated = sqlite_storage.update(NAMESPACE, NAME, {"provider": "b"})

        assert updated.data == {"cluster": "a", "provider": "b"}
        assert updated.resource_version > created.resource_version
        assert sqlite_storage.get(NAMESPACE, NAME) == updated

    def test_update_missing_raises(self, sqlite_storage):
        with pytest.raises(StorageError, match="not found"):
            sqlite_storage.update(NAMESPACE, NAME, {"provider": "b"})

    def test_versions_are_not_reused_after_delete(self, sqlite_storage):
        first = sqlite_storage.create_if_absent(NAMESPACE, NAME, {"cluster": "a"})
        sqlite_storage.delete(NAMESPACE, NAME)

        second = sqlite_storage.create_if_absent(NAMESPACE, NAME, {"cluster": "b"})

        assert second.resource_version > first.resource_version

    def test_version_table_keeps_only_latest_row(self, sqlite_storage):
        versions = [sqlite_storage.create_if_absent(NAMESPACE, NAME, {"cluster": "a"}).resource_version]
        for provider in ("b", "c", "d"):
            versions.append(sqlite_storage.update(NAMESPACE, NAME, {"provider": provider}).resource_version)
        with pytest.raises(AlreadyExistsError):
            sqlite_storage.create_if_absent(NAMESPACE, NAME, {"cluster": "z"})

        with sqlite_storage.get_db_connection() as conn:
            rows = conn.execute("SELECT seq FROM record_versions").fetchall()

        assert versions == sorted(set(versions))
        assert [row[0] for row in rows] == [versions[-1]]

    def test_list_applies_selector(self, sqlite_storage):
        sqlite_storage.create_if_absent(NAMESPACE, NAME, {"cluster": "a"})
        sqlite_storage.create_if_absent(NAMESPACE, "other", {"cluster": "b"})

        records = sqlite_storage.list(NAMESPACE, "metadata.name=ingress-uid")

        assert [r.name for r in records] == [NAME]

    def test_concurrent_create_has_one_winner(self, sqlite_storage):
        outcomes = []
        barrier = threading.Barrier(6)

        def create(i):
            barrier.wait()
            try:
                sqlite_storage.create_if_absent(NAMESPACE, NAME, {"cluster": str(i)})
                outcomes.append("created")
            except AlreadyExistsError:
                outcomes.append("exists")

        threads = [threading.Thread(target=create, args=(i,)) for i in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("created") == 1
        assert outcomes.count("exists") == 5


class TestPollingWatch:
    """Test the polling watch stream."""

    def test_reports_added_modified_deleted(self, sqlite_storage):
        sqlite_storage.create_if_absent(NAMESPACE, NAME, {"cluster": "a"})
        stream = sqlite_storage.watch(NAMESPACE, "metadata.name=ingress-uid")
        events = iter(stream)

        added = next(events)
        assert added.type == EventType.ADDED
        assert added.record.data == {"cluster": "a"}

        sqlite_storage.update(NAMESPACE, NAME, {"provider": "p"})
        modified = next(events)
        assert modified.type == EventType.MODIFIED
        assert modified.record.data == {"cluster": "a", "provider": "p"}

        sqlite_storage.delete(NAMESPACE, NAME)
        deleted = next(events)
        assert deleted.type == EventType.DELETED
        assert deleted.record.name == NAME

        stream.stop()

    def test_ignores_records_outside_selector(self, sqlite_storage):
        stream = sqlite_storage.watch(NAMESPACE, "metadata.name=ingress-uid")
        events = iter(stream)
        sqlite_storage.create_if_absent(NAMESPACE, "other", {"cluster": "x"})
        sqlite_storage.create_if_absent(NAMESPACE, NAME, {"cluster": "a"})

        event = next(events)

        assert event.record.name == NAME
        stream.stop()

    def test_stop_ends_iteration(self, sqlite_storage):
        stream = sqlite_storage.watch(NAMESPACE)
        stream.stop()

        assert list(stream) == []


class TestSharedIdentity:
    """Test identity agreement between instances sharing one database."""

    def test_instances_agree_on_identity(self, sqlite_storage, make_identity):
        identities = [
            make_identity(SqliteRecordStorage(sqlite_storage.database_path, poll_interval=0.01))
            for _ in range(4)
        ]
        for identity in identities:
            assert identity.start_watching(timeout=2.0)

        barrier = threading.Barrier(len(identities))
        results = []

        def resolve(identity):
            barrier.wait()
            results.append(identity.get_id())

        threads = [threading.Thread(target=resolve, args=(identity,)) for identity in identities]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 4
        assert len(set(results)) == 1
        assert sqlite_storage.get(NAMESPACE, NAME).data["cluster"] == results[0]
