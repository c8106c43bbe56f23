"""Unit tests for the in-memory record storage."""

import threading

import pytest

from common.types import EventType
from clusterid.exceptions import AlreadyExistsError, StorageError

NAMESPACE = "kube-system"
NAME = "ingress-uid"


class TestRecordOperations:
    """Test create, update, delete and list."""

    def test_create_if_absent(self, memory_storage):
        record = memory_storage.create_if_absent(NAMESPACE, NAME, {"cluster": "a"})

        assert record.key == "kube-system/ingress-uid"
        assert record.data == {"cluster": "a"}
        assert record.resource_version == 1

    def test_create_existing_raises(self, memory_storage):
        memory_storage.create_if_absent(NAMESPACE, NAME, {"cluster": "a"})

        with pytest.raises(AlreadyExistsError):
            memory_storage.create_if_absent(NAMESPACE, NAME, {"cluster": "b"})

        assert memory_storage.get(NAMESPACE, NAME).data == {"cluster": "a"}

    def test_update_merges_and_bumps_version(self, memory_storage):
        memory_storage.create_if_absent(NAMESPACE, NAME, {"cluster": "a", "provider": "a"})

        record = memory_storage.update(NAMESPACE, NAME, {"provider": "b"})

        assert record.data == {"cluster": "a", "provider": "b"}
        assert record.resource_version == 2

    def test_update_missing_raises(self, memory_storage):
        with pytest.raises(StorageError, match="not found"):
            memory_storage.update(NAMESPACE, NAME, {"provider": "b"})

    def test_list_filters_namespace_and_selector(self, memory_storage):
        memory_storage.create_if_absent(NAMESPACE, NAME, {"cluster": "a"})
        memory_storage.create_if_absent(NAMESPACE, "other", {"cluster": "b"})
        memory_storage.create_if_absent("default", NAME, {"cluster": "c"})

        assert len(memory_storage.list(NAMESPACE)) == 2
        records = memory_storage.list(NAMESPACE, "metadata.name=ingress-uid")
        assert [r.data["cluster"] for r in records] == ["a"]

    def test_concurrent_create_has_one_winner(self, memory_storage):
        outcomes = []
        barrier = threading.Barrier(8)

        def create(i):
            barrier.wait()
            try:
                memory_storage.create_if_absent(NAMESPACE, NAME, {"cluster": str(i)})
                outcomes.append("created")
            except AlreadyExistsError:
                outcomes.append("exists")

        threads = [threading.Thread(target=create, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("created") == 1
        assert outcomes.count("exists") == 7


class TestWatch:
    """Test watch stream delivery."""

    def test_watch_replays_existing_records(self, memory_storage):
        memory_storage.create_if_absent(NAMESPACE, NAME, {"cluster": "a"})

        stream = memory_storage.watch(NAMESPACE, "metadata.name=ingress-uid")
        events = iter(stream)

        event = next(events)
        assert event.type == EventType.ADDED
        assert event.record.data == {"cluster": "a"}
        stream.stop()

    def test_watch_delivers_changes_in_order(self, memory_storage):
        stream = memory_storage.watch(NAMESPACE, "metadata.name=ingress-uid")
        memory_storage.create_if_absent(NAMESPACE, "other", {"cluster": "x"})
        memory_storage.create_if_absent(NAMESPACE, NAME, {"cluster": "a"})
        memory_storage.update(NAMESPACE, NAME, {"provider": "p"})
        memory_storage.delete(NAMESPACE, NAME)
        stream.stop()

        events = list(stream)

        assert [e.type for e in events] == [EventType.ADDED, EventType.MODIFIED, EventType.DELETED]
        assert all(e.record.name == NAME for e in events)

    def test_stop_ends_iteration_and_unregisters(self, memory_storage):
        stream = memory_storage.watch(NAMESPACE)
        assert memory_storage.open_watch_count() == 1

        stream.stop()
        stream.stop()

        assert list(stream) == []
        assert stream.stopped
        assert memory_storage.open_watch_count() == 0

    def test_invalid_selector_raises(self, memory_storage):
        with pytest.raises(ValueError):
            memory_storage.watch(NAMESPACE, "bogus")
