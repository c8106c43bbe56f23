"""Shared pytest fixtures for all tests."""

import time

import pytest

from clusterid.cluster_identity import ClusterIdentity
from clusterid.storage.memory_backend import MemoryRecordStorage
from clusterid.storage.sqlite_backend import SqliteRecordStorage

NAMESPACE = "kube-system"
NAME = "ingress-uid"


def _wait_until(predicate, timeout=5.0, interval=0.01):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def wait_until():
    """
    Poll a predicate until it holds or the timeout expires.

    Returns:
        Callable(predicate, timeout=5.0) -> bool
    """
    return _wait_until


@pytest.fixture
def memory_storage():
    """
    Create an empty in-memory record storage.

    Returns:
        MemoryRecordStorage instance, with open watches closed on teardown
    """
    storage = MemoryRecordStorage()
    yield storage
    storage.close_watches()


@pytest.fixture
def sqlite_storage(tmp_path):
    """
    Create an initialized SQLite record storage in a temp directory.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        SqliteRecordStorage with a fast poll interval
    """
    storage = SqliteRecordStorage(str(tmp_path / "records.db"), poll_interval=0.01)
    storage.init_database()
    return storage


@pytest.fixture
def make_identity():
    """
    Factory for ClusterIdentity instances with short backoffs.

    Every instance created is stopped on teardown.
    """
    created = []

    def _make(lister_watcher, creator=None, **kwargs):
        options = {
            "converge_attempts": 50,
            "converge_initial_backoff": 0.01,
            "converge_max_backoff": 0.1,
            "watch_retry_backoff": 0.01,
            "watch_max_backoff": 0.05,
        }
        options.update(kwargs)
        identity = ClusterIdentity(
            lister_watcher,
            creator if creator is not None else lister_watcher,
            NAMESPACE,
            NAME,
            **options
        )
        created.append(identity)
        return identity

    yield _make

    for identity in created:
        identity.stop()
