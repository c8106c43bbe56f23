"""
Lock-protected local view of the cluster identity.

The cache holds the last observed cluster and provider ids. It is written by
the WatchPump and by lazy initialization, and read by every GetId caller.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Mapping, Optional, Tuple

from common.types import IdentityFields

logger = logging.getLogger(__name__)


class ReadWriteLock:
    """
    Reader/writer lock built on a condition variable.

    Any number of readers may hold the lock at once; a writer holds it
    alone. Waiting writers block new readers so a steady stream of GetId
    calls cannot starve the watch pump.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class IdentityCache:
    """
    Process-local copy of the identity record's two fields.

    Fields are None until observed. A non-empty cluster id is never cleared;
    records lacking a field leave the cached value untouched.
    """

    def __init__(self):
        self._lock = ReadWriteLock()
        self._cluster_id: Optional[str] = None
        self._provider_id: Optional[str] = None
        self._ready = threading.Event()

    def set_from_record(self, data: Mapping[str, str]) -> bool:
        """
        Adopt the identity fields present in record data.

        Args:
            data: Record data; missing or empty fields are ignored

        Returns:
            True if either cached field changed
        """
        fields = IdentityFields.from_data(data)
        if fields.is_empty():
            return False

        with self._lock.write_locked():
            changed = False
            if fields.cluster_id is not None and fields.cluster_id != self._cluster_id:
                self._cluster_id = fields.cluster_id
                changed = True
            if fields.provider_id is not None and fields.provider_id != self._provider_id:
                self._provider_id = fields.provider_id
                changed = True

        if changed:
            logger.debug(
                f"Identity cache updated [cluster={fields.cluster_id}, provider={fields.provider_id}]"
            )
        return changed

    def snapshot(self) -> Tuple[Optional[str], Optional[str]]:
        """Return (cluster_id, provider_id) as a consistent pair."""
        with self._lock.read_locked():
            return self._cluster_id, self._provider_id

    def mark_ready(self) -> None:
        self._ready.set()

    def is_ready(self) -> bool:
        return self._ready.is_set()

    def wait_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the cache is marked ready or the timeout expires."""
        return self._ready.wait(timeout)
