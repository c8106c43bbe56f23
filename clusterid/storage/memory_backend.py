"""In-process shared storage with list, watch and create-if-absent."""

import logging
import queue
import threading
from typing import Callable, Dict, Iterator, List, Optional

from common.types import EventType, IdentityRecord, WatchEvent, make_key
from clusterid.exceptions import AlreadyExistsError, StorageError
from clusterid.watch_scope import matches_field_selector, parse_field_selector

logger = logging.getLogger(__name__)

_STOP = object()


class QueueWatchStream:
    """
    Watch stream fed by the storage through a queue.

    Iteration blocks until the next event and ends once stop() is called.
    """

    def __init__(self, namespace: str, field_selector: str, on_stop: Callable[['QueueWatchStream'], None]):
        self.namespace = namespace
        self.field_selector = field_selector
        self._queue: queue.Queue = queue.Queue()
        self._stopped = threading.Event()
        self._on_stop = on_stop

    def push(self, event: WatchEvent) -> None:
        if not self._stopped.is_set():
            self._queue.put(event)

    def __iter__(self) -> Iterator[WatchEvent]:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            yield item

    def stop(self) -> None:
        if self._stopped.is_set():
            return
        self._stopped.set()
        self._queue.put(_STOP)
        self._on_stop(self)

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()


class MemoryRecordStorage:
    """
    Thread-safe record storage shared by everything in one process.

    Each write bumps a storage-wide resource version and is fanned out to
    every open watch whose namespace and field selector match.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._records: Dict[str, IdentityRecord] = {}
        self._watches: List[QueueWatchStream] = []
        self._version = 0
        self.list_calls = 0
        self.create_calls = 0

    def list(self, namespace: str, field_selector: str = "") -> List[IdentityRecord]:
        parse_field_selector(field_selector)
        with self._lock:
            self.list_calls += 1
            return [
                record for record in self._records.values()
                if record.namespace == namespace and matches_field_selector(field_selector, record)
            ]

    def watch(self, namespace: str, field_selector: str = "") -> QueueWatchStream:
        """
        Open a watch on a namespace.

        Records that already match are delivered first as ADDED events.
        """
        parse_field_selector(field_selector)
        stream = QueueWatchStream(namespace, field_selector, self._remove_watch)
        with self._lock:
            for record in self._records.values():
                if record.namespace == namespace and matches_field_selector(field_selector, record):
                    stream.push(WatchEvent(EventType.ADDED, record))
            self._watches.append(stream)
        logger.debug(f"Watch opened [namespace={namespace}, selector={field_selector!r}]")
        return stream

    def create_if_absent(self, namespace: str, name: str, data: Dict[str, str]) -> IdentityRecord:
        key = make_key(namespace, name)
        with self._lock:
            self.create_calls += 1
            if key in self._records:
                raise AlreadyExistsError(f"Record {key} already exists")
            record = IdentityRecord(namespace, name, dict(data), self._next_version())
            self._records[key] = record
            self._notify(WatchEvent(EventType.ADDED, record))
        return record

    def update(self, namespace: str, name: str, data: Dict[str, str]) -> IdentityRecord:
        """
        Merge fields into an existing record.

        Raises:
            StorageError: If the record does not exist
        """
        key = make_key(namespace, name)
        with self._lock:
            current = self._records.get(key)
            if current is None:
                raise StorageError(f"Record {key} not found")
            record = IdentityRecord(namespace, name, {**current.data, **data}, self._next_version())
            self._records[key] = record
            self._notify(WatchEvent(EventType.MODIFIED, record))
        return record

    def delete(self, namespace: str, name: str) -> None:
        key = make_key(namespace, name)
        with self._lock:
            record = self._records.pop(key, None)
            if record is not None:
                self._notify(WatchEvent(EventType.DELETED, record))

    def get(self, namespace: str, name: str) -> Optional[IdentityRecord]:
        with self._lock:
            return self._records.get(make_key(namespace, name))

    def close_watches(self) -> None:
        """End every open watch stream, as a dropped connection would."""
        with self._lock:
            watches = list(self._watches)
        for stream in watches:
            stream.stop()

    def open_watch_count(self) -> int:
        with self._lock:
            return len(self._watches)

    def _next_version(self) -> int:
        self._version += 1
        return self._version

    def _notify(self, event: WatchEvent) -> None:
        for stream in self._watches:
            if stream.namespace == event.record.namespace and \
                    matches_field_selector(stream.field_selector, event.record):
                stream.push(event)

    def _remove_watch(self, stream: QueueWatchStream) -> None:
        with self._lock:
            if stream in self._watches:
                self._watches.remove(stream)
