"""
Background relay from the identity record's watch into the local cache.

Lists the scoped record, marks the cache ready, then applies every change
delivered by the watch stream. When the stream ends or the transport fails
it re-lists and re-watches with exponential backoff.
"""

import logging
import threading
from typing import Optional

from common.types import EventType, IdentityFields, WatchEvent
from clusterid.config import WATCH_MAX_BACKOFF, WATCH_RETRY_BACKOFF
from clusterid.identity_cache import IdentityCache
from clusterid.local_store import RecordStore
from clusterid.watch_scope import SingleKeyWatchScope, WatchStream

logger = logging.getLogger(__name__)


def handle_event(
    event: WatchEvent,
    namespace: str,
    name: str,
    cache: IdentityCache,
    last_applied: Optional[IdentityFields]
) -> Optional[IdentityFields]:
    """
    Apply one watch event to the cache if it carries new identity fields.

    Args:
        event: Event delivered by the watch stream
        namespace: Namespace of the identity record
        name: Name of the identity record
        cache: Cache to update
        last_applied: Fields applied by the previous event, if any

    Returns:
        The fields now considered applied
    """
    record = event.record
    if record.namespace != namespace or record.name != name:
        return last_applied

    if event.type not in (EventType.ADDED, EventType.MODIFIED):
        return last_applied

    fields = IdentityFields.from_data(record.data)
    if fields == last_applied:
        return last_applied

    logger.debug(
        f"Observed {event.type.value.lower()} record {record.key} "
        f"[cluster={fields.cluster_id}, provider={fields.provider_id}]; setting local values"
    )
    cache.set_from_record(record.data)
    return fields


class WatchPump:
    """
    Keeps an IdentityCache and RecordStore in step with the identity record.

    Runs on a daemon thread for the lifetime of the process; its only
    observable effect is mutation of the cache and store.
    """

    def __init__(
        self,
        scope: SingleKeyWatchScope,
        cache: IdentityCache,
        store: RecordStore,
        retry_backoff: float = WATCH_RETRY_BACKOFF,
        max_backoff: float = WATCH_MAX_BACKOFF
    ):
        self._scope = scope
        self._cache = cache
        self._store = store
        self._retry_backoff = retry_backoff
        self._max_backoff = max_backoff

        self._start_lock = threading.Lock()
        self._stream_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stream: Optional[WatchStream] = None
        self._stop_event = threading.Event()
        self._last_applied: Optional[IdentityFields] = None

    def start(self) -> None:
        """
        Start the watch thread.

        Subsequent calls while the thread is alive are no-ops.
        """
        with self._start_lock:
            if self._thread is not None and self._thread.is_alive():
                return

            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run,
                daemon=True,
                name="ClusterIdWatch"
            )
            self._thread.start()

            logger.info(f"Watch pump started [key={self._scope.key}]")

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the watch thread and close the current stream."""
        self._stop_event.set()

        with self._stream_lock:
            stream = self._stream
        if stream is not None:
            stream.stop()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)
            logger.info("Watch pump stopped")

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        backoff = self._retry_backoff
        while not self._stop_event.is_set():
            try:
                self._list_and_watch()
                backoff = self._retry_backoff
                if not self._stop_event.is_set():
                    logger.info(f"Watch on {self._scope.key} ended, re-listing")
            except Exception as e:
                logger.error(f"Watch on {self._scope.key} failed: {e}", exc_info=True)

            if self._stop_event.wait(timeout=backoff):
                break
            backoff = min(backoff * 2, self._max_backoff)

    def _list_and_watch(self) -> None:
        records = self._scope.list()
        self._store.replace(records)
        for record in records:
            self._last_applied = handle_event(
                WatchEvent(EventType.ADDED, record),
                self._scope.namespace,
                self._scope.name,
                self._cache,
                self._last_applied
            )

        if not self._cache.is_ready():
            self._cache.mark_ready()
            logger.info(f"Identity cache ready [key={self._scope.key}, records={len(records)}]")

        stream = self._scope.watch()
        with self._stream_lock:
            self._stream = stream
        if self._stop_event.is_set():
            stream.stop()

        try:
            for event in stream:
                if self._stop_event.is_set():
                    break
                self._store.apply(event)
                self._last_applied = handle_event(
                    event,
                    self._scope.namespace,
                    self._scope.name,
                    self._cache,
                    self._last_applied
                )
        finally:
            stream.stop()
            with self._stream_lock:
                self._stream = None
