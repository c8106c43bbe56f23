"""Local, watch-populated store of scoped records."""

import logging
import threading
from typing import Dict, Iterable, List, Optional

from common.types import EventType, IdentityRecord, WatchEvent

logger = logging.getLogger(__name__)


class RecordStore:
    """
    Thread-safe in-process copy of the records delivered by list and watch.

    Reads never touch shared storage; the WatchPump is the only writer.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._records: Dict[str, IdentityRecord] = {}

    def get_by_key(self, key: str) -> Optional[IdentityRecord]:
        """
        Look up a record by "<namespace>/<name>" key.

        Returns:
            The record, or None if it has not been observed
        """
        with self._lock:
            return self._records.get(key)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._records)

    def replace(self, records: Iterable[IdentityRecord]) -> None:
        """Replace the whole store with a fresh list result."""
        fresh = {record.key: record for record in records}
        with self._lock:
            self._records = fresh
        logger.debug(f"Record store replaced [records={len(fresh)}]")

    def apply(self, event: WatchEvent) -> None:
        """Apply one watch event to the store."""
        record = event.record
        with self._lock:
            if event.type == EventType.DELETED:
                self._records.pop(record.key, None)
                return

            current = self._records.get(record.key)
            if current is not None and current.resource_version > record.resource_version:
                return
            self._records[record.key] = record
