"""
SQLite-backed shared storage.

Every process pointing at the same database file shares the records. The
primary key on (namespace, name) makes create-if-absent race-safe across
processes; watches poll resource versions.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Generator, Iterator, List, Optional

from common.types import EventType, IdentityRecord, WatchEvent, make_key
from clusterid.config import DATABASE_PATH, POLL_INTERVAL
from clusterid.exceptions import AlreadyExistsError, StorageError
from clusterid.watch_scope import matches_field_selector, parse_field_selector

logger = logging.getLogger(__name__)


class PollingWatchStream:
    """
    Watch stream that diffs successive list results.

    The first poll reports every matching record as ADDED.
    """

    def __init__(self, storage: 'SqliteRecordStorage', namespace: str, field_selector: str, poll_interval: float):
        self._storage = storage
        self._namespace = namespace
        self._field_selector = field_selector
        self._poll_interval = poll_interval
        self._known: Dict[str, IdentityRecord] = {}
        self._stopped = threading.Event()

    def __iter__(self) -> Iterator[WatchEvent]:
        while not self._stopped.is_set():
            current = {
                record.key: record
                for record in self._storage.list(self._namespace, self._field_selector)
            }

            for key, record in current.items():
                previous = self._known.get(key)
                if previous is None:
                    yield WatchEvent(EventType.ADDED, record)
                elif record.resource_version > previous.resource_version:
                    yield WatchEvent(EventType.MODIFIED, record)

            for key in sorted(set(self._known) - set(current)):
                yield WatchEvent(EventType.DELETED, self._known[key])

            self._known = current

            if self._stopped.wait(timeout=self._poll_interval):
                return

    def stop(self) -> None:
        self._stopped.set()


class SqliteRecordStorage:
    """Record storage in a single SQLite database file."""

    def __init__(self, database_path: str = DATABASE_PATH, poll_interval: float = POLL_INTERVAL):
        self.database_path = database_path
        self.poll_interval = poll_interval

    @contextmanager
    def get_db_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.
        """
        conn = sqlite3.connect(self.database_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def init_database(self) -> None:
        """
        Initialize database and create tables if they don't exist.
        """
        db_path = Path(self.database_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)

        with self.get_db_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS records (
                    namespace TEXT NOT NULL,
                    name TEXT NOT NULL,
                    data TEXT NOT NULL,
                    resource_version INTEGER NOT NULL,
                    PRIMARY KEY(namespace, name)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS record_versions (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT
                )
            """)

            conn.commit()

        logger.info(f"Record database initialized [path={self.database_path}]")

    def list(self, namespace: str, field_selector: str = "") -> List[IdentityRecord]:
        parse_field_selector(field_selector)
        try:
            with self.get_db_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    SELECT namespace, name, data, resource_version
                    FROM records
                    WHERE namespace = ?
                    ORDER BY name
                """, (namespace,))
                rows = cursor.fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"list {namespace} failed: {e}") from e

        records = [self._row_to_record(row) for row in rows]
        return [record for record in records if matches_field_selector(field_selector, record)]

    def watch(self, namespace: str, field_selector: str = "") -> PollingWatchStream:
        parse_field_selector(field_selector)
        return PollingWatchStream(self, namespace, field_selector, self.poll_interval)

    def create_if_absent(self, namespace: str, name: str, data: Dict[str, str]) -> IdentityRecord:
        key = make_key(namespace, name)
        try:
            with self.get_db_connection() as conn:
                cursor = conn.cursor()
                try:
                    version = self._next_version(cursor)
                    cursor.execute("""
                        INSERT INTO records (namespace, name, data, resource_version)
                        VALUES (?, ?, ?, ?)
                    """, (namespace, name, json.dumps(data), version))
                    conn.commit()
                except sqlite3.IntegrityError as e:
                    conn.rollback()
                    raise AlreadyExistsError(f"Record {key} already exists") from e
        except sqlite3.Error as e:
            raise StorageError(f"create {key} failed: {e}") from e

        logger.debug(f"Inserted record {key} [version={version}]")
        return IdentityRecord(namespace, name, dict(data), version)

    def update(self, namespace: str, name: str, data: Dict[str, str]) -> IdentityRecord:
        """
        Merge fields into an existing record.

        Raises:
            StorageError: If the record does not exist or the write fails
        """
        key = make_key(namespace, name)
        try:
            with self.get_db_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("BEGIN IMMEDIATE")
                current = self._fetch(cursor, namespace, name)
                if current is None:
                    conn.rollback()
                    raise StorageError(f"Record {key} not found")
                merged = {**current.data, **data}
                version = self._next_version(cursor)
                cursor.execute("""
                    UPDATE records SET data = ?, resource_version = ?
                    WHERE namespace = ? AND name = ?
                """, (json.dumps(merged), version, namespace, name))
                conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"update {key} failed: {e}") from e

        return IdentityRecord(namespace, name, merged, version)

    def delete(self, namespace: str, name: str) -> None:
        key = make_key(namespace, name)
        try:
            with self.get_db_connection() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    "DELETE FROM records WHERE namespace = ? AND name = ?",
                    (namespace, name)
                )
                conn.commit()
        except sqlite3.Error as e:
            raise StorageError(f"delete {key} failed: {e}") from e

    def get(self, namespace: str, name: str) -> Optional[IdentityRecord]:
        try:
            with self.get_db_connection() as conn:
                return self._fetch(conn.cursor(), namespace, name)
        except sqlite3.Error as e:
            raise StorageError(f"get {make_key(namespace, name)} failed: {e}") from e

    @staticmethod
    def _next_version(cursor: sqlite3.Cursor) -> int:
        """
        Allocate the next resource version.

        Only the latest row is kept; AUTOINCREMENT never hands out a value
        below the highest one ever issued, even once older rows are pruned.
        """
        cursor.execute("INSERT INTO record_versions DEFAULT VALUES")
        version = cursor.lastrowid
        cursor.execute("DELETE FROM record_versions WHERE seq < ?", (version,))
        return version

    def _fetch(self, cursor: sqlite3.Cursor, namespace: str, name: str) -> Optional[IdentityRecord]:
        cursor.execute("""
            SELECT namespace, name, data, resource_version
            FROM records
            WHERE namespace = ? AND name = ?
        """, (namespace, name))
        row = cursor.fetchone()
        return self._row_to_record(row) if row else None

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> IdentityRecord:
        return IdentityRecord(
            namespace=row['namespace'],
            name=row['name'],
            data=json.loads(row['data']),
            resource_version=row['resource_version']
        )
