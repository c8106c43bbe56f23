"""Shared-storage backends providing list, watch and create-if-absent."""

from clusterid.storage.memory_backend import MemoryRecordStorage
from clusterid.storage.sqlite_backend import SqliteRecordStorage

__all__ = ["MemoryRecordStorage", "SqliteRecordStorage"]
