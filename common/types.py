"""Shared data type definitions (IdentityRecord, WatchEvent, IdentityFields)."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional

from common.constants import UID_CLUSTER, UID_PROVIDER


def make_key(namespace: str, name: str) -> str:
    """Build the "<namespace>/<name>" key used to index records."""
    return f"{namespace}/{name}"


@dataclass(frozen=True)
class IdentityRecord:
    """
    A shared-storage record as seen by this process.

    Attributes:
        namespace: Namespace the record lives in
        name: Record name, unique within its namespace
        data: Field name to string value mapping
        resource_version: Storage-assigned version, increases on every write
    """
    namespace: str
    name: str
    data: Dict[str, str] = field(default_factory=dict)
    resource_version: int = 0

    @property
    def key(self) -> str:
        return make_key(self.namespace, self.name)


class EventType(str, Enum):
    """Kinds of change delivered by a watch stream."""
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass(frozen=True)
class WatchEvent:
    """A single change notification for a record."""
    type: EventType
    record: IdentityRecord


@dataclass(frozen=True)
class IdentityFields:
    """
    The two identity fields carried by a record.

    None means the field was not present in the record. Empty strings are
    treated as not present.
    """
    cluster_id: Optional[str] = None
    provider_id: Optional[str] = None

    @classmethod
    def from_data(cls, data: Mapping[str, str]) -> 'IdentityFields':
        """Extract the identity fields from record data."""
        return cls(
            cluster_id=data.get(UID_CLUSTER) or None,
            provider_id=data.get(UID_PROVIDER) or None
        )

    def is_empty(self) -> bool:
        return self.cluster_id is None and self.provider_id is None
