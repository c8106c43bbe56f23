"""
Single-record narrowing of a namespace-scoped list/watch capability.

Storage backends list and watch every record in a namespace, optionally
filtered by a field selector. SingleKeyWatchScope pins that selector to one
record name so everything downstream only ever sees the identity record.
"""

from typing import Dict, Iterator, List, Protocol

from common.constants import NAME_FIELD, NAMESPACE_FIELD
from common.types import IdentityRecord, WatchEvent, make_key


class WatchStream(Protocol):
    """Blocking iterator of watch events that can be stopped from another thread."""

    def __iter__(self) -> Iterator[WatchEvent]:
        ...

    def stop(self) -> None:
        ...


class ListerWatcher(Protocol):
    """Generic namespace-scoped list/watch capability."""

    def list(self, namespace: str, field_selector: str = "") -> List[IdentityRecord]:
        ...

    def watch(self, namespace: str, field_selector: str = "") -> WatchStream:
        ...


class RecordCreator(Protocol):
    """Shared-storage client able to create a record only if it is absent."""

    def create_if_absent(self, namespace: str, name: str, data: Dict[str, str]) -> IdentityRecord:
        ...


def parse_field_selector(selector: str) -> Dict[str, str]:
    """
    Parse a field selector of the form "key=value[,key=value]".

    Args:
        selector: Selector string, empty for "everything"

    Returns:
        Mapping of field path to required value

    Raises:
        ValueError: If a term is malformed or names an unsupported field
    """
    requirements: Dict[str, str] = {}
    if not selector:
        return requirements

    for term in selector.split(","):
        term = term.strip()
        if not term:
            continue
        field_path, sep, value = term.partition("=")
        if not sep or not field_path:
            raise ValueError(f"Invalid field selector term: {term!r}")
        field_path = field_path.strip()
        if field_path not in (NAME_FIELD, NAMESPACE_FIELD):
            raise ValueError(f"Unsupported field selector: {field_path!r}")
        requirements[field_path] = value.strip()

    return requirements


def matches_field_selector(selector: str, record: IdentityRecord) -> bool:
    """Return True if the record satisfies every term of the selector."""
    fields = {NAME_FIELD: record.name, NAMESPACE_FIELD: record.namespace}
    return all(
        fields[field_path] == value
        for field_path, value in parse_field_selector(selector).items()
    )


class SingleKeyWatchScope:
    """
    Restricts a ListerWatcher to exactly one named record.

    Every list and watch call is delegated with "metadata.name=<name>" as
    the field selector.
    """

    def __init__(self, lister_watcher: ListerWatcher, namespace: str, name: str):
        self._lister_watcher = lister_watcher
        self.namespace = namespace
        self.name = name

    @property
    def key(self) -> str:
        return make_key(self.namespace, self.name)

    @property
    def field_selector(self) -> str:
        return f"{NAME_FIELD}={self.name}"

    def list(self) -> List[IdentityRecord]:
        return self._lister_watcher.list(self.namespace, field_selector=self.field_selector)

    def watch(self) -> WatchStream:
        return self._lister_watcher.watch(self.namespace, field_selector=self.field_selector)
