"""Process-wide owner of the identity cache, watch pump and resolver."""

import logging
from typing import Optional, Tuple

from clusterid.config import (
    CONVERGE_ATTEMPTS,
    CONVERGE_INITIAL_BACKOFF,
    CONVERGE_MAX_BACKOFF,
    IDENTITY_NAMESPACE,
    IDENTITY_RECORD_NAME,
    SYNC_TIMEOUT,
    WATCH_MAX_BACKOFF,
    WATCH_RETRY_BACKOFF
)
from clusterid.identity_cache import IdentityCache
from clusterid.local_store import RecordStore
from clusterid.resolver import IdentityResolver
from clusterid.watch_pump import WatchPump
from clusterid.watch_scope import ListerWatcher, RecordCreator, SingleKeyWatchScope

logger = logging.getLogger(__name__)


class ClusterIdentity:
    """
    The cluster identity as seen by one process.

    Only one instance should exist per process since it mirrors a single
    shared record. Call start_watching() once before get_id().
    """

    def __init__(
        self,
        lister_watcher: ListerWatcher,
        creator: RecordCreator,
        namespace: str = IDENTITY_NAMESPACE,
        name: str = IDENTITY_RECORD_NAME,
        converge_attempts: int = CONVERGE_ATTEMPTS,
        converge_initial_backoff: float = CONVERGE_INITIAL_BACKOFF,
        converge_max_backoff: float = CONVERGE_MAX_BACKOFF,
        watch_retry_backoff: float = WATCH_RETRY_BACKOFF,
        watch_max_backoff: float = WATCH_MAX_BACKOFF
    ):
        self.scope = SingleKeyWatchScope(lister_watcher, namespace, name)
        self.cache = IdentityCache()
        self.store = RecordStore()
        self.pump = WatchPump(
            self.scope,
            self.cache,
            self.store,
            retry_backoff=watch_retry_backoff,
            max_backoff=watch_max_backoff
        )
        self.resolver = IdentityResolver(
            self.cache,
            self.store,
            self.scope,
            creator,
            converge_attempts=converge_attempts,
            converge_initial_backoff=converge_initial_backoff,
            converge_max_backoff=converge_max_backoff
        )

    def start_watching(self, wait: bool = True, timeout: Optional[float] = SYNC_TIMEOUT) -> bool:
        """
        Begin watching the identity record.

        Args:
            wait: Block until the initial list has been applied
            timeout: Maximum seconds to wait, None for no limit

        Returns:
            True if the cache is ready on return
        """
        if self.pump.is_running():
            logger.warning(f"Already watching {self.scope.key}")
            return self.cache.is_ready()

        self.pump.start()

        if not wait:
            return self.cache.is_ready()

        ready = self.cache.wait_ready(timeout)
        if not ready:
            logger.warning(f"Initial list of {self.scope.key} did not complete within {timeout}s")
        return ready

    def stop(self) -> None:
        self.pump.stop()

    def get_id(self) -> str:
        return self.resolver.get_id()

    def get_federation_id(self) -> Tuple[str, bool]:
        return self.resolver.get_federation_id()
