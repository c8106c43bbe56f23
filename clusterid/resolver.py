"""
Identity resolution on top of the local cache.

Implements GetId / GetFederationId and the get-or-create path that
provisions the identity record the first time any process asks for it.
"""

import logging
import time
from typing import Callable, Tuple

from common.constants import UID_CLUSTER, UID_PROVIDER
from clusterid.config import CONVERGE_ATTEMPTS, CONVERGE_INITIAL_BACKOFF, CONVERGE_MAX_BACKOFF
from clusterid.exceptions import (
    AlreadyExistsError,
    ClusterIdError,
    IdentityNotFoundError,
    NotInitializedError,
    StorageError
)
from clusterid.identity_cache import IdentityCache
from clusterid.local_store import RecordStore
from clusterid.token import new_token
from clusterid.watch_scope import RecordCreator, SingleKeyWatchScope

logger = logging.getLogger(__name__)


class IdentityResolver:
    """
    Serves the cluster and federation ids, creating the record if absent.

    Exactly one process wins the create; every other caller converges onto
    the winner's value through the watch-populated RecordStore.
    """

    def __init__(
        self,
        cache: IdentityCache,
        store: RecordStore,
        scope: SingleKeyWatchScope,
        creator: RecordCreator,
        converge_attempts: int = CONVERGE_ATTEMPTS,
        converge_initial_backoff: float = CONVERGE_INITIAL_BACKOFF,
        converge_max_backoff: float = CONVERGE_MAX_BACKOFF,
        token_factory: Callable[[], str] = new_token,
        sleep: Callable[[float], None] = time.sleep
    ):
        self._cache = cache
        self._store = store
        self._scope = scope
        self._creator = creator
        self._converge_attempts = converge_attempts
        self._converge_initial_backoff = converge_initial_backoff
        self._converge_max_backoff = converge_max_backoff
        self._token_factory = token_factory
        self._sleep = sleep

    def get_id(self) -> str:
        """
        Return the id unique to this cluster.

        If federated, the provider id supersedes the cluster id.

        Raises:
            NotInitializedError: If the watch was never started
            IdentityNotFoundError: If no cluster id could be established
            EntropyUnavailableError: If a new token could not be generated
            StorageError: If creating the record failed
        """
        self._get_or_initialize()

        cluster_id, provider_id = self._cache.snapshot()
        if not cluster_id:
            raise IdentityNotFoundError(f"Could not retrieve cluster id from {self._scope.key}")

        if provider_id and provider_id != cluster_id:
            return provider_id

        return cluster_id

    def get_federation_id(self) -> Tuple[str, bool]:
        """
        Return the local cluster id if this cluster is part of a federation.

        Returns:
            (cluster_id, True) when federated, ("", False) otherwise
        """
        self._get_or_initialize()

        cluster_id, provider_id = self._cache.snapshot()
        if not cluster_id:
            raise IdentityNotFoundError(f"Could not retrieve cluster id from {self._scope.key}")

        if not provider_id or provider_id == cluster_id:
            return "", False

        return cluster_id, True

    def _get_or_initialize(self) -> None:
        """
        Make sure the cache holds a cluster id, creating the record if needed.

        Covers callers that arrive before the watch has delivered the record.
        """
        if not self._cache.is_ready():
            raise NotInitializedError(
                "Cluster identity is not ready. Call start_watching() before using."
            )

        if self._cached_cluster_id():
            return

        if self._load_from_store():
            return

        new_id = self._token_factory()
        logger.debug(f"Creating cluster id [key={self._scope.key}, id={new_id}]")

        try:
            record = self._creator.create_if_absent(
                self._scope.namespace,
                self._scope.name,
                {UID_CLUSTER: new_id, UID_PROVIDER: new_id}
            )
        except AlreadyExistsError:
            logger.info(f"Record {self._scope.key} was created concurrently, waiting for the winner's id")
            self._await_winner()
            return
        except ClusterIdError:
            logger.error(f"Failed to create {self._scope.key} to store cluster id")
            raise
        except Exception as e:
            logger.error(f"Failed to create {self._scope.key} to store cluster id: {e}")
            raise StorageError(f"create {self._scope.key} failed: {e}") from e

        logger.info(f"Created record {self._scope.key} containing cluster id: {new_id}")
        self._cache.set_from_record(record.data)

    def _await_winner(self) -> None:
        """
        Poll until the concurrently created record becomes visible locally.

        Returns without error when attempts run out; the caller's empty-cache
        check reports the failure.
        """
        backoff = self._converge_initial_backoff
        for attempt in range(self._converge_attempts):
            self._sleep(backoff)
            if self._cached_cluster_id() or self._load_from_store():
                logger.debug(f"Converged on existing record after {attempt + 1} poll(s)")
                return
            backoff = min(backoff * 2, self._converge_max_backoff)

        logger.warning(
            f"Cluster id for {self._scope.key} not visible after {self._converge_attempts} poll(s)"
        )

    def _cached_cluster_id(self) -> bool:
        cluster_id, _ = self._cache.snapshot()
        return bool(cluster_id)

    def _load_from_store(self) -> bool:
        """
        Adopt the record from the local store if the watch has delivered it.

        A record without a cluster field still counts as found; the caller's
        empty-cache check reports it rather than racing a create that cannot
        succeed.

        Returns:
            True if the record exists locally
        """
        record = self._store.get_by_key(self._scope.key)
        if record is None:
            return False

        self._cache.set_from_record(record.data)
        return True
