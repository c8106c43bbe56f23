"""Custom exception classes for the cluster identity service."""


class ClusterIdError(Exception):
    """
    Base exception class for all cluster identity errors.
    """
    pass


class NotInitializedError(ClusterIdError):
    """
    Raised when the identity is read before the watch has been started.
    """
    pass


class IdentityNotFoundError(ClusterIdError):
    """
    Raised when no cluster identity could be produced after initialization.
    """
    pass


class AlreadyExistsError(ClusterIdError):
    """
    Raised by storage when creating a record that another writer already created.
    """
    pass


class EntropyUnavailableError(ClusterIdError):
    """
    Raised when the random source cannot supply bytes for a new token.
    """
    pass


class StorageError(ClusterIdError):
    """
    Raised when the shared storage fails for any reason other than a lost create race.
    """
    pass
