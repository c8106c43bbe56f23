"""
Cluster identity service.

Keeps a single cluster-wide identity token in a shared, watchable record and
serves it from a watch-driven local cache, creating the record on first use.
"""

from clusterid.cluster_identity import ClusterIdentity

__all__ = ["ClusterIdentity"]
