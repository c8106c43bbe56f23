"""Internal routes serving the cluster identity."""

from typing import Optional

from fastapi import APIRouter, Depends

from common.logging_config import get_logger
from clusterid.cluster_identity import ClusterIdentity
from clusterid.exceptions import NotInitializedError
from clusterid.schemas.common import ErrorResponse
from clusterid.schemas.identity import ClusterIdResponse, FederationIdResponse

logger = get_logger(__name__)

router = APIRouter(
    prefix="/internal",
    tags=["Identity"],
    responses={
        502: {"model": ErrorResponse},
        503: {"model": ErrorResponse}
    }
)

_cluster_identity: Optional[ClusterIdentity] = None


def set_cluster_identity(identity: Optional[ClusterIdentity]):
    """Set the global cluster identity instance"""
    global _cluster_identity
    _cluster_identity = identity


def get_cluster_identity() -> ClusterIdentity:
    """Dependency to get the cluster identity"""
    if _cluster_identity is None:
        raise NotInitializedError("Cluster identity has not been configured")
    return _cluster_identity


@router.get("/cluster-id", response_model=ClusterIdResponse)
def get_cluster_id(identity: ClusterIdentity = Depends(get_cluster_identity)):
    """
    Return the id unique to this cluster.

    Creates the identity record on first use if no process has yet.
    """
    return ClusterIdResponse(cluster_id=identity.get_id())


@router.get("/federation-id", response_model=FederationIdResponse)
def get_federation_id(identity: ClusterIdentity = Depends(get_cluster_identity)):
    """
    Return the local cluster id if this cluster belongs to a federation.
    """
    federation_id, federated = identity.get_federation_id()
    logger.debug(f"Federation lookup [federated={federated}]")
    return FederationIdResponse(federation_id=federation_id, federated=federated)
