"""Pydantic schemas for API responses."""

from clusterid.schemas.identity import ClusterIdResponse, FederationIdResponse
from clusterid.schemas.common import ErrorResponse
