"""Pydantic schemas for identity endpoints."""

from pydantic import BaseModel


class ClusterIdResponse(BaseModel):
    """Response model for the cluster id lookup."""
    cluster_id: str


class FederationIdResponse(BaseModel):
    """Response model for the federation id lookup."""
    federation_id: str
    federated: bool
