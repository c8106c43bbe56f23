"""Shared definitions used by the cluster identity service."""
