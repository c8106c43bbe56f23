"""Configuration settings for the cluster identity service."""

import os
from common.constants import UID_NAMESPACE, UID_RECORD_NAME


IDENTITY_NAMESPACE = os.environ.get("CLUSTERID_NAMESPACE", UID_NAMESPACE)

IDENTITY_RECORD_NAME = os.environ.get("CLUSTERID_RECORD_NAME", UID_RECORD_NAME)

# Polls of the local store after losing the create race
CONVERGE_ATTEMPTS = int(os.environ.get("CLUSTERID_CONVERGE_ATTEMPTS", "10"))
CONVERGE_INITIAL_BACKOFF = float(os.environ.get("CLUSTERID_CONVERGE_BACKOFF", "0.05"))
CONVERGE_MAX_BACKOFF = float(os.environ.get("CLUSTERID_CONVERGE_MAX_BACKOFF", "1.0"))

WATCH_RETRY_BACKOFF = float(os.environ.get("CLUSTERID_WATCH_RETRY_BACKOFF", "1.0"))
WATCH_MAX_BACKOFF = float(os.environ.get("CLUSTERID_WATCH_MAX_BACKOFF", "30.0"))

SYNC_TIMEOUT = float(os.environ.get("CLUSTERID_SYNC_TIMEOUT", "10.0"))

DATABASE_PATH = os.environ.get("CLUSTERID_DATABASE_PATH", "/app/data/clusterid.db")
POLL_INTERVAL = float(os.environ.get("CLUSTERID_POLL_INTERVAL", "1.0"))

SERVICE_HOST = os.environ.get("CLUSTERID_HOST", "0.0.0.0")

SERVICE_PORT = int(os.environ.get("CLUSTERID_PORT", "8000"))
