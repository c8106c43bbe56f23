"""Project-wide constants (well-known record location, data keys, token size)."""

# Record holding the cluster identity
UID_RECORD_NAME: str = "ingress-uid"
# Namespace which contains the above record
UID_NAMESPACE: str = "kube-system"

# Data keys for the specific ids
UID_CLUSTER: str = "cluster"
UID_PROVIDER: str = "provider"

UID_LENGTH_BYTES: int = 8

NAME_FIELD: str = "metadata.name"
NAMESPACE_FIELD: str = "metadata.namespace"
