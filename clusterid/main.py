"""Entry point for the cluster identity service."""

import time
import uuid

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from common.logging_config import setup_logging
from clusterid.cluster_identity import ClusterIdentity
from clusterid.config import DATABASE_PATH, POLL_INTERVAL, SERVICE_HOST, SERVICE_PORT
from clusterid.exceptions import (
    EntropyUnavailableError,
    IdentityNotFoundError,
    NotInitializedError,
    StorageError
)
from clusterid.routes.identity_routes import router as identity_router
from clusterid.routes.identity_routes import set_cluster_identity
from clusterid.storage.sqlite_backend import SqliteRecordStorage

logger = setup_logging('clusterid')

app = FastAPI(
    title="Cluster Identity Service",
    description="Serves the cluster-wide identity token, provisioning it on first use",
    version="1.0.0"
)

app.include_router(identity_router)

cluster_identity = None


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Middleware to log all HTTP requests and responses.
    """
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    start_time = time.time()

    logger.info(
        f"Request started: {request.method} {request.url.path} [request_id={request_id}]"
    )

    response = await call_next(request)

    duration = time.time() - start_time

    logger.info(
        f"Request completed: {request.method} {request.url.path} "
        f"status={response.status_code} duration={duration:.3f}s [request_id={request_id}]"
    )

    response.headers["X-Request-ID"] = request_id

    return response


@app.on_event("startup")
async def startup_event():
    """
    Open the record database and start watching the identity record.
    """
    global cluster_identity

    logger.info("Cluster identity service starting up...")

    storage = SqliteRecordStorage(DATABASE_PATH, poll_interval=POLL_INTERVAL)
    storage.init_database()

    cluster_identity = ClusterIdentity(storage, storage)
    set_cluster_identity(cluster_identity)

    if cluster_identity.start_watching(wait=False):
        logger.info("Identity cache ready")
    else:
        logger.info("Identity watch started, cache will be ready after the initial list")


@app.on_event("shutdown")
async def shutdown_event():
    """
    Stop the watch on shutdown.
    """
    logger.info("Cluster identity service shutting down...")

    if cluster_identity:
        cluster_identity.stop()
        logger.info("Identity watch stopped")

    set_cluster_identity(None)


def _error_response(request: Request, exc: Exception, status_code: int, code: str) -> JSONResponse:
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.warning(
        f"{code}: {exc} [request_id={request_id}] path={request.url.path}"
    )
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "code": code}
    )


@app.exception_handler(NotInitializedError)
async def not_initialized_handler(request: Request, exc: NotInitializedError):
    return _error_response(request, exc, status.HTTP_503_SERVICE_UNAVAILABLE, "NOT_INITIALIZED")


@app.exception_handler(IdentityNotFoundError)
async def identity_not_found_handler(request: Request, exc: IdentityNotFoundError):
    return _error_response(request, exc, status.HTTP_503_SERVICE_UNAVAILABLE, "IDENTITY_NOT_FOUND")


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    return _error_response(request, exc, status.HTTP_502_BAD_GATEWAY, "STORAGE_ERROR")


@app.exception_handler(EntropyUnavailableError)
async def entropy_unavailable_handler(request: Request, exc: EntropyUnavailableError):
    return _error_response(request, exc, status.HTTP_500_INTERNAL_SERVER_ERROR, "ENTROPY_UNAVAILABLE")


@app.get("/")
async def root():
    """
    Health check endpoint.
    """
    return {"status": "running", "service": "clusterid"}


def main() -> None:
    """
    Start the FastAPI server with uvicorn.
    """
    uvicorn.run(
        "clusterid.main:app",
        host=SERVICE_HOST,
        port=SERVICE_PORT
    )


if __name__ == "__main__":
    main()
