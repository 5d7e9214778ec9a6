"""FastAPI entrypoint for the order fulfillment and settlement service."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from orderflow.api.v1.api import api_router
from orderflow.core.config import settings
from orderflow.core.errors import (
    ConflictError,
    DependencyError,
    NotFoundError,
    OrderflowError,
    PermissionDeniedError,
    ValidationError,
    WebhookAuthError,
)
from orderflow.db import session as db_session
from orderflow.db.base import Base
from orderflow.services.collaborators import registry
from orderflow.services.reconcile_worker import ReconcilePoller

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name)
app.include_router(api_router, prefix="/api/v1")

# Most specific class wins; subclasses inherit their base's status.
ERROR_STATUS_CODES: dict[type, int] = {
    ValidationError: 400,
    WebhookAuthError: 401,
    PermissionDeniedError: 403,
    NotFoundError: 404,
    ConflictError: 409,
    DependencyError: 502,
}

poller = ReconcilePoller(lambda: db_session.SessionLocal())


def status_code_for(exc: OrderflowError) -> int:
    for klass in type(exc).__mro__:
        if klass in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[klass]
    return 500


@app.exception_handler(OrderflowError)
async def orderflow_error_handler(request: Request, exc: OrderflowError) -> JSONResponse:
    """Map OrderflowError subclasses to appropriate HTTP responses."""
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error("[API] %s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_type": type(exc).__name__},
    )


@app.on_event("startup")
def startup() -> None:
    logging.basicConfig(level=settings.log_level.upper())
    Base.metadata.create_all(bind=db_session.engine)
    if settings.reconcile_worker_enabled:
        poller.start()
    else:
        logger.info("[RECONCILE] Background poller disabled")


@app.on_event("shutdown")
def shutdown() -> None:
    poller.stop()
    registry.close()


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok", "env": settings.app_env}
