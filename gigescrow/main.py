"""
Gig Escrow Deliverable Service

FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gigescrow.api.middleware.request_id import RequestIdMiddleware
from gigescrow.api.v1 import router as api_v1_router
from gigescrow.config import get_settings
from gigescrow.kernel.ledger.errors import LedgerQueryError, ObjectNotFoundError
from gigescrow.logging_config import configure_logging, get_logger
from gigescrow.orchestration.errors import (
    ConfirmationAmbiguousError,
    ConfirmedUnverifiedError,
    EncryptionStageError,
    StorageStageError,
    SubmissionError,
    SubmissionInProgressError,
    SubmissionValidationError,
    TransactionRejectedError,
)
from gigescrow.schemas.common import HealthResponse
from gigescrow.services import close_services, init_services

settings = get_settings()
logger = get_logger(__name__)

_SUBMISSION_STATUS = {
    SubmissionValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    SubmissionInProgressError: status.HTTP_409_CONFLICT,
    EncryptionStageError: status.HTTP_502_BAD_GATEWAY,
    StorageStageError: status.HTTP_502_BAD_GATEWAY,
    TransactionRejectedError: status.HTTP_502_BAD_GATEWAY,
    ConfirmationAmbiguousError: status.HTTP_504_GATEWAY_TIMEOUT,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan handler.

    Runs startup and shutdown tasks.
    """
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    logger.info("Starting %s v%s", settings.project_name, settings.version)
    await init_services()

    yield

    # Detached submission pipelines are drained before clients close
    logger.info("Shutting down...")
    await close_services()
    logger.info("Service clients closed")


app = FastAPI(
    title=settings.project_name,
    description="""
    Gig Escrow Deliverable Service

    Worker-side operations of a ledger-backed freelance escrow.

    ## Features

    - **Jobs**: ledger snapshots and the actions legal for the calling actor
    - **Lifecycle**: start an assigned job, claim a pending completion
    - **Deliverables**: encrypt for the client, store, record on the milestone
    - **Retrieval**: clients download approved deliverables

    ## Invariants

    1. The ledger is authoritative: every action re-fetches the job after confirmation
    2. A milestone only references a blob that is stored and access-controlled
    3. Submissions that have started encrypting are never aborted mid-flight
    """,
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# Last added = outermost
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(request: Request, status_code: int, content: dict) -> JSONResponse:
    headers = {}
    req_id = getattr(request.state, "request_id", None)
    if req_id:
        headers["X-Request-ID"] = req_id
        content["request_id"] = req_id
    return JSONResponse(status_code=status_code, content=content, headers=headers)


@app.exception_handler(SubmissionError)
async def submission_exception_handler(request: Request, exc: SubmissionError):
    """Map the submission error taxonomy to HTTP statuses."""
    status_code = _SUBMISSION_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    return _error_response(request, status_code, exc.to_dict())


@app.exception_handler(ConfirmedUnverifiedError)
async def confirmed_unverified_exception_handler(request: Request, exc: ConfirmedUnverifiedError):
    """The transaction confirmed; the job could not be re-read or is in an unexpected state."""
    status_code = status.HTTP_409_CONFLICT if exc.state_mismatch else status.HTTP_502_BAD_GATEWAY
    return _error_response(request, status_code, exc.to_dict())


@app.exception_handler(ObjectNotFoundError)
async def not_found_exception_handler(request: Request, exc: ObjectNotFoundError):
    return _error_response(request, status.HTTP_404_NOT_FOUND, {"detail": str(exc)})


@app.exception_handler(LedgerQueryError)
async def ledger_exception_handler(request: Request, exc: LedgerQueryError):
    logger.warning("Ledger query failed: %s", exc)
    return _error_response(request, status.HTTP_502_BAD_GATEWAY, {"detail": "Ledger query failed"})


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return _error_response(request, exc.status_code, {"detail": exc.detail})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors."""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })
    return _error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        {"detail": "Validation error", "errors": errors},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception("Unhandled exception: %s", exc)
    if settings.debug:
        content = {"detail": str(exc), "type": type(exc).__name__}
    else:
        content = {"detail": "Internal server error"}
    return _error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, content)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Check application health."""
    return HealthResponse(status="ok", version=settings.version, network=settings.network)


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.project_name,
        "version": settings.version,
        "docs": "/docs" if settings.debug else "disabled",
        "api": {
            "v1": settings.api_v1_prefix,
        },
    }


app.include_router(
    api_v1_router,
    prefix=settings.api_v1_prefix,
)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "gigescrow.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
