# clinidoc/main.py

import logging
import uuid

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from clinidoc.config import get_settings
from clinidoc.logging_config import clear_request_context, configure_logging, set_request_context
from clinidoc.routers import admin_retention_router, documents_router, patients_router
from clinidoc.services.retention.errors import (
    AlreadyArchivedError,
    DuplicateModuleError,
    InconsistentStateError,
    LastActiveVersionError,
    LifecycleError,
    NotFoundError,
    RetentionExpiredError,
    RetentionNotExpiredError,
)

settings = get_settings()
configure_logging(json_format=settings.LOG_JSON, level=settings.LOG_LEVEL)

logger = logging.getLogger(__name__)

app = FastAPI(title="Clinical Document Portal API")

if settings.cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(admin_retention_router)
app.include_router(documents_router)
app.include_router(patients_router)


# ---------------------------------------------------------------------------
# Request context
# ---------------------------------------------------------------------------

@app.middleware("http")
async def request_context(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex
    set_request_context(request_id, request.headers.get("X-User-Id"))
    try:
        response = await call_next(request)
    finally:
        clear_request_context()
    response.headers["X-Request-Id"] = request_id
    return response


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

ERROR_STATUS = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    AlreadyArchivedError: status.HTTP_409_CONFLICT,
    DuplicateModuleError: status.HTTP_409_CONFLICT,
    InconsistentStateError: status.HTTP_409_CONFLICT,
    RetentionExpiredError: status.HTTP_409_CONFLICT,
    RetentionNotExpiredError: status.HTTP_409_CONFLICT,
    LastActiveVersionError: status.HTTP_409_CONFLICT,
}


@app.exception_handler(LifecycleError)
async def lifecycle_error_handler(request: Request, exc: LifecycleError) -> JSONResponse:
    status_code = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    logger.info(
        f"{request.method} {request.url.path} rejected: {exc.message}",
        extra={"event": exc.code, "status_code": status_code, "path": request.url.path},
    )
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "code": exc.code})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": str(exc), "code": "validation_error"},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages = [
        f"{'.'.join(str(p) for p in err['loc'] if p != 'body')}: {err['msg']}"
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "; ".join(messages), "code": "validation_error"},
    )


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@app.get("/health")
def health() -> dict:
    return {"status": "ok", "service": "clinidoc-api", "environment": settings.ENVIRONMENT}
