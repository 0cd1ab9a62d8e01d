"""Main FastAPI application entry point."""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from integration_board.database import engine, Base
from integration_board.api.routes import audit_logger, router
from integration_board.services.lifecycle import (
    PermissionDenied,
    PersistenceError,
    RecordNotFound,
    ServiceNotFound,
    ValidationError,
)
# Import models to register them with SQLAlchemy Base
from integration_board.models.domain import Service, ServiceRecord, UserRoleAssignment
from integration_board.models.audit import RecordAuditLog

log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create database tables
    Base.metadata.create_all(bind=engine)
    audit_logger.start()
    yield
    audit_logger.stop()


app = FastAPI(
    title="Integration Board",
    description="Tracks client integrations per service through their status lifecycle, with audit trail and metrics.",
    version="0.1.0",
    lifespan=lifespan,
)

# Comma-separated list, e.g. "http://localhost:3000,https://board.example.com"
cors_origins_env = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173")
cors_origins = [origin.strip() for origin in cors_origins_env.split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router, prefix="/api", tags=["Integrations"])


def _error_payload(*, code: str, message: str, details: object = None) -> dict:
    payload: dict = {"error": {"code": code, "message": message}}
    if details is not None:
        payload["error"]["details"] = details
    return payload


@app.exception_handler(ValidationError)
async def record_validation_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=422,
        content=_error_payload(
            code="RECORD_INVALID",
            message=exc.message,
            details={
                "missing_fields": [{"name": d.name, "label": d.label} for d in exc.violations],
                "status_blocked": exc.status_blocked,
            },
        ),
    )


@app.exception_handler(PermissionDenied)
async def permission_denied_handler(request: Request, exc: PermissionDenied):
    return JSONResponse(status_code=403, content=_error_payload(code="FORBIDDEN", message=exc.message))


@app.exception_handler(RecordNotFound)
@app.exception_handler(ServiceNotFound)
async def not_found_handler(request: Request, exc: LookupError):
    return JSONResponse(status_code=404, content=_error_payload(code="NOT_FOUND", message=str(exc)))


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    if exc.duplicate:
        return JSONResponse(status_code=409, content=_error_payload(code="DUPLICATE", message=exc.message))
    return JSONResponse(status_code=503, content=_error_payload(code="STORE_UNAVAILABLE", message=exc.message))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    code = f"HTTP_{exc.status_code}"
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_payload(code=code, message=message),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content=_error_payload(code="VALIDATION_ERROR", message="Invalid request", details=jsonable_encoder(exc.errors())),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=True)
    return JSONResponse(
        status_code=500,
        content=_error_payload(code="INTERNAL_ERROR", message="Internal server error"),
    )


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy", "service": "Integration Board"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
