"""Helpdesk auth API: app wiring, error envelope and operational endpoints"""

import logging
import time
import uuid
from pathlib import Path
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from helpdesk.api.v1 import admin, auth, otp
from helpdesk.config import settings
from helpdesk.core.database import SessionLocal, init_db
from helpdesk.core.exceptions import BaseAPIException
from helpdesk.core.security import utcnow
from helpdesk.schemas.response import ErrorResponse
from helpdesk.services.auth_service import auth_service


def configure_logging() -> None:
    log_file = Path(settings.get_log_file())
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.FileHandler(log_file), logging.StreamHandler()],
    )


configure_logging()
logger = logging.getLogger(__name__)

REQUEST_COUNT = Counter(
    "helpdesk_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "helpdesk_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Cache-Control": "no-store",
}

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
)

# Credentials are needed for the auth cookies
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def instrument_request(request: Request, call_next):
    """Tag the request, record metrics and stamp security headers"""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id

    start = time.time()
    response = await call_next(request)
    duration = time.time() - start

    response.headers.update(SECURITY_HEADERS)
    response.headers["X-Request-ID"] = request_id

    REQUEST_COUNT.labels(request.method, request.url.path, str(response.status_code)).inc()
    REQUEST_LATENCY.labels(request.method, request.url.path).observe(duration)
    return response


def error_response(request: Request, status_code: int, error: str, details: Optional[Any] = None) -> JSONResponse:
    """Render the shared ``{success, error, details, path, timestamp}`` envelope"""
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": error,
            "details": details,
            "path": request.url.path,
            "timestamp": utcnow().isoformat(),
        },
    )


@app.exception_handler(BaseAPIException)
async def api_exception_handler(request: Request, exc: BaseAPIException):
    # reason is for operators only; it never reaches the response
    log = logger.error if exc.status_code >= 500 else logger.info
    log(f"{request.method} {request.url.path} -> {exc.status_code} {exc.message} (reason={exc.reason or '-'})")
    return error_response(request, exc.status_code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(loc) for loc in error["loc"]), "message": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]
    logger.warning(f"Validation error on {request.url.path}: {errors}")
    return error_response(request, status.HTTP_400_BAD_REQUEST, "Validation failed", {"errors": errors})


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"Database error on {request.method} {request.url.path}")
    return error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled exception on {request.method} {request.url.path}")
    return error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


@app.on_event("startup")
async def startup_event():
    """Validate settings, prepare the schema and make sure an admin exists"""
    settings.validate_security_settings()
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION} ({settings.ENVIRONMENT})")
    if not settings.mail_configured:
        logger.warning("Mail transport not configured; outbound email is logged instead of sent")

    init_db()

    db = SessionLocal()
    try:
        auth_service.bootstrap_admin(db)
    except SQLAlchemyError as e:
        logger.error(f"Failed to create admin user: {e}")
    finally:
        db.close()


@app.get("/health")
def health_check():
    """Readiness of the database and the mail transport"""
    db_error = None
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        db_error = str(exc)
    finally:
        db.close()

    return {
        "status": "healthy" if db_error is None else "degraded",
        "version": settings.APP_VERSION,
        "timestamp": utcnow().isoformat(),
        "readiness": {
            "database": {"ok": db_error is None, "error": db_error},
            "mail": {"configured": settings.mail_configured},
        },
    }


@app.get("/metrics")
async def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/")
async def root():
    return {"name": settings.APP_NAME, "version": settings.APP_VERSION, "status": "running"}


_error_responses = {code: {"model": ErrorResponse} for code in (400, 401, 403, 404, 409, 423, 429, 500)}
app.include_router(auth.router, prefix="/api/v1/auth", tags=["Authentication"], responses=_error_responses)
app.include_router(otp.router, prefix="/api/v1", tags=["Client Portal"], responses=_error_responses)
app.include_router(admin.router, prefix="/api/v1/admin", tags=["Admin"], responses=_error_responses)
