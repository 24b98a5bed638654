# backend/wandernest/main.py

import logging
import os
import time

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as SA_TimeoutError

from . import models  # noqa: F401  registers tables on Base.metadata
from .api import (
    api_admin,
    api_review,
    api_student_requests,
    api_students,
    api_tourist_request,
)
from .core.config import FRONTEND_ORIGINS, settings
from .core.observability import setup_logging
from .database import Base, engine, get_db_session
from .utils.status_logger import register_status_listeners

setup_logging()
logger = logging.getLogger(__name__)

_BOOT_TS = time.time()

# Create tables for local/dev runs; deployed databases are managed by Alembic.
Base.metadata.create_all(bind=engine)
register_status_listeners()

app = FastAPI(title="WanderNest API", default_response_class=ORJSONResponse)

app.add_middleware(
    CORSMiddleware,
    allow_origins=FRONTEND_ORIGINS,
    allow_credentials="*" not in FRONTEND_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report body/query validation failures as a field → message map."""
    errors = exc.errors()
    logger.warning("Validation error at %s: %s", request.url.path, errors)
    field_errors: dict[str, str] = {}
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        field_errors[".".join(loc) or "body"] = err.get("msg", "invalid")
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": {"message": "Invalid request.", "field_errors": field_errors}},
    )


@app.exception_handler(SA_TimeoutError)
@app.exception_handler(OperationalError)
async def database_unavailable_handler(request: Request, exc: Exception):
    """Database unreachable or pool exhausted: tell clients to retry later."""
    logger.error("Database unavailable at %s: %s", request.url.path, exc)
    return ORJSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Database busy, please retry"},
        headers={"Retry-After": "2"},
    )


@app.get("/healthz", tags=["health"])
def healthz():
    """Readiness probe: one round trip to the database."""
    started = time.perf_counter()
    with get_db_session() as db:
        db.execute(text("SELECT 1"))
    return {
        "status": "ok",
        "db_ping_ms": round((time.perf_counter() - started) * 1000.0, 1),
        "uptime_s": round(time.time() - _BOOT_TS, 1),
        "pid": os.getpid(),
    }


api_prefix = settings.API_V1_STR  # usually something like "/api/v1"

app.include_router(api_tourist_request.router, prefix=api_prefix)
app.include_router(api_student_requests.router, prefix=api_prefix)
app.include_router(api_students.router, prefix=api_prefix)
app.include_router(api_review.router, prefix=api_prefix)
app.include_router(api_admin.router, prefix=api_prefix)
