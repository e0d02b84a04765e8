from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from online_courses.api.courses import router as courses_router
from online_courses.api.health import router as health_router
from online_courses.api.metrics_endpoint import router as metrics_router
from online_courses.api.multimedia import router as multimedia_router
from online_courses.api.notes import router as notes_router
from online_courses.api.progress import router as progress_router
from online_courses.api.quizzes import router as quizzes_router
from online_courses.api.users import router as users_router
from online_courses.core.config import SETTINGS
from online_courses.core.errors import (
    EnrollmentError,
    ExternalServiceError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from online_courses.core.logging import setup_logging
from online_courses.db.engine import lifespan_db
from online_courses.db.redis import lifespan_redis
from online_courses.middleware.metrics import MetricsMiddleware
from online_courses.middleware.request_context import RequestContextMiddleware
from online_courses.services.token_service import SigningKeyStore

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan_signing_keys(app: FastAPI) -> AsyncGenerator[None, None]:
    """Load the identity provider's JWKS and keep it fresh in the background."""
    keys: SigningKeyStore = app.state.signing_keys
    if not keys.is_remote:
        logger.warning("No JWKS_URL configured; accepting locally minted dev tokens only")
        yield
        return

    try:
        await keys.refresh()
    except ExternalServiceError:
        # The refresh loop retries; until then every token is rejected.
        logger.exception("Initial signing key fetch failed")

    refresher = asyncio.create_task(keys.refresh_forever())
    try:
        yield
    finally:
        refresher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await refresher


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Teardown runs in reverse order of startup.
    async with lifespan_db():
        async with lifespan_redis():
            async with lifespan_signing_keys(app):
                yield


app = FastAPI(
    title="online-courses",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)
app.state.signing_keys = SigningKeyStore.from_settings(SETTINGS)


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------
# Client errors carry their message; server-side failures are logged with
# the traceback and answered with a generic message.


def _error(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
    return _error(status.HTTP_400_BAD_REQUEST, str(exc))


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    logger.warning("Not found %s %s: %s", request.method, request.url.path, exc)
    return _error(status.HTTP_404_NOT_FOUND, str(exc))


@app.exception_handler(EnrollmentError)
async def enrollment_error_handler(request: Request, exc: EnrollmentError) -> JSONResponse:
    logger.error(
        "Enrollment failed %s %s: %s", request.method, request.url.path, exc, exc_info=exc
    )
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
    logger.error(
        "Database failure %s %s: %s", request.method, request.url.path, exc, exc_info=exc
    )
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


@app.exception_handler(ExternalServiceError)
async def external_service_handler(
    request: Request, exc: ExternalServiceError
) -> JSONResponse:
    logger.error(
        "Upstream %s failed %s %s: %s",
        exc.service,
        request.method,
        request.url.path,
        exc,
        exc_info=exc,
    )
    return _error(status.HTTP_502_BAD_GATEWAY, "Upstream service unavailable")


# ---------------------------------------------------------------------------
# Middleware and routers
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(SETTINGS.allowed_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Last added runs first: RequestContext → Metrics → CORS → route handler.
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(courses_router)
app.include_router(progress_router)
app.include_router(quizzes_router)
app.include_router(notes_router)
app.include_router(multimedia_router)
app.include_router(users_router)

logger.info(
    "online-courses started  env=%s log_level=%s port=%d docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
)
