"""
Habit Tracker - FastAPI Application
Builds the request pipeline and runs the startup sequence.

Run with:
    python -m habit_tracker
or, skipping the startup database check:
    uvicorn habit_tracker.app:create_app --factory --port 5000
"""

import asyncio
import json
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from habit_tracker.api.body import body_parse_middleware
from habit_tracker.api.routes import register_routes
from habit_tracker.config import Settings, load_environment, load_settings
from habit_tracker.core.logging import configure_logging
from habit_tracker.database import dispose_engine, init_db, init_engine, ping_database
from habit_tracker.realtime import RealtimeGateway, WS_PATH, initialize_gateway

logger = logging.getLogger(__name__)

ROUTE_NOT_FOUND = {"error": "Route not found"}
INTERNAL_ERROR = {"error": "Internal server error"}

# Framework-generated details for unmatched paths and methods.
_UNMATCHED_DETAILS = {"Not Found", "Method Not Allowed"}


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

async def request_logging_middleware(request: Request, call_next):
    """Emit one structured ``request_log`` line per HTTP request."""
    started = time.perf_counter()
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
    finally:
        logger.info(
            "request_log %s",
            json.dumps({
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status": status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            }),
        )
    response.headers["X-Request-ID"] = request_id
    return response


async def origin_guard_middleware(request: Request, call_next):
    """Reject cross-origin requests from anywhere but the frontend origin.

    CORSMiddleware only withholds response headers for simple requests, so
    the handler would still run; this stops them before route dispatch.
    """
    origin = request.headers.get("origin")
    if origin is not None:
        allowed = request.app.state.settings.cors_origins
        if origin.rstrip("/") not in allowed:
            logger.warning("Rejected %s %s from origin %s", request.method, request.url.path, origin)
            return JSONResponse(status_code=403, content={"error": "Origin not allowed"})
    return await call_next(request)


# ---------------------------------------------------------------------------
# Fallback handlers
# ---------------------------------------------------------------------------

async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code in (404, 405) and isinstance(exc.detail, str) and exc.detail in _UNMATCHED_DETAILS:
        return JSONResponse(status_code=404, content=ROUTE_NOT_FOUND)
    content = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    """Log the failure for operators; clients only ever see a generic message."""
    logger.error(
        "Server error on %s %s", request.method, request.url.path,
        exc_info=(type(exc), exc, exc.__traceback__),
    )
    return JSONResponse(status_code=500, content=INTERNAL_ERROR)


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(
    settings: Optional[Settings] = None,
    gateway: Optional[RealtimeGateway] = None,
) -> FastAPI:
    """Assemble the request pipeline for ``settings``.

    Stage order: cross-origin check, body parsing, cookie parsing (lazy,
    per request), static files, route groups, not-found fallback, error
    fallback.
    """
    settings = settings or load_settings()
    gateway = gateway or RealtimeGateway()

    init_engine(settings.database_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Runs once on startup, yields for the lifetime of the app, then cleans up."""
        await asyncio.to_thread(init_db)
        logger.info("Starting server on port %s", settings.port)
        logger.info("WebSocket server ready at %s", WS_PATH)
        logger.info("Environment: %s", settings.environment)

        yield

        await gateway.close_all()
        dispose_engine()
        logger.info("Server stopped")

    app = FastAPI(
        title="Habit Tracker",
        version="1.0.0",
        description="Habit tracking API with friends, focus music and live updates",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.gateway = gateway

    # Last added runs first: logging -> CORS -> origin guard -> body parse -> routes.
    app.middleware("http")(body_parse_middleware)
    app.middleware("http")(origin_guard_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(request_logging_middleware)

    for path in (settings.upload_dir, settings.music_dir):
        os.makedirs(path, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=settings.upload_dir), name="uploads")
    app.mount("/music", StaticFiles(directory=settings.music_dir), name="music")

    register_routes(app)
    initialize_gateway(app, gateway, settings)

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    return app


# ---------------------------------------------------------------------------
# Startup sequence
# ---------------------------------------------------------------------------

def check_database() -> bool:
    """One liveness query against the data store; no retry."""
    try:
        now = ping_database()
    except Exception:
        logger.exception("Database connection failed")
        return False
    logger.info("Database connected at: %s", now)
    return True


def serve(settings: Optional[Settings] = None) -> None:
    """Build the app, verify the database, then bind the listener.

    Exits with status 1 without binding when the database is unreachable.
    """
    if settings is None:
        load_environment()
        settings = load_settings()
    configure_logging(settings.log_level)

    app = create_app(settings)
    if not check_database():
        raise SystemExit(1)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    serve()
