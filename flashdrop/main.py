# flashdrop/main.py

import logging
import re
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from flashdrop.core.config import Settings, get_settings
from flashdrop.core.enums import ErrorCode
from flashdrop.core.exceptions import DatabaseError, DropNotFoundError
from flashdrop.core.logging_config import configure_logging
from flashdrop.database import async_session
from flashdrop.routes import drops, health, purchases, reservations
from flashdrop.routes import websockets as websocket_router
from flashdrop.scheduler import create_scheduler, start_scheduler, stop_scheduler
from flashdrop.services.expiry_service import ExpirySweeper
from flashdrop.services.websockets.manager import ConnectionManager

logger = logging.getLogger(__name__)


def cors_origin_regex(origins: List[str]) -> str:
    """Turn origins like https://*.vercel.app into one anchored regex."""
    patterns = [re.escape(origin).replace(r"\*", ".*") for origin in origins]
    return "^(" + "|".join(patterns) + ")$" if patterns else "^$"


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = app.state.settings

    # One notifier per app, handed to routes and the sweeper
    app.state.notifier = ConnectionManager()

    sweeper = ExpirySweeper(app.state.session_factory, app.state.notifier)
    app.state.scheduler = create_scheduler(sweeper, settings)
    await start_scheduler(app.state.scheduler)

    if settings.ENVIRONMENT == "production" and any("localhost" in o for o in settings.CORS_ORIGINS):
        logger.warning("CORS_ORIGINS contains localhost in production")

    try:
        yield  # This is where the app runs
    finally:
        await stop_scheduler(app.state.scheduler)


def _error(status_code: int, error: ErrorCode, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error.value, "message": message})


def create_app(settings: Optional[Settings] = None, session_factory=None) -> FastAPI:
    """Create and configure the FastAPI application"""
    settings = settings or get_settings()

    app = FastAPI(
        title="Flashdrop",
        description="Limited drop reservations and purchases",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.session_factory = session_factory or async_session

    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=cors_origin_regex(settings.CORS_ORIGINS),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if isinstance(exc.detail, dict):
            return JSONResponse(status_code=exc.status_code, content=exc.detail, headers=exc.headers)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"{location}: {first.get('msg')}" if location else first.get("msg")
        else:
            message = "Validation failed"
        return _error(422, ErrorCode.VALIDATION_ERROR, message)

    @app.exception_handler(DropNotFoundError)
    async def drop_not_found_handler(request: Request, exc: DropNotFoundError):
        return _error(404, ErrorCode.DROP_NOT_FOUND, str(exc))

    @app.exception_handler(DatabaseError)
    async def database_error_handler(request: Request, exc: DatabaseError):
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return _error(500, ErrorCode.INTERNAL_ERROR, "An unexpected error occurred")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return _error(500, ErrorCode.INTERNAL_ERROR, "An unexpected error occurred")

    app.include_router(health.router, prefix="/api")
    app.include_router(drops.router, prefix="/api")
    app.include_router(reservations.router, prefix="/api")
    app.include_router(purchases.router, prefix="/api")
    app.include_router(websocket_router.router)

    return app


configure_logging()

app = create_app()
