"""
FastAPI application for Usergate.

Registration, login, groups, capability grants and API tokens over HTTP.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from usergate import __version__
from usergate.api import groups, health, logs, permissions, settings as settings_routes, tokens, users
from usergate.api.state import build_state
from usergate.config import Settings, get_settings
from usergate.core.errors import UsergateError
from usergate.core.logs import configure_logging
from usergate.core.registry import build_registry
from usergate.integrations.sentry import init_sentry
from usergate.storage.manager import DatabaseManager
from usergate.storage.schema import initialize_schema

logger = logging.getLogger(__name__)


# =============================================================================
# Lifespan
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and cleanup app resources."""
    settings: Settings = app.state.settings
    configure_logging(settings)
    init_sentry(settings)

    manager = DatabaseManager()
    db = await manager.acquire(settings.database_config())
    
    registry = build_registry(settings.permissions_file)
    await initialize_schema(db, settings=settings, registry=registry)
    
    state = build_state(settings, db, registry)
    app.state.manager = manager
    app.state.services = state
    app.state.guard = state.guard
    
    background = [
        asyncio.create_task(state.rate_limiter.run_pruning()),
        asyncio.create_task(state.sessions.run_sweeper(settings.session_sweep_interval_seconds)),
    ]
    
    logger.info("%s starting in %s mode (%s database)", settings.app_name, settings.environment, db.type)
    
    try:
        yield
    finally:
        logger.info("%s shutting down", settings.app_name)
        for task in background:
            task.cancel()
        await asyncio.gather(*background, return_exceptions=True)
        await state.tokens.drain()
        await manager.shutdown()


# =============================================================================
# Error handlers
# =============================================================================


async def handle_usergate_error(request: Request, exc: UsergateError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s %s", type(exc).__name__, request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        {"success": False, "message": exc.message},
        status_code=exc.status_code,
    )


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        {"success": False, "message": "Invalid request", "errors": jsonable_encoder(exc.errors())},
        status_code=400,
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        {"success": False, "message": "Internal server error"},
        status_code=500,
    )


# =============================================================================
# App Setup
# =============================================================================


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    
    app = FastAPI(
        title=f"{settings.app_name} API",
        description="User management with group-based capability permissions",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    
    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    
    app.add_exception_handler(UsergateError, handle_usergate_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
    
    # Include routers
    app.include_router(users.router)
    app.include_router(groups.router)
    app.include_router(permissions.router)
    app.include_router(tokens.router)
    app.include_router(settings_routes.router)
    app.include_router(logs.router)
    app.include_router(health.router)
    
    return app
