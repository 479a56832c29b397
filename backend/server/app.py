"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Set up middleware and error handlers
- Initialize shared resources (backend registry, status aggregator)
- Connect backends on startup, disconnect them on shutdown
- Register routes
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from adapters.mongodb.supervisor import MongoSupervisor
from adapters.redis.supervisor import RedisSupervisor
from config import AppConfig
from observability import logger
from observability.logger import log_event
from reporting.aggregator import AppInfo, StatusAggregator
from supervisor.registry import BackendRegistry

from server.routes import register_routes


def build_registry(config: AppConfig) -> BackendRegistry:
    """One supervisor per backend; MongoDB is mandatory, Redis optional."""
    return BackendRegistry([
        MongoSupervisor(retry=config.mongo.retry),
        RedisSupervisor(retry=config.redis.retry if config.redis else None),
    ])


def create_app(
    config: AppConfig | None = None,
    registry: BackendRegistry | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with different configurations and fake backends
    - Environment-specific setup
    - ASGI server compatibility
    """
    config = config or AppConfig.load_from_env()
    registry = registry or build_registry(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.configure(level=config.log_level, json_lines=config.enable_json_logs)
        log_event({
            "event_type": "SERVER_STARTING",
            "environment": config.env,
            "port": config.port,
            "backends": list(registry.names),
        })

        # Never raises; a backend that is down keeps retrying in the background
        await registry.connect_all({
            "mongodb": config.mongo,
            "redis": config.redis,
        })
        health = app.state.aggregator.get_health()
        log_event({
            "event_type": "SERVER_READY",
            "health": health["status"],
            "checks": health["checks"],
        }, level="INFO" if health["status"] == "healthy" else "WARNING")

        yield

        log_event({"event_type": "SERVER_SHUTTING_DOWN"})
        clean = await registry.disconnect_all(config.shutdown_timeout_ms / 1000.0)
        log_event({"event_type": "SERVER_STOPPED", "clean": clean})

    app = FastAPI(title=config.app_name, version=config.app_version, lifespan=lifespan)

    app.state.config = config
    app.state.registry = registry
    app.state.aggregator = StatusAggregator(
        registry,
        AppInfo(
            name=config.app_name,
            version=config.app_version,
            environment=config.env,
        ),
    )

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in config.cors_origin.split(",")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):  # pyright: ignore[reportUnusedFunction]
        log_event({
            "event_type": "HTTP_REQUEST",
            "method": request.method,
            "path": request.url.path,
            "client": request.client.host if request.client else None,
        })
        return await call_next(request)

    register_error_handlers(app, production=config.is_production)

    # Routes
    register_routes(app)

    return app


def register_error_handlers(app: FastAPI, *, production: bool) -> None:
    """JSON bodies for 404 and unhandled errors."""

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:  # pyright: ignore[reportUnusedFunction]
        if exc.status_code == 404:
            return JSONResponse(
                status_code=404,
                content={
                    "error": "Not Found",
                    "message": "The requested endpoint does not exist",
                    "path": request.url.path,
                },
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail, "path": request.url.path},
        )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:  # pyright: ignore[reportUnusedFunction]
        log_event({
            "event_type": "HTTP_UNHANDLED_ERROR",
            "path": request.url.path,
            "exception": type(exc).__name__,
            "message": str(exc),
        }, level="ERROR")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal Server Error",
                "message": "An error occurred" if production else str(exc),
            },
        )
