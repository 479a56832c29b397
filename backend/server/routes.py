"""
Route registration for the status API.

Responsibilities:
- Define HTTP endpoints under /api
- Pull dependencies from app.state
- Map aggregator output onto HTTP status codes
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from config import AppConfig
from observability.logger import log_event
from reporting import architecture
from reporting.aggregator import HEALTHY, StatusAggregator
from supervisor.registry import BackendRegistry
from supervisor.status import format_ts


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    @app.get("/api/")
    async def root() -> dict[str, Any]:  # pyright: ignore[reportUnusedFunction]
        aggregator: StatusAggregator = app.state.aggregator
        return {
            "status": "Backend running",
            "timestamp": format_ts(aggregator.now_ms()),
            "environment": aggregator.app_info.environment,
        }

    @app.get("/api/health")
    async def health() -> JSONResponse:  # pyright: ignore[reportUnusedFunction]
        aggregator: StatusAggregator = app.state.aggregator
        report = aggregator.get_health()
        return JSONResponse(
            status_code=200 if report["status"] == HEALTHY else 503,
            content=report,
        )

    @app.get("/api/status")
    async def status() -> JSONResponse:  # pyright: ignore[reportUnusedFunction]
        aggregator: StatusAggregator = app.state.aggregator
        try:
            report = await aggregator.get_composite_status()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "STATUS_REPORT_FAILED",
                "exception": type(exc).__name__,
                "message": str(exc),
            }, level="ERROR")
            return JSONResponse(
                status_code=500,
                content={"error": "Failed to retrieve status", "message": str(exc)},
            )

        log_event({"event_type": "STATUS_REQUESTED"}, level="DEBUG")
        return JSONResponse(content=report)

    @app.get("/api/architecture")
    async def get_architecture() -> JSONResponse:  # pyright: ignore[reportUnusedFunction]
        config: AppConfig = app.state.config
        registry: BackendRegistry = app.state.registry
        try:
            report = architecture.describe(config, registry.snapshots())
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "ARCHITECTURE_REPORT_FAILED",
                "exception": type(exc).__name__,
                "message": str(exc),
            }, level="ERROR")
            return JSONResponse(
                status_code=500,
                content={"error": "Failed to retrieve architecture", "message": str(exc)},
            )

        log_event({"event_type": "ARCHITECTURE_REQUESTED"}, level="DEBUG")
        return JSONResponse(content=report)
