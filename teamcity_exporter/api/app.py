"""
FastAPI Application - TeamCity Exporter HTTP listener

Serves the Prometheus exposition of the fingerprint store.

Endpoints:
    GET {metrics_path}  Prometheus text format (default /metrics)
    GET /               Landing page linking the metrics path
    GET /health         Exporter status and last status check per instance

Usage:
    registry = CollectorRegistry()
    registry.register(StoreCollector(store))
    app = create_app(registry, metrics_path="/metrics", schedulers=schedulers)

    # Served by uvicorn from the CLI
    teamcity-exporter --config config.yaml
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from fastapi import FastAPI, Response
from fastapi.responses import HTMLResponse, JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

from teamcity_exporter import __version__
from teamcity_exporter.api.middleware import RequestIDMiddleware
from teamcity_exporter.collectors.instance_scheduler import InstanceScheduler
from teamcity_exporter.core.logging_config import get_logger

logger = get_logger(__name__)

LANDING_PAGE = """<html>
<head><title>TeamCity Exporter</title></head>
<body>
<h1>TeamCity Exporter</h1>
<p>Version {version}</p>
<p><a href="{metrics_path}">Metrics</a></p>
<p><a href="/health">Health</a></p>
</body>
</html>
"""


def _instance_status(scheduler: InstanceScheduler) -> dict[str, Any]:
    status = {True: "up", False: "down", None: "unknown"}[scheduler.last_status]
    return {
        "status": status,
        "url": scheduler.instance.url,
        "ticks": scheduler.tick_count,
        "skipped_ticks": scheduler.skipped_ticks,
        "running_cycles": scheduler.running_cycles,
    }


def create_app(
    registry: CollectorRegistry,
    metrics_path: str = "/metrics",
    schedulers: Sequence[InstanceScheduler] = (),
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        registry: Registry holding the StoreCollector
        metrics_path: Path serving the Prometheus exposition
        schedulers: Instance schedulers reported by /health
    """

    app = FastAPI(
        title="TeamCity Exporter",
        description="Prometheus exporter for TeamCity build statistics",
        version=__version__,
        docs_url=None,
        redoc_url=None,
    )

    app.add_middleware(RequestIDMiddleware, quiet_paths=(metrics_path, "/health"))

    @app.on_event("startup")
    async def startup_event():
        """Log the listener configuration on startup."""
        logger.info(
            "TeamCity exporter HTTP listener starting up",
            extra={"extra_fields": {"metrics_path": metrics_path, "instances": len(schedulers)}},
        )

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("TeamCity exporter HTTP listener shutting down")

    # ============================================================
    # Exposition
    # ============================================================

    # Plain def: runs in the threadpool, the store is safe to read from there
    @app.get(metrics_path, tags=["Metrics"])
    def metrics() -> Response:
        """Render every registered collector in the Prometheus text format."""
        return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)

    @app.get("/", response_class=HTMLResponse, tags=["Metrics"])
    async def landing_page():
        return LANDING_PAGE.format(version=__version__, metrics_path=metrics_path)

    # ============================================================
    # Health Check
    # ============================================================

    @app.get("/health", tags=["Health"])
    async def health_check():
        """
        Health check endpoint for monitoring.

        Returns:
            Exporter version and the last status check of every instance.
            503 when any instance failed its last status check.
        """
        instances = {scheduler.instance.name: _instance_status(scheduler) for scheduler in schedulers}

        health_status: dict[str, Any] = {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "version": __version__,
            "instances": instances,
        }

        if any(entry["status"] == "down" for entry in instances.values()):
            health_status["status"] = "degraded"

        status_code = 200 if health_status["status"] == "healthy" else 503

        return JSONResponse(content=health_status, status_code=status_code)

    return app
