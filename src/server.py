"""
HTTP API and observability server.

Proxies Holded reads for the UI (so API keys never leave this process),
triggers purchase syncs, and exposes health and Prometheus metrics.
"""

import logging
import threading
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from functools import lru_cache
from typing import Any

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from sqlalchemy import text
from sqlalchemy.orm import Session

from src.adapters.holded import HoldedError, HoldedErrorCode
from src.config.loader import cfg
from src.db.deps import get_db, get_session
from src.db.invoices import latest_sync_runs
from src.holded.service import HoldedPurchasesService

logger = logging.getLogger(__name__)

SERVICE_NAME = "Holded Purchase Sync"
VERSION = "1.0.0"

# Prometheus metrics
REGISTRY = CollectorRegistry()

sync_runs_total = Counter(
    "holded_sync_runs_total",
    "Total number of Holded purchase sync runs",
    ["company", "status"],
    registry=REGISTRY,
)

sync_duration_seconds = Histogram(
    "holded_sync_duration_seconds",
    "Holded purchase sync duration in seconds",
    ["company"],
    registry=REGISTRY,
)

invoices_written_total = Counter(
    "holded_invoices_written_total",
    "Total number of invoice rows written by Holded syncs",
    ["company", "operation"],
    registry=REGISTRY,
)

holded_errors_total = Counter(
    "holded_errors_total",
    "Holded integration errors returned by the HTTP API",
    ["code"],
    registry=REGISTRY,
)

scheduler_running = Gauge(
    "scheduler_running", "Whether the scheduler is running", registry=REGISTRY
)

database_connection_healthy = Gauge(
    "database_connection_healthy", "Database connection health status", registry=REGISTRY
)

# Error code -> HTTP status
ERROR_STATUS = {
    HoldedErrorCode.AUTH: 401,
    HoldedErrorCode.NETWORK: 502,
    HoldedErrorCode.REMOTE_API: 502,
    HoldedErrorCode.SYNC_IN_PROGRESS: 409,
    HoldedErrorCode.SYNC_WRITE: 500,
    HoldedErrorCode.CONFIGURATION: 404,
}

# Global state
_scheduler_running = False
_app_start_time = datetime.now(UTC)


def set_scheduler_running(running: bool) -> None:
    """Update scheduler running status."""
    global _scheduler_running
    _scheduler_running = running
    scheduler_running.set(1 if running else 0)


def check_database_health() -> bool:
    """Check database connectivity."""
    try:
        with get_session() as session:
            session.execute(text("SELECT 1")).fetchone()
        database_connection_healthy.set(1)
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        database_connection_healthy.set(0)
        return False


def get_health_status() -> dict[str, Any]:
    """Database and scheduler health plus uptime."""
    db_healthy = check_database_health()

    return {
        "status": "healthy" if db_healthy else "unhealthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "uptime_seconds": (datetime.now(UTC) - _app_start_time).total_seconds(),
        "checks": {
            "database": "healthy" if db_healthy else "unhealthy",
            "scheduler": "running" if _scheduler_running else "stopped",
        },
    }


# Metrics helpers for use in jobs
def record_sync_start(company: str) -> float:
    """Record sync start and return start time."""
    return datetime.now(UTC).timestamp()


def record_sync_success(company: str, start_time: float, result: dict[str, Any]) -> None:
    """Record a completed sync and the rows it wrote."""
    duration = datetime.now(UTC).timestamp() - start_time

    sync_runs_total.labels(company=company, status="success").inc()
    sync_duration_seconds.labels(company=company).observe(duration)

    inserted = result.get("inserted_count", 0)
    updated = result.get("updated_count", 0)
    if inserted > 0:
        invoices_written_total.labels(company=company, operation="insert").inc(inserted)
    if updated > 0:
        invoices_written_total.labels(company=company, operation="update").inc(updated)


def record_sync_error(company: str, start_time: float, error: str) -> None:
    """Record a failed sync."""
    duration = datetime.now(UTC).timestamp() - start_time

    sync_runs_total.labels(company=company, status="error").inc()
    sync_duration_seconds.labels(company=company).observe(duration)


@lru_cache(maxsize=1)
def get_service() -> HoldedPurchasesService:
    """Process-wide service built from configuration."""
    return HoldedPurchasesService.from_config()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan context manager."""
    logger.info("Starting Holded purchase sync API")
    yield
    logger.info("Stopping Holded purchase sync API")


app = FastAPI(
    title=SERVICE_NAME,
    description="Holded purchase proxy, sync trigger and observability endpoints",
    version=VERSION,
    lifespan=lifespan,
)


@app.exception_handler(HoldedError)
async def holded_error_handler(request: Request, exc: HoldedError) -> JSONResponse:
    holded_errors_total.labels(code=exc.code.value).inc()
    status = ERROR_STATUS.get(exc.code, 500)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=status, content=exc.to_dict())


@app.get("/")
async def root():
    """Root endpoint with service info."""
    return {
        "service": SERVICE_NAME,
        "version": VERSION,
        "timestamp": datetime.now(UTC).isoformat(),
        "endpoints": ["/healthz", "/metrics", "/companies", "/sync-runs"],
    }


@app.get("/healthz")
async def health_check():
    """Health check endpoint."""
    health = get_health_status()

    if health["status"] == "healthy":
        return health
    raise HTTPException(status_code=503, detail=health)


@app.get("/metrics", response_class=PlainTextResponse)
async def metrics():
    """Prometheus metrics endpoint."""
    check_database_health()
    return generate_latest(REGISTRY)


@app.get("/companies")
def list_companies(service: HoldedPurchasesService = Depends(get_service)):
    return {"companies": service.company_ids()}


@app.get("/companies/{company}/connection")
def company_connection(company: str, service: HoldedPurchasesService = Depends(get_service)):
    return service.test_connection(company)


@app.get("/companies/{company}/purchases/pending")
def pending_purchases(
    company: str,
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    service: HoldedPurchasesService = Depends(get_service),
):
    return service.get_pending_purchases(page=page, limit=limit, company=company)


@app.get("/companies/{company}/purchases/overdue")
def overdue_purchases(
    company: str,
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
    service: HoldedPurchasesService = Depends(get_service),
):
    return service.get_overdue_purchases(page=page, limit=limit, company=company)


@app.get("/companies/{company}/purchases/{purchase_id}")
def purchase_details(
    company: str, purchase_id: str, service: HoldedPurchasesService = Depends(get_service)
):
    return service.get_purchase_details(purchase_id, company=company)


@app.get("/companies/{company}/contacts")
def contacts(company: str, service: HoldedPurchasesService = Depends(get_service)):
    return service.get_all_contacts(company=company)


@app.post("/companies/{company}/sync")
def sync_company(
    company: str,
    uploaded_by: str | None = None,
    service: HoldedPurchasesService = Depends(get_service),
    session: Session = Depends(get_db),
):
    """Run one purchase sync for ``company`` and return its summary."""
    start_time = record_sync_start(company)
    try:
        result = service.sync_documents_with_database(session, company, uploaded_by=uploaded_by)
    except Exception as e:
        record_sync_error(company, start_time, getattr(e, "message", str(e)))
        raise
    record_sync_success(company, start_time, result)
    return result


@app.get("/sync-runs")
def sync_runs(limit: int = Query(10, ge=1, le=100), session: Session = Depends(get_db)):
    """Most recent sync audit rows, newest first."""
    return {"sync_runs": [run.to_dict() for run in latest_sync_runs(session, limit)]}


def start_observability_server(port: int = 8000) -> threading.Thread | None:
    """
    Start the HTTP API in a background thread.

    Args:
        port: Port to listen on (``observability.metrics.port`` wins)

    Returns:
        Thread handle, or None when disabled by configuration
    """
    if not cfg("observability.metrics.enabled", True):
        logger.info("Observability server disabled by configuration")
        return None

    port = cfg("observability.metrics.port", port)
    server = uvicorn.Server(uvicorn.Config(app, host="0.0.0.0", port=port, log_config=None))

    thread = threading.Thread(target=server.run, name="http-api", daemon=True)
    thread.start()
    logger.info(f"HTTP API listening on port {port}")
    return thread
