"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from gnpl_ledger.api.middleware import RequestIDMiddleware, MetricsMiddleware
from gnpl_ledger.api.v1 import accounts, admin, jobs
from gnpl_ledger.infrastructure.observability.logging import setup_logging
from gnpl_ledger.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="TicketHub GNPL Ledger",
        description="Get-now-pay-later accounts, repayments and late penalties",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(accounts.router, prefix="/v1", tags=["accounts"])
    app.include_router(admin.router, prefix="/v1", tags=["admin"])
    app.include_router(jobs.router, prefix="/v1", tags=["jobs"])

    return app


app = create_app()
