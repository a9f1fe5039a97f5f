"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from lending_gateway.api.middleware import RequestIDMiddleware, MetricsMiddleware
from lending_gateway.api.v1 import pricing, statements, scores, loans, installments
from lending_gateway.infrastructure.observability.logging import setup_logging
from lending_gateway.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Lending Gateway",
        description="Loan pricing, reputation scoring and repayment schedule service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(pricing.router, prefix="/v1", tags=["pricing"])
    app.include_router(statements.router, prefix="/v1", tags=["statements"])
    app.include_router(scores.router, prefix="/v1", tags=["scores"])
    app.include_router(loans.router, prefix="/v1", tags=["loans"])
    app.include_router(installments.router, prefix="/v1", tags=["installments"])

    return app


app = create_app()
