"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from payops_gateway.api.errors import register_error_handlers
from payops_gateway.api.middleware import MetricsMiddleware, RequestIDMiddleware
from payops_gateway.api.v1 import circuits, disputes, selection, transactions
from payops_gateway.config import settings
from payops_gateway.infrastructure.observability.logging import setup_logging

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="PayOps Gateway",
        description="Collection endpoint selection and dispute settlement service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_error_handlers(app)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(selection.router, prefix="/v1", tags=["selection"])
    app.include_router(disputes.router, prefix="/v1", tags=["disputes"])
    app.include_router(circuits.router, prefix="/v1", tags=["circuits"])
    app.include_router(transactions.router, prefix="/v1", tags=["transactions"])

    return app


app = create_app()
