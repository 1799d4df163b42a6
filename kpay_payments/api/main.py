"""
Main FastAPI application.

KPay payment reference API with:
- Error handling
- Request ID tracking
- Structured logging
- Prometheus metrics
"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse

from ..config import Settings, get_settings
from ..database import close_db
from ..monitoring.logging import setup_logging
from ..services import Services, build_services
from .routes import admin_router, build_webhook_router, monitoring_router, reference_router

logger = structlog.get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[Services] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Optional settings (defaults to the environment)
        services: Optional pre-wired services; built from settings when omitted

    Raises:
        ConfigurationError: If services are built without gateway credentials
    """
    settings = settings or (services.settings if services else get_settings())
    owns_services = services is None
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
        logger.info(
            "application_startup",
            app_name=settings.app_name,
            env=settings.app_env,
            sandbox_mode=settings.sandbox_mode,
            webhook_enabled=settings.webhook_enabled,
        )

        yield

        logger.info("application_shutdown")
        if owns_services:
            services.close()
            close_db()
            logger.info("database_connections_closed")

    app = FastAPI(
        title="KPay Payments",
        description=(
            "Payment reference lifecycle for the KPay (Kyami Pay) gateway: "
            "reference generation, status checks, cancellation, webhooks and reconciliation."
        ),
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.services = services
    app.state.settings = settings

    @app.middleware("http")
    async def add_request_id_middleware(request: Request, call_next: Any) -> Response:
        """Add request ID to all requests for tracing."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        start_time = time.time()

        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id

            logger.info(
                "request_completed",
                status_code=response.status_code,
                duration_seconds=time.time() - start_time,
            )
            return response

        except Exception as e:
            logger.error(
                "request_failed",
                error=str(e),
                duration_seconds=time.time() - start_time,
            )
            raise

        finally:
            structlog.contextvars.clear_contextvars()

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions."""
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "message": "An unexpected error occurred. Please try again later.",
            },
        )

    app.include_router(reference_router)
    app.include_router(admin_router)
    app.include_router(monitoring_router)
    if settings.webhook_enabled:
        app.include_router(build_webhook_router(settings.webhook_path))

    @app.get("/", tags=["root"])
    def root() -> dict[str, Any]:
        """Root endpoint with API information."""
        return {
            "service": settings.app_name,
            "version": "1.0.0",
            "status": "operational",
            "environment": settings.app_env,
            "sandbox_mode": settings.sandbox_mode,
            "docs": "/docs",
            "health": "/health",
            "metrics": "/metrics",
        }

    return app


def main() -> None:
    """Run the API with uvicorn."""
    import uvicorn

    settings = get_settings()
    setup_logging(settings)
    uvicorn.run(
        "kpay_payments.api.main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
