"""
Health checks for liveness/readiness probes.

Checks:
- Database connectivity
- Gateway credentials configured
"""
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import text
from sqlalchemy.orm import Session, sessionmaker

from ..config import Settings, get_settings

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when health check fails."""

    pass


class HealthCheck:
    """
    Health check service for monitoring system dependencies.

    The gateway itself is not called: the sandbox mock and the production API
    both lack a side-effect free endpoint.
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker[Session]] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.session_factory = session_factory
        self.settings = settings or get_settings()

    def check_database(self) -> Dict[str, Any]:
        """
        Check database connectivity.

        Raises:
            HealthCheckError: If database check fails
        """
        if self.session_factory is None:
            return {
                "status": "healthy",
                "service": "database",
                "message": "No database configured (in-memory store)",
            }

        try:
            with self.session_factory() as db:
                db.execute(text("SELECT 1")).scalar()
        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            raise HealthCheckError(f"Database health check failed: {str(e)}") from e

        return {
            "status": "healthy",
            "service": "database",
            "message": "Database connection successful",
        }

    def check_gateway_config(self) -> Dict[str, Any]:
        """
        Check that gateway credentials are configured.

        Raises:
            HealthCheckError: If token, hash or entity is missing
        """
        missing = self.settings.missing_credentials()
        if missing:
            raise HealthCheckError(f"Missing gateway credentials: {', '.join(missing)}")

        return {
            "status": "healthy",
            "service": "gateway",
            "sandbox_mode": self.settings.sandbox_mode,
            "base_url": self.settings.api_base_url,
        }

    def check_all(self) -> Dict[str, Any]:
        """
        Run all health checks.

        Returns:
            Dict[str, Any]: Overall health status
        """
        checks = {}
        all_healthy = True

        for name, check in (
            ("database", self.check_database),
            ("gateway", self.check_gateway_config),
        ):
            try:
                checks[name] = check()
            except HealthCheckError as e:
                checks[name] = {"status": "unhealthy", "service": name, "error": str(e)}
                all_healthy = False

        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }

    def liveness(self) -> Dict[str, Any]:
        """Simple check that the application is running."""
        return {
            "status": "alive",
            "message": "Application is running",
        }
