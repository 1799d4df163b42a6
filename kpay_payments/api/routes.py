"""
API routes for payment references.
"""
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..core.exceptions import (
    GatewayError,
    InvalidTransitionError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from ..services import Services
from .schemas import (
    CancelReferenceRequest,
    CancelReferenceResponse,
    GenerateReferenceRequest,
    HealthCheckResponse,
    ReconciliationResponse,
    TransactionListResponse,
    TransactionResponse,
    WebhookResponse,
)

logger = structlog.get_logger(__name__)

# Create routers
reference_router = APIRouter(prefix="/api/kpay/references", tags=["references"])
admin_router = APIRouter(prefix="/api/kpay/admin", tags=["admin"])
monitoring_router = APIRouter(tags=["monitoring"])


def get_services(request: Request) -> Services:
    """Dependency returning the services attached by ``create_app``."""
    return request.app.state.services


def _gateway_http_error(e: GatewayError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail={"message": "Gateway request failed", "operation": e.operation, "cause": e.cause},
    )


def _conflict_http_error(e: InvalidTransitionError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={"message": str(e), "reference": e.reference, "status": e.from_status},
    )


@reference_router.post(
    "",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate a payment reference",
    description="Create a reference at the gateway and track it as a pending transaction",
)
def generate_reference(
    request: GenerateReferenceRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Generate a new payment reference."""
    try:
        transaction = services.orchestrator.generate(request.model_dump(exclude_none=True))
    except ValidationError as e:
        logger.warning("api_generate_reference_validation_error", errors=e.errors)
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.to_dict())
    except GatewayError as e:
        logger.error("api_generate_reference_gateway_error", error=str(e))
        raise _gateway_http_error(e)

    logger.info(
        "api_generate_reference_success",
        reference=transaction.reference,
        order_id=transaction.order_id,
    )
    return transaction.to_dict()


@reference_router.get(
    "",
    response_model=TransactionListResponse,
    summary="List a user's references",
)
def list_references(
    user_id: str,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """List the transactions recorded for a user."""
    transactions = services.orchestrator.list_for_user(user_id)
    return {"transactions": [t.to_dict() for t in transactions]}


@reference_router.post(
    "/cancel",
    response_model=CancelReferenceResponse,
    summary="Cancel a payment reference",
)
def cancel_reference(
    request: CancelReferenceRequest,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Cancel a reference at the gateway and locally."""
    try:
        services.orchestrator.cancel(request.reference)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.to_dict())
    except GatewayError as e:
        logger.error(
            "api_cancel_reference_gateway_error", reference=request.reference, error=str(e)
        )
        raise _gateway_http_error(e)
    except InvalidTransitionError as e:
        raise _conflict_http_error(e)

    return {"reference": request.reference, "cancelled": True}


@reference_router.get(
    "/{reference}",
    response_model=TransactionResponse,
    summary="Get reference status",
    description="Return the local transaction, polling the gateway while it is pending",
)
def check_reference(
    reference: str,
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    """Get payment status by reference."""
    try:
        transaction = services.orchestrator.check_status(reference)
    except NotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Transaction not found")
    except GatewayError as e:
        logger.error("api_check_reference_gateway_error", reference=reference, error=str(e))
        raise _gateway_http_error(e)
    except InvalidTransitionError as e:
        raise _conflict_http_error(e)

    return transaction.to_dict()


async def kpay_webhook(
    request: Request,
    x_signature: Optional[str] = Header(default=None, alias="X-Signature"),
    services: Services = Depends(get_services),
) -> JSONResponse:
    """
    Handle KPay payment confirmations.

    The body is always ``{"code": <status>}`` with the same HTTP status.
    """
    try:
        payload = await request.json()
    except ValueError:
        payload = None

    ack = await run_in_threadpool(services.webhook_handler.process, payload, x_signature)
    return JSONResponse(status_code=ack.code, content=ack.to_dict())


def build_webhook_router(path: str) -> APIRouter:
    """Router exposing the webhook at the configured path."""
    webhook_router = APIRouter(tags=["webhooks"])
    webhook_router.add_api_route(
        path,
        kpay_webhook,
        methods=["POST"],
        response_model=WebhookResponse,
        summary="KPay webhook endpoint",
    )
    return webhook_router


@admin_router.post(
    "/reconcile",
    response_model=ReconciliationResponse,
    summary="Run reconciliation",
    description="Confirm paid references, expire overdue ones and restore missing records",
)
def run_reconciliation(services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Run one reconciliation pass."""
    try:
        report = services.reconciliation_engine.run()
    except GatewayError as e:
        logger.error("api_reconciliation_gateway_error", error=str(e))
        raise _gateway_http_error(e)
    except StoreError as e:
        logger.error("api_reconciliation_store_error", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Reconciliation failed: {str(e)}",
        )

    return report.to_dict()


@monitoring_router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health check",
    description="Check overall system health",
)
def health(services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Health check endpoint for monitoring."""
    return services.health_check.check_all()


@monitoring_router.get(
    "/health/live",
    response_model=HealthCheckResponse,
    summary="Liveness probe",
)
def liveness(services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Liveness probe endpoint."""
    return services.health_check.liveness()


@monitoring_router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics",
    include_in_schema=False,
)
def prometheus_metrics() -> Response:
    """Expose Prometheus metrics."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
