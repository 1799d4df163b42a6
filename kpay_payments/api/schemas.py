"""
Pydantic schemas for API request/response models.

Field-level rules (amount range, description length, expiry format) are
enforced by the core validators so every entry point reports the same errors.
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class GenerateReferenceRequest(BaseModel):
    """Request schema for generating a payment reference."""

    amount: Decimal = Field(..., description="Amount to charge (0.01 - 999999999.99)")
    description: Optional[str] = Field(default=None, description="Up to 30 characters")
    expiry: Optional[str] = Field(
        default=None, description="Expiry in 'YYYY-MM-DD HH:MM:SS' (UTC), default now + 24h"
    )
    user_id: Optional[str] = Field(default=None, description="Caller's user identifier")
    order_id: Optional[str] = Field(default=None, description="Caller's order identifier")
    currency: Optional[str] = Field(default=None, description="Currency code (default AOA)")
    metadata: Optional[Dict[str, Any]] = Field(default=None, description="Opaque metadata")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "amount": "5000.00",
                    "description": "Order #1234",
                    "user_id": "user-42",
                    "order_id": "1234",
                }
            ]
        }
    }


class CancelReferenceRequest(BaseModel):
    """Request schema for cancelling a reference."""

    reference: str = Field(..., description="15-digit payment reference")


class TransactionResponse(BaseModel):
    """Response schema for a transaction."""

    reference: str = Field(..., description="15-digit payment reference")
    entity: str = Field(..., description="Merchant entity code")
    amount: str = Field(..., description="Requested amount")
    price: Optional[str] = Field(default=None, description="Amount echoed by the gateway")
    description: Optional[str] = Field(default=None, description="Reference description")
    status: str = Field(..., description="pending, paid, cancelled or failed")
    currency: str = Field(..., description="Currency code")
    expires_at: Optional[str] = Field(default=None, description="Expiry (ISO 8601)")
    paid_at: Optional[str] = Field(default=None, description="Payment time (ISO 8601)")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Opaque metadata")
    user_id: Optional[str] = Field(default=None, description="Caller's user identifier")
    order_id: Optional[str] = Field(default=None, description="Caller's order identifier")
    created_at: str = Field(..., description="Creation timestamp (ISO 8601)")
    updated_at: str = Field(..., description="Last update timestamp (ISO 8601)")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "reference": "123456789012345",
                    "entity": "0000",
                    "amount": "5000.00",
                    "price": "5000.00",
                    "description": "Order #1234",
                    "status": "pending",
                    "currency": "AOA",
                    "expires_at": "2026-01-07T10:00:00+00:00",
                    "paid_at": None,
                    "metadata": {},
                    "user_id": "user-42",
                    "order_id": "1234",
                    "created_at": "2026-01-06T10:00:00+00:00",
                    "updated_at": "2026-01-06T10:00:00+00:00",
                }
            ]
        }
    }


class TransactionListResponse(BaseModel):
    """Response schema for a list of transactions."""

    transactions: List[TransactionResponse] = Field(..., description="Matching transactions")


class CancelReferenceResponse(BaseModel):
    """Response schema for a cancellation."""

    reference: str = Field(..., description="Cancelled reference")
    cancelled: bool = Field(..., description="Gateway confirmed the cancellation")


class WebhookResponse(BaseModel):
    """Acknowledgement returned to the gateway."""

    code: int = Field(..., description="Same value as the HTTP status")


class HealthCheckResponse(BaseModel):
    """Response schema for health checks."""

    status: str = Field(..., description="Overall health status (healthy/unhealthy)")
    checks: Optional[Dict[str, Any]] = Field(default=None, description="Individual service checks")
    message: Optional[str] = Field(default=None, description="Status message")


class ReconciliationResponse(BaseModel):
    """Response schema for reconciliation."""

    confirmed: List[str] = Field(..., description="References newly marked paid")
    already_paid: List[str] = Field(..., description="References already paid locally")
    unknown: List[str] = Field(..., description="Paid at the gateway, unknown locally")
    conflicts: List[str] = Field(..., description="Paid at the gateway, terminal locally")
    expired: List[str] = Field(..., description="Pending references marked failed on expiry")
    restored: int = Field(..., description="Missing local records written from the queue")
    started_at: str = Field(..., description="Start timestamp (ISO 8601)")
    completed_at: Optional[str] = Field(default=None, description="End timestamp (ISO 8601)")
