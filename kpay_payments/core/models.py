"""
Domain types for payment references.

Transaction is the only entity. The other types are immutable results
exchanged with the gateway client and the webhook handler.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Dict, Optional

DESCRIPTION_MAX_LENGTH = 30
GATEWAY_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC (SQLite drops tzinfo on the way back)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_amount(amount: Decimal | float | int | str) -> str:
    """Format an amount the way the gateway expects it: two decimals, dot separator."""
    value = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{value:.2f}"


def truncate_description(description: Optional[str]) -> Optional[str]:
    if description is None:
        return None
    return description[:DESCRIPTION_MAX_LENGTH]


class TransactionStatus(str, Enum):
    """
    Transaction lifecycle states.

    State machine:
    PENDING → PAID
       ↓  ↘
    CANCELLED  FAILED
    """

    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not TransactionStatus.PENDING


@dataclass
class Transaction:
    """A payment reference tracked locally."""

    reference: str
    entity: str
    amount: Decimal
    currency: str
    status: TransactionStatus = TransactionStatus.PENDING
    price: Optional[Decimal] = None
    description: Optional[str] = None
    expires_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    api_response: Optional[Dict[str, Any]] = None
    user_id: Optional[str] = None
    order_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_pending(self) -> bool:
        return self.status is TransactionStatus.PENDING

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or utcnow()) >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        """Serialise for API responses and event payloads."""
        return {
            "reference": self.reference,
            "entity": self.entity,
            "amount": format_amount(self.amount),
            "price": format_amount(self.price) if self.price is not None else None,
            "description": self.description,
            "status": self.status.value,
            "currency": self.currency,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "metadata": self.metadata,
            "api_response": self.api_response,
            "user_id": self.user_id,
            "order_id": self.order_id,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class GenerateRequest:
    """Validated input for creating a payment reference."""

    amount: Decimal
    description: Optional[str] = None
    expiry: Optional[datetime] = None
    user_id: Optional[str] = None
    order_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    currency: Optional[str] = None


@dataclass(frozen=True)
class ReferenceInfo:
    """Result of a successful reference generation at the gateway."""

    reference: str
    entity: Optional[str] = None
    price: Optional[str] = None
    description: Optional[str] = None
    expiry: Optional[str] = None
    status: int = 200
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, response: Dict[str, Any]) -> ReferenceInfo:
        return cls(
            reference=str(response["reference"]),
            entity=response.get("entity"),
            price=response.get("price"),
            description=response.get("description"),
            expiry=response.get("expiry"),
            status=response.get("status", 200),
            raw=dict(response),
        )


@dataclass(frozen=True)
class PaymentInfo:
    """Gateway confirmation that a reference has been paid."""

    reference: str
    amount: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, reference: str, response: Dict[str, Any]) -> PaymentInfo:
        amount = response.get("amount", response.get("price"))
        return cls(
            reference=str(response.get("reference", reference)),
            amount=str(amount) if amount is not None else None,
            raw=dict(response),
        )


@dataclass(frozen=True)
class AckResult:
    """Webhook acknowledgement returned to the gateway."""

    code: int
    message: Optional[str] = None

    @property
    def acknowledged(self) -> bool:
        return self.code == 200

    def to_dict(self) -> Dict[str, int]:
        return {"code": self.code}
