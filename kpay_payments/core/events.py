"""
Domain events and the in-process event bus.

Events are published after the state change they describe has been saved.
Delivery order across subscribers is not guaranteed and subscribers must be
idempotent: the same payment may be observed through the webhook and the
reconciliation paths.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Type

import structlog

from .models import Transaction, utcnow

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()), kw_only=True)
    occurred_at: datetime = field(default_factory=utcnow, kw_only=True)


@dataclass(frozen=True)
class PaymentConfirmed(DomainEvent):
    """A pending reference became paid."""

    transaction: Transaction
    payload: Dict[str, Any]
    source: str = "webhook"  # webhook, check_status, reconciliation


@dataclass(frozen=True)
class PaymentFailed(DomainEvent):
    """A pending reference was marked failed."""

    reference: str
    reason: str


Subscriber = Callable[[Any], None]


class EventBus:
    """
    Synchronous observer registry.

    A failing subscriber is logged and skipped; it never affects the
    operation that published the event or the other subscribers.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[Type[DomainEvent], List[Subscriber]] = {}

    def subscribe(self, event_type: Type[DomainEvent], handler: Subscriber) -> None:
        """
        Register a handler for an event type.

        Example:
            bus.subscribe(PaymentConfirmed, lambda event: orders.mark_paid(event))
        """
        self._subscribers.setdefault(event_type, []).append(handler)
        logger.info(
            "event_subscriber_registered",
            event_type=event_type.__name__,
            handler=getattr(handler, "__name__", repr(handler)),
        )

    def publish(self, event: DomainEvent) -> int:
        """
        Deliver an event to every subscriber of its type.

        Returns:
            int: Number of subscribers that handled the event without error
        """
        delivered = 0
        for event_type, handlers in self._subscribers.items():
            if not isinstance(event, event_type):
                continue
            for handler in list(handlers):
                try:
                    handler(event)
                    delivered += 1
                except Exception as e:
                    logger.error(
                        "event_subscriber_failed",
                        event_type=type(event).__name__,
                        event_id=event.event_id,
                        error=str(e),
                        exc_info=True,
                    )

        logger.info(
            "event_published",
            event_type=type(event).__name__,
            event_id=event.event_id,
            delivered=delivered,
        )
        return delivered
