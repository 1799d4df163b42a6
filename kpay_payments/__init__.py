"""KPay payments - payment reference lifecycle for the Kyami Pay gateway."""
from .core import (
    EventBus,
    KPayError,
    PaymentConfirmed,
    PaymentFailed,
    ReferenceOrchestrator,
    Transaction,
    TransactionStatus,
)
from .services import Services, build_services

__version__ = "1.0.0"

__all__ = [
    "EventBus",
    "KPayError",
    "PaymentConfirmed",
    "PaymentFailed",
    "ReferenceOrchestrator",
    "Services",
    "Transaction",
    "TransactionStatus",
    "build_services",
    "__version__",
]
