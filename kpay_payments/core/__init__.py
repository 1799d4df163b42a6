"""Core payment reference logic."""
from .events import EventBus, PaymentConfirmed, PaymentFailed
from .exceptions import (
    ConcurrentModificationError,
    ConfigurationError,
    GatewayError,
    InvalidTransitionError,
    KPayError,
    NotFoundError,
    ReconciliationRequired,
    SignatureError,
    StoreError,
    ValidationError,
)
from .gateway import GatewayClient
from .lifecycle import MarkCancelled, MarkFailed, MarkPaid, TransactionLifecycle, Transition
from .models import (
    AckResult,
    GenerateRequest,
    PaymentInfo,
    ReferenceInfo,
    Transaction,
    TransactionStatus,
)
from .orchestrator import ReferenceOrchestrator
from .reconciliation import ReconciliationEngine, ReconciliationQueue, ReconciliationReport
from .store import InMemoryTransactionStore, TransactionStore
from .webhook import WebhookHandler, WebhookVerifier

__all__ = [
    "AckResult",
    "ConcurrentModificationError",
    "ConfigurationError",
    "EventBus",
    "GatewayClient",
    "GatewayError",
    "GenerateRequest",
    "InMemoryTransactionStore",
    "InvalidTransitionError",
    "KPayError",
    "MarkCancelled",
    "MarkFailed",
    "MarkPaid",
    "NotFoundError",
    "PaymentConfirmed",
    "PaymentFailed",
    "PaymentInfo",
    "ReconciliationEngine",
    "ReconciliationQueue",
    "ReconciliationReport",
    "ReconciliationRequired",
    "ReferenceInfo",
    "ReferenceOrchestrator",
    "SignatureError",
    "StoreError",
    "Transaction",
    "TransactionLifecycle",
    "TransactionStatus",
    "TransactionStore",
    "Transition",
    "ValidationError",
    "WebhookHandler",
    "WebhookVerifier",
]
