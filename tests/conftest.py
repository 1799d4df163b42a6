"""
Pytest configuration and fixtures.
"""
from datetime import timedelta
from decimal import Decimal
from typing import Any, Callable, List
from unittest.mock import MagicMock

import pytest

from kpay_payments.config import Settings
from kpay_payments.core.events import DomainEvent, EventBus
from kpay_payments.core.gateway import GatewayClient
from kpay_payments.core.models import ReferenceInfo, Transaction, TransactionStatus, utcnow
from kpay_payments.core.store import InMemoryTransactionStore

REFERENCE = "123456789012345"


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        _env_file=None,
        token="test-token",
        hash="test-hash",
        entity="0000",
        sandbox_mode=True,
        webhook_secret="",
        database_url="sqlite://",
        app_name="kpay-payments-test",
        app_env="test",
        log_level="DEBUG",
    )


@pytest.fixture
def store() -> InMemoryTransactionStore:
    return InMemoryTransactionStore()


@pytest.fixture
def gateway() -> MagicMock:
    """Gateway mock built from the GatewayClient interface."""
    mock_gateway = MagicMock(spec=GatewayClient)
    mock_gateway.generate_reference.return_value = ReferenceInfo(
        reference=REFERENCE,
        entity="0000",
        price="5000.00",
        expiry="2025-01-01 00:00:00",
        raw={"status": 200, "reference": REFERENCE, "entity": "0000", "price": "5000.00"},
    )
    mock_gateway.check_payment.return_value = None
    mock_gateway.cancel_reference.return_value = True
    mock_gateway.list_paid_references.return_value = []
    return mock_gateway


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def published(events: EventBus) -> List[DomainEvent]:
    """Every event published on the ``events`` bus, in order."""
    received: List[DomainEvent] = []
    events.subscribe(DomainEvent, received.append)
    return received


@pytest.fixture
def make_transaction() -> Callable[..., Transaction]:
    """Factory for pending transactions."""

    def _make(reference: str = REFERENCE, **overrides: Any) -> Transaction:
        fields = {
            "reference": reference,
            "entity": "0000",
            "amount": Decimal("5000.00"),
            "currency": "AOA",
            "status": TransactionStatus.PENDING,
            "description": "Order 1",
            "expires_at": utcnow() + timedelta(hours=24),
            "user_id": "user-42",
            "order_id": "order-1",
        }
        fields.update(overrides)
        return Transaction(**fields)

    return _make


@pytest.fixture
def sample_generate_data() -> dict[str, Any]:
    """Sample reference generation request data."""
    return {
        "amount": "5000.00",
        "description": "Order 1",
        "user_id": "user-42",
        "order_id": "order-1",
        "metadata": {"cart_id": "cart-9"},
    }
