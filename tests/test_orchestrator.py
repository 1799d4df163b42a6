"""
Unit tests for the reference orchestrator.
"""
from datetime import timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, List
from unittest.mock import MagicMock

import pytest

from kpay_payments.config import Settings
from kpay_payments.core.events import DomainEvent, EventBus, PaymentConfirmed, PaymentFailed
from kpay_payments.core.exceptions import (
    GatewayError,
    InvalidTransitionError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from kpay_payments.core.models import (
    GenerateRequest,
    PaymentInfo,
    ReferenceInfo,
    Transaction,
    TransactionStatus,
    utcnow,
)
from kpay_payments.core.orchestrator import ReferenceOrchestrator
from kpay_payments.core.reconciliation import ReconciliationQueue
from kpay_payments.core.store import InMemoryTransactionStore
from kpay_payments.core.webhook import WebhookHandler, WebhookVerifier

REFERENCE = "123456789012345"


class FailingStore(InMemoryTransactionStore):
    """Store whose inserts always fail."""

    def create(self, transaction: Transaction) -> Transaction:
        raise StoreError("database unavailable")


@pytest.fixture
def queue() -> ReconciliationQueue:
    return ReconciliationQueue()


@pytest.fixture
def orchestrator(
    gateway: MagicMock,
    store: InMemoryTransactionStore,
    test_settings: Settings,
    events: EventBus,
    queue: ReconciliationQueue,
) -> ReferenceOrchestrator:
    return ReferenceOrchestrator(
        gateway,
        store,
        settings=test_settings,
        events=events,
        reconciliation=queue,
    )


class TestGenerate:
    """Test suite for reference generation."""

    @pytest.mark.unit
    def test_generate_stores_pending_transaction(
        self,
        orchestrator: ReferenceOrchestrator,
        gateway: MagicMock,
        store: InMemoryTransactionStore,
        sample_generate_data: dict[str, Any],
    ) -> None:
        """Test a successful generation records a pending transaction."""
        before = utcnow()

        transaction = orchestrator.generate(sample_generate_data)

        assert transaction.reference == REFERENCE
        assert transaction.status is TransactionStatus.PENDING
        assert transaction.amount == Decimal("5000.00")
        assert transaction.price == Decimal("5000.00")
        assert transaction.currency == "AOA"
        assert transaction.entity == "0000"
        assert transaction.metadata == {"cart_id": "cart-9"}
        assert transaction.expires_at > before
        assert transaction.expires_at <= before + timedelta(hours=24, seconds=1)

        stored = store.find_by_reference(REFERENCE)
        assert stored is not None
        assert stored.status is TransactionStatus.PENDING
        assert stored.user_id == "user-42"
        assert stored.order_id == "order-1"

        gateway.generate_reference.assert_called_once()
        kwargs = gateway.generate_reference.call_args.kwargs
        assert kwargs["price"] == "5000.00"
        assert kwargs["description"] == "Order 1"

    @pytest.mark.unit
    def test_naive_expiry_is_treated_as_utc(
        self,
        orchestrator: ReferenceOrchestrator,
        gateway: MagicMock,
    ) -> None:
        """Test a directly built request with a naive expiry is read as UTC."""
        expiry = (utcnow() + timedelta(hours=2)).replace(tzinfo=None, microsecond=0)

        transaction = orchestrator.generate(
            GenerateRequest(amount=Decimal("100.00"), expiry=expiry)
        )

        assert transaction.expires_at == expiry.replace(tzinfo=timezone.utc)
        assert gateway.generate_reference.call_args.kwargs["expiry"] == transaction.expires_at

    @pytest.mark.unit
    def test_naive_past_expiry_is_rejected(
        self,
        orchestrator: ReferenceOrchestrator,
        gateway: MagicMock,
    ) -> None:
        expiry = (utcnow() - timedelta(hours=1)).replace(tzinfo=None)

        with pytest.raises(ValidationError) as exc_info:
            orchestrator.generate(GenerateRequest(amount=Decimal("100.00"), expiry=expiry))

        assert "expiry" in exc_info.value.errors
        gateway.generate_reference.assert_not_called()

    @pytest.mark.unit
    def test_invalid_request_calls_nothing(
        self,
        orchestrator: ReferenceOrchestrator,
        gateway: MagicMock,
        store: InMemoryTransactionStore,
    ) -> None:
        """Test validation failures never reach the gateway or the store."""
        with pytest.raises(ValidationError):
            orchestrator.generate({"amount": "0"})

        gateway.generate_reference.assert_not_called()
        assert len(store) == 0

    @pytest.mark.unit
    def test_gateway_failure_stores_nothing(
        self,
        orchestrator: ReferenceOrchestrator,
        gateway: MagicMock,
        store: InMemoryTransactionStore,
        sample_generate_data: dict[str, Any],
    ) -> None:
        """Test a gateway failure propagates and leaves no record."""
        gateway.generate_reference.side_effect = GatewayError(
            "generateReference", GatewayError.TRANSPORT, "timed out"
        )

        with pytest.raises(GatewayError):
            orchestrator.generate(sample_generate_data)

        assert len(store) == 0

    @pytest.mark.unit
    def test_store_failure_reports_reconciliation(
        self,
        gateway: MagicMock,
        test_settings: Settings,
        queue: ReconciliationQueue,
        sample_generate_data: dict[str, Any],
    ) -> None:
        """Test the reference is still returned when the local write fails."""
        orchestrator = ReferenceOrchestrator(
            gateway, FailingStore(), settings=test_settings, reconciliation=queue
        )

        transaction = orchestrator.generate(sample_generate_data)

        assert transaction.reference == REFERENCE
        pending = queue.pending()
        assert len(pending) == 1
        assert pending[0].reference == REFERENCE
        assert isinstance(pending[0].cause, StoreError)

    @pytest.mark.unit
    def test_failing_reconciliation_sink_still_returns(
        self,
        gateway: MagicMock,
        test_settings: Settings,
        sample_generate_data: dict[str, Any],
    ) -> None:
        """Test a broken sink does not hide the reference from the caller."""
        sink = MagicMock(spec=ReconciliationQueue)
        sink.report.side_effect = RuntimeError("sink down")
        orchestrator = ReferenceOrchestrator(
            gateway, FailingStore(), settings=test_settings, reconciliation=sink
        )

        transaction = orchestrator.generate(sample_generate_data)

        assert transaction.reference == REFERENCE
        sink.report.assert_called_once()


class TestCheckStatus:
    """Test suite for status polling."""

    @pytest.mark.unit
    def test_unknown_reference(self, orchestrator: ReferenceOrchestrator) -> None:
        with pytest.raises(NotFoundError):
            orchestrator.check_status(REFERENCE)

    @pytest.mark.unit
    def test_not_paid_yet(
        self,
        orchestrator: ReferenceOrchestrator,
        store: InMemoryTransactionStore,
        make_transaction: Callable[..., Transaction],
        published: List[DomainEvent],
    ) -> None:
        """Test a pending reference stays pending when the gateway reports unpaid."""
        store.create(make_transaction())

        transaction = orchestrator.check_status(REFERENCE)

        assert transaction.status is TransactionStatus.PENDING
        assert published == []

    @pytest.mark.unit
    def test_paid_marks_and_publishes(
        self,
        orchestrator: ReferenceOrchestrator,
        gateway: MagicMock,
        store: InMemoryTransactionStore,
        make_transaction: Callable[..., Transaction],
        published: List[DomainEvent],
    ) -> None:
        """Test a paid reference is marked paid and PaymentConfirmed is emitted once."""
        store.create(make_transaction())
        gateway.check_payment.return_value = PaymentInfo(
            reference=REFERENCE, amount="5000.00", raw={"status": 200, "amount": "5000.00"}
        )

        first = orchestrator.check_status(REFERENCE)
        second = orchestrator.check_status(REFERENCE)

        assert first.status is TransactionStatus.PAID
        assert second.status is TransactionStatus.PAID
        assert first.api_response == {"status": 200, "amount": "5000.00"}
        assert len(published) == 1
        assert isinstance(published[0], PaymentConfirmed)
        assert published[0].source == "check_status"
        # Terminal records are answered locally
        gateway.check_payment.assert_called_once_with(REFERENCE)


class TestCancel:
    """Test suite for cancellation."""

    @pytest.mark.unit
    def test_cancel_pending(
        self,
        orchestrator: ReferenceOrchestrator,
        gateway: MagicMock,
        store: InMemoryTransactionStore,
        make_transaction: Callable[..., Transaction],
    ) -> None:
        """Test cancellation at the gateway then locally."""
        store.create(make_transaction())

        orchestrator.cancel(REFERENCE)

        gateway.cancel_reference.assert_called_once_with(REFERENCE)
        assert store.find_by_reference(REFERENCE).status is TransactionStatus.CANCELLED

    @pytest.mark.unit
    def test_cancel_without_local_record(
        self, orchestrator: ReferenceOrchestrator, gateway: MagicMock
    ) -> None:
        """Test cancelling a reference unknown locally still cancels at the gateway."""
        orchestrator.cancel(REFERENCE)

        gateway.cancel_reference.assert_called_once_with(REFERENCE)

    @pytest.mark.unit
    def test_cancel_paid_is_rejected(
        self,
        orchestrator: ReferenceOrchestrator,
        store: InMemoryTransactionStore,
        make_transaction: Callable[..., Transaction],
    ) -> None:
        """Test a paid transaction cannot be cancelled."""
        store.create(make_transaction(status=TransactionStatus.PAID, paid_at=utcnow()))

        with pytest.raises(InvalidTransitionError):
            orchestrator.cancel(REFERENCE)

        assert store.find_by_reference(REFERENCE).status is TransactionStatus.PAID

    @pytest.mark.unit
    def test_cancel_gateway_rejection_keeps_pending(
        self,
        orchestrator: ReferenceOrchestrator,
        gateway: MagicMock,
        store: InMemoryTransactionStore,
        make_transaction: Callable[..., Transaction],
    ) -> None:
        """Test a failed gateway cancellation leaves the record pending."""
        store.create(make_transaction())
        gateway.cancel_reference.side_effect = GatewayError(
            "cancelReference", GatewayError.REJECTED, "gateway did not confirm cancellation"
        )

        with pytest.raises(GatewayError):
            orchestrator.cancel(REFERENCE)

        assert store.find_by_reference(REFERENCE).status is TransactionStatus.PENDING

    @pytest.mark.unit
    def test_cancel_malformed_reference(
        self, orchestrator: ReferenceOrchestrator, gateway: MagicMock
    ) -> None:
        with pytest.raises(ValidationError):
            orchestrator.cancel("123")

        gateway.cancel_reference.assert_not_called()


class TestFail:
    """Test suite for explicit failure."""

    @pytest.mark.unit
    def test_fail_publishes_payment_failed(
        self,
        orchestrator: ReferenceOrchestrator,
        store: InMemoryTransactionStore,
        make_transaction: Callable[..., Transaction],
        published: List[DomainEvent],
    ) -> None:
        store.create(make_transaction())

        transaction = orchestrator.fail(REFERENCE, "customer abandoned")

        assert transaction.status is TransactionStatus.FAILED
        assert len(published) == 1
        assert isinstance(published[0], PaymentFailed)
        assert published[0].reason == "customer abandoned"

    @pytest.mark.unit
    def test_fail_unknown_reference(self, orchestrator: ReferenceOrchestrator) -> None:
        with pytest.raises(NotFoundError):
            orchestrator.fail(REFERENCE, "nope")


class TestListForUser:
    """Test suite for per-user listing."""

    @pytest.mark.unit
    def test_lists_only_user_transactions(
        self,
        orchestrator: ReferenceOrchestrator,
        store: InMemoryTransactionStore,
        make_transaction: Callable[..., Transaction],
    ) -> None:
        store.create(make_transaction("111111111111111", user_id="alice"))
        store.create(make_transaction("222222222222222", user_id="bob"))

        transactions = orchestrator.list_for_user("alice")

        assert [t.reference for t in transactions] == ["111111111111111"]


class TestReferenceToPaymentFlow:
    """Test suite for the generate-then-webhook flow."""

    @pytest.mark.unit
    def test_generate_then_duplicate_webhook(
        self,
        gateway: MagicMock,
        store: InMemoryTransactionStore,
        test_settings: Settings,
        events: EventBus,
        published: List[DomainEvent],
    ) -> None:
        """Test a generated reference is paid once by a twice-delivered webhook."""
        gateway.generate_reference.return_value = ReferenceInfo.from_response(
            {
                "status": 200,
                "reference": REFERENCE,
                "price": "100.00",
                "expiry": "2025-01-01 00:00:00",
            }
        )
        verifier = WebhookVerifier("whsec_flow")
        orchestrator = ReferenceOrchestrator(gateway, store, settings=test_settings, events=events)
        handler = WebhookHandler(verifier, store, events=events)

        transaction = orchestrator.generate({"amount": "100.00", "description": "order #1"})

        assert transaction.reference == REFERENCE
        assert transaction.status is TransactionStatus.PENDING
        assert transaction.expires_at > utcnow()

        payload = {"reference": REFERENCE, "amount": "100.00"}
        first = handler.process(payload, verifier.sign(payload))
        second = handler.process(payload, verifier.sign(payload))

        assert first.code == 200
        assert second.code == 200
        stored = store.find_by_reference(REFERENCE)
        assert stored.status is TransactionStatus.PAID
        assert stored.paid_at is not None
        confirmations = [e for e in published if isinstance(e, PaymentConfirmed)]
        assert len(confirmations) == 1
