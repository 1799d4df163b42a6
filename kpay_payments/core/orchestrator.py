"""
Reference orchestrator: generate, check and cancel payment references.

Orchestrates the reference flow:
1. Validate input
2. Call the gateway (remote side effect first)
3. Persist the local record
4. Surface a reconciliation signal if step 3 fails after step 2 succeeded

Gateway calls never run inside a store lock; the lifecycle re-reads the record
under the lock before applying anything.
"""
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, List, Mapping, Optional, Union

import structlog

from ..config import Settings, get_settings
from ..monitoring.metrics import metrics
from .events import EventBus, PaymentConfirmed, PaymentFailed
from .exceptions import NotFoundError, ReconciliationRequired, ValidationError
from .gateway import GatewayClient
from .lifecycle import MarkCancelled, MarkFailed, MarkPaid, TransactionLifecycle
from .models import (
    GenerateRequest,
    Transaction,
    TransactionStatus,
    ensure_utc,
    format_amount,
    truncate_description,
    utcnow,
)
from .reconciliation import ReconciliationQueue
from .store import TransactionStore
from .validation import validate_generate_request, validate_reference

logger = structlog.get_logger(__name__)


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


class ReferenceOrchestrator:
    """
    Payment reference use cases.

    Handles the partial-failure window between the gateway and the local store.
    """

    def __init__(
        self,
        gateway: GatewayClient,
        store: TransactionStore,
        settings: Optional[Settings] = None,
        lifecycle: Optional[TransactionLifecycle] = None,
        events: Optional[EventBus] = None,
        reconciliation: Optional[ReconciliationQueue] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            gateway: Gateway client implementation
            store: Transaction store
            settings: Optional settings (entity, currency and expiry defaults)
            lifecycle: Optional lifecycle (a fresh one by default)
            events: Optional event bus for PaymentConfirmed/PaymentFailed
            reconciliation: Optional sink for ReconciliationRequired signals
        """
        self.gateway = gateway
        self.store = store
        self.settings = settings or get_settings()
        self.lifecycle = lifecycle or TransactionLifecycle()
        self.events = events or EventBus()
        if reconciliation is None:
            reconciliation = ReconciliationQueue()
        self.reconciliation = reconciliation

    def generate(self, request: Union[GenerateRequest, Mapping[str, Any]]) -> Transaction:
        """
        Generate a reference at the gateway and store it as a pending transaction.

        Args:
            request: Validated request, or raw fields to validate

        Returns:
            Transaction: The pending transaction. If the local write failed it
            is returned unsaved and a ReconciliationRequired signal is reported.

        Raises:
            ValidationError: If the request is invalid (nothing is sent or stored)
            GatewayError: If the gateway call fails (nothing is stored)
        """
        now = utcnow()
        if not isinstance(request, GenerateRequest):
            request = validate_generate_request(request, now=now)

        default_expiry = now + timedelta(hours=self.settings.reference_expiry_hours)
        expires_at = ensure_utc(request.expiry) or default_expiry
        expires_at = expires_at.replace(microsecond=0)
        if expires_at <= now:
            raise ValidationError({"expiry": "Expiry date must be in the future"})

        description = truncate_description(request.description)

        logger.info(
            "reference_generation_started",
            amount=format_amount(request.amount),
            order_id=request.order_id,
            user_id=request.user_id,
        )

        info = self.gateway.generate_reference(
            price=format_amount(request.amount),
            description=description,
            expiry=expires_at,
        )

        transaction = Transaction(
            reference=info.reference,
            entity=info.entity or self.settings.entity,
            amount=request.amount,
            price=_to_decimal(info.price),
            description=description,
            status=TransactionStatus.PENDING,
            currency=request.currency or self.settings.currency,
            expires_at=expires_at,
            metadata=dict(request.metadata),
            api_response=dict(info.raw),
            user_id=request.user_id,
            order_id=request.order_id,
            created_at=now,
            updated_at=now,
        )

        try:
            stored = self.store.create(transaction)
        except Exception as e:
            self._report_reconciliation(ReconciliationRequired(transaction, e))
            metrics.record_reference_generated(stored=False)
            return transaction

        metrics.record_reference_generated(stored=True)
        logger.info(
            "reference_generated",
            reference=stored.reference,
            amount=format_amount(stored.amount),
            expires_at=stored.expires_at.isoformat(),
        )
        return stored

    def _report_reconciliation(self, signal: ReconciliationRequired) -> None:
        logger.warning(
            "reconciliation_required",
            reference=signal.reference,
            error=str(signal.cause),
            error_type=type(signal.cause).__name__,
        )
        metrics.record_reconciliation_signal("missing_local_record")
        try:
            self.reconciliation.report(signal)
        except Exception as e:
            # The reference is still returned to the caller.
            logger.error(
                "reconciliation_sink_failed",
                reference=signal.reference,
                error=str(e),
                exc_info=True,
            )

    def get(self, reference: str) -> Transaction:
        """
        Raises:
            NotFoundError: If no local record exists
        """
        transaction = self.store.find_by_reference(reference)
        if transaction is None:
            raise NotFoundError(reference)
        return transaction

    def list_for_user(self, user_id: str) -> List[Transaction]:
        return self.store.list_by_user(user_id)

    def check_status(self, reference: str) -> Transaction:
        """
        Return the local transaction, polling the gateway while it is pending.

        Raises:
            NotFoundError: If no local record exists
            GatewayError: If the status check call fails
            InvalidTransitionError: If the record left pending while polling
                and the gateway reports it paid
        """
        transaction = self.get(reference)
        if not transaction.is_pending:
            return transaction

        payment = self.gateway.check_payment(reference)
        if payment is None:
            return transaction

        transition = self.lifecycle.transition(self.store, reference, MarkPaid(payment.raw))
        if transition is None:
            raise NotFoundError(reference)

        if transition.changed:
            self.events.publish(
                PaymentConfirmed(
                    transaction=transition.transaction,
                    payload=dict(payment.raw),
                    source="check_status",
                )
            )
            logger.info("payment_confirmed_by_status_check", reference=reference)

        return transition.transaction

    def cancel(self, reference: str) -> None:
        """
        Cancel a reference at the gateway, then locally if a record exists.

        Raises:
            ValidationError: If the reference is malformed
            GatewayError: If the gateway does not confirm cancellation
            InvalidTransitionError: If the local record is already paid or terminal
        """
        reference = validate_reference(reference)

        self.gateway.cancel_reference(reference)

        transition = self.lifecycle.transition(self.store, reference, MarkCancelled())
        if transition is None:
            logger.info("reference_cancelled_without_local_record", reference=reference)
            return

        logger.info("reference_cancelled", reference=reference)

    def fail(self, reference: str, reason: str) -> Transaction:
        """
        Mark a pending transaction as failed and publish PaymentFailed.

        Raises:
            NotFoundError: If no local record exists
            InvalidTransitionError: If the transaction is not pending
        """
        transition = self.lifecycle.transition(self.store, reference, MarkFailed(reason))
        if transition is None:
            raise NotFoundError(reference)

        self.events.publish(PaymentFailed(reference=reference, reason=reason))
        logger.info("payment_failed", reference=reference, reason=reason)
        return transition.transaction
