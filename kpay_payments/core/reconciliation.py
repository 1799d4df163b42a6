"""
Reconciliation between the gateway and local transaction records.

Detects and repairs:
- References created at the gateway whose local record was never saved
- Payments the gateway reports that no webhook confirmed
- Pending references past their expiry
"""
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog

from ..monitoring.metrics import metrics
from .events import EventBus, PaymentConfirmed, PaymentFailed
from .exceptions import InvalidTransitionError, ReconciliationRequired, StoreError
from .gateway import GatewayClient
from .lifecycle import MarkFailed, MarkPaid, TransactionLifecycle
from .models import TransactionStatus, utcnow
from .store import TransactionStore

logger = structlog.get_logger(__name__)

EXPIRED_REASON = "expired"


class ReconciliationQueue:
    """
    Collects ReconciliationRequired signals until the missing records are written.

    Signals live in memory; the warning log emitted alongside each one is the
    durable trail.
    """

    def __init__(self) -> None:
        self._signals: Dict[str, ReconciliationRequired] = {}
        self._lock = threading.Lock()

    def report(self, signal: ReconciliationRequired) -> None:
        with self._lock:
            self._signals[signal.reference] = signal
        logger.info("reconciliation_signal_queued", reference=signal.reference)

    def pending(self) -> List[ReconciliationRequired]:
        with self._lock:
            return list(self._signals.values())

    def __len__(self) -> int:
        return len(self._signals)

    def retry_pending(self, store: TransactionStore) -> int:
        """
        Try to write every queued transaction into the store.

        Returns:
            int: Number of signals resolved
        """
        resolved = 0
        for signal in self.pending():
            try:
                store.create(signal.transaction)
            except StoreError as e:
                if store.find_by_reference(signal.reference) is None:
                    logger.warning(
                        "reconciliation_retry_failed",
                        reference=signal.reference,
                        error=str(e),
                    )
                    continue
                logger.info("reconciliation_record_already_present", reference=signal.reference)

            with self._lock:
                self._signals.pop(signal.reference, None)
            resolved += 1
            logger.info("reconciliation_record_restored", reference=signal.reference)

        return resolved


@dataclass
class ReconciliationReport:
    """Outcome of one reconciliation pass."""

    confirmed: List[str] = field(default_factory=list)
    already_paid: List[str] = field(default_factory=list)
    unknown: List[str] = field(default_factory=list)
    conflicts: List[str] = field(default_factory=list)
    expired: List[str] = field(default_factory=list)
    restored: int = 0
    started_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def has_discrepancies(self) -> bool:
        return bool(self.unknown or self.conflicts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "confirmed": self.confirmed,
            "already_paid": self.already_paid,
            "unknown": self.unknown,
            "conflicts": self.conflicts,
            "expired": self.expired,
            "restored": self.restored,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class ReconciliationEngine:
    """
    Compares the gateway's paid list with local records.

    Every change goes through the lifecycle, so a pass that races a webhook
    never publishes a second PaymentConfirmed.
    """

    def __init__(
        self,
        gateway: GatewayClient,
        store: TransactionStore,
        lifecycle: Optional[TransactionLifecycle] = None,
        events: Optional[EventBus] = None,
        queue: Optional[ReconciliationQueue] = None,
    ):
        self.gateway = gateway
        self.store = store
        self.lifecycle = lifecycle or TransactionLifecycle()
        self.events = events or EventBus()
        self.queue = queue if queue is not None else ReconciliationQueue()
        logger.info("reconciliation_engine_initialized")

    def reconcile_paid(self, report: Optional[ReconciliationReport] = None) -> ReconciliationReport:
        """
        Mark locally pending references paid when the gateway lists them as paid.

        Raises:
            GatewayError: If the paid list cannot be fetched
        """
        report = report or ReconciliationReport()
        entries = self.gateway.list_paid_references()

        logger.info("reconciliation_paid_list_fetched", count=len(entries))

        for entry in entries:
            reference = entry.get("reference")
            if not reference:
                continue
            reference = str(reference)

            try:
                transition = self.lifecycle.transition(self.store, reference, MarkPaid(entry))
            except InvalidTransitionError as e:
                report.conflicts.append(reference)
                logger.error(
                    "reconciliation_paid_reference_terminal",
                    reference=reference,
                    status=e.from_status,
                )
                continue

            if transition is None:
                report.unknown.append(reference)
                metrics.record_reconciliation_signal("unknown_paid_reference")
                logger.warning("reconciliation_unknown_paid_reference", reference=reference)
            elif transition.changed:
                report.confirmed.append(reference)
                self.events.publish(
                    PaymentConfirmed(
                        transaction=transition.transaction,
                        payload=dict(entry),
                        source="reconciliation",
                    )
                )
            else:
                report.already_paid.append(reference)

        return report

    def expire_overdue(
        self,
        now: Optional[datetime] = None,
        report: Optional[ReconciliationReport] = None,
    ) -> ReconciliationReport:
        """Mark pending transactions past their expiry as failed."""
        report = report or ReconciliationReport()
        now = now or utcnow()

        for transaction in self.store.list_by_status(TransactionStatus.PENDING):
            if not transaction.is_expired(now):
                continue
            try:
                transition = self.lifecycle.transition(
                    self.store, transaction.reference, MarkFailed(EXPIRED_REASON)
                )
            except InvalidTransitionError:
                logger.info("reconciliation_expiry_skipped", reference=transaction.reference)
                continue

            if transition is not None and transition.changed:
                report.expired.append(transaction.reference)
                metrics.record_reconciliation_signal("expired")
                self.events.publish(
                    PaymentFailed(reference=transaction.reference, reason=EXPIRED_REASON)
                )

        return report

    def run(self, now: Optional[datetime] = None) -> ReconciliationReport:
        """Run a full pass: restore missing records, confirm paid ones, expire overdue."""
        report = ReconciliationReport()
        logger.info("reconciliation_started")

        report.restored = self.queue.retry_pending(self.store)
        self.reconcile_paid(report)
        self.expire_overdue(now=now, report=report)

        report.completed_at = utcnow()
        log = logger.warning if report.has_discrepancies else logger.info
        log(
            "reconciliation_completed",
            confirmed=len(report.confirmed),
            unknown=len(report.unknown),
            conflicts=len(report.conflicts),
            expired=len(report.expired),
            restored=report.restored,
        )
        return report
