"""
Transaction lifecycle state machine.

Transition table:

    pending   --MarkPaid-->      paid
    pending   --MarkCancelled--> cancelled
    pending   --MarkFailed-->    failed
    paid      --MarkPaid-->      paid       (no-op, first paid_at/api_response kept)
    any other combination        InvalidTransitionError

``TransactionLifecycle.transition`` is the only write path for existing
records. Both the webhook and the polling "check" path go through it, which is
what makes a duplicate confirmation harmless.
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Union

import structlog

from ..monitoring.metrics import metrics
from .exceptions import ConcurrentModificationError, InvalidTransitionError
from .models import Transaction, TransactionStatus, utcnow
from .store import TransactionStore

logger = structlog.get_logger(__name__)

# One re-read after a lost conditional save; the second read sees the winner's
# status, and every transition from a terminal status is either a no-op or an error.
MAX_SAVE_ATTEMPTS = 2


@dataclass(frozen=True)
class MarkPaid:
    api_response: Dict[str, Any] = field(default_factory=dict)
    name = "markPaid"


@dataclass(frozen=True)
class MarkCancelled:
    name = "markCancelled"


@dataclass(frozen=True)
class MarkFailed:
    reason: str = ""
    name = "markFailed"


LifecycleEvent = Union[MarkPaid, MarkCancelled, MarkFailed]

_TARGETS = {
    MarkPaid: TransactionStatus.PAID,
    MarkCancelled: TransactionStatus.CANCELLED,
    MarkFailed: TransactionStatus.FAILED,
}


@dataclass(frozen=True)
class Transition:
    """Outcome of applying an event."""

    transaction: Transaction
    previous_status: TransactionStatus
    changed: bool

    @property
    def status(self) -> TransactionStatus:
        return self.transaction.status


class TransactionLifecycle:
    """Validates and applies status transitions."""

    def apply(
        self,
        transaction: Transaction,
        event: LifecycleEvent,
        now: Optional[datetime] = None,
    ) -> Transition:
        """
        Apply an event to a transaction without mutating it.

        Args:
            transaction: Current state
            event: Lifecycle event
            now: Timestamp to record as paid_at/updated_at

        Returns:
            Transition: New state and whether anything changed

        Raises:
            InvalidTransitionError: If the event is not allowed from the current status
        """
        target = _TARGETS[type(event)]
        current = transaction.status

        if current is TransactionStatus.PAID and target is TransactionStatus.PAID:
            return Transition(transaction=transaction, previous_status=current, changed=False)

        if current is not TransactionStatus.PENDING:
            raise InvalidTransitionError(transaction.reference, current.value, event.name)

        now = now or utcnow()
        changes: Dict[str, Any] = {"status": target, "updated_at": now}
        if isinstance(event, MarkPaid):
            changes["paid_at"] = now
            changes["api_response"] = dict(event.api_response)

        return Transition(
            transaction=dataclasses.replace(transaction, **changes),
            previous_status=current,
            changed=True,
        )

    def transition(
        self,
        store: TransactionStore,
        reference: str,
        event: LifecycleEvent,
    ) -> Optional[Transition]:
        """
        Look up, apply and save inside the store's per-reference exclusive section.

        Returns:
            Optional[Transition]: None if no record exists for the reference

        Raises:
            InvalidTransitionError: If the event is not allowed
            ConcurrentModificationError: If the record kept changing under us
        """
        with store.lock(reference):
            for _ in range(MAX_SAVE_ATTEMPTS):
                current = store.find_by_reference(reference)
                if current is None:
                    return None

                try:
                    result = self.apply(current, event)
                except InvalidTransitionError:
                    metrics.record_transition(event.name, "rejected")
                    logger.warning(
                        "transition_rejected",
                        reference=reference,
                        status=current.status.value,
                        transition_event=event.name,
                    )
                    raise

                if not result.changed:
                    metrics.record_transition(event.name, "noop")
                    logger.info(
                        "transition_noop",
                        reference=reference,
                        status=current.status.value,
                        transition_event=event.name,
                    )
                    return result

                if store.save(result.transaction, expected_status=current.status):
                    metrics.record_transition(event.name, "applied")
                    logger.info(
                        "transition_applied",
                        reference=reference,
                        from_status=current.status.value,
                        to_status=result.status.value,
                    )
                    return result

                logger.warning(
                    "transition_save_conflict",
                    reference=reference,
                    expected_status=current.status.value,
                )

        raise ConcurrentModificationError(reference, current.status.value)
