"""
KPay exception hierarchy.

Every error raised across the core boundary derives from KPayError so the
surrounding layers can map it to a response without knowing about httpx,
SQLAlchemy or any other library underneath.
"""
from typing import Any, Dict, Optional


class KPayError(Exception):
    """Base exception for all KPay payment errors."""

    pass


class ConfigurationError(KPayError):
    """Raised at startup when required gateway settings are missing."""

    def __init__(self, message: str, missing: Optional[list[str]] = None):
        super().__init__(message)
        self.missing = missing or []


class ValidationError(KPayError):
    """
    Caller input failed validation.

    Carries a field -> message mapping so every problem is reported at once.
    """

    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        message = "; ".join(f"{field}: {msg}" for field, msg in self.errors.items())
        super().__init__(message or "Validation error")

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to API error response format."""
        return {"message": "Validation error", "errors": self.errors}


class GatewayError(KPayError):
    """
    A gateway call failed.

    Attributes:
        operation: Gateway operation name (e.g. ``generateReference``)
        cause: ``"transport"`` for network/TLS/timeout failures,
            ``"rejected"`` for HTTP or gateway-reported failures
        detail: Human readable detail, never containing credentials
        raw_response: Decoded gateway body when one was received
    """

    TRANSPORT = "transport"
    REJECTED = "rejected"

    def __init__(
        self,
        operation: str,
        cause: str,
        detail: str = "",
        raw_response: Optional[Any] = None,
    ):
        self.operation = operation
        self.cause = cause
        self.detail = detail
        self.raw_response = raw_response
        message = f"{operation} failed ({cause})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class InvalidTransitionError(KPayError):
    """Attempted a status change the lifecycle does not allow."""

    def __init__(self, reference: str, from_status: str, event: str):
        self.reference = reference
        self.from_status = from_status
        self.event = event
        super().__init__(
            f"Cannot apply {event} to transaction {reference} in status {from_status}"
        )


class SignatureError(KPayError):
    """Webhook signature did not match the payload."""

    pass


class NotFoundError(KPayError):
    """No local transaction exists for the reference."""

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Transaction {reference} not found")


class StoreError(KPayError):
    """The transaction store failed to read or write a record."""

    pass


class ConcurrentModificationError(StoreError):
    """A status-conditioned save lost a race with another writer."""

    def __init__(self, reference: str, expected_status: str):
        self.reference = reference
        self.expected_status = expected_status
        super().__init__(
            f"Transaction {reference} changed concurrently (expected status {expected_status})"
        )


class ReconciliationRequired(KPayError):
    """
    Signal: the gateway created a reference but the local record was not saved.

    This is delivered to the reconciliation sink and logged; it is not raised
    to the caller of ``generate`` because the remote side effect already
    happened and the caller still needs the reference.
    """

    def __init__(self, transaction: Any, cause: BaseException):
        self.transaction = transaction
        self.cause = cause
        super().__init__(
            f"Reference {transaction.reference} exists at the gateway but was not "
            f"stored locally: {cause}"
        )

    @property
    def reference(self) -> str:
        return self.transaction.reference
