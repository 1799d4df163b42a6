"""
Webhook signature verification and payment confirmation processing.

Implements:
- HMAC-SHA256 over canonical JSON, compared in constant time
- Payload validation before any storage access
- Idempotent confirmation through the transaction lifecycle
- Acknowledgement codes the gateway's retry contract expects
"""
import hashlib
import hmac
import json
from typing import Any, Mapping, Optional

import structlog

from ..monitoring.metrics import metrics
from .events import EventBus, PaymentConfirmed
from .exceptions import InvalidTransitionError, SignatureError
from .lifecycle import MarkPaid, TransactionLifecycle
from .models import AckResult
from .store import TransactionStore

logger = structlog.get_logger(__name__)

REQUIRED_FIELDS = ("reference", "amount")


def canonical_json(payload: Mapping[str, Any]) -> bytes:
    """Serialise a payload deterministically: sorted keys, no whitespace, UTF-8."""
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    ).encode("utf-8")


class WebhookVerifier:
    """
    Verifies the ``X-Signature`` header of inbound webhooks.

    With no secret configured every payload verifies. That permissive default
    is an explicit configuration choice; it is logged as insecure when the
    application runs in production.
    """

    def __init__(self, secret: Optional[str] = None, production: bool = False):
        self.secret = secret or ""
        if not self.secret:
            log = logger.warning if production else logger.info
            log(
                "webhook_signature_verification_disabled",
                insecure=production,
                reason="no webhook secret configured",
            )

    @property
    def enabled(self) -> bool:
        return bool(self.secret)

    def sign(self, payload: Mapping[str, Any]) -> str:
        """Compute the hex HMAC-SHA256 signature for a payload."""
        return hmac.new(
            self.secret.encode("utf-8"),
            canonical_json(payload),
            hashlib.sha256,
        ).hexdigest()

    def verify(self, payload: Mapping[str, Any], signature: Optional[str]) -> bool:
        """
        Check a payload against its signature.

        Args:
            payload: Decoded webhook body
            signature: Value of the X-Signature header

        Returns:
            bool: True if the signature matches (always True without a secret)
        """
        if not self.secret:
            return True
        if not signature:
            return False
        return hmac.compare_digest(self.sign(payload), signature.strip().lower())

    def require_valid(self, payload: Mapping[str, Any], signature: Optional[str]) -> None:
        """
        Raises:
            SignatureError: If the signature does not match
        """
        if not self.verify(payload, signature):
            raise SignatureError("Invalid webhook signature")


class WebhookHandler:
    """
    Processes payment confirmation webhooks.

    Safe under duplicate delivery: the lifecycle turns a second confirmation
    into a no-op, and ``PaymentConfirmed`` is only published when a record
    actually changed.
    """

    def __init__(
        self,
        verifier: WebhookVerifier,
        store: TransactionStore,
        lifecycle: Optional[TransactionLifecycle] = None,
        events: Optional[EventBus] = None,
    ):
        self.verifier = verifier
        self.store = store
        self.lifecycle = lifecycle or TransactionLifecycle()
        self.events = events or EventBus()

    @staticmethod
    def _missing_fields(payload: Any) -> Optional[list]:
        if not isinstance(payload, Mapping):
            return list(REQUIRED_FIELDS)
        return [name for name in REQUIRED_FIELDS if payload.get(name) in (None, "")]

    def process(self, raw_payload: Any, signature_header: Optional[str] = None) -> AckResult:
        """
        Process one webhook delivery.

        Args:
            raw_payload: Decoded JSON body
            signature_header: X-Signature header value, if any

        Returns:
            AckResult: 200 acknowledged, 400 malformed, 401 bad signature, 500 internal error
        """
        result = self._process(raw_payload, signature_header)
        metrics.record_webhook(result.code)
        return result

    def _process(self, raw_payload: Any, signature_header: Optional[str]) -> AckResult:
        try:
            missing = self._missing_fields(raw_payload)
            if missing:
                logger.warning("webhook_invalid_payload", missing_fields=missing)
                return AckResult(400, "Invalid payload")

            payload = dict(raw_payload)
            reference = str(payload["reference"])

            if self.verifier.enabled and not self.verifier.verify(payload, signature_header):
                logger.warning("webhook_signature_mismatch", reference=reference)
                return AckResult(401, "Invalid signature")

            try:
                transition = self.lifecycle.transition(self.store, reference, MarkPaid(payload))
            except InvalidTransitionError as e:
                # Paid at the gateway but terminal locally; needs an operator,
                # not a gateway retry.
                logger.error(
                    "webhook_payment_for_terminal_transaction",
                    reference=reference,
                    status=e.from_status,
                    amount=payload["amount"],
                )
                return AckResult(200)

            if transition is None:
                logger.warning("webhook_transaction_not_found", reference=reference)
                return AckResult(200)

            if transition.changed:
                self.events.publish(
                    PaymentConfirmed(
                        transaction=transition.transaction,
                        payload=payload,
                        source="webhook",
                    )
                )
                logger.info(
                    "webhook_payment_confirmed",
                    reference=reference,
                    amount=payload["amount"],
                )
            else:
                logger.info("webhook_duplicate_confirmation", reference=reference)

            return AckResult(200)

        except Exception as e:
            logger.error(
                "webhook_processing_error",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return AckResult(500, "Internal server error")
