"""
KPay API client over httpx.

Implements:
- Authenticated JSON requests (Sys-Marc-Zone, Sys-Factory-Bag, Bearer token)
- Sandbox/production endpoint selection
- Mapping of every transport or gateway failure onto GatewayError

One bounded attempt per call: the gateway documents no retry semantics, so a
failed call is reported to the caller instead of being replayed.
"""
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Union

import httpx
import structlog

from ..config import Settings, get_settings
from ..core.exceptions import ConfigurationError, GatewayError
from ..core.gateway import Amount, GatewayClient
from ..core.models import (
    GATEWAY_DATETIME_FORMAT,
    PaymentInfo,
    ReferenceInfo,
    format_amount,
    truncate_description,
    utcnow,
)
from ..monitoring.metrics import metrics

logger = structlog.get_logger(__name__)

SUCCESS_STATUSES = (200, 201)

ENDPOINT_REFERENCE = "/ref"
ENDPOINT_CANCEL = "/request/cl"
ENDPOINT_CHECK_PAID = "/request-paid"
ENDPOINT_LIST_PAID = "/list"
ENDPOINT_EMULATE = "/emulate"


def _body_status(body: Any, default: int = 200) -> Optional[int]:
    """Read the gateway's own status field from a response body."""
    if not isinstance(body, dict):
        return None
    value = body.get("status", default)
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class KPayClient(GatewayClient):
    """
    HTTP client for the Kyami Pay reference API.

    TLS certificate verification is always on; there is deliberately no
    setting to turn it off.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            settings: Optional settings (defaults to the cached environment settings)
            transport: Optional httpx transport, used by tests to stub the gateway

        Raises:
            ConfigurationError: If token, hash or entity is not configured
        """
        settings = settings or get_settings()
        missing = settings.missing_credentials()
        if missing:
            raise ConfigurationError(
                "KPay configuration incomplete. Please set "
                + ", ".join(f"KPAY_{name.upper()}" for name in missing),
                missing=missing,
            )

        self.settings = settings
        self.base_url = settings.api_base_url
        self._path_prefix = "/sandbox" if settings.sandbox_mode else ""
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=settings.timeout,
            verify=True,
            headers=self._headers(),
            transport=transport,
        )

        logger.info(
            "kpay_client_initialized",
            base_url=self.base_url,
            sandbox_mode=settings.sandbox_mode,
            entity=settings.entity,
            timeout=settings.timeout,
        )

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Sys-Marc-Zone": self.settings.hash,
            "Sys-Factory-Bag": self.settings.factory_bag,
            "Authorization": f"Bearer {self.settings.token}",
        }

    def _path(self, endpoint: str) -> str:
        return f"{self._path_prefix}{endpoint}"

    def _request(
        self,
        operation: str,
        method: str,
        endpoint: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Send one request and return the decoded JSON body.

        Raises:
            GatewayError: transport failure, non-2xx status or undecodable body
        """
        path = self._path(endpoint)
        if self.settings.log_requests:
            logger.info(
                "kpay_request",
                operation=operation,
                method=method,
                path=path,
                payload=payload,
            )

        start_time = time.monotonic()
        try:
            response = self._client.request(method, path, json=payload)
        except httpx.TimeoutException as e:
            self._fail(
                operation,
                GatewayError.TRANSPORT,
                start_time,
                f"timed out after {self.settings.timeout}s",
                error=e,
            )
        except httpx.HTTPError as e:
            self._fail(operation, GatewayError.TRANSPORT, start_time, type(e).__name__, error=e)

        try:
            body = response.json()
        except ValueError:
            body = None

        if self.settings.log_requests:
            logger.info(
                "kpay_response",
                operation=operation,
                status_code=response.status_code,
                body=body if body is not None else response.text[:500],
            )

        if not response.is_success:
            self._fail(
                operation,
                GatewayError.REJECTED,
                start_time,
                f"HTTP {response.status_code}",
                raw_response=body if body is not None else response.text[:500],
            )

        if body is None:
            self._fail(
                operation,
                GatewayError.REJECTED,
                start_time,
                "response body is not valid JSON",
                raw_response=response.text[:500],
            )

        metrics.record_gateway_call(operation, "success", time.monotonic() - start_time)
        return body

    def _fail(
        self,
        operation: str,
        cause: str,
        start_time: float,
        detail: str,
        raw_response: Any = None,
        error: Optional[Exception] = None,
    ) -> None:
        metrics.record_gateway_call(operation, cause, time.monotonic() - start_time)
        logger.error(
            "kpay_gateway_error",
            operation=operation,
            cause=cause,
            detail=detail,
            error=str(error) if error else None,
        )
        raise GatewayError(operation, cause, detail, raw_response) from error

    def _rejected(self, operation: str, detail: str, body: Any) -> GatewayError:
        logger.error(
            "kpay_gateway_error",
            operation=operation,
            cause=GatewayError.REJECTED,
            detail=detail,
        )
        return GatewayError(operation, GatewayError.REJECTED, detail, body)

    def _format_expiry(self, expiry: Optional[Union[datetime, str]]) -> str:
        if expiry is None:
            expiry = utcnow() + timedelta(hours=self.settings.reference_expiry_hours)
        if isinstance(expiry, datetime):
            if expiry.tzinfo is not None:
                expiry = expiry.astimezone(timezone.utc)
            return expiry.strftime(GATEWAY_DATETIME_FORMAT)
        return expiry

    def generate_reference(
        self,
        price: Amount,
        description: Optional[str] = None,
        expiry: Optional[Union[datetime, str]] = None,
    ) -> ReferenceInfo:
        """
        Generate a payment reference.

        Args:
            price: Amount to charge
            description: Optional description, truncated to 30 characters
            expiry: Optional expiry (defaults to now + reference_expiry_hours)

        Returns:
            ReferenceInfo: Gateway-assigned reference details

        Raises:
            GatewayError: If the request fails or the gateway does not report status 200
        """
        operation = "generateReference"
        payload: Dict[str, Any] = {
            "entity": self.settings.entity,
            "price": format_amount(price),
        }
        description = truncate_description(description)
        if description:
            payload["description"] = description
        payload["expiry"] = self._format_expiry(expiry)

        body = self._request(operation, "POST", ENDPOINT_REFERENCE, payload)

        if _body_status(body, default=0) != 200 or not body.get("reference"):
            raise self._rejected(operation, "gateway did not confirm reference creation", body)

        info = ReferenceInfo.from_response(body)
        logger.info(
            "kpay_reference_generated",
            reference=info.reference,
            price=info.price,
            expiry=info.expiry,
        )
        return info

    def check_payment(self, reference: str) -> Optional[PaymentInfo]:
        """
        Check whether a reference has been paid.

        Returns:
            Optional[PaymentInfo]: Payment details, or None if not paid yet

        Raises:
            GatewayError: If the request itself fails
        """
        body = self._request("checkPayment", "POST", ENDPOINT_CHECK_PAID, {"reference": reference})

        if _body_status(body) not in SUCCESS_STATUSES:
            logger.info("kpay_reference_not_paid", reference=reference)
            return None

        return PaymentInfo.from_response(reference, body)

    def cancel_reference(self, reference: str) -> bool:
        """
        Cancel a payment reference.

        Raises:
            GatewayError: If the gateway does not confirm the cancellation
        """
        operation = "cancelReference"
        body = self._request(operation, "POST", ENDPOINT_CANCEL, {"reference": reference})

        if _body_status(body) not in SUCCESS_STATUSES:
            raise self._rejected(operation, "gateway did not confirm cancellation", body)

        logger.info("kpay_reference_cancelled", reference=reference)
        return True

    def list_paid_references(self) -> List[Dict[str, Any]]:
        """
        List references the gateway reports as paid.

        Returns:
            List[Dict[str, Any]]: One entry per paid reference (empty if the body is not a list)
        """
        body = self._request("listPaidReferences", "GET", ENDPOINT_LIST_PAID)

        if isinstance(body, dict) and isinstance(body.get("data"), list):
            body = body["data"]
        if not isinstance(body, list):
            return []
        return [entry for entry in body if isinstance(entry, dict)]

    def simulate_payment(self, reference: str, amount: Amount) -> bool:
        """
        Emulate a payment against the sandbox.

        Returns False without calling the gateway outside sandbox mode or
        in a production environment.
        """
        operation = "simulatePayment"
        if not self.settings.sandbox_mode or self.settings.is_production:
            logger.warning(
                "kpay_simulate_payment_disabled",
                reference=reference,
                sandbox_mode=self.settings.sandbox_mode,
                app_env=self.settings.app_env,
            )
            return False

        body = self._request(
            operation,
            "POST",
            ENDPOINT_EMULATE,
            {"reference": reference, "amount": format_amount(amount)},
        )

        if _body_status(body) not in SUCCESS_STATUSES:
            raise self._rejected(operation, "gateway did not accept the simulated payment", body)

        logger.info("kpay_payment_simulated", reference=reference)
        return True

    def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        self._client.close()

    def __enter__(self) -> "KPayClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
