"""
Input validation for caller requests.

Each validator collects every problem into a single ValidationError instead
of stopping at the first one.
"""
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional

from .exceptions import ValidationError
from .models import DESCRIPTION_MAX_LENGTH, GATEWAY_DATETIME_FORMAT, GenerateRequest, utcnow

MIN_AMOUNT = Decimal("0.01")
MAX_AMOUNT = Decimal("999999999.99")
REFERENCE_PATTERN = re.compile(r"^[0-9]{15}$")
IDENTIFIER_MAX_LENGTH = 255


def _parse_amount(value: Any, errors: Dict[str, str]) -> Optional[Decimal]:
    if value is None or value == "":
        errors["amount"] = "Payment amount is required"
        return None
    if isinstance(value, bool):
        errors["amount"] = "Payment amount must be a number"
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        errors["amount"] = "Payment amount must be a number"
        return None
    if not amount.is_finite():
        errors["amount"] = "Payment amount must be a number"
        return None
    if amount < MIN_AMOUNT:
        errors["amount"] = "Payment amount must be greater than 0"
        return None
    if amount > MAX_AMOUNT:
        errors["amount"] = f"Payment amount cannot exceed {MAX_AMOUNT}"
        return None
    return amount


def _parse_expiry(value: Any, now: datetime, errors: Dict[str, str]) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        expiry = value
    elif isinstance(value, str):
        try:
            expiry = datetime.strptime(value, GATEWAY_DATETIME_FORMAT)
        except ValueError:
            errors["expiry"] = "Expiry must be in format: Y-m-d H:i:s"
            return None
    else:
        errors["expiry"] = "Expiry must be in format: Y-m-d H:i:s"
        return None
    if expiry.tzinfo is None:
        expiry = expiry.replace(tzinfo=timezone.utc)
    if expiry <= now:
        errors["expiry"] = "Expiry date must be in the future"
        return None
    return expiry


def _optional_identifier(
    data: Mapping[str, Any], key: str, errors: Dict[str, str]
) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, (str, int)):
        errors[key] = f"{key} must be a string"
        return None
    value = str(value)
    if len(value) > IDENTIFIER_MAX_LENGTH:
        errors[key] = f"{key} cannot exceed {IDENTIFIER_MAX_LENGTH} characters"
        return None
    return value


def validate_generate_request(
    data: Mapping[str, Any], now: Optional[datetime] = None
) -> GenerateRequest:
    """
    Validate a reference generation request.

    Args:
        data: Raw request fields (amount, description, expiry, user_id,
            order_id, metadata, currency)
        now: Reference time for the expiry check

    Returns:
        GenerateRequest: Validated request

    Raises:
        ValidationError: If any field is invalid
    """
    now = now or utcnow()
    errors: Dict[str, str] = {}

    amount = _parse_amount(data.get("amount"), errors)

    description = data.get("description")
    if description is not None:
        if not isinstance(description, str):
            errors["description"] = "Description must be a string"
        elif len(description) > DESCRIPTION_MAX_LENGTH:
            errors["description"] = f"Description cannot exceed {DESCRIPTION_MAX_LENGTH} characters"

    expiry = _parse_expiry(data.get("expiry"), now, errors)
    user_id = _optional_identifier(data, "user_id", errors)
    order_id = _optional_identifier(data, "order_id", errors)

    metadata = data.get("metadata")
    if metadata is None:
        metadata = {}
    elif not isinstance(metadata, Mapping):
        errors["metadata"] = "Metadata must be an object"

    currency = data.get("currency")
    if currency is not None and (not isinstance(currency, str) or len(currency) != 3):
        errors["currency"] = "Currency must be 3-letter code"

    if errors:
        raise ValidationError(errors)

    return GenerateRequest(
        amount=amount,
        description=description or None,
        expiry=expiry,
        user_id=user_id,
        order_id=order_id,
        metadata=dict(metadata),
        currency=currency.upper() if currency else None,
    )


def validate_reference(reference: Any) -> str:
    """
    Validate a gateway reference: exactly 15 digits.

    Raises:
        ValidationError: If the reference is missing or malformed
    """
    if reference is None or reference == "":
        raise ValidationError({"reference": "Reference is required"})
    reference = str(reference)
    if len(reference) != 15:
        raise ValidationError({"reference": "Reference must be exactly 15 characters"})
    if not REFERENCE_PATTERN.match(reference):
        raise ValidationError({"reference": "Reference must contain only numbers"})
    return reference
