"""
Payment gateway port (abstract interface).

Defines the contract the orchestrator and the reconciliation engine depend on.
The HTTP implementation lives in ``kpay_payments.integrations.kpay_client``;
tests substitute mocks built from this interface.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from .models import PaymentInfo, ReferenceInfo

Amount = Union[Decimal, str]


class GatewayClient(ABC):
    """Abstract KPay gateway interface."""

    @abstractmethod
    def generate_reference(
        self,
        price: Amount,
        description: Optional[str] = None,
        expiry: Optional[Union[datetime, str]] = None,
    ) -> ReferenceInfo:
        """Create a payment reference at the gateway."""
        ...

    @abstractmethod
    def check_payment(self, reference: str) -> Optional[PaymentInfo]:
        """Return payment info if the reference is paid, None if not yet paid."""
        ...

    @abstractmethod
    def cancel_reference(self, reference: str) -> bool:
        """Cancel a reference at the gateway."""
        ...

    @abstractmethod
    def list_paid_references(self) -> List[Dict[str, Any]]:
        """List references the gateway reports as paid."""
        ...

    @abstractmethod
    def simulate_payment(self, reference: str, amount: Amount) -> bool:
        """Emulate a payment (sandbox only)."""
        ...
