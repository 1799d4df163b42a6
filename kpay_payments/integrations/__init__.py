"""External integrations for payment references."""
from .kpay_client import KPayClient

__all__ = ["KPayClient"]
