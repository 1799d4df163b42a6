"""HTTP API for KPay payment references."""
from .main import create_app

__all__ = ["create_app"]
