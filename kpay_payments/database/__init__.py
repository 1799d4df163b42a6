"""Database package for KPay transactions."""
from .connection import close_db, get_engine, get_session_factory, init_db, session_scope
from .models import Base, TransactionRecord
from .repository import SqlAlchemyTransactionStore

__all__ = [
    "Base",
    "SqlAlchemyTransactionStore",
    "TransactionRecord",
    "close_db",
    "get_engine",
    "get_session_factory",
    "init_db",
    "session_scope",
]
