"""
SQLAlchemy-backed transaction store.

Status changes use ``UPDATE ... WHERE reference = :ref AND status = :expected``
so that writers in different processes cannot both apply a transition; the
losing writer sees a zero row count.
"""
from typing import List, Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..core.exceptions import StoreError
from ..core.models import Transaction, TransactionStatus, ensure_utc, utcnow
from ..core.store import TransactionStore
from .connection import session_scope
from .models import TransactionRecord

logger = structlog.get_logger(__name__)


def _to_domain(record: TransactionRecord) -> Transaction:
    return Transaction(
        reference=record.reference,
        entity=record.entity,
        amount=record.amount,
        currency=record.currency,
        status=TransactionStatus(record.status),
        price=record.price,
        description=record.description,
        expires_at=ensure_utc(record.expires_at),
        paid_at=ensure_utc(record.paid_at),
        metadata=dict(record.metadata_ or {}),
        api_response=record.api_response,
        user_id=record.user_id,
        order_id=record.order_id,
        created_at=ensure_utc(record.created_at),
        updated_at=ensure_utc(record.updated_at),
    )


def _mutable_columns(transaction: Transaction) -> dict:
    return {
        "status": transaction.status.value,
        "price": transaction.price,
        "description": transaction.description,
        "expires_at": ensure_utc(transaction.expires_at),
        "paid_at": ensure_utc(transaction.paid_at),
        "metadata_": transaction.metadata,
        "api_response": transaction.api_response,
    }


class SqlAlchemyTransactionStore(TransactionStore):
    """Transaction store over a relational database."""

    def __init__(self, session_factory: sessionmaker[Session]):
        super().__init__()
        self.session_factory = session_factory

    def create(self, transaction: Transaction) -> Transaction:
        record = TransactionRecord(
            reference=transaction.reference,
            entity=transaction.entity,
            amount=transaction.amount,
            currency=transaction.currency,
            user_id=transaction.user_id,
            order_id=transaction.order_id,
            created_at=ensure_utc(transaction.created_at),
            updated_at=ensure_utc(transaction.updated_at),
            **_mutable_columns(transaction),
        )
        try:
            with session_scope(self.session_factory) as session:
                session.add(record)
                session.flush()
                stored = _to_domain(record)
        except IntegrityError as e:
            logger.warning("transaction_insert_conflict", reference=transaction.reference)
            raise StoreError(f"Transaction {transaction.reference} already exists") from e
        except SQLAlchemyError as e:
            logger.error("transaction_insert_failed", reference=transaction.reference, error=str(e))
            raise StoreError(f"Failed to store transaction {transaction.reference}") from e

        return stored

    def save(self, transaction: Transaction, expected_status: TransactionStatus) -> bool:
        values = _mutable_columns(transaction)
        values["updated_at"] = utcnow()
        stmt = (
            update(TransactionRecord)
            .where(
                TransactionRecord.reference == transaction.reference,
                TransactionRecord.status == expected_status.value,
            )
            .values({getattr(TransactionRecord, key): value for key, value in values.items()})
        )
        try:
            with session_scope(self.session_factory) as session:
                result = session.execute(stmt)
                return result.rowcount == 1
        except SQLAlchemyError as e:
            logger.error("transaction_update_failed", reference=transaction.reference, error=str(e))
            raise StoreError(f"Failed to update transaction {transaction.reference}") from e

    def _select(self, *criteria) -> List[Transaction]:
        stmt = select(TransactionRecord).where(*criteria).order_by(TransactionRecord.id)
        try:
            with session_scope(self.session_factory) as session:
                return [_to_domain(record) for record in session.scalars(stmt)]
        except SQLAlchemyError as e:
            logger.error("transaction_query_failed", error=str(e))
            raise StoreError("Failed to query transactions") from e

    def find_by_reference(self, reference: str) -> Optional[Transaction]:
        found = self._select(TransactionRecord.reference == reference)
        return found[0] if found else None

    def list_by_status(self, status: TransactionStatus) -> List[Transaction]:
        return self._select(TransactionRecord.status == status.value)

    def list_by_user(self, user_id: str) -> List[Transaction]:
        return self._select(TransactionRecord.user_id == user_id)

    def list_by_order(self, order_id: str) -> List[Transaction]:
        return self._select(TransactionRecord.order_id == order_id)
