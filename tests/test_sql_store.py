"""
Integration tests for the SQLAlchemy transaction store (in-memory SQLite).
"""
from datetime import timedelta
from decimal import Decimal
from typing import Callable, Iterator

import pytest
from sqlalchemy import Engine

from kpay_payments.core.exceptions import StoreError
from kpay_payments.core.lifecycle import MarkPaid, TransactionLifecycle
from kpay_payments.core.models import Transaction, TransactionStatus, utcnow
from kpay_payments.database.connection import create_db_engine, create_session_factory, init_db
from kpay_payments.database.repository import SqlAlchemyTransactionStore

REFERENCE = "123456789012345"


@pytest.fixture
def engine() -> Iterator[Engine]:
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def sql_store(engine: Engine) -> SqlAlchemyTransactionStore:
    return SqlAlchemyTransactionStore(create_session_factory(engine))


class TestSqlAlchemyTransactionStore:
    """Test suite for the SQL store."""

    @pytest.mark.integration
    def test_create_and_find(
        self,
        sql_store: SqlAlchemyTransactionStore,
        make_transaction: Callable[..., Transaction],
    ) -> None:
        """Test a created transaction round-trips with UTC datetimes."""
        transaction = make_transaction(metadata={"cart_id": "c1"}, price=Decimal("5000.00"))

        sql_store.create(transaction)
        found = sql_store.find_by_reference(REFERENCE)

        assert found is not None
        assert found.amount == Decimal("5000.00")
        assert found.price == Decimal("5000.00")
        assert found.status is TransactionStatus.PENDING
        assert found.metadata == {"cart_id": "c1"}
        assert found.expires_at.tzinfo is not None
        assert abs(found.expires_at - transaction.expires_at) < timedelta(seconds=1)

    @pytest.mark.integration
    def test_duplicate_reference_rejected(
        self,
        sql_store: SqlAlchemyTransactionStore,
        make_transaction: Callable[..., Transaction],
    ) -> None:
        sql_store.create(make_transaction())

        with pytest.raises(StoreError):
            sql_store.create(make_transaction())

    @pytest.mark.integration
    def test_find_unknown_returns_none(self, sql_store: SqlAlchemyTransactionStore) -> None:
        assert sql_store.find_by_reference(REFERENCE) is None

    @pytest.mark.integration
    def test_conditional_save_rejects_stale_status(
        self,
        sql_store: SqlAlchemyTransactionStore,
        make_transaction: Callable[..., Transaction],
    ) -> None:
        """Test a save conditioned on an outdated status changes nothing."""
        sql_store.create(make_transaction())
        paid = make_transaction(status=TransactionStatus.PAID, paid_at=utcnow())
        cancelled = make_transaction(status=TransactionStatus.CANCELLED)

        assert sql_store.save(paid, expected_status=TransactionStatus.PENDING) is True
        assert sql_store.save(cancelled, expected_status=TransactionStatus.PENDING) is False

        found = sql_store.find_by_reference(REFERENCE)
        assert found.status is TransactionStatus.PAID
        assert found.paid_at is not None

    @pytest.mark.integration
    def test_lifecycle_over_sql_store(
        self,
        sql_store: SqlAlchemyTransactionStore,
        make_transaction: Callable[..., Transaction],
    ) -> None:
        """Test payment through the lifecycle is applied once."""
        sql_store.create(make_transaction())
        lifecycle = TransactionLifecycle()

        first = lifecycle.transition(sql_store, REFERENCE, MarkPaid({"amount": "50.00"}))
        second = lifecycle.transition(sql_store, REFERENCE, MarkPaid({"amount": "99.00"}))

        assert first.changed is True
        assert second.changed is False
        assert sql_store.find_by_reference(REFERENCE).api_response == {"amount": "50.00"}

    @pytest.mark.integration
    def test_listing_queries(
        self,
        sql_store: SqlAlchemyTransactionStore,
        make_transaction: Callable[..., Transaction],
    ) -> None:
        sql_store.create(make_transaction("111111111111111", user_id="alice", order_id="o-1"))
        sql_store.create(
            make_transaction(
                "222222222222222",
                user_id="bob",
                order_id="o-2",
                status=TransactionStatus.PAID,
                paid_at=utcnow(),
            )
        )

        assert [t.reference for t in sql_store.list_by_user("alice")] == ["111111111111111"]
        assert [t.reference for t in sql_store.list_by_order("o-2")] == ["222222222222222"]
        pending = sql_store.list_by_status(TransactionStatus.PENDING)
        assert [t.reference for t in pending] == ["111111111111111"]
