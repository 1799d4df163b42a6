"""SQLAlchemy database models for KPay transactions."""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class TransactionRecord(Base):
    """
    Payment reference records table.

    One row per gateway reference. Status changes are written with a
    conditional UPDATE on the previously read status.
    """

    __tablename__ = "kpay_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    reference: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    entity: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    price: Mapped[Decimal | None] = mapped_column(Numeric(15, 2), nullable=True)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="AOA")
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # "metadata" is reserved on declarative classes
    metadata_: Mapped[Dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)
    api_response: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    user_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    order_id: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="positive_amount"),
        CheckConstraint(
            "status IN ('pending', 'paid', 'cancelled', 'failed')",
            name="valid_status",
        ),
        CheckConstraint("length(currency) = 3", name="valid_currency"),
        Index("idx_kpay_transactions_status_expires", "status", "expires_at"),
    )

    def __repr__(self) -> str:
        """String representation of TransactionRecord."""
        return (
            f"<TransactionRecord(reference={self.reference}, "
            f"amount={self.amount}, status={self.status})>"
        )
