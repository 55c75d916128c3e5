"""
Transaction model for holding ledger entries.

Transactions are append-only with soft delete: a deleted row keeps its data and is
flagged with ``deleted``/``deleted_at`` so it stays retrievable for audit.
"""

import enum
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional
from uuid import uuid4

from sqlalchemy import (
    TIMESTAMP,
    Boolean,
    CheckConstraint,
    Date,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portfolio_ledger.lib.db import Base

if TYPE_CHECKING:
    from portfolio_ledger.models.holding import Holding


class TransactionType(str, enum.Enum):
    """Enumeration of transaction types."""

    BUY = "buy"
    SELL = "sell"
    DIVIDEND = "dividend"
    INTEREST = "interest"
    BALANCE = "balance"  # bank holdings only


# Types whose amount is the entered price verbatim
FLAT_AMOUNT_TYPES = frozenset(
    {TransactionType.DIVIDEND, TransactionType.INTEREST, TransactionType.BALANCE}
)
QUANTITY_TYPES = frozenset({TransactionType.BUY, TransactionType.SELL})


class Transaction(Base):  # type: ignore[misc,valid-type]
    """
    Represents one ledger entry of a holding.

    Attributes:
        id: Unique identifier
        user_id: Opaque identifier of the owning user
        holding_id: Reference to the holding (required)
        type: Transaction type
        date: Calendar date of the entry
        quantity: Units for buy/sell, 0 otherwise
        price: Price per unit, or the flat amount for income/balance entries
        amount: quantity * price, or price for income/balance entries
        interest_rate: Annual rate in percent (gold buys only)
        interest_start_date: Accrual start, defaults to ``date`` when absent
        deleted: Soft-delete flag
        deleted_at: When the entry was soft-deleted
    """

    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    user_id: Mapped[str] = mapped_column(
        String(128),
        nullable=False,
        index=True,
    )

    holding_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("holdings.id", ondelete="RESTRICT"),
        nullable=False,
    )

    type: Mapped[TransactionType] = mapped_column(
        Enum(TransactionType),
        nullable=False,
    )

    # Declared before `date` so the annotation still sees datetime.date
    interest_start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    date: Mapped[date] = mapped_column(Date, nullable=False)

    # DECIMAL PRECISION: Numeric(20, 8) so fractional units x precise prices stay exact
    quantity: Mapped[Decimal] = mapped_column(
        Numeric(20, 8),
        nullable=False,
        default=Decimal("0"),
    )

    price: Mapped[Decimal] = mapped_column(
        Numeric(20, 8),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(20, 8),
        nullable=False,
    )

    interest_rate: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(10, 4),
        nullable=True,
    )

    deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP, nullable=True)

    # Audit fields
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    holding: Mapped["Holding"] = relationship(
        "Holding",
        back_populates="transactions",
    )

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="check_quantity_non_negative"),
        CheckConstraint("price > 0", name="check_price_positive"),
        CheckConstraint("amount >= 0", name="check_amount_non_negative"),
        CheckConstraint(
            "interest_rate IS NULL OR (interest_rate >= 0 AND interest_rate <= 100)",
            name="check_interest_rate_range",
        ),
        # Page listing of live entries
        Index(
            "idx_transactions_holding_deleted_date",
            "holding_id",
            "deleted",
            text("date DESC"),
        ),
        # Full history including tombstones
        Index(
            "idx_transactions_holding_date",
            "holding_id",
            text("date DESC"),
        ),
    )

    def __repr__(self) -> str:
        """Return string representation of transaction."""
        return (
            f"<Transaction(id={self.id!r}, "
            f"type={self.type.value}, "
            f"date={self.date}, "
            f"amount={self.amount}, deleted={self.deleted})>"
        )
