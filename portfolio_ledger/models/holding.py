"""
Holding model representing one tracked instrument or bank account.

The quantity/cost/value columns are denormalized: they are a cache of folding the
holding's non-deleted transactions and are only ever written by the recompute step.
"""

import enum
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional
from uuid import uuid4

from sqlalchemy import (
    TIMESTAMP,
    CheckConstraint,
    Date,
    Enum,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from portfolio_ledger.lib.db import Base

if TYPE_CHECKING:
    from portfolio_ledger.models.transaction import Transaction


class InstrumentType(str, enum.Enum):
    """Enumeration of instrument types."""

    STOCK = "stock"
    FUND = "fund"
    GOLD = "gold"
    BANK = "bank"


class Holding(Base):  # type: ignore[misc,valid-type]
    """
    Represents a position owned by a user.

    Attributes:
        id: Unique identifier for the holding
        user_id: Opaque identifier of the owning user
        type: Instrument type (stock, fund, gold, bank)
        symbol: Upper-cased symbol, unique per user within the instrument type
        name: Display name
        category: Optional free-text category
        current_price: Externally supplied price per unit
        total_quantity: Units held (denormalized)
        avg_cost: total_cost / total_quantity (denormalized)
        total_cost: Sum of buy amounts (denormalized)
        current_value: total_quantity * current_price, or latest balance for bank
        total_income: Dividends, interest and accrued gold interest (denormalized)
        last_transaction_date: Latest non-deleted transaction date
        transaction_count: Number of non-deleted transactions
    """

    __tablename__ = "holdings"

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

    type: Mapped[InstrumentType] = mapped_column(
        Enum(InstrumentType),
        nullable=False,
        index=True,
    )

    symbol: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    current_price: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=8),
        nullable=False,
        default=Decimal("0"),
        doc="External input, never derived from transactions",
    )

    # Denormalized fold of non-deleted transactions
    total_quantity: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=8), nullable=False, default=Decimal("0")
    )
    avg_cost: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=8), nullable=False, default=Decimal("0")
    )
    total_cost: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=8), nullable=False, default=Decimal("0")
    )
    current_value: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=8), nullable=False, default=Decimal("0")
    )
    total_income: Mapped[Decimal] = mapped_column(
        Numeric(precision=20, scale=8), nullable=False, default=Decimal("0")
    )
    last_transaction_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    transaction_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Audit timestamps
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

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction",
        back_populates="holding",
        doc="All transactions of this holding, including soft-deleted ones",
    )

    __table_args__ = (
        CheckConstraint("current_price >= 0", name="holdings_current_price_non_negative"),
        UniqueConstraint("user_id", "type", "symbol", name="holdings_user_type_symbol_unique"),
    )

    @validates("symbol")
    def validate_symbol(self, key: str, value: str) -> str:
        """Store symbols upper-cased so uniqueness is case-insensitive."""
        return value.strip().upper()

    def __repr__(self) -> str:
        """String representation of the holding."""
        return (
            f"<Holding(id={self.id}, type={self.type.value}, symbol='{self.symbol}', "
            f"quantity={self.total_quantity}, avg_cost={self.avg_cost})>"
        )
