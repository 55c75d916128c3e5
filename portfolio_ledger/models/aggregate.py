"""
Portfolio aggregate model: the per-user singleton rollup record.

Per-type rollups are embedded as JSON under ``by_type`` keyed by instrument type.
The record is always rewritten whole by the recompute step, never patched.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, TIMESTAMP, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from portfolio_ledger.lib.db import Base


class PortfolioAggregate(Base):  # type: ignore[misc,valid-type]
    """
    Whole-portfolio rollup for one user.

    Attributes:
        user_id: Owning user (one record per user)
        total_cost: Sum of holding cost bases
        current_value: Sum of holding current values
        total_income: Sum of holding income
        total_gain: current_value - total_cost + total_income
        total_return: total_gain / total_cost * 100, or 0 when total_cost is 0
        by_type: {instrument type: {total_cost, current_value, ...}} with decimal strings
        last_calculated: When the rollup was derived
    """

    __tablename__ = "portfolio_aggregates"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)

    total_cost: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)
    current_value: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)
    total_income: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)
    total_gain: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)
    total_return: Mapped[Decimal] = mapped_column(Numeric(20, 8), nullable=False)

    by_type: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    last_calculated: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<PortfolioAggregate(user_id={self.user_id!r}, "
            f"current_value={self.current_value}, total_return={self.total_return})>"
        )
