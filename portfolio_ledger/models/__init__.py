"""
SQLAlchemy models for the portfolio-ledger application.

All models inherit from the Base declarative class defined in portfolio_ledger.lib.db.
"""

from portfolio_ledger.models.aggregate import PortfolioAggregate
from portfolio_ledger.models.holding import Holding, InstrumentType
from portfolio_ledger.models.transaction import (
    FLAT_AMOUNT_TYPES,
    QUANTITY_TYPES,
    Transaction,
    TransactionType,
)

__all__ = [
    # Core models
    "Holding",
    "Transaction",
    "PortfolioAggregate",
    # Enums
    "InstrumentType",
    "TransactionType",
    # Type groups
    "FLAT_AMOUNT_TYPES",
    "QUANTITY_TYPES",
]
