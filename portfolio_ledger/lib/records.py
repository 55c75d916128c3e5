"""Pydantic record shapes used at the store and cache boundaries."""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from portfolio_ledger.lib.validators import sanitize_text
from portfolio_ledger.models import Holding, InstrumentType, PortfolioAggregate, Transaction
from portfolio_ledger.models.transaction import TransactionType

ZERO = Decimal("0")

RawNumber = Optional[Union[Decimal, str]]
RawDate = Optional[Union[date, str]]


class HoldingBase(BaseModel):
    """Fields shared by every instrument type."""

    id: str
    user_id: str
    symbol: str
    name: str
    category: Optional[str] = None
    current_price: Decimal = ZERO
    total_quantity: Decimal = ZERO
    avg_cost: Decimal = ZERO
    total_cost: Decimal = ZERO
    current_value: Decimal = ZERO
    total_income: Decimal = ZERO
    last_transaction_date: Optional[date] = None
    transaction_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("current_price")
    @classmethod
    def validate_price_non_negative(cls, v: Decimal) -> Decimal:
        """Ensure the external price is non-negative."""
        if v < 0:
            raise ValueError(f"current_price must be non-negative, got {v}")
        return v


class StockHolding(HoldingBase):
    """Listed equity."""

    type: Literal["stock"] = "stock"


class FundHolding(HoldingBase):
    """Mutual fund or ETF."""

    type: Literal["fund"] = "fund"


class GoldHolding(HoldingBase):
    """Gold, optionally earning interest on purchased lots."""

    type: Literal["gold"] = "gold"


class BankHolding(HoldingBase):
    """Bank account. Quantity and cost fields carry no meaning and are always zero."""

    type: Literal["bank"] = "bank"

    @model_validator(mode="after")
    def zero_position_fields(self) -> "BankHolding":
        """Bank balances have no quantity, cost or income."""
        self.total_quantity = ZERO
        self.avg_cost = ZERO
        self.total_cost = ZERO
        self.total_income = ZERO
        return self


HoldingRecord = Annotated[
    Union[StockHolding, FundHolding, GoldHolding, BankHolding],
    Field(discriminator="type"),
]

holding_adapter: TypeAdapter[Any] = TypeAdapter(HoldingRecord)
holding_list_adapter: TypeAdapter[Any] = TypeAdapter(list[HoldingRecord])


class TransactionRecord(BaseModel):
    """Committed ledger entry, tombstones included."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    holding_id: str
    type: TransactionType
    date: date
    quantity: Decimal = ZERO
    price: Decimal
    amount: Decimal
    interest_rate: Optional[Decimal] = None
    interest_start_date: Optional[date] = None
    deleted: bool = False
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


transaction_list_adapter: TypeAdapter[list[TransactionRecord]] = TypeAdapter(
    list[TransactionRecord]
)


class TypeAggregateRecord(BaseModel):
    """Rollup of all holdings of one instrument type."""

    total_cost: Decimal = ZERO
    current_value: Decimal = ZERO
    total_income: Decimal = ZERO
    total_gain: Decimal = ZERO
    total_return: Decimal = ZERO


class PortfolioAggregateRecord(BaseModel):
    """Whole-portfolio rollup with embedded per-type rollups."""

    model_config = ConfigDict(from_attributes=True)

    user_id: str
    total_cost: Decimal = ZERO
    current_value: Decimal = ZERO
    total_income: Decimal = ZERO
    total_gain: Decimal = ZERO
    total_return: Decimal = ZERO
    by_type: dict[InstrumentType, TypeAggregateRecord] = Field(default_factory=dict)
    last_calculated: Optional[datetime] = None


class TransactionDraft(BaseModel):
    """
    Raw mutation input, before validation.

    Numeric and date fields stay loosely typed here so that the validation layer
    can reject them with a specific reason instead of a generic parse error.
    """

    type: str = TransactionType.BUY.value
    date: RawDate = None
    quantity: RawNumber = None
    price: RawNumber = None
    interest_rate: RawNumber = None
    interest_start_date: RawDate = None

    # New holding fields
    name: Optional[str] = None
    symbol: Optional[str] = None
    category: Optional[str] = None

    @field_validator("type", "name", "symbol", "category", mode="before")
    @classmethod
    def sanitize_free_text(cls, v: Any) -> Any:
        """Strip markup and cap length on every free-text field."""
        if isinstance(v, str):
            return sanitize_text(v)
        return v

    @field_validator("quantity", "price", "interest_rate", mode="before")
    @classmethod
    def blank_number_is_missing(cls, v: Any) -> Any:
        """Treat empty form fields as absent."""
        if isinstance(v, str) and not v.strip():
            return None
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return Decimal(str(v))
        return v


def to_holding_record(holding: Holding) -> Any:
    """Validate an ORM holding into its tagged record variant."""
    return holding_adapter.validate_python(
        {
            "id": holding.id,
            "user_id": holding.user_id,
            "type": InstrumentType(holding.type).value,
            "symbol": holding.symbol,
            "name": holding.name,
            "category": holding.category,
            "current_price": holding.current_price,
            "total_quantity": holding.total_quantity,
            "avg_cost": holding.avg_cost,
            "total_cost": holding.total_cost,
            "current_value": holding.current_value,
            "total_income": holding.total_income,
            "last_transaction_date": holding.last_transaction_date,
            "transaction_count": holding.transaction_count,
            "created_at": holding.created_at,
            "updated_at": holding.updated_at,
        }
    )


def to_transaction_record(transaction: Transaction) -> TransactionRecord:
    """Validate an ORM transaction into a record."""
    return TransactionRecord.model_validate(transaction)


def to_aggregate_record(aggregate: PortfolioAggregate) -> PortfolioAggregateRecord:
    """Validate an ORM aggregate row into a record."""
    return PortfolioAggregateRecord.model_validate(aggregate)
