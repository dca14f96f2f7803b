# src/libs/portools-common/portools_common/models.py
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Dict, Generic, List, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .currency import Currency, USD
from .validation import Invalid, Reason, trim_and_validate_len, validate_positive

MIN_ACCOUNT_LEN = 1
MAX_ACCOUNT_LEN = 100
MIN_SYMBOL_LEN = 1
MAX_SYMBOL_LEN = 5
LOT_DATE_FORMAT = "%Y/%m/%d"

MAX_PORTFOLIO_ID = 2 ** 32 - 1


def parse_decimal(field: str, text: str) -> Decimal:
    try:
        value = Decimal(text.strip())
    except (InvalidOperation, AttributeError) as e:
        raise Invalid(field, Reason.PARSE_DECIMAL_FAILURE, str(e)) from e
    if not value.is_finite():
        raise Invalid(field, Reason.PARSE_DECIMAL_FAILURE, f"'{text}' is not a finite number")
    return value


def parse_money(field: str, text: str) -> Decimal:
    """Parses amounts like '1,024.50' or '$99.99' into a Decimal."""
    cleaned = (text or "").strip()
    if cleaned.startswith("$"):
        cleaned = cleaned[1:].strip()
    cleaned = cleaned.replace(",", "")
    try:
        value = Decimal(cleaned)
    except InvalidOperation as e:
        raise Invalid(field, Reason.PARSE_MONEY_FAILURE, f"'{text}' is not a valid amount") from e
    if not value.is_finite():
        raise Invalid(field, Reason.PARSE_MONEY_FAILURE, f"'{text}' is not a valid amount")
    return value


def parse_date(field: str, text: str) -> date:
    try:
        return datetime.strptime((text or "").strip(), LOT_DATE_FORMAT).date()
    except ValueError as e:
        raise Invalid(field, Reason.PARSE_DATE_FAILURE, str(e)) from e


class Lot(BaseModel):
    """
    An amount of a single security purchased on a particular date.

    Use `Lot.new` or `Lot.from_strings` to build one from untrusted input; both
    raise `Invalid` naming the offending field.
    """
    model_config = ConfigDict(frozen=True)

    # name of the brokerage account the lot is held in
    account: str
    # ticker symbol of the security
    symbol: str
    date_acquired: date
    # Decimal to support fractional shares
    quantity: Decimal
    # per-share purchase price
    cost_basis: Currency

    @field_validator("account")
    @classmethod
    def _validate_account(cls, value: str) -> str:
        return trim_and_validate_len("account", value, MIN_ACCOUNT_LEN, MAX_ACCOUNT_LEN)

    @field_validator("symbol")
    @classmethod
    def _validate_symbol(cls, value: str) -> str:
        return trim_and_validate_len("symbol", value, MIN_SYMBOL_LEN, MAX_SYMBOL_LEN)

    @field_validator("quantity")
    @classmethod
    def _validate_quantity(cls, value: Decimal) -> Decimal:
        return validate_positive("quantity", value)

    @field_validator("cost_basis")
    @classmethod
    def _validate_cost_basis(cls, value: Currency) -> Currency:
        validate_positive("cost_basis", value.amount)
        return value

    @classmethod
    def new(
        cls,
        account: str,
        symbol: str,
        date_acquired: date,
        quantity: Decimal,
        cost_basis: Currency,
    ) -> "Lot":
        account = trim_and_validate_len("account", account, MIN_ACCOUNT_LEN, MAX_ACCOUNT_LEN)
        symbol = trim_and_validate_len("symbol", symbol, MIN_SYMBOL_LEN, MAX_SYMBOL_LEN)
        if date_acquired is None:
            raise Invalid.required("date_acquired")
        validate_positive("quantity", quantity)
        if cost_basis is None:
            raise Invalid.required("cost_basis")
        validate_positive("cost_basis", cost_basis.amount)
        return cls(
            account=account,
            symbol=symbol,
            date_acquired=date_acquired,
            quantity=quantity,
            cost_basis=cost_basis,
        )

    @classmethod
    def from_strings(
        cls,
        account: str,
        symbol: str,
        date_acquired: str,
        quantity: str,
        cost_basis_amount: str,
        unit: str = USD,
    ) -> "Lot":
        """Builds a Lot from raw text fields, e.g. one CSV row."""
        acquired = parse_date("date_acquired", date_acquired)
        parsed_quantity = parse_decimal("quantity", quantity)
        amount = parse_money("cost_basis", cost_basis_amount)
        return cls.new(account, symbol, acquired, parsed_quantity, Currency.new(amount, unit))

    def total_cost(self) -> Currency:
        """cost_basis * quantity; raises CurrencyOverflowError if not representable."""
        return self.cost_basis.multiply(self.quantity)


class Portfolio(BaseModel):
    """A named collection of lots, keyed by a caller-assigned id."""
    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=0, le=MAX_PORTFOLIO_ID)
    lots: List[Lot] = Field(default_factory=list)


class AssetClass(str, Enum):
    INTL_BONDS = "IntlBonds"
    US_BONDS = "UsBonds"
    INTL_REAL_ESTATE = "IntlRealEstate"
    US_REAL_ESTATE = "UsRealEstate"
    US_STOCKS = "UsStocks"
    INTL_STOCKS = "IntlStocks"
    UNKNOWN = "Unknown"


class NegativeCostError(Exception):
    """A group summary was built with a negative cost. Indicates a bug, not bad input."""
    def __init__(self, cost: Currency):
        self.cost = cost
        super().__init__(f"Group summary cost must not be negative, got {cost}.")


class GroupSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    cost: Currency

    @field_validator("cost")
    @classmethod
    def _validate_cost(cls, value: Currency) -> Currency:
        if value.amount < 0:
            raise NegativeCostError(value)
        return value

    @classmethod
    def new(cls, cost: Currency) -> "GroupSummary":
        return cls(cost=cost)


K = TypeVar("K")


class PortfolioSummary(BaseModel, Generic[K]):
    """
    A derived view of one portfolio: total cost per group key. Always rebuilt
    from the full portfolio, never merged incrementally.
    """
    id: int = Field(..., ge=0, le=MAX_PORTFOLIO_ID)
    group_to_summary: Dict[K, GroupSummary] = Field(default_factory=dict)

    def to_document(self) -> dict:
        """The JSON-ready document stored for this view."""
        return self.model_dump(mode="json")
