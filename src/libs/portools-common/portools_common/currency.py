# src/libs/portools-common/portools_common/currency.py
from decimal import Context, Decimal, DivisionByZero, Inexact, InvalidOperation, Overflow, ROUND_HALF_EVEN

from pydantic import BaseModel, ConfigDict, field_validator

from .validation import trim_and_validate_len, validate_finite

USD = "USD"
JPY = "JPY"

MIN_UNIT_LEN = 1
MAX_UNIT_LEN = 5

# Largest magnitude an amount may reach: a 96-bit unsigned mantissa.
MAX_AMOUNT = Decimal(2 ** 96 - 1)
# Holds MAX_AMOUNT exactly; a result that would need rounding is not representable.
_AMOUNT_CONTEXT = Context(
    prec=len(str(MAX_AMOUNT)),
    rounding=ROUND_HALF_EVEN,
    traps=[InvalidOperation, DivisionByZero, Overflow, Inexact],
)


class CurrencyError(Exception):
    """Base class for failed currency arithmetic."""


class UnitMismatchError(CurrencyError):
    def __init__(self, left: str, right: str):
        self.left = left
        self.right = right
        super().__init__(f"Cannot combine amounts in different units: '{left}' and '{right}'.")


class CurrencyOverflowError(CurrencyError, OverflowError):
    def __init__(self, operation: str, left, right):
        self.operation = operation
        self.left = left
        self.right = right
        super().__init__(f"Result of {operation}({left}, {right}) is not representable.")


class Currency(BaseModel):
    """
    An immutable monetary amount tagged with its unit symbol (e.g. "USD").

    Arithmetic never mutates; it returns a new Currency or raises a CurrencyError.
    """
    model_config = ConfigDict(frozen=True)

    amount: Decimal
    unit: str

    @field_validator("unit")
    @classmethod
    def _validate_unit(cls, value: str) -> str:
        return trim_and_validate_len("unit", value, MIN_UNIT_LEN, MAX_UNIT_LEN)

    @field_validator("amount")
    @classmethod
    def _validate_amount(cls, value: Decimal) -> Decimal:
        if not value.is_finite():
            raise ValueError("amount must be a finite number")
        return value

    @classmethod
    def new(cls, amount: Decimal, unit: str) -> "Currency":
        """Builds a Currency, raising `Invalid` (not a pydantic error) for a bad amount or unit."""
        validate_finite("amount", amount)
        unit = trim_and_validate_len("unit", unit, MIN_UNIT_LEN, MAX_UNIT_LEN)
        return cls(amount=amount, unit=unit)

    @classmethod
    def zero(cls, unit: str) -> "Currency":
        return cls.new(Decimal(0), unit)

    def add(self, other: "Currency") -> "Currency":
        if self.unit != other.unit:
            raise UnitMismatchError(self.unit, other.unit)
        try:
            total = _AMOUNT_CONTEXT.add(self.amount, other.amount)
        except Inexact as e:
            raise CurrencyOverflowError("add", self, other) from e
        if abs(total) > MAX_AMOUNT:
            raise CurrencyOverflowError("add", self, other)
        return Currency(amount=total, unit=self.unit)

    def multiply(self, scalar: Decimal) -> "Currency":
        try:
            product = _AMOUNT_CONTEXT.multiply(self.amount, scalar)
        except Inexact as e:
            raise CurrencyOverflowError("multiply", self, scalar) from e
        if abs(product) > MAX_AMOUNT:
            raise CurrencyOverflowError("multiply", self, scalar)
        return Currency(amount=product, unit=self.unit)

    def __str__(self) -> str:
        return f"{self.amount} {self.unit}"
