# src/libs/portools-common/portools_common/validation.py
from decimal import Decimal
from enum import Enum


class Reason(str, Enum):
    """Why a single field was rejected."""
    REQUIRED = "REQUIRED"
    MUST_BE_POSITIVE = "MUST_BE_POSITIVE"
    MUST_BE_FINITE = "MUST_BE_FINITE"
    MUST_HAVE_LONGER_LEN = "MUST_HAVE_LONGER_LEN"
    MUST_HAVE_SHORTER_LEN = "MUST_HAVE_SHORTER_LEN"
    PARSE_DATE_FAILURE = "PARSE_DATE_FAILURE"
    PARSE_DECIMAL_FAILURE = "PARSE_DECIMAL_FAILURE"
    PARSE_MONEY_FAILURE = "PARSE_MONEY_FAILURE"


class Invalid(ValueError):
    """
    Raised when a value object cannot be constructed from the given input.

    Carries only the offending field name and a machine-readable reason; the
    optional `detail` is a human-readable hint (e.g. the parser's message) and
    is not part of equality.
    """
    def __init__(self, field: str, reason: Reason, detail: str = ""):
        self.field = field
        self.reason = reason
        self.detail = detail
        message = f"{field}: {reason.value}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)

    @classmethod
    def required(cls, field: str) -> "Invalid":
        return cls(field, Reason.REQUIRED)

    def __eq__(self, other):
        if not isinstance(other, Invalid):
            return NotImplemented
        return self.field == other.field and self.reason == other.reason

    def __hash__(self):
        return hash((self.field, self.reason))

    def __repr__(self):
        return f"Invalid(field={self.field!r}, reason={self.reason.value})"


def trim_and_validate_len(field: str, value: str, min_len: int, max_len: int) -> str:
    """Strips surrounding whitespace and checks the remaining length is within [min_len, max_len]."""
    if value is None:
        raise Invalid.required(field)
    value = value.strip()
    if len(value) < min_len:
        raise Invalid(field, Reason.MUST_HAVE_LONGER_LEN)
    if len(value) > max_len:
        raise Invalid(field, Reason.MUST_HAVE_SHORTER_LEN)
    return value


def validate_finite(field: str, value: Decimal) -> Decimal:
    if value is None:
        raise Invalid.required(field)
    if isinstance(value, (Decimal, float)) and not Decimal(value).is_finite():
        raise Invalid(field, Reason.MUST_BE_FINITE, f"'{value}' is not a finite number")
    return value


def validate_positive(field: str, value: Decimal) -> Decimal:
    validate_finite(field, value)
    if value <= 0:
        raise Invalid(field, Reason.MUST_BE_POSITIVE)
    return value
