# src/libs/portools-common/portools_common/summarizer.py
from enum import Enum
from typing import Callable, Dict, TypeVar

from .classifiers import by_asset_class, by_symbol
from .currency import Currency, CurrencyError, CurrencyOverflowError, UnitMismatchError
from .models import AssetClass, GroupSummary, Lot, Portfolio, PortfolioSummary

K = TypeVar("K")


class SummaryErrorKind(str, Enum):
    UNIT_MISMATCH = "UNIT_MISMATCH"
    OVERFLOW = "OVERFLOW"


class SummaryError(Exception):
    """
    Raised when a portfolio's lots cannot be totalled. The underlying
    CurrencyError is kept on `cause` (and chained as __cause__).
    """
    def __init__(self, kind: SummaryErrorKind, cause: CurrencyError, portfolio_id: int = None):
        self.kind = kind
        self.cause = cause
        self.portfolio_id = portfolio_id
        super().__init__(f"Could not summarize portfolio {portfolio_id}: {cause}")

    @classmethod
    def from_currency_error(cls, error: CurrencyError, portfolio_id: int = None) -> "SummaryError":
        if isinstance(error, UnitMismatchError):
            kind = SummaryErrorKind.UNIT_MISMATCH
        elif isinstance(error, CurrencyOverflowError):
            kind = SummaryErrorKind.OVERFLOW
        else:
            raise error
        return cls(kind, error, portfolio_id)


def summarize(portfolio: Portfolio, classifier: Callable[[Lot], K]) -> PortfolioSummary[K]:
    """
    Totals the cost of every lot in the portfolio, grouped by `classifier(lot)`.

    The first lot's cost basis unit is used as the working unit; a lot in any
    other unit raises SummaryError(UNIT_MISMATCH) instead of producing a
    partial total.
    """
    groups: Dict[K, GroupSummary] = {}
    if not portfolio.lots:
        return PortfolioSummary(id=portfolio.id, group_to_summary=groups)

    unit = portfolio.lots[0].cost_basis.unit
    try:
        for lot in portfolio.lots:
            lot_cost = lot.total_cost()
            key = classifier(lot)
            group = groups.get(key)
            current = group.cost if group is not None else Currency.zero(unit)
            groups[key] = GroupSummary.new(current.add(lot_cost))
    except CurrencyError as e:
        raise SummaryError.from_currency_error(e, portfolio.id) from e

    return PortfolioSummary(id=portfolio.id, group_to_summary=groups)


def summarize_by_symbol(portfolio: Portfolio) -> PortfolioSummary[str]:
    return summarize(portfolio, by_symbol)


def summarize_by_asset_class(portfolio: Portfolio) -> PortfolioSummary[AssetClass]:
    return summarize(portfolio, by_asset_class)
