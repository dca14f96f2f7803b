# tests/unit/libs/portools-common/test_summarizer.py
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from portools_common.classifiers import by_symbol
from portools_common.currency import Currency, CurrencyOverflowError, MAX_AMOUNT, UnitMismatchError, USD, JPY
from portools_common.models import AssetClass, Lot, Portfolio
from portools_common.summarizer import (
    SummaryError, SummaryErrorKind, summarize, summarize_by_asset_class, summarize_by_symbol,
)


def lot(symbol: str, quantity, cost: str, unit: str = USD) -> Lot:
    return Lot.new("Taxable", symbol, date(2023, 3, 27), Decimal(quantity), Currency.new(Decimal(cost), unit))


def test_empty_portfolio_has_no_groups():
    """
    GIVEN a portfolio without lots
    WHEN it is summarized
    THEN the summary is empty and the classifier is never called.
    """
    classifier = MagicMock()

    summary = summarize(Portfolio(id=3, lots=[]), classifier)

    assert summary.id == 3
    assert summary.group_to_summary == {}
    classifier.assert_not_called()


def test_single_lot_by_symbol():
    summary = summarize_by_symbol(Portfolio(id=1, lots=[lot("VOO", 6, "300.64")]))

    assert list(summary.group_to_summary) == ["VOO"]
    assert summary.group_to_summary["VOO"].cost == Currency.new(Decimal("1803.84"), USD)


def test_lots_with_shared_symbol_are_grouped():
    portfolio = Portfolio(id=1, lots=[lot("VOO", 1, "100.00"), lot("VOO", 2, "200.00")])

    summary = summarize_by_symbol(portfolio)

    assert len(summary.group_to_summary) == 1
    assert summary.group_to_summary["VOO"].cost == Currency.new(Decimal("500.00"), USD)


def test_symbol_grouping_ignores_case_and_whitespace():
    portfolio = Portfolio(id=1, lots=[lot("voo", 1, "1"), lot(" VOO ", 1, "2")])

    summary = summarize(portfolio, by_symbol)

    assert summary.group_to_summary["VOO"].cost.amount == Decimal(3)


def test_distinct_asset_classes_stay_separate():
    portfolio = Portfolio(id=9, lots=[lot("VOO", 1, "100.00"), lot("BND", 2, "50.00")])

    summary = summarize_by_asset_class(portfolio)

    assert summary.group_to_summary[AssetClass.US_STOCKS].cost == Currency.new(Decimal("100.00"), USD)
    assert summary.group_to_summary[AssetClass.US_BONDS].cost == Currency.new(Decimal("100.00"), USD)
    assert len(summary.group_to_summary) == 2


def test_unknown_symbols_share_the_unknown_group():
    portfolio = Portfolio(id=9, lots=[lot("SCHB", 1, "10"), lot("XYZ", 1, "5")])

    summary = summarize_by_asset_class(portfolio)

    assert summary.group_to_summary == {
        AssetClass.UNKNOWN: summary.group_to_summary[AssetClass.UNKNOWN],
    }
    assert summary.group_to_summary[AssetClass.UNKNOWN].cost.amount == Decimal(15)


def test_result_is_independent_of_lot_order():
    lots = [lot("VOO", 1, "100.00"), lot("BND", 3, "70.10"), lot("VTI", 2, "220.5")]

    forward = summarize_by_asset_class(Portfolio(id=1, lots=lots))
    backward = summarize_by_asset_class(Portfolio(id=1, lots=list(reversed(lots))))

    assert forward.group_to_summary == backward.group_to_summary


def test_mixed_units_raise_unit_mismatch():
    """
    GIVEN lots priced in USD and JPY under the same symbol
    WHEN the portfolio is summarized
    THEN a SummaryError of kind UNIT_MISMATCH is raised instead of a partial total.
    """
    portfolio = Portfolio(id=1, lots=[lot("VOO", 1, "100", USD), lot("VOO", 1, "100", JPY)])

    with pytest.raises(SummaryError) as exc_info:
        summarize_by_symbol(portfolio)

    assert exc_info.value.kind == SummaryErrorKind.UNIT_MISMATCH
    assert isinstance(exc_info.value.cause, UnitMismatchError)
    assert exc_info.value.portfolio_id == 1


def test_mixed_units_in_separate_groups_still_raise():
    portfolio = Portfolio(id=1, lots=[lot("VOO", 1, "100", USD), lot("BND", 1, "100", JPY)])

    with pytest.raises(SummaryError) as exc_info:
        summarize_by_symbol(portfolio)

    assert exc_info.value.kind == SummaryErrorKind.UNIT_MISMATCH


def test_overflow_is_reported():
    portfolio = Portfolio(id=1, lots=[lot("VOO", 2, str(MAX_AMOUNT))])

    with pytest.raises(SummaryError) as exc_info:
        summarize_by_symbol(portfolio)

    assert exc_info.value.kind == SummaryErrorKind.OVERFLOW
    assert isinstance(exc_info.value.cause, CurrencyOverflowError)
