# src/libs/portools-common/portools_common/classifiers.py
from types import MappingProxyType
from typing import Callable, Mapping, TypeVar

from .models import AssetClass, Lot

K = TypeVar("K")

# A classifier maps a lot to the key of the group it is summarized under.
Classifier = Callable[[Lot], K]


def _normalize_symbol(symbol: str) -> str:
    return symbol.strip().upper()


DEFAULT_ASSET_CLASS_TABLE: Mapping[str, AssetClass] = MappingProxyType({
    "VOO": AssetClass.US_STOCKS,
    "VTI": AssetClass.US_STOCKS,
    "VTV": AssetClass.US_STOCKS,
    "VNQ": AssetClass.US_REAL_ESTATE,
    "VEA": AssetClass.INTL_STOCKS,
    "VEU": AssetClass.INTL_STOCKS,
    "SCHF": AssetClass.INTL_STOCKS,
    "VNQI": AssetClass.INTL_REAL_ESTATE,
    "AGG": AssetClass.US_BONDS,
    "BND": AssetClass.US_BONDS,
    "VTEB": AssetClass.US_BONDS,
    "BNDX": AssetClass.INTL_BONDS,
})


def get_asset_class(symbol: str, table: Mapping[str, AssetClass] = DEFAULT_ASSET_CLASS_TABLE) -> AssetClass:
    """Looks up a ticker ignoring case and surrounding whitespace; unlisted symbols are Unknown."""
    return table.get(_normalize_symbol(symbol), AssetClass.UNKNOWN)


def by_symbol(lot: Lot) -> str:
    return _normalize_symbol(lot.symbol)


class AssetClassClassifier:
    """
    Groups lots by the asset class of their symbol.

    The lookup table is copied into a read-only mapping at construction so it
    can be shared across concurrent summarizations.
    """
    def __init__(self, table: Mapping[str, AssetClass] = DEFAULT_ASSET_CLASS_TABLE):
        if table is DEFAULT_ASSET_CLASS_TABLE:
            self._table = table
        else:
            self._table = MappingProxyType(
                {_normalize_symbol(symbol): asset_class for symbol, asset_class in table.items()}
            )

    @property
    def table(self) -> Mapping[str, AssetClass]:
        return self._table

    def __call__(self, lot: Lot) -> AssetClass:
        return get_asset_class(lot.symbol, self._table)


by_asset_class = AssetClassClassifier()
