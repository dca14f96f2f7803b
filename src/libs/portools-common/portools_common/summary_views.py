# src/libs/portools-common/portools_common/summary_views.py
from dataclasses import dataclass
from typing import Any, Callable, Dict, Tuple

from .classifiers import by_asset_class, by_symbol
from .models import Lot

ASSET_CLASS_VIEW_KIND = "asset_class"
SYMBOL_VIEW_KIND = "symbol"


@dataclass(frozen=True)
class SummaryView:
    """A derived view: lots grouped by `classifier`, stored under `kind`."""
    kind: str
    classifier: Callable[[Lot], Any]


ASSET_CLASS_VIEW = SummaryView(ASSET_CLASS_VIEW_KIND, by_asset_class)
SYMBOL_VIEW = SummaryView(SYMBOL_VIEW_KIND, by_symbol)

DEFAULT_VIEWS: Tuple[SummaryView, ...] = (ASSET_CLASS_VIEW, SYMBOL_VIEW)
VIEWS_BY_KIND: Dict[str, SummaryView] = {view.kind: view for view in DEFAULT_VIEWS}
