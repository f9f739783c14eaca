"""
Asset models - portfolio line items stored inside the portfolio document.

A portfolio holds two kinds of assets: plain (leaf) assets, optionally bound
to a Finnomena fund code, and stock groups that own an ordered list of
sub-assets, each optionally bound to a Yahoo Finance symbol.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import List, Optional, Union


class Currency(str, Enum):
    """Currencies an asset can be denominated in."""
    THB = "THB"
    USD = "USD"


class CategoryType(str, Enum):
    """Category types shown in the allocation breakdown."""
    EQUITY = "equity"
    INDEX = "index"
    BOND = "bond"
    GOLD = "gold"
    STOCK = "stock"
    FOREX = "forex"
    CRYPTO = "crypto"
    CASH = "cash"
    PROPERTY = "property"
    OTHER = "other"
    # Stock groups (own sub-assets)
    STOCK_TH = "stock_th"
    STOCK_US = "stock_us"


GROUP_TYPES = frozenset({CategoryType.STOCK_TH, CategoryType.STOCK_US})


@dataclass
class SubAsset:
    """A holding inside a stock group, e.g. a single equity."""
    id: str
    name: str = ""
    currency: Currency = Currency.THB
    invested: float = 0.0
    invested_usd: Optional[float] = None
    current_value: float = 0.0
    qty: float = 0.0
    symbol: Optional[str] = None  # e.g. "PTT.BK", "MSFT"
    price_updated_at: Optional[datetime] = None
    notes: str = ""

    @property
    def bound_symbol(self) -> Optional[str]:
        """Market symbol used for auto-pricing, or None when unbound."""
        if self.symbol and self.symbol.strip():
            return self.symbol.strip()
        return None


@dataclass
class _AssetBase:
    id: str
    name: str = ""
    type: CategoryType = CategoryType.OTHER
    currency: Currency = Currency.THB
    is_speculative: bool = False
    invested: float = 0.0
    invested_usd: Optional[float] = None
    current_value: float = 0.0
    color: Optional[str] = None
    notes: str = ""
    nav_updated_at: Optional[datetime] = None
    price_updated_at: Optional[datetime] = None


@dataclass
class LeafAsset(_AssetBase):
    """A simple holding, optionally priced from a fund NAV."""
    units: float = 0.0
    fund_code: Optional[str] = None  # e.g. "K-US500X-A"

    @property
    def bound_fund_code(self) -> Optional[str]:
        """Fund code used for NAV pricing, or None when unbound."""
        if self.fund_code and self.fund_code.strip():
            return self.fund_code.strip()
        return None


@dataclass
class GroupAsset(_AssetBase):
    """A stock group; invested and current_value are rolled up from sub_assets."""
    type: CategoryType = CategoryType.STOCK_TH
    sub_assets: List[SubAsset] = field(default_factory=list)


Asset = Union[LeafAsset, GroupAsset]


def copy_asset(asset: Asset) -> Asset:
    """Copy an asset, including its sub-assets, so callers can modify it freely."""
    if isinstance(asset, GroupAsset):
        return replace(asset, sub_assets=[replace(s) for s in asset.sub_assets])
    return replace(asset)
