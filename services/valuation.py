"""
Valuation engine.

Derives the effective cost basis and quantity of every asset and sub-asset.
While an entity has no buy transactions its manually entered fields stay
authoritative; from its first buy on, the ledger is the only source.
current_value is never touched here: it always comes from the last price
update (manual, NAV or quote).

Nothing is cached; the derivation runs on every read so that inserting or
deleting a transaction shows up immediately.
"""

import logging
from dataclasses import dataclass, replace
from typing import Iterable, List, Optional, Union

from models import Asset, Currency, GroupAsset, LeafAsset, SubAsset, Transaction
from services.ledger import buys_only, sum_buys, sum_quantity, transactions_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ManualValuation:
    """Cost basis taken verbatim from the stored (legacy) fields."""
    invested: float
    invested_usd: Optional[float]
    quantity: float

    is_derived = False


@dataclass(frozen=True)
class DerivedValuation:
    """Cost basis summed from buy transactions."""
    invested: float
    invested_usd: Optional[float]
    quantity: float
    transaction_count: int

    is_derived = True


Valuation = Union[ManualValuation, DerivedValuation]


def select_valuation(
    invested: float,
    invested_usd: Optional[float],
    quantity: float,
    currency: Currency,
    transactions: Iterable[Transaction]
) -> Valuation:
    """
    Choose between the manual fields and the ledger for one entity.

    Args:
        invested: Stored invested (THB)
        invested_usd: Stored invested (USD), if any
        quantity: Stored units or qty
        currency: Entity currency; invested_usd is only derived for USD
        transactions: Rows already filtered to this entity (any kind)

    Returns:
        ManualValuation if there is no buy row, DerivedValuation otherwise
    """
    buys = buys_only(transactions)
    if not buys:
        return ManualValuation(invested=invested, invested_usd=invested_usd, quantity=quantity)

    totals = sum_buys(buys)
    return DerivedValuation(
        invested=totals.amount_thb,
        invested_usd=totals.amount_usd if currency == Currency.USD else None,
        quantity=sum_quantity(buys),
        transaction_count=len(buys),
    )


def value_sub_asset(asset_id: str, sub: SubAsset, transactions: Iterable[Transaction]) -> SubAsset:
    """Return a copy of the sub-asset with its effective invested and qty."""
    valuation = select_valuation(
        sub.invested,
        sub.invested_usd,
        sub.qty,
        sub.currency,
        transactions_for(transactions, asset_id, sub.id),
    )
    return replace(
        sub,
        invested=valuation.invested,
        invested_usd=valuation.invested_usd,
        qty=valuation.quantity,
    )


def value_asset(asset: Asset, transactions: Iterable[Transaction]) -> Asset:
    """
    Return a copy of the asset with its effective cost basis.

    Groups have each sub-asset valued separately; their own totals are left to
    the group aggregator.
    """
    transactions = list(transactions)

    if isinstance(asset, GroupAsset):
        return replace(
            asset,
            sub_assets=[value_sub_asset(asset.id, s, transactions) for s in asset.sub_assets],
        )

    valuation = select_valuation(
        asset.invested,
        asset.invested_usd,
        asset.units,
        asset.currency,
        transactions_for(transactions, asset.id),
    )
    return replace(
        asset,
        invested=valuation.invested,
        invested_usd=valuation.invested_usd,
        units=valuation.quantity,
    )


def value_assets(assets: Iterable[Asset], transactions: Iterable[Transaction]) -> List[Asset]:
    """Apply value_asset to a whole portfolio."""
    transactions = list(transactions)
    return [value_asset(a, transactions) for a in assets]


def valuation_of(asset: Asset, transactions: Iterable[Transaction], sub_asset_id: Optional[str] = None) -> Valuation:
    """Expose which valuation mode applies to an asset or one of its sub-assets."""
    transactions = list(transactions)
    if sub_asset_id is not None and isinstance(asset, GroupAsset):
        for sub in asset.sub_assets:
            if sub.id == sub_asset_id:
                return select_valuation(
                    sub.invested, sub.invested_usd, sub.qty, sub.currency,
                    transactions_for(transactions, asset.id, sub.id),
                )
        raise ValueError(f"Sub-asset {sub_asset_id} not found in asset {asset.id}")

    quantity = asset.units if isinstance(asset, LeafAsset) else 0.0
    return select_valuation(
        asset.invested, asset.invested_usd, quantity, asset.currency,
        transactions_for(transactions, asset.id),
    )
