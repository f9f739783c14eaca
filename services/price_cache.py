"""
Price cache adapter.
Overlays cached NAVs and quotes onto assets and answers staleness questions.
Every function here is total: missing bindings or cache entries leave the
asset as it was.
"""

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Mapping, Optional

from models import FX_SYMBOL, Asset, GroupAsset, LeafAsset, PriceCacheEntry, SubAsset
from models.transaction import as_utc
from services.money import effective_rate, round_money

logger = logging.getLogger(__name__)


def is_stale(updated_at: Optional[datetime], threshold_hours: float, now: Optional[datetime] = None) -> bool:
    """
    Check whether a cached timestamp is older than the threshold.

    Args:
        updated_at: When the entry was written (naive values are UTC); None is stale
        threshold_hours: Maximum acceptable age
        now: Reference time (defaults to the current UTC time)

    Returns:
        True if now - updated_at > threshold_hours
    """
    if updated_at is None:
        return True
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)
    return now - as_utc(updated_at) > timedelta(hours=threshold_hours)


def live_rate(cache: Mapping[str, PriceCacheEntry], fallback_rate: float) -> float:
    """USD->THB rate from the cache's FX entry, or the fallback."""
    entry = cache.get(FX_SYMBOL)
    return effective_rate(entry.price if entry else None, fallback_rate)


def bound_symbols(assets: Iterable[Asset]) -> List[str]:
    """Every fund code and market symbol the assets are bound to, in order, without duplicates."""
    seen: Dict[str, None] = {}
    for asset in assets:
        if isinstance(asset, LeafAsset) and asset.bound_fund_code:
            seen.setdefault(asset.bound_fund_code, None)
        elif isinstance(asset, GroupAsset):
            for sub in asset.sub_assets:
                if sub.bound_symbol:
                    seen.setdefault(sub.bound_symbol, None)
    return list(seen)


def _apply_to_sub_asset(sub: SubAsset, cache: Mapping[str, PriceCacheEntry]) -> SubAsset:
    symbol = sub.bound_symbol
    entry = cache.get(symbol) if symbol else None
    if entry is None or sub.qty <= 0:
        return sub
    return replace(
        sub,
        current_value=round_money(sub.qty * entry.price),
        price_updated_at=entry.updated_at,
    )


def apply_cache_to_asset(asset: Asset, cache: Mapping[str, PriceCacheEntry]) -> Asset:
    """
    Price one asset from the cache.

    Fund-bound leaves become units * NAV, stock-group sub-assets become
    qty * price. A zero quantity keeps the previous value.
    """
    if isinstance(asset, GroupAsset):
        return replace(asset, sub_assets=[_apply_to_sub_asset(s, cache) for s in asset.sub_assets])

    code = asset.bound_fund_code
    entry = cache.get(code) if code else None
    if entry is None or asset.units <= 0:
        return asset
    return replace(
        asset,
        current_value=round_money(asset.units * entry.price),
        nav_updated_at=entry.updated_at,
    )


def apply_cache(assets: Iterable[Asset], cache: Mapping[str, PriceCacheEntry]) -> List[Asset]:
    """Price every asset from the cache. Applying the same cache twice changes nothing further."""
    return [apply_cache_to_asset(a, cache) for a in assets]


def stale_symbols(
    symbols: Iterable[str],
    cache: Mapping[str, PriceCacheEntry],
    threshold_hours: float,
    now: Optional[datetime] = None
) -> List[str]:
    """Symbols that are missing from the cache or older than the threshold."""
    return [
        s for s in symbols
        if s not in cache or is_stale(cache[s].updated_at, threshold_hours, now)
    ]
