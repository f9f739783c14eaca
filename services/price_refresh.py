"""
Price cache refresh.

Discovers every bound symbol, fetches quotes and fund NAVs, and turns them
into price_cache rows. Used three ways: the scheduled batch job (serial,
rate-limited), live syncing of stale symbols and cache-on-save (both
parallel).

Stock prices are always stored in THB: USD quotes are converted with the
USD/THB rate fetched in the same pass.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from models import FX_SYMBOL, Asset, Currency, GroupAsset, LeafAsset, PriceCacheEntry
from models.transaction import as_utc
from repositories import PortfolioRepository, PriceCacheRepository
from services.finnomena import FundNav
from services.market_data import FetchResult, PriceProvider, Quote, fetch_parallel, fetch_serial

logger = logging.getLogger(__name__)

TYPE_FUND = "fund"
TYPE_FX = "fx"
TYPE_THAI_STOCK = "thai_stock"
TYPE_US_STOCK = "us_stock"

SOURCE_YAHOO = "yahoo"
SOURCE_FINNOMENA = "finnomena"

Batch = Callable[[Iterable[str], Callable[[str], object]], List[FetchResult]]


@dataclass
class SymbolSet:
    """Symbols to price: market symbols with their cache type, and fund codes."""
    stocks: Dict[str, str] = field(default_factory=dict)
    funds: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.stocks) + len(self.funds)

    def only(self, keys: Iterable[str]) -> "SymbolSet":
        """Restrict to the given keys."""
        wanted = set(keys)
        return SymbolSet(
            stocks={s: t for s, t in self.stocks.items() if s in wanted},
            funds=[f for f in self.funds if f in wanted],
        )


@dataclass
class RefreshSummary:
    """Outcome of one refresh pass."""
    rows: List[PriceCacheEntry] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    written: int = 0


def discover_symbols(assets: Iterable[Asset]) -> SymbolSet:
    """
    Collect fund codes from leaves and symbols from stock-group sub-assets.
    Sub-asset symbols are typed us_stock or thai_stock by the sub-asset currency.
    """
    symbols = SymbolSet()
    for asset in assets:
        if isinstance(asset, LeafAsset) and asset.bound_fund_code:
            if asset.bound_fund_code not in symbols.funds:
                symbols.funds.append(asset.bound_fund_code)
        elif isinstance(asset, GroupAsset):
            for sub in asset.sub_assets:
                if sub.bound_symbol:
                    kind = TYPE_US_STOCK if sub.currency == Currency.USD else TYPE_THAI_STOCK
                    symbols.stocks[sub.bound_symbol] = kind
    return symbols


def fx_entry(quote: Quote, fetched_at: datetime) -> PriceCacheEntry:
    return PriceCacheEntry(
        symbol=FX_SYMBOL,
        type=TYPE_FX,
        price=quote.price,
        currency=Currency.THB.value,
        price_date=quote.date,
        source=SOURCE_YAHOO,
        updated_at=fetched_at,
    )


def fetch_fx_entry(provider: PriceProvider, fetched_at: datetime) -> Optional[PriceCacheEntry]:
    """Fetch the USD/THB quote as a cache row, or None when no usable quote comes back."""
    quote = provider.fetch_quote(FX_SYMBOL)
    if quote is None or quote.price <= 0:
        return None
    return fx_entry(quote, fetched_at)


def live_conversion_rate(provider: PriceProvider, fetched_at: datetime) -> Tuple[float, Optional[PriceCacheEntry]]:
    """
    Rate for the live paths, with the FX cache row when one was fetched.
    Falls back to the provider's exchange rate, which is never stored.
    """
    entry = fetch_fx_entry(provider, fetched_at)
    if entry is not None:
        return entry.price, entry
    return provider.fetch_exchange_rate(), None


def quote_to_entry(quote: Quote, kind: str, rate: Optional[float], fetched_at: datetime) -> Optional[PriceCacheEntry]:
    """
    Build a cache row from a stock quote, converting USD prices to THB.

    Returns:
        PriceCacheEntry, or None for a USD quote when no rate is known
    """
    price = quote.price
    if quote.currency == Currency.USD.value:
        if not rate:
            return None
        price = round(price * rate, 4)

    return PriceCacheEntry(
        symbol=quote.symbol,
        type=kind,
        price=price,
        currency=Currency.THB.value,
        price_date=quote.date,
        source=SOURCE_YAHOO,
        updated_at=fetched_at,
    )


def nav_to_entry(nav: FundNav, fetched_at: datetime) -> PriceCacheEntry:
    return PriceCacheEntry(
        symbol=nav.fund_code,
        type=TYPE_FUND,
        price=nav.nav,
        currency=Currency.THB.value,
        price_date=nav.date,
        source=SOURCE_FINNOMENA,
        updated_at=fetched_at,
    )


def collect_entries(
    symbols: SymbolSet,
    provider: PriceProvider,
    rate: Optional[float],
    batch: Batch = fetch_parallel
) -> RefreshSummary:
    """
    Fetch every symbol with the given batch strategy and build cache rows.

    Args:
        symbols: What to fetch
        provider: Quote and NAV lookups
        rate: USD->THB rate for converting USD quotes
        batch: fetch_parallel or fetch_serial

    Returns:
        RefreshSummary with one row per successful lookup; failures are
        listed in errors
    """
    summary = RefreshSummary()
    funds = set(symbols.funds)

    def fetch(key: str):
        if key in funds:
            return provider.fetch_fund_nav(key)
        return provider.fetch_quote(key)

    keys = list(symbols.stocks) + [f for f in symbols.funds if f not in symbols.stocks]
    for result in batch(keys, fetch):
        fetched_at = datetime.now(timezone.utc)
        if result.error is not None:
            summary.errors.append(f"{result.key}: {result.error}")
            continue
        if result.value is None:
            summary.errors.append(f"{result.key}: no price in response")
            continue

        if result.key in funds:
            entry = nav_to_entry(result.value, fetched_at)
        else:
            entry = quote_to_entry(result.value, symbols.stocks[result.key], rate, fetched_at)
            if entry is None:
                summary.errors.append(f"{result.key}: no USD/THB rate to convert {result.value.currency} price")
                continue

        logger.info(f"  {entry.symbol} ({entry.type}) -> {entry.price} THB")
        summary.rows.append(entry)

    return summary


def drop_superseded(
    rows: Iterable[PriceCacheEntry],
    existing: Mapping[str, PriceCacheEntry],
    started_at: datetime
) -> List[PriceCacheEntry]:
    """Discard rows whose symbol was written by someone else after this fetch began."""
    kept = []
    for row in rows:
        current = existing.get(row.symbol)
        if current is not None and as_utc(current.updated_at) > as_utc(started_at):
            logger.info(f"Discarding late result for {row.symbol}")
            continue
        kept.append(row)
    return kept


def store_entries(
    rows: List[PriceCacheEntry],
    started_at: datetime,
    cache_repository=PriceCacheRepository
) -> int:
    """Upsert rows, skipping any that a newer write has overtaken."""
    if not rows:
        return 0
    existing = cache_repository.get_many(r.symbol for r in rows)
    return cache_repository.upsert(drop_superseded(rows, existing, started_at))


def refresh_price_cache(
    provider: PriceProvider,
    portfolio_repository=PortfolioRepository,
    cache_repository=PriceCacheRepository,
    delay_seconds: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep
) -> RefreshSummary:
    """
    One batch refresh over every stored portfolio.

    The USD/THB rate is always fetched first; symbols are then fetched one at
    a time with a delay between calls. Per-symbol failures are collected in
    the summary and never stop the pass.

    Raises:
        Exception: only when the portfolios cannot be read or the upsert fails
    """
    started_at = datetime.now(timezone.utc)
    logger.info(f"[{started_at.isoformat()}] Starting price cache update...")

    symbols = discover_symbols(portfolio_repository.get_all_assets())
    logger.info(f"Found {len(symbols.stocks)} stock symbols, {len(symbols.funds)} fund codes")

    rows: List[PriceCacheEntry] = []
    errors: List[str] = []

    rate = None
    fx = fetch_fx_entry(provider, datetime.now(timezone.utc))
    if fx is not None:
        rate = fx.price
        rows.append(fx)
        logger.info(f"  {FX_SYMBOL} -> {rate}")
    else:
        errors.append(f"{FX_SYMBOL}: no price in response")

    def serial(keys, fetch):
        return fetch_serial(keys, fetch, delay_seconds=delay_seconds, sleep=sleep)

    collected = collect_entries(symbols, provider, rate, batch=serial)
    rows.extend(collected.rows)
    errors.extend(collected.errors)

    written = store_entries(rows, started_at, cache_repository)
    if written:
        logger.info(f"Upserted {written} price rows to price_cache")

    if errors:
        logger.warning(f"{len(errors)} errors:")
        for error in errors:
            logger.warning(f"  - {error}")

    return RefreshSummary(rows=rows, errors=errors, written=written)


def cache_asset_prices(
    asset: Asset,
    provider: PriceProvider,
    cache_repository=PriceCacheRepository
) -> RefreshSummary:
    """
    Fetch and cache the prices one asset is bound to.
    Called in the background right after the asset is saved.
    """
    started_at = datetime.now(timezone.utc)
    symbols = discover_symbols([asset])
    if not symbols:
        return RefreshSummary()

    rate, fx = None, None
    if symbols.stocks:
        rate, fx = live_conversion_rate(provider, started_at)

    summary = collect_entries(symbols, provider, rate)
    if fx is not None:
        summary.rows.insert(0, fx)
    summary.written = store_entries(summary.rows, started_at, cache_repository)
    for error in summary.errors:
        logger.warning(f"Cache-on-save lookup failed: {error}")
    return summary
