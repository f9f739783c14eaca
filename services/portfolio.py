"""
Portfolio service.
Owns one user's portfolio in memory and runs the read pipeline on demand:

    stored assets -> valuation (ledger) -> price cache -> group rollup -> analytics

Edits go through the methods here; the document is saved with a debounce
and bound prices are fetched into the cache in the background after a save.
"""

import logging
import math
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

from config import get_settings
from models import (
    FX_SYMBOL,
    Asset,
    Currency,
    GroupAsset,
    PortfolioSettings,
    PriceCacheEntry,
    Transaction,
    TransactionType,
    copy_asset,
)
from repositories import PortfolioRepository, PriceCacheRepository, TransactionRepository
from services.aggregation import normalize
from services.analytics import PortfolioAnalytics, analyze
from services.autosave import DebouncedSaver
from services.ledger import Ledger, build_transaction, resolve_target
from services.market_data import PriceProvider
from services.price_cache import apply_cache, bound_symbols, is_stale, live_rate, stale_symbols
from services.price_refresh import (
    RefreshSummary,
    cache_asset_prices,
    collect_entries,
    discover_symbols,
    live_conversion_rate,
    store_entries,
)
from services.valuation import value_assets

logger = logging.getLogger(__name__)


class LoadStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass
class Dashboard:
    """Derived view of a portfolio, recomputed on every call."""
    status: LoadStatus
    assets: List[Asset] = field(default_factory=list)
    analytics: Optional[PortfolioAnalytics] = None
    settings: Optional[PortfolioSettings] = None
    usd_thb_rate: Optional[float] = None
    error: Optional[str] = None


def _check_value(name: str, value: float) -> None:
    if not isinstance(value, (int, float)) or math.isnan(value) or math.isinf(value):
        raise ValueError(f"{name} must be a number, got {value!r}")


class PortfolioService:
    """
    Service for one user's portfolio: load, edit, price and analyze.
    Repositories and the price provider are injected so tests can replace them.
    """

    def __init__(
        self,
        user_id: str,
        portfolio_repository=PortfolioRepository,
        transaction_repository=TransactionRepository,
        cache_repository=PriceCacheRepository,
        provider: Optional[PriceProvider] = None,
        debounce_ms: Optional[int] = None
    ):
        self.user_id = user_id
        self.status = LoadStatus.LOADING
        self.error: Optional[str] = None

        self._portfolios = portfolio_repository
        self._transactions = transaction_repository
        self._cache_repository = cache_repository
        self._provider = provider
        self._saver = DebouncedSaver(self._persist, debounce_ms)
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.RLock()

        self._assets: List[Asset] = []
        self._settings = PortfolioSettings(
            dca=get_settings().default_dca,
            spec_cap=get_settings().default_spec_cap,
        )
        self._cache: Dict[str, PriceCacheEntry] = {}
        self._fetched_rate: Optional[float] = None  # Last rate taken from the provider
        self.ledger = Ledger(user_id, transaction_repository)

    @property
    def provider(self) -> PriceProvider:
        """Lazy initialization of the price provider."""
        if self._provider is None:
            self._provider = PriceProvider()
        return self._provider

    @property
    def assets(self) -> List[Asset]:
        """Stored assets as edited, before any derivation."""
        with self._lock:
            return [copy_asset(a) for a in self._assets]

    @property
    def settings(self) -> PortfolioSettings:
        with self._lock:
            return replace(self._settings)

    @property
    def usd_thb_rate(self) -> float:
        """
        Live USD->THB rate: a fresh cached FX entry, else the rate last fetched
        from the provider, else the cached (possibly stale) or fallback rate.
        """
        with self._lock:
            fresh = self._fresh_fx_rate()
            if fresh is not None:
                return fresh
            if self._fetched_rate:
                return self._fetched_rate
            return live_rate(self._cache, get_settings().fallback_usd_thb_rate)

    def _fresh_fx_rate(self) -> Optional[float]:
        entry = self._cache.get(FX_SYMBOL)
        if entry is None or not entry.price or entry.price <= 0:
            return None
        if is_stale(entry.updated_at, get_settings().live_stale_hours):
            return None
        return entry.price

    def _transaction_rate(self) -> float:
        """Rate frozen onto a USD transaction; fetched when the cached one is missing or stale."""
        with self._lock:
            fresh = self._fresh_fx_rate()
        if fresh is not None:
            return fresh
        rate = self.provider.fetch_exchange_rate()
        with self._lock:
            self._fetched_rate = rate
        return rate

    # ==================== Loading ====================

    def load(self) -> LoadStatus:
        """
        Load the portfolio, its ledger and the cached prices it is bound to.
        A user without a stored portfolio starts empty.
        """
        self.status = LoadStatus.LOADING
        try:
            snapshot = self._portfolios.load(self.user_id)
            ledger = Ledger.load(self.user_id, self._transactions)
        except Exception as e:
            logger.error(f"Failed to load portfolio for {self.user_id}: {e}")
            self.status = LoadStatus.ERROR
            self.error = str(e)
            return self.status

        with self._lock:
            if snapshot is not None:
                self._assets = list(snapshot.assets)
                self._settings = snapshot.settings
            self.ledger = ledger
        self.refresh_cache()

        logger.info(f"Loaded {len(self._assets)} assets and {len(ledger.transactions)} transactions for {self.user_id}")
        self.status = LoadStatus.READY
        self.error = None
        return self.status

    def refresh_cache(self) -> Dict[str, PriceCacheEntry]:
        """Re-read the cache entries for every bound symbol plus the FX rate."""
        with self._lock:
            symbols = bound_symbols(self._assets) + [FX_SYMBOL]
        cache = self._cache_repository.get_many(symbols)
        with self._lock:
            self._cache = cache
        return cache

    # ==================== Reading ====================

    def effective_assets(self) -> List[Asset]:
        """Assets with ledger-derived cost basis, cached prices and group rollups applied."""
        with self._lock:
            valued = value_assets(self._assets, self.ledger.transactions)
            priced = apply_cache(valued, self._cache)
        return normalize(priced)

    def get_asset(self, asset_id: str) -> Optional[Asset]:
        """One effective asset by id."""
        for asset in self.effective_assets():
            if asset.id == asset_id:
                return asset
        return None

    def get_dashboard(self) -> Dashboard:
        """Everything needed to render the portfolio, computed from the current state."""
        if self.status != LoadStatus.READY:
            return Dashboard(status=self.status, error=self.error)

        assets = self.effective_assets()
        settings = self.settings
        return Dashboard(
            status=self.status,
            assets=assets,
            analytics=analyze(assets, settings),
            settings=settings,
            usd_thb_rate=self.usd_thb_rate,
        )

    def asset_history(self, asset_id: str, sub_asset_id: Optional[str] = None) -> List[Transaction]:
        """Transactions of one asset or sub-asset, newest first."""
        return self.ledger.history(asset_id, sub_asset_id)

    # ==================== Editing ====================

    def _index_of(self, asset_id: str) -> int:
        for index, asset in enumerate(self._assets):
            if asset.id == asset_id:
                return index
        raise ValueError(f"Asset {asset_id} not found")

    def save_asset(self, asset: Asset) -> Asset:
        """
        Insert or replace an asset by id and schedule a save.
        If the asset is bound to a fund code or symbols, their prices are
        fetched into the cache in the background.
        """
        if not asset.id:
            raise ValueError("Asset is missing an id")

        asset = copy_asset(asset)
        with self._lock:
            try:
                self._assets[self._index_of(asset.id)] = asset
            except ValueError:
                self._assets.append(asset)
        self._schedule_save()

        if len(discover_symbols([asset])):
            self._submit_price_fetch(asset)
        return copy_asset(asset)

    def delete_asset(self, asset_id: str) -> bool:
        """Remove an asset together with its transactions."""
        with self._lock:
            try:
                del self._assets[self._index_of(asset_id)]
            except ValueError:
                return False
        removed = self.ledger.remove_asset(asset_id)
        logger.info(f"Deleted asset {asset_id} and {removed} transactions")
        self._schedule_save()
        return True

    def update_value(self, asset_id: str, current_value: float, sub_asset_id: Optional[str] = None) -> Asset:
        """
        Set the manual current value of an asset or one of its sub-assets.

        Raises:
            ValueError: for an unknown asset, a group without sub_asset_id, or a
                non-numeric value
        """
        _check_value("current_value", current_value)

        with self._lock:
            index = self._index_of(asset_id)
            asset = self._assets[index]

            if sub_asset_id is None:
                if isinstance(asset, GroupAsset):
                    raise ValueError(f"Asset {asset_id} is a group; its value comes from its sub-assets")
                asset = replace(asset, current_value=float(current_value))
            else:
                if not isinstance(asset, GroupAsset):
                    raise ValueError(f"Asset {asset_id} has no sub-assets")
                if not any(s.id == sub_asset_id for s in asset.sub_assets):
                    raise ValueError(f"Sub-asset {sub_asset_id} not found in asset {asset_id}")
                asset = replace(asset, sub_assets=[
                    replace(s, current_value=float(current_value)) if s.id == sub_asset_id else replace(s)
                    for s in asset.sub_assets
                ])

            self._assets[index] = asset
        self._schedule_save()
        return copy_asset(asset)

    def update_settings(self, dca: Optional[float] = None, spec_cap: Optional[float] = None) -> PortfolioSettings:
        """Change the monthly DCA and/or the speculation cap percentage."""
        with self._lock:
            settings = replace(self._settings)
            if dca is not None:
                _check_value("dca", dca)
                settings.dca = float(dca)
            if spec_cap is not None:
                _check_value("spec_cap", spec_cap)
                if spec_cap < 0:
                    raise ValueError(f"spec_cap must not be negative, got {spec_cap!r}")
                settings.spec_cap = float(spec_cap)
            self._settings = settings
        self._schedule_save()
        return replace(settings)

    def log_transaction(
        self,
        asset_id: str,
        kind: TransactionType,
        amount: float,
        quantity: Optional[float] = None,
        sub_asset_id: Optional[str] = None,
        **kwargs
    ) -> Optional[Transaction]:
        """
        Record a buy, sell, dividend or fee against a leaf asset or a group's
        sub-asset. USD amounts are frozen in THB at the current live rate.

        Returns:
            The stored Transaction, or None if the repository rejected it

        Raises:
            ValueError: on invalid input (see build_transaction)
        """
        with self._lock:
            asset = self._assets[self._index_of(asset_id)]
        target = resolve_target(asset, sub_asset_id)
        rate = self._transaction_rate() if target.currency == Currency.USD else None
        transaction = build_transaction(
            self.user_id,
            asset,
            kind,
            amount,
            quantity=quantity,
            sub_asset_id=sub_asset_id,
            rate=rate,
            **kwargs
        )
        return self.ledger.append(transaction)

    def delete_transaction(self, transaction_id: str) -> bool:
        return self.ledger.remove(transaction_id)

    # ==================== Persistence ====================

    def _snapshot(self) -> Tuple[List[Asset], PortfolioSettings]:
        with self._lock:
            return [copy_asset(a) for a in self._assets], replace(self._settings)

    def _schedule_save(self) -> None:
        self._saver.schedule(self._snapshot())

    def _persist(self, state: Tuple[List[Asset], PortfolioSettings]) -> bool:
        assets, settings = state
        saved = self._portfolios.save(self.user_id, assets, settings)
        if not saved:
            logger.warning(f"Portfolio save for {self.user_id} fell back to the local backup only")
        return saved

    def flush(self) -> bool:
        """Save any pending edits immediately."""
        return self._saver.flush()

    # ==================== Prices ====================

    def _submit_price_fetch(self, asset: Asset) -> Future:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="cache-on-save")
        future = self._executor.submit(cache_asset_prices, asset, self.provider, self._cache_repository)
        future.add_done_callback(self._on_price_fetch_done)
        return future

    def _on_price_fetch_done(self, future: Future) -> None:
        try:
            future.result()
        except Exception as e:
            logger.warning(f"Background price fetch failed: {e}")
            return
        try:
            self.refresh_cache()
        except Exception as e:
            logger.warning(f"Price cache reload failed: {e}")

    def sync_prices(self) -> RefreshSummary:
        """
        Fetch, in parallel, every bound symbol that is missing from the cache
        or older than the live threshold, then store and reload the cache.
        The USD/THB rate counts as a symbol whenever the portfolio holds stocks.
        """
        settings = get_settings()
        with self._lock:
            symbols = discover_symbols(self._assets)
            cache = dict(self._cache)

        stale = stale_symbols(list(symbols.stocks) + symbols.funds, cache, settings.live_stale_hours)
        fx_stale = bool(symbols.stocks) and bool(stale_symbols([FX_SYMBOL], cache, settings.live_stale_hours))
        if not stale and not fx_stale:
            return RefreshSummary()

        wanted = symbols.only(stale)
        started_at = datetime.now(timezone.utc)
        rate, fx = None, None
        if wanted.stocks or fx_stale:
            rate, fx = live_conversion_rate(self.provider, started_at)
            with self._lock:
                self._fetched_rate = rate

        summary = collect_entries(wanted, self.provider, rate)
        if fx is not None:
            summary.rows.insert(0, fx)
        summary.written = store_entries(summary.rows, started_at, self._cache_repository)
        for error in summary.errors:
            logger.warning(f"Price sync lookup failed: {error}")

        self.refresh_cache()
        return summary

    def close(self) -> None:
        """Flush pending edits and wait for background fetches."""
        self.flush()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
