"""
Market data service for stock quotes and the USD/THB rate.
Uses yfinance for lookups, enhanced with tenacity for retry logic.

Also holds the two batch strategies used across the app: a bounded parallel
fan-out that collects one result per symbol, and a serial, rate-limited
variant for the scheduled refresh.
"""

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

import pandas as pd
import yfinance as yf
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from config import get_settings
from models import FX_SYMBOL, Currency, SubAsset
from services.finnomena import FinnomenaClient, FundNav
from services.money import round_money

logger = logging.getLogger(__name__)

RATE_CACHE_TTL = timedelta(hours=1)


@dataclass
class Quote:
    """Latest market price for a symbol, in the symbol's own currency."""
    symbol: str
    price: float
    currency: str
    date: date


@dataclass
class FetchResult:
    """Outcome of one lookup in a batch: a value, or the error that replaced it."""
    key: str
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.value is not None


def _quote_date(info: Dict) -> date:
    market_time = info.get('regularMarketTime')
    if isinstance(market_time, (int, float)) and market_time > 0:
        return datetime.fromtimestamp(market_time, tz=timezone.utc).date()
    return datetime.now(timezone.utc).date()


class MarketDataService:
    """
    Service for fetching quotes from Yahoo Finance.
    Implements retry logic and a short-lived USD/THB rate cache.
    """

    _usd_thb_rate: Optional[float] = None
    _usd_thb_fetched_at: Optional[datetime] = None

    @staticmethod
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(Exception),
        reraise=True
    )
    def _fetch_ticker_info(yf_symbol: str) -> Dict:
        """Fetch ticker info with retry logic."""
        ticker = yf.Ticker(yf_symbol)
        return ticker.info

    @staticmethod
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(Exception),
        reraise=True
    )
    def _fetch_ticker_history(yf_symbol: str, period: str = "1d") -> pd.DataFrame:
        """Fetch ticker history with retry logic."""
        ticker = yf.Ticker(yf_symbol)
        return ticker.history(period=period, timeout=get_settings().fetch_timeout_seconds)

    @staticmethod
    def fetch_quote(symbol: str) -> Optional[Quote]:
        """
        Fetch the latest price for a Yahoo Finance symbol.

        Symbol formats:
            Thai SET stocks: PTT.BK, SCB.BK
            US stocks: MSFT, LRCX
            USD/THB rate: USDTHB=X

        Returns:
            Quote, or None if the symbol has no price or the lookup failed
        """
        try:
            info = MarketDataService._fetch_ticker_info(symbol) or {}

            price = info.get('regularMarketPrice') or info.get('currentPrice')
            quote_date = _quote_date(info)

            if price is None:
                hist = MarketDataService._fetch_ticker_history(symbol, period="1d")
                if not hist.empty:
                    price = hist['Close'].iloc[-1]
                    quote_date = hist.index[-1].date()

            if not price or pd.isna(price):
                logger.warning(f"No price in response for {symbol}")
                return None

            return Quote(
                symbol=symbol,
                price=float(price),
                currency=info.get('currency') or Currency.THB.value,
                date=quote_date,
            )

        except Exception as e:
            logger.error(f"Error fetching quote for {symbol}: {e}")
            return None

    @staticmethod
    def fetch_exchange_rate(fallback_rate: Optional[float] = None) -> float:
        """
        Fetch the USD->THB rate, cached for an hour.

        Args:
            fallback_rate: Rate used when the lookup fails (defaults to settings)

        Returns:
            THB per 1 USD
        """
        now = datetime.now(timezone.utc)
        cls = MarketDataService
        if cls._usd_thb_rate and cls._usd_thb_fetched_at and now - cls._usd_thb_fetched_at < RATE_CACHE_TTL:
            return cls._usd_thb_rate

        quote = cls.fetch_quote(FX_SYMBOL)
        if quote and quote.price > 0:
            cls._usd_thb_rate = quote.price
            cls._usd_thb_fetched_at = now
            return quote.price

        if cls._usd_thb_rate:
            logger.warning(f"Using previously fetched {FX_SYMBOL} rate {cls._usd_thb_rate}")
            return cls._usd_thb_rate

        fallback = fallback_rate if fallback_rate is not None else get_settings().fallback_usd_thb_rate
        logger.warning(f"Could not fetch {FX_SYMBOL}, falling back to {fallback}")
        return fallback

    @staticmethod
    def clear_cache():
        """Forget the cached exchange rate."""
        MarketDataService._usd_thb_rate = None
        MarketDataService._usd_thb_fetched_at = None
        logger.info("Market data cache cleared")


class PriceProvider:
    """
    The quote, fund NAV and exchange-rate lookups behind one object.
    Services receive one of these so tests can pass a stand-in.
    """

    def __init__(self, funds: Optional[FinnomenaClient] = None, fallback_rate: Optional[float] = None):
        self.funds = funds or FinnomenaClient()
        self.fallback_rate = fallback_rate

    def fetch_quote(self, symbol: str) -> Optional[Quote]:
        return MarketDataService.fetch_quote(symbol)

    def fetch_fund_nav(self, fund_code: str) -> Optional[FundNav]:
        return self.funds.fetch_fund_nav(fund_code)

    def fetch_exchange_rate(self) -> float:
        return MarketDataService.fetch_exchange_rate(self.fallback_rate)


# ==================== Batch strategies ====================

def fetch_parallel(
    keys: Iterable[str],
    fetch: Callable[[str], Any],
    max_workers: Optional[int] = None,
    timeout: Optional[float] = None
) -> List[FetchResult]:
    """
    Look up every key concurrently, never letting one failure affect another.

    Args:
        keys: Symbols or fund codes
        fetch: Lookup for a single key
        max_workers: Thread bound (defaults to settings)
        timeout: Per-lookup timeout in seconds (defaults to settings); lookups
            still running once the batch's time is up are reported as failures

    Returns:
        One FetchResult per key, in input order
    """
    keys = list(dict.fromkeys(keys))
    if not keys:
        return []

    settings = get_settings()
    max_workers = max_workers or settings.fetch_max_workers
    timeout = timeout if timeout is not None else settings.fetch_timeout_seconds
    # Lookups run in waves of max_workers
    batch_timeout = timeout * math.ceil(len(keys) / max_workers)

    results: Dict[str, FetchResult] = {}
    executor = ThreadPoolExecutor(max_workers=max_workers)
    try:
        future_to_key = {executor.submit(fetch, key): key for key in keys}
        done, not_done = wait(future_to_key, timeout=batch_timeout)

        for future in done:
            key = future_to_key[future]
            try:
                results[key] = FetchResult(key=key, value=future.result())
            except Exception as e:
                logger.warning(f"Lookup failed for {key}: {e}")
                results[key] = FetchResult(key=key, error=e)

        for future in not_done:
            key = future_to_key[future]
            future.cancel()
            logger.warning(f"Lookup timed out for {key}")
            results[key] = FetchResult(key=key, error=TimeoutError(f"Lookup timed out for {key}"))
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    return [results[key] for key in keys]


def fetch_serial(
    keys: Iterable[str],
    fetch: Callable[[str], Any],
    delay_seconds: Optional[float] = None,
    sleep: Callable[[float], None] = time.sleep
) -> List[FetchResult]:
    """
    Look up keys one at a time with a pause between calls, for rate-limited sources.

    Returns:
        One FetchResult per key, in input order
    """
    delay = delay_seconds if delay_seconds is not None else get_settings().refresh_delay_seconds
    results: List[FetchResult] = []

    for index, key in enumerate(keys):
        if index > 0 and delay > 0:
            sleep(delay)
        try:
            results.append(FetchResult(key=key, value=fetch(key)))
        except Exception as e:
            logger.warning(f"Lookup failed for {key}: {e}")
            results.append(FetchResult(key=key, error=e))

    return results


# ==================== Live sub-asset pricing ====================

@dataclass
class SubAssetPrice:
    """Freshly fetched valuation of one sub-asset."""
    sub_asset_id: str
    new_value: float  # THB
    price: float  # In the quote currency
    currency: str
    date: date
    rate: float  # Rate applied to reach THB (1 for THB quotes)


def fetch_sub_asset_prices(sub_assets: Iterable[SubAsset], provider: PriceProvider) -> Dict[str, SubAssetPrice]:
    """
    Price every bound sub-asset with qty > 0 straight from the provider.

    The USD rate is only fetched when a USD holding is involved.

    Returns:
        Dict of sub-asset id -> SubAssetPrice (failed lookups are absent)
    """
    targets = [s for s in sub_assets if s.bound_symbol and s.qty > 0]
    if not targets:
        return {}

    needs_usd = any(s.currency == Currency.USD for s in targets)
    usd_rate = provider.fetch_exchange_rate() if needs_usd else None

    fetched = {r.key: r.value for r in fetch_parallel([s.bound_symbol for s in targets], provider.fetch_quote) if r.ok}

    prices: Dict[str, SubAssetPrice] = {}
    for sub in targets:
        quote = fetched.get(sub.bound_symbol)
        if quote is None:
            continue
        is_usd = quote.currency == Currency.USD.value or sub.currency == Currency.USD
        rate = (usd_rate or get_settings().fallback_usd_thb_rate) if is_usd else 1.0
        prices[sub.id] = SubAssetPrice(
            sub_asset_id=sub.id,
            new_value=round_money(sub.qty * quote.price * rate),
            price=quote.price,
            currency=quote.currency,
            date=quote.date,
            rate=rate,
        )
    return prices
