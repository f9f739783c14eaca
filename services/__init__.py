"""
Services package for Baht Ledger.
Valuation, pricing and analytics logic separated from the data layer.
"""

from services.money import round_money, to_display_amount, to_thb, effective_rate
from services.ledger import Ledger, LedgerEvent, build_transaction, sum_buys, sum_quantity, transactions_for
from services.valuation import DerivedValuation, ManualValuation, select_valuation, value_asset, value_assets
from services.price_cache import apply_cache, is_stale, live_rate, stale_symbols
from services.aggregation import group_totals, normalize
from services.analytics import PortfolioAnalytics, PortfolioSummary, analyze, calc_pl, project
from services.finnomena import FinnomenaClient, FundNav
from services.market_data import (
    FetchResult,
    MarketDataService,
    PriceProvider,
    Quote,
    fetch_parallel,
    fetch_serial,
    fetch_sub_asset_prices,
)
from services.price_refresh import RefreshSummary, cache_asset_prices, discover_symbols, refresh_price_cache
from services.autosave import DebouncedSaver
from services.portfolio import Dashboard, LoadStatus, PortfolioService

__all__ = [
    # Money
    'round_money',
    'to_display_amount',
    'to_thb',
    'effective_rate',
    # Ledger and valuation
    'Ledger',
    'LedgerEvent',
    'build_transaction',
    'sum_buys',
    'sum_quantity',
    'transactions_for',
    'DerivedValuation',
    'ManualValuation',
    'select_valuation',
    'value_asset',
    'value_assets',
    # Pricing
    'apply_cache',
    'is_stale',
    'live_rate',
    'stale_symbols',
    'FinnomenaClient',
    'FundNav',
    'FetchResult',
    'MarketDataService',
    'PriceProvider',
    'Quote',
    'fetch_parallel',
    'fetch_serial',
    'fetch_sub_asset_prices',
    'RefreshSummary',
    'cache_asset_prices',
    'discover_symbols',
    'refresh_price_cache',
    # Aggregation and analytics
    'group_totals',
    'normalize',
    'PortfolioAnalytics',
    'PortfolioSummary',
    'analyze',
    'calc_pl',
    'project',
    # Services
    'DebouncedSaver',
    'Dashboard',
    'LoadStatus',
    'PortfolioService',
]
