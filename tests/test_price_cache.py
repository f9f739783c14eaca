"""Tests for the price cache adapter."""

import datetime as dt

import pytest

from models import FX_SYMBOL, Currency, LeafAsset, PriceCacheEntry
from services.money import round_money, to_display_amount
from services.price_cache import (
    apply_cache,
    apply_cache_to_asset,
    bound_symbols,
    is_stale,
    live_rate,
    stale_symbols,
)

NOW = dt.datetime(2024, 3, 1, 12, 0, tzinfo=dt.timezone.utc)


def entry(symbol, price, hours_old=1.0, kind="fund"):
    return PriceCacheEntry(
        symbol=symbol,
        type=kind,
        price=price,
        updated_at=NOW - dt.timedelta(hours=hours_old),
    )


class TestIsStale:
    """Test staleness checks."""

    def test_missing_timestamp_is_stale(self):
        assert is_stale(None, 18, NOW) is True

    @pytest.mark.parametrize("hours_old,expected", [(1, False), (17.9, False), (18.1, True), (48, True)])
    def test_threshold(self, hours_old, expected):
        assert is_stale(NOW - dt.timedelta(hours=hours_old), 18, NOW) is expected

    def test_naive_timestamp_is_utc(self):
        naive = (NOW - dt.timedelta(hours=19)).replace(tzinfo=None)

        assert is_stale(naive, 18, NOW) is True

    def test_stays_stale_as_time_passes(self):
        updated = NOW - dt.timedelta(hours=7)

        assert is_stale(updated, 6, NOW)
        assert is_stale(updated, 6, NOW + dt.timedelta(hours=1))

    def test_thresholds_are_independent(self):
        updated = NOW - dt.timedelta(hours=8)

        assert is_stale(updated, 6, NOW) is True
        assert is_stale(updated, 18, NOW) is False


class TestApplyCache:
    """Test pricing assets from cache entries."""

    def test_fund_units_times_nav(self, fund_asset):
        priced = apply_cache_to_asset(fund_asset, {"K-US500X-A": entry("K-US500X-A", 12.34567)})

        assert priced.current_value == 1234.57
        assert priced.nav_updated_at == NOW - dt.timedelta(hours=1)

    def test_zero_units_keeps_value(self, fund_asset):
        fund_asset.units = 0.0

        priced = apply_cache_to_asset(fund_asset, {"K-US500X-A": entry("K-US500X-A", 12.0)})

        assert priced.current_value == 1200.0
        assert priced.nav_updated_at is None

    def test_unbound_or_missing_passes_through(self, fund_asset):
        plain = LeafAsset(id="x", current_value=77.0, units=5.0)

        assert apply_cache_to_asset(plain, {"K-US500X-A": entry("K-US500X-A", 1.0)}) == plain
        assert apply_cache_to_asset(fund_asset, {}) == fund_asset

    def test_sub_assets_priced_by_symbol(self, us_group):
        cache = {"MSFT": entry("MSFT", 50.0, kind="us_stock")}

        priced = apply_cache_to_asset(us_group, cache)
        msft, lrcx = priced.sub_assets

        assert msft.current_value == 500.0
        assert msft.price_updated_at is not None
        assert lrcx.current_value == 500.0
        assert lrcx.price_updated_at is None

    def test_usd_display_of_priced_sub_asset(self, us_group):
        priced = apply_cache_to_asset(us_group, {"MSFT": entry("MSFT", 50.0)})

        assert round_money(to_display_amount(priced.sub_assets[0].current_value, Currency.USD, 35.0)) == 14.29

    def test_idempotent(self, fund_asset, us_group):
        cache = {
            "K-US500X-A": entry("K-US500X-A", 12.5),
            "MSFT": entry("MSFT", 400.0),
            "LRCX": entry("LRCX", 900.0),
        }

        once = apply_cache([fund_asset, us_group], cache)
        twice = apply_cache(once, cache)

        assert once == twice

    def test_input_is_not_modified(self, fund_asset):
        apply_cache([fund_asset], {"K-US500X-A": entry("K-US500X-A", 99.0)})

        assert fund_asset.current_value == 1200.0


class TestCacheQueries:
    """Test symbol discovery, live rate and stale symbol selection."""

    def test_bound_symbols(self, fund_asset, us_group, th_group):
        duplicate = LeafAsset(id="a9", fund_code=" K-US500X-A ")

        assert bound_symbols([fund_asset, us_group, th_group, duplicate]) == [
            "K-US500X-A", "MSFT", "LRCX", "PTT.BK",
        ]

    def test_live_rate(self):
        assert live_rate({FX_SYMBOL: entry(FX_SYMBOL, 36.1, kind="fx")}, 33.0) == 36.1
        assert live_rate({}, 33.0) == 33.0

    def test_stale_symbols(self):
        cache = {
            "FRESH": entry("FRESH", 1.0, hours_old=2),
            "OLD": entry("OLD", 1.0, hours_old=30),
        }

        assert stale_symbols(["FRESH", "OLD", "MISSING"], cache, 18, NOW) == ["OLD", "MISSING"]
