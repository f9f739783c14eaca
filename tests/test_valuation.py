"""Tests for the valuation engine."""

import pytest

from models import Currency, LeafAsset, TransactionType
from services.valuation import (
    DerivedValuation,
    ManualValuation,
    select_valuation,
    valuation_of,
    value_asset,
    value_assets,
)


class TestSelectValuation:
    """Test the manual / derived choice."""

    def test_no_transactions_is_manual(self):
        valuation = select_valuation(1000.0, None, 10.0, Currency.THB, [])

        assert isinstance(valuation, ManualValuation)
        assert valuation.is_derived is False
        assert (valuation.invested, valuation.quantity) == (1000.0, 10.0)

    def test_buys_make_it_derived(self, make_tx):
        txs = [make_tx(amount_thb=1000.0, units=10.0), make_tx(amount_thb=500.0, units=4.0)]

        valuation = select_valuation(99.0, None, 1.0, Currency.THB, txs)

        assert isinstance(valuation, DerivedValuation)
        assert valuation.invested == 1500.0
        assert valuation.quantity == 14.0
        assert valuation.transaction_count == 2

    def test_dividends_alone_stay_manual(self, make_tx):
        txs = [make_tx(kind=TransactionType.DIVIDEND, amount_thb=50.0)]

        assert isinstance(select_valuation(1000.0, None, 10.0, Currency.THB, txs), ManualValuation)

    def test_invested_usd_only_derived_for_usd(self, make_tx):
        txs = [make_tx(amount_thb=3500.0, amount_usd=100.0, qty=2.0)]

        assert select_valuation(0.0, None, 0.0, Currency.USD, txs).invested_usd == 100.0
        assert select_valuation(0.0, None, 0.0, Currency.THB, txs).invested_usd is None


class TestValueAsset:
    """Test valuation applied to assets."""

    def test_leaf_without_buys_keeps_manual_fields(self, fund_asset):
        valued = value_asset(fund_asset, [])

        assert valued.invested == 1000.0
        assert valued.units == 100.0

    def test_leaf_with_buys(self, fund_asset, make_tx):
        txs = [
            make_tx(amount_thb=400.0, units=40.0),
            make_tx(amount_thb=600.0, units=50.0),
            make_tx(kind=TransactionType.SELL, amount_thb=100.0, units=10.0),
            make_tx(asset_id="other", amount_thb=9999.0, units=1.0),
        ]

        valued = value_asset(fund_asset, txs)

        assert valued.invested == 1000.0
        assert valued.units == 90.0

    def test_current_value_is_never_touched(self, fund_asset, make_tx):
        valued = value_asset(fund_asset, [make_tx(amount_thb=5000.0, units=1.0)])

        assert valued.current_value == fund_asset.current_value

    def test_input_is_not_modified(self, fund_asset, make_tx):
        value_asset(fund_asset, [make_tx(amount_thb=5000.0, units=1.0)])

        assert fund_asset.invested == 1000.0

    def test_sub_assets_valued_separately(self, us_group, make_tx):
        txs = [
            make_tx(asset_id="g1", sub_asset_id="s1", amount_thb=3500.0, amount_usd=100.0, qty=3.0),
            make_tx(asset_id="g1", sub_asset_id="s1", amount_thb=1750.0, amount_usd=50.0, qty=1.0),
        ]

        valued = value_asset(us_group, txs)
        s1, s2 = valued.sub_assets

        assert (s1.invested, s1.invested_usd, s1.qty) == (5250.0, 150.0, 4.0)
        assert (s2.invested, s2.invested_usd, s2.qty) == (600.0, 18.0, 2.0)

    def test_deleting_only_buy_restores_manual(self, fund_asset, make_tx):
        buy = make_tx(amount_thb=5000.0, units=1.0)
        txs = [buy]

        assert value_asset(fund_asset, txs).invested == 5000.0

        txs.remove(buy)

        assert value_asset(fund_asset, txs).invested == 1000.0

    def test_value_assets(self, fund_asset, us_group, make_tx):
        valued = value_assets([fund_asset, us_group], [make_tx(amount_thb=10.0, units=1.0)])

        assert [a.id for a in valued] == ["a1", "g1"]
        assert valued[0].invested == 10.0


class TestValuationOf:
    """Test exposing the valuation mode."""

    def test_leaf(self, fund_asset, make_tx):
        assert valuation_of(fund_asset, []).is_derived is False
        assert valuation_of(fund_asset, [make_tx()]).is_derived is True

    def test_sub_asset(self, us_group, make_tx):
        txs = [make_tx(asset_id="g1", sub_asset_id="s2", amount_thb=70.0, amount_usd=2.0, qty=1.0)]

        assert valuation_of(us_group, txs, "s1").is_derived is False
        assert valuation_of(us_group, txs, "s2").is_derived is True

    def test_unknown_sub_asset_raises(self, us_group):
        with pytest.raises(ValueError):
            valuation_of(us_group, [], "nope")

    def test_plain_leaf_quantity_defaults(self):
        assert valuation_of(LeafAsset(id="x", invested=5.0), []).quantity == 0.0
