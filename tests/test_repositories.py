"""Tests for the SQLModel repositories against an in-memory database."""

import datetime as dt
import json
import os

import db_engine
from models import Portfolio, PortfolioSettings, PriceCacheEntry, Transaction, TransactionType
from repositories import PortfolioRepository, PriceCacheRepository, TransactionRepository


def ledger_row(asset_id="a1", date=dt.date(2024, 1, 1), user_id="u1", kind=TransactionType.BUY, amount=100.0):
    return Transaction(
        user_id=user_id,
        asset_id=asset_id,
        type=kind.value,
        amount_thb=amount,
        units=1.0,
        date=date,
    )


class TestTransactionRepository:

    def test_add_assigns_id(self, db):
        stored = TransactionRepository.add(ledger_row())

        assert stored is not None
        assert len(stored.id) == 36
        assert TransactionRepository.get_by_id(stored.id).amount_thb == 100.0

    def test_add_ignores_given_id(self, db):
        row = ledger_row()
        row.id = "mine"

        stored = TransactionRepository.add(row)

        assert stored.id != "mine"

    def test_get_by_user_newest_first(self, db):
        old = TransactionRepository.add(ledger_row(date=dt.date(2023, 1, 1)))
        new = TransactionRepository.add(ledger_row(date=dt.date(2024, 6, 1)))
        TransactionRepository.add(ledger_row(user_id="someone-else"))

        rows = TransactionRepository.get_by_user("u1")

        assert [r.id for r in rows] == [new.id, old.id]

    def test_get_by_user_filters_asset(self, db):
        TransactionRepository.add(ledger_row(asset_id="a1"))
        TransactionRepository.add(ledger_row(asset_id="a2"))

        assert [r.asset_id for r in TransactionRepository.get_by_user("u1", asset_id="a2")] == ["a2"]

    def test_delete(self, db):
        stored = TransactionRepository.add(ledger_row())

        assert TransactionRepository.delete(stored.id) is True
        assert TransactionRepository.delete(stored.id) is False
        assert TransactionRepository.get_by_user("u1") == []

    def test_delete_by_asset(self, db):
        TransactionRepository.add(ledger_row(asset_id="a1"))
        TransactionRepository.add(ledger_row(asset_id="a1"))
        TransactionRepository.add(ledger_row(asset_id="a2"))

        assert TransactionRepository.delete_by_asset("u1", "a1") == 2
        assert len(TransactionRepository.get_by_user("u1")) == 1


class TestPriceCacheRepository:

    def test_upsert_inserts_then_updates(self, db):
        first = dt.datetime(2024, 3, 1, tzinfo=dt.timezone.utc)
        PriceCacheRepository.upsert([PriceCacheEntry(symbol="MSFT", type="us_stock", price=14000.0, updated_at=first)])
        PriceCacheRepository.upsert([PriceCacheEntry(symbol="MSFT", type="us_stock", price=14500.0,
                                                     updated_at=first + dt.timedelta(hours=6))])

        cache = PriceCacheRepository.get_many(["MSFT"])

        assert cache["MSFT"].price == 14500.0
        assert len(PriceCacheRepository.get_all()) == 1

    def test_get_many_skips_missing(self, db):
        PriceCacheRepository.upsert([PriceCacheEntry(symbol="PTT.BK", type="thai_stock", price=34.0)])

        assert set(PriceCacheRepository.get_many(["PTT.BK", "NOPE", None])) == {"PTT.BK"}
        assert PriceCacheRepository.get_many([]) == {}

    def test_upsert_nothing(self, db):
        assert PriceCacheRepository.upsert([]) == 0


class TestPortfolioRepository:

    def test_save_and_load(self, db, fund_asset, us_group):
        assert PortfolioRepository.save("u1", [fund_asset, us_group], PortfolioSettings(dca=2500.0, spec_cap=5.0))

        snapshot = PortfolioRepository.load("u1")

        assert [a.id for a in snapshot.assets] == ["a1", "g1"]
        assert snapshot.assets[0].fund_code == "K-US500X-A"
        assert snapshot.assets[1].sub_assets[0].symbol == "MSFT"
        assert snapshot.settings == PortfolioSettings(dca=2500.0, spec_cap=5.0)

    def test_save_overwrites(self, db, fund_asset, us_group):
        PortfolioRepository.save("u1", [fund_asset, us_group], PortfolioSettings())
        PortfolioRepository.save("u1", [us_group], PortfolioSettings())

        assert [a.id for a in PortfolioRepository.load("u1").assets] == ["g1"]
        assert PortfolioRepository.get_all_user_ids() == ["u1"]

    def test_unknown_user(self, db):
        assert PortfolioRepository.load("nobody") is None

    def test_save_writes_local_backup(self, db, settings, fund_asset):
        PortfolioRepository.save("u1", [fund_asset], PortfolioSettings())

        path = os.path.join(settings.local_backup_dir, "portfolio_data_u1.json")
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)

        assert data["assets"][0]["finnomenaCode"] == "K-US500X-A"
        assert data["settings"] == {"dca": 1000.0, "specCap": 10.0}

    def test_load_falls_back_to_backup(self, db, fund_asset):
        PortfolioRepository.save("u1", [fund_asset], PortfolioSettings(dca=700.0))

        # A brand new empty database
        db_engine.reset_engine()
        db_engine.init_db()

        snapshot = PortfolioRepository.load("u1")

        assert [a.id for a in snapshot.assets] == ["a1"]
        assert snapshot.settings.dca == 700.0

    def test_get_all_assets_skips_unreadable(self, db, fund_asset, us_group):
        PortfolioRepository.save("u1", [fund_asset], PortfolioSettings())
        PortfolioRepository.save("u2", [us_group], PortfolioSettings())

        with db_engine.get_session() as session:
            row = session.get(Portfolio, "u2")
            row.assets = row.assets + [{"name": "no id"}]
            session.add(row)
            session.commit()

        assert sorted(a.id for a in PortfolioRepository.get_all_assets()) == ["a1", "g1"]
