"""Shared fixtures: isolated settings, an in-memory database and a fake price provider."""

import datetime as dt
from typing import Dict, List, Optional

import pytest

import config
import db_engine
from models import CategoryType, Currency, GroupAsset, LeafAsset, SubAsset, Transaction, TransactionType
from services.finnomena import FundNav
from services.market_data import MarketDataService, Quote


@pytest.fixture(autouse=True)
def settings(monkeypatch, tmp_path):
    """Settings pointing at an in-memory database and a temporary backup directory."""
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.setenv("LOCAL_BACKUP_DIR", str(tmp_path / "backup"))
    monkeypatch.setenv("SAVE_DEBOUNCE_MS", "20")
    monkeypatch.setenv("REFRESH_DELAY_SECONDS", "0")
    monkeypatch.setenv("FALLBACK_USD_THB_RATE", "33.0")
    db_engine.reset_engine()
    MarketDataService.clear_cache()

    yield config.reload_settings()

    db_engine.reset_engine()
    MarketDataService.clear_cache()
    config._settings = None


@pytest.fixture
def db(settings):
    """Fresh in-memory database with every table created."""
    db_engine.init_db()
    yield db_engine.get_engine()


@pytest.fixture
def file_db(settings, monkeypatch, tmp_path):
    """File-backed database, for tests where background threads share the engine."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'ledger.db'}")
    config.reload_settings()
    db_engine.reset_engine()
    db_engine.init_db()
    yield db_engine.get_engine()


class FakeProvider:
    """Price provider returning canned quotes, NAVs and rate; records every call."""

    def __init__(
        self,
        quotes: Optional[Dict[str, Quote]] = None,
        navs: Optional[Dict[str, FundNav]] = None,
        rate: float = 35.0
    ):
        self.quotes = quotes or {}
        self.navs = navs or {}
        self.rate = rate
        self.calls: List[str] = []

    def fetch_quote(self, symbol):
        self.calls.append(symbol)
        value = self.quotes.get(symbol)
        if isinstance(value, Exception):
            raise value
        return value

    def fetch_fund_nav(self, fund_code):
        self.calls.append(fund_code)
        return self.navs.get(fund_code)

    def fetch_exchange_rate(self):
        self.calls.append("rate")
        return self.rate


def make_quote(symbol: str, price: float, currency: str = "THB") -> Quote:
    return Quote(symbol=symbol, price=price, currency=currency, date=dt.date(2024, 3, 1))


def make_nav(code: str, nav: float) -> FundNav:
    return FundNav(fund_code=code, nav=nav, date=dt.date(2024, 3, 1), d_change=0.1, fund_id="F1")


@pytest.fixture
def fake_provider():
    return FakeProvider


@pytest.fixture
def make_tx():
    """Factory for ledger rows stored with the usual sign convention."""
    counter = {"n": 0}

    def _make(
        asset_id: str = "a1",
        kind: TransactionType = TransactionType.BUY,
        amount_thb: float = 1000.0,
        units: Optional[float] = None,
        qty: Optional[float] = None,
        amount_usd: Optional[float] = None,
        sub_asset_id: Optional[str] = None,
        date: dt.date = dt.date(2024, 1, 1),
        created_at: Optional[dt.datetime] = None,
        user_id: str = "u1"
    ) -> Transaction:
        counter["n"] += 1
        sign = -1 if kind == TransactionType.SELL else 1
        return Transaction(
            id=f"tx{counter['n']}",
            user_id=user_id,
            asset_id=asset_id,
            sub_asset_id=sub_asset_id,
            type=TransactionType(kind).value,
            amount_thb=sign * amount_thb,
            amount_usd=sign * amount_usd if amount_usd is not None else None,
            units=sign * units if units is not None else None,
            qty=sign * qty if qty is not None else None,
            currency=Currency.USD.value if amount_usd is not None else Currency.THB.value,
            date=date,
            created_at=created_at or dt.datetime(2024, 1, 1, tzinfo=dt.timezone.utc) + dt.timedelta(minutes=counter["n"]),
        )

    return _make


@pytest.fixture
def fund_asset():
    return LeafAsset(
        id="a1",
        name="S&P 500 fund",
        type=CategoryType.EQUITY,
        invested=1000.0,
        current_value=1200.0,
        units=100.0,
        fund_code="K-US500X-A",
    )


@pytest.fixture
def us_group():
    return GroupAsset(
        id="g1",
        name="US stocks",
        type=CategoryType.STOCK_US,
        invested=999.0,
        current_value=999.0,
        sub_assets=[
            SubAsset(id="s1", name="Microsoft", currency=Currency.USD, invested=400.0,
                     invested_usd=12.0, current_value=450.0, qty=10.0, symbol="MSFT"),
            SubAsset(id="s2", name="Lam Research", currency=Currency.USD, invested=600.0,
                     invested_usd=18.0, current_value=500.0, qty=2.0, symbol="LRCX"),
        ],
    )


@pytest.fixture
def th_group():
    return GroupAsset(
        id="g2",
        name="Thai stocks",
        type=CategoryType.STOCK_TH,
        sub_assets=[
            SubAsset(id="t1", name="PTT", currency=Currency.THB, invested=3000.0,
                     current_value=3300.0, qty=100.0, symbol="PTT.BK"),
        ],
    )


@pytest.fixture
def quote():
    return make_quote


@pytest.fixture
def nav():
    return make_nav
