"""
Transaction model - one ledger event (buy/sell/dividend/fee) for an asset
or a sub-asset of a stock group.
"""

import datetime as dt
from enum import Enum
from typing import Optional
from sqlmodel import SQLModel, Field


class TransactionType(str, Enum):
    """Kinds of ledger events."""
    BUY = "buy"
    SELL = "sell"
    DIVIDEND = "dividend"
    FEE = "fee"


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class Transaction(SQLModel, table=True):
    """
    Immutable ledger row.

    Sells store amount_thb, amount_usd, units and qty as negative magnitudes;
    every other kind stores non-negative values. amount_thb is frozen at the
    exchange rate in effect when the row was recorded.
    """
    __tablename__ = "transactions"

    id: Optional[str] = Field(default=None, primary_key=True)  # Assigned on insert
    user_id: str = Field(index=True)
    asset_id: str = Field(index=True)
    sub_asset_id: Optional[str] = Field(default=None)  # None targets the parent asset
    type: str = Field(default=TransactionType.BUY.value)
    amount_thb: float
    amount_usd: Optional[float] = Field(default=None)
    units: Optional[float] = Field(default=None)  # Fund units (fund-bound assets)
    qty: Optional[float] = Field(default=None)  # Shares (stocks)
    price_per_unit: Optional[float] = Field(default=None)  # NAV or share price at the time
    currency: str = Field(default="THB")
    date: dt.date = Field(default_factory=dt.date.today, index=True)
    notes: Optional[str] = Field(default=None)
    created_at: dt.datetime = Field(default_factory=utcnow)


def as_utc(value: dt.datetime) -> dt.datetime:
    """Treat naive timestamps (as SQLite returns them) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value
