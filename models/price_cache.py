"""
PriceCacheEntry model - latest fetched price per market symbol or fund code.
"""

import datetime as dt
from typing import Optional
from sqlmodel import SQLModel, Field

from models.transaction import utcnow

# Pseudo-symbol whose price is the USD->THB exchange rate itself
FX_SYMBOL = "USDTHB=X"


class PriceCacheEntry(SQLModel, table=True):
    """
    Cached price for a symbol.
    Prices are stored in THB, except FX_SYMBOL which holds the USD->THB rate.
    """
    __tablename__ = "price_cache"

    symbol: str = Field(primary_key=True)
    type: str = Field(index=True)  # "thai_stock", "us_stock", "fund", "fx"
    price: float
    currency: str = Field(default="THB")
    price_date: Optional[dt.date] = Field(default=None)  # Trading date the price is for
    source: str = Field(default="yahoo")  # "yahoo" or "finnomena"
    updated_at: dt.datetime = Field(default_factory=utcnow, index=True)
