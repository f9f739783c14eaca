"""
Portfolio model - one document per user holding the asset list and settings.
"""

import datetime as dt
from dataclasses import dataclass
from typing import Any, Dict, List
from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field

from models.asset import Asset
from models.transaction import utcnow


class Portfolio(SQLModel, table=True):
    """Stored portfolio document keyed by user (or device) id."""
    user_id: str = Field(primary_key=True)
    assets: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON))
    settings: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    updated_at: dt.datetime = Field(default_factory=utcnow)


@dataclass
class PortfolioSettings:
    """User settings that drive the analytics."""
    dca: float = 1000.0  # Monthly contribution (THB)
    spec_cap: float = 10.0  # Max speculative value, % of investment value


@dataclass
class PortfolioSnapshot:
    """A loaded portfolio: parsed assets plus settings."""
    assets: List[Asset]
    settings: PortfolioSettings
