"""
Portfolio analytics: P&L, allocation, speculation cap and growth projection.
All inputs are the normalized asset list plus settings; nothing is stored
between calls. Values are returned unrounded.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

import pandas as pd

from models import Asset, PortfolioSettings

logger = logging.getLogger(__name__)

# ~10% a year, compounded monthly
MONTHLY_GROWTH = 1.008
PROJECTION_MONTHS = 12


@dataclass
class AssetPL:
    """Profit/loss of a single asset."""
    asset_id: str
    name: str
    pl: float
    pl_pct: float


@dataclass
class AllocationSlice:
    """Share of one investment asset in the investment total."""
    asset_id: str
    name: str
    value: float
    pct: float
    color: Optional[str] = None


@dataclass
class CategorySlice:
    """Share of one category type in the investment total."""
    category: str
    value: float
    pct: float


@dataclass
class ProjectionPoint:
    month: int
    label: str  # "Now", "M1" ... "M12"
    value: float


@dataclass
class PortfolioSummary:
    """Portfolio-wide totals (THB)."""
    total_invest: float  # Current value of investments
    total_invested: float  # Cost basis of investments
    total_spec: float  # Current value of speculative assets
    net_worth: float
    total_pl: float
    total_pl_pct: float
    spec_cap: float  # Speculation ceiling in THB
    spec_over: float  # Positive when over the ceiling
    spec_pct: float  # Speculation as % of investments

    @property
    def is_over_cap(self) -> bool:
        return self.spec_over > 0


@dataclass
class PortfolioAnalytics:
    """Everything the dashboard needs from one snapshot."""
    summary: PortfolioSummary
    asset_pl: List[AssetPL] = field(default_factory=list)
    allocation: List[AllocationSlice] = field(default_factory=list)
    categories: List[CategorySlice] = field(default_factory=list)
    projection: List[ProjectionPoint] = field(default_factory=list)


def partition(assets: Iterable[Asset]) -> Tuple[List[Asset], List[Asset]]:
    """Split into (investments, speculative) by the is_speculative flag."""
    investments: List[Asset] = []
    speculative: List[Asset] = []
    for asset in assets:
        (speculative if asset.is_speculative else investments).append(asset)
    return investments, speculative


def calc_pl(asset: Asset) -> Tuple[float, float]:
    """
    Profit/loss of one asset.

    Returns:
        (pl, pl_pct). pl_pct is 0 for speculative assets and for assets with
        nothing invested, even when pl is non-zero.
    """
    pl = asset.current_value - asset.invested
    if asset.is_speculative or asset.invested <= 0:
        return pl, 0.0
    return pl, pl / asset.invested * 100


def summarize(assets: Iterable[Asset], settings: PortfolioSettings) -> PortfolioSummary:
    """Compute the portfolio-wide totals."""
    investments, speculative = partition(assets)

    total_invest = sum(a.current_value for a in investments)
    total_invested = sum(a.invested for a in investments)
    total_spec = sum(a.current_value for a in speculative)

    total_pl = total_invest - total_invested
    total_pl_pct = (total_pl / total_invested * 100) if total_invested > 0 else 0.0

    spec_cap = total_invest * settings.spec_cap / 100
    spec_pct = (total_spec / total_invest * 100) if total_invest > 0 else 0.0

    return PortfolioSummary(
        total_invest=total_invest,
        total_invested=total_invested,
        total_spec=total_spec,
        net_worth=total_invest + total_spec,
        total_pl=total_pl,
        total_pl_pct=total_pl_pct,
        spec_cap=spec_cap,
        spec_over=total_spec - spec_cap,
        spec_pct=spec_pct,
    )


def allocation(assets: Iterable[Asset]) -> List[AllocationSlice]:
    """Each investment asset's share of the investment total."""
    investments, _ = partition(assets)
    total = sum(a.current_value for a in investments)
    return [
        AllocationSlice(
            asset_id=a.id,
            name=a.name,
            value=a.current_value,
            pct=(a.current_value / total * 100) if total > 0 else 0.0,
            color=a.color,
        )
        for a in investments
    ]


def allocation_by_category(assets: Iterable[Asset]) -> List[CategorySlice]:
    """Investment value grouped by category type, largest first."""
    investments, _ = partition(assets)
    if not investments:
        return []

    frame = pd.DataFrame(
        [{"category": a.type.value, "value": a.current_value} for a in investments]
    )
    grouped = frame.groupby("category", sort=False)["value"].sum().sort_values(ascending=False)
    total = float(grouped.sum())

    return [
        CategorySlice(
            category=str(category),
            value=float(value),
            pct=(float(value) / total * 100) if total > 0 else 0.0,
        )
        for category, value in grouped.items()
    ]


def project(balance: float, dca: float, months: int = PROJECTION_MONTHS, growth: float = MONTHLY_GROWTH) -> List[ProjectionPoint]:
    """
    Deterministic growth projection.

    Month 0 is the balance as-is; every following month applies
    balance = balance * growth + dca.

    Examples:
        >>> [round(p.value, 2) for p in project(1000, 100, months=1)]
        [1000, 1108.0]
    """
    points = [ProjectionPoint(month=0, label="Now", value=balance)]
    for month in range(1, months + 1):
        balance = balance * growth + dca
        points.append(ProjectionPoint(month=month, label=f"M{month}", value=balance))
    return points


def analyze(assets: Iterable[Asset], settings: PortfolioSettings) -> PortfolioAnalytics:
    """Run every analytic over a normalized asset list."""
    assets = list(assets)
    summary = summarize(assets, settings)

    asset_pl = []
    for asset in assets:
        pl, pl_pct = calc_pl(asset)
        asset_pl.append(AssetPL(asset_id=asset.id, name=asset.name, pl=pl, pl_pct=pl_pct))

    return PortfolioAnalytics(
        summary=summary,
        asset_pl=asset_pl,
        allocation=allocation(assets),
        categories=allocation_by_category(assets),
        projection=project(summary.total_invest, settings.dca),
    )
