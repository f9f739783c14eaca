"""
Group aggregator.
Stock-group totals are always the sum of their sub-assets; whatever is stored
on the group itself is ignored.
"""

from dataclasses import dataclass, replace
from typing import Iterable, List

from models import Asset, GroupAsset


@dataclass(frozen=True)
class GroupTotals:
    invested: float
    current_value: float


def group_totals(asset: Asset) -> GroupTotals:
    """Sum invested and current_value over the asset's sub-assets (0 for none)."""
    subs = asset.sub_assets if isinstance(asset, GroupAsset) else []
    return GroupTotals(
        invested=sum(s.invested for s in subs),
        current_value=sum(s.current_value for s in subs),
    )


def normalize(assets: Iterable[Asset]) -> List[Asset]:
    """
    Replace every group's invested/current_value with its rolled-up totals.
    Run after valuation and cache application. Idempotent.
    """
    result: List[Asset] = []
    for asset in assets:
        if isinstance(asset, GroupAsset):
            totals = group_totals(asset)
            asset = replace(asset, invested=totals.invested, current_value=totals.current_value)
        result.append(asset)
    return result
