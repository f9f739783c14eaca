"""
Models for Baht Ledger.
SQLModel table definitions and the portfolio document types are centralized here.
"""

from models.asset import (
    Asset,
    CategoryType,
    Currency,
    GROUP_TYPES,
    GroupAsset,
    LeafAsset,
    SubAsset,
    copy_asset,
)
from models.transaction import Transaction, TransactionType
from models.price_cache import FX_SYMBOL, PriceCacheEntry
from models.portfolio import Portfolio, PortfolioSettings, PortfolioSnapshot
from models.document import (
    AssetDocument,
    SettingsDocument,
    SubAssetDocument,
    asset_from_dict,
    asset_to_dict,
    settings_from_dict,
    settings_to_dict,
)

__all__ = [
    'Asset',
    'CategoryType',
    'Currency',
    'GROUP_TYPES',
    'GroupAsset',
    'LeafAsset',
    'SubAsset',
    'asset_from_dict',
    'asset_to_dict',
    'copy_asset',
    'Transaction',
    'TransactionType',
    'FX_SYMBOL',
    'PriceCacheEntry',
    'Portfolio',
    'PortfolioSettings',
    'PortfolioSnapshot',
    'AssetDocument',
    'SettingsDocument',
    'SubAssetDocument',
    'settings_from_dict',
    'settings_to_dict',
]
