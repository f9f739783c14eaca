"""
Repositories package for Baht Ledger.
Provides data access layer for all database operations.
"""

from repositories.portfolio_repository import PortfolioRepository
from repositories.transaction_repository import TransactionRepository
from repositories.price_cache_repository import PriceCacheRepository

__all__ = [
    'PortfolioRepository',
    'TransactionRepository',
    'PriceCacheRepository',
]
