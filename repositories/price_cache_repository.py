"""
Price Cache Repository - data access layer for PriceCacheEntry model.
"""

import logging
from typing import Dict, Iterable, List
from sqlmodel import Session, select

from db_engine import get_engine
from models import PriceCacheEntry

logger = logging.getLogger(__name__)


class PriceCacheRepository:
    """Repository for price cache reads and upserts."""

    @staticmethod
    def get_many(symbols: Iterable[str]) -> Dict[str, PriceCacheEntry]:
        """
        Batch-fetch cached prices.

        Args:
            symbols: Symbols / fund codes to look up

        Returns:
            Dict of symbol -> PriceCacheEntry (missing symbols are absent)
        """
        wanted = sorted({s for s in symbols if s})
        if not wanted:
            return {}

        try:
            with Session(get_engine()) as session:
                statement = select(PriceCacheEntry).where(PriceCacheEntry.symbol.in_(wanted))
                results = session.exec(statement)
                return {row.symbol: row for row in results.all()}
        except Exception as e:
            logger.warning(f"Price cache read failed: {e}")
            return {}

    @staticmethod
    def get_all() -> List[PriceCacheEntry]:
        """Retrieve every cached price."""
        with Session(get_engine()) as session:
            return list(session.exec(select(PriceCacheEntry)).all())

    @staticmethod
    def upsert(rows: List[PriceCacheEntry]) -> int:
        """
        Save or update cache rows keyed by symbol.
        Uses upsert logic: if the symbol exists, update it; otherwise insert.

        Returns:
            Number of rows written
        """
        if not rows:
            return 0

        with Session(get_engine()) as session:
            try:
                for row in rows:
                    existing = session.get(PriceCacheEntry, row.symbol)
                    if existing:
                        existing.type = row.type
                        existing.price = row.price
                        existing.currency = row.currency
                        existing.price_date = row.price_date
                        existing.source = row.source
                        existing.updated_at = row.updated_at
                        session.add(existing)
                    else:
                        session.add(PriceCacheEntry.model_validate(row.model_dump()))
                session.commit()
                return len(rows)
            except Exception:
                session.rollback()
                raise
