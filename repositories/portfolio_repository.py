"""
Portfolio Repository - data access layer for the per-user portfolio document.

Every save also writes a local JSON backup; loads fall back to that backup
when the database has nothing for the user or cannot be read.
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional
from sqlmodel import Session, select

from config import get_settings
from db_engine import get_engine
from models import (
    Asset,
    Portfolio,
    PortfolioSettings,
    PortfolioSnapshot,
    asset_from_dict,
    asset_to_dict,
    settings_from_dict,
    settings_to_dict,
)
from models.transaction import utcnow

logger = logging.getLogger(__name__)


def _backup_path(user_id: str) -> Optional[str]:
    settings = get_settings()
    if not settings.is_backup_enabled:
        return None
    return os.path.join(settings.local_backup_dir, f"portfolio_data_{user_id}.json")


def _default_settings() -> PortfolioSettings:
    settings = get_settings()
    return PortfolioSettings(dca=settings.default_dca, spec_cap=settings.default_spec_cap)


def _to_snapshot(assets: List[Dict[str, Any]], settings: Optional[Dict[str, Any]]) -> PortfolioSnapshot:
    return PortfolioSnapshot(
        assets=[asset_from_dict(a) for a in assets or []],
        settings=settings_from_dict(settings, defaults=_default_settings()),
    )


class PortfolioRepository:
    """Repository for loading and saving portfolio documents."""

    @staticmethod
    def load(user_id: str) -> Optional[PortfolioSnapshot]:
        """
        Load a user's portfolio.

        Args:
            user_id: Portfolio owner

        Returns:
            PortfolioSnapshot, or None if neither the database nor the local
            backup holds one
        """
        try:
            with Session(get_engine()) as session:
                row = session.get(Portfolio, user_id)
                if row is not None:
                    return _to_snapshot(row.assets, row.settings)
        except Exception as e:
            logger.warning(f"Portfolio load failed for {user_id}, trying local backup: {e}")

        return PortfolioRepository._load_backup(user_id)

    @staticmethod
    def save(user_id: str, assets: List[Asset], settings: PortfolioSettings) -> bool:
        """
        Save (upsert) a user's portfolio.

        Returns:
            True if the database write succeeded, False otherwise
        """
        asset_docs = [asset_to_dict(a) for a in assets]
        settings_doc = settings_to_dict(settings)

        PortfolioRepository._write_backup(user_id, asset_docs, settings_doc)

        with Session(get_engine()) as session:
            try:
                row = session.get(Portfolio, user_id)
                if row is None:
                    row = Portfolio(user_id=user_id)
                row.assets = asset_docs
                row.settings = settings_doc
                row.updated_at = utcnow()
                session.add(row)
                session.commit()
                return True
            except Exception as e:
                session.rollback()
                logger.error(f"Portfolio save failed for {user_id}: {e}")
                return False

    @staticmethod
    def get_all_user_ids() -> List[str]:
        """List every user that has a stored portfolio."""
        with Session(get_engine()) as session:
            return list(session.exec(select(Portfolio.user_id)).all())

    @staticmethod
    def get_all_assets() -> List[Asset]:
        """
        Retrieve the assets of every stored portfolio.
        Documents that fail to parse are logged and skipped.
        """
        with Session(get_engine()) as session:
            rows = list(session.exec(select(Portfolio)).all())

        assets: List[Asset] = []
        for row in rows:
            for doc in row.assets or []:
                try:
                    assets.append(asset_from_dict(doc))
                except ValueError as e:
                    logger.warning(f"Skipping unreadable asset in portfolio {row.user_id}: {e}")
        return assets

    @staticmethod
    def _write_backup(user_id: str, assets: List[Dict[str, Any]], settings: Dict[str, Any]) -> None:
        path = _backup_path(user_id)
        if path is None:
            return
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "w", encoding="utf-8") as fh:
                json.dump({"assets": assets, "settings": settings}, fh)
        except OSError as e:
            logger.warning(f"Could not write local backup for {user_id}: {e}")

    @staticmethod
    def _load_backup(user_id: str) -> Optional[PortfolioSnapshot]:
        path = _backup_path(user_id)
        if path is None or not os.path.exists(path):
            return None
        try:
            with open(path, encoding="utf-8") as fh:
                data = json.load(fh)
            return _to_snapshot(data.get("assets"), data.get("settings"))
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read local backup for {user_id}: {e}")
            return None
