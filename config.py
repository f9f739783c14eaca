"""
Configuration management for Baht Ledger.
Uses pydantic-settings for type-safe, centralized configuration.
"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Ledger settings. Every field can be overridden by the upper-cased
    environment variable or a line in .env.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore'  # .env may carry keys for other tools
    )

    # Database
    database_url: str = "sqlite:///baht_ledger.db"
    db_echo: bool = False

    # Local JSON backup of every saved portfolio (None disables it)
    local_backup_dir: Optional[str] = ".portfolio_backup"

    # Currency
    fallback_usd_thb_rate: float = 33.0

    # Price cache freshness (hours). The live read threshold and the
    # scheduled refresh interval are independent values.
    live_stale_hours: float = 18.0
    refresh_interval_hours: float = 6.0

    # Market data fetching
    refresh_delay_seconds: float = 0.3
    fetch_max_workers: int = 5
    fetch_timeout_seconds: float = 10.0
    yahoo_user_agent: str = "Mozilla/5.0 (compatible; PortfolioBot/1.0)"
    finnomena_base_url: str = "https://www.finnomena.com"

    # Persistence
    save_debounce_ms: int = 800

    # Portfolio defaults
    default_dca: float = 1000.0
    default_spec_cap: float = 10.0

    @property
    def is_backup_enabled(self) -> bool:
        """Check if the local JSON backup is configured."""
        return bool(self.local_backup_dir)


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings
