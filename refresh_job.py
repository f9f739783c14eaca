"""
Scheduled price cache refresh using APScheduler.
Discovers every symbol across all stored portfolios, fetches quotes and fund
NAVs and upserts them into price_cache.

Usage:
    python refresh_job.py          # run every refresh_interval_hours
    python refresh_job.py --once   # single pass, then exit
"""

import logging
import sys
import time

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from dotenv import load_dotenv

from config import get_settings
from db_engine import init_db
from services.market_data import PriceProvider
from services.price_refresh import RefreshSummary, refresh_price_cache

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def run_refresh(provider: PriceProvider = None) -> RefreshSummary:
    """
    Main job function: one refresh pass over every portfolio.
    Called by the scheduler at the configured interval.
    """
    logger.info("=" * 60)
    logger.info("Starting price cache refresh...")
    logger.info("=" * 60)

    summary = refresh_price_cache(provider or PriceProvider())

    logger.info("=" * 60)
    logger.info(f"Price cache refresh complete. Rows written: {summary.written}, errors: {len(summary.errors)}")
    logger.info("=" * 60)
    return summary


def _scheduled_refresh(provider: PriceProvider) -> None:
    try:
        run_refresh(provider)
    except Exception as e:
        logger.error(f"Price cache refresh failed: {e}")


def start_refresh_scheduler() -> BackgroundScheduler:
    """Start the background scheduler, running one pass immediately."""
    hours = get_settings().refresh_interval_hours
    provider = PriceProvider()
    scheduler = BackgroundScheduler()

    scheduler.add_job(
        _scheduled_refresh,
        trigger=IntervalTrigger(hours=hours),
        args=[provider],
        id='price_cache_refresh',
        name='Price Cache Refresh',
        replace_existing=True
    )

    logger.info("Running initial refresh on startup...")
    _scheduled_refresh(provider)

    scheduler.start()
    logger.info(f"Price cache scheduler started. Running every {hours:g} hours.")
    return scheduler


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv

    try:
        init_db()
    except Exception as e:
        logger.error(f"Fatal: could not initialize database: {e}")
        return 1

    if "--once" in argv:
        try:
            run_refresh()
        except Exception as e:
            logger.error(f"Fatal: {e}")
            return 1
        return 0

    scheduler = start_refresh_scheduler()
    try:
        while True:
            time.sleep(1)
    except (KeyboardInterrupt, SystemExit):
        logger.info("Shutting down price cache scheduler...")
        scheduler.shutdown()
        logger.info("Price cache scheduler stopped.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
