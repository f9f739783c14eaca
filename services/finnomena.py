"""
Finnomena fund NAV client.
Wraps the public (no login) Finnomena endpoints:

    GET /fn3/api/fund/public/list
    GET /fn3/api/fund/v2/public/funds/{id}/latest

HTTP via httpx with tenacity retries on timeouts and connection errors.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from config import get_settings

logger = logging.getLogger(__name__)

_CLASS_SUFFIX = re.compile(r"\([^)]*\)$")


@dataclass
class FundNav:
    """Latest NAV of a fund (THB)."""
    fund_code: str
    nav: float
    date: Optional[date]
    d_change: Optional[float]
    fund_id: str


def normalize_fund_code(code: str) -> str:
    """Upper-case and trim a fund code."""
    return code.upper().strip()


class FinnomenaClient:
    """Client for Finnomena fund lookups; keeps the fund list in memory."""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        settings = get_settings()
        self.base_url = base_url or settings.finnomena_base_url
        self.timeout = timeout if timeout is not None else settings.fetch_timeout_seconds
        self.headers = {"User-Agent": settings.yahoo_user_agent}
        self._client: Optional[httpx.Client] = None
        self._fund_map: Optional[Dict[str, str]] = None

    @property
    def client(self) -> httpx.Client:
        """Lazy initialization of HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self.headers,
            )
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "FinnomenaClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.ConnectError)),
        reraise=True,
    )
    def _get_json(self, path: str) -> Any:
        response = self.client.get(path)
        response.raise_for_status()
        return response.json()

    def get_fund_map(self) -> Dict[str, str]:
        """
        Fetch the fund list once and index it.

        Keys are upper-cased short codes; codes ending in a class suffix such
        as "K-US500X-A(A)" are also indexed without it.

        Returns:
            Dict of normalized code -> Finnomena fund id
        """
        if self._fund_map is not None:
            return self._fund_map

        fund_map: Dict[str, str] = {}
        for fund in self._get_json("/fn3/api/fund/public/list") or []:
            short_code = fund.get("short_code")
            fund_id = fund.get("id")
            if not short_code or not fund_id:
                continue
            raw = normalize_fund_code(short_code)
            fund_map[raw] = fund_id

            stripped = _CLASS_SUFFIX.sub("", raw).strip()
            if stripped != raw and stripped not in fund_map:
                fund_map[stripped] = fund_id

        logger.info(f"Loaded {len(fund_map)} Finnomena fund codes")
        self._fund_map = fund_map
        return fund_map

    def resolve_fund_id(self, fund_code: str) -> Optional[str]:
        """Exact match first, then a prefix match in either direction."""
        fund_map = self.get_fund_map()
        query = normalize_fund_code(fund_code)

        if query in fund_map:
            return fund_map[query]

        for key, fund_id in fund_map.items():
            if key.startswith(query) or query.startswith(key):
                return fund_id

        return None

    def fetch_fund_nav(self, fund_code: str) -> Optional[FundNav]:
        """
        Fetch the latest NAV for a fund code, e.g. "K-US500X-A".

        Returns:
            FundNav, or None if the fund is unknown or the lookup failed
        """
        try:
            fund_id = self.resolve_fund_id(fund_code)
            if not fund_id:
                logger.warning(f"Finnomena: no fund id for {fund_code}")
                return None

            payload = self._get_json(f"/fn3/api/fund/v2/public/funds/{fund_id}/latest") or {}
            data = payload.get("data")
            if payload.get("status") is False or not data or data.get("value") is None:
                logger.warning(f"Finnomena: no NAV in response for {fund_code}")
                return None

            nav_date = date.fromisoformat(data["date"][:10]) if data.get("date") else None
            d_change = data.get("d_change")
            return FundNav(
                fund_code=fund_code,
                nav=float(data["value"]),
                date=nav_date,
                d_change=float(d_change) if d_change is not None else None,
                fund_id=fund_id,
            )

        except Exception as e:
            logger.error(f"Error fetching NAV for {fund_code}: {e}")
            return None

    def clear_fund_cache(self) -> None:
        """Drop the cached fund list so the next lookup refetches it."""
        self._fund_map = None
