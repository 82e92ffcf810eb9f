from __future__ import annotations

"""Concrete rate providers and factory.

``static`` serves a built-in table (useful offline and in tests);
``external-http`` fetches the INR-based feed and inverts it.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from finivis.core.config import Settings, get_settings
from finivis.services.http_client import HttpError, get_json
from .base import RateProvider, RateTable

logger = logging.getLogger(__name__)

SUPPORTED_CURRENCIES: Dict[str, str] = {
    "USD": "US Dollar",
    "EUR": "Euro",
    "GBP": "British Pound",
    "AED": "UAE Dirham",
    "SGD": "Singapore Dollar",
    "AUD": "Australian Dollar",
    "CAD": "Canadian Dollar",
    "CHF": "Swiss Franc",
    "JPY": "Japanese Yen",
    "SAR": "Saudi Riyal",
    "NZD": "New Zealand Dollar",
    "THB": "Thai Baht",
    "CNY": "Chinese Yuan",
    "HKD": "Hong Kong Dollar",
    "MYR": "Malaysian Ringgit",
    "KRW": "South Korean Won",
}

# INR per 1 unit
_STATIC_RATES: RateTable = {
    "USD": 84.0,
    "EUR": 91.5,
    "GBP": 107.2,
    "AED": 22.87,
    "SGD": 62.5,
    "AUD": 55.1,
    "CAD": 61.4,
    "CHF": 95.3,
    "JPY": 0.5612,
    "SAR": 22.39,
    "NZD": 50.6,
    "THB": 2.45,
    "CNY": 11.62,
    "HKD": 10.79,
    "MYR": 18.9,
    "KRW": 0.0612,
}


class StaticRateProvider(RateProvider):
    def get_rate(self, quote_currency: str) -> Optional[float]:  # type: ignore[override]
        return _STATIC_RATES.get(quote_currency.upper())

    def last_updated(self) -> Optional[str]:
        return None


class ExternalHTTPRateProvider(RateProvider):
    """Rates from an exchangerate-api style feed (``{"rates": {...}, "date": ...}``).

    The feed is based on INR, so ``rates[X]`` is X per 1 INR; we invert to get
    INR per 1 X. A failed fetch degrades to the static table for a short while.
    """

    _CACHE_TTL = timedelta(minutes=30)
    _FAILURE_TTL = timedelta(minutes=5)

    def __init__(self, url: Optional[str] = None, timeout: Optional[float] = None):
        if url is None or timeout is None:
            settings = get_settings()
            url = url or str(settings.exchange_api_base_url)
            timeout = timeout if timeout is not None else settings.http_timeout_seconds
        self._url = url
        self._timeout = timeout
        self._cache_expires: Optional[datetime] = None
        self._rates: RateTable = {}
        self._last_updated: Optional[str] = None

    def _refresh_if_needed(self) -> None:
        now = datetime.now(timezone.utc)
        if self._cache_expires and now < self._cache_expires:
            return
        try:
            data = get_json(self._url, timeout=self._timeout, retries=2)
            raw = data.get("rates") or {}
            new_rates: RateTable = {}
            for code in SUPPORTED_CURRENCIES:
                v = raw.get(code)
                if isinstance(v, (int, float)) and v > 0:
                    new_rates[code] = 1 / v
                else:
                    logger.warning("currency %s missing from rate feed", code)
            self._rates = new_rates
            self._last_updated = data.get("date") or now.isoformat(timespec="seconds")
            self._cache_expires = now + self._CACHE_TTL
        except HttpError:
            logger.exception("rate feed unavailable, serving static rates")
            self._rates = dict(_STATIC_RATES)
            self._last_updated = None
            self._cache_expires = now + self._FAILURE_TTL

    def get_rate(self, quote_currency: str) -> Optional[float]:  # type: ignore[override]
        self._refresh_if_needed()
        return self._rates.get(quote_currency.upper())

    def last_updated(self) -> Optional[str]:
        return self._last_updated


_PROVIDER_REGISTRY = {
    "static": StaticRateProvider,
    "external-http": ExternalHTTPRateProvider,
}


def make_rate_provider(kind: str, settings: Optional[Settings] = None) -> RateProvider:
    if kind not in _PROVIDER_REGISTRY:
        raise ValueError(f"Unknown rate provider kind '{kind}'")
    if kind == "external-http" and settings is not None:
        return ExternalHTTPRateProvider(str(settings.exchange_api_base_url), settings.http_timeout_seconds)
    return _PROVIDER_REGISTRY[kind]()
