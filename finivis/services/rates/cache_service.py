from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from finivis.core.config import Settings, get_settings
from finivis.core.errors import DomainError
from finivis.services.app_settings import (
    get_effective_rate_provider,
    get_rates_cache_ttl,
)
from finivis.services.money import round4

if TYPE_CHECKING:  # pragma: no cover
    from finivis.db.dal import Database
from .base import RateProvider
from .providers import SUPPORTED_CURRENCIES, make_rate_provider

"""Central rate cache service.

Purpose:
    Single place that caches INR-per-unit rates for the supported currencies for
    a configurable TTL and layers admin overrides on top.

Design:
    - Wraps the RateProvider chosen by settings or the metadata override.
    - In-memory dict of last fetched rate + timestamp per currency.
    - Manual overrides (rate + expiry) win over cached and provider values.
    - ``list_rates`` shapes the public rate board: buy rate and sell rate
      (buy plus the 0.6% spread), both at 4 decimals.
"""

SELL_SPREAD = 1.006


@dataclass
class _CacheEntry:
    rate: float
    fetched_at: datetime


@dataclass
class _OverrideEntry:
    rate: float
    expires_at: datetime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CentralRateCacheService:
    """Cached rate service with TTL-bound entries and manual overrides."""

    def __init__(
        self,
        db: "Database" | None = None,
        provider: Optional[RateProvider] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        if db is not None:
            provider_name = get_effective_rate_provider(db, settings.exchange_rate_provider)
            ttl_seconds = get_rates_cache_ttl(db, settings.rates_cache_ttl_seconds)
        else:
            provider_name = settings.exchange_rate_provider
            ttl_seconds = settings.rates_cache_ttl_seconds
        self.provider_name = provider_name
        self._provider = provider or make_rate_provider(provider_name, settings)
        self._ttl = timedelta(seconds=ttl_seconds)
        self._cache: Dict[str, _CacheEntry] = {}
        self._overrides: Dict[str, _OverrideEntry] = {}

    # Internal --------------------------------------------------
    def _is_entry_valid(self, entry: _CacheEntry) -> bool:
        return _utcnow() - entry.fetched_at < self._ttl

    def _refresh_currency(self, currency: str) -> Optional[float]:
        rate = self._provider.get_rate(currency)
        if rate is None:
            return None
        self._cache[currency] = _CacheEntry(rate=rate, fetched_at=_utcnow())
        return rate

    def _purge_expired_overrides(self) -> None:
        now = _utcnow()
        expired = [k for k, v in self._overrides.items() if v.expires_at <= now]
        for k in expired:
            self._overrides.pop(k, None)

    def _lookup(self, currency: str) -> Optional[float]:
        self._purge_expired_overrides()
        ov = self._overrides.get(currency)
        if ov:
            return ov.rate
        entry = self._cache.get(currency)
        if entry and self._is_entry_valid(entry):
            return entry.rate
        return self._refresh_currency(currency)

    # Manual overrides -----------------------------------------
    def set_override(self, currency: str, rate: float, ttl_seconds: int) -> None:
        currency = currency.upper()
        if currency not in SUPPORTED_CURRENCIES:
            raise ValueError(f"Unsupported currency '{currency}'")
        if rate <= 0:
            raise ValueError("override rate must be positive")
        if ttl_seconds <= 0:
            raise ValueError("override ttl must be positive seconds")
        self._overrides[currency] = _OverrideEntry(
            rate=rate, expires_at=_utcnow() + timedelta(seconds=ttl_seconds)
        )

    def clear_override(self, currency: str) -> bool:
        return self._overrides.pop(currency.upper(), None) is not None

    def list_overrides(self) -> Dict[str, Dict[str, str | float]]:
        self._purge_expired_overrides()
        return {
            c: {"rate": v.rate, "expires_at": v.expires_at.isoformat()}
            for c, v in self._overrides.items()
        }

    # Public API -----------------------------------------------
    def get_rate(self, currency: str) -> float:
        currency = currency.upper()
        if currency == "INR":
            return 1.0
        if currency not in SUPPORTED_CURRENCIES:
            raise DomainError(f"Unsupported currency '{currency}'")
        rate = self._lookup(currency)
        if rate is None:
            raise DomainError(f"Rate for {currency} is currently unavailable")
        return rate

    def get_sell_rate(self, currency: str) -> float:
        return round4(self.get_rate(currency) * SELL_SPREAD)

    def list_rates(self) -> Dict[str, Any]:
        rates: List[Dict[str, Any]] = []
        overrides = self.list_overrides()
        for code, name in SUPPORTED_CURRENCIES.items():
            buy = self._lookup(code)
            if buy is None:
                continue
            rates.append(
                {
                    "currency": code,
                    "name": name,
                    "buy_rate": round4(buy),
                    "sell_rate": round4(buy * SELL_SPREAD),
                    "overridden": code in overrides,
                }
            )
        return {
            "base": "INR",
            "provider": self.provider_name,
            "last_updated": self._provider.last_updated() or _utcnow().isoformat(timespec="seconds"),
            "rates": rates,
        }


def build_dynamic_rate_cache_service(
    db: "Database", settings: Optional[Settings] = None
) -> CentralRateCacheService:
    """Build a service honouring the metadata provider/TTL overrides in ``db``."""
    return CentralRateCacheService(db, settings=settings)
