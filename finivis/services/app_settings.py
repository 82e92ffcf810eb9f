"""Runtime application settings backed by the metadata table.

Typed accessors for values admins can tune without a restart. All getters are
resilient: if a key is missing or invalid they fall back to environment
settings or built-in defaults.

Metadata keys:
  - exchange_rate_provider_override: str in {static, external-http}
  - rates_cache_ttl: int (seconds, 60..86400)
  - advance_pct: int (percent of order total collected as advance, 1..100)
  - rate_validity_minutes: int (rate lock validity, 5..10080)
"""

from __future__ import annotations
from typing import Optional, Protocol

from finivis.core.config import ALLOWED_RATE_PROVIDERS, Settings, get_settings

DEFAULT_ADVANCE_PCT = 10
DEFAULT_RATE_VALIDITY_MINUTES = 24 * 60


class _MetadataStore(Protocol):
    def get_metadata(self, key: str) -> Optional[str]: ...

    def set_metadata(self, key: str, value: str) -> None: ...


def _get_int(
    db: _MetadataStore,
    key: str,
    default: int,
    min_v: int | None = None,
    max_v: int | None = None,
) -> int:
    val = db.get_metadata(key)
    if val is None:
        return default
    try:
        iv = int(val)
    except ValueError:
        return default
    if min_v is not None:
        iv = max(min_v, iv)
    if max_v is not None:
        iv = min(max_v, iv)
    return iv


def _set_bounded_int(db: _MetadataStore, key: str, value: int, min_v: int, max_v: int, label: str) -> None:
    if not (min_v <= value <= max_v):
        raise ValueError(f"{label} must be between {min_v} and {max_v}")
    db.set_metadata(key, str(value))


# ------------- Rate provider / cache -------------


def get_effective_rate_provider(db: _MetadataStore, default: Optional[str] = None) -> str:
    override = db.get_metadata("exchange_rate_provider_override")
    if override and override in ALLOWED_RATE_PROVIDERS:
        return override
    return default or get_settings().exchange_rate_provider


def set_rate_provider(db: _MetadataStore, provider: str) -> None:
    if provider not in ALLOWED_RATE_PROVIDERS:
        raise ValueError(f"Unsupported provider '{provider}'")
    db.set_metadata("exchange_rate_provider_override", provider)


def get_rates_cache_ttl(db: _MetadataStore, default: Optional[int] = None) -> int:
    fallback = default if default is not None else get_settings().rates_cache_ttl_seconds
    return _get_int(db, "rates_cache_ttl", fallback, 60, 86400)


def set_rates_cache_ttl(db: _MetadataStore, ttl_seconds: int) -> None:
    _set_bounded_int(db, "rates_cache_ttl", ttl_seconds, 60, 86400, "TTL seconds")


# ------------- Currency exchange orders ----------


def get_advance_pct(db: _MetadataStore) -> int:
    return _get_int(db, "advance_pct", DEFAULT_ADVANCE_PCT, 1, 100)


def set_advance_pct(db: _MetadataStore, pct: int) -> None:
    _set_bounded_int(db, "advance_pct", pct, 1, 100, "Advance percentage")


def get_rate_validity_minutes(db: _MetadataStore) -> int:
    return _get_int(db, "rate_validity_minutes", DEFAULT_RATE_VALIDITY_MINUTES, 5, 10080)


def set_rate_validity_minutes(db: _MetadataStore, minutes: int) -> None:
    _set_bounded_int(db, "rate_validity_minutes", minutes, 5, 10080, "Rate validity minutes")


def snapshot(db: _MetadataStore, settings: Optional[Settings] = None) -> dict:
    settings = settings or get_settings()
    return {
        "exchange_rate_provider": get_effective_rate_provider(db, settings.exchange_rate_provider),
        "rates_cache_ttl_seconds": get_rates_cache_ttl(db, settings.rates_cache_ttl_seconds),
        "advance_pct": get_advance_pct(db),
        "rate_validity_minutes": get_rate_validity_minutes(db),
    }


__all__ = [
    "get_effective_rate_provider",
    "set_rate_provider",
    "get_rates_cache_ttl",
    "set_rates_cache_ttl",
    "get_advance_pct",
    "set_advance_pct",
    "get_rate_validity_minutes",
    "set_rate_validity_minutes",
    "snapshot",
]
