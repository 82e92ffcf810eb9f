from __future__ import annotations

"""Rate provider abstraction.

Every provider quotes INR per 1 unit of a foreign currency (the inter-bank /
buy rate). Sell-side spread and slab markups are applied on top by callers.
"""
from abc import ABC, abstractmethod
from typing import Dict, Optional, Protocol


class RateProvider(ABC):
    base_currency: str = "INR"

    @abstractmethod
    def get_rate(self, quote_currency: str) -> Optional[float]:
        """Return INR per 1 unit of quote_currency, or None when not quoted."""
        raise NotImplementedError

    @abstractmethod
    def last_updated(self) -> Optional[str]:
        """Timestamp/date string of the data the provider currently serves."""
        raise NotImplementedError


class SupportsRateLookup(Protocol):
    def get_rate(self, currency: str) -> float: ...


RateTable = Dict[str, float]
