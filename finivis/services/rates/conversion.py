from __future__ import annotations

from dataclasses import dataclass

from finivis.services.money import round2
from .base import SupportsRateLookup

"""INR equivalent conversion utility.

Single place that turns ``amount`` of ``currency`` into INR using an injected
rate service (so overrides and caching apply) and rounds once.
"""

# Fixed USD/INR used for compliance thresholds (LRS is tracked in USD, TDS in INR)
COMPLIANCE_USD_INR_RATE = 84.0


@dataclass(frozen=True)
class ConversionResult:
    original_amount: float
    currency: str
    rate: float
    inr_equivalent: float


def compute_inr_equivalent(
    amount: float, currency: str, rate_service: SupportsRateLookup
) -> ConversionResult:
    currency = currency.upper()
    if currency == "INR":
        rate = 1.0
        inr_equiv = round2(amount)
    else:
        rate = rate_service.get_rate(currency)
        inr_equiv = round2(amount * rate)
    return ConversionResult(
        original_amount=amount,
        currency=currency,
        rate=rate,
        inr_equivalent=inr_equiv,
    )


def compute_usd_equivalent(
    amount: float, currency: str, rate_service: SupportsRateLookup
) -> float:
    """USD value of ``amount`` via INR cross rates (used for LRS accounting)."""
    currency = currency.upper()
    if currency == "USD":
        return round2(amount)
    inr = compute_inr_equivalent(amount, currency, rate_service).inr_equivalent
    return round2(inr / rate_service.get_rate("USD"))
