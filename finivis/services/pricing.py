from __future__ import annotations

"""Slab-wise exchange rate pricing.

The customer rate is the inter-bank rate (IBR) plus a markup percentage chosen
by product and by the INR value of the deal:

    final_rate = ibr * (1 + markup / 100)

Slabs are inclusive INR ranges. Values that fall between two slabs (e.g.
50000.5) or above the last bound use the last slab.
"""
from dataclasses import dataclass
import math
from typing import Dict, List, Tuple

from finivis.core.errors import DomainError

# Product keys are customer-facing data values; "Maintaince TT" is spelled the
# way existing orders and receipts store it.
PRODUCT_TYPES: Tuple[str, ...] = (
    "Education TT",
    "Maintaince TT",
    "Gift TT",
    "Currency Card",
    "Currency Note",
)

ESTIMATED_IBR = 84.0


@dataclass(frozen=True)
class Slab:
    min: float
    max: float
    rates: Dict[str, float]

    @property
    def label(self) -> str:
        upper = "∞" if math.isinf(self.max) else f"{self.max:g}"
        return f"{self.min:g}-{upper}"


PRICING_SLABS: List[Slab] = [
    Slab(0, 50000, {
        "Education TT": 3.00,
        "Maintaince TT": 4.00,
        "Gift TT": 4.00,
        "Currency Card": 2.00,
        "Currency Note": 2.50,
    }),
    Slab(50001, 100000, {
        "Education TT": 1.25,
        "Maintaince TT": 1.50,
        "Gift TT": 1.50,
        "Currency Card": 1.25,
        "Currency Note": 1.50,
    }),
    Slab(100001, 200000, {
        "Education TT": 1.00,
        "Maintaince TT": 1.25,
        "Gift TT": 1.25,
        "Currency Card": 1.00,
        "Currency Note": 1.00,
    }),
    Slab(200001, math.inf, {
        "Education TT": 1.00,
        "Maintaince TT": 1.25,
        "Gift TT": 1.25,
        "Currency Card": 1.00,
        "Currency Note": 1.00,
    }),
]


@dataclass(frozen=True)
class RateBreakdown:
    base_rate: float
    markup_percent: float
    service_charge_per_unit: float
    final_rate: float
    slab_range: str

    def as_dict(self) -> Dict[str, float | str]:
        return {
            "base_rate": self.base_rate,
            "markup_percent": self.markup_percent,
            "service_charge_per_unit": self.service_charge_per_unit,
            "final_rate": self.final_rate,
            "slab_range": self.slab_range,
        }


def _validate(product: str, ibr_rate: float) -> None:
    if product not in PRODUCT_TYPES:
        raise DomainError(f"Unknown product type '{product}'")
    if ibr_rate <= 0:
        raise DomainError("Base rate must be positive")


def find_slab(amount_inr: float) -> Slab:
    for slab in PRICING_SLABS:
        if slab.min <= amount_inr <= slab.max:
            return slab
    return PRICING_SLABS[-1]


def calculate_exchange_rate(product: str, amount_fcy: float, ibr_rate: float) -> float:
    _validate(product, ibr_rate)
    markup = find_slab(amount_fcy * ibr_rate).rates[product]
    return ibr_rate * (1 + markup / 100)


def get_markup_percentage(product: str, amount_fcy: float, ibr_rate: float = ESTIMATED_IBR) -> float:
    """Markup for a foreign amount; uses an estimated IBR when none is known."""
    _validate(product, ibr_rate)
    return find_slab(amount_fcy * ibr_rate).rates[product]


def calculate_exchange_rate_with_breakdown(
    product: str, amount_fcy: float, ibr_rate: float
) -> RateBreakdown:
    _validate(product, ibr_rate)
    slab = find_slab(amount_fcy * ibr_rate)
    markup = slab.rates[product]
    service_charge = ibr_rate * (markup / 100)
    return RateBreakdown(
        base_rate=ibr_rate,
        markup_percent=markup,
        service_charge_per_unit=service_charge,
        final_rate=ibr_rate + service_charge,
        slab_range=slab.label,
    )


def product_for_remittance_purpose(purpose: str) -> str:
    """Map a remittance purpose onto the TT product used for pricing."""
    purpose = (purpose or "").lower()
    if purpose in ("education", "education_loan"):
        return "Education TT"
    if purpose == "gift":
        return "Gift TT"
    return "Maintaince TT"
