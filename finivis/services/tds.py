"""Tax collected at source on foreign remittance, Section 206C(1G).

TDS applies once a customer's remittances in a financial year cross
INR 7,00,000; only the part above the threshold is taxed. Sale of foreign
currency never attracts TDS. TDS is a government levy, not a fee.
"""

from __future__ import annotations
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from finivis.db.dal import Database
from finivis.services.lrs import current_financial_year
from finivis.services.money import round2
from finivis.services.rates.conversion import COMPLIANCE_USD_INR_RATE

TDS_THRESHOLD_INR = 700_000.0

TDS_RATES: Dict[str, tuple[float, str]] = {
    "education_loan": (0.005, "Education (with loan)"),
    "education": (0.05, "Education (self-funded)"),
    "medical": (0.05, "Medical Treatment"),
    "travel": (0.20, "Travel"),
    "business": (0.20, "Business"),
    "family_maintenance": (0.20, "Family Maintenance"),
    "emigration": (0.20, "Emigration"),
    "employment": (0.20, "Employment"),
    "investment": (0.20, "Investment"),
    "gift": (0.20, "Gift/Donation"),
    "other": (0.20, "Other"),
}


@dataclass
class TDSResult:
    tds_applicable: bool
    tds_amount: float
    tds_rate: float  # percent
    tds_rate_name: str
    threshold_used: float
    remaining_threshold: float
    total_fy_usage: float
    regulatory_note: str

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _purpose_key(purpose: str) -> str:
    return "_".join((purpose or "other").lower().split())


def calculate_tds(
    amount_inr: float, purpose: str, exchange_type: str, fy_total_inr: float
) -> TDSResult:
    if exchange_type == "sell":
        return TDSResult(
            tds_applicable=False,
            tds_amount=0.0,
            tds_rate=0.0,
            tds_rate_name="N/A",
            threshold_used=0.0,
            remaining_threshold=TDS_THRESHOLD_INR,
            total_fy_usage=0.0,
            regulatory_note="TDS is not applicable on sale of foreign currency.",
        )

    rate, name = TDS_RATES.get(_purpose_key(purpose), TDS_RATES["other"])
    if fy_total_inr >= TDS_THRESHOLD_INR:
        taxable = amount_inr
    else:
        taxable = max(0.0, fy_total_inr + amount_inr - TDS_THRESHOLD_INR)
    tds_amount = round2(taxable * rate)
    applicable = tds_amount > 0
    if applicable:
        note = (
            f"TDS of {rate * 100:.1f}% (₹{tds_amount:,.2f}) applies as your FY remittances "
            "exceed ₹7,00,000. TDS is a government requirement and can be claimed while "
            "filing your income tax return."
        )
    else:
        note = "No TDS applicable as your FY remittances are within ₹7,00,000 threshold."
    return TDSResult(
        tds_applicable=applicable,
        tds_amount=tds_amount,
        tds_rate=round2(rate * 100),
        tds_rate_name=name,
        threshold_used=min(fy_total_inr, TDS_THRESHOLD_INR),
        remaining_threshold=max(0.0, TDS_THRESHOLD_INR - fy_total_inr),
        total_fy_usage=fy_total_inr,
        regulatory_note=note,
    )


def fy_remittance_total_inr(db: Database, user_id: int, financial_year: Optional[str] = None) -> float:
    fy = financial_year or current_financial_year()
    used_usd = db.lrs_totals(user_id, fy)["total_used"]
    return round2(used_usd * COMPLIANCE_USD_INR_RATE)


def calculate_tds_for_user(
    db: Database, user_id: int, amount_inr: float, purpose: str, exchange_type: str = "buy"
) -> TDSResult:
    return calculate_tds(amount_inr, purpose, exchange_type, fy_remittance_total_inr(db, user_id))
