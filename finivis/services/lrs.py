"""Liberalised Remittance Scheme (LRS) tracking.

Every resident may remit up to USD 250,000 per financial year (April to March)
across remittance, currency exchange and forex card loads. Usage is a running
USD total per user per financial year; nothing is reset or expired, a new year
simply has no rows yet.
"""

from __future__ import annotations
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

from finivis.db.dal import Database
from finivis.services import aml
from finivis.services.money import round2

ANNUAL_LIMIT_USD = 250_000.0
WARNING_USAGE_PCT = 90.0
HIGH_USAGE_PCT = 80.0
SERVICE_TYPES = ("remittance", "currency_exchange", "forex_card")


def current_financial_year(today: Optional[date] = None) -> str:
    """Label of the Indian financial year containing ``today``, e.g. ``2025-26``."""
    today = today or datetime.now(timezone.utc).date()
    start = today.year if today.month >= 4 else today.year - 1
    return f"{start}-{str(start + 1)[-2:]}"


@dataclass
class LRSUsage:
    financial_year: str
    total_used: float
    remaining_limit: float
    usage_percentage: float
    transaction_count: int
    annual_limit: float = ANNUAL_LIMIT_USD

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LimitCheck:
    allowed: bool
    message: Optional[str] = None


def get_lrs_usage(db: Database, user_id: int, financial_year: Optional[str] = None) -> LRSUsage:
    fy = financial_year or current_financial_year()
    totals = db.lrs_totals(user_id, fy)
    used = totals["total_used"]
    return LRSUsage(
        financial_year=fy,
        total_used=used,
        remaining_limit=round2(max(ANNUAL_LIMIT_USD - used, 0.0)),
        usage_percentage=round2(used / ANNUAL_LIMIT_USD * 100),
        transaction_count=totals["transaction_count"],
    )


def check_limit(usage: LRSUsage, amount_usd: float) -> LimitCheck:
    if amount_usd > usage.remaining_limit:
        return LimitCheck(
            False,
            f"Transaction exceeds your remaining LRS limit of USD {usage.remaining_limit:,.2f}. "
            "Annual limit is USD 2,50,000.",
        )
    new_pct = (usage.total_used + amount_usd) / ANNUAL_LIMIT_USD * 100
    if new_pct >= WARNING_USAGE_PCT:
        return LimitCheck(
            True,
            f"Warning: This transaction will use {new_pct:.1f}% of your annual LRS limit.",
        )
    return LimitCheck(True)


def record_usage(
    db: Database,
    user_id: int,
    service_type: str,
    amount_usd: float,
    purpose: str,
    *,
    transaction_id: Optional[int] = None,
    currency_exchange_order_id: Optional[int] = None,
    service_application_id: Optional[int] = None,
    today: Optional[date] = None,
) -> int:
    if service_type not in SERVICE_TYPES:
        raise ValueError(f"Unknown LRS service type '{service_type}'")
    today = today or datetime.now(timezone.utc).date()
    fy = current_financial_year(today)
    used_before = db.lrs_totals(user_id, fy)["total_used"]
    usage_id = db.insert_lrs_usage(
        {
            "user_id": user_id,
            "financial_year": fy,
            "service_type": service_type,
            "amount_usd": round2(amount_usd),
            "purpose": purpose,
            "transaction_id": transaction_id,
            "currency_exchange_order_id": currency_exchange_order_id,
            "service_application_id": service_application_id,
            "transaction_date": today.isoformat(),
        }
    )
    used_after = used_before + round2(amount_usd)
    threshold = ANNUAL_LIMIT_USD * WARNING_USAGE_PCT / 100
    if used_before < threshold <= used_after:
        aml.raise_flag(
            db,
            user_id,
            "limit_near",
            f"LRS usage reached {used_after / ANNUAL_LIMIT_USD * 100:.1f}% of the USD 2,50,000 limit for {fy}",
            "high",
            transaction_id=transaction_id,
            currency_exchange_order_id=currency_exchange_order_id,
        )
    return usage_id


def admin_summary(db: Database, financial_year: Optional[str] = None) -> Dict[str, Any]:
    """Every customer's usage for a financial year, heaviest users first."""
    fy = financial_year or current_financial_year()
    users = []
    for row in db.lrs_summary_by_user(fy):
        used = float(row["total_used"] or 0.0)
        users.append(
            {
                "user_id": row["user_id"],
                "email": row["email"] or "Unknown",
                "full_name": row["full_name"] or "Unknown",
                "total_used": round2(used),
                "remaining_limit": round2(max(ANNUAL_LIMIT_USD - used, 0.0)),
                "usage_percentage": round2(used / ANNUAL_LIMIT_USD * 100),
                "transaction_count": row["transaction_count"],
                "last_transaction": row["last_transaction"],
            }
        )
    users.sort(key=lambda u: u["usage_percentage"], reverse=True)

    total_volume = round2(sum(u["total_used"] for u in users))
    return {
        "financial_year": fy,
        "annual_limit": ANNUAL_LIMIT_USD,
        "users": users,
        "stats": {
            "total_users": len(users),
            "total_volume": total_volume,
            "average_usage": round2(total_volume / len(users)) if users else 0.0,
            "high_usage_users": sum(1 for u in users if u["usage_percentage"] >= HIGH_USAGE_PCT),
        },
        "transactions": db.list_lrs_usage(financial_year=fy),
    }
