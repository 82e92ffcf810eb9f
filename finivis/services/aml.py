"""Anti-money-laundering flags.

Flags are raised against a customer when a transaction looks unusual and sit in
``pending`` until a compliance admin reviews them. A review can mark a flag
``reviewed``, ``cleared`` or ``escalated``; the notes and reviewer are kept on
the flag and each review is written to the audit log.
"""

from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from finivis.core.errors import DomainError, NotFoundError
from finivis.db.dal import Database
from finivis.services import audit

logger = logging.getLogger(__name__)

FLAG_TYPES = ("high_value", "repeated", "unusual_country", "limit_near")
SEVERITIES = ("low", "medium", "high")
STATUSES = ("pending", "reviewed", "cleared", "escalated")
REVIEW_STATUSES = ("reviewed", "cleared", "escalated")


def raise_flag(
    db: Database,
    user_id: int,
    flag_type: str,
    reason: str,
    severity: str = "medium",
    *,
    transaction_id: Optional[int] = None,
    currency_exchange_order_id: Optional[int] = None,
) -> int:
    if flag_type not in FLAG_TYPES:
        raise ValueError(f"Unknown AML flag type '{flag_type}'")
    if severity not in SEVERITIES:
        raise ValueError(f"Unknown AML severity '{severity}'")
    flag_id = db.insert_aml_flag(
        {
            "user_id": user_id,
            "flag_type": flag_type,
            "flag_reason": reason,
            "severity": severity,
            "transaction_id": transaction_id,
            "currency_exchange_order_id": currency_exchange_order_id,
        }
    )
    logger.warning("AML flag %s raised for user %s: %s", flag_type, user_id, reason)
    return flag_id


def _filter(value: Optional[str], allowed: tuple, label: str) -> Optional[str]:
    if value is None or value == "all":
        return None
    if value not in allowed:
        raise DomainError(f"Invalid {label} '{value}'")
    return value


def list_flags(
    db: Database, status: Optional[str] = "pending", severity: Optional[str] = None
) -> List[Dict[str, Any]]:
    """Newest first; ``"all"`` disables a filter. Each flag carries its customer's name and email."""
    flags = db.list_aml_flags(
        status=_filter(status, STATUSES, "status"),
        severity=_filter(severity, SEVERITIES, "severity"),
    )
    profiles: Dict[int, Dict[str, Any]] = {}
    for flag in flags:
        uid = flag["user_id"]
        if uid not in profiles:
            profiles[uid] = db.get_profile(uid) or {}
        flag["profile"] = {
            "full_name": profiles[uid].get("full_name"),
            "email": profiles[uid].get("email"),
        }
    return flags


def review_flag(
    db: Database,
    admin: Dict[str, Any],
    flag_id: int,
    status: str,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    if status not in REVIEW_STATUSES:
        raise DomainError("Status must be 'reviewed', 'cleared' or 'escalated'")
    flag = db.get_aml_flag(flag_id)
    if not flag:
        raise NotFoundError("AML flag not found")

    db.review_aml_flag(flag_id, status, admin["id"], notes)
    audit.record(
        db,
        admin,
        f"aml_flag_{status}",
        "aml_flag",
        flag_id,
        {"user_id": flag["user_id"], "previous_status": flag["status"], "notes": notes},
    )
    return db.get_aml_flag(flag_id)  # type: ignore[return-value]
