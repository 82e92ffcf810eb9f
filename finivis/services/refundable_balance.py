"""Refundable balance: a per-customer INR credit ledger.

Money the business owes a customer (rejected payments, cancelled orders or
policies) is credited here. The customer can spend it on another service or
ask for a bank refund, which an admin approves and then processes. Each
balance movement is one ledger entry; the balance row and its entry change in
the same transaction.
"""

from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from finivis.core.errors import ConflictError, DomainError, NotFoundError
from finivis.db.dal import Database
from finivis.services import audit
from finivis.services.money import round2

logger = logging.getLogger(__name__)

CREDIT_REASONS = (
    "payment_rejected",
    "order_rejected",
    "order_cancelled",
    "policy_cancelled",
    "overpayment",
    "manual_adjustment",
)
PROCESSABLE_STATUSES = ("pending", "approved")


def get_summary(db: Database, user_id: int) -> Dict[str, Any]:
    balance = db.get_refundable_balance(user_id)
    return {
        "balance_amount": float(balance["balance_amount"]) if balance else 0.0,
        "currency": balance["currency"] if balance else "INR",
        "entries": db.list_balance_entries(user_id),
        "refund_requests": db.list_refund_requests(user_id=user_id),
    }


def credit(
    db: Database,
    user_id: int,
    amount: float,
    reason: str,
    source_type: Optional[str] = None,
    source_id: Optional[Any] = None,
    source_reference: Optional[str] = None,
    description: Optional[str] = None,
) -> Dict[str, Any]:
    if reason not in CREDIT_REASONS:
        raise DomainError(f"Unknown credit reason '{reason}'")
    if amount <= 0:
        raise DomainError("Amount must be greater than zero")
    result = db.credit_refundable_balance(
        user_id,
        amount,
        reason,
        source_type=source_type,
        source_id=str(source_id) if source_id is not None else None,
        source_reference=source_reference,
        description=description,
    )
    logger.info("credited %.2f to user %s (%s)", round2(amount), user_id, reason)
    return result


def use_balance_for_service(
    db: Database, user_id: int, amount: float, service_type: str, service_id: Any
) -> Dict[str, Any]:
    if amount <= 0:
        raise DomainError("Amount must be greater than zero")
    return db.debit_refundable_balance(
        user_id,
        amount,
        "used_for_service",
        source_type=service_type,
        source_id=str(service_id),
        description=f"Used for {service_type}",
    )


def request_bank_refund(
    db: Database,
    user_id: int,
    amount: float,
    account_name: str,
    account_number: str,
    ifsc: str,
    bank_name: Optional[str] = None,
) -> Dict[str, Any]:
    balance = db.get_refundable_balance(user_id)
    if not balance or float(balance["balance_amount"]) <= 0:
        raise DomainError("No refundable balance available")
    if amount <= 0:
        raise DomainError("Please enter a valid amount")
    if round2(amount) > float(balance["balance_amount"]):
        raise DomainError("Requested amount exceeds available balance")
    request_id = db.insert_refund_request(
        {
            "user_id": user_id,
            "refundable_balance_id": balance["id"],
            "requested_amount": round2(amount),
            "bank_account_name": account_name.strip(),
            "bank_account_number": account_number.strip(),
            "bank_ifsc": ifsc.strip().upper(),
            "bank_name": bank_name,
        }
    )
    return db.get_refund_request(request_id)  # type: ignore[return-value]


def _get_request(db: Database, request_id: int) -> Dict[str, Any]:
    request = db.get_refund_request(request_id)
    if not request:
        raise NotFoundError("Refund request not found.")
    return request


def approve_refund_request(
    db: Database, admin: Dict[str, Any], request_id: int, notes: Optional[str] = None
) -> Dict[str, Any]:
    _get_request(db, request_id)
    if not db.update_refund_request(
        request_id, {"status": "approved", "admin_notes": notes}, expected_statuses=("pending",)
    ):
        raise ConflictError("Only pending refund requests can be approved")
    audit.record(db, admin, "refund_request_approved", "refund_request", request_id, {"notes": notes})
    return _get_request(db, request_id)


def reject_refund_request(
    db: Database, admin: Dict[str, Any], request_id: int, reason: str
) -> Dict[str, Any]:
    if not (reason or "").strip():
        raise DomainError("A rejection reason is required")
    _get_request(db, request_id)
    if not db.update_refund_request(
        request_id,
        {
            "status": "rejected",
            "rejection_reason": reason.strip(),
            "processed_by": admin["id"],
        },
        expected_statuses=("pending",),
    ):
        raise ConflictError("Only pending refund requests can be rejected")
    audit.record(db, admin, "refund_request_rejected", "refund_request", request_id, {"reason": reason})
    return _get_request(db, request_id)


def process_bank_refund(db: Database, admin: Dict[str, Any], request_id: int) -> Dict[str, Any]:
    result = db.process_bank_refund(request_id, admin["id"], PROCESSABLE_STATUSES)
    if not result["processed"]:
        raise ConflictError(f"Refund request is already {result['status']}")
    audit.record(
        db,
        admin,
        "refund_processed",
        "refund_request",
        request_id,
        {"new_balance": result["new_balance"], "entry_id": result["entry_id"]},
    )
    return {**_get_request(db, request_id), "new_balance": result["new_balance"]}
