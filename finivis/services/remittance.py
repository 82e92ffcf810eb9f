"""Outward remittance: beneficiaries, send-money transfers and INR wallets.

Transfer lifecycle::

    payment_pending -> payment_confirmed -> dispatched -> completed
           |                  |
           |                  +--> payment_rejected / cancelled (money credited back)
           +--> cancellation_requested --> cancelled
           +--> payment_rejected

The customer can only ask for a cancellation; an admin decides it. Money the
business had already confirmed is returned to the refundable balance in the
same transaction as the status change.
"""

from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from finivis.core.errors import ConflictError, DomainError, NotFoundError, mask_iban, mask_sensitive_data, mask_swift
from finivis.db.dal import Database, utc_now_iso
from finivis.models.remittance import (
    BeneficiaryIn,
    BeneficiaryUpdate,
    DepositIn,
    RemittanceIn,
    RemittanceQuoteIn,
)
from finivis.services import audit, kyc, lrs, tds
from finivis.services.money import round2, round4
from finivis.services.notifications import Outbox
from finivis.services.pricing import calculate_exchange_rate, product_for_remittance_purpose
from finivis.services.rates.cache_service import CentralRateCacheService
from finivis.services.rates.conversion import compute_usd_equivalent

logger = logging.getLogger(__name__)

CANCELLABLE_BY_CUSTOMER = ("payment_pending",)
# statuses each admin action may start from
ADMIN_TRANSITIONS: Dict[str, tuple] = {
    "confirm": ("payment_pending", "cancellation_requested"),
    "reject": ("payment_pending", "cancellation_requested", "payment_confirmed"),
    "dispatch": ("payment_confirmed",),
    "complete": ("dispatched",),
    "cancel": ("payment_pending", "cancellation_requested", "payment_confirmed"),
}
# money is held by the business once the payment was confirmed
FUNDED_STATUSES = ("payment_confirmed",)


# ----------------------------------------------------------------------
# Beneficiaries


def masked_beneficiary(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        **row,
        "account_number": mask_sensitive_data(row.get("account_number")) if row.get("account_number") else None,
        "iban": mask_iban(row.get("iban")) if row.get("iban") else None,
        "swift_code": mask_swift(row.get("swift_code")) if row.get("swift_code") else None,
    }


def add_beneficiary(db: Database, profile: Dict[str, Any], payload: BeneficiaryIn) -> Dict[str, Any]:
    beneficiary_id = db.insert_beneficiary({"user_id": profile["id"], **payload.model_dump()})
    return masked_beneficiary(db.get_beneficiary(beneficiary_id))  # type: ignore[arg-type]


def list_beneficiaries(db: Database, profile: Dict[str, Any], include_inactive: bool = False) -> List[Dict[str, Any]]:
    rows = db.list_beneficiaries(profile["id"], active_only=not include_inactive)
    return [masked_beneficiary(r) for r in rows]


def get_beneficiary(db: Database, profile: Dict[str, Any], beneficiary_id: int) -> Dict[str, Any]:
    row = db.get_beneficiary(beneficiary_id)
    if not row or row["user_id"] != profile["id"]:
        raise NotFoundError("Beneficiary not found")
    return row


def update_beneficiary(
    db: Database, profile: Dict[str, Any], beneficiary_id: int, payload: BeneficiaryUpdate
) -> Dict[str, Any]:
    get_beneficiary(db, profile, beneficiary_id)
    fields = payload.model_dump(exclude_none=True)
    if "is_active" in fields:
        fields["is_active"] = 1 if fields["is_active"] else 0
    db.update_beneficiary(beneficiary_id, fields)
    return masked_beneficiary(get_beneficiary(db, profile, beneficiary_id))


def deactivate_beneficiary(db: Database, profile: Dict[str, Any], beneficiary_id: int) -> None:
    get_beneficiary(db, profile, beneficiary_id)
    db.update_beneficiary(beneficiary_id, {"is_active": 0})


# ----------------------------------------------------------------------
# Send money


def quote(
    db: Database,
    rates: CentralRateCacheService,
    profile: Dict[str, Any],
    payload: RemittanceQuoteIn,
) -> Dict[str, Any]:
    beneficiary = get_beneficiary(db, profile, payload.beneficiary_id)
    if not beneficiary["is_active"]:
        raise DomainError("Beneficiary is inactive")
    currency = beneficiary["currency"]
    product = product_for_remittance_purpose(payload.purpose)
    ibr = rates.get_rate(currency)
    rate = round4(calculate_exchange_rate(product, payload.amount, ibr))
    source_amount = round2(payload.amount * rate)
    usd = compute_usd_equivalent(payload.amount, currency, rates)
    tds_result = tds.calculate_tds_for_user(db, profile["id"], source_amount, payload.purpose)
    limit_check = lrs.check_limit(lrs.get_lrs_usage(db, profile["id"]), usd)
    return {
        "beneficiary_id": beneficiary["id"],
        "product_type": product,
        "destination_amount": round2(payload.amount),
        "destination_currency": currency,
        "base_rate": round4(ibr),
        "exchange_rate": rate,
        "source_amount": source_amount,
        "source_currency": "INR",
        "fee": 0.0,
        "tds": tds_result.as_dict(),
        "total_amount": round2(source_amount + tds_result.tds_amount),
        "usd_equivalent": usd,
        "lrs": {"allowed": limit_check.allowed, "message": limit_check.message},
    }


def create_transfer(
    db: Database,
    rates: CentralRateCacheService,
    profile: Dict[str, Any],
    payload: RemittanceIn,
) -> Dict[str, Any]:
    kyc.require_kyc(profile)
    if not payload.declaration_accepted:
        raise DomainError("Please accept the LRS declaration to continue")
    q = quote(db, rates, profile, payload)
    if not q["lrs"]["allowed"]:
        raise DomainError(q["lrs"]["message"])

    txn_id = db.insert_transaction(
        {
            "user_id": profile["id"],
            "transaction_type": "remittance",
            "beneficiary_id": q["beneficiary_id"],
            "product_type": q["product_type"],
            "source_amount": q["source_amount"],
            "source_currency": "INR",
            "destination_amount": q["destination_amount"],
            "destination_currency": q["destination_currency"],
            "exchange_rate": q["exchange_rate"],
            "fee": q["fee"],
            "tds_amount": q["tds"]["tds_amount"],
            "total_amount": q["total_amount"],
            "usd_equivalent": q["usd_equivalent"],
            "purpose": payload.purpose,
            "payment_method": payload.payment_method,
            "payment_reference": payload.payment_reference,
            "status": "payment_pending",
        }
    )
    lrs.record_usage(db, profile["id"], "remittance", q["usd_equivalent"], payload.purpose, transaction_id=txn_id)
    txn = db.get_transaction(txn_id)
    logger.info("remittance %s created for user %s", txn["reference_number"], profile["id"])  # type: ignore[index]
    return {"transaction": txn, "lrs_warning": q["lrs"]["message"], "tds": q["tds"]}


def get_transaction(db: Database, txn_id: int) -> Dict[str, Any]:
    txn = db.get_transaction(txn_id)
    if not txn:
        raise NotFoundError("Transaction not found")
    return txn


def get_customer_transaction(db: Database, profile: Dict[str, Any], txn_id: int) -> Dict[str, Any]:
    txn = get_transaction(db, txn_id)
    if txn["user_id"] != profile["id"]:
        raise NotFoundError("Transaction not found")
    return txn


def request_cancellation(db: Database, profile: Dict[str, Any], txn_id: int, reason: str) -> Dict[str, Any]:
    txn = get_customer_transaction(db, profile, txn_id)
    if txn["transaction_type"] != "remittance":
        raise DomainError("Only transfers can be cancelled")
    if not db.update_transaction(
        txn_id,
        {
            "status": "cancellation_requested",
            "cancellation_reason": reason.strip(),
            "cancellation_requested_at": utc_now_iso(),
        },
        expected_statuses=CANCELLABLE_BY_CUSTOMER,
    ):
        raise ConflictError("Cancellation can only be requested while payment is pending")
    return get_transaction(db, txn_id)


# ----------------------------------------------------------------------
# Admin operations


def _notify(outbox: Optional[Outbox], db: Database, email_type: str, txn: Dict[str, Any], **fields: Any) -> None:
    if outbox is None:
        return
    outbox.queue(
        email_type,
        db.get_profile(txn["user_id"]),
        referenceNumber=txn["reference_number"],
        amount=txn["total_amount"],
        currency=txn["source_currency"],
        **fields,
    )


def _transition(
    db: Database,
    admin: Dict[str, Any],
    txn_id: int,
    action: str,
    fields: Dict[str, Any],
    credit_reason: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    txn = get_transaction(db, txn_id)
    if txn["transaction_type"] != "remittance":
        raise DomainError("Only transfers go through admin review")
    if txn["status"] not in ADMIN_TRANSITIONS[action]:
        raise ConflictError(f"Cannot {action} a transaction that is {txn['status']}")
    credit = None
    if credit_reason and txn["status"] in FUNDED_STATUSES:
        credit = {
            "user_id": txn["user_id"],
            "amount": txn["total_amount"],
            "reason": credit_reason,
            "source_type": "remittance",
            "source_id": str(txn_id),
            "source_reference": txn["reference_number"],
            "description": f"Refund for transfer {txn['reference_number']}",
        }
    # CAS on the observed status: the credit decision depends on it
    if db.update_and_credit("transactions", txn_id, fields, "status", (txn["status"],), credit) is None:
        raise ConflictError("Transaction changed while it was being reviewed; reload and retry")
    audit.record(
        db,
        admin,
        f"remittance_{action}",
        "transaction",
        txn_id,
        {
            "from_status": txn["status"],
            "to_status": fields["status"],
            "refund_amount": credit["amount"] if credit else 0,
            **(details or {}),
        },
    )
    return get_transaction(db, txn_id)


def confirm_payment(db: Database, admin: Dict[str, Any], outbox: Outbox, txn_id: int) -> Dict[str, Any]:
    txn = _transition(db, admin, txn_id, "confirm", {"status": "payment_confirmed"})
    _notify(outbox, db, "payment_confirmed", txn)
    return txn


def reject_payment(db: Database, admin: Dict[str, Any], outbox: Outbox, txn_id: int, reason: str) -> Dict[str, Any]:
    reason = (reason or "").strip()
    if not reason:
        raise DomainError("A rejection reason is required")
    txn = _transition(
        db,
        admin,
        txn_id,
        "reject",
        {"status": "payment_rejected", "rejection_reason": reason},
        credit_reason="payment_rejected",
        details={"reason": reason},
    )
    _notify(outbox, db, "payment_rejected", txn, reason=reason)
    return txn


def dispatch(db: Database, admin: Dict[str, Any], outbox: Outbox, txn_id: int) -> Dict[str, Any]:
    txn = _transition(db, admin, txn_id, "dispatch", {"status": "dispatched"})
    _notify(outbox, db, "order_dispatched", txn)
    return txn


def complete(db: Database, admin: Dict[str, Any], outbox: Outbox, txn_id: int) -> Dict[str, Any]:
    txn = _transition(db, admin, txn_id, "complete", {"status": "completed", "completed_at": utc_now_iso()})
    _notify(outbox, db, "transaction_completed", txn)
    return txn


def cancel(db: Database, admin: Dict[str, Any], txn_id: int, reason: Optional[str] = None) -> Dict[str, Any]:
    fields: Dict[str, Any] = {"status": "cancelled"}
    if reason:
        fields["cancellation_reason"] = reason.strip()
    return _transition(
        db, admin, txn_id, "cancel", fields, credit_reason="order_cancelled", details={"reason": reason}
    )


def admin_list(db: Database, status: Optional[str] = None) -> List[Dict[str, Any]]:
    rows = db.list_transactions(status=status, transaction_type="remittance")
    return rows


# ----------------------------------------------------------------------
# Wallets


def list_wallets(db: Database, profile: Dict[str, Any]) -> List[Dict[str, Any]]:
    return db.list_wallets(profile["id"])


def deposit(db: Database, profile: Dict[str, Any], outbox: Optional[Outbox], payload: DepositIn) -> Dict[str, Any]:
    wallet = db.get_or_create_wallet(profile["id"], payload.currency)
    result = db.deposit_to_wallet(wallet["id"], payload.amount, payload.payment_method)
    logger.info("deposit %s of %.2f %s for user %s", result["reference_number"], payload.amount, payload.currency, profile["id"])
    if outbox is not None:
        outbox.queue(
            "deposit",
            profile,
            amount=round2(payload.amount),
            currency=payload.currency,
            referenceNumber=result["reference_number"],
            paymentMethod=payload.payment_method,
        )
    return result
