"""Currency exchange (buy/sell forex) orders.

Customer wizard: quote, create (draft), submit the advance or full payment,
attach documents, submit the balance payment. Admin desk: confirm payments,
verify documents, approve / reject, schedule, dispatch, deliver, cancel.

The ``advance_paid`` / ``balance_paid`` flags mean "confirmed by an admin";
what the customer submits is recorded in the payment method / reference
columns. Refunds are computed from confirmed amounts only.

Every status change is a compare-and-set against the statuses it may start
from, so two admins acting on the same order cannot both move it. Rejection
and cancellation return money received to the customer's refundable balance
in the same transaction as the status change.

Rate lock: submitting the payment locks the quoted rate for
``rate_validity_minutes``. Nothing expires the lock; callers compare
``rate_expires_at`` with the current time when they read the order.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, List, Optional

from finivis.core.errors import ConflictError, DomainError, NotFoundError
from finivis.db.dal import Database, utc_now_iso
from finivis.models.exchange import (
    DocumentVerificationIn,
    ExchangeOrderIn,
    OrderPaymentIn,
    PaymentIn,
    QuoteIn,
    ScheduleIn,
)
from finivis.services import app_settings, audit, delivery, kyc, lrs, tds
from finivis.services.money import round2, round4
from finivis.services.notifications import Outbox
from finivis.services.pricing import calculate_exchange_rate_with_breakdown
from finivis.services.rates.cache_service import CentralRateCacheService
from finivis.services.rates.conversion import COMPLIANCE_USD_INR_RATE, compute_usd_equivalent

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = ("delivered", "cancelled", "rejected")
PRE_PAYMENT_STATUSES = ("draft", "pending", "documents_verified", "documents_rejected", "approved")
PAID_STATUSES = ("advance_paid", "payment_received", "balance_paid")

# statuses each admin action may start from
ADMIN_TRANSITIONS: Dict[str, tuple] = {
    "confirm_advance": ("advance_paid", "payment_received", "documents_verified", "approved"),
    "confirm_balance": (
        "advance_paid",
        "payment_received",
        "documents_verified",
        "approved",
        "scheduled",
        "out_for_delivery",
    ),
    "schedule": PAID_STATUSES + ("draft", "pending", "documents_verified", "approved"),
    "out_for_delivery": PAID_STATUSES + ("scheduled", "approved", "documents_verified"),
    "deliver": ("out_for_delivery",),
    "approve": PRE_PAYMENT_STATUSES + PAID_STATUSES,
    "reject": PRE_PAYMENT_STATUSES + PAID_STATUSES + ("scheduled",),
    "cancel": PRE_PAYMENT_STATUSES + PAID_STATUSES + ("scheduled", "out_for_delivery"),
}
_STATUS_EMAILS = {
    "confirm_advance": "exchange_advance_confirmed",
    "confirm_balance": "exchange_balance_confirmed",
    "out_for_delivery": "exchange_out_for_delivery",
    "deliver": "exchange_delivered",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _iso(value: datetime) -> str:
    return value.isoformat(timespec="seconds")


# ----------------------------------------------------------------------
# Quote & rate lock


def build_quote(
    rates: CentralRateCacheService, payload: QuoteIn, advance_pct: int, validity_minutes: int
) -> Dict[str, Any]:
    ibr = rates.get_rate(payload.currency)
    breakdown = calculate_exchange_rate_with_breakdown(payload.product_type, payload.amount, ibr)
    if payload.exchange_type == "buy":
        rate = breakdown.final_rate
    else:
        # buying foreign currency back from the customer: markup comes off the IBR
        rate = ibr - breakdown.service_charge_per_unit
    rate = round4(rate)
    total = round2(payload.amount * rate)
    advance = round2(total * advance_pct / 100)
    return {
        "exchange_type": payload.exchange_type,
        "product_type": payload.product_type,
        "currency": payload.currency,
        "amount": payload.amount,
        "base_rate": round4(ibr),
        "markup_percent": breakdown.markup_percent,
        "slab_range": breakdown.slab_range,
        "exchange_rate": rate,
        "converted_amount": total,
        "service_fee": 0.0,
        "total_amount": total,
        "usd_equivalent": compute_usd_equivalent(payload.amount, payload.currency, rates),
        "advance_pct": advance_pct,
        "advance_amount": advance,
        "balance_amount": round2(total - advance),
        "rate_validity_minutes": validity_minutes,
    }


def quote(
    db: Database,
    rates: CentralRateCacheService,
    payload: QuoteIn,
    user_id: Optional[int] = None,
) -> Dict[str, Any]:
    result = build_quote(
        rates,
        payload,
        app_settings.get_advance_pct(db),
        app_settings.get_rate_validity_minutes(db),
    )
    if user_id is not None:
        result["tds"] = tds.calculate_tds_for_user(
            db, user_id, result["total_amount"], payload.purpose, payload.exchange_type
        ).as_dict()
        if payload.exchange_type == "buy":
            check = lrs.check_limit(lrs.get_lrs_usage(db, user_id), result["usd_equivalent"])
            result["lrs"] = {"allowed": check.allowed, "message": check.message}
    return result


def is_rate_locked(order: Dict[str, Any], now: Optional[datetime] = None) -> bool:
    expires = _parse_ts(order.get("rate_expires_at"))
    if not order.get("rate_locked_at") or expires is None:
        return False
    return (now or _utcnow()) < expires


def rate_lock_status(order: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or _utcnow()
    expires = _parse_ts(order.get("rate_expires_at"))
    locked = is_rate_locked(order, now)
    return {
        "locked": locked,
        "rate_locked_at": order.get("rate_locked_at"),
        "rate_expires_at": order.get("rate_expires_at"),
        "seconds_remaining": int((expires - now).total_seconds()) if locked and expires else 0,
    }


def amount_received(order: Dict[str, Any]) -> float:
    received = 0.0
    if order.get("advance_paid"):
        received += float(order.get("advance_amount") or 0)
    if order.get("balance_paid"):
        received += float(order.get("balance_amount") or 0)
    return round2(received)


def _advance_confirmed(order: Dict[str, Any]) -> bool:
    return order["exchange_type"] == "sell" or bool(order.get("advance_paid"))


def _is_fully_paid(order: Dict[str, Any]) -> bool:
    if order["exchange_type"] == "sell":
        return True
    return bool(order.get("advance_paid")) and (
        bool(order.get("balance_paid")) or float(order.get("balance_amount") or 0) == 0
    )


# ----------------------------------------------------------------------
# Customer operations


def create_order(
    db: Database, rates: CentralRateCacheService, profile: Dict[str, Any], payload: ExchangeOrderIn
) -> Dict[str, Any]:
    kyc.require_kyc(profile)

    if payload.delivery_preference == "delivery":
        check = delivery.validate_city_distance(payload.city)
        if not check.is_valid:
            raise DomainError(check.message)

    if payload.denomination_breakdown:
        total_notes = sum(float(note) * count for note, count in payload.denomination_breakdown.items())
        if round2(total_notes) != round2(payload.amount):
            raise DomainError(
                f"Denominations add up to {total_notes:g} {payload.currency}, "
                f"expected {payload.amount:g}"
            )

    q = quote(db, rates, payload)
    warning = None
    tds_result = None
    if payload.exchange_type == "buy":
        if not payload.lrs_declaration_accepted:
            raise DomainError("Please accept the LRS declaration to continue")
        usage = lrs.get_lrs_usage(db, profile["id"])
        limit_check = lrs.check_limit(usage, q["usd_equivalent"])
        if not limit_check.allowed:
            raise DomainError(limit_check.message or "LRS limit exceeded")
        warning = limit_check.message
        tds_result = tds.calculate_tds(
            q["total_amount"],
            payload.purpose,
            "buy",
            round2(usage.total_used * COMPLIANCE_USD_INR_RATE),
        ).as_dict()

    buy = payload.exchange_type == "buy"
    order_id = db.insert_exchange_order(
        {
            "user_id": profile["id"],
            "exchange_type": payload.exchange_type,
            "product_type": payload.product_type,
            "from_currency": "INR" if buy else payload.currency,
            "to_currency": payload.currency if buy else "INR",
            "amount": payload.amount,
            "exchange_rate": q["exchange_rate"],
            "base_rate": q["base_rate"],
            "markup_percent": q["markup_percent"],
            "converted_amount": q["converted_amount"],
            "service_fee": q["service_fee"],
            "total_amount": q["total_amount"],
            "usd_equivalent": q["usd_equivalent"],
            "advance_amount": q["advance_amount"] if buy else 0.0,
            "balance_amount": q["balance_amount"] if buy else 0.0,
            "rate_validity_minutes": q["rate_validity_minutes"],
            "purpose": payload.purpose,
            "city": payload.city.strip(),
            "delivery_preference": payload.delivery_preference,
            "delivery_address": payload.delivery_address,
            "delivery_date": payload.delivery_date.isoformat() if payload.delivery_date else None,
            "delivery_time_slot": payload.delivery_time_slot,
            "denomination_breakdown": payload.denomination_breakdown,
            "travel_start_date": payload.travel_start_date.isoformat() if payload.travel_start_date else None,
            "travel_end_date": payload.travel_end_date.isoformat() if payload.travel_end_date else None,
            "destination_country": payload.destination_country,
            "lrs_declaration_accepted": 1 if payload.lrs_declaration_accepted else 0,
            "documents": [d.model_dump() for d in payload.documents],
            "settlement_method": payload.settlement_method,
            "settlement_account_name": payload.settlement_account_name,
            "settlement_account_number": payload.settlement_account_number,
            "settlement_ifsc": payload.settlement_ifsc,
            "settlement_bank_name": payload.settlement_bank_name,
            "status": "draft",
        }
    )
    if buy:
        lrs.record_usage(
            db,
            profile["id"],
            "currency_exchange",
            q["usd_equivalent"],
            payload.purpose,
            currency_exchange_order_id=order_id,
        )
    order = get_order(db, order_id)
    logger.info("exchange order %s created for user %s", order["order_number"], profile["id"])
    return {"order": order, "lrs_warning": warning, "tds": tds_result}


def get_order(db: Database, order_id: int) -> Dict[str, Any]:
    order = db.get_exchange_order(order_id)
    if not order:
        raise NotFoundError("Order not found")
    return order


def get_customer_order(db: Database, profile: Dict[str, Any], order_id: int) -> Dict[str, Any]:
    order = get_order(db, order_id)
    if order["user_id"] != profile["id"]:
        raise NotFoundError("Order not found")
    return order


def submit_payment(
    db: Database, profile: Dict[str, Any], order_id: int, payload: OrderPaymentIn
) -> Dict[str, Any]:
    kyc.require_kyc(profile)
    order = get_customer_order(db, profile, order_id)
    if order["exchange_type"] != "buy":
        raise DomainError("Sell orders are settled by the branch; no payment is due")
    if order.get("payment_option"):
        raise ConflictError("Payment for this order has already been submitted")

    now = _utcnow()
    validity = int(order.get("rate_validity_minutes") or app_settings.get_rate_validity_minutes(db))
    fields: Dict[str, Any] = {
        "payment_option": payload.payment_option,
        "advance_payment_method": payload.payment_method,
        "advance_reference": payload.reference,
        "rate_locked_at": _iso(now),
        "rate_validity_minutes": validity,
        "rate_expires_at": _iso(now + timedelta(minutes=validity)),
    }
    if payload.payment_option == "advance":
        fields["status"] = "advance_paid"
    else:
        fields.update(
            status="payment_received",
            advance_amount=order["total_amount"],
            balance_amount=0.0,
        )
    if not db.update_exchange_order(order_id, fields, expected_statuses=PRE_PAYMENT_STATUSES):
        raise ConflictError(f"Payment cannot be made while the order is {order['status']}")
    updated = get_order(db, order_id)
    logger.info("payment (%s) submitted for order %s", payload.payment_option, updated["order_number"])
    return {"order": updated, "rate_lock": rate_lock_status(updated, now)}


def pay_balance(db: Database, profile: Dict[str, Any], order_id: int, payload: PaymentIn) -> Dict[str, Any]:
    order = get_customer_order(db, profile, order_id)
    if (
        order.get("payment_option") != "advance"
        or order.get("balance_paid")
        or order.get("balance_payment_method")
    ):
        raise ConflictError("No balance payment is due on this order")
    if not db.update_exchange_order(
        order_id,
        {
            "balance_payment_method": payload.payment_method,
            "balance_reference": payload.reference,
        },
        expected_statuses=ADMIN_TRANSITIONS["confirm_balance"],
    ):
        raise ConflictError(f"Balance cannot be paid while the order is {order['status']}")
    return get_order(db, order_id)


def attach_documents(
    db: Database, profile: Dict[str, Any], order_id: int, documents: List[Dict[str, Any]]
) -> Dict[str, Any]:
    order = get_customer_order(db, profile, order_id)
    if order["status"] in TERMINAL_STATUSES:
        raise ConflictError(f"Documents cannot be added to a {order['status']} order")
    merged = list(order.get("documents") or []) + documents
    fields: Dict[str, Any] = {"documents": merged, "document_verification_status": "pending"}
    if order["status"] == "documents_rejected":
        fields["status"] = "pending"
    db.update_exchange_order(order_id, fields)
    return get_order(db, order_id)


# ----------------------------------------------------------------------
# Admin operations


def admin_counters(orders: List[Dict[str, Any]]) -> Dict[str, int]:
    return {
        "pending_advance": sum(
            1 for o in orders if o["status"] in ("advance_paid", "payment_received") and not o["advance_paid"]
        ),
        "pending_document_verification": sum(
            1 for o in orders if o["document_verification_status"] == "pending" and o.get("documents")
        ),
        "awaiting_balance": sum(
            1
            for o in orders
            if o["advance_paid"]
            and not o["balance_paid"]
            and float(o["balance_amount"] or 0) > 0
            and o["status"] not in TERMINAL_STATUSES
        ),
        "ready_for_delivery": sum(
            1 for o in orders if o["status"] in ("balance_paid", "payment_received", "scheduled")
        ),
        "out_for_delivery": sum(1 for o in orders if o["status"] == "out_for_delivery"),
    }


def _transition(
    db: Database,
    admin: Dict[str, Any],
    outbox: Optional[Outbox],
    order: Dict[str, Any],
    action: str,
    fields: Dict[str, Any],
) -> Dict[str, Any]:
    order_id = order["id"]
    if not db.update_exchange_order(order_id, fields, expected_statuses=ADMIN_TRANSITIONS[action]):
        raise ConflictError(f"Cannot {action.replace('_', ' ')} an order that is {order['status']}")
    audit.record(
        db,
        admin,
        f"exchange_{action}",
        "currency_exchange_order",
        order_id,
        {"from_status": order["status"], "to_status": fields.get("status", order["status"])},
    )
    email_type = _STATUS_EMAILS.get(action)
    if email_type and outbox is not None:
        outbox.queue(
            email_type,
            db.get_profile(order["user_id"]),
            orderNumber=order["order_number"],
            amount=order["amount"],
            currency=order["to_currency"] if order["exchange_type"] == "buy" else order["from_currency"],
        )
    return get_order(db, order_id)


def confirm_advance(db: Database, admin: Dict[str, Any], outbox: Outbox, order_id: int) -> Dict[str, Any]:
    order = get_order(db, order_id)
    if order["exchange_type"] != "buy":
        raise DomainError("Sell orders take no advance")
    if not order.get("payment_option"):
        raise ConflictError("The customer has not submitted a payment yet")
    if order.get("advance_paid"):
        raise ConflictError("Advance already confirmed")
    fields: Dict[str, Any] = {"advance_paid": 1, "advance_paid_at": utc_now_iso()}
    if order["payment_option"] == "full":
        fields.update(balance_paid=1, balance_paid_at=utc_now_iso())
    return _transition(db, admin, outbox, order, "confirm_advance", fields)


def confirm_balance(db: Database, admin: Dict[str, Any], outbox: Outbox, order_id: int) -> Dict[str, Any]:
    order = get_order(db, order_id)
    if not order.get("advance_paid"):
        raise ConflictError("Advance must be confirmed before the balance")
    if order.get("balance_paid"):
        raise ConflictError("Balance already confirmed")
    fields: Dict[str, Any] = {"balance_paid": 1, "balance_paid_at": utc_now_iso()}
    # balance collected on delivery leaves a dispatched order where it is
    if order["status"] not in ("scheduled", "out_for_delivery"):
        fields["status"] = "balance_paid"
    return _transition(db, admin, outbox, order, "confirm_balance", fields)


def schedule(
    db: Database, admin: Dict[str, Any], order_id: int, payload: Optional[ScheduleIn] = None
) -> Dict[str, Any]:
    order = get_order(db, order_id)
    if not _advance_confirmed(order):
        raise ConflictError("Advance must be confirmed before scheduling delivery")
    fields: Dict[str, Any] = {"status": "scheduled"}
    if payload and payload.delivery_date:
        fields["delivery_date"] = payload.delivery_date.isoformat()
    if payload and payload.delivery_time_slot:
        fields["delivery_time_slot"] = payload.delivery_time_slot
    return _transition(db, admin, None, order, "schedule", fields)


def mark_out_for_delivery(db: Database, admin: Dict[str, Any], outbox: Outbox, order_id: int) -> Dict[str, Any]:
    order = get_order(db, order_id)
    if not _advance_confirmed(order):
        raise ConflictError("Advance must be confirmed before dispatch")
    return _transition(db, admin, outbox, order, "out_for_delivery", {"status": "out_for_delivery"})


def mark_delivered(db: Database, admin: Dict[str, Any], outbox: Outbox, order_id: int) -> Dict[str, Any]:
    order = get_order(db, order_id)
    if not _is_fully_paid(order):
        raise ConflictError("Balance must be confirmed before the order is delivered")
    return _transition(
        db, admin, outbox, order, "deliver", {"status": "delivered", "delivered_at": utc_now_iso()}
    )


def approve(db: Database, admin: Dict[str, Any], order_id: int) -> Dict[str, Any]:
    order = get_order(db, order_id)
    if order.get("compliance_status") == "approved":
        raise ConflictError("Order is already approved")
    fields: Dict[str, Any] = {"compliance_status": "approved", "admin_rejection_reason": None}
    if order["status"] in ("draft", "pending", "documents_verified"):
        fields["status"] = "approved"
    return _transition(db, admin, None, order, "approve", fields)


def _close_with_refund(
    db: Database,
    admin: Dict[str, Any],
    order_id: int,
    action: str,
    fields: Dict[str, Any],
    credit_reason: str,
    reason: Optional[str],
) -> Dict[str, Any]:
    order = get_order(db, order_id)
    refund = amount_received(order)
    credit = None
    if refund > 0:
        fields = {**fields, "refund_status": "credited", "refund_amount": refund}
        credit = {
            "user_id": order["user_id"],
            "amount": refund,
            "reason": credit_reason,
            "source_type": "currency_exchange",
            "source_id": str(order_id),
            "source_reference": order["order_number"],
            "description": f"Refund for order {order['order_number']}",
        }
    result = db.update_and_credit(
        "currency_exchange_orders",
        order_id,
        fields,
        "status",
        ADMIN_TRANSITIONS[action],
        credit,
    )
    if result is None:
        raise ConflictError(f"Cannot {action} an order that is {order['status']}")
    audit.record(
        db,
        admin,
        f"exchange_{action}",
        "currency_exchange_order",
        order_id,
        {"from_status": order["status"], "refund_amount": refund, "reason": reason},
    )
    if refund > 0:
        logger.info("credited %.2f to user %s for order %s", refund, order["user_id"], order["order_number"])
    return get_order(db, order_id)


def reject(db: Database, admin: Dict[str, Any], order_id: int, reason: str) -> Dict[str, Any]:
    reason = (reason or "").strip()
    if not reason:
        raise DomainError("A rejection reason is required")
    return _close_with_refund(
        db,
        admin,
        order_id,
        "reject",
        {"status": "rejected", "compliance_status": "rejected", "admin_rejection_reason": reason},
        "order_rejected",
        reason,
    )


def cancel(db: Database, admin: Dict[str, Any], order_id: int, reason: Optional[str] = None) -> Dict[str, Any]:
    fields: Dict[str, Any] = {"status": "cancelled"}
    if reason:
        fields["notes"] = reason
    return _close_with_refund(db, admin, order_id, "cancel", fields, "order_cancelled", reason)


def save_notes(db: Database, admin: Dict[str, Any], order_id: int, notes: str) -> Dict[str, Any]:
    get_order(db, order_id)
    db.update_exchange_order(order_id, {"notes": notes})
    audit.record(db, admin, "exchange_notes_saved", "currency_exchange_order", order_id, {})
    return get_order(db, order_id)


def verify_documents(
    db: Database, admin: Dict[str, Any], order_id: int, payload: DocumentVerificationIn
) -> Dict[str, Any]:
    order = get_order(db, order_id)
    if order["status"] in TERMINAL_STATUSES:
        raise ConflictError(f"Documents of a {order['status']} order cannot be reviewed")
    if not order.get("documents"):
        raise DomainError("This order has no documents to verify")
    if payload.status == "rejected" and not (payload.notes or "").strip():
        raise DomainError("Verification notes are required for rejection")
    fields: Dict[str, Any] = {
        "document_verification_status": payload.status,
        "document_verification_notes": payload.notes,
        "document_verified_at": utc_now_iso(),
        "document_verified_by": admin["id"],
    }
    # only orders still before payment move; "incomplete" keeps the status
    if order["status"] in ("draft", "pending", "documents_verified", "documents_rejected"):
        if payload.status == "verified":
            fields["status"] = "documents_verified"
        elif payload.status == "rejected":
            fields["status"] = "documents_rejected"
    if not db.update_exchange_order(order_id, fields, expected_statuses=(order["status"],)):
        raise ConflictError("Order changed while documents were being reviewed; reload and retry")
    audit.record(
        db,
        admin,
        f"exchange_documents_{payload.status}",
        "currency_exchange_order",
        order_id,
        {"notes": payload.notes},
    )
    return get_order(db, order_id)
