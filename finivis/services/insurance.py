"""Travel insurance sold as a facilitator for a partner insurer.

A policy is created ``pending``/``pending`` (policy/payment), paid by the
customer, then issued or cancelled by an admin. Cancelling a paid policy
returns the premium plus facilitator fee to the customer's refundable balance.
"""

from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from finivis.core.errors import ConflictError, DomainError, NotFoundError
from finivis.db.dal import Database, utc_now_iso
from finivis.models.insurance import ClaimStatusIn, PolicyIn, PolicyPaymentIn, PolicyStatusIn
from finivis.services import audit
from finivis.services.money import round2
from finivis.services.notifications import Outbox

logger = logging.getLogger(__name__)

OPEN_CLAIM_STATUSES = ("submitted", "under_review")


def policy_total(policy: Dict[str, Any]) -> float:
    return round2(float(policy["premium_amount"]) + float(policy.get("facilitator_fee") or 0))


def create_policy(db: Database, profile: Dict[str, Any], payload: PolicyIn) -> Dict[str, Any]:
    trip_duration = (payload.travel_end_date - payload.travel_start_date).days + 1
    policy_id = db.insert_policy(
        {
            "user_id": profile["id"],
            "plan_type": payload.plan_type,
            "selected_plan": payload.selected_plan,
            "destination_country": payload.destination_country,
            "travel_start_date": payload.travel_start_date.isoformat(),
            "travel_end_date": payload.travel_end_date.isoformat(),
            "trip_duration": trip_duration,
            "number_of_travellers": len(payload.travellers),
            "travellers": [t.model_dump(mode="json") for t in payload.travellers],
            "premium_amount": round2(payload.premium_amount),
            "facilitator_fee": round2(payload.facilitator_fee),
            "add_ons": payload.add_ons,
            "partner_insurer_name": payload.partner_insurer_name,
            "disclaimer_accepted": 1,
        }
    )
    policy = get_policy(db, policy_id)
    logger.info("policy %s created for user %s", policy["policy_number"], profile["id"])
    return policy


def get_policy(db: Database, policy_id: int) -> Dict[str, Any]:
    policy = db.get_policy(policy_id)
    if not policy:
        raise NotFoundError("Policy not found")
    return policy


def get_customer_policy(db: Database, profile: Dict[str, Any], policy_id: int) -> Dict[str, Any]:
    policy = get_policy(db, policy_id)
    if policy["user_id"] != profile["id"]:
        raise NotFoundError("Policy not found")
    return policy


def mark_paid(db: Database, profile: Dict[str, Any], policy_id: int, payload: PolicyPaymentIn) -> Dict[str, Any]:
    policy = get_customer_policy(db, profile, policy_id)
    if policy["payment_status"] != "pending":
        raise ConflictError(f"Policy payment is already {policy['payment_status']}")
    if not db.update_policy(
        policy_id,
        {
            "payment_status": "paid",
            "payment_method": payload.payment_method,
            "payment_transaction_id": payload.payment_transaction_id,
            "paid_at": utc_now_iso(),
        },
        expected_statuses=("pending",),
    ):
        raise ConflictError(f"A {policy['policy_status']} policy cannot be paid")
    return get_policy(db, policy_id)


def _travel_dates(policy: Dict[str, Any]) -> str:
    return f"{policy['travel_start_date']} to {policy['travel_end_date']}"


def update_status(
    db: Database, admin: Dict[str, Any], outbox: Outbox, policy_id: int, payload: PolicyStatusIn
) -> Dict[str, Any]:
    policy = get_policy(db, policy_id)
    if payload.policy_status == "issued":
        if policy["payment_status"] != "paid":
            raise ConflictError("Policy must be paid before it is issued")
        fields: Dict[str, Any] = {"policy_status": "issued", "issued_at": utc_now_iso()}
        if payload.partner_policy_reference:
            fields["partner_policy_reference"] = payload.partner_policy_reference
        if not db.update_policy(policy_id, fields, expected_statuses=("pending",)):
            raise ConflictError(f"Policy is already {policy['policy_status']}")
        refund = 0.0
    else:
        refund = policy_total(policy) if policy["payment_status"] == "paid" else 0.0
        fields = {"policy_status": "cancelled"}
        credit = None
        if refund > 0:
            fields["payment_status"] = "refunded"
            credit = {
                "user_id": policy["user_id"],
                "amount": refund,
                "reason": "policy_cancelled",
                "source_type": "travel_insurance",
                "source_id": str(policy_id),
                "source_reference": policy["policy_number"],
                "description": f"Refund for cancelled policy {policy['policy_number']}",
            }
        if (
            db.update_and_credit(
                "travel_insurance_policies",
                policy_id,
                fields,
                "policy_status",
                ("pending", "issued"),
                credit,
            )
            is None
        ):
            raise ConflictError(f"Policy is already {policy['policy_status']}")

    audit.record(
        db,
        admin,
        f"policy_{payload.policy_status}",
        "travel_insurance_policy",
        policy_id,
        {"from_status": policy["policy_status"], "refund_amount": refund},
    )
    outbox.queue(
        f"travel_insurance_{payload.policy_status}",
        db.get_profile(policy["user_id"]),
        policyNumber=policy["policy_number"],
        destination=policy["destination_country"],
        travelDates=_travel_dates(policy),
    )
    return get_policy(db, policy_id)


def update_claim(db: Database, admin: Dict[str, Any], policy_id: int, payload: ClaimStatusIn) -> Dict[str, Any]:
    policy = get_policy(db, policy_id)
    if policy["policy_status"] != "issued":
        raise DomainError("Claims can only be tracked on issued policies")
    fields: Dict[str, Any] = {"has_claim": 1, "claim_status": payload.claim_status}
    if payload.claim_details is not None:
        fields["claim_details"] = payload.claim_details
    db.update_policy(policy_id, fields)
    audit.record(
        db,
        admin,
        "policy_claim_updated",
        "travel_insurance_policy",
        policy_id,
        {"claim_status": payload.claim_status},
    )
    return get_policy(db, policy_id)


def summary(policies: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "total": len(policies),
        "issued": sum(1 for p in policies if p["policy_status"] == "issued"),
        "pending": sum(1 for p in policies if p["policy_status"] == "pending"),
        "pending_claims": sum(
            1 for p in policies if p["has_claim"] and p.get("claim_status") in OPEN_CLAIM_STATUSES
        ),
        "total_premium_paid": round2(
            sum(policy_total(p) for p in policies if p["payment_status"] == "paid")
        ),
    }


def admin_list(
    db: Database, policy_status: Optional[str] = None, payment_status: Optional[str] = None
) -> Dict[str, Any]:
    policies = db.list_policies(policy_status=policy_status, payment_status=payment_status)
    return {"policies": policies, "summary": summary(db.list_policies())}
