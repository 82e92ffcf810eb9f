"""Forex card and education loan applications.

Customers submit an application; admins move it through review. A forex card
load counts against the customer's LRS limit from the moment it is applied
for.
"""

from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from finivis.core.errors import ConflictError, DomainError, NotFoundError
from finivis.db.dal import Database, utc_now_iso
from finivis.models.applications import ApplicationIn, ApplicationReviewIn
from finivis.services import audit, kyc, lrs
from finivis.services.notifications import Outbox
from finivis.services.rates.cache_service import CentralRateCacheService
from finivis.services.rates.conversion import compute_usd_equivalent

logger = logging.getLogger(__name__)

OPEN_STATUSES = ("submitted", "under_review", "action_required", "documents_resubmitted")
FINAL_STATUSES = ("approved", "rejected")


def submit(
    db: Database,
    rates: CentralRateCacheService,
    profile: Dict[str, Any],
    payload: ApplicationIn,
) -> Dict[str, Any]:
    usd_equivalent = None
    warning = None
    if payload.service_type == "forex_card":
        kyc.require_kyc(profile)
        usd_equivalent = compute_usd_equivalent(payload.load_amount, payload.load_currency, rates)  # type: ignore[arg-type]
        check = lrs.check_limit(lrs.get_lrs_usage(db, profile["id"]), usd_equivalent)
        if not check.allowed:
            raise DomainError(check.message or "LRS limit exceeded")
        warning = check.message

    app_id = db.insert_application(
        {
            "user_id": profile["id"],
            "service_type": payload.service_type,
            "application_data": payload.application_data,
            "card_type": payload.card_type,
            "load_amount": payload.load_amount,
            "load_currency": payload.load_currency,
            "usd_equivalent": usd_equivalent,
            "documents": [d.model_dump() for d in payload.documents],
            "application_status": "submitted",
            "submitted_at": utc_now_iso(),
        }
    )
    if usd_equivalent:
        lrs.record_usage(
            db,
            profile["id"],
            "forex_card",
            usd_equivalent,
            payload.application_data.get("purpose") or "travel",
            service_application_id=app_id,
        )
    logger.info("%s application %s submitted by user %s", payload.service_type, app_id, profile["id"])
    return {"application": db.get_application(app_id), "lrs_warning": warning}


def get_application(db: Database, app_id: int) -> Dict[str, Any]:
    row = db.get_application(app_id)
    if not row:
        raise NotFoundError("Application not found")
    return row


def get_customer_application(db: Database, profile: Dict[str, Any], app_id: int) -> Dict[str, Any]:
    row = get_application(db, app_id)
    if row["user_id"] != profile["id"]:
        raise NotFoundError("Application not found")
    return row


def list_for_user(db: Database, profile: Dict[str, Any], service_type: Optional[str] = None) -> List[Dict[str, Any]]:
    return db.list_applications(user_id=profile["id"], service_type=service_type)


def resubmit_documents(
    db: Database, profile: Dict[str, Any], app_id: int, documents: List[Dict[str, Any]]
) -> Dict[str, Any]:
    row = get_customer_application(db, profile, app_id)
    if not row.get("reupload_requested_at") and row["application_status"] != "action_required":
        raise ConflictError("No document re-upload was requested for this application")
    if not db.update_application(
        app_id,
        {
            "documents": list(row.get("documents") or []) + documents,
            "documents_resubmitted_at": utc_now_iso(),
            "application_status": "documents_resubmitted",
        },
        expected_statuses=OPEN_STATUSES,
    ):
        raise ConflictError(f"Documents cannot be added to a {row['application_status']} application")
    return get_application(db, app_id)


def review(
    db: Database,
    admin: Dict[str, Any],
    outbox: Outbox,
    app_id: int,
    payload: ApplicationReviewIn,
) -> Dict[str, Any]:
    row = get_application(db, app_id)
    now = utc_now_iso()
    fields: Dict[str, Any] = {"application_status": payload.status, "reviewed_at": now}
    if payload.admin_notes is not None:
        fields["admin_notes"] = payload.admin_notes
    email_fields: Dict[str, Any] = {"service_type": row["service_type"]}

    if payload.status == "approved":
        fields["approved_at"] = now
    elif payload.status == "rejected":
        reason = (payload.rejection_reason or "").strip()
        if not reason:
            raise DomainError("A rejection reason is required")
        fields.update(rejection_reason=reason, rejected_at=now)
        email_fields["rejection_reason"] = reason
    elif payload.status == "action_required":
        action = (payload.action_required or "").strip()
        if not action:
            raise DomainError("Describe the action required from the customer")
        fields["action_required"] = action
        email_fields["action_required"] = action

    if not db.update_application(app_id, fields, expected_statuses=OPEN_STATUSES):
        raise ConflictError(f"Application is already {row['application_status']}")
    audit.record(
        db,
        admin,
        f"application_{payload.status}",
        "service_application",
        app_id,
        {"from_status": row["application_status"], "notes": payload.admin_notes},
    )
    outbox.queue(f"service_{payload.status}", db.get_profile(row["user_id"]), **email_fields)
    return get_application(db, app_id)


def request_reupload(
    db: Database, admin: Dict[str, Any], outbox: Outbox, app_id: int, reason: str
) -> Dict[str, Any]:
    row = get_application(db, app_id)
    reason = reason.strip()
    if not db.update_application(
        app_id,
        {
            "application_status": "action_required",
            "action_required": reason,
            "reupload_reason": reason,
            "reupload_requested_at": utc_now_iso(),
        },
        expected_statuses=OPEN_STATUSES,
    ):
        raise ConflictError(f"Application is already {row['application_status']}")
    audit.record(db, admin, "application_reupload_requested", "service_application", app_id, {"reason": reason})
    outbox.queue(
        "service_action_required",
        db.get_profile(row["user_id"]),
        service_type=row["service_type"],
        action_required=reason,
    )
    return get_application(db, app_id)


def admin_list(
    db: Database, service_type: Optional[str] = None, status: Optional[str] = None
) -> List[Dict[str, Any]]:
    return db.list_applications(service_type=service_type, status=status)
