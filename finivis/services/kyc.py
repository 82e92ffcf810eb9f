"""KYC gate and document review.

A profile's ``kyc_status`` decides whether the customer may place orders,
proceed to payment or consume LRS. Documents are reviewed one by one; the
profile status is derived from the set of reviews (any rejection rejects,
all verified verifies).
"""

from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from finivis.core.errors import DomainError, NotFoundError, PermissionDeniedError
from finivis.db.dal import Database
from finivis.services import audit
from finivis.services.notifications import Outbox

logger = logging.getLogger(__name__)

KYC_REQUIRED_MESSAGE = "Please complete your KYC verification before placing an order."
DOCUMENT_TYPES = ("pan_card", "aadhaar", "passport", "address_proof", "photo", "other")


def is_kyc_verified(profile: Optional[Dict[str, Any]]) -> bool:
    return bool(profile) and profile.get("kyc_status") == "verified"


def require_kyc(profile: Dict[str, Any]) -> None:
    if not is_kyc_verified(profile):
        raise PermissionDeniedError(KYC_REQUIRED_MESSAGE)


def upload_document(db: Database, user_id: int, document_type: str, file_path: str) -> Dict[str, Any]:
    if document_type not in DOCUMENT_TYPES:
        raise DomainError(f"Unknown document type '{document_type}'")
    if not file_path.strip():
        raise DomainError("File path is required")
    doc_id = db.insert_kyc_document(user_id, document_type, file_path.strip())
    return db.get_kyc_document(doc_id)  # type: ignore[return-value]


def review_document(
    db: Database,
    admin: Dict[str, Any],
    outbox: Outbox,
    doc_id: int,
    decision: str,
    notes: Optional[str] = None,
) -> Dict[str, Any]:
    if decision not in ("verified", "rejected"):
        raise DomainError("Decision must be 'verified' or 'rejected'")
    if decision == "rejected" and not (notes or "").strip():
        raise DomainError("A reason is required to reject a document")
    doc = db.get_kyc_document(doc_id)
    if not doc:
        raise NotFoundError("Document not found")

    profile_status = db.review_kyc_document(doc_id, decision, admin["id"], notes)
    audit.record(
        db,
        admin,
        f"kyc_document_{decision}",
        "kyc_document",
        doc_id,
        {"user_id": doc["user_id"], "profile_kyc_status": profile_status, "notes": notes},
    )

    profile = db.get_profile(doc["user_id"]) or {}
    if profile_status == "verified":
        outbox.queue("kyc_approved", profile)
    elif profile_status == "rejected":
        outbox.queue("kyc_rejected", profile, reason=notes)
    return {"document": db.get_kyc_document(doc_id), "kyc_status": profile_status}
