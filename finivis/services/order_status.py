"""Normalized order lifecycle shared by every service.

Each product (currency exchange, remittance, forex card, travel insurance)
stores its own status vocabulary; customer-facing trackers show the
normalized lifecycle below instead.
"""

from __future__ import annotations
from typing import Dict, List, Optional

ORDER_STATUS_LABELS: Dict[str, str] = {
    "created": "Order Created",
    "documents_required": "Documents Required",
    "documents_uploaded": "Documents Uploaded",
    "verification_in_progress": "Verification in Progress",
    "verified": "Verified",
    "verification_failed": "Verification Failed",
    "payment_pending": "Payment Pending",
    "payment_received": "Payment Received",
    "processing": "Processing",
    "completed": "Completed",
    "cancelled": "Cancelled",
    "rejected": "Rejected",
}

ORDER_STATUS_FLOW: List[str] = [
    "created",
    "documents_required",
    "documents_uploaded",
    "verification_in_progress",
    "verified",
    "payment_pending",
    "payment_received",
    "processing",
    "completed",
]

_STATUS_MAP: Dict[str, str] = {
    # currency exchange
    "draft": "created",
    "pending": "verification_in_progress",
    "pending_compliance": "verification_in_progress",
    "rate_locked": "payment_pending",
    "advance_paid": "payment_received",
    "approved": "verified",
    "balance_paid": "payment_received",
    "scheduled": "processing",
    "dispatched": "processing",
    "out_for_delivery": "processing",
    "delivered": "completed",
    "documents_verified": "verified",
    "documents_rejected": "verification_failed",
    # remittance
    "payment_pending": "payment_pending",
    "payment_received": "payment_received",
    "compliance_pending": "verification_in_progress",
    "payment_confirmed": "payment_received",
    "payment_rejected": "rejected",
    "cancellation_requested": "processing",
    # forex card
    "applied": "created",
    "awaiting_payment": "payment_pending",
    "under_review": "verification_in_progress",
    "documents_submitted": "documents_uploaded",
    "card_active": "completed",
    # service applications
    "submitted": "verification_in_progress",
    "documents_resubmitted": "documents_uploaded",
    # travel insurance
    "pending_payment": "payment_pending",
    "issued": "completed",
    "active": "completed",
    "expired": "completed",
    # common
    "completed": "completed",
    "cancelled": "cancelled",
    "rejected": "rejected",
    "failed": "verification_failed",
    "action_required": "documents_required",
}

_NEXT_ACTIONS: Dict[str, Dict[str, object]] = {
    "created": {"action": "upload_documents", "label": "Upload Documents", "blocked": False},
    "documents_required": {"action": "upload_documents", "label": "Upload Required Documents", "blocked": True},
    "documents_uploaded": {"action": "wait", "label": "Awaiting Verification", "blocked": True},
    "verification_in_progress": {"action": "wait", "label": "Verification in Progress", "blocked": True},
    "verified": {"action": "make_payment", "label": "Complete Payment", "blocked": False},
    "verification_failed": {"action": "resubmit", "label": "Resubmit Documents", "blocked": True},
    "payment_pending": {"action": "make_payment", "label": "Complete Payment", "blocked": True},
    "payment_received": {"action": "wait", "label": "Processing Order", "blocked": True},
    "processing": {"action": "track", "label": "Track Order", "blocked": False},
    "completed": {"action": "view", "label": "View Details", "blocked": False},
    "cancelled": {"action": "view", "label": "View Details", "blocked": False},
    "rejected": {"action": "reapply", "label": "Re-Apply", "blocked": False},
}


def normalize_status(status: Optional[str]) -> str:
    if not status:
        return "created"
    return _STATUS_MAP.get(status.lower(), "created")


def get_next_action(status: str) -> Dict[str, object]:
    return dict(
        _NEXT_ACTIONS.get(
            status, {"action": "contact", "label": "Contact Support", "blocked": False}
        )
    )


def can_make_payment(status: str) -> bool:
    return status in ("verified", "payment_pending")


def can_upload_documents(status: str) -> bool:
    return status in ("created", "documents_required", "verification_failed")


def describe(raw_status: Optional[str]) -> Dict[str, object]:
    """Tracker view of a raw service status."""
    normalized = normalize_status(raw_status)
    step = ORDER_STATUS_FLOW.index(normalized) if normalized in ORDER_STATUS_FLOW else None
    return {
        "raw_status": raw_status,
        "status": normalized,
        "label": ORDER_STATUS_LABELS[normalized],
        "step": step,
        "total_steps": len(ORDER_STATUS_FLOW),
        "next_action": get_next_action(normalized),
        "can_make_payment": can_make_payment(normalized),
        "can_upload_documents": can_upload_documents(normalized),
    }
