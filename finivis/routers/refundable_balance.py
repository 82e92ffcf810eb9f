from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from finivis.db.dal import Database
from finivis.models.balance import (
    BalanceSummaryOut,
    CreditIn,
    ProcessedRefundOut,
    RefundRequestIn,
    RefundRequestOut,
    UseBalanceIn,
)
from finivis.services import audit
from finivis.services import refundable_balance as svc

from .deps import get_current_user, get_db, require_admin

"""Refundable balance endpoints.

Customers see their balance with its ledger, ask for bank refunds and spend
the balance on another service. Admins list positive balances, add manual
credits and walk refund requests through approve / reject / process.
"""

router = APIRouter(prefix="/refundable-balance", tags=["refundable-balance"])
admin_router = APIRouter(prefix="/admin/refundable-balance", tags=["refundable-balance", "admin"])


class ApproveIn(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000)


class RejectIn(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


@router.get("", response_model=BalanceSummaryOut, summary="My balance, ledger and refund requests")
async def summary(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return svc.get_summary(db, user["id"])


@router.post(
    "/refund-requests",
    response_model=RefundRequestOut,
    summary="Ask for a bank refund",
    status_code=201,
)
async def request_refund(
    payload: RefundRequestIn,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return svc.request_bank_refund(
        db,
        user["id"],
        payload.amount,
        payload.bank_account_name,
        payload.bank_account_number,
        payload.bank_ifsc,
        payload.bank_name,
    )


@router.post("/use", summary="Pay for a service from the balance")
async def use_balance(
    payload: UseBalanceIn,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return svc.use_balance_for_service(db, user["id"], payload.amount, payload.service_type, payload.service_id)


@admin_router.get("", summary="Customers with a positive balance")
async def positive_balances(admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return db.list_positive_balances()


@admin_router.post("/credit", summary="Credit a customer's balance", status_code=201)
async def credit(
    payload: CreditIn,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    result = svc.credit(
        db,
        payload.user_id,
        payload.amount,
        payload.reason,
        source_type="admin",
        source_id=admin["id"],
        description=payload.description,
    )
    audit.record(db, admin, "balance_credited", "refundable_balance", payload.user_id, payload.model_dump())
    return result


@admin_router.get(
    "/refund-requests",
    response_model=List[RefundRequestOut],
    summary="Refund requests",
)
async def refund_requests(
    status: Optional[str] = "pending",
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return db.list_refund_requests(status=status)


@admin_router.post(
    "/refund-requests/{request_id}/approve",
    response_model=RefundRequestOut,
    summary="Approve a refund request",
)
async def approve(
    request_id: int,
    payload: Optional[ApproveIn] = None,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return svc.approve_refund_request(db, admin, request_id, payload.notes if payload else None)


@admin_router.post(
    "/refund-requests/{request_id}/reject",
    response_model=RefundRequestOut,
    summary="Reject a refund request",
)
async def reject(
    request_id: int,
    payload: RejectIn,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return svc.reject_refund_request(db, admin, request_id, payload.reason)


@admin_router.post(
    "/refund-requests/{request_id}/process",
    response_model=ProcessedRefundOut,
    summary="Pay out a refund request",
)
async def process(request_id: int, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return svc.process_bank_refund(db, admin, request_id)
