from typing import Optional

from fastapi import APIRouter, Depends, Query

from finivis.db.dal import Database
from finivis.models.compliance import (
    AmlReviewIn,
    KycDocumentIn,
    KycReviewIn,
    LrsCheckIn,
    TdsQuoteIn,
)
from finivis.services import aml, kyc, lrs, tds
from finivis.services.notifications import Outbox

from .deps import get_current_user, get_db, get_outbox, require_admin

router = APIRouter(tags=["compliance"])
admin_router = APIRouter(prefix="/admin", tags=["compliance", "admin"])


@router.post("/kyc/documents", summary="Register an uploaded KYC document", status_code=201)
async def upload_kyc_document(
    payload: KycDocumentIn,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return kyc.upload_document(db, user["id"], payload.document_type, payload.file_path)


@router.get("/kyc/documents", summary="My KYC documents")
async def my_kyc_documents(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return db.list_kyc_documents(user_id=user["id"])


@router.get("/kyc/status", summary="My KYC status")
async def my_kyc_status(user: dict = Depends(get_current_user)):
    return {"kyc_status": user.get("kyc_status"), "verified": kyc.is_kyc_verified(user)}


@router.get("/lrs/usage", summary="LRS usage for the financial year")
async def lrs_usage(
    financial_year: Optional[str] = Query(None, pattern=r"^\d{4}-\d{2}$"),
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    usage = lrs.get_lrs_usage(db, user["id"], financial_year)
    return {
        **usage.as_dict(),
        "entries": db.list_lrs_usage(user["id"], usage.financial_year),
    }


@router.post("/lrs/check", summary="Would a purchase fit in the LRS limit")
async def lrs_check(
    payload: LrsCheckIn,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    usage = lrs.get_lrs_usage(db, user["id"])
    check = lrs.check_limit(usage, payload.amount_usd)
    return {"allowed": check.allowed, "message": check.message, "usage": usage.as_dict()}


@router.post("/tds/calculate", summary="TDS on a remittance for the current user")
async def tds_calculate(
    payload: TdsQuoteIn,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return tds.calculate_tds_for_user(
        db, user["id"], payload.amount_inr, payload.purpose, payload.exchange_type
    ).as_dict()


@admin_router.get("/kyc/documents", summary="KYC documents for review")
async def list_kyc_documents(
    status: Optional[str] = Query("pending"),
    user_id: Optional[int] = None,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return db.list_kyc_documents(user_id=user_id, status=status)


@admin_router.post("/kyc/documents/{doc_id}/review", summary="Verify or reject a KYC document")
async def review_kyc_document(
    doc_id: int,
    payload: KycReviewIn,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
    outbox: Outbox = Depends(get_outbox),
):
    return kyc.review_document(db, admin, outbox, doc_id, payload.status, payload.notes)


@admin_router.get("/lrs", summary="LRS usage of every customer for a financial year")
async def lrs_tracker(
    financial_year: Optional[str] = Query(None, pattern=r"^\d{4}-\d{2}$"),
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return lrs.admin_summary(db, financial_year)


@admin_router.get("/aml-flags", summary="AML flags for review")
async def list_aml_flags(
    status: Optional[str] = Query("pending", description="'all' for every status"),
    severity: Optional[str] = Query(None, description="'all' or omitted for every severity"),
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return aml.list_flags(db, status=status, severity=severity)


@admin_router.post("/aml-flags/{flag_id}/review", summary="Review, clear or escalate an AML flag")
async def review_aml_flag(
    flag_id: int,
    payload: AmlReviewIn,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return aml.review_flag(db, admin, flag_id, payload.status, payload.review_notes)
