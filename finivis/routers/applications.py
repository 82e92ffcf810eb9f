from typing import List, Optional

from fastapi import APIRouter, Depends

from finivis.db.dal import Database
from finivis.models.applications import (
    ApplicationAdminOut,
    ApplicationDetailOut,
    ApplicationIn,
    ApplicationOut,
    ApplicationReviewIn,
    ApplicationSubmittedOut,
    ReuploadRequestIn,
)
from finivis.models.exchange import DocumentsIn
from finivis.services import applications as svc
from finivis.services.notifications import Outbox
from finivis.services.order_status import describe
from finivis.services.rates.cache_service import CentralRateCacheService

from .deps import get_current_user, get_db, get_outbox, get_rate_service, require_admin

router = APIRouter(prefix="/applications", tags=["applications"])
admin_router = APIRouter(prefix="/admin/applications", tags=["applications", "admin"])


@router.post(
    "",
    response_model=ApplicationSubmittedOut,
    summary="Apply for a forex card or education loan",
    status_code=201,
)
def submit(
    payload: ApplicationIn,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    rates: CentralRateCacheService = Depends(get_rate_service),
):
    return svc.submit(db, rates, user, payload)


@router.get("", response_model=List[ApplicationOut], summary="My applications")
async def my_applications(
    service_type: Optional[str] = None,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return svc.list_for_user(db, user, service_type)


@router.get("/{app_id}", response_model=ApplicationDetailOut, summary="One of my applications")
async def my_application(app_id: int, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    row = svc.get_customer_application(db, user, app_id)
    return {**row, "tracking": describe(row["application_status"])}


@router.post(
    "/{app_id}/documents",
    response_model=ApplicationOut,
    summary="Re-upload requested documents",
)
async def resubmit_documents(
    app_id: int,
    payload: DocumentsIn,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return svc.resubmit_documents(db, user, app_id, [d.model_dump() for d in payload.documents])


@admin_router.get("", response_model=List[ApplicationOut], summary="All applications")
async def admin_list(
    service_type: Optional[str] = None,
    status: Optional[str] = None,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return svc.admin_list(db, service_type, status)


@admin_router.get("/{app_id}", response_model=ApplicationAdminOut, summary="Application detail")
async def admin_get(app_id: int, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    row = svc.get_application(db, app_id)
    return {**row, "customer": db.get_profile(row["user_id"])}


@admin_router.post(
    "/{app_id}/review",
    response_model=ApplicationOut,
    summary="Move an application through review",
)
async def review(
    app_id: int,
    payload: ApplicationReviewIn,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
    outbox: Outbox = Depends(get_outbox),
):
    return svc.review(db, admin, outbox, app_id, payload)


@admin_router.post(
    "/{app_id}/reupload-request",
    response_model=ApplicationOut,
    summary="Ask the customer for new documents",
)
async def request_reupload(
    app_id: int,
    payload: ReuploadRequestIn,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
    outbox: Outbox = Depends(get_outbox),
):
    return svc.request_reupload(db, admin, outbox, app_id, payload.reason)
