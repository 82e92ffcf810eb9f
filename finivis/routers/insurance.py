from typing import Optional

from fastapi import APIRouter, Depends

from finivis.db.dal import Database
from finivis.models.insurance import (
    ClaimStatusIn,
    PolicyDetailOut,
    PolicyIn,
    PolicyListOut,
    PolicyOut,
    PolicyPaymentIn,
    PolicyStatusIn,
)
from finivis.services import insurance as svc
from finivis.services.notifications import Outbox

from .deps import get_current_user, get_db, get_outbox, require_admin

router = APIRouter(prefix="/insurance/policies", tags=["insurance"])
admin_router = APIRouter(prefix="/admin/insurance/policies", tags=["insurance", "admin"])


@router.post(
    "",
    response_model=PolicyOut,
    summary="Buy a travel insurance policy",
    status_code=201,
)
async def create(
    payload: PolicyIn,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return svc.create_policy(db, user, payload)


@router.get("", response_model=PolicyListOut, summary="My policies")
async def my_policies(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    policies = db.list_policies(user_id=user["id"])
    return {"policies": policies, "summary": svc.summary(policies)}


@router.get("/{policy_id}", response_model=PolicyDetailOut, summary="One of my policies")
async def my_policy(policy_id: int, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    policy = svc.get_customer_policy(db, user, policy_id)
    return {**policy, "total_amount": svc.policy_total(policy)}


@router.post(
    "/{policy_id}/payment",
    response_model=PolicyOut,
    summary="Record payment for a policy",
)
async def pay(
    policy_id: int,
    payload: PolicyPaymentIn,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return svc.mark_paid(db, user, policy_id, payload)


@admin_router.get("", response_model=PolicyListOut, summary="All policies with summary")
async def admin_list(
    policy_status: Optional[str] = None,
    payment_status: Optional[str] = None,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return svc.admin_list(db, policy_status, payment_status)


@admin_router.post(
    "/{policy_id}/status",
    response_model=PolicyOut,
    summary="Issue or cancel a policy",
)
async def update_status(
    policy_id: int,
    payload: PolicyStatusIn,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
    outbox: Outbox = Depends(get_outbox),
):
    return svc.update_status(db, admin, outbox, policy_id, payload)


@admin_router.post("/{policy_id}/claim", response_model=PolicyOut, summary="Track a claim")
async def update_claim(
    policy_id: int,
    payload: ClaimStatusIn,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return svc.update_claim(db, admin, policy_id, payload)
