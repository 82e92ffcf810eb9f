from typing import List, Optional

from fastapi import APIRouter, Depends, Response

from finivis.db.dal import Database
from finivis.models.exchange import ReasonIn
from finivis.models.remittance import (
    BeneficiaryIn,
    BeneficiaryOut,
    BeneficiaryUpdate,
    CancellationIn,
    DepositIn,
    RemittanceIn,
    RemittanceQuoteIn,
    TransactionAdminOut,
    TransactionDetailOut,
    TransactionOut,
    TransferCreatedOut,
)
from finivis.services import remittance as svc
from finivis.services.notifications import Outbox
from finivis.services.order_status import describe
from finivis.services.rates.cache_service import CentralRateCacheService

from .deps import get_current_user, get_db, get_outbox, get_rate_service, require_admin

router = APIRouter(tags=["remittance"])
admin_router = APIRouter(prefix="/admin/remittances", tags=["remittance", "admin"])


# ---- beneficiaries --------------------------------------------------------


@router.get("/beneficiaries", response_model=List[BeneficiaryOut], summary="My beneficiaries")
async def list_beneficiaries(
    include_inactive: bool = False,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return svc.list_beneficiaries(db, user, include_inactive)


@router.post(
    "/beneficiaries",
    response_model=BeneficiaryOut,
    summary="Add a beneficiary",
    status_code=201,
)
async def add_beneficiary(
    payload: BeneficiaryIn,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return svc.add_beneficiary(db, user, payload)


@router.get(
    "/beneficiaries/{beneficiary_id}",
    response_model=BeneficiaryOut,
    summary="One beneficiary (masked)",
)
async def get_beneficiary(
    beneficiary_id: int,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return svc.masked_beneficiary(svc.get_beneficiary(db, user, beneficiary_id))


@router.patch(
    "/beneficiaries/{beneficiary_id}",
    response_model=BeneficiaryOut,
    summary="Update a beneficiary",
)
async def update_beneficiary(
    beneficiary_id: int,
    payload: BeneficiaryUpdate,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return svc.update_beneficiary(db, user, beneficiary_id, payload)


@router.delete(
    "/beneficiaries/{beneficiary_id}",
    summary="Deactivate a beneficiary",
    status_code=204,
)
async def delete_beneficiary(
    beneficiary_id: int,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    svc.deactivate_beneficiary(db, user, beneficiary_id)
    return Response(status_code=204)


# ---- transfers ------------------------------------------------------------


@router.post("/remittances/quote", summary="Price a transfer")
def quote(
    payload: RemittanceQuoteIn,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    rates: CentralRateCacheService = Depends(get_rate_service),
):
    return svc.quote(db, rates, user, payload)


@router.post(
    "/remittances",
    response_model=TransferCreatedOut,
    summary="Send money abroad",
    status_code=201,
)
def create_transfer(
    payload: RemittanceIn,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    rates: CentralRateCacheService = Depends(get_rate_service),
):
    return svc.create_transfer(db, rates, user, payload)


@router.get("/remittances", response_model=List[TransactionOut], summary="My transactions")
async def my_transactions(
    status: Optional[str] = None,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return db.list_transactions(user_id=user["id"], status=status)


@router.get(
    "/remittances/{txn_id}",
    response_model=TransactionDetailOut,
    summary="One of my transactions",
)
async def my_transaction(txn_id: int, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    txn = svc.get_customer_transaction(db, user, txn_id)
    return {**txn, "tracking": describe(txn["status"])}


@router.post(
    "/remittances/{txn_id}/cancel",
    response_model=TransactionOut,
    summary="Ask for a pending transfer to be cancelled",
)
async def request_cancellation(
    txn_id: int,
    payload: CancellationIn,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return svc.request_cancellation(db, user, txn_id, payload.reason)


# ---- wallets --------------------------------------------------------------


@router.get("/wallets", summary="My wallets")
async def wallets(user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return svc.list_wallets(db, user)


@router.post("/wallets/deposit", summary="Top up a wallet", status_code=201)
async def deposit(
    payload: DepositIn,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    outbox: Outbox = Depends(get_outbox),
):
    return svc.deposit(db, user, outbox, payload)


# ---- admin ----------------------------------------------------------------


@admin_router.get("", response_model=List[TransactionOut], summary="All transfers")
async def admin_list(
    status: Optional[str] = None,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return svc.admin_list(db, status)


@admin_router.get("/{txn_id}", response_model=TransactionAdminOut, summary="Transfer detail")
async def admin_get(txn_id: int, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    txn = svc.get_transaction(db, txn_id)
    beneficiary = db.get_beneficiary(txn["beneficiary_id"]) if txn.get("beneficiary_id") else None
    return {
        **txn,
        "beneficiary": svc.masked_beneficiary(beneficiary) if beneficiary else None,
        "customer": db.get_profile(txn["user_id"]),
    }


@admin_router.post(
    "/{txn_id}/confirm-payment",
    response_model=TransactionOut,
    summary="Confirm the customer's payment",
)
async def confirm_payment(
    txn_id: int,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
    outbox: Outbox = Depends(get_outbox),
):
    return svc.confirm_payment(db, admin, outbox, txn_id)


@admin_router.post(
    "/{txn_id}/reject-payment",
    response_model=TransactionOut,
    summary="Reject the payment",
)
async def reject_payment(
    txn_id: int,
    payload: ReasonIn,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
    outbox: Outbox = Depends(get_outbox),
):
    return svc.reject_payment(db, admin, outbox, txn_id, payload.reason)


@admin_router.post("/{txn_id}/dispatch", response_model=TransactionOut, summary="Send the wire")
async def dispatch(
    txn_id: int,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
    outbox: Outbox = Depends(get_outbox),
):
    return svc.dispatch(db, admin, outbox, txn_id)


@admin_router.post(
    "/{txn_id}/complete",
    response_model=TransactionOut,
    summary="Mark the transfer completed",
)
async def complete(
    txn_id: int,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
    outbox: Outbox = Depends(get_outbox),
):
    return svc.complete(db, admin, outbox, txn_id)


@admin_router.post("/{txn_id}/cancel", response_model=TransactionOut, summary="Cancel a transfer")
async def cancel(
    txn_id: int,
    payload: Optional[ReasonIn] = None,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return svc.cancel(db, admin, txn_id, payload.reason if payload else None)
