from typing import List, Optional

from fastapi import APIRouter, Depends

from finivis.db.dal import Database
from finivis.models.exchange import (
    DocumentsIn,
    DocumentVerificationIn,
    ExchangeOrderAdminOut,
    ExchangeOrderDetailOut,
    ExchangeOrderIn,
    ExchangeOrderListOut,
    ExchangeOrderOut,
    NotesIn,
    OrderCreatedOut,
    OrderPaymentIn,
    OrderPaymentOut,
    PaymentIn,
    QuoteIn,
    RateLockOut,
    ReasonIn,
    ScheduleIn,
)
from finivis.services import exchange_orders as svc
from finivis.services.notifications import Outbox
from finivis.services.order_status import describe
from finivis.services.rates.cache_service import CentralRateCacheService

from .deps import get_current_user, get_db, get_outbox, get_rate_service, require_admin

"""Currency exchange orders.

Customer routes live under /exchange-orders, the admin desk under
/admin/exchange-orders. Every admin action is a separate POST so each one is
audited and guarded by its own allowed-from statuses.
"""

router = APIRouter(prefix="/exchange-orders", tags=["exchange"])
admin_router = APIRouter(prefix="/admin/exchange-orders", tags=["exchange", "admin"])


@router.post("/quote", summary="Price a buy or sell order")
def quote(
    payload: QuoteIn,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    rates: CentralRateCacheService = Depends(get_rate_service),
):
    return svc.quote(db, rates, payload, user_id=user["id"])


@router.post(
    "",
    response_model=OrderCreatedOut,
    summary="Create an exchange order",
    status_code=201,
)
def create(
    payload: ExchangeOrderIn,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
    rates: CentralRateCacheService = Depends(get_rate_service),
):
    return svc.create_order(db, rates, user, payload)


@router.get("", response_model=List[ExchangeOrderOut], summary="My exchange orders")
async def my_orders(
    status: Optional[str] = None,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return db.list_exchange_orders(user_id=user["id"], status=status)


@router.get(
    "/{order_id}",
    response_model=ExchangeOrderDetailOut,
    summary="One of my exchange orders",
)
async def my_order(order_id: int, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    order = svc.get_customer_order(db, user, order_id)
    return {
        **order,
        "rate_lock": svc.rate_lock_status(order),
        "amount_received": svc.amount_received(order),
    }


@router.get("/{order_id}/tracking", summary="Tracker view of an order")
async def tracking(order_id: int, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    order = svc.get_customer_order(db, user, order_id)
    return {"order_number": order["order_number"], **describe(order["status"])}


@router.get("/{order_id}/rate-lock", response_model=RateLockOut, summary="Rate lock state")
async def rate_lock(order_id: int, user: dict = Depends(get_current_user), db: Database = Depends(get_db)):
    return svc.rate_lock_status(svc.get_customer_order(db, user, order_id))


@router.post(
    "/{order_id}/payment",
    response_model=OrderPaymentOut,
    summary="Submit the advance or full payment",
)
async def submit_payment(
    order_id: int,
    payload: OrderPaymentIn,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return svc.submit_payment(db, user, order_id, payload)


@router.post(
    "/{order_id}/balance-payment",
    response_model=ExchangeOrderOut,
    summary="Submit the balance payment",
)
async def pay_balance(
    order_id: int,
    payload: PaymentIn,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return svc.pay_balance(db, user, order_id, payload)


@router.post(
    "/{order_id}/documents",
    response_model=ExchangeOrderOut,
    summary="Attach supporting documents",
)
async def attach_documents(
    order_id: int,
    payload: DocumentsIn,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return svc.attach_documents(db, user, order_id, [d.model_dump() for d in payload.documents])


@admin_router.get(
    "",
    response_model=ExchangeOrderListOut,
    summary="All exchange orders with desk counters",
)
async def admin_list(
    status: Optional[str] = None,
    user_id: Optional[int] = None,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    orders = db.list_exchange_orders(user_id=user_id)
    counters = svc.admin_counters(orders)
    if status:
        orders = [o for o in orders if o["status"] == status]
    return {"orders": orders, "counters": counters}


@admin_router.get(
    "/{order_id}",
    response_model=ExchangeOrderAdminOut,
    summary="Exchange order detail",
)
async def admin_get(order_id: int, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    order = svc.get_order(db, order_id)
    return {
        **order,
        "rate_lock": svc.rate_lock_status(order),
        "amount_received": svc.amount_received(order),
        "customer": db.get_profile(order["user_id"]),
    }


@admin_router.post(
    "/{order_id}/confirm-advance",
    response_model=ExchangeOrderOut,
    summary="Confirm the advance (or full) payment",
)
async def confirm_advance(
    order_id: int,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
    outbox: Outbox = Depends(get_outbox),
):
    return svc.confirm_advance(db, admin, outbox, order_id)


@admin_router.post(
    "/{order_id}/confirm-balance",
    response_model=ExchangeOrderOut,
    summary="Confirm the balance payment",
)
async def confirm_balance(
    order_id: int,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
    outbox: Outbox = Depends(get_outbox),
):
    return svc.confirm_balance(db, admin, outbox, order_id)


@admin_router.post(
    "/{order_id}/verify-documents",
    response_model=ExchangeOrderOut,
    summary="Record document verification",
)
async def verify_documents(
    order_id: int,
    payload: DocumentVerificationIn,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return svc.verify_documents(db, admin, order_id, payload)


@admin_router.post(
    "/{order_id}/approve",
    response_model=ExchangeOrderOut,
    summary="Compliance approval",
)
async def approve(order_id: int, admin: dict = Depends(require_admin), db: Database = Depends(get_db)):
    return svc.approve(db, admin, order_id)


@admin_router.post(
    "/{order_id}/schedule",
    response_model=ExchangeOrderOut,
    summary="Schedule delivery or pickup",
)
async def schedule(
    order_id: int,
    payload: Optional[ScheduleIn] = None,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return svc.schedule(db, admin, order_id, payload)


@admin_router.post(
    "/{order_id}/out-for-delivery",
    response_model=ExchangeOrderOut,
    summary="Hand the order to the courier",
)
async def out_for_delivery(
    order_id: int,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
    outbox: Outbox = Depends(get_outbox),
):
    return svc.mark_out_for_delivery(db, admin, outbox, order_id)


@admin_router.post(
    "/{order_id}/deliver",
    response_model=ExchangeOrderOut,
    summary="Mark delivered",
)
async def deliver(
    order_id: int,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
    outbox: Outbox = Depends(get_outbox),
):
    return svc.mark_delivered(db, admin, outbox, order_id)


@admin_router.post(
    "/{order_id}/reject",
    response_model=ExchangeOrderOut,
    summary="Reject and refund confirmed payments",
)
async def reject(
    order_id: int,
    payload: ReasonIn,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return svc.reject(db, admin, order_id, payload.reason)


@admin_router.post(
    "/{order_id}/cancel",
    response_model=ExchangeOrderOut,
    summary="Cancel and refund confirmed payments",
)
async def cancel(
    order_id: int,
    payload: Optional[ReasonIn] = None,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return svc.cancel(db, admin, order_id, payload.reason if payload else None)


@admin_router.put("/{order_id}/notes", response_model=ExchangeOrderOut, summary="Save admin notes")
async def save_notes(
    order_id: int,
    payload: NotesIn,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    return svc.save_notes(db, admin, order_id, payload.notes)
