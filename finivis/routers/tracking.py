from fastapi import APIRouter

from finivis.services.order_status import ORDER_STATUS_FLOW, ORDER_STATUS_LABELS, describe

router = APIRouter(prefix="/order-status", tags=["tracking"])


@router.get("/flow", summary="Normalized order lifecycle")
async def flow():
    return [{"status": s, "label": ORDER_STATUS_LABELS[s]} for s in ORDER_STATUS_FLOW]


@router.get("/{raw_status}", summary="Tracker view of a service status")
async def status(raw_status: str):
    return describe(raw_status)
