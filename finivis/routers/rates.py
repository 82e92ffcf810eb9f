from __future__ import annotations

from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from finivis.core.config import Settings
from finivis.db.dal import Database
from finivis.services import audit
from finivis.services.rates.cache_service import CentralRateCacheService
from finivis.services.rates.conversion import compute_inr_equivalent

from .deps import get_app_settings, get_db, get_rate_service, require_admin

"""Rates router: public rate board plus admin manual overrides.

Endpoints:
    - GET /rates                          -> buy / sell board for every currency
    - GET /rates/convert                  -> INR equivalent of an amount
    - GET /rates/overrides                -> list active overrides (admin)
    - POST /rates/overrides               -> set override {currency, rate, ttl_seconds} (admin)
    - DELETE /rates/overrides/{currency}  -> clear override (admin)

Overrides are held in process memory; a restart clears them. They exist for
manual fallback when the rate feed misbehaves.
"""

router = APIRouter(prefix="/rates", tags=["rates"])


def require_override_enabled(settings: Settings = Depends(get_app_settings)):
    if not settings.enable_rate_override:
        raise HTTPException(status_code=403, detail="rate override feature disabled")
    return True


class OverrideSetPayload(BaseModel):
    currency: str = Field(..., description="Quote currency (e.g. USD, AED)")
    rate: float = Field(..., gt=0, description="INR per 1 unit of currency")
    ttl_seconds: int = Field(
        900,
        gt=0,
        le=86400,
        description="Override TTL seconds (default 900 = 15m, max 24h)",
    )


@router.get("", summary="Current buy / sell rates against INR")
def list_rates(svc: CentralRateCacheService = Depends(get_rate_service)):
    return svc.list_rates()


@router.get("/convert", summary="INR equivalent of a foreign amount")
def convert(
    amount: float,
    currency: str,
    svc: CentralRateCacheService = Depends(get_rate_service),
):
    if amount <= 0:
        raise HTTPException(status_code=400, detail="amount must be positive")
    result = compute_inr_equivalent(amount, currency, svc)
    return {
        "amount": result.original_amount,
        "currency": result.currency,
        "rate": result.rate,
        "inr_equivalent": result.inr_equivalent,
    }


@router.get("/overrides", summary="List active manual rate overrides")
async def list_overrides(
    _: bool = Depends(require_override_enabled),
    admin: dict = Depends(require_admin),
    svc: CentralRateCacheService = Depends(get_rate_service),
) -> Dict[str, Dict[str, str | float]]:
    return svc.list_overrides()


@router.post("/overrides", summary="Set a manual rate override")
async def set_override(
    payload: OverrideSetPayload,
    request: Request,
    _: bool = Depends(require_override_enabled),
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
):
    svc: CentralRateCacheService = request.app.state.rate_service
    try:
        svc.set_override(payload.currency, payload.rate, payload.ttl_seconds)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    audit.record(db, admin, "rate_override_set", "rate", payload.currency.upper(), payload.model_dump())
    return {
        "status": "ok",
        "override": svc.list_overrides().get(payload.currency.upper()),
    }


@router.delete("/overrides/{currency}", summary="Clear a manual rate override")
async def clear_override(
    currency: str,
    _: bool = Depends(require_override_enabled),
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
    svc: CentralRateCacheService = Depends(get_rate_service),
):
    removed = svc.clear_override(currency)
    if not removed:
        raise HTTPException(status_code=404, detail="override not found")
    audit.record(db, admin, "rate_override_cleared", "rate", currency.upper())
    return {"status": "deleted", "currency": currency.upper()}
