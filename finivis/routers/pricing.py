import math
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field, field_validator

from finivis.models.constants import FOREX_CURRENCIES, PRODUCT_TYPES
from finivis.services.pricing import (
    PRICING_SLABS,
    calculate_exchange_rate_with_breakdown,
    get_markup_percentage,
)
from finivis.services.rates.cache_service import CentralRateCacheService

from .deps import get_rate_service

router = APIRouter(prefix="/pricing", tags=["pricing"])


class RateCalcIn(BaseModel):
    product_type: str
    amount: float = Field(..., gt=0, description="Foreign currency amount")
    currency: str = "USD"
    ibr_rate: Optional[float] = Field(None, gt=0, description="Inter-bank rate; live rate when omitted")

    @field_validator("currency")
    @classmethod
    def valid_currency(cls, v: str) -> str:
        v = v.upper()
        if v not in FOREX_CURRENCIES:
            raise ValueError("unsupported currency")
        return v


@router.get("/slabs", summary="Markup slabs by product")
async def list_slabs():
    return [
        {
            "min": slab.min,
            "max": None if math.isinf(slab.max) else slab.max,
            "range": slab.label,
            "rates": slab.rates,
        }
        for slab in PRICING_SLABS
    ]


@router.get("/markup", summary="Markup percentage for a product and amount")
async def markup(
    product_type: str = Query(..., description=f"One of {', '.join(PRODUCT_TYPES)}"),
    amount: float = Query(..., gt=0),
    ibr_rate: float = Query(84.0, gt=0),
):
    return {
        "product_type": product_type,
        "markup_percent": get_markup_percentage(product_type, amount, ibr_rate),
    }


@router.post("/calculate", summary="Customer rate with breakdown")
def calculate(
    payload: RateCalcIn,
    svc: CentralRateCacheService = Depends(get_rate_service),
):
    ibr = payload.ibr_rate or svc.get_rate(payload.currency)
    breakdown = calculate_exchange_rate_with_breakdown(payload.product_type, payload.amount, ibr)
    return {
        "currency": payload.currency,
        "amount": payload.amount,
        **breakdown.as_dict(),
        "total_inr": round(payload.amount * breakdown.final_rate, 2),
    }
