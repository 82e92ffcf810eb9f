from typing import Optional

from fastapi import APIRouter, Query

from finivis.services.delivery import (
    MAX_DELIVERY_RADIUS_KM,
    get_eligible_cities,
    search_cities,
    validate_city_distance,
)

router = APIRouter(prefix="/delivery", tags=["delivery"])


@router.get("/cities", summary="Search serviceable cities")
async def cities(q: Optional[str] = Query(None, description="Name or state fragment")):
    return [c.as_dict() for c in search_cities(q)]


@router.get("/cities/eligible", summary="Cities within the delivery radius")
async def eligible_cities():
    return {
        "radius_km": MAX_DELIVERY_RADIUS_KM,
        "cities": [c.as_dict() for c in get_eligible_cities()],
    }


@router.get("/validate", summary="Check doorstep delivery for a city")
async def validate(city: str = Query(..., min_length=1)):
    result = validate_city_distance(city)
    return {
        "city": city,
        "is_valid": result.is_valid,
        "distance_km": result.distance_km,
        "message": result.message,
    }
