from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from finivis.core.config import Settings
from finivis.db.dal import Database
from finivis.services import app_settings, audit
from finivis.services.rates.cache_service import build_dynamic_rate_cache_service

from .deps import get_app_settings, get_db, require_admin

router = APIRouter(prefix="/admin/settings", tags=["settings"])


class SettingsUpdate(BaseModel):
    exchange_rate_provider: Optional[str] = None
    rates_cache_ttl_seconds: Optional[int] = Field(None, ge=60, le=86400)
    advance_pct: Optional[int] = Field(None, ge=1, le=100)
    rate_validity_minutes: Optional[int] = Field(None, ge=5, le=10080)


@router.get("", summary="Runtime settings")
async def get_runtime_settings(
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    return app_settings.snapshot(db, settings)


@router.patch("", summary="Update runtime settings")
async def update_runtime_settings(
    payload: SettingsUpdate,
    request: Request,
    admin: dict = Depends(require_admin),
    db: Database = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    try:
        if payload.exchange_rate_provider is not None:
            app_settings.set_rate_provider(db, payload.exchange_rate_provider)
        if payload.rates_cache_ttl_seconds is not None:
            app_settings.set_rates_cache_ttl(db, payload.rates_cache_ttl_seconds)
        if payload.advance_pct is not None:
            app_settings.set_advance_pct(db, payload.advance_pct)
        if payload.rate_validity_minutes is not None:
            app_settings.set_rate_validity_minutes(db, payload.rate_validity_minutes)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    if payload.exchange_rate_provider is not None or payload.rates_cache_ttl_seconds is not None:
        # provider / TTL are read at construction; overrides do not survive the swap
        request.app.state.rate_service = build_dynamic_rate_cache_service(db, settings)
    audit.record(db, admin, "settings_updated", "settings", "runtime", payload.model_dump(exclude_none=True))
    return app_settings.snapshot(db, settings)
