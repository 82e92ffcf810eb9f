from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from finivis.db.dal import Database
from finivis.models.profile import MeOut

from .deps import get_current_user, get_db, public_profile

router = APIRouter(prefix="/me", tags=["account"])


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=1, max_length=200)
    phone: Optional[str] = Field(None, min_length=7, max_length=20)
    pan_number: Optional[str] = Field(None, pattern=r"^[A-Z]{5}[0-9]{4}[A-Z]$")


@router.get("", response_model=MeOut, summary="Current user's profile")
async def me(user: dict = Depends(get_current_user)):
    return public_profile(user)


@router.patch("", response_model=MeOut, summary="Update contact details")
async def update_me(
    payload: ProfileUpdate,
    user: dict = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    fields = payload.model_dump(exclude_none=True)
    if fields:
        db.update_profile(user["id"], fields)
    profile = db.get_profile(user["id"]) or {}
    return public_profile({**profile, "roles": user["roles"], "is_admin": user["is_admin"]})
