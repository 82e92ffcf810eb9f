from __future__ import annotations
from typing import List, Optional

from pydantic import BaseModel


class ProfileOut(BaseModel):
    """A customer or staff profile as shown to clients; the API token is never included."""

    id: int
    email: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    pan_number: Optional[str] = None
    kyc_status: str
    created_at: str
    updated_at: str


class MeOut(ProfileOut):
    roles: List[str] = []
    is_admin: bool = False
