from __future__ import annotations
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .constants import EXCHANGE_TYPES, PURPOSES


class KycDocumentIn(BaseModel):
    document_type: str
    file_path: str = Field(..., min_length=1, max_length=500)


class KycReviewIn(BaseModel):
    status: str
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: str) -> str:
        if v not in ("verified", "rejected"):
            raise ValueError("status must be verified or rejected")
        return v


class TdsQuoteIn(BaseModel):
    amount_inr: float = Field(..., gt=0)
    purpose: str = "other"
    exchange_type: str = "buy"

    @field_validator("purpose")
    @classmethod
    def valid_purpose(cls, v: str) -> str:
        if v not in PURPOSES:
            raise ValueError("unsupported purpose")
        return v

    @field_validator("exchange_type")
    @classmethod
    def valid_exchange_type(cls, v: str) -> str:
        if v not in EXCHANGE_TYPES:
            raise ValueError("exchange_type must be buy or sell")
        return v


class LrsCheckIn(BaseModel):
    amount_usd: float = Field(..., gt=0)


class AmlReviewIn(BaseModel):
    status: str
    review_notes: Optional[str] = Field(None, max_length=2000)

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: str) -> str:
        if v not in ("reviewed", "cleared", "escalated"):
            raise ValueError("status must be reviewed, cleared or escalated")
        return v
