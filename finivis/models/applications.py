from __future__ import annotations
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .constants import CARD_TYPES, FOREX_CURRENCIES, SERVICE_TYPES
from .profile import ProfileOut
from .exchange import DocumentRef

REVIEW_STATUSES = ("approved", "rejected", "action_required", "under_review")


class ApplicationIn(BaseModel):
    service_type: str
    application_data: Dict[str, Any] = Field(default_factory=dict)
    card_type: Optional[str] = None
    load_amount: Optional[float] = Field(None, gt=0)
    load_currency: Optional[str] = None
    documents: List[DocumentRef] = []

    @field_validator("service_type")
    @classmethod
    def valid_service(cls, v: str) -> str:
        if v not in SERVICE_TYPES:
            raise ValueError("service_type must be forex_card or education_loan")
        return v

    @field_validator("load_currency")
    @classmethod
    def valid_currency(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.upper()
        if v not in FOREX_CURRENCIES:
            raise ValueError("unsupported currency")
        return v

    @model_validator(mode="after")
    def card_fields(self) -> "ApplicationIn":
        if self.service_type == "forex_card":
            if self.card_type not in CARD_TYPES:
                raise ValueError("card_type is required for forex card applications")
            if not (self.load_amount and self.load_currency):
                raise ValueError("load_amount and load_currency are required for forex cards")
        return self


class ApplicationReviewIn(BaseModel):
    status: str
    admin_notes: Optional[str] = Field(None, max_length=2000)
    rejection_reason: Optional[str] = Field(None, max_length=500)
    action_required: Optional[str] = Field(None, max_length=500)

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: str) -> str:
        if v not in REVIEW_STATUSES:
            raise ValueError(f"status must be one of {', '.join(REVIEW_STATUSES)}")
        return v


class ReuploadRequestIn(BaseModel):
    reason: str = Field(..., min_length=3, max_length=500)


class ApplicationOut(BaseModel):
    id: int
    user_id: int
    service_type: str
    application_status: str
    application_data: Optional[Dict[str, Any]] = None
    card_type: Optional[str] = None
    load_amount: Optional[float] = None
    load_currency: Optional[str] = None
    usd_equivalent: Optional[float] = None
    documents: Optional[List[Dict[str, Any]]] = None
    admin_notes: Optional[str] = None
    action_required: Optional[str] = None
    rejection_reason: Optional[str] = None
    reupload_reason: Optional[str] = None
    reupload_requested_at: Optional[str] = None
    documents_resubmitted_at: Optional[str] = None
    submitted_at: Optional[str] = None
    reviewed_at: Optional[str] = None
    approved_at: Optional[str] = None
    rejected_at: Optional[str] = None
    created_at: str
    updated_at: str


class ApplicationDetailOut(ApplicationOut):
    tracking: Dict[str, Any]


class ApplicationAdminOut(ApplicationOut):
    customer: Optional[ProfileOut] = None


class ApplicationSubmittedOut(BaseModel):
    application: ApplicationOut
    lrs_warning: Optional[str] = None
