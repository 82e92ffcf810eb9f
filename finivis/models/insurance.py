from __future__ import annotations
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .constants import PAYMENT_METHODS

PLAN_TYPES = ("single_trip", "multi_trip", "student")
CLAIM_STATUSES = ("submitted", "under_review", "approved", "rejected", "settled")


class Traveller(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    date_of_birth: Optional[date] = None
    passport_number: Optional[str] = Field(None, max_length=20)


class PolicyIn(BaseModel):
    plan_type: str = "single_trip"
    selected_plan: str = Field(..., min_length=1, max_length=100)
    destination_country: str = Field(..., min_length=2, max_length=100)
    travel_start_date: date
    travel_end_date: date
    travellers: List[Traveller] = Field(..., min_length=1, max_length=10)
    premium_amount: float = Field(..., ge=0)
    facilitator_fee: float = Field(0, ge=0)
    add_ons: List[str] = []
    partner_insurer_name: Optional[str] = Field(None, max_length=200)
    disclaimer_accepted: bool = False

    @field_validator("plan_type")
    @classmethod
    def valid_plan_type(cls, v: str) -> str:
        if v not in PLAN_TYPES:
            raise ValueError("unsupported plan type")
        return v

    @model_validator(mode="after")
    def trip_dates(self) -> "PolicyIn":
        if self.travel_end_date < self.travel_start_date:
            raise ValueError("travel_end_date cannot be before travel_start_date")
        if not self.disclaimer_accepted:
            raise ValueError("the facilitator disclaimer must be accepted")
        return self


class PolicyPaymentIn(BaseModel):
    payment_method: str
    payment_transaction_id: Optional[str] = Field(None, max_length=100)

    @field_validator("payment_method")
    @classmethod
    def valid_payment_method(cls, v: str) -> str:
        if v not in PAYMENT_METHODS:
            raise ValueError("unsupported payment method")
        return v


class PolicyStatusIn(BaseModel):
    policy_status: str
    partner_policy_reference: Optional[str] = Field(None, max_length=100)

    @field_validator("policy_status")
    @classmethod
    def valid_status(cls, v: str) -> str:
        if v not in ("issued", "cancelled"):
            raise ValueError("policy_status must be issued or cancelled")
        return v


class ClaimStatusIn(BaseModel):
    claim_status: str
    claim_details: Optional[Dict[str, Any]] = None

    @field_validator("claim_status")
    @classmethod
    def valid_claim_status(cls, v: str) -> str:
        if v not in CLAIM_STATUSES:
            raise ValueError("unsupported claim status")
        return v


class PolicyOut(BaseModel):
    id: int
    user_id: int
    policy_number: Optional[str] = None
    plan_type: str
    selected_plan: str
    destination_country: str
    travel_start_date: str
    travel_end_date: str
    trip_duration: int
    number_of_travellers: int
    travellers: List[Dict[str, Any]]
    premium_amount: float
    facilitator_fee: float
    add_ons: Optional[List[Any]] = None
    partner_insurer_name: Optional[str] = None
    partner_policy_reference: Optional[str] = None
    disclaimer_accepted: bool
    policy_status: str
    payment_status: str
    payment_method: Optional[str] = None
    payment_transaction_id: Optional[str] = None
    paid_at: Optional[str] = None
    issued_at: Optional[str] = None
    has_claim: bool
    claim_status: Optional[str] = None
    claim_details: Optional[Dict[str, Any]] = None
    created_at: str
    updated_at: str


class PolicyDetailOut(PolicyOut):
    total_amount: float


class PolicySummaryOut(BaseModel):
    total: int
    issued: int
    pending: int
    pending_claims: int
    total_premium_paid: float


class PolicyListOut(BaseModel):
    policies: List[PolicyOut]
    summary: PolicySummaryOut
