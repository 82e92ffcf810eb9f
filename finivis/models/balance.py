from __future__ import annotations
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class RefundRequestIn(BaseModel):
    amount: float
    bank_account_name: str = Field(..., min_length=1, max_length=200)
    bank_account_number: str = Field(..., min_length=6, max_length=20)
    bank_ifsc: str = Field(..., min_length=11, max_length=11)
    bank_name: Optional[str] = Field(None, max_length=200)

    @field_validator("bank_ifsc")
    @classmethod
    def ifsc_format(cls, v: str) -> str:
        v = v.strip().upper()
        if not (v[:4].isalpha() and v[4] == "0" and v[5:].isalnum()):
            raise ValueError("invalid IFSC code")
        return v


class UseBalanceIn(BaseModel):
    amount: float = Field(..., gt=0)
    service_type: str = Field(..., min_length=1, max_length=50)
    service_id: str = Field(..., min_length=1, max_length=50)


class CreditIn(BaseModel):
    user_id: int
    amount: float = Field(..., gt=0)
    reason: str = "manual_adjustment"
    description: Optional[str] = Field(None, max_length=500)


class BalanceEntryOut(BaseModel):
    id: int
    user_id: int
    refundable_balance_id: int
    entry_type: str
    amount: float
    reason: str
    source_type: Optional[str] = None
    source_id: Optional[str] = None
    source_reference: Optional[str] = None
    description: Optional[str] = None
    created_at: str


class RefundRequestOut(BaseModel):
    id: int
    user_id: int
    refundable_balance_id: int
    requested_amount: float
    bank_account_name: str
    bank_account_number: str
    bank_ifsc: str
    bank_name: Optional[str] = None
    status: str
    admin_notes: Optional[str] = None
    processed_by: Optional[int] = None
    processed_at: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: str
    updated_at: str


class ProcessedRefundOut(RefundRequestOut):
    new_balance: float


class BalanceSummaryOut(BaseModel):
    balance_amount: float
    currency: str
    entries: List[BalanceEntryOut]
    refund_requests: List[RefundRequestOut]
