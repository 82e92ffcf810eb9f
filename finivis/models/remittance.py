from __future__ import annotations
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .constants import FOREX_CURRENCIES, PAYMENT_METHODS, PURPOSES
from .profile import ProfileOut


class BeneficiaryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    country: str = Field(..., min_length=2, max_length=100)
    currency: str
    bank_name: Optional[str] = Field(None, max_length=200)
    account_number: Optional[str] = Field(None, max_length=34)
    iban: Optional[str] = Field(None, max_length=34)
    swift_code: Optional[str] = Field(None, min_length=8, max_length=11)
    relationship: Optional[str] = Field(None, max_length=100)

    @field_validator("currency")
    @classmethod
    def valid_currency(cls, v: str) -> str:
        v = v.upper()
        if v not in FOREX_CURRENCIES:
            raise ValueError("unsupported currency")
        return v

    @field_validator("swift_code", "iban")
    @classmethod
    def compact_upper(cls, v: Optional[str]) -> Optional[str]:
        return v.replace(" ", "").upper() if v else v

    @model_validator(mode="after")
    def needs_account(self) -> "BeneficiaryIn":
        if not (self.account_number or self.iban):
            raise ValueError("account_number or iban is required")
        return self


class BeneficiaryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    bank_name: Optional[str] = Field(None, max_length=200)
    relationship: Optional[str] = Field(None, max_length=100)
    is_active: Optional[bool] = None


class RemittanceQuoteIn(BaseModel):
    beneficiary_id: int
    amount: float = Field(..., gt=0, description="Amount in the beneficiary's currency")
    purpose: str = "family_maintenance"

    @field_validator("purpose")
    @classmethod
    def valid_purpose(cls, v: str) -> str:
        if v not in PURPOSES:
            raise ValueError("unsupported purpose")
        return v


class RemittanceIn(RemittanceQuoteIn):
    payment_method: str
    payment_reference: Optional[str] = Field(None, max_length=100)
    declaration_accepted: bool = False

    @field_validator("payment_method")
    @classmethod
    def valid_payment_method(cls, v: str) -> str:
        if v not in PAYMENT_METHODS:
            raise ValueError("unsupported payment method")
        return v


class CancellationIn(BaseModel):
    reason: str = Field(..., min_length=3, max_length=500)


class DepositIn(BaseModel):
    currency: str = "INR"
    amount: float = Field(..., gt=0, le=10_000_000)
    payment_method: str

    @field_validator("currency")
    @classmethod
    def valid_currency(cls, v: str) -> str:
        v = v.upper()
        if v != "INR" and v not in FOREX_CURRENCIES:
            raise ValueError("unsupported currency")
        return v

    @field_validator("payment_method")
    @classmethod
    def valid_payment_method(cls, v: str) -> str:
        if v not in PAYMENT_METHODS or v == "refundable_balance":
            raise ValueError("unsupported payment method")
        return v


class BeneficiaryOut(BaseModel):
    """Account number, IBAN and SWIFT arrive here already masked."""

    id: int
    user_id: int
    name: str
    country: str
    currency: str
    bank_name: Optional[str] = None
    account_number: Optional[str] = None
    iban: Optional[str] = None
    swift_code: Optional[str] = None
    relationship: Optional[str] = None
    is_active: bool
    created_at: str
    updated_at: str


class TransactionOut(BaseModel):
    id: int
    user_id: int
    reference_number: Optional[str] = None
    transaction_type: str
    beneficiary_id: Optional[int] = None
    wallet_id: Optional[int] = None
    product_type: Optional[str] = None
    source_amount: float
    source_currency: str
    destination_amount: Optional[float] = None
    destination_currency: Optional[str] = None
    exchange_rate: Optional[float] = None
    fee: float
    tds_amount: float
    total_amount: float
    usd_equivalent: Optional[float] = None
    purpose: Optional[str] = None
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None
    status: str
    rejection_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancellation_requested_at: Optional[str] = None
    completed_at: Optional[str] = None
    created_at: str
    updated_at: str


class TransactionDetailOut(TransactionOut):
    tracking: Dict[str, Any]


class TransactionAdminOut(TransactionOut):
    beneficiary: Optional[BeneficiaryOut] = None
    customer: Optional[ProfileOut] = None


class TransferCreatedOut(BaseModel):
    transaction: TransactionOut
    lrs_warning: Optional[str] = None
    tds: Dict[str, Any]
