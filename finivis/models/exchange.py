from __future__ import annotations
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .constants import (
    DELIVERY_PREFERENCES,
    DOCUMENT_DECISIONS,
    EXCHANGE_TYPES,
    FOREX_CURRENCIES,
    PAYMENT_METHODS,
    PAYMENT_OPTIONS,
    PRODUCT_TYPES,
    PURPOSES,
    SETTLEMENT_METHODS,
)
from .profile import ProfileOut


class QuoteIn(BaseModel):
    exchange_type: str = "buy"
    product_type: str = "Currency Note"
    currency: str
    amount: float = Field(..., gt=0, description="Foreign currency amount")
    purpose: str = "travel"

    @field_validator("exchange_type")
    @classmethod
    def valid_exchange_type(cls, v: str) -> str:
        if v not in EXCHANGE_TYPES:
            raise ValueError("exchange_type must be buy or sell")
        return v

    @field_validator("product_type")
    @classmethod
    def valid_product(cls, v: str) -> str:
        if v not in PRODUCT_TYPES:
            raise ValueError("unsupported product type")
        return v

    @field_validator("currency")
    @classmethod
    def valid_currency(cls, v: str) -> str:
        v = v.upper()
        if v not in FOREX_CURRENCIES:
            raise ValueError("unsupported currency")
        return v

    @field_validator("purpose")
    @classmethod
    def valid_purpose(cls, v: str) -> str:
        if v not in PURPOSES:
            raise ValueError("unsupported purpose")
        return v


class DocumentRef(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    path: str = Field(..., min_length=1, max_length=500)
    document_type: Optional[str] = None


class ExchangeOrderIn(QuoteIn):
    city: str = Field(..., min_length=1, max_length=100)
    delivery_preference: str = "delivery"
    delivery_address: Optional[str] = Field(None, max_length=500)
    delivery_date: Optional[date] = None
    delivery_time_slot: Optional[str] = Field(None, max_length=50)
    denomination_breakdown: Optional[Dict[str, int]] = None
    travel_start_date: Optional[date] = None
    travel_end_date: Optional[date] = None
    destination_country: Optional[str] = Field(None, max_length=100)
    lrs_declaration_accepted: bool = False
    documents: List[DocumentRef] = []
    # sell orders: where the INR proceeds go
    settlement_method: Optional[str] = None
    settlement_account_name: Optional[str] = Field(None, max_length=200)
    settlement_account_number: Optional[str] = Field(None, max_length=34)
    settlement_ifsc: Optional[str] = Field(None, max_length=11)
    settlement_bank_name: Optional[str] = Field(None, max_length=200)

    @field_validator("delivery_preference")
    @classmethod
    def valid_delivery_preference(cls, v: str) -> str:
        if v not in DELIVERY_PREFERENCES:
            raise ValueError("delivery_preference must be delivery or pickup")
        return v

    @field_validator("denomination_breakdown")
    @classmethod
    def positive_denominations(cls, v: Optional[Dict[str, int]]) -> Optional[Dict[str, int]]:
        if v is None:
            return v
        for note, count in v.items():
            try:
                value = float(note)
            except ValueError as exc:
                raise ValueError(f"invalid denomination '{note}'") from exc
            if value <= 0 or count < 0:
                raise ValueError("denominations and counts must be positive")
        return {k: c for k, c in v.items() if c > 0}

    @model_validator(mode="after")
    def cross_field_rules(self) -> "ExchangeOrderIn":
        if self.delivery_preference == "delivery" and not (self.delivery_address or "").strip():
            raise ValueError("delivery_address is required for doorstep delivery")
        if (
            self.travel_start_date
            and self.travel_end_date
            and self.travel_end_date < self.travel_start_date
        ):
            raise ValueError("travel_end_date cannot be before travel_start_date")
        if self.exchange_type == "sell":
            if self.settlement_method not in SETTLEMENT_METHODS:
                raise ValueError("settlement_method is required for sell orders")
            if self.settlement_method == "bank_transfer" and not (
                self.settlement_account_number and self.settlement_ifsc
            ):
                raise ValueError("bank account number and IFSC are required for bank settlement")
        return self


class PaymentIn(BaseModel):
    payment_method: str
    reference: Optional[str] = Field(None, max_length=100)

    @field_validator("payment_method")
    @classmethod
    def valid_payment_method(cls, v: str) -> str:
        if v not in PAYMENT_METHODS:
            raise ValueError("unsupported payment method")
        return v


class OrderPaymentIn(PaymentIn):
    payment_option: str

    @field_validator("payment_option")
    @classmethod
    def valid_option(cls, v: str) -> str:
        if v not in PAYMENT_OPTIONS:
            raise ValueError("payment_option must be advance or full")
        return v


class DocumentsIn(BaseModel):
    documents: List[DocumentRef] = Field(..., min_length=1)


class DocumentVerificationIn(BaseModel):
    status: str
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: str) -> str:
        if v not in DOCUMENT_DECISIONS:
            raise ValueError("status must be verified, rejected or incomplete")
        return v


class ReasonIn(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class NotesIn(BaseModel):
    notes: str = Field(..., max_length=2000)


class ScheduleIn(BaseModel):
    delivery_date: Optional[date] = None
    delivery_time_slot: Optional[str] = Field(None, max_length=50)


class ExchangeOrderOut(BaseModel):
    id: int
    user_id: int
    order_number: Optional[str] = None
    exchange_type: str
    product_type: str
    from_currency: str
    to_currency: str
    amount: float
    exchange_rate: float
    base_rate: float
    markup_percent: float
    converted_amount: float
    service_fee: float
    total_amount: float
    usd_equivalent: Optional[float] = None
    payment_option: Optional[str] = None
    advance_amount: float
    balance_amount: float
    advance_paid: bool
    advance_paid_at: Optional[str] = None
    advance_payment_method: Optional[str] = None
    advance_reference: Optional[str] = None
    balance_paid: bool
    balance_paid_at: Optional[str] = None
    balance_payment_method: Optional[str] = None
    balance_reference: Optional[str] = None
    rate_locked_at: Optional[str] = None
    rate_validity_minutes: Optional[int] = None
    rate_expires_at: Optional[str] = None
    purpose: Optional[str] = None
    city: str
    delivery_preference: str
    delivery_address: Optional[str] = None
    delivery_date: Optional[str] = None
    delivery_time_slot: Optional[str] = None
    denomination_breakdown: Optional[Dict[str, Any]] = None
    travel_start_date: Optional[str] = None
    travel_end_date: Optional[str] = None
    destination_country: Optional[str] = None
    lrs_declaration_accepted: bool
    documents: Optional[List[Dict[str, Any]]] = None
    document_verification_status: str
    document_verification_notes: Optional[str] = None
    document_verified_at: Optional[str] = None
    document_verified_by: Optional[int] = None
    compliance_status: str
    admin_rejection_reason: Optional[str] = None
    notes: Optional[str] = None
    delivered_at: Optional[str] = None
    settlement_method: Optional[str] = None
    settlement_account_name: Optional[str] = None
    settlement_account_number: Optional[str] = None
    settlement_ifsc: Optional[str] = None
    settlement_bank_name: Optional[str] = None
    refund_status: Optional[str] = None
    refund_amount: Optional[float] = None
    status: str
    created_at: str
    updated_at: str


class RateLockOut(BaseModel):
    locked: bool
    rate_locked_at: Optional[str] = None
    rate_expires_at: Optional[str] = None
    seconds_remaining: int


class ExchangeOrderDetailOut(ExchangeOrderOut):
    rate_lock: RateLockOut
    amount_received: float


class ExchangeOrderAdminOut(ExchangeOrderDetailOut):
    customer: Optional[ProfileOut] = None


class OrderCreatedOut(BaseModel):
    order: ExchangeOrderOut
    lrs_warning: Optional[str] = None
    tds: Optional[Dict[str, Any]] = None


class OrderPaymentOut(BaseModel):
    order: ExchangeOrderOut
    rate_lock: RateLockOut


class ExchangeOrderListOut(BaseModel):
    orders: List[ExchangeOrderOut]
    counters: Dict[str, int]
