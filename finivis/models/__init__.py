"""Pydantic request and response models for the FINIVIS forex services API."""

from .constants import (
    FOREX_CURRENCIES,
    PAYMENT_METHODS,
    PRODUCT_TYPES,
    PURPOSES,
)  # re-export
from .profile import MeOut, ProfileOut
from .exchange import (
    DocumentRef,
    DocumentsIn,
    DocumentVerificationIn,
    ExchangeOrderAdminOut,
    ExchangeOrderDetailOut,
    ExchangeOrderIn,
    ExchangeOrderListOut,
    ExchangeOrderOut,
    NotesIn,
    OrderCreatedOut,
    OrderPaymentIn,
    OrderPaymentOut,
    PaymentIn,
    QuoteIn,
    RateLockOut,
    ReasonIn,
    ScheduleIn,
)
from .remittance import (
    BeneficiaryIn,
    BeneficiaryOut,
    BeneficiaryUpdate,
    CancellationIn,
    DepositIn,
    RemittanceIn,
    RemittanceQuoteIn,
    TransactionAdminOut,
    TransactionDetailOut,
    TransactionOut,
    TransferCreatedOut,
)
from .applications import (
    ApplicationAdminOut,
    ApplicationDetailOut,
    ApplicationIn,
    ApplicationOut,
    ApplicationReviewIn,
    ApplicationSubmittedOut,
    ReuploadRequestIn,
)
from .insurance import (
    ClaimStatusIn,
    PolicyDetailOut,
    PolicyIn,
    PolicyListOut,
    PolicyOut,
    PolicyPaymentIn,
    PolicyStatusIn,
    PolicySummaryOut,
    Traveller,
)
from .balance import (
    BalanceEntryOut,
    BalanceSummaryOut,
    CreditIn,
    ProcessedRefundOut,
    RefundRequestIn,
    RefundRequestOut,
    UseBalanceIn,
)
from .compliance import AmlReviewIn, KycDocumentIn, KycReviewIn, LrsCheckIn, TdsQuoteIn

__all__ = [
    "FOREX_CURRENCIES",
    "PAYMENT_METHODS",
    "PRODUCT_TYPES",
    "PURPOSES",
    "MeOut",
    "ProfileOut",
    "DocumentRef",
    "DocumentsIn",
    "DocumentVerificationIn",
    "ExchangeOrderAdminOut",
    "ExchangeOrderDetailOut",
    "ExchangeOrderIn",
    "ExchangeOrderListOut",
    "ExchangeOrderOut",
    "NotesIn",
    "OrderCreatedOut",
    "OrderPaymentIn",
    "OrderPaymentOut",
    "PaymentIn",
    "QuoteIn",
    "RateLockOut",
    "ReasonIn",
    "ScheduleIn",
    "BeneficiaryIn",
    "BeneficiaryOut",
    "BeneficiaryUpdate",
    "CancellationIn",
    "DepositIn",
    "RemittanceIn",
    "RemittanceQuoteIn",
    "TransactionAdminOut",
    "TransactionDetailOut",
    "TransactionOut",
    "TransferCreatedOut",
    "ApplicationAdminOut",
    "ApplicationDetailOut",
    "ApplicationIn",
    "ApplicationOut",
    "ApplicationReviewIn",
    "ApplicationSubmittedOut",
    "ReuploadRequestIn",
    "ClaimStatusIn",
    "PolicyDetailOut",
    "PolicyIn",
    "PolicyListOut",
    "PolicyOut",
    "PolicyPaymentIn",
    "PolicyStatusIn",
    "PolicySummaryOut",
    "Traveller",
    "BalanceEntryOut",
    "BalanceSummaryOut",
    "CreditIn",
    "ProcessedRefundOut",
    "RefundRequestIn",
    "RefundRequestOut",
    "UseBalanceIn",
    "AmlReviewIn",
    "KycDocumentIn",
    "KycReviewIn",
    "LrsCheckIn",
    "TdsQuoteIn",
]
