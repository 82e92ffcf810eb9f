"""Shared vocabularies for request validation."""

from finivis.services.pricing import PRODUCT_TYPES
from finivis.services.rates.providers import SUPPORTED_CURRENCIES

FOREX_CURRENCIES = tuple(SUPPORTED_CURRENCIES)
EXCHANGE_TYPES = ("buy", "sell")
PAYMENT_OPTIONS = ("advance", "full")
DELIVERY_PREFERENCES = ("delivery", "pickup")
PAYMENT_METHODS = ("upi", "netbanking", "card", "neft", "rtgs", "imps", "cash", "refundable_balance")
SETTLEMENT_METHODS = ("bank_transfer", "cash")
PURPOSES = (
    "education_loan",
    "education",
    "medical",
    "travel",
    "business",
    "family_maintenance",
    "emigration",
    "employment",
    "investment",
    "gift",
    "other",
)
SERVICE_TYPES = ("forex_card", "education_loan")
CARD_TYPES = ("single_currency", "multi_currency", "student")
DOCUMENT_DECISIONS = ("verified", "rejected", "incomplete")

__all__ = [
    "PRODUCT_TYPES",
    "FOREX_CURRENCIES",
    "EXCHANGE_TYPES",
    "PAYMENT_OPTIONS",
    "DELIVERY_PREFERENCES",
    "PAYMENT_METHODS",
    "SETTLEMENT_METHODS",
    "PURPOSES",
    "SERVICE_TYPES",
    "CARD_TYPES",
    "DOCUMENT_DECISIONS",
]
