"""Transactional notification emails.

Two entry points share the same validation, templates and sender:

* ``send_notification``: the authenticated ``POST /notifications/email``
  endpoint. Order of checks: rate limit, payload validation, authorization by
  email type, provider configuration, render, deliver.
* ``Outbox``: admin operations queue status emails after their database work
  has committed. Delivery runs as a background task and is best-effort; a
  failed email is logged and never fails the admin operation.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import math
from pathlib import Path
import re
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
from fastapi import BackgroundTasks
from jinja2 import Environment, FileSystemLoader, select_autoescape

from finivis.core.config import Settings
from finivis.core.errors import (
    DomainError,
    PermissionDeniedError,
    RateLimitedError,
    ServiceUnavailableError,
)
from finivis.services.money import round2

logger = logging.getLogger(__name__)

USER_EMAIL_TYPES = ("transfer", "deposit")
ADMIN_EMAIL_TYPES = (
    "kyc_approved",
    "kyc_rejected",
    "service_approved",
    "service_rejected",
    "service_action_required",
    "service_under_review",
    "payment_confirmed",
    "payment_rejected",
    "order_dispatched",
    "transaction_completed",
    "exchange_advance_confirmed",
    "exchange_balance_confirmed",
    "exchange_out_for_delivery",
    "exchange_delivered",
    "travel_insurance_issued",
    "travel_insurance_cancelled",
)
EMAIL_TYPES = USER_EMAIL_TYPES + ADMIN_EMAIL_TYPES

STRING_FIELDS = (
    "currency",
    "recipientName",
    "recipientCurrency",
    "referenceNumber",
    "paymentMethod",
    "rejectionReason",
    "service_type",
    "action_required",
    "rejection_reason",
    "reason",
    "orderNumber",
    "policyNumber",
    "destination",
    "travelDates",
)
NUMERIC_FIELDS = ("amount", "recipientAmount", "exchangeRate")
MAX_OPTIONAL_LENGTH = 500

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

CURRENCY_SYMBOLS = {
    "INR": "₹",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "AED": "AED ",
    "SGD": "S$",
    "AUD": "A$",
    "CAD": "C$",
}

SERVICE_LABELS = {
    "forex_card": "Forex Card",
    "education_loan": "Education Loan",
    "send_money": "Send Money",
    "remittance": "International Remittance",
    "currency_exchange": "Currency Exchange",
}

SEND_FAILED_MESSAGE = "Failed to send email. Please try again later."
NOT_CONFIGURED_MESSAGE = "Email service not configured"

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"


# ----------------------------------------------------------------------
# Formatting


def _group_indian(whole: str) -> str:
    """Group digits the en-IN way: 12,34,567."""
    if len(whole) <= 3:
        return whole
    head, tail = whole[:-3], whole[-3:]
    groups: List[str] = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_currency(amount: float, currency: str) -> str:
    value = round2(amount)
    whole, frac = f"{abs(value):.2f}".split(".")
    sign = "-" if value < 0 else ""
    symbol = CURRENCY_SYMBOLS.get(currency, f"{currency} ")
    return f"{sign}{symbol}{_group_indian(whole)}.{frac}"


def get_service_label(service_type: Optional[str]) -> str:
    return SERVICE_LABELS.get(service_type or "", service_type or "")


# ----------------------------------------------------------------------
# Validation


def validate_email_request(data: Any) -> Dict[str, Any]:
    """Validate a raw payload; raises DomainError with the first problem found."""
    if not isinstance(data, dict):
        raise DomainError("Invalid request body")
    if not data.get("type") or not isinstance(data["type"], str):
        raise DomainError("Missing or invalid email type")
    if not data.get("email") or not isinstance(data["email"], str):
        raise DomainError("Missing or invalid email address")
    if not data.get("name") or not isinstance(data["name"], str):
        raise DomainError("Missing or invalid name")
    if not _EMAIL_RE.match(data["email"]):
        raise DomainError("Invalid email format")
    if len(data["email"]) > 255:
        raise DomainError("Email address too long")
    if len(data["name"]) > 200:
        raise DomainError("Name too long")
    if data["type"] not in EMAIL_TYPES:
        raise DomainError("Invalid email type")

    for field in STRING_FIELDS:
        value = data.get(field)
        if value is None:
            continue
        if not isinstance(value, str) or len(value) > MAX_OPTIONAL_LENGTH:
            raise DomainError(f"Invalid {field}")

    for field in NUMERIC_FIELDS:
        value = data.get(field)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
            raise DomainError(f"Invalid {field}")

    return data


def authorize(email_type: str, caller: Dict[str, Any], recipient: str, caller_is_admin: bool) -> None:
    if email_type in ADMIN_EMAIL_TYPES:
        if not caller_is_admin:
            logger.warning("admin email type %s refused for user %s", email_type, caller.get("id"))
            raise PermissionDeniedError("Admin access required for this email type")
        return
    if recipient.strip().lower() != (caller.get("email") or "").strip().lower():
        logger.warning("user %s tried to email another address", caller.get("id"))
        raise PermissionDeniedError("You can only send notifications to your own email address")


# ----------------------------------------------------------------------
# Rendering

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html"]),
)
_env.filters["money"] = format_currency

# title, subtitle, body builder for the generic status layout
_STATUS_EMAILS: Dict[str, Tuple[str, str, Callable[[Dict[str, Any]], str]]] = {
    "payment_confirmed": (
        "Payment Confirmed",
        "Payment Update",
        lambda d: f"Your payment has been confirmed. Reference: {d.get('referenceNumber') or '—'}.",
    ),
    "payment_rejected": (
        "Payment Rejected",
        "Payment Update",
        lambda d: "Your payment could not be confirmed. "
        + (f"Reason: {d['reason']}" if d.get("reason") else "Please contact support for assistance."),
    ),
    "order_dispatched": (
        "Order Dispatched",
        "Order Update",
        lambda d: f"Your order has been dispatched and is in transit. Reference: {d.get('referenceNumber') or '—'}.",
    ),
    "transaction_completed": (
        "Order Delivered",
        "Order Update",
        lambda d: f"Your order has been marked as delivered. Reference: {d.get('referenceNumber') or '—'}.",
    ),
    "exchange_advance_confirmed": (
        "Advance Confirmed",
        "Currency Exchange",
        lambda d: f"Your advance booking has been confirmed for order {d.get('orderNumber') or '—'}.",
    ),
    "exchange_balance_confirmed": (
        "Balance Payment Confirmed",
        "Currency Exchange",
        lambda d: f"Your balance payment has been confirmed for order {d.get('orderNumber') or '—'}.",
    ),
    "exchange_out_for_delivery": (
        "Out for Delivery",
        "Currency Exchange",
        lambda d: f"Your currency exchange order {d.get('orderNumber') or '—'} is out for delivery.",
    ),
    "exchange_delivered": (
        "Delivered",
        "Currency Exchange",
        lambda d: f"Your currency exchange order {d.get('orderNumber') or '—'} has been delivered.",
    ),
    "travel_insurance_issued": (
        "Policy Issued",
        "Travel Insurance",
        lambda d: (
            f"Your travel insurance policy {d.get('policyNumber') or '—'} has been issued for "
            f"{d.get('destination') or 'your trip'}. Travel dates: {d.get('travelDates') or '—'}. "
            "You can download your policy from your dashboard."
        ),
    ),
    "travel_insurance_cancelled": (
        "Policy Cancelled",
        "Travel Insurance",
        lambda d: (
            f"Your travel insurance policy {d.get('policyNumber') or '—'} has been cancelled. "
            "If you have any questions, please contact our support team."
        ),
    ),
}


def _subject(data: Dict[str, Any], service_label: str) -> str:
    t = data["type"]
    ref = data.get("referenceNumber")
    order = data.get("orderNumber")
    policy = data.get("policyNumber")
    subjects = {
        "transfer": f"Transfer Confirmed - {ref or 'RBP FINIVIS'}",
        "deposit": f"Deposit Confirmed - {format_currency(data.get('amount') or 0, data.get('currency') or 'INR')}",
        "kyc_approved": "KYC Verification Approved - RBP FINIVIS",
        "kyc_rejected": "KYC Update Required - RBP FINIVIS",
        "service_approved": f"{service_label} Application Approved - RBP FINIVIS",
        "service_rejected": f"{service_label} Application Update - RBP FINIVIS",
        "service_action_required": f"Action Required: {service_label} Application - RBP FINIVIS",
        "service_under_review": f"{service_label} Application Under Review - RBP FINIVIS",
        "payment_confirmed": f"Payment Confirmed - {ref or 'RBP FINIVIS'}",
        "payment_rejected": f"Payment Update - {ref or 'RBP FINIVIS'}",
        "order_dispatched": f"Order Dispatched - {ref or 'RBP FINIVIS'}",
        "transaction_completed": f"Order Delivered - {ref or 'RBP FINIVIS'}",
        "exchange_advance_confirmed": f"Advance Confirmed - {order or 'Currency Exchange'}",
        "exchange_balance_confirmed": f"Balance Confirmed - {order or 'Currency Exchange'}",
        "exchange_out_for_delivery": f"Out for Delivery - {order or 'Currency Exchange'}",
        "exchange_delivered": f"Delivered - {order or 'Currency Exchange'}",
        "travel_insurance_issued": f"Travel Insurance Policy Issued - {policy or 'RBP FINIVIS'}",
        "travel_insurance_cancelled": f"Travel Insurance Policy Cancelled - {policy or 'RBP FINIVIS'}",
    }
    return subjects[t]


def render_email(data: Dict[str, Any], dashboard_url: str = "") -> Tuple[str, str]:
    """Return ``(subject, html)`` for a validated payload."""
    email_type = data["type"]
    service_label = get_service_label(data.get("service_type"))
    context: Dict[str, Any] = {**data, "service_label": service_label, "dashboard_url": dashboard_url}

    if email_type in _STATUS_EMAILS:
        title, subtitle, body = _STATUS_EMAILS[email_type]
        context.update(title=title, subtitle=subtitle, body=body(data))
        template = "status.html"
    else:
        template = f"{email_type}.html"
        if email_type == "transfer":
            context["subtitle"] = "International Money Transfer"
        elif email_type == "deposit":
            context["subtitle"] = "Wallet Services"
        elif email_type.startswith("service_"):
            context["subtitle"] = f"{service_label} Application"
        if email_type in ("service_rejected",):
            context.update(badge="✕", badge_color="#fc8181")
        elif email_type in ("kyc_rejected", "service_action_required"):
            context.update(badge="!", badge_color="#ed8936")
        elif email_type == "service_under_review":
            context.update(badge="⏳", badge_color="#4299e1")

    html = _env.get_template(template).render(**context)
    return _subject(data, service_label), html


# ----------------------------------------------------------------------
# Rate limiting


@dataclass
class _Window:
    count: int
    reset_at: float


class FixedWindowRateLimiter:
    """Per-key fixed window counter held in process memory."""

    def __init__(self, limit: int, window_seconds: int, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()

    def check(self, key: str) -> Tuple[bool, int]:
        """Count one hit for ``key``; return (allowed, retry_after_seconds)."""
        now = self._clock()
        with self._lock:
            window = self._windows.get(key)
            if window is None or now > window.reset_at:
                self._windows[key] = _Window(1, now + self.window_seconds)
                return True, 0
            if window.count >= self.limit:
                return False, max(1, math.ceil(window.reset_at - now))
            window.count += 1
            return True, 0

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


# ----------------------------------------------------------------------
# Delivery


class EmailDeliveryError(ServiceUnavailableError):
    pass


class EmailSender:
    """POSTs rendered emails to the transactional email provider."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = str(settings.email_provider_url)
        self.api_key = settings.email_api_key
        self.sender = settings.email_from
        self.timeout_seconds = settings.http_timeout_seconds
        self.dashboard_url = settings.dashboard_url
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def send(self, to: str, subject: str, html: str) -> Dict[str, Any]:
        if not self.configured:
            logger.error("email provider API key is not configured")
            raise ServiceUnavailableError(NOT_CONFIGURED_MESSAGE)

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        payload = {"from": self.sender, "to": [to], "subject": subject, "html": html}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                response = await client.post(self.url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("email provider request failed: %s", exc)
            raise EmailDeliveryError(SEND_FAILED_MESSAGE) from exc

        if response.status_code >= 400:
            logger.error("email provider error %s: %s", response.status_code, response.text)
            raise EmailDeliveryError(SEND_FAILED_MESSAGE)
        try:
            data = response.json() if response.content else {}
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        logger.info("email sent subject=%r id=%s", subject, data.get("id"))
        return data


async def send_notification(
    payload: Any,
    caller: Dict[str, Any],
    caller_is_admin: bool,
    sender: EmailSender,
    limiter: FixedWindowRateLimiter,
) -> Dict[str, Any]:
    allowed, retry_after = limiter.check(str(caller["id"]))
    if not allowed:
        logger.warning("email rate limit exceeded for user %s", caller["id"])
        raise RateLimitedError("Too many email requests. Please try again later.", retry_after)

    data = validate_email_request(payload)
    logger.info("email request type=%s user=%s", data["type"], caller["id"])
    authorize(data["type"], caller, data["email"], caller_is_admin)

    if not sender.configured:
        logger.error("email provider API key is not configured")
        raise ServiceUnavailableError(NOT_CONFIGURED_MESSAGE)

    subject, html = render_email(data, sender.dashboard_url)
    await sender.send(data["email"], subject, html)
    return {"success": True}


class Outbox:
    """Collects status emails raised by a request and delivers them afterwards."""

    def __init__(self, sender: Optional[EmailSender], background_tasks: Optional[BackgroundTasks] = None):
        self._sender = sender
        self._tasks = background_tasks
        self.queued: List[Dict[str, Any]] = []

    def queue(self, email_type: str, profile: Optional[Dict[str, Any]], **fields: Any) -> None:
        if email_type not in EMAIL_TYPES:
            raise ValueError(f"Unknown email type '{email_type}'")
        if not profile or not profile.get("email"):
            logger.warning("skipping %s email: recipient has no email address", email_type)
            return
        payload: Dict[str, Any] = {
            "type": email_type,
            "email": profile["email"],
            "name": profile.get("full_name") or profile["email"],
        }
        payload.update({k: v for k, v in fields.items() if v is not None})
        self.queued.append(payload)
        if self._tasks is not None:
            self._tasks.add_task(self.deliver, payload)

    async def deliver(self, payload: Dict[str, Any]) -> bool:
        if self._sender is None or not self._sender.configured:
            logger.info("email provider not configured; %s email not sent", payload["type"])
            return False
        try:
            data = validate_email_request(payload)
            subject, html = render_email(data, self._sender.dashboard_url)
            await self._sender.send(data["email"], subject, html)
            return True
        except Exception:
            logger.exception("failed to deliver %s email", payload["type"])
            return False
