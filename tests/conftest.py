"""Pytest fixtures: an app on a temp database with seeded accounts.

Outbound email goes to an ``httpx.MockTransport`` that records every request
in ``sent_emails`` instead of calling the provider.
"""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from finivis.core.config import Settings
from finivis.db.dal import Database
from finivis.main import create_app
from finivis.services.notifications import EmailSender

CUSTOMER_TOKEN = "customer-token"
NEW_CUSTOMER_TOKEN = "new-customer-token"
OTHER_CUSTOMER_TOKEN = "other-customer-token"
ADMIN_TOKEN = "admin-token"
OPS_TOKEN = "ops-token"


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def settings(tmp_path):
    return Settings(
        db_path=tmp_path / "test.db",
        email_api_key="re_test_key",
        admin_emails=["ops@rbpfinivis.com"],
        exchange_rate_provider="static",
    )


@pytest.fixture
def sent_emails():
    return []


@pytest.fixture
def app(settings, sent_emails):
    app = create_app(settings_override=settings)

    def handler(request: httpx.Request) -> httpx.Response:
        sent_emails.append(json.loads(request.content))
        return httpx.Response(200, json={"id": f"email-{len(sent_emails)}"})

    app.state.email_sender = EmailSender(settings, transport=httpx.MockTransport(handler))
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def db(settings):
    return Database(settings.db_path)


@pytest.fixture
def users(db, app):
    """Seed accounts; ``app`` first so the schema exists."""
    customer = db.create_profile(
        "priya@example.com",
        full_name="Priya Sharma",
        pan_number="ABCDE1234F",
        api_token=CUSTOMER_TOKEN,
        kyc_status="verified",
    )
    newbie = db.create_profile("rohan@example.com", full_name="Rohan Mehta", api_token=NEW_CUSTOMER_TOKEN)
    other = db.create_profile(
        "anita@example.com", full_name="Anita Rao", api_token=OTHER_CUSTOMER_TOKEN, kyc_status="verified"
    )
    admin = db.create_profile("admin@rbpfinivis.com", full_name="Desk Admin", api_token=ADMIN_TOKEN)
    db.add_role(admin, "admin")
    ops = db.create_profile("ops@rbpfinivis.com", full_name="Ops Lead", api_token=OPS_TOKEN)
    return {"customer": customer, "newbie": newbie, "other": other, "admin": admin, "ops": ops}


@pytest.fixture
def customer(users):
    return auth(CUSTOMER_TOKEN)


@pytest.fixture
def newbie(users):
    return auth(NEW_CUSTOMER_TOKEN)


@pytest.fixture
def other_customer(users):
    return auth(OTHER_CUSTOMER_TOKEN)


@pytest.fixture
def admin(users):
    return auth(ADMIN_TOKEN)


@pytest.fixture
def ops(users):
    """Admin through ``admin_emails`` only, no role."""
    return auth(OPS_TOKEN)
