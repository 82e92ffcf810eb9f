import sqlite3

import pytest

from finivis.core.errors import (
    DEFAULT_ERROR_MESSAGE,
    DomainError,
    mask_iban,
    mask_sensitive_data,
    mask_swift,
    sanitize_error,
)


def test_root_and_health(client):
    assert client.get("/").json()["message"] == "RBP FINIVIS Forex Services API"
    health = client.get("/health").json()
    assert health == {"status": "ok", "version": "0.1.0", "schema_version": 2}


def test_request_id_echoed(client):
    r = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert r.headers["X-Request-ID"] == "req-123"
    assert client.get("/health").headers["X-Request-ID"]


def test_unknown_route(client):
    r = client.get("/nope")
    assert r.status_code == 404
    assert r.json() == {"error": "not_found", "detail": "No route for GET /nope"}


def test_bad_tokens(client, users):
    assert client.get("/me", headers={"Authorization": "Basic abc"}).status_code == 401
    r = client.get("/me", headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid authentication token"


def test_me_hides_token(client, customer, admin):
    me = client.get("/me", headers=customer).json()
    assert me["email"] == "priya@example.com"
    assert me["is_admin"] is False
    assert "api_token" not in me
    assert client.get("/me", headers=admin).json()["roles"] == ["admin"]


def test_update_me(client, customer):
    r = client.patch("/me", json={"phone": "+919876543210", "full_name": "Priya S."}, headers=customer)
    assert r.json()["phone"] == "+919876543210"
    assert r.json()["full_name"] == "Priya S."
    assert "api_token" not in r.json()
    assert client.patch("/me", json={"pan_number": "abc"}, headers=customer).status_code == 422


def test_admin_email_list_grants_admin(client, ops):
    me = client.get("/me", headers=ops).json()
    assert me["roles"] == [] and me["is_admin"] is True
    assert client.get("/admin/settings", headers=ops).status_code == 200


def test_settings_snapshot_defaults(client, admin):
    snap = client.get("/admin/settings", headers=admin).json()
    assert snap == {
        "exchange_rate_provider": "static",
        "rates_cache_ttl_seconds": 3600,
        "advance_pct": 10,
        "rate_validity_minutes": 1440,
    }


def test_advance_pct_feeds_quotes(client, admin, customer):
    r = client.patch("/admin/settings", json={"advance_pct": 25, "rate_validity_minutes": 30}, headers=admin)
    assert r.json()["advance_pct"] == 25
    q = client.post("/exchange-orders/quote", json={"currency": "USD", "amount": 1000}, headers=customer).json()
    assert q["advance_amount"] == pytest.approx(21315.0)
    assert q["rate_validity_minutes"] == 30

    logs = client.get("/admin/audit-logs", params={"entity_type": "settings"}, headers=admin).json()
    assert logs[0]["action"] == "settings_updated"


def test_provider_change_rebuilds_rate_service(client, app, admin):
    before = app.state.rate_service
    before.set_override("USD", 90.0, 600)
    r = client.patch(
        "/admin/settings", json={"exchange_rate_provider": "external-http", "rates_cache_ttl_seconds": 120}, headers=admin
    )
    assert r.json()["exchange_rate_provider"] == "external-http"
    assert app.state.rate_service is not before
    assert app.state.rate_service.provider_name == "external-http"
    assert app.state.rate_service.list_overrides() == {}


def test_advance_only_change_keeps_rate_service(client, app, admin):
    before = app.state.rate_service
    client.patch("/admin/settings", json={"advance_pct": 15}, headers=admin)
    assert app.state.rate_service is before


def test_settings_validation(client, admin, customer):
    assert client.patch("/admin/settings", json={"advance_pct": 0}, headers=admin).status_code == 422
    r = client.patch("/admin/settings", json={"exchange_rate_provider": "carrier-pigeon"}, headers=admin)
    assert r.status_code == 400
    assert client.patch("/admin/settings", json={"advance_pct": 20}, headers=customer).status_code == 403


def test_masks():
    assert mask_sensitive_data("1234567890") == "******7890"
    assert mask_sensitive_data("123") == "***"
    assert mask_sensitive_data(None) == "-"
    assert mask_iban("DE89 3704 0044 0532 0130 00") == "DE89**************3000"
    assert mask_swift("HDFCINBB") == "HDFC****"


@pytest.mark.parametrize(
    "error, message",
    [
        (None, DEFAULT_ERROR_MESSAGE),
        (DomainError("Beneficiary is inactive"), "Beneficiary is inactive"),
        (sqlite3.IntegrityError("UNIQUE constraint failed: profiles.email"), "This record already exists."),
        (sqlite3.IntegrityError("CHECK constraint failed: amount_usd > 0"), "The provided data is invalid."),
        ("duplicate key value violates 23505", "This record already exists."),
        ({"status": 429}, "Too many requests. Please try again later."),
        ({"status": 503}, "Service temporarily unavailable. Please try again later."),
        (RuntimeError("connection to 10.0.0.3 refused"), DEFAULT_ERROR_MESSAGE),
    ],
)
def test_sanitize_error(error, message):
    assert sanitize_error(error) == message
