import pytest

from finivis.core.errors import DomainError, InsufficientBalanceError
from finivis.services import refundable_balance as balance

BANK = {
    "bank_account_name": "Priya Sharma",
    "bank_account_number": "50100012345678",
    "bank_ifsc": "hdfc0001234",
    "bank_name": "HDFC Bank",
}


def credit(client, admin, user_id, amount=5000.0, reason="manual_adjustment"):
    r = client.post(
        "/admin/refundable-balance/credit",
        json={"user_id": user_id, "amount": amount, "reason": reason, "description": "Goodwill credit"},
        headers=admin,
    )
    assert r.status_code == 201, r.text
    return r.json()


def test_ledger_credit_and_debit(db, users):
    uid = users["customer"]
    balance.credit(db, uid, 1000, "overpayment", source_type="currency_exchange", source_id=7)
    result = balance.use_balance_for_service(db, uid, 400, "travel_insurance", 3)
    assert result["new_balance"] == 600.0

    entries = balance.get_summary(db, uid)["entries"]
    assert [e["entry_type"] for e in entries] == ["debit", "credit"]
    assert entries[1]["source_id"] == "7"

    with pytest.raises(InsufficientBalanceError):
        balance.use_balance_for_service(db, uid, 600.01, "travel_insurance", 4)
    with pytest.raises(DomainError):
        balance.credit(db, uid, 10, "lucky_draw")
    with pytest.raises(DomainError):
        balance.credit(db, uid, 0, "overpayment")


def test_empty_summary(client, customer):
    summary = client.get("/refundable-balance", headers=customer).json()
    assert summary == {"balance_amount": 0.0, "currency": "INR", "entries": [], "refund_requests": []}


def test_admin_credit_is_audited(client, admin, customer, users):
    result = credit(client, admin, users["customer"])
    assert result["new_balance"] == 5000.0

    entry = client.get("/refundable-balance", headers=customer).json()["entries"][0]
    assert entry["source_type"] == "admin"
    assert entry["description"] == "Goodwill credit"

    logs = client.get("/admin/audit-logs", params={"entity_type": "refundable_balance"}, headers=admin).json()
    assert logs[0]["action"] == "balance_credited"

    positive = client.get("/admin/refundable-balance", headers=admin).json()
    assert positive[0]["email"] == "priya@example.com"
    assert positive[0]["balance_amount"] == 5000.0


def test_refund_request_validation(client, admin, customer, users):
    r = client.post("/refundable-balance/refund-requests", json={**BANK, "amount": 100}, headers=customer)
    assert r.status_code == 400
    assert r.json()["detail"] == "No refundable balance available"

    credit(client, admin, users["customer"], amount=1000)
    r = client.post("/refundable-balance/refund-requests", json={**BANK, "amount": 1000.01}, headers=customer)
    assert r.status_code == 400
    assert r.json()["detail"] == "Requested amount exceeds available balance"

    r = client.post(
        "/refundable-balance/refund-requests", json={**BANK, "bank_ifsc": "HDFC1001234", "amount": 10}, headers=customer
    )
    assert r.status_code == 422


def test_refund_approve_and_process(client, admin, customer, users):
    credit(client, admin, users["customer"], amount=3000)
    req = client.post("/refundable-balance/refund-requests", json={**BANK, "amount": 1200}, headers=customer).json()
    assert req["status"] == "pending"
    assert req["bank_ifsc"] == "HDFC0001234"

    pending = client.get("/admin/refundable-balance/refund-requests", headers=admin).json()
    assert [p["id"] for p in pending] == [req["id"]]

    r = client.post(
        f"/admin/refundable-balance/refund-requests/{req['id']}/approve", json={"notes": "KYC ok"}, headers=admin
    )
    assert r.json()["status"] == "approved"
    assert r.json()["admin_notes"] == "KYC ok"

    r = client.post(f"/admin/refundable-balance/refund-requests/{req['id']}/process", headers=admin)
    assert r.json()["status"] == "processed"
    assert r.json()["new_balance"] == 1800.0

    summary = client.get("/refundable-balance", headers=customer).json()
    assert summary["balance_amount"] == 1800.0
    assert summary["entries"][0]["reason"] == "bank_refund"
    assert summary["entries"][0]["description"].endswith("5678")

    # processed requests are final
    again = client.post(f"/admin/refundable-balance/refund-requests/{req['id']}/process", headers=admin)
    assert again.status_code == 409


def test_refund_reject(client, admin, customer, users):
    credit(client, admin, users["customer"], amount=800)
    req = client.post("/refundable-balance/refund-requests", json={**BANK, "amount": 800}, headers=customer).json()
    url = f"/admin/refundable-balance/refund-requests/{req['id']}"

    r = client.post(f"{url}/reject", json={"reason": "Account holder name mismatch"}, headers=admin)
    assert r.json()["status"] == "rejected"
    assert client.post(f"{url}/approve", headers=admin).status_code == 409
    assert client.post(f"{url}/process", headers=admin).status_code == 409
    assert client.get("/refundable-balance", headers=customer).json()["balance_amount"] == 800.0


def test_process_fails_when_balance_was_spent(client, admin, customer, users):
    credit(client, admin, users["customer"], amount=500)
    req = client.post("/refundable-balance/refund-requests", json={**BANK, "amount": 500}, headers=customer).json()
    r = client.post(
        "/refundable-balance/use",
        json={"amount": 300, "service_type": "currency_exchange", "service_id": "12"},
        headers=customer,
    )
    assert r.json()["new_balance"] == 200.0

    r = client.post(f"/admin/refundable-balance/refund-requests/{req['id']}/process", headers=admin)
    assert r.status_code == 400
    assert r.json()["error"] == "insufficient_balance"
    assert client.get("/refundable-balance", headers=customer).json()["refund_requests"][0]["status"] == "pending"


def test_balance_admin_routes_need_admin(client, customer, users):
    r = client.post("/admin/refundable-balance/credit", json={"user_id": users["customer"], "amount": 10}, headers=customer)
    assert r.status_code == 403
