import pytest

BENEFICIARY = {
    "name": "Arjun Mehta",
    "country": "United States",
    "currency": "usd",
    "bank_name": "Chase",
    "account_number": "000123456789",
    "swift_code": "chasus33",
    "relationship": "son",
}


def add_beneficiary(client, headers, **overrides):
    r = client.post("/beneficiaries", json={**BENEFICIARY, **overrides}, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


def send(client, headers, beneficiary_id, amount=1000):
    r = client.post(
        "/remittances",
        json={
            "beneficiary_id": beneficiary_id,
            "amount": amount,
            "purpose": "family_maintenance",
            "payment_method": "neft",
            "payment_reference": "NEFT778",
            "declaration_accepted": True,
        },
        headers=headers,
    )
    assert r.status_code == 201, r.text
    return r.json()["transaction"]


def test_beneficiary_is_masked(client, customer):
    b = add_beneficiary(client, customer)
    assert b["currency"] == "USD"
    assert b["account_number"] == "********6789"
    assert b["swift_code"] == "CHAS****"
    assert client.get(f"/beneficiaries/{b['id']}", headers=customer).json()["account_number"] == "********6789"


def test_beneficiary_needs_account(client, customer):
    r = client.post("/beneficiaries", json={**BENEFICIARY, "account_number": None}, headers=customer)
    assert r.status_code == 422


def test_beneficiary_update_and_deactivate(client, customer, other_customer):
    b = add_beneficiary(client, customer)
    r = client.patch(f"/beneficiaries/{b['id']}", json={"relationship": "daughter"}, headers=customer)
    assert r.json()["relationship"] == "daughter"
    assert client.get(f"/beneficiaries/{b['id']}", headers=other_customer).status_code == 404

    assert client.delete(f"/beneficiaries/{b['id']}", headers=customer).status_code == 204
    assert client.get("/beneficiaries", headers=customer).json() == []
    listed = client.get("/beneficiaries", params={"include_inactive": True}, headers=customer).json()
    assert listed[0]["is_active"] == 0

    r = client.post("/remittances/quote", json={"beneficiary_id": b["id"], "amount": 100}, headers=customer)
    assert r.status_code == 400


def test_quote_uses_tt_pricing(client, customer):
    b = add_beneficiary(client, customer)
    q = client.post("/remittances/quote", json={"beneficiary_id": b["id"], "amount": 1000}, headers=customer).json()
    assert q["product_type"] == "Maintaince TT"
    assert q["exchange_rate"] == pytest.approx(85.26)
    assert q["source_amount"] == pytest.approx(85260.0)
    assert q["total_amount"] == pytest.approx(85260.0)
    assert q["usd_equivalent"] == pytest.approx(1000.0)


def test_transfer_needs_declaration_and_kyc(client, customer, newbie):
    b = add_beneficiary(client, customer)
    payload = {"beneficiary_id": b["id"], "amount": 500, "payment_method": "upi"}
    r = client.post("/remittances", json=payload, headers=customer)
    assert r.status_code == 400
    assert "LRS declaration" in r.json()["detail"]

    nb = add_beneficiary(client, newbie)
    r = client.post("/remittances", json={**payload, "beneficiary_id": nb["id"], "declaration_accepted": True}, headers=newbie)
    assert r.status_code == 403


def test_transfer_lifecycle(client, customer, admin, sent_emails):
    b = add_beneficiary(client, customer)
    txn = send(client, customer, b["id"])
    tid = txn["id"]
    assert txn["reference_number"].startswith("RMT")
    assert txn["status"] == "payment_pending"
    assert client.get("/lrs/usage", headers=customer).json()["entries"][0]["transaction_id"] == tid

    r = client.post(f"/admin/remittances/{tid}/confirm-payment", headers=admin)
    assert r.json()["status"] == "payment_confirmed"
    assert sent_emails[-1]["subject"] == f"Payment Confirmed - {txn['reference_number']}"

    # cannot complete before the wire goes out
    assert client.post(f"/admin/remittances/{tid}/complete", headers=admin).status_code == 409

    r = client.post(f"/admin/remittances/{tid}/dispatch", headers=admin)
    assert r.json()["status"] == "dispatched"
    assert sent_emails[-1]["subject"] == f"Order Dispatched - {txn['reference_number']}"

    r = client.post(f"/admin/remittances/{tid}/complete", headers=admin)
    assert r.json()["status"] == "completed"
    assert r.json()["completed_at"]
    assert sent_emails[-1]["subject"] == f"Order Delivered - {txn['reference_number']}"

    detail = client.get(f"/remittances/{tid}", headers=customer).json()
    assert detail["tracking"]["status"] == "completed"


def test_customer_cancellation_request(client, customer, admin):
    b = add_beneficiary(client, customer)
    txn = send(client, customer, b["id"])
    r = client.post(f"/remittances/{txn['id']}/cancel", json={"reason": "Wrong amount"}, headers=customer)
    assert r.json()["status"] == "cancellation_requested"
    again = client.post(f"/remittances/{txn['id']}/cancel", json={"reason": "Wrong amount"}, headers=customer)
    assert again.status_code == 409

    r = client.post(f"/admin/remittances/{txn['id']}/cancel", json={"reason": "As requested"}, headers=admin)
    assert r.json()["status"] == "cancelled"
    assert client.get("/refundable-balance", headers=customer).json()["balance_amount"] == 0.0


def test_reject_after_confirmation_credits_balance(client, customer, admin, sent_emails):
    b = add_beneficiary(client, customer)
    txn = send(client, customer, b["id"])
    client.post(f"/admin/remittances/{txn['id']}/confirm-payment", headers=admin)

    r = client.post(
        f"/admin/remittances/{txn['id']}/reject-payment", json={"reason": "Beneficiary bank refused"}, headers=admin
    )
    assert r.json()["status"] == "payment_rejected"
    assert r.json()["rejection_reason"] == "Beneficiary bank refused"
    assert "Beneficiary bank refused" in sent_emails[-1]["html"]

    summary = client.get("/refundable-balance", headers=customer).json()
    assert summary["balance_amount"] == pytest.approx(85260.0)
    assert summary["entries"][0]["source_reference"] == txn["reference_number"]

    assert client.post(f"/admin/remittances/{txn['id']}/dispatch", headers=admin).status_code == 409


def test_admin_detail_masks_beneficiary(client, customer, admin):
    b = add_beneficiary(client, customer)
    txn = send(client, customer, b["id"])
    detail = client.get(f"/admin/remittances/{txn['id']}", headers=admin).json()
    assert detail["beneficiary"]["account_number"] == "********6789"
    assert detail["customer"]["email"] == "priya@example.com"
    assert [t["id"] for t in client.get("/admin/remittances", headers=admin).json()] == [txn["id"]]


def test_wallet_deposit(client, customer, sent_emails):
    r = client.post("/wallets/deposit", json={"amount": 5000, "payment_method": "upi"}, headers=customer)
    assert r.status_code == 201
    assert r.json()["reference_number"].startswith("DEP")
    assert r.json()["new_balance"] == 5000.0
    client.post("/wallets/deposit", json={"amount": 2500.5, "payment_method": "imps"}, headers=customer)

    wallets = client.get("/wallets", headers=customer).json()
    assert wallets[0]["currency"] == "INR"
    assert wallets[0]["balance"] == pytest.approx(7500.5)
    assert sent_emails[0]["subject"] == "Deposit Confirmed - ₹5,000.00"


def test_deposit_rejects_balance_as_payment(client, customer):
    r = client.post("/wallets/deposit", json={"amount": 10, "payment_method": "refundable_balance"}, headers=customer)
    assert r.status_code == 422
