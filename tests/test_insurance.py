import pytest

POLICY = {
    "plan_type": "single_trip",
    "selected_plan": "Explorer Gold",
    "destination_country": "Thailand",
    "travel_start_date": "2030-03-01",
    "travel_end_date": "2030-03-10",
    "travellers": [
        {"name": "Priya Sharma", "date_of_birth": "1990-04-12", "passport_number": "Z1234567"},
        {"name": "Kabir Sharma"},
    ],
    "premium_amount": 2450.0,
    "facilitator_fee": 199.0,
    "add_ons": ["adventure_sports"],
    "partner_insurer_name": "Shield General",
    "disclaimer_accepted": True,
}


def buy(client, headers, **overrides):
    r = client.post("/insurance/policies", json={**POLICY, **overrides}, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


def pay(client, headers, policy_id):
    return client.post(
        f"/insurance/policies/{policy_id}/payment",
        json={"payment_method": "card", "payment_transaction_id": "pay_91"},
        headers=headers,
    )


def test_create_policy(client, customer):
    policy = buy(client, customer)
    assert policy["policy_number"].startswith("TI")
    assert policy["trip_duration"] == 10
    assert policy["number_of_travellers"] == 2
    assert policy["policy_status"] == "pending" and policy["payment_status"] == "pending"
    assert policy["travellers"][0]["date_of_birth"] == "1990-04-12"
    assert policy["add_ons"] == ["adventure_sports"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"travel_end_date": "2030-02-28"},
        {"disclaimer_accepted": False},
        {"travellers": []},
        {"plan_type": "cruise"},
    ],
)
def test_create_policy_validation(client, customer, overrides):
    r = client.post("/insurance/policies", json={**POLICY, **overrides}, headers=customer)
    assert r.status_code == 422


def test_payment_once(client, customer):
    policy = buy(client, customer)
    r = pay(client, customer, policy["id"])
    assert r.json()["payment_status"] == "paid"
    assert r.json()["paid_at"]
    assert pay(client, customer, policy["id"]).status_code == 409


def test_issue_requires_payment(client, customer, admin, sent_emails):
    policy = buy(client, customer)
    url = f"/admin/insurance/policies/{policy['id']}/status"
    assert client.post(url, json={"policy_status": "issued"}, headers=admin).status_code == 409

    pay(client, customer, policy["id"])
    r = client.post(url, json={"policy_status": "issued", "partner_policy_reference": "SG-7781"}, headers=admin)
    assert r.json()["policy_status"] == "issued"
    assert r.json()["partner_policy_reference"] == "SG-7781"
    assert sent_emails[-1]["subject"] == f"Travel Insurance Policy Issued - {policy['policy_number']}"
    assert "2030-03-01 to 2030-03-10" in sent_emails[-1]["html"]


def test_cancel_paid_policy_refunds_total(client, customer, admin, sent_emails):
    policy = buy(client, customer)
    pay(client, customer, policy["id"])
    r = client.post(
        f"/admin/insurance/policies/{policy['id']}/status", json={"policy_status": "cancelled"}, headers=admin
    )
    assert r.json()["policy_status"] == "cancelled"
    assert r.json()["payment_status"] == "refunded"
    assert sent_emails[-1]["subject"] == f"Travel Insurance Policy Cancelled - {policy['policy_number']}"

    summary = client.get("/refundable-balance", headers=customer).json()
    assert summary["balance_amount"] == pytest.approx(2649.0)
    assert summary["entries"][0]["reason"] == "policy_cancelled"

    again = client.post(
        f"/admin/insurance/policies/{policy['id']}/status", json={"policy_status": "cancelled"}, headers=admin
    )
    assert again.status_code == 409


def test_cancel_unpaid_policy(client, customer, admin):
    policy = buy(client, customer)
    r = client.post(
        f"/admin/insurance/policies/{policy['id']}/status", json={"policy_status": "cancelled"}, headers=admin
    )
    assert r.json()["payment_status"] == "pending"
    assert client.get("/refundable-balance", headers=customer).json()["balance_amount"] == 0.0


def test_claims_only_on_issued(client, customer, admin):
    policy = buy(client, customer)
    claim_url = f"/admin/insurance/policies/{policy['id']}/claim"
    claim = {"claim_status": "submitted", "claim_details": {"type": "baggage_loss", "amount": 15000}}
    assert client.post(claim_url, json=claim, headers=admin).status_code == 400

    pay(client, customer, policy["id"])
    client.post(f"/admin/insurance/policies/{policy['id']}/status", json={"policy_status": "issued"}, headers=admin)
    r = client.post(claim_url, json=claim, headers=admin)
    assert r.json()["has_claim"] == 1
    assert r.json()["claim_details"]["type"] == "baggage_loss"

    listing = client.get("/admin/insurance/policies", headers=admin).json()
    assert listing["summary"]["pending_claims"] == 1
    assert listing["summary"]["issued"] == 1


def test_customer_summary(client, customer, other_customer):
    first = buy(client, customer)
    buy(client, customer, premium_amount=1000.0, facilitator_fee=0)
    pay(client, customer, first["id"])

    mine = client.get("/insurance/policies", headers=customer).json()
    assert mine["summary"]["total"] == 2
    assert mine["summary"]["pending"] == 2
    assert mine["summary"]["total_premium_paid"] == pytest.approx(2649.0)

    detail = client.get(f"/insurance/policies/{first['id']}", headers=customer).json()
    assert detail["total_amount"] == pytest.approx(2649.0)
    assert client.get(f"/insurance/policies/{first['id']}", headers=other_customer).status_code == 404
    assert client.get("/insurance/policies", headers=other_customer).json()["summary"]["total"] == 0
