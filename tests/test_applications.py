import pytest

FOREX_CARD = {
    "service_type": "forex_card",
    "card_type": "multi_currency",
    "load_amount": 2000,
    "load_currency": "usd",
    "application_data": {"purpose": "travel", "destination": "Singapore"},
    "documents": [{"name": "passport.pdf", "path": "apps/passport.pdf", "document_type": "passport"}],
}

EDUCATION_LOAN = {
    "service_type": "education_loan",
    "application_data": {"university": "University of Toronto", "course": "MSc Data Science", "amount": 3_500_000},
}


def submit(client, headers, payload):
    r = client.post("/applications", json=payload, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()["application"]


def test_forex_card_records_lrs(client, customer):
    app = submit(client, customer, FOREX_CARD)
    assert app["application_status"] == "submitted"
    assert app["load_currency"] == "USD"
    assert app["usd_equivalent"] == pytest.approx(2000.0)
    assert app["documents"][0]["name"] == "passport.pdf"

    usage = client.get("/lrs/usage", headers=customer).json()
    assert usage["total_used"] == pytest.approx(2000.0)
    assert usage["entries"][0]["service_type"] == "forex_card"
    assert usage["entries"][0]["service_application_id"] == app["id"]


@pytest.mark.parametrize("missing", ["card_type", "load_amount", "load_currency"])
def test_forex_card_fields_required(client, customer, missing):
    payload = {k: v for k, v in FOREX_CARD.items() if k != missing}
    assert client.post("/applications", json=payload, headers=customer).status_code == 422


def test_forex_card_needs_kyc_but_loan_does_not(client, newbie):
    assert client.post("/applications", json=FOREX_CARD, headers=newbie).status_code == 403
    loan = submit(client, newbie, EDUCATION_LOAN)
    assert loan["usd_equivalent"] is None
    assert loan["application_data"]["course"] == "MSc Data Science"
    assert client.get("/lrs/usage", headers=newbie).json()["entries"] == []


def test_forex_card_over_lrs_limit(client, customer):
    r = client.post("/applications", json={**FOREX_CARD, "load_amount": 260_000}, headers=customer)
    assert r.status_code == 400


def test_customer_listing(client, customer, other_customer):
    card = submit(client, customer, FOREX_CARD)
    submit(client, customer, EDUCATION_LOAN)
    assert len(client.get("/applications", headers=customer).json()) == 2
    only_loans = client.get("/applications", params={"service_type": "education_loan"}, headers=customer).json()
    assert [a["service_type"] for a in only_loans] == ["education_loan"]
    assert client.get(f"/applications/{card['id']}", headers=other_customer).status_code == 404
    detail = client.get(f"/applications/{card['id']}", headers=customer).json()
    assert detail["tracking"]["status"] == "verification_in_progress"


def test_approve_sends_email_and_closes(client, customer, admin, sent_emails):
    app = submit(client, customer, FOREX_CARD)
    r = client.post(
        f"/admin/applications/{app['id']}/review",
        json={"status": "under_review", "admin_notes": "Checking passport"},
        headers=admin,
    )
    assert r.json()["application_status"] == "under_review"
    assert sent_emails[-1]["subject"] == "Forex Card Application Under Review - RBP FINIVIS"

    r = client.post(f"/admin/applications/{app['id']}/review", json={"status": "approved"}, headers=admin)
    assert r.json()["approved_at"]
    assert r.json()["admin_notes"] == "Checking passport"
    assert sent_emails[-1]["subject"] == "Forex Card Application Approved - RBP FINIVIS"
    assert sent_emails[-1]["to"] == ["priya@example.com"]

    again = client.post(f"/admin/applications/{app['id']}/review", json={"status": "rejected", "rejection_reason": "x"}, headers=admin)
    assert again.status_code == 409


def test_reject_needs_reason(client, customer, admin, sent_emails):
    app = submit(client, customer, EDUCATION_LOAN)
    r = client.post(f"/admin/applications/{app['id']}/review", json={"status": "rejected"}, headers=admin)
    assert r.status_code == 400

    r = client.post(
        f"/admin/applications/{app['id']}/review",
        json={"status": "rejected", "rejection_reason": "Admission letter missing"},
        headers=admin,
    )
    assert r.json()["application_status"] == "rejected"
    assert sent_emails[-1]["subject"] == "Education Loan Application Update - RBP FINIVIS"
    assert "Admission letter missing" in sent_emails[-1]["html"]


def test_action_required_needs_text(client, customer, admin):
    app = submit(client, customer, EDUCATION_LOAN)
    r = client.post(f"/admin/applications/{app['id']}/review", json={"status": "action_required"}, headers=admin)
    assert r.status_code == 400
    r = client.post(f"/admin/applications/{app['id']}/review", json={"status": "closed"}, headers=admin)
    assert r.status_code == 422


def test_reupload_then_resubmit(client, customer, admin, sent_emails):
    app = submit(client, customer, FOREX_CARD)
    docs = {"documents": [{"name": "visa.pdf", "path": "apps/visa.pdf"}]}

    # nothing was asked for yet
    assert client.post(f"/applications/{app['id']}/documents", json=docs, headers=customer).status_code == 409

    r = client.post(
        f"/admin/applications/{app['id']}/reupload-request", json={"reason": "Upload your visa"}, headers=admin
    )
    assert r.json()["application_status"] == "action_required"
    assert sent_emails[-1]["subject"] == "Action Required: Forex Card Application - RBP FINIVIS"
    assert "Upload your visa" in sent_emails[-1]["html"]

    r = client.post(f"/applications/{app['id']}/documents", json=docs, headers=customer)
    assert r.json()["application_status"] == "documents_resubmitted"
    assert [d["name"] for d in r.json()["documents"]] == ["passport.pdf", "visa.pdf"]

    actions = [log["action"] for log in client.get("/admin/audit-logs", headers=admin).json()]
    assert "application_reupload_requested" in actions


def test_admin_filters(client, customer, admin):
    submit(client, customer, FOREX_CARD)
    loan = submit(client, customer, EDUCATION_LOAN)
    listed = client.get("/admin/applications", params={"service_type": "education_loan"}, headers=admin).json()
    assert [a["id"] for a in listed] == [loan["id"]]
    detail = client.get(f"/admin/applications/{loan['id']}", headers=admin).json()
    assert detail["customer"]["full_name"]
    assert "api_token" not in detail["customer"]
    assert client.get("/admin/applications", headers=customer).status_code == 403
