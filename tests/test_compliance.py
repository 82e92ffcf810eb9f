from datetime import date

import pytest

from finivis.services import aml, lrs
from finivis.services.tds import calculate_tds


def test_financial_year_starts_in_april():
    assert lrs.current_financial_year(date(2025, 3, 31)) == "2024-25"
    assert lrs.current_financial_year(date(2025, 4, 1)) == "2025-26"


def test_lrs_limit_and_warning(db, users):
    uid = users["customer"]
    lrs.record_usage(db, uid, "remittance", 200_000, "education")
    usage = lrs.get_lrs_usage(db, uid)
    assert usage.total_used == 200_000
    assert usage.remaining_limit == 50_000
    assert usage.usage_percentage == 80.0

    warn = lrs.check_limit(usage, 30_000)
    assert warn.allowed and "92.0%" in warn.message
    assert not lrs.check_limit(usage, 50_001).allowed
    assert lrs.check_limit(usage, 1_000).message is None


def test_record_usage_rejects_unknown_service(db, users):
    with pytest.raises(ValueError):
        lrs.record_usage(db, users["customer"], "lottery", 10, "other")


def test_tds_below_threshold():
    r = calculate_tds(500_000, "travel", "buy", 0)
    assert not r.tds_applicable
    assert r.remaining_threshold == 700_000


def test_tds_crossing_threshold_taxes_excess_only():
    r = calculate_tds(300_000, "travel", "buy", 600_000)
    assert r.tds_amount == 40_000.0  # 20% of 200,000
    assert r.tds_rate == 20.0


def test_tds_after_threshold_taxes_everything():
    r = calculate_tds(100_000, "education_loan", "buy", 800_000)
    assert r.tds_amount == 500.0
    assert r.tds_rate_name == "Education (with loan)"


def test_tds_never_on_sell():
    r = calculate_tds(5_000_000, "travel", "sell", 5_000_000)
    assert r.tds_amount == 0 and r.tds_rate_name == "N/A"


def test_kyc_document_flow(client, newbie, admin, db, users, sent_emails):
    r = client.post(
        "/kyc/documents", json={"document_type": "pan_card", "file_path": "kyc/rohan/pan.pdf"}, headers=newbie
    )
    assert r.status_code == 201
    pan_id = r.json()["id"]
    r = client.post(
        "/kyc/documents", json={"document_type": "passport", "file_path": "kyc/rohan/pp.pdf"}, headers=newbie
    )
    passport_id = r.json()["id"]
    assert client.get("/kyc/status", headers=newbie).json()["kyc_status"] == "submitted"

    pending = client.get("/admin/kyc/documents", headers=admin).json()
    assert {d["id"] for d in pending} == {pan_id, passport_id}

    r = client.post(f"/admin/kyc/documents/{pan_id}/review", json={"status": "verified"}, headers=admin)
    assert r.json()["kyc_status"] == "submitted"
    r = client.post(f"/admin/kyc/documents/{passport_id}/review", json={"status": "verified"}, headers=admin)
    assert r.json()["kyc_status"] == "verified"
    assert client.get("/kyc/status", headers=newbie).json()["verified"] is True
    assert sent_emails[-1]["subject"] == "KYC Verification Approved - RBP FINIVIS"
    assert sent_emails[-1]["to"] == ["rohan@example.com"]


def test_kyc_rejection_needs_notes_and_emails(client, newbie, admin, sent_emails):
    doc = client.post(
        "/kyc/documents", json={"document_type": "aadhaar", "file_path": "kyc/a.pdf"}, headers=newbie
    ).json()
    r = client.post(f"/admin/kyc/documents/{doc['id']}/review", json={"status": "rejected"}, headers=admin)
    assert r.status_code == 400
    r = client.post(
        f"/admin/kyc/documents/{doc['id']}/review",
        json={"status": "rejected", "notes": "Image is blurred"},
        headers=admin,
    )
    assert r.json()["kyc_status"] == "rejected"
    assert "Image is blurred" in sent_emails[-1]["html"]


def test_kyc_review_is_admin_only(client, customer):
    r = client.get("/admin/kyc/documents", headers=customer)
    assert r.status_code == 403
    assert r.json()["detail"] == "Admin access required"


def test_lrs_and_tds_endpoints(client, customer):
    usage = client.get("/lrs/usage", headers=customer).json()
    assert usage["total_used"] == 0 and usage["entries"] == []
    check = client.post("/lrs/check", json={"amount_usd": 260_000}, headers=customer).json()
    assert check["allowed"] is False
    tds = client.post(
        "/tds/calculate", json={"amount_inr": 900_000, "purpose": "medical"}, headers=customer
    ).json()
    assert tds["tds_amount"] == 10_000.0  # 5% of 200,000


def test_admin_lrs_tracker(client, admin, customer, db, users):
    lrs.record_usage(db, users["customer"], "remittance", 150_000, "education")
    lrs.record_usage(db, users["customer"], "currency_exchange", 60_000, "travel")
    lrs.record_usage(db, users["other"], "forex_card", 50_000, "travel")

    r = client.get("/admin/lrs", headers=admin)
    assert r.status_code == 200
    body = r.json()
    assert body["financial_year"] == lrs.current_financial_year()
    heaviest, lighter = body["users"]
    assert heaviest["email"] == "priya@example.com"
    assert heaviest["total_used"] == 210_000
    assert heaviest["remaining_limit"] == 40_000
    assert heaviest["usage_percentage"] == 84.0
    assert heaviest["transaction_count"] == 2
    assert heaviest["last_transaction"] is not None
    assert lighter["full_name"] == "Anita Rao"
    assert body["stats"] == {
        "total_users": 2,
        "total_volume": 260_000,
        "average_usage": 130_000,
        "high_usage_users": 1,
    }
    assert len(body["transactions"]) == 3

    assert client.get("/admin/lrs", params={"financial_year": "2019-20"}, headers=admin).json()["users"] == []
    assert client.get("/admin/lrs", headers=customer).status_code == 403


def test_nearing_lrs_limit_raises_one_aml_flag(client, admin, db, users):
    uid = users["customer"]
    lrs.record_usage(db, uid, "remittance", 200_000, "education")
    assert client.get("/admin/aml-flags", headers=admin).json() == []

    lrs.record_usage(db, uid, "remittance", 30_000, "education", transaction_id=7)
    lrs.record_usage(db, uid, "remittance", 5_000, "education")

    flags = client.get("/admin/aml-flags", headers=admin).json()
    assert len(flags) == 1
    flag = flags[0]
    assert flag["flag_type"] == "limit_near"
    assert flag["severity"] == "high"
    assert flag["transaction_id"] == 7
    assert "92.0%" in flag["flag_reason"]
    assert flag["profile"] == {"full_name": "Priya Sharma", "email": "priya@example.com"}


def test_aml_flag_review(client, admin, customer, db, users):
    high = aml.raise_flag(db, users["customer"], "high_value", "Single purchase of USD 45,000", "high")
    aml.raise_flag(db, users["other"], "repeated", "Five orders in one day", "low")

    assert len(client.get("/admin/aml-flags", params={"severity": "high"}, headers=admin).json()) == 1
    assert client.get("/admin/aml-flags", params={"status": "bogus"}, headers=admin).status_code == 400

    r = client.post(
        f"/admin/aml-flags/{high}/review",
        json={"status": "escalated", "review_notes": "Source of funds unclear"},
        headers=admin,
    )
    assert r.status_code == 200
    reviewed = r.json()
    assert reviewed["status"] == "escalated"
    assert reviewed["review_notes"] == "Source of funds unclear"
    assert reviewed["reviewed_by"] == users["admin"]
    assert reviewed["reviewed_at"]

    pending = client.get("/admin/aml-flags", headers=admin).json()
    assert [f["flag_type"] for f in pending] == ["repeated"]
    everything = client.get("/admin/aml-flags", params={"status": "all"}, headers=admin).json()
    assert len(everything) == 2

    logs = client.get("/admin/audit-logs", params={"entity_type": "aml_flag"}, headers=admin).json()
    assert logs[0]["action"] == "aml_flag_escalated"
    assert logs[0]["details"]["previous_status"] == "pending"

    bad = client.post(f"/admin/aml-flags/{high}/review", json={"status": "pending"}, headers=admin)
    assert bad.status_code == 422
    assert client.post("/admin/aml-flags/999/review", json={"status": "cleared"}, headers=admin).status_code == 404
    assert client.get("/admin/aml-flags", headers=customer).status_code == 403
