from datetime import datetime, timedelta, timezone

import pytest

from finivis.services.exchange_orders import is_rate_locked

BUY_USD = {
    "exchange_type": "buy",
    "product_type": "Currency Note",
    "currency": "USD",
    "amount": 1000,
    "purpose": "travel",
    "city": "Chandigarh",
    "delivery_address": "House 12, Sector 17",
    "lrs_declaration_accepted": True,
}


def create_order(client, headers, **overrides):
    r = client.post("/exchange-orders", json={**BUY_USD, **overrides}, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()["order"]


def pay(client, headers, order_id, option="advance"):
    r = client.post(
        f"/exchange-orders/{order_id}/payment",
        json={"payment_option": option, "payment_method": "upi", "reference": "UTR0001"},
        headers=headers,
    )
    assert r.status_code == 200, r.text
    return r.json()


def test_quote(client, customer):
    q = client.post("/exchange-orders/quote", json={"currency": "usd", "amount": 1000}, headers=customer).json()
    # 84,000 INR falls in the 1.5% Currency Note slab
    assert q["exchange_rate"] == pytest.approx(85.26)
    assert q["total_amount"] == pytest.approx(85260.0)
    assert q["advance_amount"] == pytest.approx(8526.0)
    assert q["balance_amount"] == pytest.approx(76734.0)
    assert q["tds"]["tds_applicable"] is False
    assert q["lrs"]["allowed"] is True


def test_sell_quote_takes_markup_off(client, customer):
    q = client.post(
        "/exchange-orders/quote", json={"exchange_type": "sell", "currency": "USD", "amount": 1000}, headers=customer
    ).json()
    assert q["exchange_rate"] == pytest.approx(82.74)


def test_create_order_records_lrs(client, customer):
    order = create_order(client, customer)
    assert order["order_number"].startswith("CX")
    assert order["status"] == "draft"
    assert order["advance_amount"] == pytest.approx(8526.0)
    usage = client.get("/lrs/usage", headers=customer).json()
    assert usage["total_used"] == pytest.approx(1000.0)
    assert usage["entries"][0]["currency_exchange_order_id"] == order["id"]


def test_create_requires_kyc(client, newbie):
    r = client.post("/exchange-orders", json=BUY_USD, headers=newbie)
    assert r.status_code == 403
    assert "KYC" in r.json()["detail"]


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"city": "Delhi"}, "150 km"),
        ({"denomination_breakdown": {"100": 5}}, "Denominations add up to 500"),
        ({"lrs_declaration_accepted": False}, "LRS declaration"),
    ],
)
def test_create_rejections(client, customer, overrides, message):
    r = client.post("/exchange-orders", json={**BUY_USD, **overrides}, headers=customer)
    assert r.status_code == 400
    assert message in r.json()["detail"]


def test_delivery_needs_address(client, customer):
    r = client.post("/exchange-orders", json={**BUY_USD, "delivery_address": None}, headers=customer)
    assert r.status_code == 422


def test_pickup_skips_city_check(client, customer):
    order = create_order(client, customer, city="Delhi", delivery_preference="pickup", delivery_address=None)
    assert order["delivery_preference"] == "pickup"


def test_sell_order_has_no_advance(client, customer):
    order = create_order(
        client,
        customer,
        exchange_type="sell",
        settlement_method="bank_transfer",
        settlement_account_number="123456789012",
        settlement_ifsc="HDFC0001234",
    )
    assert order["from_currency"] == "USD" and order["to_currency"] == "INR"
    assert order["advance_amount"] == 0
    r = client.post(
        f"/exchange-orders/{order['id']}/payment",
        json={"payment_option": "advance", "payment_method": "upi"},
        headers=customer,
    )
    assert r.status_code == 400


def test_orders_are_owner_scoped(client, customer, other_customer):
    order = create_order(client, customer)
    assert client.get(f"/exchange-orders/{order['id']}", headers=other_customer).status_code == 404
    assert client.get("/exchange-orders", headers=other_customer).json() == []


def test_advance_payment_locks_rate(client, customer):
    order = create_order(client, customer)
    result = pay(client, customer, order["id"])
    assert result["order"]["status"] == "advance_paid"
    assert result["order"]["advance_paid"] == 0  # awaiting desk confirmation
    assert result["rate_lock"]["locked"] is True
    assert result["rate_lock"]["seconds_remaining"] > 23 * 3600

    again = client.post(
        f"/exchange-orders/{order['id']}/payment",
        json={"payment_option": "full", "payment_method": "upi"},
        headers=customer,
    )
    assert again.status_code == 409


def test_rate_lock_compared_at_read_time():
    locked_at = datetime(2025, 5, 1, 10, 0, tzinfo=timezone.utc)
    order = {
        "rate_locked_at": locked_at.isoformat(),
        "rate_expires_at": (locked_at + timedelta(minutes=30)).isoformat(),
    }
    assert is_rate_locked(order, locked_at + timedelta(minutes=29))
    assert not is_rate_locked(order, locked_at + timedelta(minutes=31))
    assert not is_rate_locked({})


def test_full_advance_lifecycle(client, customer, admin, sent_emails):
    order = create_order(client, customer)
    oid = order["id"]
    pay(client, customer, oid)

    r = client.post(f"/admin/exchange-orders/{oid}/confirm-advance", headers=admin)
    assert r.json()["advance_paid"] == 1
    assert sent_emails[-1]["subject"] == f"Advance Confirmed - {order['order_number']}"

    r = client.post(
        f"/exchange-orders/{oid}/balance-payment", json={"payment_method": "neft", "reference": "N1"}, headers=customer
    )
    assert r.json()["balance_payment_method"] == "neft"

    r = client.post(
        f"/admin/exchange-orders/{oid}/schedule",
        json={"delivery_date": "2030-01-15", "delivery_time_slot": "10:00-12:00"},
        headers=admin,
    )
    assert r.json()["status"] == "scheduled"
    assert r.json()["delivery_date"] == "2030-01-15"

    r = client.post(f"/admin/exchange-orders/{oid}/out-for-delivery", headers=admin)
    assert r.json()["status"] == "out_for_delivery"

    # balance still unconfirmed
    assert client.post(f"/admin/exchange-orders/{oid}/deliver", headers=admin).status_code == 409

    r = client.post(f"/admin/exchange-orders/{oid}/confirm-balance", headers=admin)
    assert r.json()["balance_paid"] == 1
    assert r.json()["status"] == "out_for_delivery"

    r = client.post(f"/admin/exchange-orders/{oid}/deliver", headers=admin)
    assert r.json()["status"] == "delivered"
    assert sent_emails[-1]["subject"] == f"Delivered - {order['order_number']}"

    detail = client.get(f"/exchange-orders/{oid}", headers=customer).json()
    assert detail["amount_received"] == pytest.approx(85260.0)
    tracking = client.get(f"/exchange-orders/{oid}/tracking", headers=customer).json()
    assert tracking["status"] == "completed"

    actions = [log["action"] for log in client.get("/admin/audit-logs", headers=admin).json()]
    assert actions[0] == "exchange_deliver"
    assert "exchange_confirm_advance" in actions


def test_full_payment_confirmation_settles_both(client, customer, admin):
    order = create_order(client, customer)
    result = pay(client, customer, order["id"], option="full")
    assert result["order"]["status"] == "payment_received"
    assert result["order"]["balance_amount"] == 0

    r = client.post(f"/admin/exchange-orders/{order['id']}/confirm-advance", headers=admin)
    assert r.json()["advance_paid"] == 1 and r.json()["balance_paid"] == 1
    assert client.post(f"/admin/exchange-orders/{order['id']}/confirm-advance", headers=admin).status_code == 409


def test_confirm_advance_needs_submitted_payment(client, customer, admin):
    order = create_order(client, customer)
    r = client.post(f"/admin/exchange-orders/{order['id']}/confirm-advance", headers=admin)
    assert r.status_code == 409


def test_reject_refunds_confirmed_advance(client, customer, admin):
    order = create_order(client, customer)
    pay(client, customer, order["id"])
    client.post(f"/admin/exchange-orders/{order['id']}/confirm-advance", headers=admin)

    assert client.post(f"/admin/exchange-orders/{order['id']}/reject", json={"reason": ""}, headers=admin).status_code == 422
    r = client.post(
        f"/admin/exchange-orders/{order['id']}/reject", json={"reason": "Passport expired"}, headers=admin
    )
    body = r.json()
    assert body["status"] == "rejected"
    assert body["admin_rejection_reason"] == "Passport expired"
    assert body["refund_status"] == "credited"
    assert body["refund_amount"] == pytest.approx(8526.0)

    summary = client.get("/refundable-balance", headers=customer).json()
    assert summary["balance_amount"] == pytest.approx(8526.0)
    assert summary["entries"][0]["reason"] == "order_rejected"
    assert summary["entries"][0]["source_reference"] == order["order_number"]

    # terminal: a second close is refused and nothing is credited twice
    assert client.post(f"/admin/exchange-orders/{order['id']}/cancel", headers=admin).status_code == 409
    assert client.get("/refundable-balance", headers=customer).json()["balance_amount"] == pytest.approx(8526.0)


def test_cancel_unpaid_order_credits_nothing(client, customer, admin):
    order = create_order(client, customer)
    pay(client, customer, order["id"])  # submitted but never confirmed
    r = client.post(f"/admin/exchange-orders/{order['id']}/cancel", json={"reason": "Customer request"}, headers=admin)
    assert r.json()["status"] == "cancelled"
    assert r.json()["refund_amount"] is None
    assert client.get("/refundable-balance", headers=customer).json()["balance_amount"] == 0.0


def test_document_verification(client, customer, admin):
    order = create_order(client, customer)
    oid = order["id"]
    r = client.post(f"/admin/exchange-orders/{oid}/verify-documents", json={"status": "verified"}, headers=admin)
    assert r.status_code == 400  # nothing attached yet

    client.post(
        f"/exchange-orders/{oid}/documents",
        json={"documents": [{"name": "passport.pdf", "path": "orders/1/passport.pdf"}]},
        headers=customer,
    )
    r = client.post(f"/admin/exchange-orders/{oid}/verify-documents", json={"status": "rejected"}, headers=admin)
    assert r.status_code == 400
    r = client.post(
        f"/admin/exchange-orders/{oid}/verify-documents",
        json={"status": "rejected", "notes": "Unreadable"},
        headers=admin,
    )
    assert r.json()["status"] == "documents_rejected"

    r = client.post(
        f"/exchange-orders/{oid}/documents",
        json={"documents": [{"name": "passport2.pdf", "path": "orders/1/passport2.pdf"}]},
        headers=customer,
    )
    assert r.json()["status"] == "pending"
    assert len(r.json()["documents"]) == 2

    r = client.post(f"/admin/exchange-orders/{oid}/verify-documents", json={"status": "verified"}, headers=admin)
    assert r.json()["status"] == "documents_verified"


def test_admin_list_counters_and_notes(client, customer, admin):
    first = create_order(client, customer)
    second = create_order(client, customer)
    pay(client, customer, first["id"])
    pay(client, customer, second["id"])
    client.post(f"/admin/exchange-orders/{second['id']}/confirm-advance", headers=admin)

    listing = client.get("/admin/exchange-orders", headers=admin).json()
    assert listing["counters"]["pending_advance"] == 1
    assert listing["counters"]["awaiting_balance"] == 1
    assert len(listing["orders"]) == 2

    r = client.put(f"/admin/exchange-orders/{first['id']}/notes", json={"notes": "Called customer"}, headers=admin)
    assert r.json()["notes"] == "Called customer"

    r = client.post(f"/admin/exchange-orders/{first['id']}/approve", headers=admin)
    assert r.json()["compliance_status"] == "approved"
    assert client.post(f"/admin/exchange-orders/{first['id']}/approve", headers=admin).status_code == 409


def test_admin_routes_reject_customers(client, customer):
    assert client.get("/admin/exchange-orders", headers=customer).status_code == 403
    assert client.get("/admin/exchange-orders").status_code == 401


def test_admin_detail_shows_customer_without_token(client, customer, admin):
    order = create_order(client, customer)
    detail = client.get(f"/admin/exchange-orders/{order['id']}", headers=admin).json()
    assert detail["customer"]["email"] == "priya@example.com"
    assert "api_token" not in detail["customer"]
    assert detail["rate_lock"]["locked"] is False
    assert detail["amount_received"] == 0
    assert detail["advance_paid"] is False
