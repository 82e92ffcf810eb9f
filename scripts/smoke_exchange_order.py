import json
import os
import tempfile

from fastapi.testclient import TestClient

from finivis.core.config import Settings
from finivis.db.dal import Database
from finivis.main import create_app

"""Smoke run of a buy-forex order against a throwaway database.

Scenario:
1. Quote and book USD 1000 in notes for delivery in Chandigarh
2. Pay the advance (rate gets locked)
3. Desk confirms the advance, schedules and delivers after the balance
4. Print the order, its tracking view and the audit trail
No email API key is set, so notifications are logged and skipped.
"""


def run():
    with tempfile.TemporaryDirectory() as d:
        settings = Settings(db_path=os.path.join(d, "smoke.db"), exchange_rate_provider="static")
        app = create_app(settings_override=settings)
        db = Database(settings.db_path)
        db.create_profile("smoke@example.com", full_name="Smoke Customer", api_token="cust", kyc_status="verified")
        desk = db.create_profile("desk@example.com", full_name="Desk", api_token="desk")
        db.add_role(desk, "forex_admin")
        customer = {"Authorization": "Bearer cust"}
        admin = {"Authorization": "Bearer desk"}
        client = TestClient(app)

        results = {}
        body = {
            "currency": "USD",
            "amount": 1000,
            "product_type": "Currency Note",
            "purpose": "travel",
            "city": "Chandigarh",
            "delivery_address": "House 12, Sector 17",
            "lrs_declaration_accepted": True,
        }
        results["quote"] = client.post("/exchange-orders/quote", json=body, headers=customer).json()
        order = client.post("/exchange-orders", json=body, headers=customer).json()["order"]
        oid = order["id"]
        results["payment"] = client.post(
            f"/exchange-orders/{oid}/payment",
            json={"payment_option": "advance", "payment_method": "upi", "reference": "UTR1"},
            headers=customer,
        ).json()["rate_lock"]

        client.post(f"/admin/exchange-orders/{oid}/confirm-advance", headers=admin)
        client.post(f"/exchange-orders/{oid}/balance-payment", json={"payment_method": "neft"}, headers=customer)
        client.post(f"/admin/exchange-orders/{oid}/confirm-balance", headers=admin)
        client.post(f"/admin/exchange-orders/{oid}/schedule", json={"delivery_date": "2030-01-15"}, headers=admin)
        client.post(f"/admin/exchange-orders/{oid}/out-for-delivery", headers=admin)
        deliver = client.post(f"/admin/exchange-orders/{oid}/deliver", headers=admin)
        results["deliver_status"] = deliver.status_code
        results["order"] = client.get(f"/exchange-orders/{oid}", headers=customer).json()
        results["tracking"] = client.get(f"/exchange-orders/{oid}/tracking", headers=customer).json()
        results["audit"] = [log["action"] for log in client.get("/admin/audit-logs", headers=admin).json()]
        print(json.dumps(results, indent=2, default=str))


if __name__ == "__main__":
    run()
