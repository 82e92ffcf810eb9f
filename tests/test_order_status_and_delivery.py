from finivis.services.delivery import (
    MAX_DELIVERY_RADIUS_KM,
    get_eligible_cities,
    search_cities,
    validate_city_distance,
)
from finivis.services.order_status import (
    ORDER_STATUS_FLOW,
    can_make_payment,
    can_upload_documents,
    describe,
    get_next_action,
    normalize_status,
)


def test_normalize_service_statuses():
    assert normalize_status("advance_paid") == "payment_received"
    assert normalize_status("out_for_delivery") == "processing"
    assert normalize_status("payment_confirmed") == "payment_received"
    assert normalize_status("documents_rejected") == "verification_failed"
    assert normalize_status("issued") == "completed"
    assert normalize_status("DELIVERED") == "completed"


def test_unknown_and_empty_statuses_are_created():
    assert normalize_status(None) == "created"
    assert normalize_status("") == "created"
    assert normalize_status("teleported") == "created"


def test_next_actions():
    assert get_next_action("verified")["action"] == "make_payment"
    assert get_next_action("rejected")["label"] == "Re-Apply"
    assert get_next_action("nonsense")["action"] == "contact"
    assert can_make_payment("payment_pending")
    assert not can_make_payment("processing")
    assert can_upload_documents("verification_failed")


def test_describe_off_flow_status():
    view = describe("cancelled")
    assert view["status"] == "cancelled"
    assert view["step"] is None
    assert view["total_steps"] == len(ORDER_STATUS_FLOW)


def test_tracking_endpoints(client):
    flow = client.get("/order-status/flow").json()
    assert [s["status"] for s in flow] == ORDER_STATUS_FLOW
    view = client.get("/order-status/balance_paid").json()
    assert view["label"] == "Payment Received"


def test_city_validation():
    ok = validate_city_distance(" chandigarh ")
    assert ok.is_valid and ok.distance_km == 5
    far = validate_city_distance("Delhi")
    assert not far.is_valid and far.distance_km is None
    assert not validate_city_distance("").is_valid


def test_city_search():
    assert len(search_cities("a")) == 20  # short query -> picker list
    matches = search_cities("himachal")
    assert matches[0].name == "Baddi"
    assert all(m.state == "Himachal Pradesh" for m in matches)


def test_eligible_cities_sorted_within_radius():
    cities = get_eligible_cities()
    assert cities[0].name == "Panchkula"
    assert all(c.distance_km <= MAX_DELIVERY_RADIUS_KM for c in cities)
    distances = [c.distance_km for c in cities]
    assert distances == sorted(distances)


def test_delivery_endpoints(client):
    r = client.get("/delivery/validate", params={"city": "Ludhiana"})
    assert r.json()["is_valid"] is True
    assert r.json()["distance_km"] == 100
    assert client.get("/delivery/cities", params={"q": "mo"}).json()[0]["name"] == "Mohali"
    assert client.get("/delivery/cities/eligible").json()["radius_km"] == 150
