import inspect

import httpx
import pytest

from finivis.core.errors import DomainError
from finivis.services.http_client import HttpError, get_json
from finivis.services.rates.cache_service import CentralRateCacheService
from finivis.services.rates.conversion import compute_inr_equivalent, compute_usd_equivalent
from finivis.services.rates.providers import ExternalHTTPRateProvider, StaticRateProvider


@pytest.fixture
def svc(settings):
    settings.init_post_load()
    return CentralRateCacheService(provider=StaticRateProvider(), settings=settings)


def test_static_rates_and_sell_spread(svc):
    assert svc.get_rate("usd") == 84.0
    assert svc.get_rate("INR") == 1.0
    assert svc.get_sell_rate("USD") == pytest.approx(84.504)


def test_unsupported_currency(svc):
    with pytest.raises(DomainError):
        svc.get_rate("XYZ")


def test_override_wins_then_clears(svc):
    svc.set_override("usd", 90.0, 60)
    assert svc.get_rate("USD") == 90.0
    assert "USD" in svc.list_overrides()
    assert svc.clear_override("USD") is True
    assert svc.get_rate("USD") == 84.0
    assert svc.clear_override("USD") is False


def test_override_validation(svc):
    with pytest.raises(ValueError):
        svc.set_override("XYZ", 1.0, 60)
    with pytest.raises(ValueError):
        svc.set_override("USD", -1.0, 60)


def test_list_rates_board(svc):
    board = svc.list_rates()
    assert board["base"] == "INR"
    usd = next(r for r in board["rates"] if r["currency"] == "USD")
    assert usd == {
        "currency": "USD",
        "name": "US Dollar",
        "buy_rate": 84.0,
        "sell_rate": 84.504,
        "overridden": False,
    }
    assert len(board["rates"]) == 16


def test_conversions(svc):
    assert compute_inr_equivalent(100, "eur", svc).inr_equivalent == 9150.0
    assert compute_inr_equivalent(100, "INR", svc).rate == 1.0
    # 100 EUR = 9150 INR = 108.93 USD
    assert compute_usd_equivalent(100, "EUR", svc) == pytest.approx(108.93)


def test_external_provider_inverts_feed(monkeypatch):
    from finivis.services.rates import providers

    monkeypatch.setattr(
        providers,
        "get_json",
        lambda url, timeout=None, **kw: {"rates": {"USD": 0.0125, "EUR": 0.01}},
    )
    p = ExternalHTTPRateProvider("https://rates.invalid/latest/INR", 1.0)
    assert p.get_rate("USD") == pytest.approx(80.0)
    assert p.get_rate("EUR") == pytest.approx(100.0)


def test_external_provider_degrades_to_static(monkeypatch):
    from finivis.services.rates import providers

    def boom(url, timeout=None, **kw):
        raise providers.HttpError("down")

    monkeypatch.setattr(providers, "get_json", boom)
    p = ExternalHTTPRateProvider("https://rates.invalid/latest/INR", 1.0)
    assert p.get_rate("USD") == 84.0


def test_rates_endpoints(client):
    board = client.get("/rates").json()
    assert board["provider"] == "static"
    r = client.get("/rates/convert", params={"amount": 10, "currency": "GBP"})
    assert r.json()["inr_equivalent"] == 1072.0


def test_overrides_require_admin(client, customer, admin):
    payload = {"currency": "AED", "rate": 23.5, "ttl_seconds": 300}
    assert client.post("/rates/overrides", json=payload, headers=customer).status_code == 403
    r = client.post("/rates/overrides", json=payload, headers=admin)
    assert r.status_code == 200
    assert r.json()["override"]["rate"] == 23.5

    aed = next(x for x in client.get("/rates").json()["rates"] if x["currency"] == "AED")
    assert aed["buy_rate"] == 23.5
    assert aed["overridden"] is True

    assert client.delete("/rates/overrides/aed", headers=admin).status_code == 200
    assert client.delete("/rates/overrides/aed", headers=admin).status_code == 404


def test_overrides_disabled(client, app, admin):
    app.state.settings.enable_rate_override = False
    r = client.get("/rates/overrides", headers=admin)
    assert r.status_code == 403


def test_get_json_retries_server_errors():
    calls = []

    def handler(request):
        calls.append(request.url.path)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={"rates": {"USD": 0.012}})

    data = get_json("https://rates.invalid/latest/INR", backoff=0, transport=httpx.MockTransport(handler))
    assert data["rates"]["USD"] == 0.012
    assert len(calls) == 3


def test_get_json_gives_up():
    calls = []

    def not_found(request):
        calls.append(1)
        return httpx.Response(404)

    with pytest.raises(HttpError):
        get_json("https://rates.invalid/x", backoff=0, transport=httpx.MockTransport(not_found))
    assert len(calls) == 1

    with pytest.raises(HttpError):
        get_json(
            "https://rates.invalid/x",
            retries=1,
            backoff=0,
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>")),
        )


@pytest.mark.parametrize(
    "method, path",
    [
        ("GET", "/rates"),
        ("GET", "/rates/convert"),
        ("POST", "/pricing/calculate"),
        ("POST", "/exchange-orders/quote"),
        ("POST", "/exchange-orders"),
        ("POST", "/remittances/quote"),
        ("POST", "/remittances"),
        ("POST", "/applications"),
    ],
)
def test_rate_fetching_routes_run_in_threadpool(app, method, path):
    # the external feed is fetched with a blocking client
    route = next(r for r in app.routes if getattr(r, "path", None) == path and method in r.methods)
    assert not inspect.iscoroutinefunction(route.endpoint)
