"""Smoke script for manual rate overrides.

Sequence:
 1. Fetch the baseline USD rate from the static provider.
 2. Set an override with a short TTL and read it back.
 3. Clear it and confirm the provider rate is served again.
 4. Set a 1s override and let it expire.
"""

from pprint import pprint
from time import sleep

from finivis.core.config import Settings
from finivis.services.rates.cache_service import CentralRateCacheService
from finivis.services.rates.providers import StaticRateProvider


def run():
    svc = CentralRateCacheService(provider=StaticRateProvider(), settings=Settings(exchange_rate_provider="static"))
    output = {}

    output["baseline"] = svc.get_rate("USD")
    output["baseline_sell"] = svc.get_sell_rate("USD")

    svc.set_override("USD", rate=99.99, ttl_seconds=30)
    output["override_active"] = svc.get_rate("USD")
    output["overrides_list_after_set"] = svc.list_overrides()

    svc.clear_override("USD")
    output["after_clear"] = svc.get_rate("USD")

    svc.set_override("USD", rate=88.88, ttl_seconds=1)
    output["short_override_active"] = svc.get_rate("USD")
    sleep(1.2)
    output["after_expiry"] = svc.get_rate("USD")

    pprint(output)


if __name__ == "__main__":
    run()
