from decimal import Decimal
from types import SimpleNamespace

import httpx
import pytest

from app.models.enums import ServiceLevel
from app.services.errors import ProviderUnavailable
from app.services.providers import afs, fx_ecb, shipentegra, usitc
from app.services.providers.http_client import CircuitBreaker, ProviderPolicy


def fresh_policy():
    return ProviderPolicy(breaker=CircuitBreaker())


SHIPENTEGRA_PRICES = {
    "status": "success",
    "data": {
        "prices": [
            {
                "serviceName": "shipentegra-eco",
                "clearServiceName": "ShipEntegra Eco",
                "serviceType": "ECO",
                "cargoPrice": 8.5,
                "fuelCost": 1.2,
                "additionalFee": 0,
                "additionalDescription": "Delivery in 8-12 business days",
            },
            {
                "serviceName": "ups-express",
                "clearServiceName": "UPS Express",
                "cargoPrice": 21.4,
                "fuelCost": 3.05,
                "additionalFee": 0.5,
            },
            {
                "serviceName": "shipentegra-plus",
                "clearServiceName": "ShipEntegra Plus",
                "cargoPrice": 12,
                "fuelCost": 0,
            },
        ]
    },
}


def shipentegra_provider(monkeypatch, responses):
    calls = []

    async def fake_post_json(url, payload, headers=None, policy=None):
        calls.append((url, payload, headers))
        response = responses[url.rsplit("/", 1)[-1]]
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(shipentegra, "post_json", fake_post_json)
    monkeypatch.setattr(shipentegra, "_token_cache", {})
    provider = shipentegra.ShipentegraProvider(policy=fresh_policy())
    provider.settings = SimpleNamespace(
        shipentegra_api_base="https://api.test/v1",
        shipentegra_client_id="client",
        shipentegra_client_secret="secret",
    )
    return provider, calls


TOKEN = {"status": "success", "data": {"accessToken": "tok-1", "expiresIn": 3600}}


@pytest.mark.asyncio
async def test_shipentegra_classifies_services(monkeypatch):
    provider, calls = shipentegra_provider(monkeypatch, {"token": TOKEN, "all": SHIPENTEGRA_PRICES})

    quotes = await provider.quote("TR", "US", Decimal("2.5"))

    by_name = {q.display_name: q for q in quotes}
    eco = by_name["ShipEntegra Eco"]
    assert eco.service_class == ServiceLevel.ECO
    assert (eco.delivery_days_min, eco.delivery_days_max) == (8, 12)
    assert (eco.cargo_price, eco.fuel_cost) == (850, 120)
    assert eco.currency == "USD"
    assert eco.carrier_id == "shipentegra:shipentegra-eco"

    ups = by_name["UPS Express"]
    assert ups.service_class == ServiceLevel.EXPRESS
    assert (ups.delivery_days_min, ups.delivery_days_max) == (1, 3)
    assert ups.additional_fee == 50

    assert by_name["ShipEntegra Plus"].service_class == ServiceLevel.STANDARD

    url, payload, headers = calls[-1]
    assert url == "https://api.test/v1/tools/calculate/all"
    assert payload["country"] == "US"
    assert payload["kgDesi"] == 2.5
    assert headers == {"Authorization": "Bearer tok-1"}


@pytest.mark.asyncio
async def test_shipentegra_reuses_token_and_filters_service(monkeypatch):
    provider, calls = shipentegra_provider(monkeypatch, {"token": TOKEN, "all": SHIPENTEGRA_PRICES})

    await provider.quote("TR", "US", Decimal("1"))
    quotes = await provider.quote("TR", "US", Decimal("1"), ServiceLevel.EXPRESS)

    assert [q.display_name for q in quotes] == ["UPS Express"]
    assert [url.rsplit("/", 1)[-1] for url, _, _ in calls] == ["token", "all", "all"]


@pytest.mark.asyncio
async def test_shipentegra_marks_expired_prices_stale(monkeypatch):
    expired = {"status": "success", "data": {**SHIPENTEGRA_PRICES["data"], "priceExpired": True}}
    provider, _ = shipentegra_provider(monkeypatch, {"token": TOKEN, "all": expired})

    quotes = await provider.quote("TR", "US", Decimal("1"))
    assert quotes and all(q.stale for q in quotes)


@pytest.mark.asyncio
async def test_shipentegra_failures_are_provider_unavailable(monkeypatch):
    request = httpx.Request("POST", "https://api.test/v1/tools/calculate/all")
    error = httpx.ConnectError("connection refused", request=request)
    provider, _ = shipentegra_provider(monkeypatch, {"token": TOKEN, "all": error})

    with pytest.raises(ProviderUnavailable):
        await provider.quote("TR", "US", Decimal("1"))
    assert provider.policy.breaker.failures == 1


@pytest.mark.asyncio
async def test_shipentegra_malformed_payload_is_provider_unavailable(monkeypatch):
    bad_row = {"status": "success", "data": {"prices": [{"serviceName": "x", "cargoPrice": "N/A"}]}}
    provider, _ = shipentegra_provider(monkeypatch, {"token": TOKEN, "all": bad_row})
    with pytest.raises(ProviderUnavailable, match="unreadable"):
        await provider.quote("TR", "US", Decimal("1"))

    provider, _ = shipentegra_provider(monkeypatch, {"token": TOKEN, "all": ["not", "a", "dict"]})
    with pytest.raises(ProviderUnavailable):
        await provider.quote("TR", "US", Decimal("1"))


@pytest.mark.asyncio
async def test_shipentegra_unconfigured_is_unavailable(monkeypatch):
    provider, calls = shipentegra_provider(monkeypatch, {})
    provider.settings.shipentegra_client_secret = None

    assert provider.configured is False
    with pytest.raises(ProviderUnavailable):
        await provider.quote("TR", "US", Decimal("1"))
    assert calls == []


def afs_provider(monkeypatch, response):
    calls = []

    async def fake_post_json(url, payload, headers=None, policy=None):
        calls.append((url, payload, headers))
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(afs, "post_json", fake_post_json)
    provider = afs.AfsTransportProvider(policy=fresh_policy())
    provider.settings = SimpleNamespace(afs_api_url="https://afs.test/api", afs_api_key="key", afs_currency="EUR")
    return provider, calls


@pytest.mark.asyncio
async def test_afs_prices_in_euro(monkeypatch):
    response = {
        "prices": [
            {"service_id": 11, "service_name": "Eco", "price": "7.90"},
            {"service_id": 12, "service_name": "Express", "price": 19},
            {"service_id": 13, "service_name": "Road", "price": 10.25},
            {"service_id": 14, "service_name": "Unavailable", "price": None},
        ]
    }
    provider, calls = afs_provider(monkeypatch, response)

    quotes = await provider.quote("TR", "DE", Decimal("3"))

    assert [(q.carrier_id, q.service_class, q.cargo_price) for q in quotes] == [
        ("afs:11", ServiceLevel.ECO, 790),
        ("afs:12", ServiceLevel.EXPRESS, 1900),
        ("afs:13", ServiceLevel.STANDARD, 1025),
    ]
    assert all(q.currency == "EUR" for q in quotes)
    url, payload, headers = calls[0]
    assert payload["country_code"] == "DE"
    assert payload["shipments"][0]["weight"] == 3.0
    assert headers == {"x-api-key": "key"}


@pytest.mark.asyncio
async def test_afs_unserved_route_is_empty(monkeypatch):
    provider, _ = afs_provider(monkeypatch, {"error": "country not served"})
    assert await provider.quote("TR", "AU", Decimal("1")) == []


@pytest.mark.asyncio
async def test_afs_unreadable_price_is_provider_unavailable(monkeypatch):
    provider, _ = afs_provider(monkeypatch, {"prices": [{"service_id": 11, "service_name": "Eco", "price": "N/A"}]})
    with pytest.raises(ProviderUnavailable, match="unreadable"):
        await provider.quote("TR", "DE", Decimal("1"))

    provider, _ = afs_provider(monkeypatch, {"prices": ["not a row"]})
    with pytest.raises(ProviderUnavailable):
        await provider.quote("TR", "DE", Decimal("1"))


@pytest.mark.asyncio
async def test_afs_open_circuit_skips_the_call(monkeypatch):
    request = httpx.Request("POST", "https://afs.test/api")
    provider, calls = afs_provider(monkeypatch, httpx.ReadTimeout("timed out", request=request))

    for _ in range(3):
        with pytest.raises(ProviderUnavailable):
            await provider.quote("TR", "DE", Decimal("1"))
    with pytest.raises(ProviderUnavailable, match="circuit open"):
        await provider.quote("TR", "DE", Decimal("1"))
    assert len(calls) == 3


class FakeOverrideRepo:
    def __init__(self, rates=None):
        self.rates = rates or {}

    async def get_rate(self, destination_country, hs_code):
        rate = self.rates.get((destination_country, hs_code))
        return SimpleNamespace(duty_rate=rate) if rate is not None else None


def usitc_source(monkeypatch, response, overrides=None, cached=None):
    stored = {}

    async def fake_get_json(url, headers=None, params=None, policy=None):
        if isinstance(response, Exception):
            raise response
        return response

    async def fake_redis_get_json(key):
        return cached

    async def fake_redis_set_json(key, payload, ttl_seconds):
        stored[key] = payload

    monkeypatch.setattr(usitc, "get_json", fake_get_json)
    monkeypatch.setattr(usitc, "redis_get_json", fake_redis_get_json)
    monkeypatch.setattr(usitc, "redis_set_json", fake_redis_set_json)
    source = usitc.UsitcDutySource(None, policy=fresh_policy())
    source.settings = SimpleNamespace(usitc_api_base="https://hts.test/reststop")
    source.override_repo = FakeOverrideRepo(overrides)
    return source, stored


HTS_ROWS = [
    {"htsno": "6109", "general": ""},
    {"htsno": "6109.10.00", "general": "16.5%"},
    {"htsno": "6109.10.00.12", "general": ""},
    {"htsno": "6110", "general": "32%"},
]


@pytest.mark.asyncio
async def test_usitc_picks_most_specific_heading(monkeypatch):
    source, stored = usitc_source(monkeypatch, HTS_ROWS)

    result = await source.get_duty_rate("6109.10.0012")

    assert result.rate == Decimal("0.165")
    assert result.source == "usitc"
    assert result.missing is False
    assert stored == {"usitc:6109100012": HTS_ROWS}


@pytest.mark.asyncio
async def test_usitc_cached_payload_skips_the_api(monkeypatch):
    source, _ = usitc_source(monkeypatch, RuntimeError("should not be called"), cached=HTS_ROWS)

    result = await source.get_duty_rate("61091000")

    assert result.rate == Decimal("0.165")
    assert result.source == "redis"


@pytest.mark.asyncio
async def test_usitc_failure_falls_back_to_override(monkeypatch):
    request = httpx.Request("GET", "https://hts.test/reststop/search")
    error = httpx.ConnectError("down", request=request)
    source, _ = usitc_source(monkeypatch, error, overrides={("US", "610910"): Decimal("0.12")})

    result = await source.get_duty_rate("6109.10")

    assert result.rate == Decimal("0.12")
    assert result.source == "override"
    assert result.is_estimated is True


@pytest.mark.asyncio
async def test_usitc_unknown_code_without_override_is_missing(monkeypatch):
    source, stored = usitc_source(monkeypatch, [{"htsno": "0101", "general": "Free"}])

    result = await source.get_duty_rate("9999")

    assert result.rate is None
    assert result.missing is True
    assert stored == {}


def test_hs_code_normalization():
    assert usitc.normalize_hs_code("6109.10.00 12") == "6109100012"
    assert usitc.normalize_hs_code(None) == ""


def ecb_payload(rate, day="2026-10-16"):
    return {
        "dataSets": [{"series": {"0:0:0:0:0": {"observations": {"0": [rate]}}}}],
        "structure": {"dimensions": {"observation": [{"values": [{"id": day}]}]}},
    }


@pytest.mark.asyncio
async def test_fx_crosses_through_euro(monkeypatch):
    rates = {"USD": 1.08, "TRY": 37.8}
    requested = []

    async def fake_get_json(url, headers=None, params=None, policy=None):
        currency = url.rsplit("/", 1)[-1].split(".")[1]
        requested.append(currency)
        return ecb_payload(rates[currency])

    async def fake_redis_get_json(key):
        return None

    async def fake_redis_set_json(key, payload, ttl_seconds):
        return None

    monkeypatch.setattr(fx_ecb, "get_json", fake_get_json)
    monkeypatch.setattr(fx_ecb, "redis_get_json", fake_redis_get_json)
    monkeypatch.setattr(fx_ecb, "redis_set_json", fake_redis_set_json)
    provider = fx_ecb.FxProvider(policy=fresh_policy())

    result = await provider.get_rate("EUR", "USD")
    assert result.rate == Decimal("1.08")
    assert result.rate_date == "2026-10-16"

    assert await provider.convert(1000, "EUR", "TRY") == 37800
    assert await provider.convert(1000, "USD", "USD") == 1000
    assert "EUR" not in requested


@pytest.mark.asyncio
async def test_fx_malformed_payload_is_unconvertible(monkeypatch):
    async def fake_get_json(url, headers=None, params=None, policy=None):
        return {"dataSets": []}

    async def fake_redis_get_json(key):
        return None

    monkeypatch.setattr(fx_ecb, "get_json", fake_get_json)
    monkeypatch.setattr(fx_ecb, "redis_get_json", fake_redis_get_json)
    provider = fx_ecb.FxProvider(policy=fresh_policy())

    result = await provider.get_rate("GBP", "USD")
    assert result.rate is None
    assert await provider.convert(1000, "GBP", "USD") is None
