import asyncio
from datetime import date
from unittest.mock import AsyncMock

import pytest

from tripwise.exceptions import SourcingUnavailable
from tripwise.services.cache_service import cache_service
from tripwise.services.quote_sourcing import (
    DemoQuoteProvider,
    QuoteSourcingService,
    TripContext,
    clean_offer,
)


@pytest.fixture(autouse=True)
def _no_redis(monkeypatch):
    monkeypatch.setattr(cache_service, "_disabled", True)


def _ctx(**overrides) -> TripContext:
    values = dict(
        trip_id="trip-1",
        origin="Mumbai",
        destination="Goa",
        start_date=date(2026, 12, 10),
        end_date=date(2026, 12, 13),
        currency="INR",
        total_budget=50000,
        caps={"transport": 20000},
    )
    values.update(overrides)
    return TripContext(**values)


def test_demo_provider_is_deterministic():
    service = QuoteSourcingService(DemoQuoteProvider())

    first = asyncio.run(service.fetch_candidates(_ctx(), "transport"))
    second = asyncio.run(service.fetch_candidates(_ctx(), "transport"))

    assert first == second
    assert len(first) == 6
    assert all(o["currency"] == "INR" and o["price"] > 0 for o in first)
    assert all(0 <= o["comfort_score"] <= 10 for o in first)


def test_demo_stays_cover_every_night():
    service = QuoteSourcingService(DemoQuoteProvider())

    offers = asyncio.run(service.fetch_candidates(_ctx(), "stay"))

    assert all(o["duration_min"] == 3 * 1440 for o in offers)
    assert all(o["attributes"]["nights"] == 3 for o in offers)


def test_demo_prices_follow_trip_currency():
    service = QuoteSourcingService(DemoQuoteProvider())

    inr = asyncio.run(service.fetch_candidates(_ctx(), "activity"))
    usd = asyncio.run(service.fetch_candidates(_ctx(currency="USD"), "activity"))

    assert all(o["currency"] == "USD" for o in usd)
    assert usd[0]["price"] < inr[0]["price"]


def test_provider_failure_raises_sourcing_unavailable():
    provider = AsyncMock()
    provider.name = "broken"
    provider.fetch = AsyncMock(side_effect=TimeoutError("upstream timeout"))
    service = QuoteSourcingService(provider)

    with pytest.raises(SourcingUnavailable) as exc:
        asyncio.run(service.fetch_candidates(_ctx(), "stay"))

    assert exc.value.category == "stay"
    assert "upstream timeout" in exc.value.detail


def test_empty_offers_raise_sourcing_unavailable():
    provider = AsyncMock()
    provider.name = "empty"
    provider.fetch = AsyncMock(return_value=[{"title": "no price"}])
    service = QuoteSourcingService(provider)

    with pytest.raises(SourcingUnavailable):
        asyncio.run(service.fetch_candidates(_ctx(), "activity"))


def test_fetch_all_reports_failures_per_category():
    async def fetch(ctx, category):
        if category == "stay":
            raise RuntimeError("hotel api down")
        return [{"title": f"{category} option", "provider": "X", "price": 100, "duration_min": 60}]

    provider = AsyncMock()
    provider.name = "partial"
    provider.fetch = fetch
    service = QuoteSourcingService(provider)

    offers, errors = asyncio.run(service.fetch_all(_ctx(), ["transport", "stay", "activity"]))

    assert set(offers) == {"transport", "activity"}
    assert set(errors) == {"stay"}
    assert "hotel api down" in errors["stay"]


def test_clean_offer_coerces_and_rejects():
    cleaned = clean_offer(
        {"title": "Sea View", "provider": "Resort Co", "price": "12000.456",
         "duration_min": "4320", "comfort_score": 14, "options": {"pool": True}},
        "INR",
    )

    assert cleaned == {
        "title": "Sea View",
        "source": "Resort Co",
        "price": 12000.46,
        "currency": "INR",
        "duration_min": 4320,
        "comfort_score": 10.0,
        "attributes": {"pool": True},
    }
    assert clean_offer({"title": "free?"}, "INR") is None
    assert clean_offer({"price": -5}, "INR") is None
