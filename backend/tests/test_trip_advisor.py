import asyncio
from datetime import date
from unittest.mock import AsyncMock

import pytest

from tripwise.services.cache_service import cache_service
from tripwise.services.llm_client import llm_client
from tripwise.services.trip_advisor import trip_advisor

SEGMENTS = [
    {"category": "transport", "provider": "IndiGo", "price": 6500, "duration_min": 150, "comfort_score": 6},
    {"category": "stay", "provider": "Comfort Inn", "price": 10500, "duration_min": 4320, "comfort_score": 7},
]
PREFS = {"weight_cost": 0.6, "weight_time": 0.2, "weight_comfort": 0.2}


@pytest.fixture(autouse=True)
def _no_redis(monkeypatch):
    monkeypatch.setattr(cache_service, "_disabled", True)


def test_explain_returns_llm_bullets(monkeypatch):
    complete = AsyncMock(return_value="Intro line\n- Picked IndiGo for price\n2. Comfort Inn balances cost\n")
    monkeypatch.setattr(llm_client, "complete", complete)

    points = asyncio.run(trip_advisor.explain("Mumbai", "Goa", SEGMENTS, PREFS))

    assert points == ["Picked IndiGo for price", "Comfort Inn balances cost"]
    prompt = complete.await_args.args[1]
    assert "Cost priority: 60%" in prompt
    assert "₹6,500" in prompt


def test_explain_falls_back_when_llm_fails(monkeypatch):
    monkeypatch.setattr(llm_client, "complete", AsyncMock(side_effect=RuntimeError("No LLM provider configured")))

    points = asyncio.run(trip_advisor.explain("Mumbai", "Goa", SEGMENTS, PREFS))

    assert points[0] == "The plan totals ₹17,000 across 2 segments."
    assert "cost" in points[1]


def test_weather_tips_parse_sections(monkeypatch):
    text = "WEATHER: Warm and humid, 24-32°C.\n\nTIPS:\n- Carry sunscreen\n- Book beach shacks early\n"
    monkeypatch.setattr(llm_client, "complete", AsyncMock(return_value=text))

    info = asyncio.run(trip_advisor.weather_and_tips("Goa", date(2026, 12, 10), date(2026, 12, 13)))

    assert info["weather"] == "Warm and humid, 24-32°C."
    assert info["tips"] == ["Carry sunscreen", "Book beach shacks early"]


def test_weather_tips_fallback(monkeypatch):
    monkeypatch.setattr(llm_client, "complete", AsyncMock(side_effect=RuntimeError("down")))

    info = asyncio.run(trip_advisor.weather_and_tips("Goa", date(2026, 12, 10), date(2026, 12, 13)))

    assert info == {
        "weather": "Weather information unavailable",
        "tips": ["Check weather forecast before departure"],
    }


def test_suggest_activities_returns_empty_on_failure(monkeypatch):
    monkeypatch.setattr(llm_client, "complete", AsyncMock(side_effect=RuntimeError("down")))

    suggestions = asyncio.run(
        trip_advisor.suggest_activities("Goa", date(2026, 12, 11), ["food"], 3000)
    )

    assert suggestions == []


def test_suggest_activities_extracts_json_array(monkeypatch):
    text = 'Here you go:\n[{"title": "Spice farm tour", "price": 1800, "duration_min": 180}]'
    monkeypatch.setattr(llm_client, "complete", AsyncMock(return_value=text))

    suggestions = asyncio.run(
        trip_advisor.suggest_activities("Goa", date(2026, 12, 11), [], 3000)
    )

    assert suggestions == [{"title": "Spice farm tour", "price": 1800, "duration_min": 180}]
