from datetime import datetime

from tripwise.services.impact_analyzer import analyze_event, current_candidate, improvement_over_current
from tripwise.services.itinerary_builder import SegmentSnapshot
from tripwise.services.scoring_engine import POOL, Attached, Candidate, Weights


def _segment(sid: str, category: str, start: datetime, price: float = 1000,
             comfort: float = 7, locked: bool = False, currency: str = "INR") -> SegmentSnapshot:
    return SegmentSnapshot(
        id=sid, category=category, start_ts=start, end_ts=start,
        price=price, duration_min=120, comfort_score=comfort, locked=locked, currency=currency,
    )


def _quote(qid: str, category: str, price: float, comfort: float = 7,
           slot=POOL, currency: str = "INR") -> Candidate:
    return Candidate(
        id=qid, category=category, source=qid, price=price, duration_min=120,
        comfort_score=comfort, slot=slot, currency=currency,
    )


def _trip():
    segments = [
        _segment("transport", "transport", datetime(2026, 12, 10), price=18000, locked=True),
        _segment("stay", "stay", datetime(2026, 12, 10), price=10000),
        _segment("walk", "activity", datetime(2026, 12, 11, 0, 0), price=2000),
        _segment("dinner", "activity", datetime(2026, 12, 11, 4, 0), price=3000),
    ]
    return segments


def test_price_rise_with_cheaper_pool_quote_impacts_stay_only():
    segments = _trip()
    candidates = [
        _quote("flight", "transport", 18000, slot=Attached("transport")),
        _quote("hotel", "stay", 14000, slot=Attached("stay")),  # 40% up
        _quote("guesthouse", "stay", 11200),  # 20% below the new price, same comfort
    ]

    report = analyze_event(
        "price_change", {"segment_id": "stay", "new_price": 14000},
        segments, candidates, Weights(),
    )

    assert report.impacted == ["stay"]
    assert "transport" not in report.reasons
    assert report.errors == {}


def test_price_change_below_margin_is_ignored():
    segments = _trip()
    candidates = [
        _quote("hotel", "stay", 10000, slot=Attached("stay")),
        _quote("twin", "stay", 10000),
    ]

    report = analyze_event("price_change", {"category": "stay"}, segments, candidates, Weights())

    assert report.impacted == []


def test_fx_change_targets_categories_priced_in_that_currency():
    segments = _trip()
    candidates = [
        _quote("hotel", "stay", 10000, slot=Attached("stay")),
        _quote("resort", "stay", 6000, currency="THB"),
        _quote("walk", "activity", 2000, slot=Attached("walk")),
    ]

    report = analyze_event(
        "fx_change", {"currency": "THB", "rate": 2.0}, segments, candidates, Weights()
    )

    assert report.impacted == ["stay"]


def test_delay_impacts_segment_and_everything_after_it():
    segments = _trip()

    report = analyze_event(
        "delay", {"segment_id": "walk", "delay_min": 90}, segments, [], Weights()
    )

    assert report.impacted == ["walk", "dinner"]
    assert report.shifts == {"walk": 90.0, "dinner": 90.0}


def test_delay_of_unknown_segment_is_reported():
    report = analyze_event(
        "delay", {"segment_id": "ghost", "delay_min": 30}, _trip(), [], Weights()
    )

    assert report.impacted == []
    assert "ghost" in report.errors


def test_weather_flags_unlocked_activities_in_window():
    segments = _trip()

    report = analyze_event(
        "weather", {"date_from": "2026-12-11", "date_to": "2026-12-11"}, segments, [], Weights()
    )

    assert report.impacted == ["walk", "dinner"]
    assert set(report.statuses.values()) == {"weather_review"}


def test_locked_segments_are_never_impacted():
    segments = _trip()
    candidates = [
        _quote("flight", "transport", 30000, slot=Attached("transport")),
        _quote("bus", "transport", 1500),
    ]

    report = analyze_event(
        "price_change", {"category": "transport"}, segments, candidates, Weights()
    )

    assert report.impacted == []


def test_current_candidate_falls_back_to_the_segment_itself():
    segment = _segment("stay", "stay", datetime(2026, 12, 10), price=9000)

    current = current_candidate(segment, [])

    assert current.id == "segment:stay"
    assert current.price == 9000
    assert current.slot == Attached("stay")


def test_improvement_is_none_without_pool():
    segment = _segment("stay", "stay", datetime(2026, 12, 10))
    assert improvement_over_current(segment, [], Weights()) is None


def test_transport_delay_leaves_the_stay_alone():
    segments = [
        _segment("transport", "transport", datetime(2026, 12, 10)),
        _segment("stay", "stay", datetime(2026, 12, 10)),
        _segment("walk", "activity", datetime(2026, 12, 11, 0, 0)),
        _segment("dinner", "activity", datetime(2026, 12, 11, 4, 0), locked=True),
    ]

    report = analyze_event(
        "delay", {"segment_id": "transport", "delay_min": 60}, segments, [], Weights()
    )

    assert report.impacted == ["transport", "walk"]
    assert "stay" not in report.shifts


def test_delay_skips_segments_starting_with_the_delayed_one():
    segments = [
        _segment("walk", "activity", datetime(2026, 12, 11, 0, 0)),
        _segment("market", "activity", datetime(2026, 12, 11, 0, 0)),
        _segment("dinner", "activity", datetime(2026, 12, 11, 4, 0)),
    ]

    report = analyze_event(
        "delay", {"segment_id": "market", "delay_min": 30}, segments, [], Weights()
    )

    assert report.impacted == ["market", "dinner"]
