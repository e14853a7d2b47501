from datetime import date, datetime

from tripwise.services.category_selector import select_candidate
from tripwise.services.itinerary_builder import SegmentSnapshot, plan_segments, segment_window
from tripwise.services.scoring_engine import Candidate, Weights

START = date(2026, 12, 10)
END = date(2026, 12, 13)


def _selection(category: str, cid: str, duration: float, slot: int = 0, segment_id: str | None = None):
    candidate = Candidate(
        id=cid, category=category, source=cid, price=1000,
        duration_min=duration, comfort_score=5,
    )
    selection = select_candidate(category, [candidate], Weights(), slot=slot)
    selection.segment_id = segment_id
    return selection


def _snapshot(sid: str, category: str, start: datetime, locked: bool = False) -> SegmentSnapshot:
    return SegmentSnapshot(
        id=sid, category=category, start_ts=start, end_ts=start,
        price=1000, duration_min=60, comfort_score=5, locked=locked,
    )


def test_transport_starts_at_trip_start():
    start, end = segment_window("transport", START, END, 150)

    assert start == datetime(2026, 12, 10, 0, 0)
    assert end == datetime(2026, 12, 10, 2, 30)


def test_stay_spans_the_trip_whatever_its_duration():
    start, end = segment_window("stay", START, END, 60, offset_min=300, shift_min=45)

    assert start == datetime(2026, 12, 10)
    assert end == datetime(2026, 12, 13)


def test_activity_starts_the_day_after_arrival():
    start, end = segment_window("activity", START, END, 240, shift_min=30)

    assert start == datetime(2026, 12, 11, 0, 30)
    assert end == datetime(2026, 12, 11, 4, 30)


def test_fresh_plan_creates_every_segment():
    plans = plan_segments(
        [_selection("transport", "flight", 150), _selection("stay", "hotel", 4320)],
        START, END, existing=[],
    )

    assert {p.action for p in plans} == {"create"}
    assert {p.category for p in plans} == {"transport", "stay"}
    assert all(p.status == "planned" for p in plans)


def test_unlocked_segments_are_reused_in_start_order():
    existing = [_snapshot("seg-t", "transport", datetime(2026, 12, 10))]

    plans = plan_segments([_selection("transport", "train", 600)], START, END, existing)

    assert plans[0].action == "update"
    assert plans[0].segment_id == "seg-t"
    assert plans[0].end_ts == datetime(2026, 12, 10, 10, 0)


def test_locked_segments_are_never_planned_over():
    existing = [_snapshot("seg-t", "transport", datetime(2026, 12, 10), locked=True)]

    # Neither reuse nor an explicit refill touches the locked segment
    reuse = plan_segments([_selection("transport", "train", 600)], START, END, existing)
    refill = plan_segments(
        [_selection("transport", "train", 600, segment_id="seg-t")], START, END, existing
    )

    assert reuse[0].action == "create"
    assert refill == []


def test_activity_slots_run_back_to_back():
    plans = plan_segments(
        [
            _selection("activity", "walk", 120, slot=0),
            _selection("activity", "dinner", 180, slot=1),
        ],
        START, END, existing=[],
    )

    first, second = sorted(plans, key=lambda p: p.slot)
    assert first.start_ts == datetime(2026, 12, 11, 0, 0)
    assert second.start_ts == first.end_ts


def test_offsets_and_shifts_keep_a_replanned_segment_in_place():
    existing = [_snapshot("seg-a", "activity", datetime(2026, 12, 11, 9, 0))]

    plans = plan_segments(
        [_selection("activity", "walk", 120, segment_id="seg-a")],
        START, END, existing,
        status="replanned",
        offsets={"seg-a": 540},
        shifts={"seg-a": 60},
    )

    assert plans[0].start_ts == datetime(2026, 12, 11, 10, 0)
    assert plans[0].status == "replanned"
