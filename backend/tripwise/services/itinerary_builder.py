"""Itinerary builder — places selections on the timeline and plans segment writes."""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta

from tripwise.services.category_selector import SlotSelection
from tripwise.services.scoring_engine import Candidate

logger = logging.getLogger(__name__)


@dataclass
class SegmentSnapshot:
    """Engine-side view of a persisted segment."""

    id: str
    category: str
    start_ts: datetime
    end_ts: datetime
    price: float
    duration_min: float
    comfort_score: float
    locked: bool = False
    currency: str = "INR"
    status: str = "planned"
    quote_id: str | None = None
    title: str = ""
    provider: str = ""
    attributes: dict = field(default_factory=dict)


@dataclass
class SegmentPlan:
    action: str  # create | update
    category: str
    slot: int
    candidate: Candidate
    start_ts: datetime
    end_ts: datetime
    status: str = "planned"
    segment_id: str | None = None


def segment_window(
    category: str,
    start_date: date,
    end_date: date,
    duration_min: float,
    offset_min: float = 0,
    shift_min: float = 0,
) -> tuple[datetime, datetime]:
    """
    Timestamps for a segment of ``category`` on a trip.

    transport: starts at trip start 00:00, lasts duration_min.
    stay: spans trip start 00:00 to trip end 00:00 whatever its duration.
    activity: starts the day after arrival, lasts duration_min.
    ``offset_min`` places a slot later in its category's sequence and
    ``shift_min`` pushes the window (delays); neither applies to stays.
    """
    base = datetime.combine(start_date, time.min)

    if category == "stay":
        return base, datetime.combine(end_date, time.min)

    if category == "activity":
        base += timedelta(days=1)

    start = base + timedelta(minutes=offset_min + shift_min)
    return start, start + timedelta(minutes=duration_min)


def plan_segments(
    selections: list[SlotSelection],
    start_date: date,
    end_date: date,
    existing: list[SegmentSnapshot],
    status: str = "planned",
    offsets: dict[str, float] | None = None,
    shifts: dict[str, float] | None = None,
) -> list[SegmentPlan]:
    """
    Turn selections into create/update plans.

    A selection carrying ``segment_id`` refills that segment. Others reuse
    the unlocked segments of their category in start order, then create new
    ones. Locked segments are never planned for. ``offsets`` and ``shifts``
    are keyed by segment id; slots without a stored offset follow each other
    back to back within their category.
    """
    offsets = offsets or {}
    shifts = shifts or {}
    locked_ids = {s.id for s in existing if s.locked}
    claimed = {s.segment_id for s in selections if s.segment_id}

    reusable: dict[str, list[SegmentSnapshot]] = {}
    for seg in sorted(existing, key=lambda s: s.start_ts):
        if seg.locked or seg.id in claimed:
            continue
        reusable.setdefault(seg.category, []).append(seg)

    running_offset: dict[str, float] = {}
    plans: list[SegmentPlan] = []

    for selection in sorted(selections, key=lambda s: (s.category, s.slot)):
        candidate = selection.chosen.candidate
        segment_id = selection.segment_id

        if segment_id is None and reusable.get(selection.category):
            segment_id = reusable[selection.category].pop(0).id

        if segment_id in locked_ids:
            logger.warning(f"Refusing to plan over locked segment {segment_id}")
            continue

        if segment_id is not None and segment_id in offsets:
            offset = offsets[segment_id]
        else:
            offset = running_offset.get(selection.category, 0.0)
        running_offset[selection.category] = offset + candidate.duration_min

        start_ts, end_ts = segment_window(
            selection.category,
            start_date,
            end_date,
            candidate.duration_min,
            offset_min=offset,
            shift_min=shifts.get(segment_id, 0) if segment_id else 0,
        )

        plans.append(SegmentPlan(
            action="update" if segment_id else "create",
            category=selection.category,
            slot=selection.slot,
            candidate=candidate,
            start_ts=start_ts,
            end_ts=end_ts,
            status=status,
            segment_id=segment_id,
        ))

    return plans
