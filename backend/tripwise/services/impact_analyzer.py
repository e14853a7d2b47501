"""Impact analyzer — decides which segments a disruption event invalidates."""

import logging
from dataclasses import dataclass, field
from datetime import date

from tripwise.services.budget_reconciler import category_rank
from tripwise.services.itinerary_builder import SegmentSnapshot
from tripwise.services.scoring_engine import Attached, Candidate, Weights, score_candidates

logger = logging.getLogger(__name__)


@dataclass
class ImpactReport:
    kind: str
    impacted: list[str] = field(default_factory=list)
    reasons: dict[str, str] = field(default_factory=dict)
    shifts: dict[str, float] = field(default_factory=dict)
    statuses: dict[str, str] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    def mark(self, segment_id: str, reason: str) -> None:
        if segment_id not in self.reasons:
            self.impacted.append(segment_id)
        self.reasons[segment_id] = reason


def timeline(segments: list[SegmentSnapshot]) -> list[SegmentSnapshot]:
    return sorted(segments, key=lambda s: (s.start_ts, category_rank(s.category), s.id))


def current_candidate(segment: SegmentSnapshot, candidates: list[Candidate]) -> Candidate:
    """The candidate a segment currently holds, or one built from the segment itself."""
    attached = Attached(segment.id)
    for c in candidates:
        if c.slot == attached:
            return c
    return Candidate(
        id=segment.quote_id or f"segment:{segment.id}",
        category=segment.category,
        source=segment.provider,
        title=segment.title,
        price=segment.price,
        duration_min=segment.duration_min,
        comfort_score=segment.comfort_score,
        currency=segment.currency,
        slot=attached,
    )


def improvement_over_current(
    segment: SegmentSnapshot,
    candidates: list[Candidate],
    weights: Weights,
) -> float | None:
    """Utility gain of the best pool quote over the segment's current choice."""
    current = current_candidate(segment, candidates)
    pool = [c for c in candidates if c.is_pool and c.category == segment.category]
    if not pool:
        return None

    scored = score_candidates([current, *pool], weights)
    current_utility = next(s.utility for s in scored if s.candidate is current)
    best_pool = max(s.utility for s in scored if s.candidate is not current)
    return best_pool - current_utility


def analyze_event(
    kind: str,
    payload: dict,
    segments: list[SegmentSnapshot],
    candidates: list[Candidate],
    weights: Weights,
    margin: float = 0.05,
) -> ImpactReport:
    """
    Compute the impacted segment set for an event.

    ``candidates`` must already reflect the event: refreshed quote prices for
    price_change, the new rate for fx_change. Locked segments are never
    impacted. Per-segment failures land in ``errors`` without stopping the
    analysis of the others.
    """
    report = ImpactReport(kind=kind)

    if kind in ("price_change", "fx_change"):
        categories = _price_affected_categories(kind, payload, segments, candidates)
        targets = [
            s for s in segments
            if s.category in categories and not s.locked
        ]
        if kind == "price_change" and payload.get("segment_id"):
            targets = [s for s in targets if s.id == str(payload["segment_id"])]

        for segment in targets:
            try:
                gain = improvement_over_current(segment, candidates, weights)
            except Exception as e:
                logger.warning(f"Impact analysis failed for segment {segment.id}: {e}")
                report.errors[segment.id] = str(e)
                continue
            if gain is not None and gain > margin:
                report.mark(segment.id, f"{kind}: a pool quote beats the current choice by {gain:.3f}")

    elif kind == "delay":
        _analyze_delay(payload, segments, report)

    elif kind == "weather":
        _analyze_weather(payload, segments, report)

    else:
        report.errors["event"] = f"Unsupported event kind '{kind}'"

    logger.info(f"{kind} event impacts {len(report.impacted)} of {len(segments)} segments")
    return report


def _price_affected_categories(
    kind: str,
    payload: dict,
    segments: list[SegmentSnapshot],
    candidates: list[Candidate],
) -> set[str]:
    if kind == "fx_change":
        currency = str(payload.get("currency", "")).upper()
        return (
            {c.category for c in candidates if c.currency == currency}
            | {s.category for s in segments if s.currency == currency}
        )

    categories: set[str] = set()
    if payload.get("category"):
        categories.add(payload["category"])
    if payload.get("segment_id"):
        target = str(payload["segment_id"])
        categories.update(s.category for s in segments if s.id == target)
    refreshed = {str(q) for q in (payload.get("quote_prices") or {})}
    categories.update(c.category for c in candidates if c.id in refreshed)
    return categories


def _analyze_delay(payload: dict, segments: list[SegmentSnapshot], report: ImpactReport) -> None:
    target = str(payload.get("segment_id", ""))
    delay_min = float(payload.get("delay_min", 0) or 0)

    ordered = timeline(segments)
    delayed = next((s for s in ordered if s.id == target), None)
    if delayed is None:
        report.errors[target or "event"] = "Delayed segment not found in trip"
        return

    if not delayed.locked:
        report.mark(delayed.id, "delayed")
        report.shifts[delayed.id] = delay_min

    # Stays span the whole trip and are never re-timed
    for segment in ordered:
        if segment.locked or segment.category == "stay":
            continue
        if segment.start_ts > delayed.start_ts:
            report.mark(segment.id, f"follows delayed segment {target}")
            report.shifts[segment.id] = delay_min


def _analyze_weather(payload: dict, segments: list[SegmentSnapshot], report: ImpactReport) -> None:
    try:
        date_from = date.fromisoformat(str(payload["date_from"]))
        date_to = date.fromisoformat(str(payload.get("date_to") or payload["date_from"]))
    except (KeyError, ValueError) as e:
        report.errors["event"] = f"Invalid weather window: {e}"
        return

    for segment in timeline(segments):
        if segment.locked or segment.category != "activity":
            continue
        if date_from <= segment.start_ts.date() <= date_to:
            report.mark(segment.id, f"weather between {date_from} and {date_to}")
            report.statuses[segment.id] = "weather_review"
