"""Itinerary optimizer — coordinates sourcing, selection, reconciliation and persistence for a trip."""

import asyncio
import json
import logging
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tripwise.config import settings
from tripwise.data.currency import convert
from tripwise.exceptions import BudgetInfeasible, ResourceNotFound
from tripwise.models.events import TripEvent
from tripwise.models.itinerary import Quote, Segment
from tripwise.models.trip import Trip
from tripwise.services.budget_reconciler import (
    CATEGORY_ORDER,
    ReconciliationResult,
    SlotRequest,
    category_rank,
    reconcile,
)
from tripwise.services.impact_analyzer import ImpactReport, analyze_event, current_candidate, timeline
from tripwise.services.itinerary_builder import (
    SegmentPlan,
    SegmentSnapshot,
    plan_segments,
    segment_window,
)
from tripwise.services.quote_sourcing import SOURCED_CATEGORIES, TripContext, quote_sourcing_service
from tripwise.services.scoring_engine import POOL, Attached, Candidate, Weights, validate_weights

logger = logging.getLogger(__name__)

MAX_ALTERNATIVES = 3


def _money(value: float) -> Decimal:
    return Decimal(str(round(float(value), 2)))


def _segment_state(segment: Segment) -> tuple:
    return (
        segment.title,
        segment.provider,
        Decimal(segment.price),
        segment.currency,
        segment.duration_min,
        Decimal(segment.comfort_score),
        segment.start_ts,
        segment.end_ts,
        segment.status,
        segment.locked,
        json.dumps(segment.attributes or {}, sort_keys=True, default=str),
    )


class ItineraryOptimizer:
    """Runs optimize/replan for a trip under a per-trip lock, in one transaction."""

    def __init__(self):
        self._trip_locks: dict[uuid.UUID, asyncio.Lock] = {}
        self._lock_users: dict[uuid.UUID, int] = {}

    @asynccontextmanager
    async def trip_lock(self, trip_id: uuid.UUID):
        """Serialize work on one trip. The entry is dropped once nobody holds or awaits it."""
        lock = self._trip_locks.setdefault(trip_id, asyncio.Lock())
        self._lock_users[trip_id] = self._lock_users.get(trip_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[trip_id] -= 1
            if not self._lock_users[trip_id]:
                del self._lock_users[trip_id]
                del self._trip_locks[trip_id]

    # ─── Exposed operations ───

    async def optimize(self, db: AsyncSession, trip_id: uuid.UUID) -> dict:
        """
        Seed missing quotes, select and reconcile every category, persist segments.

        Returns dict with: segments, infeasible_categories, budget, sourcing_errors.
        Nothing is written unless the whole run succeeds.
        """
        async with self.trip_lock(trip_id):
            try:
                outcome = await self._optimize(db, trip_id)
                await db.commit()
            except BaseException:
                await db.rollback()
                raise
        return outcome

    async def replan(self, db: AsyncSession, trip_id: uuid.UUID, event_id: uuid.UUID) -> dict:
        """
        Re-select only the segments an event invalidates.

        Returns dict with: impacted_segment_ids, changed_segments,
        unchanged_segments, errors, budget.
        """
        async with self.trip_lock(trip_id):
            try:
                outcome = await self._replan(db, trip_id, event_id)
                await db.commit()
            except BaseException:
                await db.rollback()
                raise
        return outcome

    async def compare(self, db: AsyncSession, trip_id: uuid.UUID, proposal: Weights) -> dict:
        """Dry-run the optimizer with proposal weights against the current pool; writes nothing."""
        validate_weights(proposal, settings.weight_sum_tolerance)
        trip = await self._get_trip(db, trip_id)
        segments = await self._segments(db, trip.id)
        quotes = await self._quotes(db, trip.id)
        overrides = await self.fx_overrides(db, trip.id)

        requests, fixed_spend = self._optimize_requests(trip, segments, quotes, overrides, {})
        result = self._reconcile(trip, proposal, requests, fixed_spend)

        locked = [s for s in segments if s.locked]
        current_items = [self._metrics_item(s, trip.currency, overrides) for s in segments]
        proposal_items = [self._metrics_item(s, trip.currency, overrides) for s in locked] + [
            (sel.chosen.candidate.price, sel.chosen.candidate.duration_min, sel.chosen.candidate.comfort_score)
            for sel in result.selections
        ]
        current = self._plan_metrics(current_items)
        proposed = self._plan_metrics(proposal_items)

        return {
            "trip_id": trip.id,
            "current": current,
            "proposal": proposed,
            "deltas": {k: round(proposed[k] - current[k], 2) for k in current},
            "proposal_weights": proposal.as_dict(),
            "proposal_segments": [
                {
                    "category": sel.category,
                    "quote_id": sel.chosen.id,
                    "title": sel.chosen.candidate.title,
                    "provider": sel.chosen.candidate.source,
                    "price": round(sel.chosen.candidate.price, 2),
                    "duration_min": sel.chosen.candidate.duration_min,
                    "comfort_score": sel.chosen.candidate.comfort_score,
                    "utility": sel.chosen.utility,
                }
                for sel in result.selections
            ],
            "infeasible_categories": self._infeasible(result),
            "feasible": result.feasible,
        }

    async def set_lock(self, db: AsyncSession, segment_id: uuid.UUID, locked: bool) -> Segment:
        segment = await self._get_segment(db, segment_id)
        async with self.trip_lock(segment.trip_id):
            segment.locked = locked
            await db.commit()
        logger.info(f"Segment {segment_id} {'locked' if locked else 'unlocked'}")
        return segment

    async def list_alternatives(self, db: AsyncSession, segment_id: uuid.UUID) -> list[Quote]:
        """Up to three unattached quotes of the segment's category, cheapest first."""
        segment = await self._get_segment(db, segment_id)
        trip = await self._get_trip(db, segment.trip_id)
        overrides = await self.fx_overrides(db, trip.id)

        result = await db.execute(
            select(Quote).where(
                Quote.trip_id == segment.trip_id,
                Quote.category == segment.category,
                Quote.segment_id.is_(None),
            )
        )
        pool = result.scalars().all()
        pool = sorted(
            pool,
            key=lambda q: (convert(float(q.price), q.currency, trip.currency, overrides), q.sequence),
        )
        return pool[:MAX_ALTERNATIVES]

    async def replace(self, db: AsyncSession, segment_id: uuid.UUID, quote_id: uuid.UUID) -> Segment:
        """Overwrite a segment from a chosen quote; no budget check."""
        segment = await self._get_segment(db, segment_id)
        async with self.trip_lock(segment.trip_id):
            trip = await self._get_trip(db, segment.trip_id)
            quote = await db.get(Quote, quote_id)
            if (
                quote is None
                or quote.trip_id != segment.trip_id
                or quote.category != segment.category
                or quote.segment_id not in (None, segment.id)
            ):
                raise ResourceNotFound("quote", quote_id)

            quotes = await self._quotes(db, trip.id)
            self._fill_from_quote(segment, quote)
            segment.start_ts, segment.end_ts = segment_window(
                segment.category, trip.start_date, trip.end_date, segment.duration_min
            )
            segment.status = "manual"
            self._attach(segment, quote, quotes)
            await db.commit()

        logger.info(f"Segment {segment_id} manually replaced with quote {quote_id}")
        return segment

    # ─── Optimize ───

    async def _optimize(self, db: AsyncSession, trip_id: uuid.UUID) -> dict:
        trip = await self._get_trip(db, trip_id)
        weights = self._weights(trip)
        segments = await self._segments(db, trip.id)
        quotes = await self._quotes(db, trip.id)

        missing = [c for c in SOURCED_CATEGORIES if not any(q.category == c for q in quotes)]
        sourcing_errors: dict[str, str] = {}
        if missing:
            seeded, sourcing_errors = await self._seed_quotes(db, trip, missing, quotes)
            quotes.extend(seeded)

        overrides = await self.fx_overrides(db, trip.id)
        requests, fixed_spend = self._optimize_requests(
            trip, segments, quotes, overrides, sourcing_errors
        )
        result = self._reconcile(trip, weights, requests, fixed_spend)

        snapshots = [self._snapshot(s, trip.currency, overrides) for s in segments]
        plans = plan_segments(result.selections, trip.start_date, trip.end_date, snapshots)
        await self._apply_plans(db, trip, plans, segments, quotes)

        if trip.status == "draft" and (plans or segments):
            trip.status = "optimized"

        await db.flush()
        ordered = await self._segments(db, trip.id)
        logger.info(
            f"Optimized trip {trip.id}: {len(plans)} segments planned, "
            f"{len(result.infeasible)} slots infeasible, {result.iterations} downgrades"
        )

        return {
            "trip_id": trip.id,
            "status": trip.status,
            "segments": ordered,
            "infeasible_categories": self._infeasible(result),
            "budget": self._budget_summary(trip, ordered, overrides),
            "sourcing_errors": sourcing_errors,
        }

    def _optimize_requests(
        self,
        trip: Trip,
        segments: list[Segment],
        quotes: list[Quote],
        overrides: dict[str, float],
        sourcing_errors: dict[str, str],
    ) -> tuple[list[SlotRequest], dict[str, float]]:
        locked = [s for s in segments if s.locked]
        locked_ids = {s.id for s in locked}

        fixed_spend: dict[str, float] = defaultdict(float)
        for segment in locked:
            fixed_spend[segment.category] += self._price(segment, trip.currency, overrides)

        required = {"transport": 1, "stay": 1, "activity": max(1, trip.activity_slots or 1)}
        requests = []
        for category in CATEGORY_ORDER:
            taken = sum(1 for s in locked if s.category == category)
            pool = [
                self._candidate(q, trip.currency, overrides)
                for q in quotes
                if q.category == category and q.segment_id not in locked_ids
            ]
            for slot in range(taken, required[category]):
                requests.append(SlotRequest(
                    category=category,
                    slot=slot,
                    candidates=pool,
                    sourcing_error=sourcing_errors.get(category),
                ))
        return requests, dict(fixed_spend)

    async def _seed_quotes(
        self, db: AsyncSession, trip: Trip, categories: list[str], existing: list[Quote]
    ) -> tuple[list[Quote], dict[str, str]]:
        ctx = TripContext(
            trip_id=str(trip.id),
            origin=trip.origin,
            destination=trip.destination,
            start_date=trip.start_date,
            end_date=trip.end_date,
            currency=trip.currency,
            total_budget=float(trip.total_budget),
            caps={b.category: float(b.cap) for b in trip.budget_caps},
        )
        offers, errors = await quote_sourcing_service.fetch_all(ctx, categories)

        sequence = max((q.sequence for q in existing), default=-1) + 1
        seeded = []
        for category in categories:
            for offer in offers.get(category, []):
                seeded.append(Quote(
                    id=uuid.uuid4(),
                    trip_id=trip.id,
                    category=category,
                    source=offer["source"],
                    title=offer["title"],
                    price=_money(offer["price"]),
                    currency=offer["currency"],
                    duration_min=offer["duration_min"],
                    comfort_score=_money(offer["comfort_score"]),
                    attributes=offer["attributes"],
                    sequence=sequence,
                ))
                sequence += 1

        if seeded:
            db.add_all(seeded)
            await db.flush()
        logger.info(f"Seeded {len(seeded)} quotes for trip {trip.id} ({', '.join(categories)})")
        return seeded, errors

    # ─── Replan ───

    async def _replan(self, db: AsyncSession, trip_id: uuid.UUID, event_id: uuid.UUID) -> dict:
        trip = await self._get_trip(db, trip_id)
        event = await db.get(TripEvent, event_id)
        if event is None or event.trip_id != trip.id:
            raise ResourceNotFound("event", event_id)

        weights = self._weights(trip)
        segments = await self._segments(db, trip.id)
        quotes = await self._quotes(db, trip.id)
        payload = event.payload or {}

        overrides = await self.fx_overrides(db, trip.id)
        price_overrides: dict[str, float] = {}
        if event.kind == "price_change":
            self._refresh_prices(payload, quotes, price_overrides)
        elif event.kind == "fx_change":
            overrides[str(payload["currency"]).upper()] = float(payload["rate"])

        before = {s.id: _segment_state(s) for s in segments}
        quote_of = {q.segment_id: str(q.id) for q in quotes if q.segment_id}
        snapshots = [
            self._snapshot(
                s, trip.currency, overrides,
                quote_id=quote_of.get(s.id),
                price=price_overrides.get(str(s.id)),
            )
            for s in segments
        ]
        candidates = [self._candidate(q, trip.currency, overrides) for q in quotes]

        report = analyze_event(
            event.kind, payload, snapshots, candidates, weights, settings.improvement_margin
        )
        locked_ids = {str(s.id) for s in segments if s.locked}
        impacted = [sid for sid in report.impacted if sid not in locked_ids]

        errors = [{"segment_id": k, "detail": v} for k, v in report.errors.items()]
        if impacted:
            result, plans = self._replan_subset(trip, weights, impacted, snapshots, candidates, report)
            await self._apply_plans(db, trip, plans, segments, quotes)
            errors.extend(
                {"segment_id": i.segment_id, "detail": i.detail} for i in result.infeasible
            )

        await db.flush()
        ordered = await self._segments(db, trip.id)
        changed = [s for s in ordered if before.get(s.id) != _segment_state(s)]
        unchanged = [s for s in ordered if before.get(s.id) == _segment_state(s)]

        logger.info(
            f"Replanned trip {trip.id} for {event.kind} event {event.id}: "
            f"{len(impacted)} impacted, {len(changed)} changed"
        )

        return {
            "trip_id": trip.id,
            "event_id": event.id,
            "event_kind": event.kind,
            "impacted_segment_ids": impacted,
            "reasons": {sid: report.reasons[sid] for sid in impacted},
            "changed_segments": changed,
            "unchanged_segments": unchanged,
            "errors": errors,
            "budget": self._budget_summary(trip, ordered, overrides),
        }

    def _replan_subset(
        self,
        trip: Trip,
        weights: Weights,
        impacted: list[str],
        snapshots: list[SegmentSnapshot],
        candidates: list[Candidate],
        report: ImpactReport,
    ) -> tuple[ReconciliationResult, list[SegmentPlan]]:
        impacted_set = set(impacted)
        targets = [s for s in timeline(snapshots) if s.id in impacted_set]

        fixed_spend: dict[str, float] = defaultdict(float)
        for snap in snapshots:
            if snap.id not in impacted_set:
                fixed_spend[snap.category] += snap.price

        requests = []
        for category in CATEGORY_ORDER:
            members = [s for s in targets if s.category == category]
            if not members:
                continue
            pool = [
                c for c in candidates
                if c.category == category
                and (c.is_pool or c.slot.segment_id in impacted_set)
            ]
            # segments without an attached quote compete with their own current values
            pool_ids = {c.id for c in pool}
            for member in members:
                current = current_candidate(member, candidates)
                if current.id not in pool_ids:
                    pool.append(current)
                    pool_ids.add(current.id)
            for slot, member in enumerate(members):
                requests.append(SlotRequest(
                    category=category, slot=slot, candidates=pool, segment_id=member.id
                ))

        result = self._reconcile(trip, weights, requests, dict(fixed_spend))

        offsets = {s.id: self._offset_minutes(s, trip) for s in targets}
        plans = plan_segments(
            result.selections,
            trip.start_date,
            trip.end_date,
            snapshots,
            status="replanned",
            offsets=offsets,
            shifts=report.shifts,
        )
        for plan in plans:
            plan.status = report.statuses.get(plan.segment_id, plan.status)
        return result, plans

    def _refresh_prices(self, payload: dict, quotes: list[Quote], price_overrides: dict[str, float]) -> None:
        quote_prices = {str(k): v for k, v in (payload.get("quote_prices") or {}).items()}
        for quote in quotes:
            if str(quote.id) in quote_prices:
                quote.price = _money(quote_prices[str(quote.id)])

        segment_id = payload.get("segment_id")
        new_price = payload.get("new_price")
        if segment_id is None or new_price is None:
            return
        attached = [q for q in quotes if str(q.segment_id) == str(segment_id)]
        for quote in attached:
            quote.price = _money(new_price)
        if not attached:
            price_overrides[str(segment_id)] = float(new_price)

    @staticmethod
    def _offset_minutes(snapshot: SegmentSnapshot, trip: Trip) -> float:
        if snapshot.category == "stay":
            return 0.0
        base = datetime.combine(trip.start_date, time.min)
        if snapshot.category == "activity":
            base += timedelta(days=1)
        return (snapshot.start_ts - base).total_seconds() / 60

    # ─── Shared helpers ───

    def _reconcile(
        self,
        trip: Trip,
        weights: Weights,
        requests: list[SlotRequest],
        fixed_spend: dict[str, float],
    ) -> ReconciliationResult:
        caps = {b.category: float(b.cap) for b in trip.budget_caps if b.category != "misc"}
        try:
            return reconcile(requests, weights, float(trip.total_budget), caps, fixed_spend)
        except BudgetInfeasible as e:
            logger.warning(f"Trip {trip.id}: {e}")
            return e.result

    async def _apply_plans(
        self,
        db: AsyncSession,
        trip: Trip,
        plans: list[SegmentPlan],
        segments: list[Segment],
        quotes: list[Quote],
    ) -> list[Segment]:
        by_id = {str(s.id): s for s in segments}
        quotes_by_id = {str(q.id): q for q in quotes}

        touched: list[tuple[Segment, Quote | None]] = []
        created: list[Segment] = []
        for plan in plans:
            if plan.action == "update":
                segment = by_id[plan.segment_id]
                if segment.locked:
                    logger.warning(f"Skipping locked segment {segment.id}")
                    continue
            else:
                segment = Segment(id=uuid.uuid4(), trip_id=trip.id, category=plan.category, locked=False)
                created.append(segment)

            quote = quotes_by_id.get(plan.candidate.id)
            if quote is not None:
                self._fill_from_quote(segment, quote)
            segment.start_ts = plan.start_ts
            segment.end_ts = plan.end_ts
            segment.status = plan.status
            touched.append((segment, quote))

        if created:
            db.add_all(created)
            await db.flush()

        for segment, quote in touched:
            if quote is not None:
                self._attach(segment, quote, quotes)
        return [segment for segment, _ in touched]

    @staticmethod
    def _fill_from_quote(segment: Segment, quote: Quote) -> None:
        segment.category = quote.category
        segment.title = quote.title or quote.source
        segment.provider = quote.source
        segment.price = quote.price
        segment.currency = quote.currency
        segment.duration_min = quote.duration_min
        segment.comfort_score = quote.comfort_score
        segment.attributes = dict(quote.attributes or {})

    @staticmethod
    def _attach(segment: Segment, quote: Quote, quotes: list[Quote]) -> None:
        for other in quotes:
            if other.segment_id == segment.id and other is not quote:
                other.segment_id = None
        quote.segment_id = segment.id

    @staticmethod
    def _price(segment: Segment, currency: str, overrides: dict[str, float]) -> float:
        return convert(float(segment.price), segment.currency, currency, overrides)

    def _candidate(self, quote: Quote, currency: str, overrides: dict[str, float]) -> Candidate:
        return Candidate(
            id=str(quote.id),
            category=quote.category,
            source=quote.source,
            title=quote.title or quote.source,
            price=convert(float(quote.price), quote.currency, currency, overrides),
            duration_min=float(quote.duration_min),
            comfort_score=float(quote.comfort_score),
            currency=quote.currency,
            attributes=dict(quote.attributes or {}),
            slot=Attached(str(quote.segment_id)) if quote.segment_id else POOL,
            order=quote.sequence,
        )

    def _snapshot(
        self,
        segment: Segment,
        currency: str,
        overrides: dict[str, float],
        quote_id: str | None = None,
        price: float | None = None,
    ) -> SegmentSnapshot:
        if price is not None:
            price = convert(price, segment.currency, currency, overrides)
        else:
            price = self._price(segment, currency, overrides)
        return SegmentSnapshot(
            id=str(segment.id),
            category=segment.category,
            start_ts=segment.start_ts,
            end_ts=segment.end_ts,
            price=price,
            duration_min=float(segment.duration_min),
            comfort_score=float(segment.comfort_score),
            locked=segment.locked,
            currency=segment.currency,
            status=segment.status,
            quote_id=quote_id,
            title=segment.title,
            provider=segment.provider,
            attributes=dict(segment.attributes or {}),
        )

    def _weights(self, trip: Trip) -> Weights:
        prefs = trip.preferences
        if prefs is None:
            return Weights()
        weights = Weights(cost=prefs.weight_cost, time=prefs.weight_time, comfort=prefs.weight_comfort)
        return validate_weights(weights, settings.weight_sum_tolerance)

    @staticmethod
    def _infeasible(result: ReconciliationResult) -> list[dict]:
        return [
            {
                "category": i.category,
                "slot": i.slot,
                "reason": i.reason,
                "detail": i.detail,
                "cap": i.cap,
            }
            for i in result.infeasible
        ]

    def _budget_summary(self, trip: Trip, segments: list[Segment], overrides: dict[str, float]) -> dict:
        budget = float(trip.total_budget)
        spent: dict[str, float] = defaultdict(float)
        for segment in segments:
            spent[segment.category] += self._price(segment, trip.currency, overrides)
        total = sum(spent.values())
        caps = {b.category: float(b.cap) for b in trip.budget_caps}

        return {
            "currency": trip.currency,
            "total": round(total, 2),
            "total_budget": budget,
            "feasible": total <= budget + 1e-6,
            "deficit": round(max(0.0, total - budget), 2),
            "categories": {
                category: {"spent": round(spent.get(category, 0.0), 2), "cap": caps.get(category)}
                for category in sorted(set(spent) | set(caps), key=category_rank)
            },
        }

    def _metrics_item(self, segment: Segment, currency: str, overrides: dict[str, float]) -> tuple:
        return (
            self._price(segment, currency, overrides),
            float(segment.duration_min),
            float(segment.comfort_score),
        )

    @staticmethod
    def _plan_metrics(items: list[tuple]) -> dict:
        return {
            "total_price": round(sum(i[0] for i in items), 2),
            "total_duration_min": round(sum(i[1] for i in items), 2),
            "avg_comfort": round(sum(i[2] for i in items) / (len(items) or 1), 2),
        }

    # ─── Loaders ───

    async def _get_trip(self, db: AsyncSession, trip_id: uuid.UUID) -> Trip:
        result = await db.execute(
            select(Trip)
            .where(Trip.id == trip_id)
            .options(selectinload(Trip.budget_caps), selectinload(Trip.preferences))
        )
        trip = result.scalar_one_or_none()
        if not trip:
            raise ResourceNotFound("trip", trip_id)
        return trip

    async def _get_segment(self, db: AsyncSession, segment_id: uuid.UUID) -> Segment:
        segment = await db.get(Segment, segment_id)
        if not segment:
            raise ResourceNotFound("segment", segment_id)
        return segment

    async def _segments(self, db: AsyncSession, trip_id: uuid.UUID) -> list[Segment]:
        result = await db.execute(
            select(Segment).where(Segment.trip_id == trip_id).order_by(Segment.start_ts)
        )
        return sorted(
            result.scalars().all(),
            key=lambda s: (s.start_ts, category_rank(s.category)),
        )

    async def _quotes(self, db: AsyncSession, trip_id: uuid.UUID) -> list[Quote]:
        result = await db.execute(
            select(Quote).where(Quote.trip_id == trip_id).order_by(Quote.sequence)
        )
        return list(result.scalars().all())

    async def fx_overrides(self, db: AsyncSession, trip_id: uuid.UUID) -> dict[str, float]:
        """Latest fx_change rate per currency recorded for the trip."""
        result = await db.execute(
            select(TripEvent)
            .where(TripEvent.trip_id == trip_id, TripEvent.kind == "fx_change")
            .order_by(TripEvent.created_at)
        )
        overrides: dict[str, float] = {}
        for event in result.scalars().all():
            payload = event.payload or {}
            if payload.get("currency") and payload.get("rate") is not None:
                overrides[str(payload["currency"]).upper()] = float(payload["rate"])
        return overrides


itinerary_optimizer = ItineraryOptimizer()
