import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tripwise.database import get_db
from tripwise.models.itinerary import Quote
from tripwise.models.trip import BudgetCap, Trip, TripPreferences
from tripwise.schemas.itinerary import QuoteCreate, QuoteResponse
from tripwise.schemas.trip import (
    CreateTrip,
    PreferencesPatch,
    ReplaceBudgets,
    TripResponse,
    TripSummary,
)
from tripwise.services.scoring_engine import Weights, rebalance_weights

logger = logging.getLogger(__name__)

router = APIRouter()


def _build_title(origin: str, destination: str) -> str:
    return f"{origin} → {destination}"


async def get_trip_or_404(db: AsyncSession, trip_id: uuid.UUID) -> Trip:
    """Load a trip with caps and preferences, refreshing anything already in the session."""
    result = await db.execute(
        select(Trip)
        .where(Trip.id == trip_id)
        .options(selectinload(Trip.budget_caps), selectinload(Trip.preferences))
        .execution_options(populate_existing=True)
    )
    trip = result.scalar_one_or_none()
    if not trip:
        raise HTTPException(status_code=404, detail="Trip not found")
    return trip


@router.post("", status_code=201, response_model=TripResponse)
async def create_trip(req: CreateTrip, db: AsyncSession = Depends(get_db)):
    """Create a trip with its category caps and preference weights."""
    trip = Trip(
        title=req.title or _build_title(req.origin, req.destination),
        origin=req.origin,
        destination=req.destination,
        start_date=req.start_date,
        end_date=req.end_date,
        currency=req.currency,
        total_budget=req.total_budget,
        activity_slots=req.activity_slots,
        status="draft",
    )
    for cap in req.budget_caps:
        trip.budget_caps.append(BudgetCap(category=cap.category, cap=cap.cap))
    trip.preferences = TripPreferences(
        weight_cost=req.preferences.weight_cost,
        weight_time=req.preferences.weight_time,
        weight_comfort=req.preferences.weight_comfort,
    )

    db.add(trip)
    await db.commit()
    logger.info(f"Created trip {trip.id}: {trip.title} ({trip.currency} {trip.total_budget})")

    return TripResponse.model_validate(await get_trip_or_404(db, trip.id))


@router.get("", response_model=list[TripSummary])
async def list_trips(
    status: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """List trips, newest first."""
    query = select(Trip).order_by(Trip.created_at.desc())
    if status:
        query = query.where(Trip.status == status)
    query = query.offset((page - 1) * limit).limit(limit)

    result = await db.execute(query)
    return [TripSummary.model_validate(t) for t in result.scalars().all()]


@router.get("/{trip_id}", response_model=TripResponse)
async def get_trip(trip_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return TripResponse.model_validate(await get_trip_or_404(db, trip_id))


@router.delete("/{trip_id}", status_code=204)
async def delete_trip(trip_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    """Delete a trip; segments, quotes and events go with it."""
    trip = await get_trip_or_404(db, trip_id)
    await db.delete(trip)
    await db.commit()
    logger.info(f"Deleted trip {trip_id}")


@router.post("/{trip_id}/confirm", response_model=TripResponse)
async def confirm_trip(trip_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    trip = await get_trip_or_404(db, trip_id)
    if trip.status != "optimized":
        raise HTTPException(status_code=400, detail="Can only confirm optimized trips")

    trip.status = "confirmed"
    await db.commit()
    return TripResponse.model_validate(await get_trip_or_404(db, trip_id))


@router.put("/{trip_id}/budgets", response_model=TripResponse)
async def replace_budgets(
    trip_id: uuid.UUID,
    req: ReplaceBudgets,
    db: AsyncSession = Depends(get_db),
):
    """Replace all category caps. Their sum may not exceed the trip budget."""
    trip = await get_trip_or_404(db, trip_id)

    cap_total = sum(c.cap for c in req.budget_caps)
    if cap_total > float(trip.total_budget) + 1e-6:
        raise HTTPException(
            status_code=400,
            detail=f"Category caps sum to {cap_total:.2f}, above the total budget of {float(trip.total_budget):.2f}",
        )

    # Update in place so the (trip, category) unique constraint never sees two rows
    wanted = {c.category: c.cap for c in req.budget_caps}
    for existing in list(trip.budget_caps):
        if existing.category in wanted:
            existing.cap = wanted.pop(existing.category)
        else:
            trip.budget_caps.remove(existing)
    for category, cap in wanted.items():
        trip.budget_caps.append(BudgetCap(category=category, cap=cap))

    await db.commit()
    return TripResponse.model_validate(await get_trip_or_404(db, trip_id))


@router.patch("/{trip_id}/preferences", response_model=TripResponse)
async def update_preference(
    trip_id: uuid.UUID,
    req: PreferencesPatch,
    db: AsyncSession = Depends(get_db),
):
    """Set one weight; the remainder is split evenly between the other two."""
    trip = await get_trip_or_404(db, trip_id)
    prefs = trip.preferences

    current = (
        Weights(cost=prefs.weight_cost, time=prefs.weight_time, comfort=prefs.weight_comfort)
        if prefs
        else Weights()
    )
    updated = rebalance_weights(current, req.key, req.value)

    if prefs is None:
        prefs = TripPreferences(trip_id=trip.id)
        trip.preferences = prefs
    prefs.weight_cost = updated.cost
    prefs.weight_time = updated.time
    prefs.weight_comfort = updated.comfort

    await db.commit()
    return TripResponse.model_validate(await get_trip_or_404(db, trip_id))


@router.post("/{trip_id}/quotes", status_code=201, response_model=QuoteResponse)
async def add_quote(
    trip_id: uuid.UUID,
    req: QuoteCreate,
    db: AsyncSession = Depends(get_db),
):
    """Add a candidate quote to the trip's pool."""
    trip = await get_trip_or_404(db, trip_id)

    result = await db.execute(
        select(func.max(Quote.sequence)).where(Quote.trip_id == trip.id)
    )
    last = result.scalar()

    quote = Quote(
        trip_id=trip.id,
        category=req.category,
        source=req.source,
        title=req.title,
        price=req.price,
        currency=(req.currency or trip.currency).upper(),
        duration_min=req.duration_min,
        comfort_score=req.comfort_score,
        attributes=req.attributes,
        sequence=(last + 1) if last is not None else 0,
    )
    db.add(quote)
    await db.commit()
    return QuoteResponse.model_validate(quote)


@router.get("/{trip_id}/quotes", response_model=list[QuoteResponse])
async def list_quotes(
    trip_id: uuid.UUID,
    category: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    trip = await get_trip_or_404(db, trip_id)
    query = select(Quote).where(Quote.trip_id == trip.id).order_by(Quote.sequence)
    if category:
        query = query.where(Quote.category == category)

    result = await db.execute(query)
    return [QuoteResponse.model_validate(q) for q in result.scalars().all()]
