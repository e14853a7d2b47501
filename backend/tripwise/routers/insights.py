"""Insights router — trade-off explanation, weather tips and activity ideas for a trip."""

import logging
import uuid
from datetime import date, timedelta

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tripwise.data.currency import convert
from tripwise.database import get_db
from tripwise.models.itinerary import Segment
from tripwise.routers.trips import get_trip_or_404
from tripwise.services.itinerary_optimizer import itinerary_optimizer
from tripwise.services.trip_advisor import trip_advisor

logger = logging.getLogger(__name__)

router = APIRouter()


class SuggestionRequest(BaseModel):
    day: date | None = None
    interests: list[str] = Field(default_factory=list)
    budget: float | None = Field(None, gt=0)


@router.get("/{trip_id}/explanation")
async def explain_trip(trip_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    """Plain-language bullets on why the current segments were picked."""
    trip = await get_trip_or_404(db, trip_id)
    overrides = await itinerary_optimizer.fx_overrides(db, trip.id)
    result = await db.execute(
        select(Segment).where(Segment.trip_id == trip.id).order_by(Segment.start_ts)
    )
    segments = [
        {
            "category": s.category,
            "provider": s.provider,
            "price": convert(float(s.price), s.currency, trip.currency, overrides),
            "duration_min": s.duration_min,
            "comfort_score": float(s.comfort_score),
        }
        for s in result.scalars().all()
    ]

    prefs = trip.preferences
    weights = {
        "weight_cost": prefs.weight_cost if prefs else 0.34,
        "weight_time": prefs.weight_time if prefs else 0.33,
        "weight_comfort": prefs.weight_comfort if prefs else 0.33,
    }
    points = await trip_advisor.explain(
        trip.origin, trip.destination, segments, weights, trip.currency
    )
    return {"trip_id": str(trip.id), "explanation": points}


@router.get("/{trip_id}/weather")
async def weather_tips(trip_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    trip = await get_trip_or_404(db, trip_id)
    info = await trip_advisor.weather_and_tips(trip.destination, trip.start_date, trip.end_date)
    return {"trip_id": str(trip.id), "destination": trip.destination, **info}


@router.post("/{trip_id}/activity-suggestions")
async def suggest_activities(
    trip_id: uuid.UUID,
    req: SuggestionRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Activity ideas for one day of the trip. Suggestions are not added to the
    quote pool; post a chosen one to /quotes to make it a candidate.
    """
    trip = await get_trip_or_404(db, trip_id)
    day = req.day or min(trip.start_date + timedelta(days=1), trip.end_date)

    budget = req.budget
    if budget is None:
        caps = {b.category: float(b.cap) for b in trip.budget_caps}
        budget = caps.get("activity") or float(trip.total_budget)

    suggestions = await trip_advisor.suggest_activities(
        trip.destination, day, req.interests, budget, trip.currency
    )
    return {"trip_id": str(trip.id), "day": day.isoformat(), "suggestions": suggestions}
