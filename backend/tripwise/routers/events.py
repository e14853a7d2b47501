"""Events router — record disruptions against a trip and replan around them."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tripwise.database import get_db
from tripwise.exceptions import ResourceNotFound, StalePreferences
from tripwise.models.events import TripEvent
from tripwise.routers.trips import get_trip_or_404
from tripwise.schemas.events import EventCreate, EventResponse
from tripwise.schemas.itinerary import ReplanResponse, SegmentResponse
from tripwise.services.itinerary_optimizer import itinerary_optimizer

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{trip_id}/events", status_code=201, response_model=EventResponse)
async def record_event(
    trip_id: uuid.UUID,
    req: EventCreate,
    db: AsyncSession = Depends(get_db),
):
    """Record an event. Replanning is a separate, explicit call."""
    trip = await get_trip_or_404(db, trip_id)

    event = TripEvent(trip_id=trip.id, kind=req.kind, payload=req.payload, severity=req.severity)
    db.add(event)
    await db.commit()
    await db.refresh(event)

    logger.info(f"Recorded {event.kind} event {event.id} on trip {trip.id}")
    return EventResponse.model_validate(event)


@router.get("/{trip_id}/events", response_model=list[EventResponse])
async def list_events(
    trip_id: uuid.UUID,
    kind: str | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    trip = await get_trip_or_404(db, trip_id)
    query = select(TripEvent).where(TripEvent.trip_id == trip.id).order_by(TripEvent.created_at)
    if kind:
        query = query.where(TripEvent.kind == kind)

    result = await db.execute(query)
    return [EventResponse.model_validate(e) for e in result.scalars().all()]


@router.post("/{trip_id}/events/{event_id}/replan", response_model=ReplanResponse)
async def replan_for_event(
    trip_id: uuid.UUID,
    event_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    """Re-select only the segments the event invalidates; everything else is left as is."""
    try:
        result = await itinerary_optimizer.replan(db, trip_id, event_id)
    except ResourceNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StalePreferences as e:
        raise HTTPException(status_code=422, detail=str(e))

    return ReplanResponse(
        trip_id=result["trip_id"],
        event_id=result["event_id"],
        event_kind=result["event_kind"],
        impacted_segment_ids=result["impacted_segment_ids"],
        reasons=result["reasons"],
        changed_segments=[SegmentResponse.model_validate(s) for s in result["changed_segments"]],
        unchanged_segments=[SegmentResponse.model_validate(s) for s in result["unchanged_segments"]],
        errors=result["errors"],
        budget=result["budget"],
    )
