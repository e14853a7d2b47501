"""Itinerary router — optimize, compare, and per-segment lock / alternatives / replace."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tripwise.database import get_db
from tripwise.exceptions import ResourceNotFound, StalePreferences
from tripwise.models.itinerary import Segment
from tripwise.routers.trips import get_trip_or_404
from tripwise.schemas.itinerary import (
    CompareRequest,
    CompareResponse,
    LockRequest,
    OptimizeResponse,
    QuoteResponse,
    ReplaceRequest,
    SegmentResponse,
)
from tripwise.services.budget_reconciler import category_rank
from tripwise.services.itinerary_optimizer import itinerary_optimizer
from tripwise.services.scoring_engine import Weights

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/trips/{trip_id}/optimize", response_model=OptimizeResponse)
async def optimize_trip(trip_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    """
    Build or refresh the itinerary: seed missing quotes, pick one per slot,
    reconcile against the budget and persist. Locked segments are kept.
    """
    try:
        result = await itinerary_optimizer.optimize(db, trip_id)
    except ResourceNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StalePreferences as e:
        raise HTTPException(status_code=422, detail=str(e))

    return OptimizeResponse(
        trip_id=result["trip_id"],
        status=result["status"],
        segments=[SegmentResponse.model_validate(s) for s in result["segments"]],
        infeasible_categories=result["infeasible_categories"],
        budget=result["budget"],
        sourcing_errors=result["sourcing_errors"],
    )


@router.post("/trips/{trip_id}/compare", response_model=CompareResponse)
async def compare_weights(
    trip_id: uuid.UUID,
    req: CompareRequest,
    db: AsyncSession = Depends(get_db),
):
    """Preview the plan proposal weights would produce. Nothing is saved."""
    proposal = Weights(cost=req.weight_cost, time=req.weight_time, comfort=req.weight_comfort)
    try:
        result = await itinerary_optimizer.compare(db, trip_id, proposal)
    except ResourceNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StalePreferences as e:
        raise HTTPException(status_code=422, detail=str(e))
    return CompareResponse(**result)


@router.get("/trips/{trip_id}/segments", response_model=list[SegmentResponse])
async def list_segments(trip_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    """Segments of a trip in start order."""
    trip = await get_trip_or_404(db, trip_id)
    result = await db.execute(
        select(Segment).where(Segment.trip_id == trip.id).order_by(Segment.start_ts)
    )
    segments = sorted(
        result.scalars().all(), key=lambda s: (s.start_ts, category_rank(s.category))
    )
    return [SegmentResponse.model_validate(s) for s in segments]


@router.put("/segments/{segment_id}/lock", response_model=SegmentResponse)
async def set_segment_lock(
    segment_id: uuid.UUID,
    req: LockRequest,
    db: AsyncSession = Depends(get_db),
):
    try:
        segment = await itinerary_optimizer.set_lock(db, segment_id, req.locked)
    except ResourceNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return SegmentResponse.model_validate(segment)


@router.get("/segments/{segment_id}/alternatives", response_model=list[QuoteResponse])
async def list_alternatives(segment_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    """Up to three cheaper-first pool quotes for the segment's category."""
    try:
        quotes = await itinerary_optimizer.list_alternatives(db, segment_id)
    except ResourceNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return [QuoteResponse.model_validate(q) for q in quotes]


@router.post("/segments/{segment_id}/replace", response_model=SegmentResponse)
async def replace_segment(
    segment_id: uuid.UUID,
    req: ReplaceRequest,
    db: AsyncSession = Depends(get_db),
):
    """Swap a segment for a chosen quote. No budget check; the lock flag is kept."""
    try:
        segment = await itinerary_optimizer.replace(db, segment_id, req.quote_id)
    except ResourceNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return SegmentResponse.model_validate(segment)
