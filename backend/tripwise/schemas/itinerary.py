import uuid
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from tripwise.models.itinerary import SEGMENT_CATEGORIES


class SegmentResponse(BaseModel):
    id: uuid.UUID
    trip_id: uuid.UUID
    category: str
    title: str
    provider: str
    start_ts: datetime
    end_ts: datetime
    duration_min: int
    comfort_score: float
    price: float
    currency: str
    locked: bool
    status: str
    attributes: dict

    model_config = {"from_attributes": True}


class QuoteCreate(BaseModel):
    category: str
    source: str = Field(min_length=1, max_length=200)
    title: str | None = None
    price: float = Field(ge=0)
    currency: str | None = Field(None, min_length=3, max_length=3)
    duration_min: int = Field(ge=0)
    comfort_score: float = Field(ge=0, le=10)
    attributes: dict = Field(default_factory=dict)

    @field_validator("category")
    @classmethod
    def validate_category(cls, v: str) -> str:
        if v not in SEGMENT_CATEGORIES:
            raise ValueError(f"category must be one of {', '.join(SEGMENT_CATEGORIES)}")
        return v


class QuoteResponse(BaseModel):
    id: uuid.UUID
    trip_id: uuid.UUID
    segment_id: uuid.UUID | None
    category: str
    source: str
    title: str | None
    price: float
    currency: str
    duration_min: int
    comfort_score: float
    attributes: dict

    model_config = {"from_attributes": True}


class InfeasibleCategory(BaseModel):
    category: str
    slot: int
    reason: str
    detail: str
    cap: float | None = None


class CategorySpend(BaseModel):
    spent: float
    cap: float | None = None


class BudgetSummary(BaseModel):
    currency: str
    total: float
    total_budget: float
    feasible: bool
    deficit: float
    categories: dict[str, CategorySpend] = {}


class OptimizeResponse(BaseModel):
    trip_id: uuid.UUID
    status: str
    segments: list[SegmentResponse]
    infeasible_categories: list[InfeasibleCategory]
    budget: BudgetSummary
    sourcing_errors: dict[str, str] = {}


class ReplanError(BaseModel):
    segment_id: str | None = None
    detail: str


class ReplanResponse(BaseModel):
    trip_id: uuid.UUID
    event_id: uuid.UUID
    event_kind: str
    impacted_segment_ids: list[str]
    reasons: dict[str, str] = {}
    changed_segments: list[SegmentResponse]
    unchanged_segments: list[SegmentResponse]
    errors: list[ReplanError]
    budget: BudgetSummary


class CompareRequest(BaseModel):
    weight_cost: float = Field(ge=0, le=1)
    weight_time: float = Field(ge=0, le=1)
    weight_comfort: float = Field(ge=0, le=1)


class PlanMetrics(BaseModel):
    total_price: float
    total_duration_min: float
    avg_comfort: float


class ProposalSegment(BaseModel):
    category: str
    quote_id: str
    title: str
    provider: str
    price: float
    duration_min: float
    comfort_score: float
    utility: float


class CompareResponse(BaseModel):
    trip_id: uuid.UUID
    current: PlanMetrics
    proposal: PlanMetrics
    deltas: PlanMetrics
    proposal_weights: dict[str, float]
    proposal_segments: list[ProposalSegment]
    infeasible_categories: list[InfeasibleCategory]
    feasible: bool


class LockRequest(BaseModel):
    locked: bool


class ReplaceRequest(BaseModel):
    quote_id: uuid.UUID
