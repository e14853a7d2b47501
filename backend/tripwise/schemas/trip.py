import uuid
from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from tripwise.config import settings
from tripwise.models.trip import BUDGET_CATEGORIES


class BudgetCapIn(BaseModel):
    category: str
    cap: float = Field(ge=0)

    @field_validator("category")
    @classmethod
    def validate_category(cls, v: str) -> str:
        if v not in BUDGET_CATEGORIES:
            raise ValueError(f"category must be one of {', '.join(BUDGET_CATEGORIES)}")
        return v


class BudgetCapResponse(BaseModel):
    category: str
    cap: float

    model_config = {"from_attributes": True}


class PreferencesIn(BaseModel):
    weight_cost: float = Field(0.34, ge=0, le=1)
    weight_time: float = Field(0.33, ge=0, le=1)
    weight_comfort: float = Field(0.33, ge=0, le=1)

    @model_validator(mode="after")
    def validate_sum(self) -> "PreferencesIn":
        total = self.weight_cost + self.weight_time + self.weight_comfort
        if abs(total - 1.0) > settings.weight_sum_tolerance:
            raise ValueError(f"Preference weights must sum to 1 (got {total:.4f})")
        return self


class PreferencesResponse(BaseModel):
    weight_cost: float
    weight_time: float
    weight_comfort: float

    model_config = {"from_attributes": True}


class PreferencesPatch(BaseModel):
    """Change one weight; the other two share the remainder."""

    key: str
    value: float = Field(ge=0, le=1)

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        v = v.removeprefix("weight_")
        if v not in ("cost", "time", "comfort"):
            raise ValueError("key must be one of cost, time, comfort")
        return v


def _check_caps(caps: list[BudgetCapIn], total_budget: float) -> None:
    seen = set()
    for cap in caps:
        if cap.category in seen:
            raise ValueError(f"Duplicate cap for category '{cap.category}'")
        seen.add(cap.category)
    cap_total = sum(c.cap for c in caps)
    if cap_total > total_budget + 1e-6:
        raise ValueError(
            f"Category caps sum to {cap_total:.2f}, above the total budget of {total_budget:.2f}"
        )


class CreateTrip(BaseModel):
    title: str | None = None
    origin: str = Field(min_length=1, max_length=100)
    destination: str = Field(min_length=1, max_length=100)
    start_date: date
    end_date: date
    currency: str = Field("INR", min_length=3, max_length=3)
    total_budget: float = Field(gt=0)
    activity_slots: int = Field(1, ge=1, le=10)
    budget_caps: list[BudgetCapIn] = Field(default_factory=list)
    preferences: PreferencesIn = Field(default_factory=PreferencesIn)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode="after")
    def validate_trip(self) -> "CreateTrip":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        _check_caps(self.budget_caps, self.total_budget)
        return self


class ReplaceBudgets(BaseModel):
    budget_caps: list[BudgetCapIn]

    @model_validator(mode="after")
    def validate_unique(self) -> "ReplaceBudgets":
        # the total is checked against the stored trip in the router
        _check_caps(self.budget_caps, float("inf"))
        return self


class TripResponse(BaseModel):
    id: uuid.UUID
    title: str | None
    origin: str
    destination: str
    start_date: date
    end_date: date
    currency: str
    total_budget: float
    activity_slots: int
    status: str
    budget_caps: list[BudgetCapResponse]
    preferences: PreferencesResponse | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TripSummary(BaseModel):
    id: uuid.UUID
    title: str | None
    origin: str
    destination: str
    start_date: date
    end_date: date
    currency: str
    total_budget: float
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}
