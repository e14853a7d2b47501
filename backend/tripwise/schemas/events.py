import uuid
from datetime import date, datetime

from pydantic import BaseModel, Field, ValidationError, model_validator

from tripwise.models.events import EVENT_KINDS, EVENT_SEVERITIES


class PriceChangePayload(BaseModel):
    segment_id: uuid.UUID | None = None
    new_price: float | None = Field(None, ge=0)
    category: str | None = None
    quote_prices: dict[uuid.UUID, float] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_target(self) -> "PriceChangePayload":
        if not (self.segment_id or self.category or self.quote_prices):
            raise ValueError("price_change needs segment_id, category or quote_prices")
        if self.new_price is not None and self.segment_id is None:
            raise ValueError("new_price requires segment_id")
        if any(p < 0 for p in self.quote_prices.values()):
            raise ValueError("quote prices must be non-negative")
        return self


class FxChangePayload(BaseModel):
    currency: str = Field(min_length=3, max_length=3)
    rate: float = Field(gt=0)


class DelayPayload(BaseModel):
    segment_id: uuid.UUID
    delay_min: int = Field(ge=0)


class WeatherPayload(BaseModel):
    date_from: date
    date_to: date
    summary: str | None = None

    @model_validator(mode="after")
    def validate_window(self) -> "WeatherPayload":
        if self.date_to < self.date_from:
            raise ValueError("date_to must not be before date_from")
        return self


PAYLOAD_MODELS = {
    "price_change": PriceChangePayload,
    "fx_change": FxChangePayload,
    "delay": DelayPayload,
    "weather": WeatherPayload,
}


class EventCreate(BaseModel):
    kind: str
    payload: dict = Field(default_factory=dict)
    severity: str = "info"

    @model_validator(mode="after")
    def validate_payload(self) -> "EventCreate":
        if self.kind not in EVENT_KINDS:
            raise ValueError(f"kind must be one of {', '.join(EVENT_KINDS)}")
        if self.severity not in EVENT_SEVERITIES:
            raise ValueError(f"severity must be one of {', '.join(EVENT_SEVERITIES)}")
        try:
            parsed = PAYLOAD_MODELS[self.kind].model_validate(self.payload)
        except ValidationError as e:
            raise ValueError(f"Invalid {self.kind} payload: {e.errors()[0]['msg']}") from e
        self.payload = parsed.model_dump(mode="json", exclude_none=True)
        if self.kind == "fx_change":
            self.payload["currency"] = self.payload["currency"].upper()
        return self


class EventResponse(BaseModel):
    id: uuid.UUID
    trip_id: uuid.UUID
    kind: str
    payload: dict
    severity: str
    created_at: datetime

    model_config = {"from_attributes": True}
