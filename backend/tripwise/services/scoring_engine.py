"""Scoring engine — ranks candidate quotes with configurable cost/time/comfort weights."""

from dataclasses import dataclass, field

from tripwise.exceptions import StalePreferences

WEIGHT_KEYS = ("cost", "time", "comfort")

# Utilities are compared at this precision so float noise never reorders ties
UTILITY_PRECISION = 9


@dataclass(frozen=True)
class Attached:
    """Quote bound to a chosen segment."""

    segment_id: str


@dataclass(frozen=True)
class Pool:
    """Unattached quote, available as a candidate or alternative."""


POOL = Pool()


@dataclass
class Weights:
    cost: float = 0.34
    time: float = 0.33
    comfort: float = 0.33

    @property
    def total(self) -> float:
        return self.cost + self.time + self.comfort

    def as_dict(self) -> dict[str, float]:
        return {"weight_cost": self.cost, "weight_time": self.time, "weight_comfort": self.comfort}


@dataclass
class Candidate:
    """One priced option for a category, with its price in the trip currency."""

    id: str
    category: str
    source: str
    price: float
    duration_min: float
    comfort_score: float
    title: str = ""
    currency: str = "INR"
    attributes: dict = field(default_factory=dict)
    slot: Attached | Pool = POOL
    order: int = 0

    @property
    def is_pool(self) -> bool:
        return isinstance(self.slot, Pool)


@dataclass
class ScoredCandidate:
    candidate: Candidate
    utility: float
    norm_price: float
    norm_duration: float
    norm_comfort: float

    @property
    def price(self) -> float:
        return self.candidate.price

    @property
    def id(self) -> str:
        return self.candidate.id


def validate_weights(weights: Weights, tolerance: float = 0.01) -> Weights:
    """Reject weights outside [0, 1] or not summing to 1 within tolerance."""
    for key in WEIGHT_KEYS:
        value = getattr(weights, key)
        if value < 0 or value > 1:
            raise StalePreferences(weights.total, f"weight_{key}={value} is outside [0, 1]")
    if abs(weights.total - 1.0) > tolerance:
        raise StalePreferences(weights.total)
    return weights


def rebalance_weights(weights: Weights, key: str, value: float) -> Weights:
    """
    Set one weight and split the remainder evenly between the other two.

    rebalance_weights(w, "cost", 0.6) -> cost=0.6, time=0.2, comfort=0.2
    """
    if key not in WEIGHT_KEYS:
        raise ValueError(f"Unknown weight '{key}', expected one of {', '.join(WEIGHT_KEYS)}")
    value = min(max(value, 0.0), 1.0)
    other = (1.0 - value) / 2
    values = {k: other for k in WEIGHT_KEYS}
    values[key] = value
    # Absorb rounding drift in the last weight so the triple sums to exactly 1
    last = next(k for k in reversed(WEIGHT_KEYS) if k != key)
    values[last] = 1.0 - sum(v for k, v in values.items() if k != last)
    return Weights(**values)


def normalize(values: list[float]) -> list[float]:
    """Min–max normalize to [0, 1]; a degenerate set (all equal) maps to 0."""
    if not values:
        return []
    low = min(values)
    high = max(values)
    if high == low:
        return [0.0 for _ in values]
    span = high - low
    return [(v - low) / span for v in values]


def score_candidates(candidates: list[Candidate], weights: Weights) -> list[ScoredCandidate]:
    """
    Score and rank candidates of one category.

    Lower price and duration are better, higher comfort is better. Returns
    candidates sorted best-first; ties go to the lower price, then the shorter
    duration, then the earlier insertion order.
    """
    if not candidates:
        return []

    prices = normalize([c.price for c in candidates])
    durations = normalize([c.duration_min for c in candidates])
    comforts = normalize([c.comfort_score for c in candidates])

    scored = []
    for candidate, p, d, c in zip(candidates, prices, durations, comforts):
        utility = (
            weights.cost * (1.0 - p)
            + weights.time * (1.0 - d)
            + weights.comfort * c
        )
        utility = min(max(utility, 0.0), 1.0)
        scored.append(ScoredCandidate(
            candidate=candidate,
            utility=round(utility, UTILITY_PRECISION),
            norm_price=p,
            norm_duration=d,
            norm_comfort=c,
        ))

    scored.sort(key=rank_key)
    return scored


def rank_key(scored: ScoredCandidate) -> tuple:
    c = scored.candidate
    return (-scored.utility, c.price, c.duration_min, c.order)
