"""Category selector — picks the best candidate of a category that fits its cap."""

from dataclasses import dataclass, field

from tripwise.exceptions import NoFeasibleCandidate
from tripwise.services.scoring_engine import Candidate, ScoredCandidate, Weights, score_candidates

# Money comparisons tolerate float noise below a hundredth of a cent
PRICE_EPSILON = 1e-6


@dataclass
class SlotSelection:
    """The choice for one slot of a category plus its ranked fallbacks."""

    category: str
    slot: int
    ranked: list[ScoredCandidate]
    position: int = 0
    cap: float | None = None
    remaining_cap: float | None = None
    segment_id: str | None = None
    downgrades: list[str] = field(default_factory=list)

    @property
    def chosen(self) -> ScoredCandidate:
        return self.ranked[self.position]

    @property
    def price(self) -> float:
        return self.chosen.price

    def next_cheaper(self, held: set[str]) -> int | None:
        """Position of the next-ranked candidate strictly cheaper than the current one."""
        current = self.chosen.price
        for i in range(self.position + 1, len(self.ranked)):
            scored = self.ranked[i]
            if scored.id in held:
                continue
            if scored.price < current - PRICE_EPSILON:
                return i
        return None

    def downgrade_to(self, position: int) -> None:
        self.downgrades.append(self.chosen.id)
        self.position = position


def remaining_cap(cap: float | None, locked_spend: float = 0.0, sibling_spend: float = 0.0) -> float | None:
    if cap is None:
        return None
    return cap - locked_spend - sibling_spend


def select_candidate(
    category: str,
    candidates: list[Candidate],
    weights: Weights,
    cap: float | None = None,
    locked_spend: float = 0.0,
    sibling_spend: float = 0.0,
    held: set[str] | None = None,
    slot: int = 0,
) -> SlotSelection:
    """
    Choose the highest-utility candidate whose price fits the remaining cap.

    ``locked_spend`` is what locked segments already commit in this category,
    ``sibling_spend`` what other slots of the same category have taken, and
    ``held`` the candidate ids those slots hold. Raises NoFeasibleCandidate
    when nothing fits; callers decide whether to relax or report.
    """
    held = held or set()
    remaining = remaining_cap(cap, locked_spend, sibling_spend)

    scored = score_candidates(candidates, weights)
    feasible = [
        s for s in scored
        if remaining is None or s.price <= remaining + PRICE_EPSILON
    ]

    position = next((i for i, s in enumerate(feasible) if s.id not in held), None)
    if position is None:
        raise NoFeasibleCandidate(category, remaining)

    return SlotSelection(
        category=category,
        slot=slot,
        ranked=feasible,
        position=position,
        cap=cap,
        remaining_cap=remaining,
    )
