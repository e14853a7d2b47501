"""Budget reconciler — joint budget check with iterative downgrade across categories."""

import logging
from dataclasses import dataclass, field

from tripwise.exceptions import BudgetInfeasible, NoFeasibleCandidate, SourcingUnavailable
from tripwise.services.category_selector import PRICE_EPSILON, SlotSelection, select_candidate
from tripwise.services.scoring_engine import Candidate, Weights

logger = logging.getLogger(__name__)

CATEGORY_ORDER = ("transport", "stay", "activity")


def category_rank(category: str) -> int:
    try:
        return CATEGORY_ORDER.index(category)
    except ValueError:
        return len(CATEGORY_ORDER)


@dataclass
class SlotRequest:
    """One slot to fill: its category, its candidate pool, and the segment it refills."""

    category: str
    slot: int
    candidates: list[Candidate]
    segment_id: str | None = None
    sourcing_error: str | None = None


@dataclass
class InfeasibleSlot:
    category: str
    slot: int
    reason: str
    detail: str
    cap: float | None = None
    segment_id: str | None = None


@dataclass
class ReconciliationResult:
    selections: list[SlotSelection]
    infeasible: list[InfeasibleSlot]
    locked_total: float
    budget: float
    iterations: int = 0
    downgraded: list[str] = field(default_factory=list)

    @property
    def selected_total(self) -> float:
        return sum(s.price for s in self.selections)

    @property
    def total(self) -> float:
        return self.locked_total + self.selected_total

    @property
    def deficit(self) -> float:
        return max(0.0, self.total - self.budget)

    @property
    def feasible(self) -> bool:
        return self.total <= self.budget + PRICE_EPSILON

    @property
    def infeasible_categories(self) -> list[str]:
        return sorted({i.category for i in self.infeasible}, key=category_rank)


def select_all(
    requests: list[SlotRequest],
    weights: Weights,
    caps: dict[str, float],
    locked_spend: dict[str, float],
) -> tuple[list[SlotSelection], list[InfeasibleSlot]]:
    """Run the category selector for every requested slot, category by category."""
    selections: list[SlotSelection] = []
    infeasible: list[InfeasibleSlot] = []

    ordered = sorted(requests, key=lambda r: (category_rank(r.category), r.slot))
    for request in ordered:
        cap = caps.get(request.category)
        siblings = [s for s in selections if s.category == request.category]
        sibling_spend = sum(s.price for s in siblings)
        held = {s.chosen.id for s in siblings}

        try:
            if not request.candidates:
                raise SourcingUnavailable(
                    request.category, request.sourcing_error or "no candidates"
                )
            selection = select_candidate(
                request.category,
                request.candidates,
                weights,
                cap=cap,
                locked_spend=locked_spend.get(request.category, 0.0),
                sibling_spend=sibling_spend,
                held=held,
                slot=request.slot,
            )
        except NoFeasibleCandidate as e:
            relaxed = None
            if not isinstance(e, SourcingUnavailable):
                relaxed = _fit_by_downgrading_siblings(
                    request, siblings, weights, cap, locked_spend.get(request.category, 0.0)
                )
            if relaxed is None:
                logger.info(f"{request.category}[{request.slot}] infeasible: {e.detail}")
                infeasible.append(InfeasibleSlot(
                    category=request.category,
                    slot=request.slot,
                    reason=e.reason,
                    detail=e.detail,
                    cap=cap,
                    segment_id=request.segment_id,
                ))
                continue
            selection = relaxed

        selection.segment_id = request.segment_id
        selections.append(selection)

    return selections, infeasible


def _fit_by_downgrading_siblings(
    request: SlotRequest,
    siblings: list[SlotSelection],
    weights: Weights,
    cap: float | None,
    locked: float,
) -> SlotSelection | None:
    """
    Free cap for a slot by stepping its already-filled siblings down to
    strictly cheaper candidates, one largest-saving step at a time. Sibling
    choices are restored when no step makes the slot fit.
    """
    if not siblings:
        return None

    saved = [(s.position, list(s.downgrades)) for s in siblings]
    while True:
        step = _best_downgrade(siblings)
        if step is None:
            break
        sibling, position, _ = step
        sibling.downgrade_to(position)
        try:
            selection = select_candidate(
                request.category,
                request.candidates,
                weights,
                cap=cap,
                locked_spend=locked,
                sibling_spend=sum(s.price for s in siblings),
                held={s.chosen.id for s in siblings},
                slot=request.slot,
            )
        except NoFeasibleCandidate:
            continue
        logger.info(
            f"{request.category}[{request.slot}] fits after downgrading "
            f"{', '.join(f'{s.category}[{s.slot}]' for s in siblings if s.downgrades)}"
        )
        return selection

    for sibling, (position, downgrades) in zip(siblings, saved):
        sibling.position = position
        sibling.downgrades = downgrades
    return None


def reconcile(
    requests: list[SlotRequest],
    weights: Weights,
    budget: float,
    caps: dict[str, float] | None = None,
    locked_spend: dict[str, float] | None = None,
) -> ReconciliationResult:
    """
    Select every slot, then downgrade until the joint total fits the budget.

    ``locked_spend`` maps category to the price already committed by segments
    that are not being re-selected; it counts against both the category cap
    and the overall budget. Raises BudgetInfeasible carrying the cheapest
    reachable selection when no further downgrade is possible.
    """
    caps = caps or {}
    locked_spend = locked_spend or {}

    selections, infeasible = select_all(requests, weights, caps, locked_spend)
    result = ReconciliationResult(
        selections=selections,
        infeasible=infeasible,
        locked_total=sum(locked_spend.values()),
        budget=budget,
    )

    max_iterations = sum(len(s.ranked) for s in selections)
    while not result.feasible and result.iterations < max_iterations:
        step = _best_downgrade(selections)
        if step is None:
            break
        selection, position, saving = step
        logger.debug(
            f"Downgrade {selection.category}[{selection.slot}]: "
            f"{selection.chosen.id} -> {selection.ranked[position].id} (saves {saving:.2f})"
        )
        result.downgraded.append(f"{selection.category}[{selection.slot}]")
        selection.downgrade_to(position)
        result.iterations += 1

    if not result.feasible:
        logger.warning(
            f"Budget infeasible after {result.iterations} downgrades: "
            f"total {result.total:.2f} vs budget {budget:.2f}"
        )
        raise BudgetInfeasible(result)

    return result


def _best_downgrade(selections: list[SlotSelection]) -> tuple[SlotSelection, int, float] | None:
    # weight_cost is trip-wide, so the highest-weight_cost rule ties across
    # categories; the largest saving decides, then category order, then slot.
    options = []
    for selection in selections:
        held = {
            s.chosen.id for s in selections
            if s is not selection and s.category == selection.category
        }
        position = selection.next_cheaper(held)
        if position is None:
            continue
        saving = selection.price - selection.ranked[position].price
        options.append((selection, position, saving))

    if not options:
        return None

    return max(
        options,
        key=lambda o: (o[2], -category_rank(o[0].category), -o[0].slot),
    )
