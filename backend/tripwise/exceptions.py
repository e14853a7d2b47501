"""Optimizer error taxonomy."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tripwise.services.budget_reconciler import ReconciliationResult


class OptimizerError(Exception):
    """Base class for itinerary optimization failures."""


class NoFeasibleCandidate(OptimizerError):
    """Every candidate of a category exceeds what is left of its cap."""

    reason = "no_feasible_candidate"

    def __init__(self, category: str, cap: float | None = None, detail: str | None = None):
        self.category = category
        self.cap = cap
        self.detail = detail or (
            f"No {category} candidate fits the remaining cap of {cap:.2f}"
            if cap is not None
            else f"No {category} candidates available"
        )
        super().__init__(self.detail)


class SourcingUnavailable(NoFeasibleCandidate):
    """The quote provider failed or returned nothing for a category."""

    reason = "sourcing_unavailable"

    def __init__(self, category: str, detail: str = "provider returned no candidates"):
        super().__init__(category, None, f"Sourcing unavailable for {category}: {detail}")


class BudgetInfeasible(OptimizerError):
    """The joint total stays above the trip budget after every downgrade."""

    def __init__(self, result: ReconciliationResult):
        self.result = result
        self.achieved_total = result.total
        self.deficit = result.deficit
        super().__init__(
            f"Budget infeasible: best achievable total {result.total:.2f} "
            f"exceeds budget {result.budget:.2f} by {result.deficit:.2f}"
        )


class StalePreferences(OptimizerError):
    """Preference weights are out of range or do not sum to 1."""

    def __init__(self, total: float, detail: str | None = None):
        self.total = total
        super().__init__(detail or f"Preference weights sum to {total:.4f}, expected 1.0")


class ResourceNotFound(OptimizerError):
    """A trip, segment, quote or event id does not exist (or belongs elsewhere)."""

    def __init__(self, resource: str, resource_id: object):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource.capitalize()} not found")
