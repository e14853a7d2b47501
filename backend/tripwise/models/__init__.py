from tripwise.models.trip import BudgetCap, Trip, TripPreferences
from tripwise.models.itinerary import Quote, Segment
from tripwise.models.events import TripEvent

__all__ = [
    "BudgetCap",
    "Quote",
    "Segment",
    "Trip",
    "TripEvent",
    "TripPreferences",
]
