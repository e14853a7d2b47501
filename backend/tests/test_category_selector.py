import pytest

from tripwise.exceptions import NoFeasibleCandidate
from tripwise.services.category_selector import remaining_cap, select_candidate
from tripwise.services.scoring_engine import Candidate, Weights

COMFORT_FIRST = Weights(cost=0.1, time=0.3, comfort=0.6)


def _quote(cid: str, price: float, duration: float = 120, comfort: float = 5, category: str = "transport") -> Candidate:
    return Candidate(
        id=cid, category=category, source=cid, price=price,
        duration_min=duration, comfort_score=comfort,
    )


def test_over_cap_candidate_is_excluded_outright():
    candidates = [_quote("economy", 18000, 300, 6), _quote("business", 25000, 180, 8)]

    selection = select_candidate("transport", candidates, COMFORT_FIRST, cap=20000)

    # business scores higher but never enters the ranked list
    assert selection.chosen.id == "economy"
    assert [s.id for s in selection.ranked] == ["economy"]
    assert selection.remaining_cap == 20000


def test_no_cap_keeps_best_utility():
    candidates = [_quote("economy", 18000, 300, 6), _quote("business", 25000, 180, 8)]

    selection = select_candidate("transport", candidates, COMFORT_FIRST)

    assert selection.chosen.id == "business"


def test_locked_spend_shrinks_remaining_cap():
    candidates = [_quote("tour", 5000, comfort=8), _quote("museum", 3000, comfort=4)]

    selection = select_candidate(
        "activity", candidates, COMFORT_FIRST, cap=10000, locked_spend=6000
    )

    assert selection.remaining_cap == 4000
    assert selection.chosen.id == "museum"


def test_nothing_fits_raises():
    candidates = [_quote("rafting", 6000), _quote("cruise", 8000)]

    with pytest.raises(NoFeasibleCandidate) as exc:
        select_candidate("activity", candidates, Weights(), cap=5000)

    assert exc.value.category == "activity"
    assert exc.value.reason == "no_feasible_candidate"
    assert "5000.00" in exc.value.detail


def test_held_candidates_are_skipped_for_sibling_slots():
    candidates = [_quote("a", 1000, comfort=9), _quote("b", 1000, comfort=5)]

    selection = select_candidate("activity", candidates, COMFORT_FIRST, held={"a"}, slot=1)

    assert selection.chosen.id == "b"
    assert selection.slot == 1


def test_next_cheaper_skips_held_and_equal_prices():
    candidates = [
        _quote("top", 9000, comfort=10),
        _quote("same-price", 9000, comfort=8),
        _quote("held", 5000, comfort=7),
        _quote("cheaper", 4000, comfort=6),
    ]
    selection = select_candidate("stay", candidates, COMFORT_FIRST)
    assert selection.chosen.id == "top"

    position = selection.next_cheaper(held={"held"})

    assert selection.ranked[position].id == "cheaper"
    selection.downgrade_to(position)
    assert selection.chosen.id == "cheaper"
    assert selection.downgrades == ["top"]


def test_remaining_cap_without_cap_is_unbounded():
    assert remaining_cap(None, 500, 500) is None
    assert remaining_cap(1000, 300, 200) == 500
