import pytest

from tripwise.exceptions import StalePreferences
from tripwise.services.scoring_engine import (
    Attached,
    Candidate,
    Weights,
    normalize,
    rebalance_weights,
    score_candidates,
    validate_weights,
)


def _candidate(cid: str, price: float, duration: float, comfort: float, order: int = 0) -> Candidate:
    return Candidate(
        id=cid,
        category="transport",
        source=f"provider-{cid}",
        price=price,
        duration_min=duration,
        comfort_score=comfort,
        order=order,
    )


def test_normalize_bounds():
    values = normalize([300, 180, 960, 150])

    assert min(values) == 0.0
    assert max(values) == 1.0
    assert all(0.0 <= v <= 1.0 for v in values)


def test_normalize_degenerate_set_maps_to_zero():
    assert normalize([42.0, 42.0, 42.0]) == [0.0, 0.0, 0.0]
    assert normalize([7.0]) == [0.0]
    assert normalize([]) == []


def test_cost_heavy_weights_prefer_cheaper_option():
    cheap = _candidate("cheap", 18000, 300, 6)
    fast = _candidate("fast", 25000, 180, 8)

    ranked = score_candidates([fast, cheap], Weights(cost=0.6, time=0.2, comfort=0.2))

    assert [s.id for s in ranked] == ["cheap", "fast"]
    assert ranked[0].utility == pytest.approx(0.6)
    assert ranked[1].utility == pytest.approx(0.4)


def test_comfort_heavy_weights_prefer_comfortable_option():
    cheap = _candidate("cheap", 18000, 300, 6)
    comfy = _candidate("comfy", 25000, 180, 8)

    ranked = score_candidates([cheap, comfy], Weights(cost=0.1, time=0.3, comfort=0.6))

    assert ranked[0].id == "comfy"


def test_utilities_stay_in_unit_interval():
    candidates = [
        _candidate("a", 1000, 60, 0),
        _candidate("b", 5000, 600, 10),
        _candidate("c", 2500, 240, 5),
    ]

    for scored in score_candidates(candidates, Weights()):
        assert 0.0 <= scored.utility <= 1.0


def test_lowering_price_never_lowers_utility():
    weights = Weights(cost=0.5, time=0.25, comfort=0.25)
    others = [_candidate("b", 5000, 200, 5), _candidate("c", 3000, 400, 8)]

    before = score_candidates([_candidate("a", 4000, 300, 6), *others], weights)
    after = score_candidates([_candidate("a", 3500, 300, 6), *others], weights)

    utility_before = next(s.utility for s in before if s.id == "a")
    utility_after = next(s.utility for s in after if s.id == "a")
    assert utility_after >= utility_before


def test_ties_break_on_price_then_duration_then_insertion_order():
    # Degenerate attributes everywhere: every utility is equal
    same = [_candidate(f"q{i}", 1000, 100, 5, order=i) for i in range(3)]
    assert [s.id for s in score_candidates(list(reversed(same)), Weights())] == ["q0", "q1", "q2"]


def test_attached_candidate_is_not_pool():
    attached = Candidate(
        id="q1", category="stay", source="Hotel", price=1, duration_min=1,
        comfort_score=1, slot=Attached("seg-1"),
    )

    assert not attached.is_pool
    assert _candidate("q2", 1, 1, 1).is_pool


def test_validate_weights_accepts_sum_within_tolerance():
    weights = Weights(cost=0.5, time=0.3, comfort=0.195)
    assert validate_weights(weights, tolerance=0.01) is weights


def test_validate_weights_rejects_bad_sum():
    with pytest.raises(StalePreferences) as exc:
        validate_weights(Weights(cost=0.6, time=0.4, comfort=0.2))
    assert exc.value.total == pytest.approx(1.2)


def test_validate_weights_rejects_out_of_range():
    with pytest.raises(StalePreferences):
        validate_weights(Weights(cost=1.5, time=-0.25, comfort=-0.25))


def test_rebalance_splits_remainder_evenly():
    updated = rebalance_weights(Weights(), "cost", 0.6)

    assert updated.cost == pytest.approx(0.6)
    assert updated.time == pytest.approx(0.2)
    assert updated.comfort == pytest.approx(0.2)
    assert updated.total == pytest.approx(1.0)


def test_rebalance_rejects_unknown_key():
    with pytest.raises(ValueError):
        rebalance_weights(Weights(), "luxury", 0.5)
