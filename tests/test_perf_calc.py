"""Tests for the Bradley-Terry performance solver.

Covers:
1. Reference convergence on a small three-player example
2. Rejection of invalid references, degenerate players and bad options
3. Anchors are returned bit-identical
4. Shift invariance and idempotence once converged
5. Iteration bounds and non-convergence reporting
"""

import logging
import math

import numpy as np
import pytest

from perf_ratings import (
    BattleSet,
    CalcOptions,
    DegeneratePlayerError,
    InvalidConfigError,
    InvalidRatingError,
    InvalidReferenceError,
    NonFiniteResultError,
    PerfCalc,
    PerfCalcError,
    Rating,
    solve,
)
from perf_ratings.solver._numba_core import run_all_iterations


REFERENCE_BATTLES = [
    {"i": 0, "j": 1, "wij": 3, "wji": 1},
    {"i": 0, "j": 2, "wij": 2, "wji": 0},
    {"i": 1, "j": 2, "wij": 1, "wji": 2},
]

REFERENCE_RATINGS = [
    {"fixed": False, "value": 0.0},
    {"fixed": False, "value": 0.0},
    {"fixed": True, "value": 0.0},
]


def generate_test_battles(
    num_players: int = 30,
    num_games: int = 3000,
    seed: int = 42,
):
    """Generate synthetic (i, j, wij, wji) battles with skill-based outcomes."""
    rng = np.random.RandomState(seed)

    true_skill = np.linspace(-1.5, 1.5, num_players)

    p1 = rng.randint(0, num_players, num_games)
    p2 = rng.randint(0, num_players, num_games)

    while (p1 == p2).any():
        mask = p1 == p2
        p2[mask] = rng.randint(0, num_players, mask.sum())

    win_prob = 1 / (1 + np.exp(-(true_skill[p1] - true_skill[p2])))
    p1_wins = rng.random_sample(num_games) < win_prob

    battles = [
        (int(a), int(b), 1 if won else 0, 0 if won else 1)
        for a, b, won in zip(p1, p2, p1_wins)
    ]
    return battles, true_skill


def test_reference_convergence():
    """The three-player example converges to the published values."""
    result = solve(REFERENCE_RATINGS, REFERENCE_BATTLES, {"max_iterations": 100, "epsilon": 1e-6})

    expected = [0.71165756, -0.31723877, 0.0]
    assert np.allclose(result.ratings, expected, rtol=0.0, atol=1e-6), result.ratings
    assert 1 <= result.iterations <= 100
    assert result.converged
    assert result.max_change < 1e-6


def test_default_options_match_explicit_defaults():
    default = solve(REFERENCE_RATINGS, REFERENCE_BATTLES)
    explicit = solve(REFERENCE_RATINGS, REFERENCE_BATTLES, CalcOptions(max_iterations=100, epsilon=1e-6))

    assert np.array_equal(default.ratings, explicit.ratings)
    assert default.iterations == explicit.iterations


def test_perf_calc_run_matches_solve():
    calc = PerfCalc(max_iterations=100, epsilon=1e-6)
    ratings = [Rating(0.0), Rating(0.0), Rating(0.0, fixed=True)]
    battles = [(0, 1, 3, 1), (0, 2, 2, 0), (1, 2, 1, 2)]

    result = calc.run(ratings, battles)

    assert np.allclose(result.ratings, solve(REFERENCE_RATINGS, REFERENCE_BATTLES).ratings)


def test_reference_failure_case_is_rejected():
    """A zero-zero battle naming a missing player must fail, not return numbers."""
    ratings = [{"fixed": False, "value": 0.0}, {"fixed": False, "value": 0.0}]
    battles = [{"i": 1, "j": 2, "wij": 0, "wji": 0}]

    with pytest.raises(PerfCalcError):
        solve(ratings, battles)


def test_out_of_range_index():
    with pytest.raises(InvalidReferenceError) as excinfo:
        solve([Rating(0.0), Rating(0.0, fixed=True)], [(0, 1, 1, 1), (0, 5, 1, 0)])

    assert excinfo.value.battle_index == 1
    assert excinfo.value.j == 5


def test_self_battle():
    with pytest.raises(InvalidReferenceError):
        solve([Rating(0.0), Rating(0.0, fixed=True)], [(0, 0, 1, 1)])


def test_degenerate_player_with_zero_games():
    ratings = [Rating(0.0, fixed=True), Rating(0.0), Rating(0.0, fixed=True)]

    with pytest.raises(DegeneratePlayerError) as excinfo:
        solve(ratings, [(1, 2, 0, 0)])

    assert excinfo.value.player == 1


def test_degenerate_player_without_battles():
    """A free player that never appears in a battle cannot be rated."""
    ratings = [Rating(0.0), Rating(0.0, fixed=True), Rating(0.0)]

    with pytest.raises(DegeneratePlayerError) as excinfo:
        solve(ratings, [(0, 1, 2, 1)])

    assert excinfo.value.player == 2


def test_fixed_player_without_games_is_allowed():
    ratings = [Rating(0.0), Rating(0.0, fixed=True), Rating(3.25, fixed=True)]

    result = solve(ratings, [(0, 1, 2, 1)])

    assert result.ratings[2] == 3.25
    assert result.converged


@pytest.mark.parametrize(
    "options",
    [
        {"max_iterations": 0},
        {"max_iterations": -3},
        {"epsilon": 0.0},
        {"epsilon": -1e-6},
        {"epsilon": math.nan},
        {"epsilon": math.inf},
        {"prior_precision": -1.0},
        {"unknown_option": 1},
    ],
)
def test_invalid_options(options):
    with pytest.raises(InvalidConfigError):
        solve(REFERENCE_RATINGS, REFERENCE_BATTLES, options)


def test_none_options_resolve_to_defaults():
    result = solve(REFERENCE_RATINGS, REFERENCE_BATTLES, {"max_iterations": None, "epsilon": None})
    assert result.converged


def test_non_finite_rating_rejected():
    with pytest.raises(InvalidRatingError):
        solve([Rating(0.0, fixed=True), {"fixed": False, "value": math.nan}], [(0, 1, 1, 1)])


def test_overflowing_ratings_raise_instead_of_nan():
    ratings = [Rating(1e308), Rating(-1e308, fixed=True)]

    with pytest.raises(NonFiniteResultError) as excinfo:
        solve(ratings, [(0, 1, 1, 1)])

    assert excinfo.value.player == 0
    assert isinstance(excinfo.value, PerfCalcError)


def test_nan_sweep_is_never_reported_as_converged():
    adjacency = BattleSet([(0, 1, 1, 1)], num_players=2).build_adjacency()
    values = np.array([np.nan, 0.0])

    iterations, max_change, converged = run_all_iterations(
        np.array([0], dtype=np.int64),
        values,
        adjacency.offsets,
        adjacency.opponents,
        adjacency.wins,
        adjacency.losses,
        1.0,
        0.0,
        50,
        1e-6,
    )

    assert not converged
    assert np.isnan(max_change)
    assert iterations == 1


def test_fixed_ratings_bit_identical():
    battles, _ = generate_test_battles(num_players=20, num_games=1000)
    anchors = {0: 0.123456789123, 7: -1.0000000001, 13: 2.5}
    ratings = [
        Rating(anchors.get(k, 0.0), fixed=k in anchors) for k in range(20)
    ]

    result = solve(ratings, battles)

    for k, value in anchors.items():
        assert result.ratings[k] == value


def test_shift_invariance():
    """Shifting every initial value shifts every output by the same amount."""
    battles, _ = generate_test_battles(num_players=15, num_games=800, seed=7)
    base = [Rating(0.0, fixed=(k == 0)) for k in range(15)]
    shift = 2.5
    shifted = [Rating(r.value + shift, fixed=r.fixed) for r in base]

    result = solve(base, battles, {"epsilon": 1e-10, "max_iterations": 500})
    result_shifted = solve(shifted, battles, {"epsilon": 1e-10, "max_iterations": 500})

    assert result_shifted.ratings[0] == shift
    assert np.allclose(result_shifted.ratings - shift, result.ratings, atol=1e-8)


def test_idempotent_on_converged_output():
    first = solve(REFERENCE_RATINGS, REFERENCE_BATTLES)
    rerun_ratings = [
        Rating(float(value), fixed=r["fixed"])
        for value, r in zip(first.ratings, REFERENCE_RATINGS)
    ]

    second = solve(rerun_ratings, REFERENCE_BATTLES)

    assert second.iterations == 1
    assert second.converged
    assert np.allclose(second.ratings, first.ratings, atol=1e-6)


def test_iterations_bounded_when_not_converged(caplog):
    with caplog.at_level(logging.WARNING, logger="perf_ratings"):
        result = solve(REFERENCE_RATINGS, REFERENCE_BATTLES, {"max_iterations": 1})

    assert result.iterations == 1
    assert not result.converged
    assert result.max_change >= 1e-6
    assert np.all(np.isfinite(result.ratings))
    assert "Did not converge" in caplog.text


def test_iterations_never_exceed_max():
    battles, _ = generate_test_battles(num_players=40, num_games=2000, seed=3)
    ratings = [Rating(0.0, fixed=(k == 0)) for k in range(40)]

    for max_iterations in (1, 2, 5, 100):
        result = solve(ratings, battles, {"max_iterations": max_iterations})
        assert 1 <= result.iterations <= max_iterations


def test_all_fixed_needs_one_sweep():
    ratings = [Rating(0.5, fixed=True), Rating(-0.5, fixed=True)]

    result = solve(ratings, [(0, 1, 3, 1)])

    assert result.iterations == 1
    assert result.converged
    assert np.array_equal(result.ratings, [0.5, -0.5])


def test_pure_maximum_likelihood_two_players():
    """Without a prior, 3 wins and 1 loss against an anchor gives log(3)."""
    ratings = [Rating(0.0), Rating(0.0, fixed=True)]

    result = solve(ratings, [(0, 1, 3, 1)], {"prior_precision": 0.0, "epsilon": 1e-12})

    assert abs(result.ratings[0] - math.log(3.0)) < 1e-9
    assert result.log_likelihood > 4 * math.log(0.5)


def test_prior_pulls_toward_anchor_level():
    ratings = [Rating(0.0), Rating(0.0, fixed=True)]

    weak = solve(ratings, [(0, 1, 3, 1)], {"prior_precision": 0.0})
    strong = solve(ratings, [(0, 1, 3, 1)], {"prior_precision": 10.0})

    assert 0.0 < strong.ratings[0] < weak.ratings[0]


def test_repeated_and_reversed_records_aggregate():
    ratings = [Rating(0.0), Rating(0.0), Rating(0.0, fixed=True)]
    split = [(0, 1, 1, 1), (1, 0, 0, 2), (0, 2, 2, 0), (2, 1, 2, 1)]
    combined = [(0, 1, 3, 1), (0, 2, 2, 0), (1, 2, 1, 2)]

    assert np.allclose(solve(ratings, split).ratings, solve(ratings, combined).ratings, atol=1e-12)


def test_inputs_not_mutated():
    ratings = [dict(r) for r in REFERENCE_RATINGS]
    battles = [dict(b) for b in REFERENCE_BATTLES]

    solve(ratings, battles)

    assert ratings == REFERENCE_RATINGS
    assert battles == REFERENCE_BATTLES


def test_accepts_prebuilt_battle_set():
    battles = BattleSet(REFERENCE_BATTLES, num_players=3)

    result = solve(REFERENCE_RATINGS, battles)

    assert np.allclose(result.ratings, [0.71165756, -0.31723877, 0.0], atol=1e-6)


def test_recovers_synthetic_skills():
    battles, true_skill = generate_test_battles(num_players=30, num_games=6000, seed=11)
    ratings = [Rating(float(true_skill[0]) if k == 0 else 0.0, fixed=(k == 0)) for k in range(30)]

    result = solve(ratings, battles, {"prior_precision": 0.0, "max_iterations": 1000})

    assert result.converged
    corr = np.corrcoef(result.ratings, true_skill)[0, 1]
    assert corr > 0.95, f"correlation {corr:.3f} too low"


def test_unanchored_component_warning(caplog):
    ratings = [Rating(0.0), Rating(0.0), Rating(0.0), Rating(0.0, fixed=True)]
    battles = [(0, 1, 2, 1), (2, 3, 1, 1)]

    with caplog.at_level(logging.WARNING, logger="perf_ratings"):
        solve(ratings, battles, {"prior_precision": 0.0})

    assert "no fixed anchor" in caplog.text


def test_perf_calc_builder_methods():
    calc = PerfCalc().max_iters(5).epsilon(1e-3)

    assert calc.config.max_iterations == 5
    assert calc.config.epsilon == 1e-3
    assert calc.config.prior_precision == 1.0
    assert "max_iter=5" in repr(calc)
