"""
Perf Ratings - Bradley-Terry performance estimation from head-to-head results.

Fits a latent strength for every competitor from pairwise win/loss counts
with coordinate-wise Newton-Raphson. Hot paths are Numba-compiled.

Quick Start:
    from perf_ratings import Rating, solve

    ratings = [
        Rating(0.0),
        Rating(0.0),
        Rating(0.0, fixed=True),  # Anchor
    ]
    battles = [(0, 1, 3, 1), (0, 2, 2, 0), (1, 2, 1, 2)]  # (i, j, wij, wji)

    result = solve(ratings, battles, {"max_iterations": 100, "epsilon": 1e-6})
    print(result.ratings, result.iterations)

    # Queryable view of the same result
    fitted = result.to_fitted()
    print(fitted.top(10))
    print(fitted.predict(0, 1))  # P(player 0 beats player 1)

Battles can also be built from DataFrames:
    battles = BattleSet.from_games(games_df)  # Player1, Player2, Score columns
"""

from .data import BattleResult, BattleSet, Rating
from .errors import (
    DegeneratePlayerError,
    InvalidBattleError,
    InvalidConfigError,
    InvalidRatingError,
    InvalidReferenceError,
    NonFiniteResultError,
    PerfCalcError,
)
from .results import FittedPerfRatings
from .solver import CalcOptions, CalcResult, PerfCalc, solve

__version__ = "0.1.0"

__all__ = [
    # Data
    "Rating",
    "BattleResult",
    "BattleSet",
    # Solver
    "CalcOptions",
    "CalcResult",
    "PerfCalc",
    "solve",
    # Results
    "FittedPerfRatings",
    # Errors
    "PerfCalcError",
    "InvalidReferenceError",
    "DegeneratePlayerError",
    "InvalidConfigError",
    "InvalidBattleError",
    "InvalidRatingError",
    "NonFiniteResultError",
]
