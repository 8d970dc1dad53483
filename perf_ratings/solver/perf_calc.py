"""
Bradley-Terry performance solver - Numba implementation.

Estimates a rating for each free player from head-to-head win counts.
P(i beats j) = sigmoid(r_i - r_j); the solver maximises the
log-likelihood of the observed battles plus a Gaussian prior of
precision `prior_precision` that pulls free ratings toward the mean of
the fixed (anchor) ratings.

Optimisation is coordinate-wise Newton-Raphson: each sweep updates every
free player once, in index order, using the current values of all other
players (Gauss-Seidel).
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Union

import numpy as np

from ..data import BattleSet, Rating, to_rating
from ..errors import DegeneratePlayerError, InvalidConfigError, NonFiniteResultError
from ._numba_core import log_likelihood, run_all_iterations

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalcOptions:
    """Configuration for the performance solver."""

    max_iterations: int = 100  # Maximum Newton-Raphson sweeps
    epsilon: float = 1e-6  # Stop when the largest change in a sweep is below this
    prior_precision: float = 1.0  # Inverse variance of the prior; 0 disables it

    def __post_init__(self):
        if isinstance(self.max_iterations, bool) or not isinstance(
            self.max_iterations, (int, np.integer)
        ):
            raise InvalidConfigError(
                f"Max iterations must be an integer, got {self.max_iterations!r}"
            )
        if self.max_iterations <= 0:
            raise InvalidConfigError("Max iterations must be greater than 0")
        for name in ("epsilon", "prior_precision"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float, np.number)):
                raise InvalidConfigError(f"{name} must be a number, got {value!r}")
            object.__setattr__(self, name, float(value))
        if not (math.isfinite(self.epsilon) and self.epsilon > 0.0):
            raise InvalidConfigError("Epsilon must be greater than 0")
        if not (math.isfinite(self.prior_precision) and self.prior_precision >= 0.0):
            raise InvalidConfigError("Prior precision must be finite and non-negative")
        object.__setattr__(self, "max_iterations", int(self.max_iterations))

    @classmethod
    def coerce(cls, options: Union["CalcOptions", Mapping[str, Any], None]) -> "CalcOptions":
        """
        Resolve options given as None, a CalcOptions, or a mapping.

        Missing or None keys take the documented defaults.
        """
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        if isinstance(options, Mapping):
            known = {"max_iterations", "epsilon", "prior_precision"}
            unknown = set(options) - known
            if unknown:
                raise InvalidConfigError(f"Unknown options: {sorted(unknown)}")
            return cls(**{k: v for k, v in options.items() if v is not None})
        raise InvalidConfigError(f"Cannot interpret {options!r} as solver options")


@dataclass
class CalcResult:
    """
    Outcome of one solver run.

    Attributes:
        ratings: Final rating values, aligned with the input sequence
        iterations: Sweeps performed (equals max_iterations when not converged)
        converged: Whether the last sweep changed no rating by epsilon or more
        max_change: Largest absolute change in the last sweep
        log_likelihood: Log-likelihood of the battles at the final ratings
        fixed: Anchor flag for each player
    """

    ratings: np.ndarray
    iterations: int
    converged: bool
    max_change: float
    log_likelihood: float
    fixed: Optional[np.ndarray] = None

    def __post_init__(self):
        self.ratings = np.ascontiguousarray(self.ratings, dtype=np.float64)
        if self.fixed is None:
            self.fixed = np.zeros(len(self.ratings), dtype=bool)
        else:
            self.fixed = np.ascontiguousarray(self.fixed, dtype=bool)

    def __len__(self) -> int:
        return len(self.ratings)

    def to_fitted(self, player_names: Optional[Dict[int, str]] = None):
        """
        Wrap the result in a queryable FittedPerfRatings object.

        Args:
            player_names: Optional mapping of player_id -> name
        """
        from ..results.fitted_ratings import FittedPerfRatings

        return FittedPerfRatings(
            ratings=self.ratings.copy(),
            fixed=self.fixed.copy(),
            iterations=self.iterations,
            converged=self.converged,
            max_change=self.max_change,
            log_likelihood=self.log_likelihood,
            player_names=player_names,
        )


class PerfCalc:
    """
    Bradley-Terry performance calculator.

    Stateless between runs: every call to run() works on its own copy of
    the rating values, so one instance may be shared freely.

    Parameters:
        max_iterations: Maximum Newton-Raphson sweeps (default: 100)
        epsilon: Convergence threshold on the largest per-sweep change
            (default: 1e-6)
        prior_precision: Strength of the pull toward the anchor level
            (default: 1.0). Use 0.0 for a pure maximum-likelihood fit.

    Example:
        >>> calc = PerfCalc(max_iterations=100, epsilon=1e-6)
        >>> result = calc.run(
        ...     [Rating(0.0), Rating(0.0), Rating(0.0, fixed=True)],
        ...     [(0, 1, 3, 1), (0, 2, 2, 0), (1, 2, 1, 2)],
        ... )
        >>> result.ratings
        array([ 0.71165771, -0.31723882,  0.        ])
    """

    def __init__(
        self,
        max_iterations: int = 100,
        epsilon: float = 1e-6,
        prior_precision: float = 1.0,
    ):
        self.config = CalcOptions(
            max_iterations=max_iterations,
            epsilon=epsilon,
            prior_precision=prior_precision,
        )

    @classmethod
    def from_options(cls, options: Union[CalcOptions, Mapping[str, Any], None]) -> "PerfCalc":
        config = CalcOptions.coerce(options)
        return cls(
            max_iterations=config.max_iterations,
            epsilon=config.epsilon,
            prior_precision=config.prior_precision,
        )

    def max_iters(self, max_iterations: int) -> "PerfCalc":
        """Return a copy with a different iteration bound."""
        return PerfCalc(max_iterations, self.config.epsilon, self.config.prior_precision)

    def epsilon(self, epsilon: float) -> "PerfCalc":
        """Return a copy with a different convergence threshold."""
        return PerfCalc(self.config.max_iterations, epsilon, self.config.prior_precision)

    def run(
        self,
        ratings: Sequence[Union[Rating, Mapping[str, Any], tuple]],
        battles: Union[BattleSet, Sequence[Any]],
    ) -> CalcResult:
        """
        Fit ratings to the observed battles.

        Args:
            ratings: Initial ratings; fixed entries are returned unchanged
            battles: BattleSet, or records accepted by BattleSet

        Returns:
            CalcResult with the final ratings and convergence diagnostics

        Raises:
            InvalidRatingError: malformed or non-finite rating
            InvalidBattleError: malformed battle or bad win count
            InvalidReferenceError: battle index out of range or i == j
            DegeneratePlayerError: free player without decided games
            NonFiniteResultError: the sweeps overflowed to NaN or infinity
        """
        records = [to_rating(r) for r in ratings]
        num_players = len(records)

        if isinstance(battles, BattleSet):
            if battles.num_players != num_players:
                # Re-validate references against this rating sequence
                battles = BattleSet(battles.records, num_players=num_players)
        else:
            battles = BattleSet(battles, num_players=num_players)

        values = np.array([r.value for r in records], dtype=np.float64)
        fixed = np.array([r.fixed for r in records], dtype=bool)

        games = battles.games_per_player()
        degenerate = ~fixed & (games <= 0.0)
        if degenerate.any():
            player = int(np.argmax(degenerate))
            raise DegeneratePlayerError(
                f"Player {player} is not fixed and has no decided games",
                player=player,
            )

        prior_precision = self.config.prior_precision
        prior_mean = float(values[fixed].mean()) if fixed.any() else 0.0

        if prior_precision == 0.0:
            unanchored = battles.unanchored_components(fixed)
            if unanchored:
                logger.warning(
                    "%d group(s) of players have no fixed anchor; their ratings "
                    "are only determined up to a shift (first: %s)",
                    len(unanchored), unanchored[0].tolist(),
                )

        adjacency = battles.build_adjacency()
        free_players = np.flatnonzero(~fixed).astype(np.int64)

        logger.debug(
            "Solving %d players (%d free) over %d pairings",
            num_players, len(free_players), battles.num_pairs,
        )

        iterations, max_change, converged = run_all_iterations(
            free_players,
            values,
            adjacency.offsets,
            adjacency.opponents,
            adjacency.wins,
            adjacency.losses,
            prior_precision,
            prior_mean,
            self.config.max_iterations,
            self.config.epsilon,
        )

        bad = ~np.isfinite(values)
        if bad.any():
            player = int(np.argmax(bad))
            raise NonFiniteResultError(
                f"Rating of player {player} became {values[player]} after {iterations} "
                f"iteration(s); the inputs are too extreme to solve",
                player=player,
            )

        if converged:
            logger.debug("Converged after %d iterations (max change %.3g)", iterations, max_change)
        else:
            logger.warning(
                "Did not converge within %d iterations (max change %.3g > epsilon %.3g)",
                iterations, max_change, self.config.epsilon,
            )

        pair_i, pair_j, wij, wji = battles.pairs()
        return CalcResult(
            ratings=values,
            iterations=int(iterations),
            converged=bool(converged),
            max_change=float(max_change),
            log_likelihood=float(log_likelihood(values, pair_i, pair_j, wij, wji)),
            fixed=fixed,
        )

    def __repr__(self) -> str:
        return (
            f"PerfCalc(max_iter={self.config.max_iterations}, "
            f"epsilon={self.config.epsilon}, "
            f"prior_precision={self.config.prior_precision})"
        )


def solve(
    ratings: Sequence[Union[Rating, Mapping[str, Any], tuple]],
    battles: Union[BattleSet, Sequence[Any]],
    options: Union[CalcOptions, Mapping[str, Any], None] = None,
) -> CalcResult:
    """
    Fit Bradley-Terry performance ratings.

    Args:
        ratings: Initial ratings, at least one of them fixed as an anchor
        battles: Head-to-head win counts between rating indices
        options: CalcOptions, a mapping of option values, or None for defaults

    Returns:
        CalcResult with ratings and iteration count
    """
    return PerfCalc.from_options(options).run(ratings, battles)
