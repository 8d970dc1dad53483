"""
Read-only view over a finished solver run.

FittedPerfRatings holds the final ratings together with the anchor flags
and convergence diagnostics, and answers the usual questions asked of a
leaderboard: who is where, and how likely is one player to beat another.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

import numpy as np
import polars as pl

from ..solver._numba_core import (
    compute_all_vs_all_matrix,
    get_bottom_n_indices,
    get_top_n_indices,
    predict_proba_batch,
    predict_single,
)


def _compute_ranks(ratings: np.ndarray) -> np.ndarray:
    """Leaderboard position per player, 1 for the strongest; ties keep index order."""
    order = np.argsort(-ratings, kind="stable")
    ranks = np.empty(len(ratings), dtype=np.int32)
    ranks[order] = np.arange(1, len(ratings) + 1)
    return ranks


def _get_names(
    indices: np.ndarray,
    player_names: Optional[Dict[int, str]],
) -> List[str]:
    if player_names is None:
        return [f"Player_{i}" for i in indices]
    return [player_names.get(int(i), f"Player_{i}") for i in indices]


@dataclass
class FittedPerfRatings:
    """
    Fitted Bradley-Terry ratings with leaderboard and matchup helpers.

    Attributes:
        ratings: Final rating per player_id
        fixed: True for anchors, whose rating was never touched
        iterations: Sweeps the solver performed
        converged: False when the sweep budget ran out first
        max_change: Largest single-player step in the final sweep
        log_likelihood: Log-likelihood of the battles at these ratings
        player_names: Optional player_id -> display name lookup
    """

    ratings: np.ndarray
    fixed: np.ndarray
    iterations: int = 0
    converged: bool = True
    max_change: float = 0.0
    log_likelihood: float = 0.0
    player_names: Optional[Dict[int, str]] = None

    _ranks: Optional[np.ndarray] = field(default=None, repr=False)

    def __post_init__(self):
        self.ratings = np.ascontiguousarray(self.ratings, dtype=np.float64)
        self.fixed = np.ascontiguousarray(self.fixed, dtype=bool)
        self._ranks = None

    @property
    def num_players(self) -> int:
        return len(self.ratings)

    @property
    def ranks(self) -> np.ndarray:
        """Rank of every player, computed on first access."""
        if self._ranks is None:
            self._ranks = _compute_ranks(self.ratings)
        return self._ranks

    def get_rating(self, player_id: int) -> float:
        return float(self.ratings[player_id])

    def get_name(self, player_id: int) -> str:
        if self.player_names and player_id in self.player_names:
            return self.player_names[player_id]
        return f"Player_{player_id}"

    def rank(self, player_id: int) -> int:
        return int(self.ranks[player_id])

    def top(self, n: int = 10) -> pl.DataFrame:
        """
        Leaderboard head: the n strongest players, best first.

        n is clamped to [0, num_players]. Columns: rank, player_id, name,
        rating, fixed.
        """
        return self._indices_to_dataframe(get_top_n_indices(self.ratings, n))

    def bottom(self, n: int = 10) -> pl.DataFrame:
        """Leaderboard tail: the n weakest players, weakest first."""
        return self._indices_to_dataframe(get_bottom_n_indices(self.ratings, n))

    def _indices_to_dataframe(self, indices: np.ndarray) -> pl.DataFrame:
        return pl.DataFrame({
            "rank": self.ranks[indices],
            "player_id": indices,
            "name": _get_names(indices, self.player_names),
            "rating": self.ratings[indices],
            "fixed": self.fixed[indices],
        })

    def predict(self, player1: int, player2: int) -> float:
        """Chance that player1 wins a single game against player2."""
        return predict_single(self.ratings[player1], self.ratings[player2])

    def predict_batch(
        self,
        player1: Union[List[int], np.ndarray],
        player2: Union[List[int], np.ndarray],
    ) -> np.ndarray:
        """Element-wise predict() over two equal-length id sequences."""
        p1 = np.ascontiguousarray(player1, dtype=np.int64)
        p2 = np.ascontiguousarray(player2, dtype=np.int64)
        return predict_proba_batch(p1, p2, self.ratings)

    def head_to_head_matrix(
        self,
        player_ids: Optional[Union[List[int], np.ndarray]] = None,
        top_n: Optional[int] = None,
    ) -> pl.DataFrame:
        """
        Pairwise win chances for a group of players.

        The group is player_ids if given, else the top_n strongest, else
        everyone. Each row is one player of the group (player_id and name
        columns); the remaining columns are named by the opponent's
        player_id as a string and hold P(row player beats that opponent).
        Columns are keyed by id so repeated display names stay distinct.
        """
        if player_ids is not None:
            indices = np.asarray(player_ids, dtype=np.int64)
        elif top_n is not None:
            indices = get_top_n_indices(self.ratings, top_n)
        else:
            indices = np.arange(self.num_players, dtype=np.int64)

        matrix = compute_all_vs_all_matrix(self.ratings, indices)

        data = {
            "player_id": indices,
            "player": _get_names(indices, self.player_names),
        }
        for col, player_id in enumerate(indices):
            data[str(int(player_id))] = matrix[:, col]
        return pl.DataFrame(data)

    def to_dataframe(self, include_rank: bool = True) -> pl.DataFrame:
        """Every player as one row, strongest first."""
        player_ids = np.arange(self.num_players)

        data = {
            "player_id": player_ids,
            "rating": self.ratings,
            "fixed": self.fixed,
        }
        if include_rank:
            data["rank"] = self.ranks
        if self.player_names:
            data["name"] = _get_names(player_ids, self.player_names)

        return pl.DataFrame(data).sort("rating", descending=True)

    def summary(self) -> str:
        status = "converged" if self.converged else "not converged"
        return (
            f"Bradley-Terry performance ratings\n"
            f"  Players: {self.num_players} ({int(self.fixed.sum())} fixed)\n"
            f"  Iterations: {self.iterations} ({status}, max change {self.max_change:.3g})\n"
            f"  Log-likelihood: {self.log_likelihood:.4f}"
        )

    def __repr__(self) -> str:
        return (
            f"FittedPerfRatings(players={self.num_players}, "
            f"iterations={self.iterations}, converged={self.converged})"
        )

    def __str__(self) -> str:
        return self.summary()
