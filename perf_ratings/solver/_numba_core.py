"""
Numba-accelerated core functions for the Bradley-Terry performance solver.

Uses the CSR-like adjacency built by BattleSet:
- offsets[num_players + 1]: Boundaries for each player's opponent list
- opponents[total_refs]: Opponent index
- wins[total_refs]: Wins from this player's perspective
- losses[total_refs]: Losses from this player's perspective

Ratings are updated in place, one player at a time (Gauss-Seidel), so a
player's step already sees the new ratings of players updated earlier in
the same sweep.
"""

import math

import numpy as np
from numba import njit, prange


@njit(cache=True)
def sigmoid(x: float) -> float:
    """Numerically stable logistic function."""
    if x >= 0.0:
        z = math.exp(-x)
        return 1.0 / (1.0 + z)
    z = math.exp(x)
    return z / (1.0 + z)


@njit(cache=True)
def log_sigmoid(x: float) -> float:
    """log(sigmoid(x)) without overflow for large |x|."""
    if x >= 0.0:
        return -math.log1p(math.exp(-x))
    return x - math.log1p(math.exp(x))


@njit(cache=True)
def player_derivatives(
    player_id: int,
    ratings: np.ndarray,
    offsets: np.ndarray,
    opponents: np.ndarray,
    wins: np.ndarray,
    losses: np.ndarray,
    prior_precision: float,
    prior_mean: float,
):
    """
    First and second derivative of the log-posterior w.r.t. one rating.

    gradient  = sum(wins * (1 - p) - losses * p) - prior_precision * (r - prior_mean)
    curvature = -sum((wins + losses) * p * (1 - p)) - prior_precision
    """
    r_i = ratings[player_id]
    gradient = -prior_precision * (r_i - prior_mean)
    curvature = -prior_precision

    for k in range(offsets[player_id], offsets[player_id + 1]):
        p_win = sigmoid(r_i - ratings[opponents[k]])
        gradient += wins[k] * (1.0 - p_win) - losses[k] * p_win
        curvature -= (wins[k] + losses[k]) * p_win * (1.0 - p_win)

    return gradient, curvature


@njit(cache=True)
def update_single_player(
    player_id: int,
    ratings: np.ndarray,
    offsets: np.ndarray,
    opponents: np.ndarray,
    wins: np.ndarray,
    losses: np.ndarray,
    prior_precision: float,
    prior_mean: float,
) -> float:
    """
    Apply one Newton-Raphson step to a single player's rating.

    Returns the absolute change in rating.
    """
    gradient, curvature = player_derivatives(
        player_id, ratings, offsets, opponents, wins, losses,
        prior_precision, prior_mean,
    )

    # Only reachable for a player whose every game has saturated to p in {0, 1}
    if curvature >= 0.0:
        return 0.0

    change = -gradient / curvature
    ratings[player_id] += change
    return abs(change)


@njit(cache=True)
def run_iteration(
    free_players: np.ndarray,
    ratings: np.ndarray,
    offsets: np.ndarray,
    opponents: np.ndarray,
    wins: np.ndarray,
    losses: np.ndarray,
    prior_precision: float,
    prior_mean: float,
) -> float:
    """
    Run one sweep over all free players.

    Returns maximum rating change across the sweep.

    Note: Player updates are NOT parallelized. Each step reads opponent
    ratings that earlier steps in this sweep may have changed.
    """
    max_change = 0.0

    for idx in range(len(free_players)):
        change = update_single_player(
            free_players[idx],
            ratings,
            offsets,
            opponents,
            wins,
            losses,
            prior_precision,
            prior_mean,
        )
        # NaN must win here, or an overflowed sweep reads as converged
        if not (change <= max_change):
            max_change = change

    return max_change


@njit(cache=True)
def run_all_iterations(
    free_players: np.ndarray,
    ratings: np.ndarray,
    offsets: np.ndarray,
    opponents: np.ndarray,
    wins: np.ndarray,
    losses: np.ndarray,
    prior_precision: float,
    prior_mean: float,
    max_iterations: int,
    epsilon: float,
):
    """
    Run sweeps until the largest change drops below epsilon.

    Returns (iterations performed, max change in the last sweep,
    converged flag).
    """
    max_change = 0.0
    for iteration in range(max_iterations):
        max_change = run_iteration(
            free_players,
            ratings,
            offsets,
            opponents,
            wins,
            losses,
            prior_precision,
            prior_mean,
        )

        if not np.isfinite(max_change):
            return iteration + 1, max_change, False

        if max_change < epsilon:
            return iteration + 1, max_change, True

    return max_iterations, max_change, False


@njit(cache=True)
def log_likelihood(
    ratings: np.ndarray,
    pair_i: np.ndarray,
    pair_j: np.ndarray,
    wij: np.ndarray,
    wji: np.ndarray,
) -> float:
    """Bradley-Terry log-likelihood of aggregated pairings."""
    total = 0.0
    for k in range(len(pair_i)):
        diff = ratings[pair_i[k]] - ratings[pair_j[k]]
        if wij[k] > 0.0:
            total += wij[k] * log_sigmoid(diff)
        if wji[k] > 0.0:
            total += wji[k] * log_sigmoid(-diff)
    return total


@njit(cache=True, parallel=True)
def predict_proba_batch(
    player1: np.ndarray,
    player2: np.ndarray,
    ratings: np.ndarray,
) -> np.ndarray:
    """
    Predict probability that player1 beats player2 (batch).

    Parallelized for efficiency on large batches.
    """
    n = len(player1)
    result = np.empty(n, dtype=np.float64)

    for i in prange(n):
        result[i] = sigmoid(ratings[player1[i]] - ratings[player2[i]])

    return result


@njit(cache=True)
def predict_single(rating1: float, rating2: float) -> float:
    """Predict probability that player 1 beats player 2."""
    return sigmoid(rating1 - rating2)


@njit(cache=True)
def compute_all_vs_all_matrix(ratings: np.ndarray, indices: np.ndarray) -> np.ndarray:
    """Win probability of each listed player (row) against each other (column)."""
    n = len(indices)
    matrix = np.empty((n, n), dtype=np.float64)
    for a in range(n):
        for b in range(n):
            matrix[a, b] = sigmoid(ratings[indices[a]] - ratings[indices[b]])
    return matrix


@njit(cache=True)
def get_top_n_indices(ratings: np.ndarray, n: int) -> np.ndarray:
    """Get indices of top N rated players."""
    n = max(0, min(n, len(ratings)))
    indices = np.argsort(-ratings)[:n]
    return indices


@njit(cache=True)
def get_bottom_n_indices(ratings: np.ndarray, n: int) -> np.ndarray:
    """Get indices of bottom N rated players."""
    n = max(0, min(n, len(ratings)))
    indices = np.argsort(ratings)[:n]
    return indices
