"""Battle container: validation, aggregation and adjacency construction.

Battles are stored as contiguous numpy arrays and converted into a
CSR-like adjacency for the Numba solver:
- offsets[num_players + 1]: Boundaries of each player's opponent list
- opponents[total_refs]: Opponent index for each aggregated pairing
- wins[total_refs]: Wins from this player's perspective
- losses[total_refs]: Losses from this player's perspective

Each aggregated pair appears twice, once from either side.
"""

from collections import deque
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import numpy as np
import polars as pl

from ..errors import InvalidBattleError, InvalidReferenceError
from .types import BattleResult, to_battle


@dataclass
class Adjacency:
    """Per-player opponent lists with aggregated win/loss tallies."""

    offsets: np.ndarray    # (num_players + 1,) int64
    opponents: np.ndarray  # (total_refs,) int64
    wins: np.ndarray       # (total_refs,) float64
    losses: np.ndarray     # (total_refs,) float64

    def __post_init__(self):
        """Ensure arrays are contiguous and correct dtype for Numba compatibility."""
        self.offsets = np.ascontiguousarray(self.offsets, dtype=np.int64)
        self.opponents = np.ascontiguousarray(self.opponents, dtype=np.int64)
        self.wins = np.ascontiguousarray(self.wins, dtype=np.float64)
        self.losses = np.ascontiguousarray(self.losses, dtype=np.float64)

    @property
    def num_players(self) -> int:
        return len(self.offsets) - 1

    def opponents_of(self, player: int) -> np.ndarray:
        return self.opponents[self.offsets[player]:self.offsets[player + 1]]


class BattleSet:
    """
    Immutable, validated set of battles between indexed players.

    Records between the same pair are summed regardless of orientation,
    so (0, 1, 3, 1) and (1, 0, 2, 2) aggregate to 5 wins for player 0
    and 3 wins for player 1.

    Example:
        >>> battles = BattleSet([(0, 1, 3, 1), (0, 2, 2, 0)], num_players=3)
        >>> battles.games_per_player()
        array([6., 4., 2.])
    """

    def __init__(self, battles: Iterable = (), num_players: Optional[int] = None):
        """
        Args:
            battles: BattleResult objects, mappings or (i, j, wij, wji) tuples
            num_players: Size of the rating sequence the indices refer to.
                If None, inferred as max index + 1.

        Raises:
            InvalidBattleError: malformed record or bad win count
            InvalidReferenceError: index out of range or i == j
        """
        self._records: List[BattleResult] = [to_battle(b) for b in battles]

        n_records = len(self._records)
        self._i = np.fromiter((b.i for b in self._records), dtype=np.int64, count=n_records)
        self._j = np.fromiter((b.j for b in self._records), dtype=np.int64, count=n_records)
        self._wij = np.fromiter((b.wij for b in self._records), dtype=np.float64, count=n_records)
        self._wji = np.fromiter((b.wji for b in self._records), dtype=np.float64, count=n_records)

        if num_players is None:
            num_players = int(max(self._i.max(), self._j.max())) + 1 if n_records else 0
        self._num_players = int(num_players)

        self._validate_references()
        self._aggregate()

    def _validate_references(self) -> None:
        n = self._num_players
        bad = (self._i < 0) | (self._i >= n) | (self._j < 0) | (self._j >= n)
        if bad.any():
            k = int(np.argmax(bad))
            raise InvalidReferenceError(
                f"Invalid player index in battle {k}: ({self._i[k]}, {self._j[k]}) "
                f"with {n} players",
                battle_index=k, i=int(self._i[k]), j=int(self._j[k]),
            )
        same = self._i == self._j
        if same.any():
            k = int(np.argmax(same))
            raise InvalidReferenceError(
                f"Battle {k} pairs player {self._i[k]} with itself",
                battle_index=k, i=int(self._i[k]), j=int(self._j[k]),
            )

    def _aggregate(self) -> None:
        """Sum records per unordered pair, keyed by (low index, high index)."""
        n = self._num_players
        swap = self._i > self._j
        lo = np.where(swap, self._j, self._i)
        hi = np.where(swap, self._i, self._j)
        w_lo = np.where(swap, self._wji, self._wij)
        w_hi = np.where(swap, self._wij, self._wji)

        keys, inverse = np.unique(lo * n + hi, return_inverse=True)
        inverse = inverse.reshape(-1)
        agg_lo = np.bincount(inverse, weights=w_lo, minlength=len(keys))
        agg_hi = np.bincount(inverse, weights=w_hi, minlength=len(keys))

        # Pairs with no decided games carry no information
        decided = (agg_lo + agg_hi) > 0
        self._pair_i = np.ascontiguousarray(keys[decided] // max(n, 1), dtype=np.int64)
        self._pair_j = np.ascontiguousarray(keys[decided] % max(n, 1), dtype=np.int64)
        self._pair_wij = np.ascontiguousarray(agg_lo[decided], dtype=np.float64)
        self._pair_wji = np.ascontiguousarray(agg_hi[decided], dtype=np.float64)

    @classmethod
    def from_records(cls, battles: Iterable, num_players: Optional[int] = None) -> "BattleSet":
        """Create from BattleResult objects, mappings or tuples."""
        return cls(battles, num_players=num_players)

    @classmethod
    def from_dataframe(cls, df, num_players: Optional[int] = None) -> "BattleSet":
        """
        Create from a DataFrame (pandas or polars) with columns i, j, wij, wji.
        """
        if not isinstance(df, pl.DataFrame):
            df = pl.from_pandas(df)

        required = {"i", "j", "wij", "wji"}
        missing = required - set(df.columns)
        if missing:
            raise InvalidBattleError(f"Missing required columns: {missing}")

        rows = zip(
            df["i"].to_list(), df["j"].to_list(), df["wij"].to_list(), df["wji"].to_list()
        )
        return cls(rows, num_players=num_players)

    @classmethod
    def from_games(cls, df, num_players: Optional[int] = None) -> "BattleSet":
        """
        Create from one row per game with columns Player1, Player2, Score.

        Score is from Player1's perspective (1.0 = win, 0.0 = loss,
        0.5 = draw, counted as half a win each). Games are grouped by
        pairing with Polars before validation.
        """
        if not isinstance(df, pl.DataFrame):
            df = pl.from_pandas(df)

        required = {"Player1", "Player2", "Score"}
        missing = required - set(df.columns)
        if missing:
            raise InvalidBattleError(f"Missing required columns: {missing}")

        grouped = (
            df.group_by(["Player1", "Player2"], maintain_order=True)
            .agg(
                pl.col("Score").sum().alias("wij"),
                (1.0 - pl.col("Score")).sum().alias("wji"),
            )
            .rename({"Player1": "i", "Player2": "j"})
        )
        return cls.from_dataframe(grouped, num_players=num_players)

    @property
    def num_players(self) -> int:
        return self._num_players

    @property
    def num_records(self) -> int:
        """Number of input records before aggregation."""
        return len(self._records)

    @property
    def num_pairs(self) -> int:
        """Number of distinct pairings with at least one decided game."""
        return len(self._pair_i)

    @property
    def records(self) -> Sequence[BattleResult]:
        return tuple(self._records)

    def pairs(self):
        """
        Aggregated pairings as arrays (pair_i, pair_j, wij, wji), pair_i < pair_j.
        """
        return (
            self._pair_i.copy(),
            self._pair_j.copy(),
            self._pair_wij.copy(),
            self._pair_wji.copy(),
        )

    def games_per_player(self) -> np.ndarray:
        """Total decided games for every player index."""
        n = self._num_players
        totals = self._pair_wij + self._pair_wji
        return (
            np.bincount(self._pair_i, weights=totals, minlength=n)
            + np.bincount(self._pair_j, weights=totals, minlength=n)
        ).astype(np.float64)

    def build_adjacency(self) -> Adjacency:
        """Build the CSR opponent lists consumed by the solver."""
        n = self._num_players
        src = np.concatenate([self._pair_i, self._pair_j])
        dst = np.concatenate([self._pair_j, self._pair_i])
        wins = np.concatenate([self._pair_wij, self._pair_wji])
        losses = np.concatenate([self._pair_wji, self._pair_wij])

        order = np.argsort(src, kind="stable")
        offsets = np.zeros(n + 1, dtype=np.int64)
        np.cumsum(np.bincount(src, minlength=n), out=offsets[1:])

        return Adjacency(
            offsets=offsets,
            opponents=dst[order],
            wins=wins[order],
            losses=losses[order],
        )

    def unanchored_components(self, fixed: Sequence[bool]) -> List[np.ndarray]:
        """
        Find connected groups of free players with no fixed player among them.

        Ratings in such a group are only determined up to a common shift
        under the pure likelihood.

        Args:
            fixed: (num_players,) Anchor flag for each player

        Returns:
            Sorted player index arrays, one per unanchored component
        """
        fixed = np.asarray(fixed, dtype=bool)
        if len(fixed) != self._num_players:
            raise ValueError(
                f"fixed has {len(fixed)} entries, expected {self._num_players}"
            )

        adjacency = self.build_adjacency()
        seen = np.zeros(self._num_players, dtype=bool)
        components = []

        for start in range(self._num_players):
            if seen[start]:
                continue
            seen[start] = True
            members = [start]
            queue = deque([start])
            while queue:
                player = queue.popleft()
                for opp in adjacency.opponents_of(player):
                    if not seen[opp]:
                        seen[opp] = True
                        members.append(int(opp))
                        queue.append(int(opp))

            members = np.array(sorted(members), dtype=np.int64)
            if not fixed[members].any():
                components.append(members)

        return components

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return (
            f"BattleSet(records={self.num_records}, pairs={self.num_pairs}, "
            f"players={self._num_players})"
        )
