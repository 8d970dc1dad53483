"""Record types for solver input."""

import math
from dataclasses import dataclass
from typing import Any, Mapping

import numpy as np

from ..errors import InvalidBattleError, InvalidRatingError


@dataclass(frozen=True)
class Rating:
    """A player's performance rating on the logistic scale."""

    value: float         # Current estimate (higher = stronger)
    fixed: bool = False  # Anchor: never updated by the solver

    def __post_init__(self):
        try:
            value = float(self.value)
        except (TypeError, ValueError, OverflowError):
            raise InvalidRatingError(f"Rating value must be a number, got {self.value!r}")
        if not math.isfinite(value):
            raise InvalidRatingError(f"Invalid rating value: {value}")
        if not isinstance(self.fixed, (bool, np.bool_)):
            raise InvalidRatingError(f"Rating fixed flag must be a bool, got {self.fixed!r}")
        object.__setattr__(self, "value", value)
        object.__setattr__(self, "fixed", bool(self.fixed))


@dataclass(frozen=True)
class BattleResult:
    """Aggregate outcome of the games between players i and j."""

    i: int      # Index of the first player (0-based)
    j: int      # Index of the second player (0-based)
    wij: float  # Wins by i against j
    wji: float  # Wins by j against i

    def __post_init__(self):
        for name in ("i", "j"):
            idx = getattr(self, name)
            if isinstance(idx, bool) or not isinstance(idx, int):
                # numpy integers are accepted and normalised to int
                try:
                    as_int = int(idx)
                except (TypeError, ValueError, OverflowError):
                    raise InvalidBattleError(f"Battle index {name} must be an integer, got {idx!r}")
                if as_int != idx:
                    raise InvalidBattleError(f"Battle index {name} must be an integer, got {idx!r}")
                object.__setattr__(self, name, as_int)

        for name in ("wij", "wji"):
            wins = getattr(self, name)
            try:
                wins = float(wins)
            except (TypeError, ValueError, OverflowError):
                raise InvalidBattleError(f"Win count {name} must be a number, got {wins!r}")
            if not (math.isfinite(wins) and wins >= 0.0):
                raise InvalidBattleError(f"Invalid battle result: {name}={wins}")
            object.__setattr__(self, name, wins)

    @property
    def games(self) -> float:
        """Total decided games in this record."""
        return self.wij + self.wji


def to_rating(record: Any) -> Rating:
    """
    Coerce a loosely-typed rating record.

    Accepts a Rating, a mapping with "value" and "fixed" keys, or a
    (value, fixed) pair. The fixed flag must be a real bool.
    """
    if isinstance(record, Rating):
        return record
    if isinstance(record, Mapping):
        missing = {"value", "fixed"} - set(record)
        if missing:
            raise InvalidRatingError(f"Rating record missing keys {sorted(missing)}: {record!r}")
        return Rating(value=record["value"], fixed=record["fixed"])
    if isinstance(record, (tuple, list)) and len(record) == 2:
        return Rating(value=record[0], fixed=record[1])
    raise InvalidRatingError(f"Cannot interpret {record!r} as a rating")


def to_battle(record: Any) -> BattleResult:
    """
    Coerce a loosely-typed battle record.

    Accepts a BattleResult, a mapping with keys i, j, wij, wji, or an
    (i, j, wij, wji) tuple.
    """
    if isinstance(record, BattleResult):
        return record
    if isinstance(record, Mapping):
        missing = {"i", "j", "wij", "wji"} - set(record)
        if missing:
            raise InvalidBattleError(f"Battle record missing keys {sorted(missing)}: {record!r}")
        return BattleResult(i=record["i"], j=record["j"], wij=record["wij"], wji=record["wji"])
    if isinstance(record, (tuple, list)) and len(record) == 4:
        return BattleResult(*record)
    raise InvalidBattleError(f"Cannot interpret {record!r} as a battle")
