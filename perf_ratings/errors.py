"""Exceptions raised while validating solver input.

All errors derive from PerfCalcError, itself a ValueError, so callers can
catch either the whole family or one specific condition.
"""

from typing import Optional


class PerfCalcError(ValueError):
    """Base class for every input or configuration error."""


class InvalidReferenceError(PerfCalcError):
    """A battle references a player index that does not exist, or itself."""

    def __init__(self, message: str, battle_index: Optional[int] = None,
                 i: Optional[int] = None, j: Optional[int] = None):
        super().__init__(message)
        self.battle_index = battle_index
        self.i = i
        self.j = j


class DegeneratePlayerError(PerfCalcError):
    """A free player has no decided games, so its curvature is zero."""

    def __init__(self, message: str, player: Optional[int] = None):
        super().__init__(message)
        self.player = player


class InvalidConfigError(PerfCalcError):
    """Non-positive iteration bound, threshold, or negative prior precision."""


class InvalidBattleError(PerfCalcError):
    """Malformed battle record or a negative / non-finite win count."""


class InvalidRatingError(PerfCalcError):
    """Malformed rating record or a non-finite rating value."""


class NonFiniteResultError(PerfCalcError):
    """The sweeps overflowed and left a NaN or infinite rating."""

    def __init__(self, message: str, player: Optional[int] = None):
        super().__init__(message)
        self.player = player
