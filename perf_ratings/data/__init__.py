"""Input records and battle containers."""

from .battles import Adjacency, BattleSet
from .types import BattleResult, Rating, to_battle, to_rating

__all__ = ["Adjacency", "BattleSet", "BattleResult", "Rating", "to_battle", "to_rating"]
