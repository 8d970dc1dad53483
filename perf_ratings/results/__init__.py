"""Results and fitted model classes."""

from .fitted_ratings import FittedPerfRatings

__all__ = ["FittedPerfRatings"]
