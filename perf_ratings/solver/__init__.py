"""Bradley-Terry performance solver."""

from .perf_calc import CalcOptions, CalcResult, PerfCalc, solve

__all__ = ["CalcOptions", "CalcResult", "PerfCalc", "solve"]
