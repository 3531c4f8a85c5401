"""Default probability term structures and date helpers.

Times are year fractions measured from the owning basket's reference date.
Dates are converted with Actual/365 Fixed. Both curves extrapolate beyond
their last pillar with the last hazard rate.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import List, Sequence, Union

import numpy as np
import pandas as pd

DateLike = Union[date, datetime, pd.Timestamp, str]


def to_timestamp(value: DateLike) -> pd.Timestamp:
    """Normalise a date-like value to a midnight ``pandas.Timestamp``."""
    return pd.Timestamp(value).normalize()


def year_fraction(start: DateLike, end: DateLike) -> float:
    """Actual/365 Fixed year fraction between two dates."""
    return (to_timestamp(end) - to_timestamp(start)).days / 365.0


def advance(start: DateLike, months: int = 0, years: int = 0) -> date:
    """Advance a date by whole calendar months and years."""
    shifted = to_timestamp(start) + pd.DateOffset(years=years, months=months)
    return shifted.date()


class DefaultProbabilityCurve(ABC):
    """Abstract base class for default probability term structures."""

    @abstractmethod
    def survival_probability(self, t: float) -> float:
        """Probability of surviving to time t (year fraction)."""
        pass

    def default_probability(self, t: float) -> float:
        """Cumulative probability of default by time t."""
        return 1.0 - self.survival_probability(t)


class FlatHazardRate(DefaultProbabilityCurve):
    """Constant hazard rate curve: P(default by t) = 1 - exp(-h t)."""

    def __init__(self, hazard_rate: float):
        if hazard_rate < 0:
            raise ValueError(f"Hazard rate must be non-negative, got {hazard_rate}")
        self._hazard_rate = float(hazard_rate)

    def hazard_rate(self, t: float = 0.0) -> float:
        return self._hazard_rate

    def survival_probability(self, t: float) -> float:
        if t < 0:
            raise ValueError(f"t must be >= 0, got {t}")
        return float(np.exp(-self._hazard_rate * t))

    def __repr__(self) -> str:
        return f"FlatHazardRate(hazard_rate={self._hazard_rate:.4f})"


class PiecewiseHazardRateCurve(DefaultProbabilityCurve):
    """Piecewise-constant hazard rate curve.

    ``hazard_rates[i]`` applies on ``(times[i-1], times[i]]`` with
    ``times[-1] = 0``; the last rate is used beyond the final pillar.
    """

    def __init__(self, times: Sequence[float], hazard_rates: Sequence[float]):
        times = np.asarray(times, dtype=float)
        hazard_rates = np.asarray(hazard_rates, dtype=float)
        if len(times) == 0 or len(times) != len(hazard_rates):
            raise ValueError("times and hazard_rates must be non-empty and of equal length")
        if times[0] <= 0 or np.any(np.diff(times) <= 0):
            raise ValueError("times must be positive and strictly increasing")
        if np.any(hazard_rates < 0):
            raise ValueError("Hazard rates must be non-negative")

        self._times = times
        self._hazard_rates = hazard_rates
        starts = np.concatenate([[0.0], times[:-1]])
        self._starts = starts
        self._cumulative = np.concatenate(
            [[0.0], np.cumsum(hazard_rates * (times - starts))]
        )

    @property
    def times(self) -> List[float]:
        return self._times.tolist()

    def hazard_rate(self, t: float) -> float:
        """Hazard rate in force at time t."""
        idx = min(int(np.searchsorted(self._times, t, side="left")), len(self._times) - 1)
        return float(self._hazard_rates[idx])

    def survival_probability(self, t: float) -> float:
        if t < 0:
            raise ValueError(f"t must be >= 0, got {t}")
        idx = min(int(np.searchsorted(self._times, t, side="left")), len(self._times) - 1)
        integral = self._cumulative[idx] + self._hazard_rates[idx] * (t - self._starts[idx])
        return float(np.exp(-integral))

    def __repr__(self) -> str:
        return f"PiecewiseHazardRateCurve(pillars={len(self._times)})"
