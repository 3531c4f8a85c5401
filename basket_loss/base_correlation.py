"""Base correlation surface and the LHP model it drives.

The surface stores implied correlations on a (tenor, loss level) grid and
interpolates bilinearly between grid points. Grid values may be plain floats
or ``SimpleQuote`` objects; quotes are read at lookup time, so updating a
quote is seen by every model sharing the surface.
"""

import logging
from typing import List, Sequence, Union

import numpy as np
from scipy.interpolate import RegularGridInterpolator

from .config import settings
from .exceptions import InvalidModelParameters, OutOfGridRange
from .lhp import check_correlation, lhp_base_tranche_loss, lhp_probability_over_loss, pool_averages
from .loss_model import DefaultLossModel, check_basket_size, validate_recoveries

logger = logging.getLogger(__name__)

EXTRAPOLATION_POLICIES = ("flat", "linear", "error")


class SimpleQuote:
    """A mutable market value."""

    def __init__(self, value: float):
        self._value = self._check(value)

    @staticmethod
    def _check(value: float) -> float:
        value = float(value)
        if not np.isfinite(value):
            raise ValueError(f"Quote value must be finite, got {value}")
        return value

    @property
    def value(self) -> float:
        return self._value

    def set_value(self, value: float) -> None:
        self._value = self._check(value)

    def __repr__(self) -> str:
        return f"SimpleQuote({self._value})"


QuoteLike = Union[float, SimpleQuote]


def _strictly_increasing(name: str, values: Sequence[float]) -> np.ndarray:
    array = np.array(values, dtype=float)
    if array.ndim != 1 or len(array) < 2:
        raise InvalidModelParameters(f"{name} needs at least two grid points")
    if not np.all(np.isfinite(array)) or np.any(np.diff(array) <= 0):
        raise InvalidModelParameters(f"{name} must be strictly increasing, got {array}")
    return array


class BaseCorrelationSurface:
    """Bilinear base correlation surface over (tenor, loss level).

    Points outside the grid are handled per the extrapolation policy:
    'flat' clamps to the nearest grid edge, 'linear' extends the edge
    slopes and 'error' raises OutOfGridRange.
    """

    def __init__(self, tenors: Sequence[float], loss_levels: Sequence[float],
                 correlations: Sequence[Sequence[QuoteLike]],
                 extrapolation: str = None):
        """Initialize the surface.

        Args:
            tenors: Grid tenors as year fractions
            loss_levels: Grid loss levels as fractions of notional
            correlations: One row per tenor, one column per loss level
            extrapolation: 'flat', 'linear' or 'error' (configured default if None)
        """
        self._tenors = _strictly_increasing("Tenors", tenors)
        self._loss_levels = _strictly_increasing("Loss levels", loss_levels)
        if self._tenors[0] < 0:
            raise InvalidModelParameters("Tenors must be non-negative")
        if self._loss_levels[0] < 0 or self._loss_levels[-1] > 1:
            raise InvalidModelParameters("Loss levels must be between 0 and 1")

        rows = [list(row) for row in correlations]
        if len(rows) != len(self._tenors) or any(len(row) != len(self._loss_levels) for row in rows):
            raise InvalidModelParameters(
                f"Correlation grid must have shape ({len(self._tenors)}, {len(self._loss_levels)})"
            )
        self._quotes: List[List[SimpleQuote]] = [
            [q if isinstance(q, SimpleQuote) else SimpleQuote(q) for q in row] for row in rows
        ]
        self.values()

        self.extrapolation = (extrapolation or settings.bc_extrapolation).lower()
        if self.extrapolation not in EXTRAPOLATION_POLICIES:
            raise InvalidModelParameters(
                f"Unknown extrapolation policy: {self.extrapolation}. "
                f"Choose from: {list(EXTRAPOLATION_POLICIES)}"
            )

    @property
    def tenors(self) -> np.ndarray:
        return self._tenors.copy()

    @property
    def loss_levels(self) -> np.ndarray:
        return self._loss_levels.copy()

    def values(self) -> np.ndarray:
        """Current correlation grid read from the quotes."""
        grid = np.array([[q.value for q in row] for row in self._quotes])
        if np.any(grid < 0) or np.any(grid > 1):
            raise InvalidModelParameters(f"Correlation quotes must be between 0 and 1, got {grid}")
        return grid

    def _in_grid(self, t: float, loss_level: float) -> bool:
        return (self._tenors[0] <= t <= self._tenors[-1]
                and self._loss_levels[0] <= loss_level <= self._loss_levels[-1])

    def correlation(self, t: float, loss_level: float) -> float:
        """Interpolated correlation at tenor t and loss level."""
        point = np.array([t, loss_level], dtype=float)
        if not self._in_grid(t, loss_level):
            if self.extrapolation == "error":
                raise OutOfGridRange(
                    f"Point (t={t}, loss_level={loss_level}) outside grid "
                    f"[{self._tenors[0]}, {self._tenors[-1]}] x "
                    f"[{self._loss_levels[0]}, {self._loss_levels[-1]}]"
                )
            if self.extrapolation == "flat":
                point = np.array([
                    np.clip(t, self._tenors[0], self._tenors[-1]),
                    np.clip(loss_level, self._loss_levels[0], self._loss_levels[-1]),
                ])
                logger.debug("Clamped base correlation lookup (%s, %s) to %s", t, loss_level, point)

        interpolator = RegularGridInterpolator(
            (self._tenors, self._loss_levels), self.values(),
            method="linear", bounds_error=False, fill_value=None,
        )
        return check_correlation(float(interpolator(point[np.newaxis, :])[0]))

    def __repr__(self) -> str:
        return (f"BaseCorrelationSurface(tenors={self._tenors.tolist()}, "
                f"loss_levels={self._loss_levels.tolist()}, extrapolation={self.extrapolation!r})")


class BaseCorrelationLHPModel(DefaultLossModel):
    """LHP model whose correlation is read off a base correlation surface.

    A tranche [A, D] is valued as the difference of two base tranches,
    [0, D] at the correlation quoted for D and [0, A] at the one quoted
    for A.
    """

    def __init__(self, surface: BaseCorrelationSurface, recoveries: Sequence[float]):
        self.surface = surface
        self.recoveries = validate_recoveries(recoveries)

    def _check_basket(self, basket) -> None:
        check_basket_size(self.recoveries, basket)

    def _base_tranche_loss(self, probability: float, recovery: float, t: float,
                           level: float) -> float:
        if level <= 0.0:
            return 0.0
        correlation = self.surface.correlation(t, level)
        return lhp_base_tranche_loss(probability, recovery, correlation, level)

    def _expected_tranche_loss(self, basket, t: float, attachment_amount: float,
                               detachment_amount: float) -> float:
        probability, recovery = pool_averages(basket, self.recoveries, t)
        total = basket.total_notional
        upper = self._base_tranche_loss(probability, recovery, t, detachment_amount / total)
        lower = self._base_tranche_loss(probability, recovery, t, attachment_amount / total)
        return total * (upper - lower)

    def _probability_over_loss(self, basket, t: float, loss_amount: float) -> float:
        probability, recovery = pool_averages(basket, self.recoveries, t)
        level = loss_amount / basket.total_notional
        return lhp_probability_over_loss(probability, recovery,
                                         self.surface.correlation(t, level), level)

    def __repr__(self) -> str:
        return f"BaseCorrelationLHPModel({self.surface!r})"
