"""Common interface of the basket default loss models.

Every strategy answers one question, the expected loss of a tranche of a
basket at a horizon, and holds only its own parameters: the basket is passed
in on each call. Tranche bounds are fractions of basket notional; results are
currency amounts.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional, Sequence

import numpy as np

from .exceptions import InvalidModelParameters, InvalidTrancheBounds

logger = logging.getLogger(__name__)


def check_tranche_bounds(attachment: float, detachment: float) -> None:
    """Require 0 <= attachment < detachment <= 1."""
    if not (0.0 <= attachment < detachment <= 1.0):
        raise InvalidTrancheBounds(
            f"Tranche bounds must satisfy 0 <= attachment < detachment <= 1, "
            f"got attachment={attachment}, detachment={detachment}"
        )


def tranche_loss(losses, attachment_amount: float, detachment_amount: float) -> np.ndarray:
    """Loss absorbed by the tranche for given portfolio loss amounts."""
    return np.clip(
        np.asarray(losses, dtype=float) - attachment_amount,
        0.0,
        detachment_amount - attachment_amount,
    )


def validate_recoveries(recoveries: Sequence[float]) -> np.ndarray:
    """Convert recoveries to a read-only array, each within [0, 1]."""
    values = np.array(recoveries, dtype=float)
    if values.ndim != 1 or len(values) == 0:
        raise InvalidModelParameters("Recoveries must be a non-empty vector")
    if np.any(~np.isfinite(values)) or np.any(values < 0) or np.any(values > 1):
        raise InvalidModelParameters(f"Recoveries must be between 0 and 1, got {values}")
    values.setflags(write=False)
    return values


def check_basket_size(recoveries: np.ndarray, basket) -> None:
    """Require one recovery per basket name."""
    if len(recoveries) != basket.size:
        raise InvalidModelParameters(
            f"Model has {len(recoveries)} recoveries for a basket of {basket.size} names"
        )


def loss_given_default_amounts(basket, recoveries: np.ndarray) -> np.ndarray:
    """Notional times (1 - recovery) per name."""
    return basket.notionals * (1.0 - recoveries)


def expected_portfolio_loss(basket, recoveries: np.ndarray, t: float) -> float:
    """Sum of notional x (1 - recovery) x default probability over the names."""
    probabilities = basket.default_probabilities(t)
    return float(np.sum(loss_given_default_amounts(basket, recoveries) * probabilities))


class DefaultLossModel(ABC):
    """Abstract base class for basket loss model strategies.

    Subclasses implement ``_expected_tranche_loss`` working in loss amounts
    and year fractions; the public methods resolve and validate bounds and
    dates first.
    """

    def expected_tranche_loss(self, basket, date, attachment: Optional[float] = None,
                              detachment: Optional[float] = None) -> float:
        """Expected loss of a tranche of the basket by a horizon date.

        Args:
            basket: The basket holding names, notionals and curves
            date: Horizon as a date or a year fraction from the reference date
            attachment: Attachment as fraction of notional (basket's if None)
            detachment: Detachment as fraction of notional (basket's if None)

        Returns:
            Expected tranche loss in currency units
        """
        attachment = basket.attachment_ratio if attachment is None else attachment
        detachment = basket.detachment_ratio if detachment is None else detachment
        check_tranche_bounds(attachment, detachment)
        self._check_basket(basket)

        t = basket.time_to(date)
        total = basket.total_notional
        value = float(self._expected_tranche_loss(
            basket, t, attachment * total, detachment * total
        ))
        logger.debug("%s: tranche [%.4f, %.4f] at t=%.4f -> %.6f",
                     type(self).__name__, attachment, detachment, t, value)
        return value

    def expected_loss(self, basket, date) -> float:
        """Expected loss of the whole portfolio by the horizon date."""
        return self.expected_tranche_loss(basket, date, 0.0, 1.0)

    def probability_over_loss(self, basket, date, loss_fraction: float) -> float:
        """Probability that the portfolio loss exceeds a fraction of notional."""
        if not 0.0 <= loss_fraction <= 1.0:
            raise InvalidTrancheBounds(
                f"Loss fraction must be between 0 and 1, got {loss_fraction}"
            )
        self._check_basket(basket)
        t = basket.time_to(date)
        return float(self._probability_over_loss(
            basket, t, loss_fraction * basket.total_notional
        ))

    def release(self) -> None:
        """Drop any cached state; called when a basket replaces this model."""

    def _check_basket(self, basket) -> None:
        """Raise if the model cannot be applied to the basket."""

    def _probability_over_loss(self, basket, t: float, loss_amount: float) -> float:
        raise NotImplementedError(
            f"{type(self).__name__} does not provide a loss distribution"
        )

    @abstractmethod
    def _expected_tranche_loss(self, basket, t: float, attachment_amount: float,
                               detachment_amount: float) -> float:
        """Expected tranche loss in amounts at year fraction t."""
        pass
