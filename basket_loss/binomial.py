"""Semi-analytic binomial expansion loss models.

Conditional on the systemic factors, defaults are independent with the
probabilities given by the latent model. The conditional loss distribution
is built name by name and integrated against the factor distribution with
the latent model's integrator.

- BinomialLossModel: counts defaults exactly and values each default at the
  pool's average loss given default amount.
- InhomogeneousPoolLossModel: tracks losses on a bucketed axis, keeping the
  probability mass and mean loss of every bucket, so names may differ in
  notional and recovery.
"""

import logging
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from .config import settings
from .exceptions import InvalidModelParameters
from .loss_model import (
    DefaultLossModel,
    check_basket_size,
    loss_given_default_amounts,
    tranche_loss,
)
from .model import DefaultLatentModel

logger = logging.getLogger(__name__)


def default_count_distribution(probabilities: np.ndarray) -> np.ndarray:
    """Distribution of the number of defaults for independent names.

    Args:
        probabilities: Default probabilities, shape (n, N) for n scenarios

    Returns:
        Probability of k defaults, shape (n, N + 1)
    """
    probabilities = np.atleast_2d(probabilities)
    num_scenarios, num_names = probabilities.shape
    pmf = np.zeros((num_scenarios, num_names + 1))
    pmf[:, 0] = 1.0
    for j in range(num_names):
        p = probabilities[:, j:j + 1]
        pmf[:, 1:j + 2] = pmf[:, 1:j + 2] * (1.0 - p) + pmf[:, 0:j + 1] * p
        pmf[:, 0] *= 1.0 - p[:, 0]
    return pmf


def bucket_loss_distribution(probabilities: np.ndarray, losses: np.ndarray,
                             width: float, num_buckets: int) -> Tuple[np.ndarray, np.ndarray]:
    """Bucketed loss distribution for independent names.

    Args:
        probabilities: Default probability per name
        losses: Loss amount per name on default
        width: Bucket width in loss amount
        num_buckets: Number of buckets; the last one absorbs larger losses

    Returns:
        (mass, loss_sum): probability of each bucket and the probability
        weighted sum of the losses it holds
    """
    mass = np.zeros(num_buckets)
    loss_sum = np.zeros(num_buckets)
    mass[0] = 1.0
    for p, loss in zip(probabilities, losses):
        if p <= 0.0 or loss <= 0.0:
            continue
        occupied = np.nonzero(mass > 0.0)[0]
        mean = loss_sum[occupied] / mass[occupied]
        target = np.minimum(
            np.floor((mean + loss) / width + 1e-9).astype(int), num_buckets - 1
        )
        moved_mass = mass[occupied] * p
        moved_sum = (loss_sum[occupied] + mass[occupied] * loss) * p
        mass *= 1.0 - p
        loss_sum *= 1.0 - p
        mass += np.bincount(target, weights=moved_mass, minlength=num_buckets)
        loss_sum += np.bincount(target, weights=moved_sum, minlength=num_buckets)
    return mass, loss_sum


class BinomialLossModel(DefaultLossModel):
    """Binomial expansion on the number of defaults.

    Exact when all names share the same notional and recovery; otherwise
    each default is valued at the average loss given default amount.
    """

    def __init__(self, latent_model: DefaultLatentModel):
        self.latent_model = latent_model

    def _check_basket(self, basket) -> None:
        check_basket_size(self.latent_model.recoveries, basket)

    def _setup(self, basket, t: float) -> Tuple[np.ndarray, np.ndarray]:
        thresholds = self.latent_model.default_thresholds(basket.default_probabilities(t))
        losses = loss_given_default_amounts(basket, self.latent_model.recoveries)
        loss_unit = float(np.sum(losses)) / basket.size
        return thresholds, np.arange(basket.size + 1) * loss_unit

    def _conditional_counts(self, thresholds: np.ndarray):
        def conditional(points):
            probabilities = self.latent_model.conditional_default_probabilities(
                thresholds, points
            )
            return default_count_distribution(probabilities)
        return conditional

    def _expected_tranche_loss(self, basket, t: float, attachment_amount: float,
                               detachment_amount: float) -> float:
        thresholds, levels = self._setup(basket, t)
        payoff = tranche_loss(levels, attachment_amount, detachment_amount)
        counts = self._conditional_counts(thresholds)
        return float(self.latent_model.integrator.integrate(
            lambda points: counts(points) @ payoff
        ))

    def _distribution(self, basket, t: float) -> Tuple[np.ndarray, np.ndarray]:
        thresholds, levels = self._setup(basket, t)
        pmf = self.latent_model.integrator.integrate(self._conditional_counts(thresholds))
        return levels, pmf

    def loss_distribution(self, basket, date) -> pd.Series:
        """Unconditional distribution of the portfolio loss amount."""
        self._check_basket(basket)
        levels, pmf = self._distribution(basket, basket.time_to(date))
        return pd.Series(pmf, index=pd.Index(levels, name="loss"), name="probability")

    def _probability_over_loss(self, basket, t: float, loss_amount: float) -> float:
        levels, pmf = self._distribution(basket, t)
        tolerance = 1e-12 * basket.total_notional
        return float(np.clip(np.sum(pmf[levels > loss_amount + tolerance]), 0.0, 1.0))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.latent_model!r})"


class InhomogeneousPoolLossModel(DefaultLossModel):
    """Bucketed loss distribution for names with differing notionals and recoveries."""

    def __init__(self, latent_model: DefaultLatentModel, num_buckets: Optional[int] = None):
        """Initialize the model.

        Args:
            latent_model: Latent factor model with fixed recoveries
            num_buckets: Buckets on the loss axis (settings.num_buckets if None)
        """
        num_buckets = settings.num_buckets if num_buckets is None else num_buckets
        if int(num_buckets) != num_buckets or num_buckets < 1:
            raise InvalidModelParameters(
                f"Number of buckets must be a positive integer, got {num_buckets}"
            )
        self.latent_model = latent_model
        self.num_buckets = int(num_buckets)

    def _check_basket(self, basket) -> None:
        check_basket_size(self.latent_model.recoveries, basket)

    def _conditional_buckets(self, basket, t: float):
        thresholds = self.latent_model.default_thresholds(basket.default_probabilities(t))
        losses = loss_given_default_amounts(basket, self.latent_model.recoveries)
        max_loss = float(np.sum(losses))
        width = max_loss / self.num_buckets if max_loss > 0 else 1.0
        num_buckets = self.num_buckets

        def conditional(points):
            probabilities = self.latent_model.conditional_default_probabilities(
                thresholds, points
            )
            result = np.empty((len(probabilities), 2, num_buckets))
            for row, p in enumerate(probabilities):
                result[row, 0], result[row, 1] = bucket_loss_distribution(
                    p, losses, width, num_buckets
                )
            return result

        return conditional, width

    def _expected_tranche_loss(self, basket, t: float, attachment_amount: float,
                               detachment_amount: float) -> float:
        conditional, _ = self._conditional_buckets(basket, t)

        def conditional_tranche_loss(points):
            buckets = conditional(points)
            mass, loss_sum = buckets[:, 0], buckets[:, 1]
            with np.errstate(divide="ignore", invalid="ignore"):
                mean = np.where(mass > 0.0, loss_sum / mass, 0.0)
            return np.sum(mass * tranche_loss(mean, attachment_amount, detachment_amount), axis=1)

        return float(self.latent_model.integrator.integrate(conditional_tranche_loss))

    def _distribution(self, basket, t: float) -> Tuple[np.ndarray, np.ndarray]:
        conditional, width = self._conditional_buckets(basket, t)
        mass, loss_sum = self.latent_model.integrator.integrate(conditional)
        midpoints = (np.arange(self.num_buckets) + 0.5) * width
        with np.errstate(divide="ignore", invalid="ignore"):
            levels = np.where(mass > 0.0, loss_sum / mass, midpoints)
        return levels, mass

    def loss_distribution(self, basket, date) -> pd.Series:
        """Unconditional bucketed distribution, indexed by mean bucket loss."""
        self._check_basket(basket)
        levels, mass = self._distribution(basket, basket.time_to(date))
        return pd.Series(mass, index=pd.Index(levels, name="loss"), name="probability")

    def _probability_over_loss(self, basket, t: float, loss_amount: float) -> float:
        levels, mass = self._distribution(basket, t)
        tolerance = 1e-12 * basket.total_notional
        return float(np.clip(np.sum(mass[levels > loss_amount + tolerance]), 0.0, 1.0))

    def __repr__(self) -> str:
        return (f"InhomogeneousPoolLossModel({self.latent_model!r}, "
                f"num_buckets={self.num_buckets})")
