"""Large homogeneous pool (LHP) analytic loss model.

For an infinitely granular pool with a single Gaussian factor and common
correlation ρ, the loss fraction conditional on the factor M is

    L(M) = (1 - R) × p(M),   p(M) = Φ((Φ⁻¹(p) - √ρ M) / √(1 - ρ))

and base tranche losses E[min(L, K)] have closed forms in terms of the
bivariate normal distribution, evaluated here as a one-dimensional integral.
"""

import logging
from typing import Sequence, Tuple

import numpy as np
from scipy import stats
from scipy.integrate import quad

from .exceptions import InvalidModelParameters
from .loss_model import (
    DefaultLossModel,
    check_basket_size,
    expected_portfolio_loss,
    loss_given_default_amounts,
    validate_recoveries,
)

logger = logging.getLogger(__name__)


def check_correlation(correlation: float) -> float:
    """Require a correlation within [0, 1]."""
    if not np.isfinite(correlation) or not 0.0 <= correlation <= 1.0:
        raise InvalidModelParameters(
            f"Correlation must be between 0 and 1, got {correlation}"
        )
    return float(correlation)


def _expected_excess(probability: float, correlation: float, strike: float) -> float:
    """E[(p(M) - k)^+] for the conditional default rate p(M)."""
    if strike >= 1.0 or probability <= 0.0:
        return 0.0
    if strike <= 0.0:
        return probability
    if probability >= 1.0:
        return 1.0 - strike
    if correlation <= 0.0:
        return max(probability - strike, 0.0)
    if correlation >= 1.0:
        return probability * (1.0 - strike)

    threshold = stats.norm.ppf(probability)
    sqrt_rho = np.sqrt(correlation)
    sqrt_one_minus_rho = np.sqrt(1.0 - correlation)
    # p(M) > k exactly when M < m_star
    m_star = (threshold - sqrt_one_minus_rho * stats.norm.ppf(strike)) / sqrt_rho

    mass, _ = quad(
        lambda m: stats.norm.pdf(m) * stats.norm.cdf((threshold - sqrt_rho * m) / sqrt_one_minus_rho),
        -np.inf, m_star, epsabs=1e-13, epsrel=1e-11, limit=200,
    )
    return max(mass - strike * stats.norm.cdf(m_star), 0.0)


def lhp_base_tranche_loss(probability: float, recovery: float, correlation: float,
                          detachment: float) -> float:
    """Expected loss of the base tranche [0, K] as a fraction of pool notional.

    Args:
        probability: Pool average default probability at the horizon
        recovery: Pool average recovery
        correlation: Common factor correlation ρ
        detachment: Base tranche detachment K as a fraction of notional

    Returns:
        E[min(L, K)]
    """
    loss_given_default = 1.0 - recovery
    if loss_given_default <= 0.0 or detachment <= 0.0:
        return 0.0
    strike = detachment / loss_given_default
    return loss_given_default * (probability - _expected_excess(probability, correlation, strike))


def lhp_probability_over_loss(probability: float, recovery: float, correlation: float,
                              loss_level: float) -> float:
    """P(L > loss_level) for the large pool loss fraction."""
    loss_given_default = 1.0 - recovery
    if loss_given_default <= 0.0 or probability <= 0.0:
        return 0.0
    strike = loss_level / loss_given_default
    if strike >= 1.0:
        return 0.0
    if probability >= 1.0:
        return 1.0
    if correlation <= 0.0:
        return 1.0 if probability > strike else 0.0
    if correlation >= 1.0:
        return probability
    if strike <= 0.0:
        return 1.0
    threshold = stats.norm.ppf(probability)
    m_star = (threshold - np.sqrt(1.0 - correlation) * stats.norm.ppf(strike)) / np.sqrt(correlation)
    return float(stats.norm.cdf(m_star))


def pool_averages(basket, recoveries: np.ndarray, t: float) -> Tuple[float, float]:
    """Loss-weighted average default probability and notional-weighted recovery.

    Default probabilities are averaged with weights notional × (1 - recovery)
    so that (1 - R̄) × p̄ × notional equals the portfolio expected loss.
    """
    total_weight = float(np.sum(loss_given_default_amounts(basket, recoveries)))
    if total_weight <= 0.0:
        probabilities = basket.default_probabilities(t)
        return float(np.average(probabilities, weights=basket.notionals)), 1.0
    probability = expected_portfolio_loss(basket, recoveries, t) / total_weight
    recovery = 1.0 - total_weight / basket.total_notional
    return probability, recovery


class GaussianLHPLossModel(DefaultLossModel):
    """Gaussian large homogeneous pool loss model with a fixed correlation."""

    def __init__(self, correlation: float, recoveries: Sequence[float]):
        """Initialize the LHP model.

        Args:
            correlation: Common correlation ρ (factor loading squared)
            recoveries: Recovery rate per basket name
        """
        self.correlation = check_correlation(correlation)
        self.recoveries = validate_recoveries(recoveries)

    def _check_basket(self, basket) -> None:
        check_basket_size(self.recoveries, basket)

    def _expected_tranche_loss(self, basket, t: float, attachment_amount: float,
                               detachment_amount: float) -> float:
        probability, recovery = pool_averages(basket, self.recoveries, t)
        total = basket.total_notional
        upper = lhp_base_tranche_loss(probability, recovery, self.correlation,
                                      detachment_amount / total)
        lower = lhp_base_tranche_loss(probability, recovery, self.correlation,
                                      attachment_amount / total)
        return total * (upper - lower)

    def _probability_over_loss(self, basket, t: float, loss_amount: float) -> float:
        probability, recovery = pool_averages(basket, self.recoveries, t)
        return lhp_probability_over_loss(probability, recovery, self.correlation,
                                         loss_amount / basket.total_notional)

    def __repr__(self) -> str:
        return f"GaussianLHPLossModel(correlation={self.correlation:.4f})"
