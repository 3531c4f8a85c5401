"""Copula policies for the latent factor model.

A policy fixes the distribution of each systemic factor and of the
idiosyncratic term. Factors and the idiosyncratic term are independent and
have unit variance where the distribution allows it, so that factor loadings
read as correlations.

Supports:
- Gaussian: standard normal factors and idiosyncratic term
- Student-t: one degrees-of-freedom order per factor plus one for the
  idiosyncratic term
"""

from abc import ABC, abstractmethod
from typing import List, Sequence

import numpy as np
from scipy import stats

from .exceptions import InvalidModelParameters


class CopulaPolicy(ABC):
    """Abstract base class for latent variable copula policies."""

    name: str = "abstract"

    @property
    def is_gaussian(self) -> bool:
        return False

    def validate(self, num_factors: int) -> None:
        """Raise InvalidModelParameters if unusable with this many factors."""

    @abstractmethod
    def factor_pdf(self, k: int, x: np.ndarray) -> np.ndarray:
        """Density of systemic factor k."""
        pass

    @abstractmethod
    def factor_ppf(self, k: int, z: np.ndarray) -> np.ndarray:
        """Quantile of systemic factor k at the standard normal level Phi(z).

        Maps standard normal draws or quadrature nodes onto factor k.
        """
        pass

    @abstractmethod
    def idiosyncratic_cdf(self, x: np.ndarray) -> np.ndarray:
        """Cumulative distribution of the idiosyncratic term."""
        pass

    @abstractmethod
    def sample_factors(self, rng: np.random.Generator, size: int,
                       num_factors: int) -> np.ndarray:
        """Draw systemic factors, shape (size, num_factors)."""
        pass

    @abstractmethod
    def sample_idiosyncratic(self, rng: np.random.Generator, size: int,
                             num_names: int) -> np.ndarray:
        """Draw idiosyncratic shocks, shape (size, num_names)."""
        pass


class GaussianCopula(CopulaPolicy):
    """Standard normal factors and idiosyncratic shocks."""

    name = "gaussian"

    @property
    def is_gaussian(self) -> bool:
        return True

    def factor_pdf(self, k: int, x: np.ndarray) -> np.ndarray:
        return stats.norm.pdf(x)

    def factor_ppf(self, k: int, z: np.ndarray) -> np.ndarray:
        return np.asarray(z, dtype=float)

    def idiosyncratic_cdf(self, x: np.ndarray) -> np.ndarray:
        return stats.norm.cdf(x)

    def sample_factors(self, rng: np.random.Generator, size: int,
                       num_factors: int) -> np.ndarray:
        return rng.standard_normal((size, num_factors))

    def sample_idiosyncratic(self, rng: np.random.Generator, size: int,
                             num_names: int) -> np.ndarray:
        return rng.standard_normal((size, num_names))

    def __repr__(self) -> str:
        return "GaussianCopula()"


class StudentTCopula(CopulaPolicy):
    """Student-t factors and idiosyncratic term.

    ``degrees_of_freedom`` holds one order per systemic factor followed by
    the order of the idiosyncratic term. Orders above 2 are rescaled by
    sqrt((nu - 2) / nu) to unit variance; orders 1 and 2 have no finite
    variance and are used unscaled.
    """

    name = "student_t"

    def __init__(self, degrees_of_freedom: Sequence[int]):
        orders = list(degrees_of_freedom)
        if len(orders) < 2:
            raise InvalidModelParameters(
                "Student-t copula needs one order per factor plus one idiosyncratic order"
            )
        for nu in orders:
            if int(nu) != nu or nu < 1:
                raise InvalidModelParameters(
                    f"Degrees of freedom must be integers >= 1, got {orders}"
                )
        self._orders: List[int] = [int(nu) for nu in orders]
        self._scales = np.array([
            np.sqrt((nu - 2.0) / nu) if nu > 2 else 1.0 for nu in self._orders
        ])

    @property
    def degrees_of_freedom(self) -> List[int]:
        return list(self._orders)

    def validate(self, num_factors: int) -> None:
        if len(self._orders) != num_factors + 1:
            raise InvalidModelParameters(
                f"Student-t copula has {len(self._orders)} orders, "
                f"model needs {num_factors + 1} ({num_factors} factors + idiosyncratic)"
            )

    def _pdf(self, k: int, x: np.ndarray) -> np.ndarray:
        scale = self._scales[k]
        return stats.t.pdf(np.asarray(x) / scale, self._orders[k]) / scale

    def factor_pdf(self, k: int, x: np.ndarray) -> np.ndarray:
        return self._pdf(k, x)

    def factor_ppf(self, k: int, z: np.ndarray) -> np.ndarray:
        # Lower and upper tails are mapped separately to keep far nodes finite.
        z = np.asarray(z, dtype=float)
        nu = self._orders[k]
        lower = stats.t.ppf(stats.norm.cdf(np.minimum(z, 0.0)), nu)
        upper = stats.t.isf(stats.norm.sf(np.maximum(z, 0.0)), nu)
        return np.where(z < 0.0, lower, upper) * self._scales[k]

    def idiosyncratic_cdf(self, x: np.ndarray) -> np.ndarray:
        return stats.t.cdf(np.asarray(x) / self._scales[-1], self._orders[-1])

    def sample_factors(self, rng: np.random.Generator, size: int,
                       num_factors: int) -> np.ndarray:
        columns = [
            rng.standard_t(self._orders[k], size) * self._scales[k]
            for k in range(num_factors)
        ]
        return np.column_stack(columns)

    def sample_idiosyncratic(self, rng: np.random.Generator, size: int,
                             num_names: int) -> np.ndarray:
        return rng.standard_t(self._orders[-1], (size, num_names)) * self._scales[-1]

    def __repr__(self) -> str:
        return f"StudentTCopula(degrees_of_freedom={self._orders})"


def create_copula(copula_type: str, **kwargs) -> CopulaPolicy:
    """Factory function to create copula policies.

    Args:
        copula_type: Type of copula ('gaussian', 'student_t')
        **kwargs: Arguments passed to the policy constructor

    Returns:
        CopulaPolicy instance

    Examples:
        >>> create_copula('gaussian')
        >>> create_copula('student_t', degrees_of_freedom=[3, 3])
    """
    copula_type = copula_type.lower().replace("-", "_")

    if copula_type == 'gaussian':
        return GaussianCopula(**kwargs)
    elif copula_type in ('student_t', 't'):
        return StudentTCopula(**kwargs)
    else:
        raise ValueError(f"Unknown copula type: {copula_type}. "
                         f"Choose from: 'gaussian', 'student_t'")
