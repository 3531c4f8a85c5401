"""Latent factor models for correlated defaults."""

import logging
from typing import Optional, Sequence, Union

import numpy as np
from scipy import stats
from scipy.optimize import brentq

from .copula import CopulaPolicy, GaussianCopula
from .exceptions import InsufficientConvergence, InvalidModelParameters
from .integration import (
    FactorIntegrator,
    IntegrationSettings,
    IntegrationType,
    resolve_integration,
)
from .loss_model import validate_recoveries

logger = logging.getLogger(__name__)

_BRACKET_LIMIT = 1e8
_TABLE_HALF_WIDTH = 50.0
_TABLE_POINTS = 2001


class DefaultLatentModel:
    """Latent factor model for correlated credit defaults.

    Implements the latent variable model:
        Y_i = Σ_k (a_ik × M_k) + √(1 - Σ_k a_ik²) × ε_i

    Where:
        - M_k: Systemic factor k, distributed per the copula policy
        - a_ik: Loading of name i on factor k
        - ε_i: Idiosyncratic term, distributed per the copula policy

    Name i defaults by time t when Y_i < F_i⁻¹(PD_i(t)), F_i being the
    marginal distribution of Y_i. Recoveries are fixed per name.

    Loadings, recoveries and the copula are fixed after construction, so
    one model may be shared by any number of loss models. Marginal CDF
    tables and integration grids are built lazily on first use and cached
    on the instance without a lock. Threads racing on a first use may build
    the same entry twice; both builds hold identical values.
    """

    def __init__(self, factor_loadings: Sequence[Sequence[float]],
                 recoveries: Sequence[float],
                 copula: Optional[CopulaPolicy] = None,
                 integration: Union[None, str, IntegrationType, IntegrationSettings] = None):
        """Initialize the latent model.

        Args:
            factor_loadings: One row of factor weights per latent variable
            recoveries: Recovery rate per name
            copula: Copula policy (Gaussian if None)
            integration: Integration rule or settings; defaults to Gaussian
                         quadrature for Gaussian copulas, trapezoid otherwise
        """
        loadings = np.array(factor_loadings, dtype=float)
        if loadings.ndim == 1:
            loadings = loadings[:, np.newaxis]
        if loadings.ndim != 2 or loadings.shape[0] == 0 or loadings.shape[1] == 0:
            raise InvalidModelParameters(
                f"Factor loadings must be a non-empty matrix, got shape {loadings.shape}"
            )
        if not np.all(np.isfinite(loadings)):
            raise InvalidModelParameters("Factor loadings must be finite")

        idiosyncratic_variance = 1.0 - np.sum(loadings ** 2, axis=1)
        if np.any(idiosyncratic_variance < -1e-12):
            worst = int(np.argmin(idiosyncratic_variance))
            raise InvalidModelParameters(
                f"Sum of squared factor loadings must be <= 1, "
                f"got {1.0 - idiosyncratic_variance[worst]} for row {worst}"
            )

        self._loadings = loadings
        self._loadings.setflags(write=False)
        self._idiosyncratic_weights = np.sqrt(np.clip(idiosyncratic_variance, 0.0, None))
        self._idiosyncratic_weights.setflags(write=False)
        self._num_names = self._names_for_rows(loadings.shape[0])

        self._copula = copula if copula is not None else GaussianCopula()
        self._copula.validate(self.num_factors)

        self._recoveries = validate_recoveries(recoveries)
        if len(self._recoveries) != self._num_names:
            raise InvalidModelParameters(
                f"Got {len(self._recoveries)} recoveries for {self._num_names} names"
            )

        self._integrator = FactorIntegrator(
            self._copula, self.num_factors, resolve_integration(integration, self._copula)
        )
        self._cdf_tables = {}

    def _names_for_rows(self, rows: int) -> int:
        return rows

    @property
    def num_names(self) -> int:
        return self._num_names

    @property
    def num_factors(self) -> int:
        return self._loadings.shape[1]

    @property
    def factor_loadings(self) -> np.ndarray:
        return self._loadings

    @property
    def idiosyncratic_weights(self) -> np.ndarray:
        return self._idiosyncratic_weights

    @property
    def recoveries(self) -> np.ndarray:
        return self._recoveries

    @property
    def copula(self) -> CopulaPolicy:
        return self._copula

    @property
    def integrator(self) -> FactorIntegrator:
        return self._integrator

    def asset_correlation(self, i: int, j: int) -> float:
        """Correlation between latent variables i and j.

        The asset correlation is ρ_ij = a_i' × a_j for unit-variance factors.
        """
        if i == j:
            return 1.0
        return float(self._loadings[i] @ self._loadings[j])

    def marginal_cdf(self, i: int, y) -> np.ndarray:
        """Cumulative distribution of latent variable i at y."""
        y = np.atleast_1d(np.asarray(y, dtype=float))
        if self._copula.is_gaussian:
            return stats.norm.cdf(y)

        a = self._loadings[i]
        s = self._idiosyncratic_weights[i]
        if s > 0:
            def conditional(points):
                systemic = points @ a
                return self._copula.idiosyncratic_cdf(
                    (y[np.newaxis, :] - systemic[:, np.newaxis]) / s
                )
        else:
            def conditional(points):
                systemic = points @ a
                return (systemic[:, np.newaxis] <= y[np.newaxis, :]).astype(float)

        return self._integrator.integrate(conditional)

    def fast_marginal_cdf(self, i: int, y: np.ndarray) -> np.ndarray:
        """Marginal distribution by interpolation in a cached table."""
        y = np.asarray(y, dtype=float)
        if self._copula.is_gaussian:
            return stats.norm.cdf(y)
        if i not in self._cdf_tables:
            grid = np.linspace(-_TABLE_HALF_WIDTH, _TABLE_HALF_WIDTH, _TABLE_POINTS)
            values = np.maximum.accumulate(np.clip(self.marginal_cdf(i, grid), 0.0, 1.0))
            self._cdf_tables[i] = (grid, values)
        grid, values = self._cdf_tables[i]
        return np.interp(y, grid, values)

    def default_threshold(self, i: int, probability: float) -> float:
        """Latent threshold below which name i is in default."""
        if probability <= 0.0:
            return -np.inf
        if probability >= 1.0:
            return np.inf
        if self._copula.is_gaussian:
            return float(stats.norm.ppf(probability))

        def excess(y):
            return float(self.marginal_cdf(i, y)[0]) - probability

        lower, upper = -1.0, 1.0
        while excess(lower) > 0:
            lower *= 2.0
            if lower < -_BRACKET_LIMIT:
                raise InsufficientConvergence(f"Cannot bracket threshold for p={probability}")
        while excess(upper) < 0:
            upper *= 2.0
            if upper > _BRACKET_LIMIT:
                raise InsufficientConvergence(f"Cannot bracket threshold for p={probability}")
        return float(brentq(excess, lower, upper, xtol=1e-12))

    def default_thresholds(self, probabilities: Sequence[float]) -> np.ndarray:
        """Thresholds for every name given their default probabilities."""
        probabilities = np.asarray(probabilities, dtype=float)
        if len(probabilities) != self._num_names:
            raise InvalidModelParameters(
                f"Got {len(probabilities)} probabilities for {self._num_names} names"
            )
        thresholds = np.array([
            self.default_threshold(i, p) for i, p in enumerate(probabilities)
        ])
        logger.debug("Default thresholds: %s", thresholds)
        return thresholds

    def conditional_default_probabilities(self, thresholds: np.ndarray,
                                          factors: np.ndarray) -> np.ndarray:
        """Default probability of each name given systemic factor values.

        Args:
            thresholds: Default threshold per name, shape (N,)
            factors: Factor realisations, shape (n, F)

        Returns:
            Conditional probabilities of shape (n, N)
        """
        factors = np.atleast_2d(factors)
        loadings = self._loadings[:self._num_names]
        weights = self._idiosyncratic_weights[:self._num_names]
        systemic = factors @ loadings.T
        distance = thresholds[np.newaxis, :] - systemic
        with np.errstate(divide="ignore", invalid="ignore"):
            scaled = np.where(weights > 0, distance / np.where(weights > 0, weights, 1.0), 0.0)
        probabilities = self._copula.idiosyncratic_cdf(scaled)
        return np.where(weights > 0, probabilities, (distance > 0).astype(float))

    def simulate(self, rng: np.random.Generator, size: int) -> np.ndarray:
        """Draw latent variables, shape (size, rows of the loading matrix)."""
        factors = self._copula.sample_factors(rng, size, self.num_factors)
        shocks = self._copula.sample_idiosyncratic(rng, size, self._loadings.shape[0])
        return factors @ self._loadings.T + shocks * self._idiosyncratic_weights

    def __repr__(self) -> str:
        return (f"{type(self).__name__}(names={self._num_names}, "
                f"factors={self.num_factors}, copula={self._copula!r})")


class SpotRecoveryLatentModel(DefaultLatentModel):
    """Latent model with a random recovery per defaulted name.

    The loading matrix has 2N rows: rows 0..N-1 drive defaults and rows
    N..2N-1 drive severities. With Z_i the severity variable mapped to a
    standard normal and ``model_a`` the dispersion, the realised recovery is

        R_i = Φ(√(1 + a²) × Φ⁻¹(R̄_i) + a × Z_i)

    whose unconditional mean is the configured recovery R̄_i.
    """

    def __init__(self, factor_loadings: Sequence[Sequence[float]],
                 recoveries: Sequence[float], model_a: float,
                 copula: Optional[CopulaPolicy] = None,
                 integration: Union[None, str, IntegrationType, IntegrationSettings] = None):
        if not np.isfinite(model_a) or model_a < 0:
            raise InvalidModelParameters(f"model_a must be non-negative, got {model_a}")
        self._model_a = float(model_a)
        super().__init__(factor_loadings, recoveries, copula, integration)

    def _names_for_rows(self, rows: int) -> int:
        if rows % 2 != 0:
            raise InvalidModelParameters(
                f"Spot recovery model needs 2N loading rows, got {rows}"
            )
        return rows // 2

    @property
    def model_a(self) -> float:
        return self._model_a

    def conditional_recoveries(self, severity_latent: np.ndarray) -> np.ndarray:
        """Realised recoveries from severity latent draws, shape (size, N)."""
        severity_latent = np.atleast_2d(severity_latent)
        if self._copula.is_gaussian:
            normal = severity_latent
        else:
            n = self._num_names
            uniforms = np.column_stack([
                self.fast_marginal_cdf(n + i, severity_latent[:, i]) for i in range(n)
            ])
            normal = stats.norm.ppf(np.clip(uniforms, 1e-12, 1.0 - 1e-12))
        a = self._model_a
        centre = np.sqrt(1.0 + a * a) * stats.norm.ppf(self._recoveries)
        return stats.norm.cdf(centre[np.newaxis, :] + a * normal)
