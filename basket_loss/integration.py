"""Integration over the systemic factors of a latent model.

Expectations are computed on tensor-product grids of one-dimensional rules:

- Gaussian quadrature: Gauss-Hermite nodes for a standard normal variable,
  mapped onto each factor through its quantile function, F^-1(Phi(z)).
- Trapezoid: equally spaced nodes on [-L, L] weighted by the factor density.

Weights are normalised to sum to one per dimension. ``integrate`` doubles
the node count until two successive estimates agree within the tolerance.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from itertools import product
from typing import Callable, Dict, Optional, Tuple, Union

import numpy as np
from scipy.special import roots_hermite

from .config import settings
from .copula import CopulaPolicy
from .exceptions import InsufficientConvergence, InvalidModelParameters

logger = logging.getLogger(__name__)

# Below this many nodes per dimension the rules are not expected to converge.
MIN_QUADRATURE_NODES = 8


class IntegrationType(str, Enum):
    GAUSSIAN_QUADRATURE = "gaussian_quadrature"
    TRAPEZOID = "trapezoid"


@dataclass(frozen=True)
class IntegrationSettings:
    """Numerical settings for factor integration.

    Attributes:
        kind: Quadrature rule
        num_nodes: Initial nodes per factor dimension
        tolerance: Agreement required between successive refinements
                   (relative above 1, absolute below); zero disables refinement
        max_nodes: Largest node count per dimension tried before giving up
        truncation: Half-width L of the trapezoid domain
    """
    kind: IntegrationType = IntegrationType.GAUSSIAN_QUADRATURE
    num_nodes: Optional[int] = None
    tolerance: Optional[float] = None
    max_nodes: Optional[int] = None
    truncation: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, "kind", IntegrationType(self.kind))
        if self.num_nodes is None:
            object.__setattr__(self, "num_nodes", settings.quadrature_nodes)
        if self.tolerance is None:
            object.__setattr__(self, "tolerance", settings.quadrature_tolerance)
        if self.max_nodes is None:
            object.__setattr__(self, "max_nodes", settings.max_quadrature_nodes)
        if self.truncation is None:
            object.__setattr__(self, "truncation", settings.trapezoid_truncation)

        if self.num_nodes < MIN_QUADRATURE_NODES:
            raise InvalidModelParameters(
                f"At least {MIN_QUADRATURE_NODES} quadrature nodes are required, "
                f"got {self.num_nodes}"
            )
        if self.max_nodes < self.num_nodes:
            raise InvalidModelParameters(
                f"max_nodes ({self.max_nodes}) is below num_nodes ({self.num_nodes})"
            )
        if self.tolerance < 0:
            raise InvalidModelParameters(f"Tolerance must be non-negative, got {self.tolerance}")
        if self.truncation <= 0:
            raise InvalidModelParameters(f"Truncation must be positive, got {self.truncation}")


def resolve_integration(integration: Union[None, str, IntegrationType, IntegrationSettings],
                        copula: CopulaPolicy) -> IntegrationSettings:
    """Build integration settings, defaulting the rule from the copula."""
    if isinstance(integration, IntegrationSettings):
        return integration
    if integration is None:
        kind = (IntegrationType.GAUSSIAN_QUADRATURE if copula.is_gaussian
                else IntegrationType.TRAPEZOID)
    else:
        try:
            kind = IntegrationType(integration)
        except ValueError:
            raise InvalidModelParameters(f"Unknown integration type: {integration}")
    return IntegrationSettings(kind=kind)


class FactorIntegrator:
    """Expectations of functions of the systemic factors."""

    def __init__(self, copula: CopulaPolicy, num_factors: int,
                 integration_settings: IntegrationSettings):
        self.copula = copula
        self.num_factors = num_factors
        self.settings = integration_settings
        self._grids: Dict[int, Tuple[np.ndarray, np.ndarray]] = {}

    def _rule(self, k: int, num_nodes: int) -> Tuple[np.ndarray, np.ndarray]:
        """One-dimensional nodes and weights for factor k."""
        if self.settings.kind == IntegrationType.GAUSSIAN_QUADRATURE:
            x, w = roots_hermite(num_nodes)
            nodes = self.copula.factor_ppf(k, np.sqrt(2.0) * x)
            weights = w / np.sqrt(np.pi)
            # Far tail nodes carry no weight and may map to infinite quantiles.
            keep = (weights > 0.0) & np.isfinite(nodes)
            nodes, weights = nodes[keep], weights[keep]
        else:
            half_width = self.settings.truncation
            nodes = np.linspace(-half_width, half_width, num_nodes)
            step = nodes[1] - nodes[0]
            weights = step * self.copula.factor_pdf(k, nodes)
            weights[0] *= 0.5
            weights[-1] *= 0.5
        return nodes, weights / np.sum(weights)

    def grid(self, num_nodes: int) -> Tuple[np.ndarray, np.ndarray]:
        """Tensor-product nodes, shape (n**F, F), and their weights."""
        if num_nodes not in self._grids:
            rules = [self._rule(k, num_nodes) for k in range(self.num_factors)]
            if self.num_factors == 1:
                points = rules[0][0][:, np.newaxis]
                weights = rules[0][1]
            else:
                points = np.array(list(product(*[r[0] for r in rules])))
                weights = np.array([np.prod(c) for c in product(*[r[1] for r in rules])])
            self._grids[num_nodes] = (points, weights)
        return self._grids[num_nodes]

    def expectation(self, func: Callable[[np.ndarray], np.ndarray],
                    num_nodes: Optional[int] = None) -> np.ndarray:
        """E[func(M)] on a fixed grid.

        Args:
            func: Maps factor points of shape (n, F) to values of shape (n, ...)
            num_nodes: Nodes per dimension (settings' initial count if None)

        Returns:
            Weighted sum over the nodes, shape (...)
        """
        num_nodes = num_nodes or self.settings.num_nodes
        points, weights = self.grid(num_nodes)
        values = np.asarray(func(points), dtype=float)
        result = np.tensordot(weights, values, axes=(0, 0))
        if not np.all(np.isfinite(result)):
            raise InsufficientConvergence(
                f"Factor integration with {num_nodes} nodes "
                f"({self.settings.kind.value}) produced non-finite values"
            )
        return result

    def integrate(self, func: Callable[[np.ndarray], np.ndarray]) -> np.ndarray:
        """E[func(M)] refined by doubling the node count until converged."""
        num_nodes = self.settings.num_nodes
        estimate = self.expectation(func, num_nodes)
        tolerance = self.settings.tolerance
        if not tolerance:
            return estimate

        while True:
            refined_nodes = num_nodes * 2
            if refined_nodes > self.settings.max_nodes:
                raise InsufficientConvergence(
                    f"Factor integration did not reach tolerance {tolerance} "
                    f"within {self.settings.max_nodes} nodes ({self.settings.kind.value})"
                )
            refined = self.expectation(func, refined_nodes)
            error = np.max(np.abs(refined - estimate))
            scale = max(1.0, float(np.max(np.abs(refined))))
            if error <= tolerance * scale:
                logger.debug("Factor integration converged with %d nodes (error %.3e)",
                             refined_nodes, error)
                return refined
            num_nodes, estimate = refined_nodes, refined
