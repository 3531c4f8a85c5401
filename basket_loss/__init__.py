"""Factor copula loss models for baskets of credit names.

This package computes expected tranche losses of a basket of defaultable
names under several interchangeable loss model strategies sharing one
latent factor model.

Main components:
- pool, basket: Issuers, the name pool and the tranched basket
- copula, model: Copula policies and the latent factor models
- lhp, binomial, simulation, base_correlation: Loss model strategies
- report: Cross-model comparison tables
"""

from .exceptions import (
    BasketLossError,
    InvalidModelParameters,
    InvalidTrancheBounds,
    OutOfGridRange,
    InsufficientConvergence,
)
from .config import Settings, settings, configure_logging
from .curves import (
    DefaultProbabilityCurve,
    FlatHazardRate,
    PiecewiseHazardRateCurve,
    year_fraction,
    advance,
)
from .pool import DefaultProbKey, Issuer, Pool
from .basket import Basket, Exposure
from .copula import CopulaPolicy, GaussianCopula, StudentTCopula, create_copula
from .integration import (
    MIN_QUADRATURE_NODES,
    IntegrationType,
    IntegrationSettings,
    FactorIntegrator,
)
from .model import DefaultLatentModel, SpotRecoveryLatentModel
from .loss_model import DefaultLossModel
from .lhp import GaussianLHPLossModel
from .binomial import BinomialLossModel, InhomogeneousPoolLossModel
from .simulation import RandomDefaultLossModel, RandomLossModel, SimulationResult
from .base_correlation import SimpleQuote, BaseCorrelationSurface, BaseCorrelationLHPModel
from .report import compare_loss_models

__version__ = "1.0.0"

__all__ = [
    # Errors
    "BasketLossError",
    "InvalidModelParameters",
    "InvalidTrancheBounds",
    "OutOfGridRange",
    "InsufficientConvergence",
    # Configuration
    "Settings",
    "settings",
    "configure_logging",
    # Curves
    "DefaultProbabilityCurve",
    "FlatHazardRate",
    "PiecewiseHazardRateCurve",
    "year_fraction",
    "advance",
    # Pool and basket
    "DefaultProbKey",
    "Issuer",
    "Pool",
    "Basket",
    "Exposure",
    # Latent models
    "CopulaPolicy",
    "GaussianCopula",
    "StudentTCopula",
    "create_copula",
    "MIN_QUADRATURE_NODES",
    "IntegrationType",
    "IntegrationSettings",
    "FactorIntegrator",
    "DefaultLatentModel",
    "SpotRecoveryLatentModel",
    # Loss models
    "DefaultLossModel",
    "GaussianLHPLossModel",
    "BinomialLossModel",
    "InhomogeneousPoolLossModel",
    "RandomDefaultLossModel",
    "RandomLossModel",
    "SimulationResult",
    "SimpleQuote",
    "BaseCorrelationSurface",
    "BaseCorrelationLHPModel",
    # Reports
    "compare_loss_models",
]
