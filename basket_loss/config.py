"""
Basket Loss Configuration
=========================

Centralized configuration loaded from environment variables prefixed with
``BASKET_LOSS_``. Every numerical default used by the loss models when the
caller does not pass an explicit value is read from the module-level
``settings`` instance.

Environment Variables
---------------------
BASKET_LOSS_LOG_LEVEL : str
    Logging level used by ``configure_logging`` (default: "INFO").
BASKET_LOSS_QUADRATURE_NODES : int
    Nodes per factor dimension for the factor integration (default: 64).
BASKET_LOSS_MC_SIMULATIONS : int
    Number of Monte Carlo trials (default: 100000).

Example
-------
::

    export BASKET_LOSS_MC_SIMULATIONS=20000
    export BASKET_LOSS_LOG_LEVEL=DEBUG
    python -m basket_loss.demo
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional


def _get_env(key: str, default: Any, value_type: type = str) -> Any:
    """
    Get an environment variable with type conversion.

    Parameters
    ----------
    key : str
        Environment variable name (will be prefixed with BASKET_LOSS_).
    default : Any
        Default value if not set or not convertible.
    value_type : type
        Type to convert to (str, int, float, bool).

    Returns
    -------
    Any
        The environment variable value converted to the specified type.
    """
    env_name = f"BASKET_LOSS_{key.upper()}"
    env_value = os.environ.get(env_name)

    if env_value is None:
        return default

    try:
        if value_type == bool:
            return env_value.lower() in ("true", "1", "yes", "on")
        elif value_type == int:
            return int(env_value)
        elif value_type == float:
            return float(env_value)
        else:
            return env_value
    except (ValueError, TypeError):
        return default


class Settings:
    """
    Library configuration loaded from environment variables.

    Example
    -------
    >>> from basket_loss.config import settings
    >>> settings.quadrature_nodes
    64
    """

    def __init__(self) -> None:
        """Initialize settings from environment variables."""
        # =====================================================================
        # Logging
        # =====================================================================
        self.log_level: str = _get_env("LOG_LEVEL", "INFO", str)
        self.log_format: str = _get_env(
            "LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s", str
        )

        # =====================================================================
        # Factor integration
        # =====================================================================
        self.quadrature_nodes: int = _get_env("QUADRATURE_NODES", 64, int)
        self.quadrature_tolerance: float = _get_env("QUADRATURE_TOLERANCE", 1e-6, float)
        self.max_quadrature_nodes: int = _get_env("MAX_QUADRATURE_NODES", 2048, int)
        self.trapezoid_truncation: float = _get_env("TRAPEZOID_TRUNCATION", 15.0, float)

        # =====================================================================
        # Loss distribution discretisation
        # =====================================================================
        self.num_buckets: int = _get_env("NUM_BUCKETS", 100, int)

        # =====================================================================
        # Monte Carlo
        # =====================================================================
        self.mc_simulations: int = _get_env("MC_SIMULATIONS", 100_000, int)
        self.mc_batch_size: int = _get_env("MC_BATCH_SIZE", 10_000, int)
        self.mc_seed: int = _get_env("MC_SEED", 2863311530, int)
        self.mc_workers: int = _get_env("MC_WORKERS", 1, int)
        self.bit_generator: str = _get_env("BIT_GENERATOR", "mt19937", str)

        # =====================================================================
        # Base correlation
        # =====================================================================
        self.bc_extrapolation: str = _get_env("BC_EXTRAPOLATION", "flat", str)

    def __repr__(self) -> str:
        return (
            f"Settings(quadrature_nodes={self.quadrature_nodes}, "
            f"mc_simulations={self.mc_simulations}, mc_seed={self.mc_seed}, "
            f"bit_generator={self.bit_generator!r})"
        )


settings = Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Install a basic log handler using the configured level and format.

    The library itself only creates module loggers; applications call this
    once at start-up.
    """
    logging.basicConfig(
        level=getattr(logging, (level or settings.log_level).upper(), logging.INFO),
        format=settings.log_format,
    )
