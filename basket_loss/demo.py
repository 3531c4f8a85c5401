#!/usr/bin/env python3
"""Ten-name basket evaluated under every loss model strategy.

The basket holds names Acme0 to Acme9 with flat hazard rates from 0.1% to 9%,
notional 100 each and a 3%-6% tranche. Every strategy values the tranche at
a 60 month horizon with recovery 40% and a single factor of correlation 5%.

Run with ``python -m basket_loss.demo``.
"""

import argparse
import logging
import sys
import time
from collections import OrderedDict
from typing import Dict, List, Optional

import numpy as np

from .base_correlation import BaseCorrelationLHPModel, BaseCorrelationSurface, SimpleQuote
from .basket import Basket
from .binomial import BinomialLossModel, InhomogeneousPoolLossModel
from .config import configure_logging, settings
from .copula import StudentTCopula
from .curves import FlatHazardRate, advance, year_fraction
from .exceptions import BasketLossError
from .lhp import GaussianLHPLossModel
from .loss_model import DefaultLossModel
from .model import DefaultLatentModel, SpotRecoveryLatentModel
from .pool import DefaultProbKey, Issuer, Pool
from .report import compare_loss_models
from .simulation import RandomDefaultLossModel, RandomLossModel

logger = logging.getLogger(__name__)

REFERENCE_DATE = "2014-03-19"
HAZARD_RATES = [0.001, 0.01, 0.02, 0.03, 0.04, 0.05, 0.06, 0.07, 0.08, 0.09]
NOTIONAL = 100.0
RECOVERY = 0.4
FACTOR_CORRELATION = 0.05
HORIZON_MONTHS = 60
MODEL_A = 2.2
T_ORDERS = [3, 3]


def create_sample_basket(reference_date=REFERENCE_DATE,
                         attachment: float = 0.03,
                         detachment: float = 0.06) -> Basket:
    """Create the ten-name basket on its own pool."""
    key = DefaultProbKey(currency="EUR", seniority="SeniorSec", amount_threshold=1.0)
    pool = Pool()
    names = [f"Acme{i}" for i in range(len(HAZARD_RATES))]
    for name, hazard_rate in zip(names, HAZARD_RATES):
        pool.add(name, Issuer([(key, FlatHazardRate(hazard_rate))]), key)
    return Basket(reference_date, names, [NOTIONAL] * len(names), pool,
                  attachment, detachment)


def create_loss_models(basket: Basket, num_simulations: Optional[int] = None,
                       seed: Optional[int] = None) -> Dict[str, DefaultLossModel]:
    """Build every strategy for the basket, keyed by display label."""
    size = basket.size
    recoveries = [RECOVERY] * size
    loadings = [[np.sqrt(FACTOR_CORRELATION)]] * size
    spot_loadings = loadings * 2

    gaussian = DefaultLatentModel(loadings, recoveries, integration="gaussian_quadrature")
    student_t = DefaultLatentModel(loadings, recoveries, StudentTCopula(T_ORDERS),
                                   integration="trapezoid")
    spot_gaussian = SpotRecoveryLatentModel(spot_loadings, recoveries, MODEL_A)
    spot_t = SpotRecoveryLatentModel(spot_loadings, recoveries, MODEL_A,
                                     StudentTCopula(T_ORDERS))

    reference = basket.reference_date
    tenors = [year_fraction(reference, advance(reference, years=1)),
              year_fraction(reference, advance(reference, years=5))]
    quotes = [[SimpleQuote(FACTOR_CORRELATION) for _ in range(2)] for _ in tenors]
    surface = BaseCorrelationSurface(tenors, [0.03, 0.12], quotes)

    mc = dict(num_simulations=num_simulations, seed=seed)
    return OrderedDict([
        ("GLHP", GaussianLHPLossModel(FACTOR_CORRELATION, recoveries)),
        ("Gaussian Binomial", BinomialLossModel(gaussian)),
        ("T Binomial", BinomialLossModel(student_t)),
        ("G Inhomogeneous", InhomogeneousPoolLossModel(gaussian, settings.num_buckets)),
        ("Random G", RandomDefaultLossModel(gaussian, **mc)),
        ("Random T", RandomDefaultLossModel(student_t, **mc)),
        ("Random Loss G", RandomLossModel(spot_gaussian, **mc)),
        ("Random Loss T", RandomLossModel(spot_t, **mc)),
        ("Base Correlation GLHP", BaseCorrelationLHPModel(surface, recoveries)),
    ])


def _format_elapsed(seconds: float) -> str:
    hours = int(seconds / 3600)
    seconds -= hours * 3600
    minutes = int(seconds / 60)
    seconds -= minutes * 60
    parts = []
    if hours > 0:
        parts.append(f"{hours} h")
    if hours > 0 or minutes > 0:
        parts.append(f"{minutes} m")
    parts.append(f"{seconds:.0f} s")
    return " ".join(parts)


def run(num_simulations: Optional[int] = None, seed: Optional[int] = None) -> None:
    """Evaluate and print every strategy on the sample basket."""
    start = time.perf_counter()

    basket = create_sample_basket()
    horizon = advance(basket.reference_date, months=HORIZON_MONTHS)
    print("=" * 70)
    print("BASKET DEFAULT LOSS MODELS")
    print("=" * 70)
    print(f"   Names: {basket.size}, total notional: {basket.total_notional:,.2f}")
    print(f"   Tranche: [{basket.attachment_ratio:.2%}, {basket.detachment_ratio:.2%}]"
          f", notional {basket.tranche_notional:,.2f}")
    print(f"   Horizon: {horizon} ({basket.time_to(horizon):.4f} years)")

    models = create_loss_models(basket, num_simulations, seed)
    report = compare_loss_models(basket, models, horizon)
    print()
    print(report.to_string(index=False))

    print(f"\nRun completed in {_format_elapsed(time.perf_counter() - start)}")


def main(argv: Optional[List[str]] = None) -> int:
    """Command line entry point; returns the process exit status."""
    parser = argparse.ArgumentParser(description="Evaluate the sample basket under every loss model.")
    parser.add_argument("--simulations", type=int, default=None,
                        help="Monte Carlo trials per simulation model")
    parser.add_argument("--seed", type=int, default=None, help="Monte Carlo seed")
    parser.add_argument("--log-level", default=None, help="Logging level")
    args = parser.parse_args(argv)

    configure_logging(args.log_level)
    try:
        run(args.simulations, args.seed)
    except BasketLossError as e:
        print(e, file=sys.stderr)
        return 1
    except Exception as e:
        logger.exception("Unexpected failure")
        print(f"unknown error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
