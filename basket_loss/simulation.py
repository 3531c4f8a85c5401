"""Monte Carlo simulation loss models.

Latent variables are drawn in batches. Batch b uses its own random stream,
seeded from ``SeedSequence(seed, spawn_key=(b,))``, so results depend only
on the seed, the batch size and the number of trials, never on how many
worker threads generate the batches. Drawn batches are cached on the model
and reused for later horizons and tranches until the model is released.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np

from .config import settings
from .exceptions import InsufficientConvergence, InvalidModelParameters
from .loss_model import (
    DefaultLossModel,
    check_basket_size,
    check_tranche_bounds,
    tranche_loss,
)
from .model import DefaultLatentModel, SpotRecoveryLatentModel

logger = logging.getLogger(__name__)

BIT_GENERATORS: Dict[str, type] = {
    "mt19937": np.random.MT19937,
    "pcg64": np.random.PCG64,
    "philox": np.random.Philox,
    "sfc64": np.random.SFC64,
}


@dataclass
class SimulationResult:
    """Results from a Monte Carlo loss simulation.

    Attributes:
        portfolio_losses: Portfolio loss amount per trial
        tranche_losses: Tranche loss amount per trial
        num_defaults: Number of defaulted names per trial
        num_trials: Number of trials used
        converged: Whether the configured tolerance was reached early
    """
    portfolio_losses: np.ndarray
    tranche_losses: np.ndarray
    num_defaults: np.ndarray
    num_trials: int
    converged: bool = False

    @property
    def expected_tranche_loss(self) -> float:
        """Average tranche loss across all trials."""
        return float(np.mean(self.tranche_losses))

    @property
    def expected_loss(self) -> float:
        """Average portfolio loss across all trials."""
        return float(np.mean(self.portfolio_losses))

    @property
    def standard_error(self) -> float:
        """Standard error of the expected tranche loss estimate."""
        return float(np.std(self.tranche_losses, ddof=1) / np.sqrt(self.num_trials))

    def probability_over_loss(self, loss_amount: float) -> float:
        """Fraction of trials whose portfolio loss exceeds an amount."""
        return float(np.mean(self.portfolio_losses > loss_amount))


class RandomDefaultLossModel(DefaultLossModel):
    """Monte Carlo loss model with fixed recoveries.

    Each trial draws the systemic factors and idiosyncratic shocks of the
    latent model's copula; a name defaults when its latent variable falls
    below its threshold at the horizon.
    """

    def __init__(self, latent_model: DefaultLatentModel,
                 num_simulations: Optional[int] = None,
                 tolerance: Optional[float] = None,
                 seed: Optional[int] = None,
                 bit_generator: Optional[str] = None,
                 batch_size: Optional[int] = None,
                 num_workers: Optional[int] = None):
        """Initialize the simulation model.

        Args:
            latent_model: The latent factor model to sample
            num_simulations: Maximum number of trials
            tolerance: Stop once the standard error of the expected tranche
                       loss falls below this amount; None runs every trial
            seed: Seed of the random streams
            bit_generator: numpy bit generator ('mt19937', 'pcg64', ...)
            batch_size: Trials per random stream
            num_workers: Threads drawing batches concurrently
        """
        self.latent_model = latent_model
        self.num_simulations = self._positive_int(
            "num_simulations", settings.mc_simulations if num_simulations is None else num_simulations
        )
        self.batch_size = self._positive_int(
            "batch_size", settings.mc_batch_size if batch_size is None else batch_size
        )
        self.num_workers = self._positive_int(
            "num_workers", settings.mc_workers if num_workers is None else num_workers
        )
        self.seed = settings.mc_seed if seed is None else seed
        if int(self.seed) != self.seed or self.seed < 0:
            raise InvalidModelParameters(f"Seed must be a non-negative integer, got {self.seed}")
        self.seed = int(self.seed)
        if tolerance is not None and not tolerance > 0:
            raise InvalidModelParameters(f"Tolerance must be positive, got {tolerance}")
        self.tolerance = tolerance

        self.bit_generator = (bit_generator or settings.bit_generator).lower()
        if self.bit_generator not in BIT_GENERATORS:
            raise InvalidModelParameters(
                f"Unknown bit generator: {self.bit_generator}. "
                f"Choose from: {sorted(BIT_GENERATORS)}"
            )

        full, remainder = divmod(self.num_simulations, self.batch_size)
        self._batch_sizes: List[int] = [self.batch_size] * full + ([remainder] if remainder else [])
        self._batches: List[np.ndarray] = []

    @staticmethod
    def _positive_int(name: str, value) -> int:
        if int(value) != value or value < 1:
            raise InvalidModelParameters(f"{name} must be a positive integer, got {value}")
        return int(value)

    def release(self) -> None:
        """Drop cached latent draws."""
        self._batches = []

    @property
    def cached_trials(self) -> int:
        return sum(len(batch) for batch in self._batches)

    def _check_basket(self, basket) -> None:
        check_basket_size(self.latent_model.recoveries, basket)

    def _generate_batch(self, index: int) -> np.ndarray:
        sequence = np.random.SeedSequence(self.seed, spawn_key=(index,))
        rng = np.random.Generator(BIT_GENERATORS[self.bit_generator](sequence))
        return self.latent_model.simulate(rng, self._batch_sizes[index])

    def _iter_batches(self, fresh: List[np.ndarray],
                      executor: Optional[ThreadPoolExecutor]) -> Iterator[np.ndarray]:
        """Yield latent batches in order, drawing those not yet cached."""
        num_batches = len(self._batch_sizes)
        index = 0
        while index < num_batches:
            if index < len(self._batches):
                yield self._batches[index]
                index += 1
                continue
            wave = range(index, min(index + self.num_workers, num_batches))
            if executor is not None:
                drawn = list(executor.map(self._generate_batch, wave))
            else:
                drawn = [self._generate_batch(i) for i in wave]
            for latent in drawn:
                fresh.append(latent)
                yield latent
            index = wave.stop

    def _trial_losses(self, latent: np.ndarray, thresholds: np.ndarray,
                      basket) -> Tuple[np.ndarray, np.ndarray]:
        """Portfolio loss and default count per trial of a batch."""
        n = self.latent_model.num_names
        defaults = latent[:, :n] < thresholds
        amounts = basket.notionals * (1.0 - self.latent_model.recoveries)
        return defaults @ amounts, np.sum(defaults, axis=1)

    def _run(self, basket, t: float, attachment_amount: float,
             detachment_amount: float) -> SimulationResult:
        thresholds = self.latent_model.default_thresholds(basket.default_probabilities(t))
        fresh: List[np.ndarray] = []
        portfolio_losses, tranche_losses, num_defaults = [], [], []
        count, total, total_sq = 0, 0.0, 0.0
        converged = False

        executor = ThreadPoolExecutor(self.num_workers) if self.num_workers > 1 else None
        try:
            for latent in self._iter_batches(fresh, executor):
                losses, defaults = self._trial_losses(latent, thresholds, basket)
                absorbed = tranche_loss(losses, attachment_amount, detachment_amount)
                portfolio_losses.append(losses)
                tranche_losses.append(absorbed)
                num_defaults.append(defaults)

                count += len(absorbed)
                total += float(np.sum(absorbed))
                total_sq += float(np.sum(absorbed ** 2))
                if self.tolerance is not None and count > 1:
                    variance = max(total_sq - total * total / count, 0.0) / (count - 1)
                    if np.sqrt(variance / count) <= self.tolerance:
                        converged = True
                        break
        finally:
            if executor is not None:
                executor.shutdown()

        if self.tolerance is not None and not converged:
            raise InsufficientConvergence(
                f"Monte Carlo standard error above {self.tolerance} "
                f"after {self.num_simulations} trials"
            )
        self._batches.extend(fresh)

        result = SimulationResult(
            portfolio_losses=np.concatenate(portfolio_losses),
            tranche_losses=np.concatenate(tranche_losses),
            num_defaults=np.concatenate(num_defaults),
            num_trials=count,
            converged=converged,
        )
        logger.info("%s: %d trials, expected tranche loss %.6f (s.e. %.2e)",
                    type(self).__name__, count, result.expected_tranche_loss,
                    result.standard_error if count > 1 else float("nan"))
        return result

    def simulate(self, basket, date, attachment: Optional[float] = None,
                 detachment: Optional[float] = None) -> SimulationResult:
        """Run the simulation and return per-trial losses.

        Args:
            basket: The basket to simulate
            date: Horizon date or year fraction
            attachment: Attachment fraction (basket's if None)
            detachment: Detachment fraction (basket's if None)

        Returns:
            SimulationResult with all simulation outputs
        """
        attachment = basket.attachment_ratio if attachment is None else attachment
        detachment = basket.detachment_ratio if detachment is None else detachment
        check_tranche_bounds(attachment, detachment)
        self._check_basket(basket)
        total = basket.total_notional
        return self._run(basket, basket.time_to(date), attachment * total, detachment * total)

    def _expected_tranche_loss(self, basket, t: float, attachment_amount: float,
                               detachment_amount: float) -> float:
        return self._run(basket, t, attachment_amount, detachment_amount).expected_tranche_loss

    def _probability_over_loss(self, basket, t: float, loss_amount: float) -> float:
        result = self._run(basket, t, 0.0, basket.total_notional)
        return result.probability_over_loss(loss_amount + 1e-12 * basket.total_notional)

    def __repr__(self) -> str:
        return (f"{type(self).__name__}({self.latent_model!r}, "
                f"num_simulations={self.num_simulations}, seed={self.seed}, "
                f"bit_generator={self.bit_generator!r})")


class RandomLossModel(RandomDefaultLossModel):
    """Monte Carlo loss model with random recoveries.

    Needs a SpotRecoveryLatentModel: the first N latent variables trigger
    defaults, the next N set each defaulted name's recovery.
    """

    def __init__(self, latent_model: SpotRecoveryLatentModel, **kwargs):
        if not isinstance(latent_model, SpotRecoveryLatentModel):
            raise InvalidModelParameters(
                "RandomLossModel requires a SpotRecoveryLatentModel"
            )
        super().__init__(latent_model, **kwargs)

    def _trial_losses(self, latent: np.ndarray, thresholds: np.ndarray,
                      basket) -> Tuple[np.ndarray, np.ndarray]:
        n = self.latent_model.num_names
        defaults = latent[:, :n] < thresholds
        recoveries = self.latent_model.conditional_recoveries(latent[:, n:])
        losses = np.sum(defaults * basket.notionals * (1.0 - recoveries), axis=1)
        return losses, np.sum(defaults, axis=1)
