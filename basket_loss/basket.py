"""Basket of defaultable names with a tranche and a swappable loss model."""

import logging
import threading
from dataclasses import dataclass
from numbers import Real
from typing import List, Optional, Sequence, Union

import numpy as np

from .curves import DateLike, DefaultProbabilityCurve, to_timestamp, year_fraction
from .exceptions import BasketLossError
from .loss_model import DefaultLossModel, check_tranche_bounds
from .pool import DefaultProbKey, Pool

logger = logging.getLogger(__name__)

Horizon = Union[DateLike, float]


@dataclass(frozen=True)
class Exposure:
    """A single basket name with its notional and resolved default curve.

    Attributes:
        name: Identifier of the name in the pool
        notional: Exposure amount
        key: Credit key selecting the issuer's curve
        curve: Default probability term structure for the name
    """
    name: str
    notional: float
    key: DefaultProbKey
    curve: DefaultProbabilityCurve

    def __post_init__(self):
        if self.notional < 0:
            raise ValueError(f"Notional must be non-negative, got {self.notional}")


class Basket:
    """Ordered collection of names defining a tranche between two loss levels.

    The basket owns exactly one loss model at a time. ``set_loss_model`` and
    the evaluation methods share a lock, so a model is never replaced while
    an evaluation with it is in flight.
    """

    def __init__(self, reference_date: DateLike, names: Sequence[str],
                 notionals: Sequence[float], pool: Pool,
                 attachment: float = 0.0, detachment: float = 1.0,
                 loss_model: Optional[DefaultLossModel] = None):
        """Initialize the basket.

        Args:
            reference_date: Date from which horizons are measured
            names: Basket names, all registered in the pool
            notionals: Notional per name
            pool: Pool resolving names to issuers and curves
            attachment: Tranche attachment as fraction of total notional
            detachment: Tranche detachment as fraction of total notional
            loss_model: Initial loss model strategy
        """
        if len(names) == 0:
            raise ValueError("Basket needs at least one name")
        if len(names) != len(notionals):
            raise ValueError(
                f"Got {len(names)} names but {len(notionals)} notionals"
            )
        if len(set(names)) != len(names):
            raise ValueError("Basket names must be unique")
        check_tranche_bounds(attachment, detachment)

        self._reference_date = to_timestamp(reference_date).date()
        self._pool = pool
        self._exposures: List[Exposure] = [
            Exposure(
                name=name,
                notional=float(notional),
                key=pool.default_key(name),
                curve=pool.default_probability_curve(name),
            )
            for name, notional in zip(names, notionals)
        ]
        self._notionals = np.array([e.notional for e in self._exposures])
        self._notionals.setflags(write=False)
        if self.total_notional <= 0:
            raise ValueError("Basket total notional must be positive")

        self._attachment = float(attachment)
        self._detachment = float(detachment)
        self._loss_model: Optional[DefaultLossModel] = None
        self._lock = threading.RLock()
        if loss_model is not None:
            self.set_loss_model(loss_model)

    @property
    def reference_date(self):
        return self._reference_date

    @property
    def pool(self) -> Pool:
        return self._pool

    @property
    def exposures(self) -> List[Exposure]:
        return list(self._exposures)

    @property
    def names(self) -> List[str]:
        return [e.name for e in self._exposures]

    @property
    def size(self) -> int:
        return len(self._exposures)

    def __len__(self) -> int:
        return len(self._exposures)

    @property
    def notionals(self) -> np.ndarray:
        return self._notionals

    @property
    def total_notional(self) -> float:
        return float(np.sum(self._notionals))

    @property
    def attachment_ratio(self) -> float:
        return self._attachment

    @property
    def detachment_ratio(self) -> float:
        return self._detachment

    @property
    def attachment_amount(self) -> float:
        return self._attachment * self.total_notional

    @property
    def detachment_amount(self) -> float:
        return self._detachment * self.total_notional

    @property
    def tranche_notional(self) -> float:
        return self.detachment_amount - self.attachment_amount

    @property
    def loss_model(self) -> Optional[DefaultLossModel]:
        return self._loss_model

    def time_to(self, date: Horizon) -> float:
        """Year fraction from the reference date to a horizon.

        Numbers are taken as year fractions already; dates use Actual/365F.
        """
        if isinstance(date, Real):
            t = float(date)
        else:
            t = year_fraction(self._reference_date, date)
        if t < 0:
            raise ValueError(f"Horizon {date} is before the reference date {self._reference_date}")
        return t

    def default_probabilities(self, date: Horizon) -> np.ndarray:
        """Cumulative default probability of each name by the horizon."""
        t = self.time_to(date)
        return np.array([e.curve.default_probability(t) for e in self._exposures])

    def set_loss_model(self, loss_model: DefaultLossModel) -> None:
        """Replace the active loss model, releasing the previous one."""
        if not isinstance(loss_model, DefaultLossModel):
            raise TypeError(f"Expected a DefaultLossModel, got {type(loss_model).__name__}")
        with self._lock:
            previous = self._loss_model
            self._loss_model = loss_model
            if previous is not None and previous is not loss_model:
                previous.release()
        logger.debug("Basket loss model set to %s", type(loss_model).__name__)

    def _active_model(self) -> DefaultLossModel:
        if self._loss_model is None:
            raise BasketLossError("No loss model set on the basket")
        return self._loss_model

    def expected_tranche_loss(self, date: Horizon) -> float:
        """Expected loss of the basket's tranche by the horizon."""
        with self._lock:
            return self._active_model().expected_tranche_loss(self, date)

    def expected_loss(self, date: Horizon) -> float:
        """Expected loss of the whole portfolio by the horizon."""
        with self._lock:
            return self._active_model().expected_loss(self, date)

    def probability_over_loss(self, date: Horizon, loss_fraction: float) -> float:
        """Probability that portfolio loss exceeds a fraction of total notional."""
        with self._lock:
            return self._active_model().probability_over_loss(self, date, loss_fraction)

    def __repr__(self) -> str:
        return (f"Basket(names={self.size}, notional={self.total_notional:,.2f}, "
                f"tranche=[{self._attachment:.4f}, {self._detachment:.4f}])")
