"""Issuer and pool registries linking basket names to default curves."""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from .curves import DefaultProbabilityCurve


@dataclass(frozen=True)
class DefaultProbKey:
    """Credit key selecting one of an issuer's default probability curves.

    Attributes:
        currency: Currency of the referenced obligations
        seniority: Seniority of the referenced debt (e.g. 'SeniorSec')
        restructuring: Restructuring clause (e.g. 'XR' for no restructuring)
        amount_threshold: Minimum defaulted amount triggering a credit event
    """
    currency: str = "EUR"
    seniority: str = "SeniorSec"
    restructuring: str = "XR"
    amount_threshold: float = 1.0

    def __post_init__(self):
        if self.amount_threshold < 0:
            raise ValueError(
                f"Amount threshold must be non-negative, got {self.amount_threshold}"
            )


class Issuer:
    """An issuer owning default probability curves keyed by credit key."""

    def __init__(self, curves: Iterable[Tuple[DefaultProbKey, DefaultProbabilityCurve]]):
        self._curves: Dict[DefaultProbKey, DefaultProbabilityCurve] = {}
        for key, curve in curves:
            if key in self._curves:
                raise ValueError(f"Duplicate default key {key} for issuer")
            self._curves[key] = curve
        if not self._curves:
            raise ValueError("Issuer needs at least one default probability curve")

    @property
    def keys(self) -> List[DefaultProbKey]:
        return list(self._curves.keys())

    def default_probability(self, key: DefaultProbKey) -> DefaultProbabilityCurve:
        """Get the default probability curve for a credit key."""
        if key not in self._curves:
            raise KeyError(f"No default probability curve for key {key}")
        return self._curves[key]


class Pool:
    """Registry mapping basket names to issuers and their credit keys.

    A pool is shared by reference between every basket and loss model that
    references its names; it is only written while being set up.
    """

    def __init__(self):
        self._issuers: Dict[str, Issuer] = {}
        self._keys: Dict[str, DefaultProbKey] = {}

    def add(self, name: str, issuer: Issuer, key: DefaultProbKey) -> None:
        """Register a name with its issuer and the credit key to use."""
        if name in self._issuers:
            raise ValueError(f"Name '{name}' already exists in pool")
        # fail early if the issuer cannot serve the key
        issuer.default_probability(key)
        self._issuers[name] = issuer
        self._keys[name] = key

    def get(self, name: str) -> Issuer:
        """Get the issuer registered under a name."""
        if name not in self._issuers:
            raise KeyError(f"Name '{name}' not found in pool")
        return self._issuers[name]

    def default_key(self, name: str) -> DefaultProbKey:
        """Get the credit key registered for a name."""
        if name not in self._keys:
            raise KeyError(f"Name '{name}' not found in pool")
        return self._keys[name]

    def default_probability_curve(self, name: str) -> DefaultProbabilityCurve:
        """Resolve the default probability curve used for a name."""
        return self.get(name).default_probability(self.default_key(name))

    @property
    def names(self) -> List[str]:
        return list(self._issuers.keys())

    def __len__(self) -> int:
        return len(self._issuers)

    def __iter__(self):
        return iter(self._issuers)

    def __contains__(self, name: str) -> bool:
        return name in self._issuers
