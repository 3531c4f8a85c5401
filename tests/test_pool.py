"""Tests for pool.py - issuers and the name pool."""

import pytest

from basket_loss import DefaultProbKey, Issuer, Pool, FlatHazardRate


@pytest.fixture
def key():
    return DefaultProbKey()


@pytest.fixture
def issuer(key):
    return Issuer([(key, FlatHazardRate(0.02))])


class TestDefaultProbKey:
    """Tests for DefaultProbKey."""

    def test_defaults(self, key):
        """Test default key fields."""
        assert key.currency == "EUR"
        assert key.seniority == "SeniorSec"
        assert key.amount_threshold == 1.0

    def test_hashable_value_object(self):
        """Test equal keys compare and hash equal."""
        assert DefaultProbKey() == DefaultProbKey()
        assert len({DefaultProbKey(), DefaultProbKey(), DefaultProbKey(currency="USD")}) == 2

    def test_negative_threshold(self):
        """Test negative amount thresholds are rejected."""
        with pytest.raises(ValueError):
            DefaultProbKey(amount_threshold=-1.0)


class TestIssuer:
    """Tests for Issuer."""

    def test_curve_lookup(self, issuer, key):
        """Test curve lookup by key."""
        assert issuer.default_probability(key).hazard_rate() == 0.02
        assert issuer.keys == [key]

    def test_missing_key(self, issuer):
        """Test a missing key raises KeyError."""
        with pytest.raises(KeyError):
            issuer.default_probability(DefaultProbKey(currency="USD"))

    def test_requires_curves(self):
        """Test an issuer needs at least one curve."""
        with pytest.raises(ValueError):
            Issuer([])

    def test_duplicate_keys(self, key):
        """Test duplicate keys are rejected."""
        with pytest.raises(ValueError, match="Duplicate"):
            Issuer([(key, FlatHazardRate(0.01)), (key, FlatHazardRate(0.02))])


class TestPool:
    """Tests for Pool."""

    def test_add_and_get(self, issuer, key):
        """Test registering and resolving a name."""
        pool = Pool()
        pool.add("Acme", issuer, key)
        assert pool.get("Acme") is issuer
        assert pool.default_key("Acme") == key
        assert pool.default_probability_curve("Acme").hazard_rate() == 0.02
        assert "Acme" in pool
        assert len(pool) == 1
        assert pool.names == ["Acme"]
        assert list(pool) == ["Acme"]

    def test_duplicate_name(self, issuer, key):
        """Test adding a name twice fails."""
        pool = Pool()
        pool.add("Acme", issuer, key)
        with pytest.raises(ValueError, match="already exists"):
            pool.add("Acme", issuer, key)

    def test_unknown_name(self):
        """Test unknown names raise KeyError."""
        pool = Pool()
        with pytest.raises(KeyError):
            pool.get("Missing")
        with pytest.raises(KeyError):
            pool.default_probability_curve("Missing")
