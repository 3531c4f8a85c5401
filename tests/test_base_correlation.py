"""Tests for base_correlation.py - base correlation surface and LHP model."""

import pytest
import numpy as np

from basket_loss import (
    BaseCorrelationLHPModel,
    BaseCorrelationSurface,
    GaussianLHPLossModel,
    InvalidModelParameters,
    OutOfGridRange,
    SimpleQuote,
)


@pytest.fixture
def surface():
    """Tenors 1Y and 5Y, loss levels 3% and 12%."""
    return BaseCorrelationSurface([1.0, 5.0], [0.03, 0.12], [[0.1, 0.2], [0.3, 0.4]],
                                  extrapolation="flat")


def flat_surface(value, extrapolation="flat"):
    quotes = [[SimpleQuote(value), SimpleQuote(value)] for _ in range(2)]
    return BaseCorrelationSurface([1.0, 5.0], [0.03, 0.12], quotes, extrapolation)


class TestSimpleQuote:
    """Tests for SimpleQuote."""

    def test_value(self):
        quote = SimpleQuote(0.05)
        assert quote.value == 0.05
        quote.set_value(0.07)
        assert quote.value == 0.07

    def test_non_finite(self):
        with pytest.raises(ValueError):
            SimpleQuote(float("nan"))


class TestBaseCorrelationSurface:
    """Tests for surface interpolation."""

    def test_grid_points(self, surface):
        """Test grid values are returned at the nodes."""
        assert surface.correlation(1.0, 0.03) == pytest.approx(0.1)
        assert surface.correlation(5.0, 0.12) == pytest.approx(0.4)

    def test_bilinear_interpolation(self, surface):
        """Test interpolation is bilinear in tenor and loss level."""
        assert surface.correlation(3.0, 0.075) == pytest.approx(0.25)
        assert surface.correlation(2.0, 0.03) == pytest.approx(0.15)
        assert surface.correlation(1.0, 0.09) == pytest.approx(0.1 + 0.1 * 2 / 3)

    def test_flat_extrapolation(self, surface):
        """Test flat extrapolation clamps to the grid edges."""
        assert surface.correlation(10.0, 0.5) == pytest.approx(0.4)
        assert surface.correlation(0.5, 0.01) == pytest.approx(0.1)

    def test_linear_extrapolation(self):
        """Test linear extrapolation extends the edge slopes."""
        surface = BaseCorrelationSurface([1.0, 5.0], [0.03, 0.12], [[0.1, 0.2], [0.3, 0.4]],
                                         extrapolation="linear")
        assert surface.correlation(7.0, 0.12) == pytest.approx(0.5)

    def test_error_extrapolation(self):
        """Test lookups outside the grid fail when extrapolation is disabled."""
        surface = flat_surface(0.05, extrapolation="error")
        with pytest.raises(OutOfGridRange):
            surface.correlation(6.0, 0.05)
        assert surface.correlation(5.0, 0.05) == pytest.approx(0.05)

    def test_quote_updates_visible(self):
        """Test later quote updates are seen by the surface."""
        quote = SimpleQuote(0.2)
        surface = BaseCorrelationSurface([1.0, 5.0], [0.03, 0.12], [[quote, quote], [quote, quote]])
        assert surface.correlation(2.0, 0.05) == pytest.approx(0.2)
        quote.set_value(0.3)
        assert surface.correlation(2.0, 0.05) == pytest.approx(0.3)

    def test_quote_out_of_range(self):
        """Test correlations outside [0, 1] fail at lookup."""
        quote = SimpleQuote(0.2)
        surface = BaseCorrelationSurface([1.0, 5.0], [0.03, 0.12], [[quote, quote], [quote, quote]])
        quote.set_value(1.5)
        with pytest.raises(InvalidModelParameters):
            surface.correlation(2.0, 0.05)

    @pytest.mark.parametrize("tenors, levels, values", [
        ([5.0, 1.0], [0.03, 0.12], [[0.1, 0.1], [0.1, 0.1]]),
        ([1.0, 5.0], [0.12, 0.03], [[0.1, 0.1], [0.1, 0.1]]),
        ([1.0, 5.0], [0.03, 0.12], [[0.1, 0.1]]),
        ([1.0], [0.03, 0.12], [[0.1, 0.1]]),
        ([1.0, 5.0], [0.03, 0.12], [[0.1, 1.1], [0.1, 0.1]]),
    ])
    def test_invalid_grid(self, tenors, levels, values):
        """Test grid validation."""
        with pytest.raises(InvalidModelParameters):
            BaseCorrelationSurface(tenors, levels, values)

    def test_unknown_policy(self):
        with pytest.raises(InvalidModelParameters, match="extrapolation"):
            flat_surface(0.05, extrapolation="cubic")


class TestBaseCorrelationLHPModel:
    """Tests for the base correlation LHP model."""

    def test_reproduces_lhp(self, sample_basket, horizon, recoveries):
        """Test a flat surface reproduces the fixed correlation LHP model."""
        lhp = GaussianLHPLossModel(0.05, recoveries)
        base_correlation = BaseCorrelationLHPModel(flat_surface(0.05), recoveries)
        assert base_correlation.expected_tranche_loss(sample_basket, horizon) == pytest.approx(
            lhp.expected_tranche_loss(sample_basket, horizon), rel=1e-12)

    def test_base_tranche_decomposition(self, sample_basket, horizon, recoveries, surface):
        """Test the tranche is the difference of two base tranches."""
        model = BaseCorrelationLHPModel(surface, recoveries)
        lower = model.expected_tranche_loss(sample_basket, horizon, 0.0, 0.03)
        upper = model.expected_tranche_loss(sample_basket, horizon, 0.0, 0.06)
        tranche = model.expected_tranche_loss(sample_basket, horizon, 0.03, 0.06)
        assert tranche == pytest.approx(upper - lower)

    def test_shared_surface(self, sample_basket, horizon, recoveries):
        """Test quote updates reach every model sharing the surface."""
        quote = SimpleQuote(0.05)
        surface = BaseCorrelationSurface([1.0, 5.0], [0.03, 0.12], [[quote, quote], [quote, quote]])
        model = BaseCorrelationLHPModel(surface, recoveries)
        before = model.expected_tranche_loss(sample_basket, horizon)
        quote.set_value(0.3)
        after = model.expected_tranche_loss(sample_basket, horizon)
        assert after == pytest.approx(
            GaussianLHPLossModel(0.3, recoveries).expected_tranche_loss(sample_basket, horizon))
        assert after != pytest.approx(before)

    def test_out_of_grid_horizon(self, sample_basket, recoveries):
        """Test a horizon beyond the grid fails under the error policy."""
        model = BaseCorrelationLHPModel(flat_surface(0.05, extrapolation="error"), recoveries)
        with pytest.raises(OutOfGridRange):
            model.expected_tranche_loss(sample_basket, 7.0)
