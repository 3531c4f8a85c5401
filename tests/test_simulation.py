"""Tests for simulation.py - Monte Carlo loss models."""

import pytest
import numpy as np

from basket_loss import (
    BinomialLossModel,
    InsufficientConvergence,
    InvalidModelParameters,
    RandomDefaultLossModel,
    RandomLossModel,
    SimulationResult,
)
from basket_loss.loss_model import expected_portfolio_loss


class TestSimulationResult:
    """Tests for SimulationResult dataclass."""

    @pytest.fixture
    def sample_result(self):
        """Create a sample simulation result."""
        rng = np.random.default_rng(42)
        losses = rng.exponential(100, 1000)
        return SimulationResult(
            portfolio_losses=losses,
            tranche_losses=np.clip(losses - 30, 0, 30),
            num_defaults=rng.poisson(2, 1000),
            num_trials=1000,
        )

    def test_expected_losses(self, sample_result):
        """Test expected loss calculations."""
        assert sample_result.expected_loss == np.mean(sample_result.portfolio_losses)
        assert sample_result.expected_tranche_loss == np.mean(sample_result.tranche_losses)

    def test_standard_error(self, sample_result):
        expected = np.std(sample_result.tranche_losses, ddof=1) / np.sqrt(1000)
        assert sample_result.standard_error == pytest.approx(expected)

    def test_probability_over_loss(self, sample_result):
        expected = np.mean(sample_result.portfolio_losses > 50.0)
        assert sample_result.probability_over_loss(50.0) == expected


class TestRandomDefaultLossModelConfiguration:
    """Tests for simulation model validation."""

    def test_defaults_from_settings(self, gaussian_latent_model):
        model = RandomDefaultLossModel(gaussian_latent_model)
        assert model.num_simulations > 0
        assert model.bit_generator == "mt19937"
        assert model.tolerance is None

    @pytest.mark.parametrize("kwargs", [
        {"num_simulations": 0},
        {"batch_size": -5},
        {"num_workers": 0},
        {"seed": -1},
        {"tolerance": 0.0},
        {"bit_generator": "xorshift"},
    ])
    def test_invalid_configuration(self, gaussian_latent_model, kwargs):
        """Test invalid simulation settings are rejected."""
        with pytest.raises(InvalidModelParameters):
            RandomDefaultLossModel(gaussian_latent_model, **kwargs)

    def test_random_loss_needs_spot_model(self, gaussian_latent_model):
        """Test random loss models require severity latent variables."""
        with pytest.raises(InvalidModelParameters, match="SpotRecoveryLatentModel"):
            RandomLossModel(gaussian_latent_model)


class TestRandomDefaultLossModel:
    """Tests for Monte Carlo tranche losses."""

    def test_deterministic_for_seed(self, sample_basket, horizon, gaussian_latent_model):
        """Test the same seed gives the same estimate."""
        first = RandomDefaultLossModel(gaussian_latent_model, num_simulations=5000,
                                       batch_size=1000, seed=17)
        second = RandomDefaultLossModel(gaussian_latent_model, num_simulations=5000,
                                        batch_size=1000, seed=17)
        assert first.expected_tranche_loss(sample_basket, horizon) == \
            second.expected_tranche_loss(sample_basket, horizon)

    def test_seed_changes_estimate(self, sample_basket, horizon, gaussian_latent_model):
        first = RandomDefaultLossModel(gaussian_latent_model, num_simulations=5000, seed=1)
        second = RandomDefaultLossModel(gaussian_latent_model, num_simulations=5000, seed=2)
        assert first.expected_tranche_loss(sample_basket, horizon) != \
            second.expected_tranche_loss(sample_basket, horizon)

    def test_independent_of_worker_count(self, sample_basket, horizon, gaussian_latent_model):
        """Test threads only change who draws each batch."""
        serial = RandomDefaultLossModel(gaussian_latent_model, num_simulations=5500,
                                        batch_size=1000, num_workers=1)
        threaded = RandomDefaultLossModel(gaussian_latent_model, num_simulations=5500,
                                          batch_size=1000, num_workers=3)
        assert serial.expected_tranche_loss(sample_basket, horizon) == \
            threaded.expected_tranche_loss(sample_basket, horizon)

    def test_repeat_evaluation_is_idempotent(self, sample_basket, horizon, gaussian_latent_model):
        """Test evaluating twice reuses the same draws."""
        model = RandomDefaultLossModel(gaussian_latent_model, num_simulations=3000,
                                       batch_size=1000)
        first = model.expected_tranche_loss(sample_basket, horizon)
        assert model.cached_trials == 3000
        assert model.expected_tranche_loss(sample_basket, horizon) == first
        model.release()
        assert model.cached_trials == 0
        assert model.expected_tranche_loss(sample_basket, horizon) == first

    @pytest.mark.parametrize("bit_generator", ["mt19937", "pcg64", "philox", "sfc64"])
    def test_bit_generators(self, sample_basket, horizon, gaussian_latent_model, bit_generator):
        """Test every supported bit generator produces a bounded estimate."""
        model = RandomDefaultLossModel(gaussian_latent_model, num_simulations=2000,
                                       bit_generator=bit_generator)
        value = model.expected_tranche_loss(sample_basket, horizon)
        assert 0.0 < value <= 30.0

    def test_early_stop_on_tolerance(self, sample_basket, horizon, gaussian_latent_model):
        """Test a loose tolerance stops after the first batch."""
        model = RandomDefaultLossModel(gaussian_latent_model, num_simulations=10000,
                                       batch_size=1000, tolerance=1e6)
        result = model.simulate(sample_basket, horizon)
        assert result.converged
        assert result.num_trials == 1000

    def test_per_trial_outputs(self, sample_basket, horizon, gaussian_latent_model):
        """Test per-trial defaults, portfolio and tranche losses are consistent."""
        model = RandomDefaultLossModel(gaussian_latent_model, num_simulations=2000, seed=3)
        result = model.simulate(sample_basket, horizon)
        assert len(result.portfolio_losses) == len(result.num_defaults) == result.num_trials
        np.testing.assert_allclose(result.portfolio_losses, 60.0 * result.num_defaults)
        np.testing.assert_allclose(result.tranche_losses,
                                   np.clip(result.portfolio_losses - 30.0, 0.0, 30.0))

    def test_unmet_tolerance(self, sample_basket, horizon, gaussian_latent_model):
        """Test an unreachable tolerance fails without caching draws."""
        model = RandomDefaultLossModel(gaussian_latent_model, num_simulations=2000,
                                       batch_size=1000, tolerance=1e-12)
        with pytest.raises(InsufficientConvergence):
            model.expected_tranche_loss(sample_basket, horizon)
        assert model.cached_trials == 0

    def test_matches_binomial(self, sample_basket, horizon, gaussian_latent_model):
        """Test agreement with the semi-analytic binomial model."""
        binomial = BinomialLossModel(gaussian_latent_model).expected_tranche_loss(
            sample_basket, horizon)
        simulated = RandomDefaultLossModel(gaussian_latent_model, num_simulations=50000,
                                           batch_size=10000)
        assert simulated.expected_tranche_loss(sample_basket, horizon) == pytest.approx(
            binomial, rel=0.02)

    def test_degenerate_tranche(self, sample_basket, horizon, gaussian_latent_model, recoveries):
        """Test the [0, 1] tranche approximates the portfolio expected loss."""
        model = RandomDefaultLossModel(gaussian_latent_model, num_simulations=50000)
        expected = expected_portfolio_loss(sample_basket, np.array(recoveries),
                                           sample_basket.time_to(horizon))
        assert model.expected_loss(sample_basket, horizon) == pytest.approx(expected, rel=0.02)

    def test_probability_over_loss(self, sample_basket, horizon, gaussian_latent_model):
        """Test exceedance agrees with the binomial loss distribution."""
        binomial = BinomialLossModel(gaussian_latent_model)
        simulated = RandomDefaultLossModel(gaussian_latent_model, num_simulations=50000)
        assert simulated.probability_over_loss(sample_basket, horizon, 0.1) == pytest.approx(
            binomial.probability_over_loss(sample_basket, horizon, 0.1), abs=0.01)

    def test_student_t(self, sample_basket, horizon, t_latent_model):
        """Test the t copula simulation agrees with its binomial model."""
        binomial = BinomialLossModel(t_latent_model).expected_tranche_loss(sample_basket, horizon)
        simulated = RandomDefaultLossModel(t_latent_model, num_simulations=50000)
        assert simulated.expected_tranche_loss(sample_basket, horizon) == pytest.approx(
            binomial, rel=0.03)


class TestRandomLossModel:
    """Tests for Monte Carlo losses with random recoveries."""

    def test_gaussian(self, sample_basket, horizon, spot_latent_model):
        model = RandomLossModel(spot_latent_model, num_simulations=20000)
        value = model.expected_tranche_loss(sample_basket, horizon)
        assert 0.0 < value <= 30.0

    def test_recoveries_vary(self, sample_basket, horizon, spot_latent_model):
        """Test random recoveries spread the loss per default."""
        result = RandomLossModel(spot_latent_model, num_simulations=5000).simulate(
            sample_basket, horizon)
        single_default = result.portfolio_losses[result.num_defaults == 1]
        assert len(np.unique(np.round(single_default, 8))) > 10
        assert np.all(result.portfolio_losses <= 1000.0)

    def test_student_t(self, sample_basket, horizon, loadings, recoveries):
        from basket_loss import SpotRecoveryLatentModel, StudentTCopula
        spot_t = SpotRecoveryLatentModel(loadings * 2, recoveries, 2.2, StudentTCopula([3, 3]))
        value = RandomLossModel(spot_t, num_simulations=5000).expected_tranche_loss(
            sample_basket, horizon)
        assert 0.0 < value <= 30.0
