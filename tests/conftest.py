"""Pytest fixtures for basket loss model tests."""

import pytest
import numpy as np
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from basket_loss import (
    DefaultLatentModel,
    SpotRecoveryLatentModel,
    StudentTCopula,
    advance,
)
from basket_loss.demo import create_sample_basket


@pytest.fixture
def sample_basket():
    """Ten names with flat hazard rates 0.1% to 9% and a 3%-6% tranche."""
    return create_sample_basket()


@pytest.fixture
def horizon(sample_basket):
    """Five years after the basket's reference date."""
    return advance(sample_basket.reference_date, months=60)


@pytest.fixture
def recoveries():
    return [0.4] * 10


@pytest.fixture
def loadings():
    """Single factor with correlation 5% for all ten names."""
    return [[np.sqrt(0.05)]] * 10


@pytest.fixture
def gaussian_latent_model(loadings, recoveries):
    return DefaultLatentModel(loadings, recoveries)


@pytest.fixture
def t_latent_model(loadings, recoveries):
    """Student-t factor and idiosyncratic term, both of order 3."""
    return DefaultLatentModel(loadings, recoveries, StudentTCopula([3, 3]))


@pytest.fixture
def spot_latent_model(loadings, recoveries):
    return SpotRecoveryLatentModel(loadings * 2, recoveries, model_a=2.2)
