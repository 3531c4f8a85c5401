"""Tabular comparison of loss model strategies."""

import logging
from typing import Mapping

import pandas as pd

from .basket import Basket
from .loss_model import DefaultLossModel

logger = logging.getLogger(__name__)


def compare_loss_models(basket: Basket, models: Mapping[str, DefaultLossModel],
                        date) -> pd.DataFrame:
    """Evaluate each model on the basket's tranche and tabulate the results.

    Models are attached to the basket one at a time. A model the basket
    held before the call is restored afterwards, also when an evaluation
    fails.

    Args:
        basket: The basket to evaluate
        models: Loss models keyed by a display label, in report order
        date: Horizon date or year fraction

    Returns:
        DataFrame with one row per model; 'Relative' is each expected loss
        divided by the first model's
    """
    previous = basket.loss_model
    data = []
    try:
        for label, model in models.items():
            basket.set_loss_model(model)
            value = basket.expected_tranche_loss(date)
            logger.debug("%s: expected tranche loss %.6f", label, value)
            data.append({
                'Model': label,
                'Expected_Tranche_Loss': value,
                'Tranche_Notional': basket.tranche_notional,
                'Loss_Pct': value / basket.tranche_notional,
            })
    finally:
        if previous is not None:
            basket.set_loss_model(previous)

    df = pd.DataFrame(data, columns=['Model', 'Expected_Tranche_Loss',
                                     'Tranche_Notional', 'Loss_Pct'])
    if len(df) and df['Expected_Tranche_Loss'].iloc[0] != 0:
        df['Relative'] = df['Expected_Tranche_Loss'] / df['Expected_Tranche_Loss'].iloc[0]
    else:
        df['Relative'] = float('nan')
    return df
