# src/tempestpy/learner.py
# SPDX-License-Identifier: MIT
"""
Quantile regression forest learner.

The rest of the package only relies on two methods::

    fit(X, y, params) -> model
    predict(model, X, quantiles) -> ndarray of shape (n_rows, n_quantiles)

so any object with the same interface can be passed as ``learner=``.
"""

from __future__ import annotations

from typing import Dict, Optional, Sequence

import numpy as np
from quantile_forest import RandomForestQuantileRegressor


class QuantileForestLearner:
    """Adapter around :class:`quantile_forest.RandomForestQuantileRegressor`."""

    def fit(
        self,
        X: np.ndarray,
        y: np.ndarray,
        params: Optional[Dict] = None,
    ) -> RandomForestQuantileRegressor:
        params = dict(params or {})
        # Random-forest ``mtry`` semantics: never sample more predictors than exist.
        max_features = params.get("max_features")
        if isinstance(max_features, (int, np.integer)) and not isinstance(max_features, bool):
            params["max_features"] = max(1, min(int(max_features), X.shape[1]))
        model = RandomForestQuantileRegressor(**params)
        model.fit(np.asarray(X, dtype=float), np.asarray(y, dtype=float))
        return model

    def predict(
        self,
        model: RandomForestQuantileRegressor,
        X: np.ndarray,
        quantiles: Sequence[float],
    ) -> np.ndarray:
        quantiles = [float(q) for q in quantiles]
        X = np.asarray(X, dtype=float)
        pred = model.predict(X, quantiles=quantiles)
        return np.asarray(pred, dtype=float).reshape(X.shape[0], len(quantiles))


__all__ = ["QuantileForestLearner"]
