# src/tempestpy/metrics.py
# SPDX-License-Identifier: MIT
"""
Goodness-of-fit statistics for modeled river temperature.

This module provides the metrics used to score cross-validation runs:

- :func:`rmse`: root mean squared error.
- :func:`pbias`: percent bias.
- :func:`nse`: Nash–Sutcliffe efficiency.
- :func:`kge`: Kling–Gupta efficiency (Gupta et al., 2009).
- :func:`regression_metrics`: MAE, RMSE, R², PBIAS, KGE, NSE in one dict.
- :func:`default_gof`: the per-entity summary (RMSE, PBIAS, R², NSE).
- :func:`gof_table`: one row of statistics per gauge / month / region.
- :func:`interval_coverage`: share of observations inside a predicted
  quantile interval.

Key design choices
------------------
* Inputs are accepted as any iterable (lists, NumPy arrays, pandas Series).
* Outputs are plain ``float`` or ``numpy.nan`` when the metric is undefined
  (for instance, zero variance in the observed series).
* R² is **not** ``sklearn.metrics.r2_score``. Here it is defined as the
  square of the Pearson correlation coefficient between observations and
  predictions. This avoids redundancy with NSE, which already has the
  “variance–explained” interpretation.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from sklearn.metrics import mean_absolute_error, mean_squared_error

from .table import validate_columns

GofFunction = Callable[[np.ndarray, np.ndarray], Dict[str, float]]


# ---------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------


def _as_arrays(
    y_true: Iterable[float],
    y_pred: Iterable[float],
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Convert *y_true* and *y_pred* to NumPy arrays of ``dtype=float`` and
    verify that they share the same shape.

    Raises
    ------
    ValueError
        If the shapes of *y_true* and *y_pred* do not match.
    """
    yt = np.asarray(y_true, dtype=float)
    yp = np.asarray(y_pred, dtype=float)

    if yt.shape != yp.shape:
        raise ValueError(
            f"Shapes of y_true {yt.shape} and y_pred {yp.shape} do not match."
        )
    return yt, yp


def _by_columns(by: Union[str, Sequence[str]]) -> List[str]:
    return [by] if isinstance(by, str) else list(by)


# ---------------------------------------------------------------------
# Single statistics
# ---------------------------------------------------------------------


def rmse(y_true: Iterable[float], y_pred: Iterable[float]) -> float:
    """Root mean squared error; ``np.nan`` for empty input."""
    yt, yp = _as_arrays(y_true, y_pred)
    if yt.size == 0:
        return np.nan
    return float(np.sqrt(mean_squared_error(yt, yp)))


def pbias(y_true: Iterable[float], y_pred: Iterable[float]) -> float:
    """
    Percent bias, ``100 * sum(pred - obs) / sum(obs)``.

    Positive values mean the model overestimates. ``np.nan`` for empty
    input or when the observations sum to zero.
    """
    yt, yp = _as_arrays(y_true, y_pred)
    if yt.size == 0:
        return np.nan
    denom = float(np.sum(yt))
    if denom == 0.0:
        return np.nan
    return float(100.0 * np.sum(yp - yt) / denom)


def r2(y_true: Iterable[float], y_pred: Iterable[float]) -> float:
    """Squared Pearson correlation; ``np.nan`` when undefined."""
    yt, yp = _as_arrays(y_true, y_pred)
    if yt.size < 2:
        return np.nan
    if float(np.std(yt, ddof=1)) == 0.0 or float(np.std(yp, ddof=1)) == 0.0:
        return np.nan
    r = float(np.corrcoef(yt, yp)[0, 1])
    return float(r ** 2) if np.isfinite(r) else np.nan


def kge(y_true: Iterable[float], y_pred: Iterable[float]) -> float:
    """
    Kling–Gupta efficiency (KGE).

    .. math::

        \\mathrm{KGE} = 1 - \\sqrt{(r - 1)^2 + (\\alpha - 1)^2 + (\\beta - 1)^2}

    with correlation ``r``, variability ratio ``α = σ_pred / σ_obs`` and bias
    ratio ``β = μ_pred / μ_obs``. ``np.nan`` is returned when the sample size
    is < 2, either series has zero variance, or the observed mean is zero.
    """
    yt, yp = _as_arrays(y_true, y_pred)

    if yt.size < 2:
        return np.nan

    mu_y = float(np.mean(yt))
    sigma_y = float(np.std(yt, ddof=1))
    mu_p = float(np.mean(yp))
    sigma_p = float(np.std(yp, ddof=1))

    if sigma_y == 0.0 or mu_y == 0.0 or sigma_p == 0.0:
        return np.nan
    r = float(np.corrcoef(yt, yp)[0, 1])
    if not np.isfinite(r):
        return np.nan

    alpha = sigma_p / sigma_y
    beta = mu_p / mu_y
    return float(1.0 - np.sqrt((r - 1.0) ** 2 + (alpha - 1.0) ** 2 + (beta - 1.0) ** 2))


def nse(y_true: Iterable[float], y_pred: Iterable[float]) -> float:
    """
    Nash–Sutcliffe efficiency (NSE).

    .. math::

        \\mathrm{NSE} = 1 - \\frac{\\sum (y_t - y_p)^2}
                                {\\sum (y_t - \\overline{y_t})^2}

    ``np.nan`` is returned when the sample size is < 2 or the observed
    series has zero variance. Poor models can yield NSE < 0.
    """
    yt, yp = _as_arrays(y_true, y_pred)

    if yt.size < 2:
        return np.nan

    denom = float(np.sum((yt - np.mean(yt)) ** 2))
    if denom == 0.0:
        return np.nan

    num = float(np.sum((yt - yp) ** 2))
    return float(1.0 - num / denom)


# ---------------------------------------------------------------------
# Combined statistics
# ---------------------------------------------------------------------


def regression_metrics(y_true: Iterable[float], y_pred: Iterable[float]) -> Dict[str, float]:
    """
    MAE, RMSE, R² (squared Pearson), PBIAS, KGE and NSE in one dict.

    Degenerate inputs yield ``np.nan`` for the affected statistics; empty
    inputs yield ``np.nan`` everywhere.
    """
    yt, yp = _as_arrays(y_true, y_pred)
    if yt.size == 0:
        return {k: np.nan for k in ("MAE", "RMSE", "R2", "PBIAS", "KGE", "NSE")}

    return {
        "MAE": float(mean_absolute_error(yt, yp)),
        "RMSE": rmse(yt, yp),
        "R2": r2(yt, yp),
        "PBIAS": pbias(yt, yp),
        "KGE": kge(yt, yp),
        "NSE": nse(yt, yp),
    }


def default_gof(y_true: Iterable[float], y_pred: Iterable[float]) -> Dict[str, float]:
    """RMSE, percent bias, R² and NSE: the per-gauge summary used in reports."""
    yt, yp = _as_arrays(y_true, y_pred)
    return {
        "RMSE": rmse(yt, yp),
        "PBIAS": pbias(yt, yp),
        "R2": r2(yt, yp),
        "NSE": nse(yt, yp),
    }


# ---------------------------------------------------------------------
# Per-entity tables
# ---------------------------------------------------------------------


def gof_table(
    predictions: pd.DataFrame,
    *,
    by: Union[str, Sequence[str]] = "id",
    obs_col: str = "Actual",
    sim_col: str = "Modeled",
    fn: Optional[GofFunction] = None,
) -> pd.DataFrame:
    """
    Goodness of fit per entity.

    Parameters
    ----------
    predictions :
        Output of ``predict_temperature(..., compare=True)`` (or anything with
        the observed / simulated columns).
    by :
        Grouping column(s): ``"id"`` for gauges, ``"time"`` for months,
        ``"ecoregion"`` or ``["ecoregion", "urban"]`` for sub-populations.
    obs_col, sim_col :
        Observed and simulated columns.
    fn :
        ``fn(obs, sim) -> dict`` of statistics. Defaults to :func:`default_gof`.

    Returns
    -------
    DataFrame
        The ``by`` columns, ``n`` and one column per statistic, sorted by
        the ``by`` columns.
    """
    fn = fn or default_gof
    by_cols = _by_columns(by)
    validate_columns(predictions, by_cols + [obs_col, sim_col], what="predictions")

    rows: List[Dict] = []
    for key, g in predictions.groupby(by_cols, sort=True):
        key = key if isinstance(key, tuple) else (key,)
        stats = fn(g[obs_col].to_numpy(dtype=float), g[sim_col].to_numpy(dtype=float))
        rows.append({**dict(zip(by_cols, key)), "n": int(len(g)), **stats})

    if not rows:
        stat_names = list(fn(np.empty(0), np.empty(0)).keys())
        return pd.DataFrame(columns=by_cols + ["n"] + stat_names)
    return pd.DataFrame(rows)


def interval_coverage(
    predictions: pd.DataFrame,
    lower_col: str,
    upper_col: str,
    *,
    obs_col: str = "Actual",
    by: Optional[Union[str, Sequence[str]]] = None,
) -> Union[float, pd.DataFrame]:
    """
    Share of observations falling inside ``[lower, upper]``.

    A well-calibrated 90% interval (``Modeled_0.05`` to ``Modeled_0.95``)
    should cover about 0.9 of the observations.

    Returns a float when ``by`` is ``None`` (``np.nan`` for no rows), else a
    DataFrame with the ``by`` columns, ``n`` and ``coverage``.
    """
    cols = [obs_col, lower_col, upper_col]
    if by is not None:
        cols = _by_columns(by) + cols
    validate_columns(predictions, cols, what="predictions")

    obs = predictions[obs_col].astype(float)
    inside = (obs >= predictions[lower_col].astype(float)) & (
        obs <= predictions[upper_col].astype(float)
    )

    if by is None:
        return float(inside.mean()) if len(inside) else np.nan

    by_cols = _by_columns(by)
    flagged = predictions[by_cols].assign(_inside=inside.to_numpy())
    out = (
        flagged.groupby(by_cols, sort=True)["_inside"]
        .agg(n="size", coverage="mean")
        .reset_index()
    )
    out["coverage"] = out["coverage"].astype(float)
    return out


__all__ = [
    "rmse",
    "pbias",
    "r2",
    "kge",
    "nse",
    "regression_metrics",
    "default_gof",
    "gof_table",
    "interval_coverage",
]
