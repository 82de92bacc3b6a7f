"""
tempestpy
=========

River temperature estimation from satellite-derived spatial predictors.

Monthly-mean river water temperature is modeled with one quantile
regression forest per calendar month, trained on gauge observations and
remotely-sensed predictors (land surface temperature, humidity, elevation,
land-cover fractions, ...). The package provides three complementary
pieces:

1. Training and prediction
   -----------------------
   - :func:`sanitize` drops empty columns, then incomplete rows.
   - :func:`fit_model_bank` fits one model per stratum (``time``, usually the
     two-digit month) and returns an immutable :class:`ModelBank`.
   - :func:`predict_temperature` applies the right month's model to each row
     and returns the median or any set of quantiles, in bare, compare
     (``Actual`` vs ``Modeled``) or preserve (all input columns) form.

2. Validation
   ----------
   - :func:`kfold_validate`: grouped k-fold (train on one fold, test on
     the others).
   - :func:`leave_one_out_validate`: leave one year / spatial cell out.
   - :func:`density_validate`: accuracy versus gauge density.
   - :func:`gof_table`, :func:`interval_coverage`: per-gauge, per-month or
     per-region statistics and quantile-interval coverage.

3. Gauge data
   ----------
   - :func:`get_usgs`, :func:`add_temperature`: observed monthly means from
     the USGS NWIS daily-values service.

Example
-------
    >>> import pandas as pd
    >>> from tempestpy import fit_model_bank, predict_temperature, gof_table
    >>> train = pd.read_csv("training.csv", dtype={"id": str, "time": str})
    >>> bank = fit_model_bank(train, qrf_params=dict(n_estimators=500, n_jobs=-1))
    >>> pred = predict_temperature(bank, test, compare=True, quantiles=[0.05, 0.5, 0.95])
    >>> gof_table(pred, by="id", sim_col="Modeled_0.5")
"""

from __future__ import annotations

# Public version (update in sync with pyproject.toml)
__version__ = "0.1.0"

from .errors import (
    ColumnContractError,
    MissingColumnsError,
    MissingResponseError,
    StratumFitError,
    TempestError,
)
from .table import (
    canonical_stratum,
    classify_urban,
    predictor_columns,
    sanitize,
    spatial_cells,
    split_strata,
)
from .learner import QuantileForestLearner
from .model import (
    DEFAULT_QRF_PARAMS,
    ModelBank,
    ModelBankMeta,
    fit_model_bank,
    load_model_bank,
    save_model_bank,
)
from .predict import (
    PredictionReport,
    prediction_columns,
    predict_temperature,
    predict_temperature_with_report,
)
from .metrics import (
    default_gof,
    gof_table,
    interval_coverage,
    regression_metrics,
)
from .validation import (
    assign_folds,
    density_validate,
    kfold_splits,
    kfold_validate,
    leave_one_out_validate,
)
from .usgs import add_temperature, get_usgs
from .utils import read_table, save_table

__all__ = [
    "__version__",
    # errors
    "TempestError",
    "MissingColumnsError",
    "MissingResponseError",
    "ColumnContractError",
    "StratumFitError",
    # tables
    "sanitize",
    "canonical_stratum",
    "split_strata",
    "predictor_columns",
    "classify_urban",
    "spatial_cells",
    "read_table",
    "save_table",
    # models
    "QuantileForestLearner",
    "DEFAULT_QRF_PARAMS",
    "ModelBank",
    "ModelBankMeta",
    "fit_model_bank",
    "save_model_bank",
    "load_model_bank",
    # prediction
    "PredictionReport",
    "prediction_columns",
    "predict_temperature",
    "predict_temperature_with_report",
    # metrics
    "regression_metrics",
    "default_gof",
    "gof_table",
    "interval_coverage",
    # validation
    "assign_folds",
    "kfold_splits",
    "kfold_validate",
    "leave_one_out_validate",
    "density_validate",
    # gauge data
    "get_usgs",
    "add_temperature",
]
