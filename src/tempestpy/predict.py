# src/tempestpy/predict.py
# SPDX-License-Identifier: MIT
"""
Apply a :class:`~tempestpy.model.ModelBank` to new observation tables.

Each row is routed to the model of its stratum (``time``), the learner is
asked for one or more conditional quantiles, and the output is shaped in one
of three ways:

- **bare** (default): ``id, ecoregion, year, time, start, end`` plus the
  predicted column(s), named ``temperature``;
- **compare** (``compare=True``): the same identifier columns, ``Actual``
  (the observed ``temperature``) and ``Modeled`` column(s);
- **preserve** (``preserve=True``, takes precedence over ``compare`` for
  column selection): every input column, with ``temperature`` renamed to
  ``Actual`` when present, plus the predicted column(s).

Column naming
-------------
When ``quantiles`` is left at its default (``None``, i.e. the median) the
prediction column carries the bare base name (``temperature`` or
``Modeled``). When the caller passes an explicit list, even ``[0.5]``, every
column is suffixed with its quantile: ``Modeled_0.1``, ``Modeled_0.5``, ...
Downstream code depends on this distinction.

Rows dropped
------------
Rows with missing values are dropped by sanitization, and rows whose stratum
has no fitted model (unseen at training, too few rows, or an isolated
failure) are dropped from the output. Use
:func:`predict_temperature_with_report` to get the counts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .errors import ColumnContractError, MissingResponseError
from .learner import QuantileForestLearner
from .model import ModelBank
from .table import (
    OUTPUT_ID_COLUMNS,
    RESPONSE_COLUMN,
    encode_predictors,
    predictor_columns,
    sanitize,
    split_strata,
    validate_columns,
)

DEFAULT_QUANTILES: Tuple[float, ...] = (0.5,)
ACTUAL_COLUMN = "Actual"


@dataclass
class PredictionReport:
    """Row accounting for one prediction call."""

    n_input: int
    n_sanitized: int
    n_predicted: int
    dropped_strata: Dict[str, int] = field(default_factory=dict)

    @property
    def dropped_na(self) -> int:
        """Rows removed by sanitization (missing values)."""
        return self.n_input - self.n_sanitized

    @property
    def dropped_rows(self) -> int:
        return self.dropped_na + sum(self.dropped_strata.values())


def _quantile_label(q: float) -> str:
    # 15 significant digits: 0.1 + 0.2 -> "0.3", 1.0 -> "1"
    return f"{float(q):.15g}"


def prediction_columns(base: str, quantiles: Optional[Sequence[float]]) -> List[str]:
    """
    Names of the predicted columns.

    ``quantiles=None`` (the default median) gives ``[base]``; an explicit
    list gives ``base_q`` for each quantile, in the given order.
    """
    if quantiles is None:
        return [base]
    return [f"{base}_{_quantile_label(q)}" for q in quantiles]


def _check_quantiles(quantiles: Optional[Sequence[float]]) -> List[float]:
    if quantiles is None:
        return list(DEFAULT_QUANTILES)
    qs = [float(q) for q in quantiles]
    if not qs:
        raise ValueError("quantiles must contain at least one value.")
    bad = [q for q in qs if not 0.0 <= q <= 1.0]
    if bad:
        raise ValueError(f"quantiles must lie in [0, 1], got {bad}.")
    return qs


def _check_contract(bank: ModelBank, table: pd.DataFrame) -> None:
    present = predictor_columns(table)
    expected = list(bank.predictors)
    missing = [c for c in expected if c not in present]
    unexpected = [c for c in present if c not in expected]
    if missing or unexpected:
        raise ColumnContractError(missing, unexpected)


def predict_temperature_with_report(
    bank: ModelBank,
    data: pd.DataFrame,
    *,
    compare: bool = False,
    preserve: bool = False,
    quantiles: Optional[Sequence[float]] = None,
    learner=None,
) -> Tuple[pd.DataFrame, PredictionReport]:
    """
    Predict river temperature for *data* and report dropped rows.

    Parameters
    ----------
    bank :
        Output of :func:`tempestpy.model.fit_model_bank`.
    data :
        Table with the same predictor columns as the training table, a
        ``time`` column and, unless ``preserve=True``, the columns
        ``id, ecoregion, year, start, end``.
    compare :
        Keep the observed ``temperature`` as ``Actual`` for accuracy
        assessment. Requires a ``temperature`` column.
    preserve :
        Keep every input column.
    quantiles :
        Quantiles to predict. ``None`` means the median with an unlabelled
        column (see the module docstring).
    learner :
        Learner used to query the models; defaults to
        :class:`~tempestpy.learner.QuantileForestLearner`.

    Returns
    -------
    predictions, report

    Raises
    ------
    MissingResponseError
        ``compare=True`` but the table has no (non-empty) ``temperature``.
    MissingColumnsError
        Required identifier columns are absent.
    ColumnContractError
        The predictor columns differ from those used to fit *bank*.
    """
    qs = _check_quantiles(quantiles)
    learner = learner if learner is not None else QuantileForestLearner()

    validate_columns(data, ["time"], what="prediction table")
    clean = sanitize(data)
    has_tmp = RESPONSE_COLUMN in clean.columns
    if compare and not has_tmp:
        raise MissingResponseError(RESPONSE_COLUMN)
    required = ["time"] if preserve else list(OUTPUT_ID_COLUMNS)
    validate_columns(clean, required, what="prediction table")
    _check_contract(bank, clean)

    base = "Modeled" if (compare or (preserve and has_tmp)) else "temperature"
    names = prediction_columns(base, quantiles)

    if preserve:
        keep = [ACTUAL_COLUMN if c == RESPONSE_COLUMN else c for c in clean.columns]
    elif compare:
        keep = list(OUTPUT_ID_COLUMNS) + [ACTUAL_COLUMN]
    else:
        keep = list(OUTPUT_ID_COLUMNS)

    parts: List[pd.DataFrame] = []
    dropped: Dict[str, int] = {}
    for key, block in split_strata(clean).items():
        model = bank.models.get(key)
        if model is None:
            dropped[key] = int(len(block))
            continue

        X = encode_predictors(block, bank.predictors, bank.categories)
        pred = np.asarray(learner.predict(model, X, qs), dtype=float)
        prd = pd.DataFrame(pred.reshape(len(block), len(qs)), columns=names, index=block.index)

        tab = block.rename(columns={RESPONSE_COLUMN: ACTUAL_COLUMN})[keep]
        parts.append(pd.concat([tab, prd], axis=1))

    if parts:
        out = pd.concat(parts, axis=0, ignore_index=True)
    else:
        out = pd.DataFrame(columns=keep + names)

    report = PredictionReport(
        n_input=int(len(data)),
        n_sanitized=int(len(clean)),
        n_predicted=int(len(out)),
        dropped_strata=dropped,
    )
    return out, report


def predict_temperature(
    bank: ModelBank,
    data: pd.DataFrame,
    *,
    compare: bool = False,
    preserve: bool = False,
    quantiles: Optional[Sequence[float]] = None,
    learner=None,
) -> pd.DataFrame:
    """
    Predict river temperature for *data*.

    Same as :func:`predict_temperature_with_report` without the report.
    """
    out, _ = predict_temperature_with_report(
        bank,
        data,
        compare=compare,
        preserve=preserve,
        quantiles=quantiles,
        learner=learner,
    )
    return out


__all__ = [
    "ACTUAL_COLUMN",
    "PredictionReport",
    "prediction_columns",
    "predict_temperature",
    "predict_temperature_with_report",
]
