# src/tempestpy/validation.py
# SPDX-License-Identifier: MIT
"""
Cross-validation harness
========================

Resampling strategies used to assess the per-month quantile forests:

- :func:`kfold_validate`: k-fold over the distinct values of a grouping key
  (gauges by default). Note the orientation: in each round the models are
  trained on the groups of **one** fold and evaluated on the groups of all
  the other folds together. The published statistics were produced this way.
- :func:`leave_one_out_validate`: one round per category (year, spatial
  cell, ...): train on every other category, evaluate on the held-out one.
- :func:`density_validate`: repeatedly subsample a fraction of the gauges
  and run :func:`kfold_validate` on the subsample, to see how accuracy
  depends on gauge density.

Every round fits a fresh :class:`~tempestpy.model.ModelBank` on its own
copy of the rows (no warm starts, no shared state), so rounds can be
dispatched to ``joblib.Parallel`` workers with ``n_jobs``. The input table is
never modified.

Each strategy reduces the pooled out-of-sample predictions with
:func:`tempestpy.metrics.gof_table`; by default RMSE, PBIAS, R² and NSE per
gauge (``gof_by="id"``).
"""

from __future__ import annotations

import math
import time
from typing import Callable, Dict, Hashable, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from tqdm.auto import tqdm

from .metrics import GofFunction, gof_table
from .model import MIN_STRATUM_ROWS, fit_model_bank
from .predict import prediction_columns, predict_temperature
from .table import predictor_columns, sanitize, validate_columns
from .utils import save_table

GroupKey = Union[str, pd.Series, Sequence]


# ---------------------------------------------------------------------
# Grouping helpers
# ---------------------------------------------------------------------


def _resolve_labels(data: pd.DataFrame, by: GroupKey) -> pd.Series:
    """Group label per row of *data*: a column name or an aligned sequence."""
    if isinstance(by, str):
        validate_columns(data, [by], what="table")
        return data[by]
    if isinstance(by, pd.Series):
        missing = data.index.difference(by.index)
        if len(missing):
            raise ValueError(f"Group labels are missing for {len(missing)} rows.")
        return by.reindex(data.index)
    values = np.asarray(by, dtype=object)
    if len(values) != len(data):
        raise ValueError(
            f"Group labels have length {len(values)}, table has {len(data)} rows."
        )
    return pd.Series(values, index=data.index)


def _prepare(data: pd.DataFrame, by: GroupKey) -> Tuple[pd.DataFrame, pd.Series]:
    """Sanitize once on the master table so every round sees the same columns.

    A grouping column that would otherwise be a predictor is dropped: the
    held-out label must not reach the models.
    """
    labels = _resolve_labels(data, by)
    if isinstance(by, str) and by in predictor_columns(data):
        data = data.drop(columns=by)
    clean = sanitize(data)
    return clean, labels.loc[clean.index]


def _sim_column(quantiles: Optional[Sequence[float]]) -> str:
    names = prediction_columns("Modeled", quantiles)
    if quantiles is None:
        return names[0]
    near = np.flatnonzero(np.isclose([float(q) for q in quantiles], 0.5))
    return names[int(near[0])] if len(near) else names[0]


def assign_folds(
    labels: Iterable[Hashable],
    k: int,
    seed: Optional[int] = None,
) -> Dict[Hashable, int]:
    """
    Deal the distinct, non-missing *labels* into ``k`` folds at random.

    Groups are shuffled and assigned round-robin, so fold sizes differ by at
    most one group. Every group lands in exactly one fold.
    """
    if int(k) < 1:
        raise ValueError("k must be a positive integer.")
    groups = pd.unique(pd.Series(list(labels), dtype=object).dropna())
    rng = np.random.default_rng(seed)
    folds = rng.permutation(np.arange(len(groups)) % int(k))
    return {g: int(f) for g, f in zip(groups, folds)}


def kfold_splits(
    data: pd.DataFrame,
    k: int = 10,
    by: GroupKey = "id",
    seed: Optional[int] = None,
) -> Iterator[Tuple[int, pd.Index, pd.Index]]:
    """
    Yield ``(fold, train_index, test_index)`` for the grouped k-fold.

    The training rows are those whose group belongs to ``fold``; the test
    rows are all remaining rows. Folds that received no group are skipped.
    Rows with a missing group label are in neither set.
    """
    labels = _resolve_labels(data, by)
    fold_of = labels.map(assign_folds(labels, k, seed))
    labelled = fold_of.notna().to_numpy()
    for fold in range(int(k)):
        in_fold = (fold_of == fold).to_numpy()
        if not in_fold.any():
            continue
        yield fold, data.index[in_fold], data.index[labelled & ~in_fold]


# ---------------------------------------------------------------------
# Round execution
# ---------------------------------------------------------------------


def _fit_predict_round(
    label: Hashable,
    label_col: str,
    train: pd.DataFrame,
    test: pd.DataFrame,
    *,
    qrf_params: Optional[Dict],
    quantiles: Optional[Sequence[float]],
    min_rows: int,
    on_error: str,
    learner,
) -> pd.DataFrame:
    bank = fit_model_bank(
        train,
        qrf_params=qrf_params,
        min_rows=min_rows,
        on_error=on_error,
        learner=learner,
    )
    pred = predict_temperature(bank, test, compare=True, quantiles=quantiles, learner=learner)
    pred.insert(0, label_col, label)
    return pred


def _run_rounds(
    rounds: Iterable[Tuple[Hashable, pd.DataFrame, pd.DataFrame]],
    n_rounds: int,
    *,
    label_col: str,
    n_jobs: int,
    show_progress: bool,
    desc: str,
    **round_kwargs,
) -> pd.DataFrame:
    t0 = time.time()
    if show_progress:
        rounds = tqdm(rounds, total=n_rounds, desc=desc, unit="round")
    results: List[pd.DataFrame] = Parallel(n_jobs=n_jobs)(
        delayed(_fit_predict_round)(label, label_col, train, test, **round_kwargs)
        for label, train, test in rounds
    )
    if show_progress:
        tqdm.write(f"Done. {n_rounds} rounds in {time.time() - t0:.1f}s.")

    non_empty = [r for r in results if len(r)]
    if non_empty:
        return pd.concat(non_empty, axis=0, ignore_index=True)
    if results:
        return results[0]
    return pd.DataFrame(columns=[label_col])


def _score(
    predictions: pd.DataFrame,
    *,
    gof_by: Union[str, Sequence[str]],
    quantiles: Optional[Sequence[float]],
    fn: Optional[GofFunction],
) -> pd.DataFrame:
    return gof_table(predictions, by=gof_by, sim_col=_sim_column(quantiles), fn=fn)


# ---------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------


def kfold_validate(
    data: pd.DataFrame,
    *,
    k: int = 10,
    by: GroupKey = "id",
    gof_by: Union[str, Sequence[str]] = "id",
    qrf_params: Optional[Dict] = None,
    quantiles: Optional[Sequence[float]] = None,
    min_rows: int = MIN_STRATUM_ROWS,
    on_error: str = "isolate",
    fn: Optional[GofFunction] = None,
    seed: Optional[int] = None,
    n_jobs: int = 1,
    show_progress: bool = False,
    learner=None,
    save_table_path: Optional[str] = None,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Grouped k-fold validation, trained on one fold and tested on the rest.

    Parameters
    ----------
    data :
        Training table (``id, time, year, start, end, temperature``,
        ``ecoregion`` and predictors).
    k :
        Number of folds the distinct groups are dealt into.
    by :
        Grouping key: a column name or a sequence aligned with *data*.
    gof_by :
        Column(s) the out-of-sample predictions are scored by.
    qrf_params, quantiles, min_rows, on_error, learner :
        Passed to :func:`fit_model_bank` / :func:`predict_temperature`.
        With explicit ``quantiles`` the 0.5 column (or the first one) is
        scored.
    fn :
        Statistic function for :func:`gof_table`.
    seed :
        Seed of the fold assignment.
    n_jobs :
        Parallel rounds (``joblib``); ``-1`` uses every core.
    show_progress :
        Progress bar over rounds.
    save_table_path :
        Optional path for the GOF table (``.csv``/``.parquet``/``.feather``).

    Returns
    -------
    gof, predictions
        Per-entity statistics and the pooled predictions (with a ``fold``
        column identifying the training fold).
    """
    clean, labels = _prepare(data, by)
    splits = list(kfold_splits(clean, k=k, by=labels, seed=seed))
    if not splits:
        raise ValueError("No labelled groups to validate on.")

    rounds = ((fold, clean.loc[tr].copy(), clean.loc[te].copy()) for fold, tr, te in splits)
    predictions = _run_rounds(
        rounds,
        len(splits),
        label_col="fold",
        n_jobs=n_jobs,
        show_progress=show_progress,
        desc="k-fold",
        qrf_params=qrf_params,
        quantiles=quantiles,
        min_rows=min_rows,
        on_error=on_error,
        learner=learner,
    )
    gof = _score(predictions, gof_by=gof_by, quantiles=quantiles, fn=fn)
    save_table(gof, save_table_path)
    return gof, predictions


def leave_one_out_validate(
    data: pd.DataFrame,
    *,
    by: GroupKey = "year",
    gof_by: Union[str, Sequence[str]] = "id",
    qrf_params: Optional[Dict] = None,
    quantiles: Optional[Sequence[float]] = None,
    min_rows: int = MIN_STRATUM_ROWS,
    on_error: str = "isolate",
    fn: Optional[GofFunction] = None,
    n_jobs: int = 1,
    show_progress: bool = False,
    learner=None,
    save_table_path: Optional[str] = None,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Leave-one-category-out validation.

    For each distinct value of ``by`` (a year, a spatial cell from
    :func:`tempestpy.table.spatial_cells`, ...) the models are trained on
    every other category and evaluated on the held-out one. Predictions
    carry a ``holdout`` column. Other parameters as in :func:`kfold_validate`.
    """
    clean, labels = _prepare(data, by)
    categories = list(pd.unique(labels.dropna()))
    if not categories:
        raise ValueError("No labelled categories to leave out.")
    labelled = labels.notna()

    rounds = (
        (cat, clean.loc[labelled & (labels != cat)].copy(), clean.loc[labels == cat].copy())
        for cat in categories
    )
    predictions = _run_rounds(
        rounds,
        len(categories),
        label_col="holdout",
        n_jobs=n_jobs,
        show_progress=show_progress,
        desc="leave-one-out",
        qrf_params=qrf_params,
        quantiles=quantiles,
        min_rows=min_rows,
        on_error=on_error,
        learner=learner,
    )
    gof = _score(predictions, gof_by=gof_by, quantiles=quantiles, fn=fn)
    save_table(gof, save_table_path)
    return gof, predictions


def density_validate(
    data: pd.DataFrame,
    *,
    fractions: Sequence[float],
    runs: int = 10,
    k: int = 10,
    by: GroupKey = "id",
    gof_by: Union[str, Sequence[str]] = "id",
    summary: Union[str, Callable] = "median",
    qrf_params: Optional[Dict] = None,
    quantiles: Optional[Sequence[float]] = None,
    min_rows: int = MIN_STRATUM_ROWS,
    on_error: str = "isolate",
    fn: Optional[GofFunction] = None,
    seed: Optional[int] = None,
    n_jobs: int = 1,
    show_progress: bool = False,
    learner=None,
    save_table_path: Optional[str] = None,
) -> pd.DataFrame:
    """
    Accuracy as a function of gauge density.

    For every fraction and run, ``ceil(fraction * n_entities)`` distinct
    entities (values of ``by``, at least one) are drawn without regard to
    their location, :func:`kfold_validate` is run on their rows, and the
    per-entity GOF table is reduced with ``summary`` (``"median"`` by
    default; any pandas reduction name or a callable on a 1-D array).

    Returns
    -------
    DataFrame
        Columns ``fraction, run, n_entities`` and one column per statistic.
    """
    fractions = [float(f) for f in fractions]
    if not fractions:
        raise ValueError("fractions must contain at least one value.")
    bad = [f for f in fractions if not 0.0 < f <= 1.0]
    if bad:
        raise ValueError(f"fractions must lie in (0, 1], got {bad}.")
    if int(runs) < 1:
        raise ValueError("runs must be a positive integer.")

    clean, labels = _prepare(data, by)
    entities = np.asarray(pd.unique(labels.dropna()), dtype=object)
    if len(entities) == 0:
        raise ValueError("No labelled entities to subsample.")
    by_cols = [gof_by] if isinstance(gof_by, str) else list(gof_by)
    rng = np.random.default_rng(seed)

    rows: List[Dict] = []
    for frac in fractions:
        n_take = min(len(entities), max(1, math.ceil(frac * len(entities))))
        for run in range(int(runs)):
            chosen = rng.choice(entities, size=n_take, replace=False)
            mask = labels.isin(chosen)
            gof, _ = kfold_validate(
                clean.loc[mask],
                k=k,
                by=labels.loc[mask],
                gof_by=gof_by,
                qrf_params=qrf_params,
                quantiles=quantiles,
                min_rows=min_rows,
                on_error=on_error,
                fn=fn,
                seed=int(rng.integers(0, 2**31 - 1)),
                n_jobs=n_jobs,
                learner=learner,
            )
            stat_cols = [c for c in gof.columns if c not in by_cols and c != "n"]
            stats = gof[stat_cols].astype(float)
            if callable(summary):
                reduced = {c: float(summary(stats[c].dropna().to_numpy())) for c in stat_cols}
            else:
                reduced = stats.agg(summary).to_dict()
            rows.append({"fraction": frac, "run": run, "n_entities": int(n_take), **reduced})
            if show_progress:
                tqdm.write(
                    f"fraction={frac:.2f} run={run}: {n_take} entities, "
                    f"{len(gof)} scored"
                )

    out = pd.DataFrame(rows)
    save_table(out, save_table_path)
    return out


__all__ = [
    "assign_folds",
    "kfold_splits",
    "kfold_validate",
    "leave_one_out_validate",
    "density_validate",
]
