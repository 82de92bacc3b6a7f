# src/tempestpy/table.py
# SPDX-License-Identifier: MIT
"""
Observation-table conventions and cleaning stages.

An observation table is a :class:`pandas.DataFrame` with one row per gauge
and month. Columns fall into four groups:

- identifier columns ``id, start, end, time, year``;
- reporting columns ``ecoregion`` and ``urban`` (kept for summaries, never
  used as predictors);
- the response ``temperature``;
- every other column, which is a predictor. Predictor names are free-form
  but must be identical between a training table and every table later
  passed to the resulting model bank.

The stages here are pure functions: they never modify their input.
"""

from __future__ import annotations

import re
from typing import Dict, Hashable, Iterable, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from pandas.api.types import is_bool_dtype, is_numeric_dtype
from tqdm.auto import tqdm

from .errors import MissingColumnsError

ID_COLUMNS: tuple = ("id", "start", "end", "time", "year")
REPORT_COLUMNS: tuple = ("ecoregion", "urban")
RESPONSE_COLUMN: str = "temperature"

TRAIN_REQUIRED: tuple = ("id", "time", "year", "start", "end", RESPONSE_COLUMN)
OUTPUT_ID_COLUMNS: tuple = ("id", "ecoregion", "year", "time", "start", "end")

_INTEGER_LIKE = re.compile(r"^[+-]?\d+(\.0*)?$")


# ---------------------------------------------------------------------
# Column validation
# ---------------------------------------------------------------------


def validate_columns(
    table: pd.DataFrame,
    required: Iterable[str],
    *,
    what: str = "table",
) -> None:
    """Raise :class:`MissingColumnsError` if any *required* column is absent."""
    missing = [c for c in required if c not in table.columns]
    if missing:
        raise MissingColumnsError(missing, what=what)


def predictor_columns(
    table: pd.DataFrame,
    exclude: Sequence[str] = (),
) -> List[str]:
    """Return the predictor columns of *table*, in table order."""
    reserved = set(ID_COLUMNS) | set(REPORT_COLUMNS) | {RESPONSE_COLUMN} | set(exclude)
    return [c for c in table.columns if c not in reserved]


# ---------------------------------------------------------------------
# TableSanitizer
# ---------------------------------------------------------------------


def sanitize(table: pd.DataFrame) -> pd.DataFrame:
    """
    Drop entirely-missing columns, then rows with any remaining missing value.

    Optional predictors that are absent for a whole dataset therefore vanish
    instead of wiping out every row. The result may be empty; that is not an
    error. A zero-row table is returned unchanged, since no column can be
    judged "entirely missing" without rows.

    The operation is idempotent: ``sanitize(sanitize(t))`` equals
    ``sanitize(t)``.
    """
    if len(table) == 0:
        return table.copy()
    keep = table.columns[table.notna().any(axis=0)]
    return table.loc[:, keep].dropna(axis=0, how="any")


# ---------------------------------------------------------------------
# StratumSplitter
# ---------------------------------------------------------------------


def canonical_stratum(value: Hashable) -> str:
    """
    Canonical string form of a stratum key.

    Integer-like keys become zero-padded two-digit strings, so ``5``,
    ``"5"``, ``5.0`` and ``"05"`` all map to ``"05"``. Other values are
    converted with ``str`` and stripped (e.g. ``"DJF"`` for seasons).
    """
    if isinstance(value, (bool, np.bool_)):
        return str(value)
    if isinstance(value, (int, np.integer)):
        return f"{int(value):02d}"
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return f"{int(value):02d}"
    text = str(value).strip()
    if _INTEGER_LIKE.match(text):
        return f"{int(float(text)):02d}"
    return text


def split_strata(
    table: pd.DataFrame,
    time_col: str = "time",
) -> Dict[str, pd.DataFrame]:
    """
    Partition *table* into disjoint strata by the canonical ``time`` key.

    Returns an insertion-ordered dict (order of first appearance). The
    ``time`` column of each block holds the canonical key.
    """
    validate_columns(table, [time_col])
    if len(table) == 0:
        return {}
    keyed = table.assign(**{time_col: table[time_col].map(canonical_stratum)})
    return {
        str(key): block
        for key, block in keyed.groupby(time_col, sort=False)
    }


# ---------------------------------------------------------------------
# Predictor encoding
# ---------------------------------------------------------------------


def _is_categorical(s: pd.Series) -> bool:
    return not is_numeric_dtype(s) and not is_bool_dtype(s)


def learn_categories(
    table: pd.DataFrame,
    predictors: Sequence[str],
) -> Dict[str, List[str]]:
    """Sorted category levels of every non-numeric predictor in *table*."""
    return {
        c: sorted(table[c].astype(str).unique().tolist())
        for c in predictors
        if _is_categorical(table[c])
    }


def encode_predictors(
    table: pd.DataFrame,
    predictors: Sequence[str],
    categories: Optional[Mapping[str, Sequence[str]]] = None,
) -> np.ndarray:
    """
    Build the dense float64 predictor matrix for the learner.

    Categorical predictors are replaced by their code among the levels seen
    at training time (``-1`` for an unseen level); booleans become 0/1.
    """
    categories = categories or {}
    if len(table) == 0:
        return np.empty((0, len(predictors)), dtype=float)
    columns = []
    for c in predictors:
        s = table[c]
        if c in categories:
            codes = pd.Index(list(categories[c])).get_indexer(s.astype(str))
            columns.append(codes.astype(float))
        elif is_bool_dtype(s):
            columns.append(s.to_numpy(dtype=float))
        else:
            columns.append(pd.to_numeric(s, errors="raise").to_numpy(dtype=float))
    return np.column_stack(columns) if columns else np.empty((len(table), 0))


# ---------------------------------------------------------------------
# Sub-population helpers
# ---------------------------------------------------------------------


def classify_urban(
    table: pd.DataFrame,
    threshold: float = 0.1,
    *,
    isolate: bool = False,
    non_urban: bool = False,
    builtup_col: str = "builtup",
    verbose: bool = False,
) -> pd.DataFrame:
    """
    Flag urban gauges (``builtup >= threshold``) in a new ``urban`` column.

    With ``isolate=True`` only the urban rows are returned, or only the
    non-urban rows when ``non_urban=True`` as well.
    """
    validate_columns(table, [builtup_col])
    out = table.copy()
    urb = out[builtup_col] >= threshold
    out["urban"] = urb
    if verbose:
        tqdm.write(
            f"Urban gauges: {out.loc[urb, 'id'].nunique()}  "
            f"non-urban gauges: {out.loc[~urb, 'id'].nunique()}"
        )
    if isolate:
        return out[~urb] if non_urban else out[urb]
    return out


def spatial_cells(
    table: pd.DataFrame,
    *,
    lat_col: str = "lat",
    lon_col: str = "lon",
    size: float = 1.0,
) -> pd.Series:
    """
    Label each row with the ``size``-degree grid cell it falls in.

    Labels look like ``"35_-121"`` (south-west corner of the cell) and can be
    passed as ``by=`` to :func:`tempestpy.validation.leave_one_out_validate`.
    """
    if size <= 0:
        raise ValueError("size must be positive.")
    validate_columns(table, [lat_col, lon_col])
    lat0 = np.floor(table[lat_col].astype(float) / size) * size
    lon0 = np.floor(table[lon_col].astype(float) / size) * size
    labels = [
        np.nan if (np.isnan(a) or np.isnan(b)) else f"{a:g}_{b:g}"
        for a, b in zip(lat0, lon0)
    ]
    return pd.Series(labels, index=table.index, name="cell", dtype=object)


__all__ = [
    "ID_COLUMNS",
    "REPORT_COLUMNS",
    "RESPONSE_COLUMN",
    "TRAIN_REQUIRED",
    "OUTPUT_ID_COLUMNS",
    "validate_columns",
    "predictor_columns",
    "sanitize",
    "canonical_stratum",
    "split_strata",
    "learn_categories",
    "encode_predictors",
    "classify_urban",
    "spatial_cells",
]
