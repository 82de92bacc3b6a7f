# src/tempestpy/utils.py
# SPDX-License-Identifier: MIT
"""Small I/O helpers and the package warning policy."""

from __future__ import annotations

import json
import os
import warnings
from typing import Optional

import pandas as pd


# ---------------------------------------------------------------------
# Warning policy (silence harmless warnings by default)
# ---------------------------------------------------------------------


def set_warning_policy(silence: bool = True) -> None:
    """
    Configure a conservative warning policy for the package.

    Parameters
    ----------
    silence : bool
        If ``True`` (default), silence pandas / scikit-learn ``FutureWarning``
        noise and sklearn's ``UndefinedMetricWarning``. Runtime warnings
        emitted by tempestpy itself (isolated stratum failures, retrieval
        failures) are left untouched.
    """
    warnings.resetwarnings()
    if silence:
        warnings.filterwarnings("ignore", category=FutureWarning)
        warnings.filterwarnings(
            "ignore",
            category=DeprecationWarning,
            module=r"sklearn\.utils\.validation",
        )
        from sklearn.exceptions import UndefinedMetricWarning

        warnings.filterwarnings("ignore", category=UndefinedMetricWarning)


set_warning_policy(True)


# ---------------------------------------------------------------------
# Table I/O
# ---------------------------------------------------------------------


def _ensure_parent_dir(path: Optional[str]) -> None:
    """Create the parent directory for *path* if needed (no-op on None)."""
    if not path:
        return
    d = os.path.dirname(str(path)) or "."
    os.makedirs(d, exist_ok=True)


def read_table(path: str, **kwargs) -> pd.DataFrame:
    """
    Read an observation table from ``.csv``, ``.parquet`` or ``.feather``.

    CSV files keep ``id`` and ``time`` as strings so that gauge numbers with
    leading zeros and month codes such as ``"05"`` survive the round trip.
    """
    ext = os.path.splitext(str(path))[1].lower()
    if ext == ".csv":
        dtype = kwargs.pop("dtype", {"id": str, "time": str})
        return pd.read_csv(path, dtype=dtype, **kwargs)
    if ext == ".parquet":
        return pd.read_parquet(path, **kwargs)
    if ext == ".feather":
        return pd.read_feather(path, **kwargs)
    raise ValueError(f"Unsupported extension: {ext}")


def save_table(
    df: pd.DataFrame,
    path: Optional[str],
    *,
    parquet_compression: str = "snappy",
) -> Optional[str]:
    """Write *df* to *path* (format from the extension). Returns the path."""
    if path is None:
        return None
    _ensure_parent_dir(path)
    ext = os.path.splitext(str(path))[1].lower()
    if ext == ".csv":
        df.to_csv(path, index=False)
    elif ext == ".parquet":
        df.to_parquet(path, index=False, compression=parquet_compression)
    elif ext == ".feather":
        df.reset_index(drop=True).to_feather(path)
    else:
        raise ValueError(f"Unsupported extension: {ext}")
    return path


def save_json(obj: dict, path: Optional[str]) -> Optional[str]:
    """Persist a dictionary as a UTF-8 JSON file with indentation."""
    if path is None:
        return None
    _ensure_parent_dir(path)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, ensure_ascii=False, indent=2)
    return path


__all__ = ["set_warning_policy", "read_table", "save_table", "save_json"]
