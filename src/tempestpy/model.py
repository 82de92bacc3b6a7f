# src/tempestpy/model.py
# SPDX-License-Identifier: MIT
"""
Per-stratum quantile regression forests.

:func:`fit_model_bank` trains one independent quantile regression forest per
stratum (calendar month by default) and returns a :class:`ModelBank`, an
immutable mapping from canonical stratum key to fitted model. Strata with
too few usable rows, and strata where the learner failed under the
``"isolate"`` policy, map to ``None``; :func:`tempestpy.predict.predict_temperature`
emits no rows for them.

The bank also records the predictor contract (ordered predictor names and
the category levels of categorical predictors) so that inference tables can
be checked against the training table.

The derived ``urban`` flag (``builtup >= 0.1``, see
:func:`tempestpy.table.classify_urban`) is a reporting column and never a
predictor: it duplicates the ``builtup`` predictor it is computed from.

Persistence follows the usual split: the bank itself as a joblib artifact,
plus an optional human-readable JSON metadata file (:class:`ModelBankMeta`).
"""

from __future__ import annotations

import json
import warnings
from dataclasses import asdict, dataclass, field, fields
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

import pandas as pd
from joblib import dump, load
from tqdm.auto import tqdm

from .errors import StratumFitError
from .learner import QuantileForestLearner
from .table import (
    RESPONSE_COLUMN,
    TRAIN_REQUIRED,
    canonical_stratum,
    encode_predictors,
    learn_categories,
    predictor_columns,
    sanitize,
    split_strata,
    validate_columns,
)
from .utils import _ensure_parent_dir, save_json

# quantregForest settings of the published model (ntree=3000, mtry=4, nthreads=1)
DEFAULT_QRF_PARAMS: Dict = dict(
    n_estimators=3000,
    max_features=4,
    n_jobs=1,
    random_state=42,
)

# Strata with fewer usable rows than this get no model (i.e. <= 10 rows).
MIN_STRATUM_ROWS: int = 11

_ON_ERROR = ("isolate", "raise")


# ---------------------------------------------------------------------
# Model bank
# ---------------------------------------------------------------------


@dataclass(frozen=True, eq=False)
class ModelBank:
    """Fitted models keyed by canonical stratum.

    Attributes
    ----------
    models :
        Stratum key -> fitted model, or ``None`` when the stratum had fewer
        than ``min_rows`` usable rows or its fit failed.
    predictors :
        Ordered predictor names seen at training time.
    categories :
        Category levels of each categorical predictor.
    n_rows :
        Usable (post-sanitization) rows per stratum.
    failures :
        Stratum key -> learner error message, for isolated failures.
    qrf_params :
        Parameters passed to the learner.
    min_rows :
        Minimum usable rows required to fit a stratum.
    """

    models: Mapping[str, Optional[object]]
    predictors: Tuple[str, ...]
    categories: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    n_rows: Mapping[str, int] = field(default_factory=dict)
    failures: Mapping[str, str] = field(default_factory=dict)
    qrf_params: Mapping = field(default_factory=dict)
    min_rows: int = MIN_STRATUM_ROWS

    def __post_init__(self) -> None:
        object.__setattr__(self, "models", MappingProxyType(dict(self.models)))
        object.__setattr__(self, "predictors", tuple(self.predictors))
        object.__setattr__(
            self,
            "categories",
            MappingProxyType({k: tuple(v) for k, v in dict(self.categories).items()}),
        )
        object.__setattr__(self, "n_rows", MappingProxyType(dict(self.n_rows)))
        object.__setattr__(self, "failures", MappingProxyType(dict(self.failures)))
        object.__setattr__(self, "qrf_params", MappingProxyType(dict(self.qrf_params)))

    # mappingproxy objects do not pickle; store plain dicts instead
    def __getstate__(self) -> dict:
        state = {}
        for f in fields(self):
            value = getattr(self, f.name)
            state[f.name] = dict(value) if isinstance(value, MappingProxyType) else value
        return state

    def __setstate__(self, state: dict) -> None:
        for name, value in state.items():
            object.__setattr__(self, name, value)
        self.__post_init__()

    def __contains__(self, key) -> bool:
        return canonical_stratum(key) in self.models

    def __len__(self) -> int:
        return len(self.models)

    def get(self, key) -> Optional[object]:
        """Model for *key* (any form of the stratum key), or ``None``."""
        return self.models.get(canonical_stratum(key))

    @property
    def strata(self) -> List[str]:
        return list(self.models)

    @property
    def fitted_strata(self) -> List[str]:
        return [k for k, m in self.models.items() if m is not None]

    def summary(self) -> pd.DataFrame:
        """One row per stratum: usable rows, whether fitted, failure message."""
        return pd.DataFrame(
            {
                "stratum": self.strata,
                "n_rows": [int(self.n_rows.get(k, 0)) for k in self.strata],
                "fitted": [self.models[k] is not None for k in self.strata],
                "failure": [self.failures.get(k) for k in self.strata],
            }
        )

    def meta(self) -> "ModelBankMeta":
        return ModelBankMeta(
            strata=self.strata,
            fitted_strata=self.fitted_strata,
            predictors=list(self.predictors),
            categories={k: list(v) for k, v in self.categories.items()},
            n_rows={k: int(v) for k, v in self.n_rows.items()},
            failures=dict(self.failures),
            qrf_params=_jsonable(self.qrf_params),
            min_rows=int(self.min_rows),
            n_train_rows=int(sum(self.n_rows.values())),
        )


@dataclass(frozen=True)
class ModelBankMeta:
    """JSON-friendly description of a :class:`ModelBank`."""

    strata: List[str]
    fitted_strata: List[str]
    predictors: List[str]
    categories: Dict[str, List[str]]
    n_rows: Dict[str, int]
    failures: Dict[str, str]
    qrf_params: Dict
    min_rows: int
    n_train_rows: int

    @staticmethod
    def load(path: str) -> "ModelBankMeta":
        """Load metadata from a JSON file."""
        with open(path, "r", encoding="utf-8") as f:
            d = json.load(f)
        return ModelBankMeta(**d)

    def save(self, path: str) -> None:
        """Save metadata to a JSON file."""
        save_json(asdict(self), path)


def _jsonable(params: Mapping) -> Dict:
    return {
        str(k): v if isinstance(v, (int, float, str, bool, type(None))) else repr(v)
        for k, v in params.items()
    }


# ---------------------------------------------------------------------
# Training
# ---------------------------------------------------------------------


def fit_model_bank(
    data: pd.DataFrame,
    *,
    qrf_params: Optional[Dict] = None,
    min_rows: int = MIN_STRATUM_ROWS,
    on_error: str = "isolate",
    learner=None,
    show_progress: bool = False,
) -> ModelBank:
    """Train one quantile regression forest per stratum.

    Parameters
    ----------
    data :
        Training table with ``id, time, year, start, end, temperature`` plus
        predictor columns (numeric, boolean or categorical; names are free
        but must be reused at prediction time).
    qrf_params :
        Passed through to the learner. Defaults to :data:`DEFAULT_QRF_PARAMS`.
    min_rows :
        Strata with fewer usable rows get ``None`` instead of a model. The
        default (11) means a stratum needs more than 10 rows.
    on_error : {"isolate", "raise"}
        What to do when the learner fails on a stratum. ``"isolate"`` records
        ``None`` plus the message in :attr:`ModelBank.failures` and emits a
        ``RuntimeWarning``; ``"raise"`` raises :class:`StratumFitError`.
    learner :
        Object with ``fit(X, y, params)`` / ``predict(model, X, quantiles)``.
        Defaults to :class:`QuantileForestLearner`.
    show_progress :
        Show a progress bar over strata.

    Returns
    -------
    ModelBank
    """
    if on_error not in _ON_ERROR:
        raise ValueError(f"on_error must be one of {_ON_ERROR}, got {on_error!r}.")
    validate_columns(data, TRAIN_REQUIRED, what="training table")

    params = dict(DEFAULT_QRF_PARAMS if qrf_params is None else qrf_params)
    learner = learner if learner is not None else QuantileForestLearner()

    clean = sanitize(data)
    validate_columns(clean, TRAIN_REQUIRED, what="training table (after dropping empty columns)")
    predictors = predictor_columns(clean)
    categories = learn_categories(clean, predictors)

    blocks = split_strata(clean)
    # strata emptied by sanitization still get an explicit ``None`` entry
    seen = [canonical_stratum(v) for v in pd.unique(data["time"].dropna())]
    keys = list(dict.fromkeys(seen + list(blocks)))

    models: Dict[str, Optional[object]] = {}
    n_rows: Dict[str, int] = {}
    failures: Dict[str, str] = {}

    iterator = tqdm(keys, desc="Fitting strata", unit="stratum") if show_progress else keys
    for key in iterator:
        block = blocks.get(key)
        n = 0 if block is None else int(len(block))
        n_rows[key] = n
        if n < min_rows:
            models[key] = None
            continue
        try:
            X = encode_predictors(block, predictors, categories)
            y = block[RESPONSE_COLUMN].to_numpy(dtype=float)
            models[key] = learner.fit(X, y, params)
        except Exception as e:
            if on_error == "raise":
                raise StratumFitError(key, f"{type(e).__name__}: {e}") from e
            warnings.warn(
                f"Stratum {key!r} left without a model: {type(e).__name__}: {e}",
                RuntimeWarning,
                stacklevel=2,
            )
            models[key] = None
            failures[key] = f"{type(e).__name__}: {e}"

    if show_progress:
        tqdm.write(
            f"Fitted {sum(m is not None for m in models.values())}/{len(models)} strata "
            f"on {sum(n_rows.values()):,} rows."
        )

    return ModelBank(
        models=models,
        predictors=predictors,
        categories=categories,
        n_rows=n_rows,
        failures=failures,
        qrf_params=params,
        min_rows=min_rows,
    )


# ---------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------


def save_model_bank(
    bank: ModelBank,
    path: str,
    meta_path: Optional[str] = None,
) -> str:
    """Persist *bank* with joblib and, optionally, its JSON metadata."""
    _ensure_parent_dir(path)
    dump(bank, path)
    if meta_path is not None:
        bank.meta().save(meta_path)
    return path


def load_model_bank(path: str) -> ModelBank:
    """Load a bank written by :func:`save_model_bank`."""
    bank = load(path)
    if not isinstance(bank, ModelBank):
        raise TypeError(f"{path} does not contain a ModelBank (got {type(bank).__name__}).")
    return bank


__all__ = [
    "DEFAULT_QRF_PARAMS",
    "MIN_STRATUM_ROWS",
    "ModelBank",
    "ModelBankMeta",
    "fit_model_bank",
    "save_model_bank",
    "load_model_bank",
]
