# tests/conftest.py
import numpy as np
import pandas as pd
import pytest

MONTHS = [f"{m:02d}" for m in range(1, 13)]

# Small, fast forests for tests
QRF_PARAMS = dict(n_estimators=30, max_features=4, random_state=0, n_jobs=1)


def make_table(
    months=MONTHS,
    n_gauges: int = 5,
    n_years: int = 10,
    seed: int = 0,
    noise: float = 0.05,
) -> pd.DataFrame:
    """
    Synthetic gauge-month table.

    Columns:
        id, time, year, start, end, ecoregion, lst, humidity, elevation,
        temperature

    The response is a linear function of ``lst`` plus small noise, so a
    correctly wired pipeline predicts it well.
    """
    rng = np.random.default_rng(seed)
    rows = []
    for m in months:
        for g in range(n_gauges):
            for y in range(n_years):
                year = 2000 + y
                lst = rng.uniform(280.0, 285.0)
                rows.append(
                    {
                        "id": f"0{1000 + g}",
                        "time": m,
                        "year": year,
                        "start": f"{year}-{m}-01",
                        "end": f"{year}-{m}-28",
                        "ecoregion": "A" if g % 2 == 0 else "B",
                        "lst": lst,
                        "humidity": rng.uniform(0.0, 1.0),
                        "elevation": rng.uniform(0.0, 2000.0),
                        "temperature": lst - 5.0 + rng.normal(0.0, noise),
                    }
                )
    return pd.DataFrame(rows)


@pytest.fixture
def qrf_params():
    return dict(QRF_PARAMS)


@pytest.fixture
def table() -> pd.DataFrame:
    """12 months x 5 gauges x 10 years = 50 rows per month."""
    return make_table()


class MedianLearner:
    """Deterministic stand-in learner: predicts quantiles of the training y."""

    def fit(self, X, y, params=None):
        return {"y": np.asarray(y, dtype=float), "n_features": X.shape[1]}

    def predict(self, model, X, quantiles):
        qs = np.quantile(model["y"], list(quantiles))
        return np.tile(qs, (X.shape[0], 1))


class FailingLearner(MedianLearner):
    """Fails on any stratum whose mean response exceeds ``threshold``."""

    def __init__(self, threshold: float) -> None:
        self.threshold = threshold

    def fit(self, X, y, params=None):
        if float(np.mean(y)) > self.threshold:
            raise np.linalg.LinAlgError("singular matrix")
        return super().fit(X, y, params)


@pytest.fixture
def table_factory():
    """Builder for tables with non-default shape (same signature as ``make_table``)."""
    return make_table


@pytest.fixture
def median_learner():
    return MedianLearner()


@pytest.fixture
def failing_learner():
    """``failing_learner(threshold=...)`` builds a :class:`FailingLearner`."""
    return FailingLearner
