# tests/test_metrics.py

import numpy as np
import pandas as pd
import pytest

from tempestpy.errors import MissingColumnsError
from tempestpy.metrics import (
    default_gof,
    gof_table,
    interval_coverage,
    kge,
    nse,
    pbias,
    r2,
    regression_metrics,
    rmse,
)


def test_kge_perfect_match_is_one():
    """KGE should be 1.0 for a perfect match."""
    y_true = [1.0, 2.0, 3.0, 4.0]
    y_pred = [1.0, 2.0, 3.0, 4.0]
    val = kge(y_true, y_pred)
    assert val == pytest.approx(1.0, rel=1e-6)


def test_nse_perfect_match_is_one():
    """NSE should be 1.0 for a perfect match."""
    y_true = [0.0, 1.0, 2.0, 3.0]
    y_pred = [0.0, 1.0, 2.0, 3.0]
    val = nse(y_true, y_pred)
    assert val == pytest.approx(1.0, rel=1e-6)


def test_kge_reasonable_for_biased_series():
    """
    KGE should be finite and < 1 when there is bias and correlation < 1.
    We don't test the exact closed form, just that it behaves sensibly.
    """
    y_true = np.arange(1, 11, dtype=float)
    rng = np.random.default_rng(0)
    y_pred = y_true * 1.2 + 0.5 * rng.normal(size=y_true.size)

    val = kge(y_true, y_pred)
    assert np.isfinite(val)
    assert val < 1.0


def test_nse_zero_variance_returns_nan():
    """NSE is undefined (NaN) when variance of y_true is zero."""
    val = nse([5.0, 5.0, 5.0, 5.0], [5.0, 5.0, 5.0, 5.0])
    assert np.isnan(val)


def test_kge_too_few_points_returns_nan():
    """KGE should return NaN when length < 2."""
    assert np.isnan(kge([1.0], [1.0]))


def test_nse_can_be_negative():
    """Predicting worse than the observed mean gives NSE < 0."""
    y_true = [1.0, 2.0, 3.0, 4.0]
    y_pred = [4.0, 3.0, 2.0, 1.0]
    assert nse(y_true, y_pred) < 0.0


def test_rmse_and_pbias_known_values():
    y_true = [10.0, 20.0, 30.0]
    y_pred = [11.0, 21.0, 31.0]
    assert rmse(y_true, y_pred) == pytest.approx(1.0)
    # 100 * 3 / 60
    assert pbias(y_true, y_pred) == pytest.approx(5.0)
    assert pbias(y_true, [9.0, 19.0, 29.0]) == pytest.approx(-5.0)


def test_pbias_zero_sum_returns_nan():
    assert np.isnan(pbias([-1.0, 1.0], [0.0, 0.0]))
    assert np.isnan(pbias([], []))
    assert np.isnan(rmse([], []))


def test_r2_is_squared_correlation_not_nse():
    """A perfectly correlated but biased series keeps R2 = 1 while NSE drops."""
    y_true = np.arange(10, dtype=float)
    y_pred = 2.0 * y_true + 3.0
    assert r2(y_true, y_pred) == pytest.approx(1.0)
    assert nse(y_true, y_pred) < 1.0
    assert r2(y_true, -y_true) == pytest.approx(1.0)


def test_r2_constant_prediction_returns_nan():
    assert np.isnan(r2([1.0, 2.0, 3.0], [2.0, 2.0, 2.0]))


def test_metrics_shape_mismatch_raises():
    """All metrics should fail when shapes do not match."""
    y_true = [1.0, 2.0, 3.0]
    y_pred = [1.0, 2.0]
    for fn in (kge, nse, rmse, pbias, r2, regression_metrics, default_gof):
        with pytest.raises(ValueError):
            fn(y_true, y_pred)


def test_regression_metrics_perfect_match():
    """Perfect match should give MAE=0, RMSE=0, PBIAS=0, R2=1, KGE≈1, NSE≈1."""
    y_true = [1.0, 2.0, 3.0, 4.0, 5.0]
    y_pred = [1.0, 2.0, 3.0, 4.0, 5.0]

    m = regression_metrics(y_true, y_pred)

    assert set(m.keys()) == {"MAE", "RMSE", "R2", "PBIAS", "KGE", "NSE"}
    assert m["MAE"] == pytest.approx(0.0, abs=1e-12)
    assert m["RMSE"] == pytest.approx(0.0, abs=1e-12)
    assert m["PBIAS"] == pytest.approx(0.0, abs=1e-12)
    assert m["R2"] == pytest.approx(1.0, rel=1e-6)
    assert m["KGE"] == pytest.approx(1.0, rel=1e-6)
    assert m["NSE"] == pytest.approx(1.0, rel=1e-6)


def test_regression_metrics_empty_inputs_return_nan():
    """Empty inputs should return all-NaN metrics, not crash."""
    m = regression_metrics([], [])
    for v in m.values():
        assert np.isnan(v)


def test_default_gof_keys():
    m = default_gof([1.0, 2.0, 3.0], [1.1, 2.1, 2.9])
    assert list(m) == ["RMSE", "PBIAS", "R2", "NSE"]


# ----------------------------------------------------------------------
# Per-entity tables
# ----------------------------------------------------------------------


@pytest.fixture
def predictions() -> pd.DataFrame:
    return pd.DataFrame(
        {
            "id": ["b", "b", "b", "a", "a", "a"],
            "ecoregion": ["X", "X", "X", "Y", "Y", "Y"],
            "time": ["01", "02", "03", "01", "02", "03"],
            "Actual": [1.0, 2.0, 3.0, 10.0, 20.0, 30.0],
            "Modeled": [1.0, 2.0, 3.0, 11.0, 21.0, 31.0],
            "Modeled_0.05": [0.5, 1.5, 3.5, 9.0, 19.0, 29.0],
            "Modeled_0.95": [1.5, 2.5, 4.0, 12.0, 22.0, 32.0],
        }
    )


def test_gof_table_per_gauge(predictions):
    gof = gof_table(predictions)

    assert list(gof.columns) == ["id", "n", "RMSE", "PBIAS", "R2", "NSE"]
    assert gof["id"].tolist() == ["a", "b"]
    assert gof["n"].tolist() == [3, 3]

    a = gof.set_index("id").loc["a"]
    assert a["RMSE"] == pytest.approx(1.0)
    assert a["PBIAS"] == pytest.approx(5.0)
    b = gof.set_index("id").loc["b"]
    assert b["RMSE"] == pytest.approx(0.0, abs=1e-12)
    assert b["NSE"] == pytest.approx(1.0)


def test_gof_table_multiple_keys_and_custom_function(predictions):
    gof = gof_table(
        predictions,
        by=["ecoregion", "time"],
        fn=lambda obs, sim: {"bias": float(np.mean(sim - obs))},
    )
    assert list(gof.columns) == ["ecoregion", "time", "n", "bias"]
    assert len(gof) == 6
    assert gof["n"].tolist() == [1] * 6


def test_gof_table_empty_keeps_columns(predictions):
    gof = gof_table(predictions.iloc[0:0])
    assert gof.empty
    assert list(gof.columns) == ["id", "n", "RMSE", "PBIAS", "R2", "NSE"]


def test_gof_table_missing_columns(predictions):
    with pytest.raises(MissingColumnsError):
        gof_table(predictions.drop(columns="Actual"))
    with pytest.raises(MissingColumnsError):
        gof_table(predictions, by="urban")


def test_interval_coverage_overall_and_grouped(predictions):
    cov = interval_coverage(predictions, "Modeled_0.05", "Modeled_0.95")
    # only gauge "b" month "03" (obs 3.0 < lower 3.5) falls outside
    assert cov == pytest.approx(5 / 6)

    by_id = interval_coverage(predictions, "Modeled_0.05", "Modeled_0.95", by="id")
    assert list(by_id.columns) == ["id", "n", "coverage"]
    by_id = by_id.set_index("id")
    assert by_id.loc["a", "coverage"] == pytest.approx(1.0)
    assert by_id.loc["b", "coverage"] == pytest.approx(2 / 3)
    assert by_id.loc["b", "n"] == 3


def test_interval_coverage_empty_is_nan(predictions):
    assert np.isnan(interval_coverage(predictions.iloc[0:0], "Modeled_0.05", "Modeled_0.95"))
