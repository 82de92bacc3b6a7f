# tests/test_predict.py
import warnings

import numpy as np
import pytest

from tempestpy.errors import ColumnContractError, MissingColumnsError, MissingResponseError
from tempestpy.metrics import rmse
from tempestpy.model import fit_model_bank
from tempestpy.predict import (
    prediction_columns,
    predict_temperature,
    predict_temperature_with_report,
)

ID_COLS = ["id", "ecoregion", "year", "time", "start", "end"]


@pytest.fixture
def bank(table, qrf_params):
    return fit_model_bank(table, qrf_params=qrf_params)


# ----------------------------------------------------------------------
# Output shapes
# ----------------------------------------------------------------------


def test_bare_output_columns(bank, table):
    pred = predict_temperature(bank, table)
    assert list(pred.columns) == ID_COLS + ["temperature"]
    assert len(pred) == len(table)
    assert np.isfinite(pred["temperature"]).all()


def test_bare_output_without_response(bank, table):
    pred = predict_temperature(bank, table.drop(columns="temperature"))
    assert list(pred.columns) == ID_COLS + ["temperature"]


def test_compare_output_columns(bank, table):
    pred = predict_temperature(bank, table, compare=True)
    assert list(pred.columns) == ID_COLS + ["Actual", "Modeled"]
    merged = pred.merge(table, on=["id", "year", "time"])
    np.testing.assert_allclose(merged["Actual"], merged["temperature"])


def test_preserve_output_columns(bank, table):
    pred = predict_temperature(bank, table, preserve=True)
    expected = [("Actual" if c == "temperature" else c) for c in table.columns]
    assert list(pred.columns) == expected + ["Modeled"]

    no_tmp = table.drop(columns="temperature")
    pred = predict_temperature(bank, no_tmp, preserve=True)
    assert list(pred.columns) == list(no_tmp.columns) + ["temperature"]


def test_preserve_takes_precedence_over_compare(bank, table):
    pred = predict_temperature(bank, table, preserve=True, compare=True)
    assert "lst" in pred.columns
    assert "Actual" in pred.columns and "Modeled" in pred.columns


def test_preserve_does_not_require_identifier_columns(table, median_learner):
    bank = fit_model_bank(table, learner=median_learner)
    grid = table.drop(columns=["ecoregion", "start", "end", "temperature"])
    pred = predict_temperature(bank, grid, preserve=True, learner=median_learner)
    assert len(pred) == len(grid)
    with pytest.raises(MissingColumnsError):
        predict_temperature(bank, grid, learner=median_learner)


# ----------------------------------------------------------------------
# Quantile column naming
# ----------------------------------------------------------------------


def test_explicit_quantiles_are_labelled_in_order(bank, table):
    pred = predict_temperature(bank, table, compare=True, quantiles=[0.1, 0.5, 0.9])
    assert list(pred.columns[-3:]) == ["Modeled_0.1", "Modeled_0.5", "Modeled_0.9"]
    assert "Modeled" not in pred.columns
    assert (pred["Modeled_0.1"] <= pred["Modeled_0.5"]).all()
    assert (pred["Modeled_0.5"] <= pred["Modeled_0.9"]).all()


def test_explicit_single_median_is_labelled_but_default_is_not(bank, table):
    default = predict_temperature(bank, table)
    explicit = predict_temperature(bank, table, quantiles=[0.5])
    assert default.columns[-1] == "temperature"
    assert explicit.columns[-1] == "temperature_0.5"
    np.testing.assert_allclose(default["temperature"], explicit["temperature_0.5"])


def test_prediction_columns_rule():
    assert prediction_columns("Modeled", None) == ["Modeled"]
    assert prediction_columns("Modeled", [0.5]) == ["Modeled_0.5"]
    assert prediction_columns("temperature", [0.025, 0.975, 1]) == [
        "temperature_0.025",
        "temperature_0.975",
        "temperature_1",
    ]


@pytest.mark.parametrize("quantiles", [[], [1.5], [-0.1, 0.5]])
def test_invalid_quantiles_rejected(bank, table, quantiles):
    with pytest.raises(ValueError):
        predict_temperature(bank, table, quantiles=quantiles)


# ----------------------------------------------------------------------
# Preconditions and column contract
# ----------------------------------------------------------------------


def test_compare_without_response_raises(bank, table):
    with pytest.raises(MissingResponseError):
        predict_temperature(bank, table.drop(columns="temperature"), compare=True)


def test_compare_with_all_missing_response_raises(bank, table):
    df = table.assign(temperature=np.nan)
    with pytest.raises(MissingResponseError):
        predict_temperature(bank, df, compare=True)


def test_missing_predictor_violates_contract(bank, table):
    with pytest.raises(ColumnContractError) as exc:
        predict_temperature(bank, table.drop(columns="humidity"))
    assert exc.value.missing == ["humidity"]


def test_extra_predictor_violates_contract(bank, table):
    with pytest.raises(ColumnContractError) as exc:
        predict_temperature(bank, table.assign(ndvi=0.3))
    assert exc.value.unexpected == ["ndvi"]


def test_predictor_emptied_by_sanitize_violates_contract(bank, table):
    with pytest.raises(ColumnContractError):
        predict_temperature(bank, table.assign(elevation=np.nan))


def test_contract_checked_even_without_matching_strata(table, qrf_params):
    bank = fit_model_bank(table[table["time"] == "01"], qrf_params=qrf_params)
    other = table[table["time"] == "07"].drop(columns="lst")
    with pytest.raises(ColumnContractError):
        predict_temperature(bank, other)


def test_predictor_order_does_not_matter(bank, table):
    shuffled = table[list(reversed(table.columns))]
    a = predict_temperature(bank, table)
    b = predict_temperature(bank, shuffled)
    np.testing.assert_allclose(a["temperature"], b["temperature"])


# ----------------------------------------------------------------------
# Dropped rows
# ----------------------------------------------------------------------


def test_unseen_strata_are_dropped_and_reported(table, qrf_params):
    bank = fit_model_bank(table[table["time"].isin(["01", "02"])], qrf_params=qrf_params)
    df = table.copy()
    df.loc[df.index[0], "lst"] = np.nan  # one January row lost to NA

    pred, report = predict_temperature_with_report(bank, df, compare=True)

    assert set(pred["time"]) == {"01", "02"}
    assert len(pred) == 99
    assert report.n_input == 600
    assert report.n_sanitized == 599
    assert report.dropped_na == 1
    assert report.n_predicted == 99
    assert report.dropped_strata == {f"{m:02d}": 50 for m in range(3, 13)}
    assert report.dropped_rows == 501


def test_no_matching_strata_gives_empty_frame_with_columns(table, qrf_params):
    bank = fit_model_bank(table[table["time"] == "01"], qrf_params=qrf_params)
    pred = predict_temperature(
        bank, table[table["time"] == "05"], compare=True, quantiles=[0.25, 0.75]
    )
    assert pred.empty
    assert list(pred.columns) == ID_COLS + ["Actual", "Modeled_0.25", "Modeled_0.75"]


def test_integer_months_match_string_strata(bank, table):
    df = table.assign(time=table["time"].astype(int))
    pred = predict_temperature(bank, df)
    assert len(pred) == len(table)
    assert sorted(pred["time"].unique()) == [f"{m:02d}" for m in range(1, 13)]


# ----------------------------------------------------------------------
# End to end
# ----------------------------------------------------------------------


def test_end_to_end_held_out_rmse(qrf_params, table_factory):
    """Linear response in one predictor: held-out RMSE well under 1 K."""
    train = table_factory(seed=1)
    test = table_factory(seed=2, n_gauges=2, n_years=5)

    bank = fit_model_bank(train, qrf_params=dict(qrf_params, n_estimators=50))
    pred = predict_temperature(bank, test, compare=True)

    assert len(pred) == len(test)
    assert rmse(pred["Actual"], pred["Modeled"]) < 1.0


def test_computed_quantiles_get_short_labels():
    grid = np.linspace(0.05, 0.95, 19)
    names = prediction_columns("Modeled", grid)
    assert names[7:11] == ["Modeled_0.4", "Modeled_0.45", "Modeled_0.5", "Modeled_0.55"]
    assert names[0] == "Modeled_0.05" and names[-1] == "Modeled_0.95"
    assert prediction_columns("Modeled", [0.1 + 0.2]) == ["Modeled_0.3"]


def test_unseen_category_level_predicts_without_warning(table, median_learner):
    df = table.assign(landcover=np.where(table["id"] == "01000", "forest", "crop"))
    bank = fit_model_bank(df, learner=median_learner)
    assert dict(bank.categories) == {"landcover": ("crop", "forest")}

    new = df.assign(landcover="wetland")
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        pred = predict_temperature(bank, new, learner=median_learner)
    assert len(pred) == len(new)
