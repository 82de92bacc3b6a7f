# src/tempestpy/usgs.py
# SPDX-License-Identifier: MIT
"""
Observed monthly water temperature from USGS gauges.

Daily mean water temperature (parameter ``00010``, statistic ``00003``) is
read from the NWIS daily-values web service and averaged per month. The
service reports degrees Celsius; pass ``to_kelvin=True`` to convert.

Retrieval failures are isolated per gauge: the gauge gets a single all-NA
row and a ``RuntimeWarning``, and batch retrieval carries on.
"""

from __future__ import annotations

import warnings
from typing import Optional, Union

import numpy as np
import pandas as pd
import requests
from tqdm.auto import tqdm

from .table import RESPONSE_COLUMN, canonical_stratum, validate_columns

NWIS_DV_URL = "https://waterservices.usgs.gov/nwis/dv/"
TEMPERATURE_PARAMETER = "00010"
DAILY_MEAN_STATISTIC = "00003"
KELVIN_OFFSET = 273.15

DateLike = Union[str, pd.Timestamp]

_COLUMNS = ["id", "year", "time", RESPONSE_COLUMN]


def _date_str(value: DateLike) -> str:
    return pd.to_datetime(value).strftime("%Y-%m-%d")


def _na_result(site_id) -> pd.DataFrame:
    return pd.DataFrame(
        {"id": [str(site_id)], "year": [np.nan], "time": [np.nan], RESPONSE_COLUMN: [np.nan]}
    )


def _parse_daily(payload: dict) -> pd.DataFrame:
    """Flatten an NWIS JSON payload into ``date, temperature`` rows."""
    rows = []
    for ts in payload["value"]["timeSeries"]:
        no_data = ts.get("variable", {}).get("noDataValue")
        for block in ts["values"]:
            for obs in block["value"]:
                value = float(obs["value"])
                if no_data is not None and value == float(no_data):
                    value = np.nan
                rows.append((obs["dateTime"], value))
    daily = pd.DataFrame(rows, columns=["date", RESPONSE_COLUMN])
    daily["date"] = pd.to_datetime(daily["date"].str.slice(0, 10))
    return daily


def get_usgs(
    site_id,
    start: DateLike,
    end: DateLike,
    *,
    session: Optional[requests.Session] = None,
    to_kelvin: bool = False,
    timeout: float = 60,
) -> pd.DataFrame:
    """
    Monthly mean observed water temperature for one gauge.

    Returns
    -------
    DataFrame
        ``id, year, time, temperature`` with ``time`` the two-digit month.
        Empty when the gauge has no data in the span; a single all-NA row
        when the request or the payload fails.
    """
    params = {
        "format": "json",
        "sites": str(site_id),
        "parameterCd": TEMPERATURE_PARAMETER,
        "statCd": DAILY_MEAN_STATISTIC,
        "startDT": _date_str(start),
        "endDT": _date_str(end),
    }
    http = session if session is not None else requests.Session()
    try:
        resp = http.get(NWIS_DV_URL, params=params, timeout=timeout)
        resp.raise_for_status()
        daily = _parse_daily(resp.json())
    except (requests.RequestException, ValueError, KeyError, TypeError) as e:
        warnings.warn(
            f"USGS retrieval failed for gauge {site_id}: {type(e).__name__}: {e}",
            RuntimeWarning,
            stacklevel=2,
        )
        return _na_result(site_id)
    finally:
        if session is None:
            http.close()

    if daily.empty:
        return pd.DataFrame(columns=_COLUMNS)

    daily["year"] = daily["date"].dt.year
    daily["time"] = daily["date"].dt.strftime("%m")
    monthly = daily.groupby(["year", "time"], as_index=False)[RESPONSE_COLUMN].mean()
    if to_kelvin:
        monthly[RESPONSE_COLUMN] = monthly[RESPONSE_COLUMN] + KELVIN_OFFSET
    monthly.insert(0, "id", str(site_id))
    return monthly[_COLUMNS]


def add_temperature(
    data: pd.DataFrame,
    *,
    session: Optional[requests.Session] = None,
    to_kelvin: bool = False,
    timeout: float = 60,
    show_progress: bool = False,
) -> pd.DataFrame:
    """
    Attach observed monthly temperature to a predictor table.

    One request is made per gauge, covering ``min(start)`` to ``max(end)``
    of its rows; results are left-joined on ``id, year, time``. An existing
    ``temperature`` column is replaced, and ``time`` is returned in its
    canonical two-digit form.
    """
    validate_columns(data, ["id", "start", "end", "year", "time"], what="predictor table")
    out = data.drop(columns=[RESPONSE_COLUMN], errors="ignore").copy()
    out["time"] = out["time"].map(canonical_stratum)
    out["_id"] = out["id"].astype(str)

    spans = (
        out.assign(_start=pd.to_datetime(out["start"]), _end=pd.to_datetime(out["end"]))
        .groupby("_id", sort=False)
        .agg(start=("_start", "min"), end=("_end", "max"))
        .reset_index()
    )

    http = session if session is not None else requests.Session()
    try:
        iterator = zip(spans["_id"], spans["start"], spans["end"])
        if show_progress:
            iterator = tqdm(iterator, total=len(spans), desc="USGS gauges", unit="gauge")
        frames = [
            get_usgs(gauge, start, end, session=http, to_kelvin=to_kelvin, timeout=timeout)
            for gauge, start, end in iterator
        ]
    finally:
        if session is None:
            http.close()

    usgs = pd.concat(frames, axis=0, ignore_index=True) if frames else pd.DataFrame(columns=_COLUMNS)
    usgs = usgs.dropna(subset=["year", "time"]).rename(columns={"id": "_id"})
    usgs["year"] = usgs["year"].astype(out["year"].dtype)
    usgs[RESPONSE_COLUMN] = usgs[RESPONSE_COLUMN].astype(float)

    merged = out.merge(usgs, on=["_id", "year", "time"], how="left")
    return merged.drop(columns="_id")


__all__ = ["NWIS_DV_URL", "get_usgs", "add_temperature"]
