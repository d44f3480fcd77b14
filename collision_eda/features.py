"""
Derived crash variables: hour of day, persons killed, death indicator and
the collapsed vehicle-one contributing factor.
"""

import logging
from dataclasses import dataclass
from typing import FrozenSet, Tuple

import pandas as pd

from .config import MISSING_LABEL, OTHER_LABEL, RARE_THRESHOLD
from .errors import CollisionDataError, DateTimeParseError
from .loader import KILLED_COLUMNS, TOTAL_KILLED_COLUMN, parse_crash_dates

logger = logging.getLogger(__name__)

FACTOR_COLUMN = "CONTRIBUTING_FACTOR_VEHICLE_1"


@dataclass
class KilledCheck:
    """How many records report a persons-killed total equal to the sub-count sum."""

    n_records: int
    n_matching: int
    percent: float
    mismatches: pd.DataFrame

    @property
    def n_mismatching(self) -> int:
        return self.n_records - self.n_matching

    def summary(self) -> str:
        return f"{self.n_matching} / {self.n_records} ({self.percent}%) rows have a matching sum"


def _count_column(df: pd.DataFrame, column: str) -> pd.Series:
    values = pd.to_numeric(df[column], errors="coerce")
    bad = values.isna() | (values < 0)
    if bad.any():
        rows = df.index[bad][:5].tolist()
        raise CollisionDataError(
            f"{column} has {int(bad.sum())} missing or invalid value(s), e.g. rows {rows}"
        )
    return values.astype("int64")


def reconcile_killed(df: pd.DataFrame) -> Tuple[pd.DataFrame, KilledCheck]:
    """
    Add ``nkilled`` as the sum of pedestrian, cyclist and motorist deaths.

    The recorded NUMBER_OF_PERSONS_KILLED is only compared against it; rows
    that disagree are reported but kept, and ``nkilled`` is used from here on.
    """
    df = df.copy()
    df["nkilled"] = sum(_count_column(df, c) for c in KILLED_COLUMNS)

    recorded = _count_column(df, TOTAL_KILLED_COLUMN)
    matching = recorded == df["nkilled"]

    n = len(df)
    n_matching = int(matching.sum())
    percent = round(100 * n_matching / n, 2) if n else 0.0

    killed_cols = [c for c in df.columns if "KILLED" in c] + ["nkilled"]
    mismatches = df.loc[~matching, killed_cols]

    check = KilledCheck(n_records=n, n_matching=n_matching, percent=percent, mismatches=mismatches)
    logger.info(check.summary())
    for idx, row in mismatches.iterrows():
        logger.warning(
            f"Row {idx}: {TOTAL_KILLED_COLUMN}={row[TOTAL_KILLED_COLUMN]} "
            f"but pedestrians+cyclists+motorists={row['nkilled']}"
        )
    return df, check


def add_hour(df: pd.DataFrame) -> pd.DataFrame:
    """Combine CRASH_DATE and CRASH_TIME into ``datetime`` and take its ``hour``."""
    df = df.copy()
    dates = parse_crash_dates(df["CRASH_DATE"])
    df["CRASH_DATE"] = dates

    times_raw = df["CRASH_TIME"].astype("string").str.strip()
    times = pd.to_datetime(times_raw, format="%H:%M", errors="coerce")
    retry = times.isna() & times_raw.notna()
    if retry.any():
        times[retry] = pd.to_datetime(times_raw[retry], format="%H:%M:%S", errors="coerce")

    bad = times.isna()
    if bad.any():
        rows = df.index[bad][:5].tolist()
        examples = times_raw[bad].head(5).tolist()
        raise DateTimeParseError(
            f"{int(bad.sum())} CRASH_TIME value(s) could not be parsed, rows {rows}: {examples!r}"
        )

    df["datetime"] = dates.dt.normalize() + (times - times.dt.normalize())
    df["hour"] = df["datetime"].dt.hour.astype("int64")
    return df


def add_death(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df["death"] = df["nkilled"] >= 1
    return df


def fill_missing(series: pd.Series, label: str = MISSING_LABEL) -> pd.Series:
    """Turn missing values into their own string category."""
    return series.astype(object).where(series.notna(), label)


def sort_labels(values) -> list:
    """Natural order for category labels, with the missing bucket last."""
    values = list(values)
    try:
        return sorted(values, key=lambda v: (v == MISSING_LABEL, v))
    except TypeError:
        return sorted(values, key=lambda v: (v == MISSING_LABEL, str(v)))


def rare_categories(series: pd.Series, threshold: int = RARE_THRESHOLD) -> FrozenSet:
    """Labels seen strictly fewer than ``threshold`` times (missing counts as a label)."""
    counts = fill_missing(series).value_counts()
    return frozenset(counts.index[counts < threshold])


def collapse_rare(series: pd.Series, threshold: int = RARE_THRESHOLD) -> pd.Series:
    """Relabel every rare category as "Other"; frequencies come from the whole column."""
    rare = rare_categories(series, threshold)
    labels = fill_missing(series)
    return labels.map(lambda x: OTHER_LABEL if x in rare else x)


def add_factor1(df: pd.DataFrame, threshold: int = RARE_THRESHOLD) -> pd.DataFrame:
    df = df.copy()
    df["factor1"] = collapse_rare(df[FACTOR_COLUMN], threshold)
    n_rare = len(rare_categories(df[FACTOR_COLUMN], threshold))
    logger.info(
        f"Collapsed {n_rare} contributing factor(s) with fewer than {threshold} crashes "
        f"into '{OTHER_LABEL}' ({df['factor1'].nunique()} categories remain)"
    )
    return df


def add_borough_bucket(df: pd.DataFrame) -> pd.DataFrame:
    """BOROUGH2: borough with missing values kept as their own group."""
    df = df.copy()
    df["BOROUGH2"] = fill_missing(df["BOROUGH"])
    return df


def valid_locations(df: pd.DataFrame) -> pd.DataFrame:
    """Rows with a usable position; 0 is the dataset's marker for unknown lat/lon."""
    lat = pd.to_numeric(df["LATITUDE"], errors="coerce")
    lon = pd.to_numeric(df["LONGITUDE"], errors="coerce")
    keep = lat.notna() & lon.notna() & (lat != 0) & (lon != 0)
    return df[keep]


def derive_features(df: pd.DataFrame, threshold: int = RARE_THRESHOLD) -> Tuple[pd.DataFrame, KilledCheck]:
    df = add_hour(df)
    df, check = reconcile_killed(df)
    df = add_death(df)
    df = add_factor1(df, threshold)
    df = add_borough_bucket(df)
    return df, check
