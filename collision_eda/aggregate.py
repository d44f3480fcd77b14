import logging

import pandas as pd

from .errors import ZipCodeParseError
from .features import fill_missing, sort_labels

logger = logging.getLogger(__name__)


def group_count(df: pd.DataFrame, key: str, dropna: bool = False) -> pd.DataFrame:
    """Number of crashes per distinct value of ``key``, sorted by key."""
    values = df[key].dropna() if dropna else fill_missing(df[key])
    counts = values.value_counts()
    order = sort_labels(counts.index)
    out = counts.reindex(order).rename_axis(key).reset_index(name="count")
    out["count"] = out["count"].astype("int64")
    return out


def normalize_zip(values: pd.Series) -> pd.Series:
    """Parse zip codes (strings, floats or ints) into int64; missing stays out."""
    values = values.dropna()
    text = values.astype(str).str.strip()
    text = text[text != ""]
    numbers = pd.to_numeric(text, errors="coerce")
    bad = numbers.isna() | (numbers % 1 != 0)
    if bad.any():
        examples = text[bad].head(5).tolist()
        raise ZipCodeParseError(f"{int(bad.sum())} zip code(s) are not integers: {examples!r}")
    return numbers.astype("int64")


def crashes_by_zip(df: pd.DataFrame) -> pd.DataFrame:
    """Crash count per zip code; records without a zip are left out."""
    zips = normalize_zip(df["ZIP_CODE"])
    dropped = len(df) - len(zips)
    if dropped:
        logger.info(f"Dropped {dropped:,} records without a zip code from the zip aggregate")
    counts = zips.value_counts().sort_index()
    return counts.rename_axis("ZIP_CODE").reset_index(name="count")


def hourly_counts(df: pd.DataFrame) -> pd.DataFrame:
    """Crashes per hour of day, with every hour 0-23 present."""
    counts = df["hour"].value_counts().reindex(range(24), fill_value=0)
    return counts.rename_axis("hour").reset_index(name="count")
