"""
Record loading for the NYC motor vehicle collision extract.

Reads the crash CSV (downloading and caching it on first use), normalizes
column names so that ``NUMBER OF PERSONS KILLED`` becomes
``NUMBER_OF_PERSONS_KILLED`` and parses ``CRASH_DATE`` as mm/dd/yyyy.
Borough boundaries are read from GeoJSON into shapely geometries.
"""

import json
import logging
import random
import time
from pathlib import Path
from typing import Dict, IO, Union

import pandas as pd
import requests
from shapely.geometry import shape
from shapely.geometry.base import BaseGeometry

from .config import Settings
from .errors import CollisionDataError, DateTimeParseError, DownloadError

logger = logging.getLogger(__name__)

DATE_FORMAT = "%m/%d/%Y"

KILLED_COLUMNS = [
    "NUMBER_OF_PEDESTRIANS_KILLED",
    "NUMBER_OF_CYCLIST_KILLED",
    "NUMBER_OF_MOTORIST_KILLED",
]
TOTAL_KILLED_COLUMN = "NUMBER_OF_PERSONS_KILLED"

REQUIRED_COLUMNS = [
    "CRASH_DATE",
    "CRASH_TIME",
    "BOROUGH",
    "ZIP_CODE",
    "LATITUDE",
    "LONGITUDE",
    *KILLED_COLUMNS,
    TOTAL_KILLED_COLUMN,
    "CONTRIBUTING_FACTOR_VEHICLE_1",
]


def normalize_names(df: pd.DataFrame) -> pd.DataFrame:
    """Replace runs of whitespace in column names with underscores."""
    df = df.copy()
    df.columns = df.columns.str.strip().str.replace(r"\s+", "_", regex=True)
    return df


def parse_crash_dates(values: pd.Series) -> pd.Series:
    """Parse mm/dd/yyyy strings; anything unparseable is an error, not NaT."""
    if pd.api.types.is_datetime64_any_dtype(values):
        return values
    parsed = pd.to_datetime(values, format=DATE_FORMAT, errors="coerce")
    bad = parsed.isna()
    if bad.any():
        examples = values[bad].head(5).tolist()
        raise DateTimeParseError(
            f"{int(bad.sum())} CRASH_DATE value(s) do not match {DATE_FORMAT}: {examples!r}"
        )
    return parsed


def read_collisions(source: Union[str, Path, IO]) -> pd.DataFrame:
    """Read a crash CSV from a path or file-like object."""
    df = pd.read_csv(source, low_memory=False)
    df = normalize_names(df)

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise CollisionDataError(f"Collision CSV is missing columns: {missing}")

    df["CRASH_DATE"] = parse_crash_dates(df["CRASH_DATE"])
    df["CRASH_TIME"] = df["CRASH_TIME"].astype("string").str.strip()
    logger.info(f"Loaded {len(df):,} collision records")
    return df


def download_csv(url: str, dest: Path, retries: int = 3, timeout: float = 60.0) -> Path:
    """Fetch ``url`` into ``dest``, retrying transient failures with backoff."""
    dest = Path(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    last_error = None

    for attempt in range(1, retries + 1):
        try:
            logger.info(f"Downloading {url} (attempt {attempt}/{retries})")
            resp = requests.get(url, timeout=timeout)
            resp.raise_for_status()
            tmp = dest.with_suffix(dest.suffix + ".part")
            tmp.write_bytes(resp.content)
            tmp.replace(dest)
            logger.info(f"Saved {len(resp.content) / 1024:.1f} KB to {dest}")
            return dest
        except requests.RequestException as e:
            last_error = e
            logger.warning(f"Download failed: {e.__class__.__name__}: {e}")
            if attempt < retries:
                time.sleep(1.5 * attempt + random.random())

    raise DownloadError(f"Could not download {url} after {retries} attempts: {last_error}")


def load_collisions(settings: Settings) -> pd.DataFrame:
    """Read the crash CSV, downloading it into the data directory if needed."""
    path = Path(settings.csv_path)
    if not path.exists():
        if settings.offline:
            raise FileNotFoundError(f"Collision CSV not found at {path} (offline mode)")
        download_csv(settings.csv_url, path)
    else:
        logger.info(f"Using cached collision CSV at {path}")
    return read_collisions(path)


def load_borough_boundaries(path: Union[str, Path]) -> Dict[str, BaseGeometry]:
    """Borough name -> shapely geometry from the NYC borough boundary GeoJSON."""
    with open(path, "r") as f:
        geojson = json.load(f)

    boroughs = {}
    for feature in geojson["features"]:
        props = feature.get("properties") or {}
        name = props.get("boro_name") or props.get("BoroName") or props.get("name")
        if name is None:
            name = f"feature_{len(boroughs)}"
        boroughs[name] = shape(feature["geometry"])

    logger.info(f"Loaded {len(boroughs)} borough boundaries")
    return boroughs
