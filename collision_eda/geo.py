"""
Zip-code level join of crash counts with ACS median income and zip polygons.
"""

import logging
from pathlib import Path
from typing import Union

import geopandas as gpd
import pandas as pd

from .errors import CollisionDataError, ZipCodeParseError

logger = logging.getLogger(__name__)

INCOME_COLUMN = "S1903_C03_015E"  # median household income, ACS S1903
WGS84 = "EPSG:4326"


def zip_from_name(name) -> int:
    """'ZCTA5 10001' -> 10001; the last five characters must be digits."""
    text = str(name).strip()
    suffix = text[-5:]
    if len(text) < 5 or not suffix.isdigit():
        raise ZipCodeParseError(f"Cannot read a zip code from the end of {name!r}")
    return int(suffix)


def parse_income(values: pd.Series) -> pd.Series:
    """ACS income strings ('52,311', '250,000+', '-') to floats; '-' becomes NaN."""
    text = values.astype("string").str.replace(r"[,+]", "", regex=True).str.strip()
    text = text.str.rstrip("-")
    return pd.to_numeric(text, errors="coerce").astype(float)


def prepare_census(raw: pd.DataFrame) -> pd.DataFrame:
    missing = [c for c in ("NAME", INCOME_COLUMN) if c not in raw.columns]
    if missing:
        raise CollisionDataError(f"Census table is missing columns: {missing}")

    census = raw.rename(columns={INCOME_COLUMN: "MEDIAN_INCOME"})[["NAME", "MEDIAN_INCOME"]].copy()
    census["MEDIAN_INCOME"] = parse_income(census["MEDIAN_INCOME"])
    census["ZIP_CODE"] = census["NAME"].map(zip_from_name).astype("int64")
    return census.drop_duplicates(subset="ZIP_CODE").reset_index(drop=True)


def load_census(path: Union[str, Path]) -> pd.DataFrame:
    """Read the ACS S1903 export; its second row repeats the headers as labels."""
    raw = pd.read_csv(path, skiprows=[1], dtype=str)
    census = prepare_census(raw)
    logger.info(f"Loaded census income for {len(census):,} zip codes")
    return census


def _parse_shape_zip(value) -> int:
    text = str(value).strip()
    if not text.isdigit():
        raise ZipCodeParseError(f"Shapefile ZIPCODE {value!r} is not an integer")
    return int(text)


def prepare_zip_shapes(shapes: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """One WGS84 geometry per integer ZIP_CODE."""
    if "ZIPCODE" not in shapes.columns:
        raise CollisionDataError("Zip shapefile has no ZIPCODE field")

    shapes = shapes[["ZIPCODE", "geometry"]].copy()
    shapes["ZIP_CODE"] = shapes["ZIPCODE"].map(_parse_shape_zip).astype("int64")
    shapes = shapes.drop(columns="ZIPCODE").dissolve(by="ZIP_CODE").reset_index()

    if shapes.crs is not None and shapes.crs != WGS84:
        shapes = shapes.to_crs(WGS84)
    return shapes


def load_zip_shapes(path: Union[str, Path]) -> gpd.GeoDataFrame:
    shapes = prepare_zip_shapes(gpd.read_file(path))
    logger.info(f"Loaded geometry for {len(shapes):,} zip codes")
    return shapes


def join_zip_aggregate(counts: pd.DataFrame, census: pd.DataFrame, shapes: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """
    Crash counts left-joined to census income, then outer-joined to the zip
    geometry of the crash zips; rows missing any of the three are dropped.
    """
    shapes = shapes[shapes["ZIP_CODE"].isin(counts["ZIP_CODE"])]

    merged = counts.merge(census[["ZIP_CODE", "MEDIAN_INCOME"]], on="ZIP_CODE", how="left")
    merged = merged.merge(
        pd.DataFrame(shapes[["ZIP_CODE", "geometry"]]), on="ZIP_CODE", how="outer"
    )

    before = len(merged)
    merged = merged.dropna(subset=["count", "MEDIAN_INCOME", "geometry"])
    if before != len(merged):
        logger.info(f"Dropped {before - len(merged)} zip code(s) without census income or geometry")

    merged["count"] = merged["count"].astype("int64")
    merged = merged.sort_values("ZIP_CODE").reset_index(drop=True)
    return gpd.GeoDataFrame(merged, geometry="geometry", crs=shapes.crs)
