import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import geopandas as gpd
import pandas as pd
from shapely.geometry.base import BaseGeometry

from .aggregate import crashes_by_zip, group_count, hourly_counts
from .config import Settings
from .contingency import ChisqResult, chi2_test, cross_tab
from .features import KilledCheck, derive_features
from .geo import join_zip_aggregate, load_census, load_zip_shapes
from .loader import load_borough_boundaries, load_collisions
from .model import DesignTerm, LogitFit, fit_logistic

logger = logging.getLogger(__name__)

FACTOR_MODEL = [DesignTerm("factor1", "categorical")]
HOUR_BOROUGH_MODEL = [DesignTerm("hour", "numeric"), DesignTerm("BOROUGH2", "categorical")]


@dataclass
class CollisionAnalysis:
    df: pd.DataFrame
    killed_check: KilledCheck
    borough_counts: pd.DataFrame
    hour_counts: pd.DataFrame
    zip_counts: pd.DataFrame
    factor_table: pd.DataFrame
    factor_test: ChisqResult
    death_table: pd.DataFrame
    death_test: ChisqResult
    models: Dict[str, LogitFit] = field(default_factory=dict)
    zip_aggregate: Optional[gpd.GeoDataFrame] = None
    boroughs: Dict[str, BaseGeometry] = field(default_factory=dict)
    notes: List[str] = field(default_factory=list)
    threshold: int = 100

    @property
    def n_deaths(self) -> int:
        return int(self.df["death"].sum())


def analyze(df: pd.DataFrame, threshold: int = 100) -> CollisionAnalysis:
    """Everything that only needs the crash table itself."""
    df, check = derive_features(df, threshold)

    factor_table = cross_tab(df, "factor1", "nkilled")
    death_table = cross_tab(df, "BOROUGH2", "death")

    factor_test = chi2_test(factor_table)
    logger.info(f"factor1 x nkilled: chi2={factor_test.statistic:.3f} dof={factor_test.dof} "
                f"p={factor_test.p_value:.4g} ({factor_test.method})")
    death_test = chi2_test(death_table)
    logger.info(f"BOROUGH x death: chi2={death_test.statistic:.3f} dof={death_test.dof} "
                f"p={death_test.p_value:.4g} ({death_test.method})")

    models = {
        "death ~ factor1": fit_logistic(df, "death", FACTOR_MODEL),
        "death ~ hour + BOROUGH2": fit_logistic(df, "death", HOUR_BOROUGH_MODEL),
    }

    return CollisionAnalysis(
        df=df,
        killed_check=check,
        borough_counts=group_count(df, "BOROUGH"),
        hour_counts=hourly_counts(df),
        zip_counts=crashes_by_zip(df),
        factor_table=factor_table,
        factor_test=factor_test,
        death_table=death_table,
        death_test=death_test,
        models=models,
        threshold=threshold,
    )


def _optional(path: Path, what: str, notes: List[str]) -> bool:
    if path is not None and Path(path).exists():
        return True
    msg = f"{what} not found at {path}; skipping"
    logger.warning(msg)
    notes.append(msg)
    return False


def run_pipeline(settings: Settings) -> CollisionAnalysis:
    """Load the crash CSV and the optional geographic inputs, then analyze."""
    analysis = analyze(load_collisions(settings), settings.rare_threshold)

    if _optional(settings.borough_file, "Borough boundaries", analysis.notes):
        analysis.boroughs = load_borough_boundaries(settings.borough_file)

    has_census = _optional(settings.census_file, "Census income table", analysis.notes)
    has_shapes = _optional(settings.zip_shapefile, "Zip code shapefile", analysis.notes)
    if has_census and has_shapes:
        analysis.zip_aggregate = join_zip_aggregate(
            analysis.zip_counts,
            load_census(settings.census_file),
            load_zip_shapes(settings.zip_shapefile),
        )
        logger.info(f"Zip aggregate has {len(analysis.zip_aggregate)} zip codes")

    return analysis
