import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

# ---------------------------------
# Defaults
# ---------------------------------
CSV_URL = "https://raw.githubusercontent.com/statds/ids-s22/main/notes/data/nyc_mv_collisions_202201.csv"
CSV_NAME = "nyc_mv_collisions_202201.csv"
CENSUS_NAME = Path("ACSST5Y2020") / "ACSST5Y2020.S1903_data_with_overlays_2022-04-25T213110.csv"
ZIP_SHAPEFILE_NAME = Path("ZIP_CODE_040114") / "ZIP_CODE_040114.shp"
BOROUGH_NAME = "boundaries.geojson"

RARE_THRESHOLD = 100
MISSING_LABEL = "missing"
OTHER_LABEL = "Other"

LOG_FORMAT = "[collision_eda] %(message)s"


def env_to_bool(env_var_name: str, default: bool = False) -> bool:
    val = os.getenv(env_var_name)
    if val is None:
        return default
    val = val.strip().lower()
    if val in ("true", "1", "yes", "y", "on"):
        return True
    if val in ("false", "0", "no", "n", "off"):
        return False
    return default


def _env_path(name: str, default: Path) -> Path:
    val = os.getenv(name)
    return Path(val) if val else default


@dataclass
class Settings:
    """Where the inputs live and how the pipeline is tuned."""

    data_dir: Path = field(default_factory=lambda: Path.cwd() / "data")
    csv_url: str = CSV_URL
    csv_path: Optional[Path] = None
    census_file: Optional[Path] = None
    zip_shapefile: Optional[Path] = None
    borough_file: Optional[Path] = None
    results_dir: Optional[Path] = None
    rare_threshold: int = RARE_THRESHOLD
    offline: bool = False
    port: int = 5001
    debug: bool = False

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        if self.csv_path is None:
            self.csv_path = self.data_dir / CSV_NAME
        if self.census_file is None:
            self.census_file = self.data_dir / CENSUS_NAME
        if self.zip_shapefile is None:
            self.zip_shapefile = self.data_dir / ZIP_SHAPEFILE_NAME
        if self.borough_file is None:
            self.borough_file = self.data_dir / BOROUGH_NAME
        if self.results_dir is None:
            self.results_dir = self.data_dir.parent / "analysis_results"
        if self.rare_threshold < 1:
            raise ValueError(f"rare_threshold must be >= 1, got {self.rare_threshold}")


def load_settings(data_dir: Optional[Path] = None) -> Settings:
    """Build Settings from COLLISION_EDA_* environment variables."""
    if data_dir is None:
        data_dir = _env_path("COLLISION_EDA_DATA_DIR", Path.cwd() / "data")
    csv_path = os.getenv("COLLISION_EDA_CSV_PATH")
    census = os.getenv("COLLISION_EDA_CENSUS_FILE")
    shapes = os.getenv("COLLISION_EDA_ZIP_SHAPEFILE")
    boroughs = os.getenv("COLLISION_EDA_BOROUGH_FILE")
    results = os.getenv("COLLISION_EDA_RESULTS_DIR")

    return Settings(
        data_dir=data_dir,
        csv_url=os.getenv("COLLISION_EDA_CSV_URL", CSV_URL),
        csv_path=Path(csv_path) if csv_path else None,
        census_file=Path(census) if census else None,
        zip_shapefile=Path(shapes) if shapes else None,
        borough_file=Path(boroughs) if boroughs else None,
        results_dir=Path(results) if results else None,
        rare_threshold=int(os.getenv("COLLISION_EDA_RARE_THRESHOLD", RARE_THRESHOLD)),
        offline=env_to_bool("COLLISION_EDA_OFFLINE", default=False),
        port=int(os.getenv("PORT", 5001)),
        debug=os.getenv("FLASK_ENV", "development") == "development",
    )


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # noisy third-party loggers
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("fiona").setLevel(logging.WARNING)
    logging.getLogger("pyogrio").setLevel(logging.WARNING)
