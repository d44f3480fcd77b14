import numpy as np
import pandas as pd
import pytest

from collision_eda.pipeline import analyze

BOROUGHS = ["BROOKLYN", "QUEENS", "MANHATTAN", None]
ZIPS = ["10001", "10002", "11201", None]


def _factor(i):
    if i < 150:
        return "Unspecified"
    if i < 270:
        return "Driver Inattention/Distraction"
    if i < 290:
        return "Unsafe Speed"
    return None


def make_crashes(n=300):
    """Crash records shaped like the normalized NYC extract."""
    rows = []
    for i in range(n):
        ped = 1 if i % 25 == 0 else 0
        cyc = 1 if i == 50 else 0
        mot = 1 if i % 60 == 7 else 0
        lat = 40.6 + (i % 50) / 1000
        lon = -73.9 - (i % 40) / 1000
        if i % 30 == 0:
            lat, lon = 0.0, 0.0
        if i % 45 == 1:
            lat, lon = np.nan, np.nan
        rows.append({
            "CRASH_DATE": f"01/{(i % 28) + 1:02d}/2022",
            "CRASH_TIME": f"{i % 24}:{(i * 7) % 60:02d}",
            "BOROUGH": BOROUGHS[i % 4],
            "ZIP_CODE": ZIPS[i % 4],
            "LATITUDE": lat,
            "LONGITUDE": lon,
            "NUMBER_OF_PEDESTRIANS_KILLED": ped,
            "NUMBER_OF_CYCLIST_KILLED": cyc,
            "NUMBER_OF_MOTORIST_KILLED": mot,
            # row 3 records a death that none of the sub-counts explain
            "NUMBER_OF_PERSONS_KILLED": ped + cyc + mot + (1 if i == 3 else 0),
            "CONTRIBUTING_FACTOR_VEHICLE_1": _factor(i),
        })
    return pd.DataFrame(rows)


@pytest.fixture
def crashes():
    return make_crashes()


@pytest.fixture
def crash_csv(tmp_path):
    """The same records written with the raw (space separated) column names."""
    df = make_crashes()
    df.columns = [c.replace("_", " ") for c in df.columns]
    path = tmp_path / "collisions.csv"
    df.to_csv(path, index=False)
    return path


@pytest.fixture
def analysis(crashes):
    return analyze(crashes, threshold=100)
