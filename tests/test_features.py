import numpy as np
import pandas as pd
import pytest

from collision_eda.errors import CollisionDataError, DateTimeParseError
from collision_eda.features import (
    add_death,
    add_hour,
    collapse_rare,
    derive_features,
    rare_categories,
    reconcile_killed,
    valid_locations,
)


def test_hour_from_date_and_time():
    df = pd.DataFrame({"CRASH_DATE": ["01/05/2022", "01/06/2022"], "CRASH_TIME": ["23:45", "2:39"]})
    out = add_hour(df)
    assert out["hour"].tolist() == [23, 2]
    assert out["datetime"].iloc[0] == pd.Timestamp("2022-01-05 23:45")


def test_hour_accepts_seconds():
    df = pd.DataFrame({"CRASH_DATE": ["01/05/2022"], "CRASH_TIME": ["07:15:30"]})
    assert add_hour(df)["hour"].tolist() == [7]


@pytest.mark.parametrize("time", ["25:00", "noon", None])
def test_bad_time_raises(time):
    df = pd.DataFrame({"CRASH_DATE": ["01/05/2022"], "CRASH_TIME": [time]})
    with pytest.raises(DateTimeParseError):
        add_hour(df)


def test_bad_date_raises():
    df = pd.DataFrame({"CRASH_DATE": ["2022-01-05"], "CRASH_TIME": ["10:00"]})
    with pytest.raises(DateTimeParseError):
        add_hour(df)


def test_nkilled_is_sum_of_subcounts(crashes):
    df, _ = reconcile_killed(crashes)
    expected = (crashes["NUMBER_OF_PEDESTRIANS_KILLED"]
                + crashes["NUMBER_OF_CYCLIST_KILLED"]
                + crashes["NUMBER_OF_MOTORIST_KILLED"])
    assert (df["nkilled"] == expected).all()
    # the recorded total is not used
    assert df.loc[3, "nkilled"] == 0


def test_killed_check_reports_matching_share(crashes):
    _, check = reconcile_killed(crashes)
    assert check.n_records == 300
    assert check.n_matching == 299
    assert check.percent == 99.67
    assert check.mismatches.index.tolist() == [3]
    assert "nkilled" in check.mismatches.columns
    assert check.summary() == "299 / 300 (99.67%) rows have a matching sum"


def test_killed_check_with_several_mismatches():
    df = pd.DataFrame({
        "NUMBER_OF_PEDESTRIANS_KILLED": [0, 1, 0, 0, 0, 0, 0],
        "NUMBER_OF_CYCLIST_KILLED": [0, 0, 0, 0, 0, 0, 0],
        "NUMBER_OF_MOTORIST_KILLED": [0, 0, 1, 0, 0, 0, 0],
        "NUMBER_OF_PERSONS_KILLED": [0, 1, 1, 2, 1, 0, 0],
    })
    _, check = reconcile_killed(df)
    assert (check.n_matching, check.n_records) == (5, 7)
    assert check.percent == round(100 * 5 / 7, 2)


def test_missing_killed_count_raises(crashes):
    crashes.loc[5, "NUMBER_OF_MOTORIST_KILLED"] = np.nan
    with pytest.raises(CollisionDataError):
        reconcile_killed(crashes)


def test_death_indicator():
    df = add_death(pd.DataFrame({"nkilled": [0, 1, 3]}))
    assert df["death"].tolist() == [False, True, True]


def test_collapse_rare_is_strict():
    values = pd.Series(["A"] * 150 + ["B"] * 40 + ["C"] * 99 + ["D"] * 100)
    out = collapse_rare(values, threshold=100)
    counts = out.value_counts().to_dict()
    assert counts == {"A": 150, "Other": 139, "D": 100}


def test_rare_categories_count_missing_as_a_category():
    values = pd.Series(["A"] * 5 + [None] * 2)
    assert rare_categories(values, threshold=3) == frozenset({"missing"})
    assert collapse_rare(values, threshold=3).tolist() == ["A"] * 5 + ["Other"] * 2
    assert collapse_rare(values, threshold=2).tolist() == ["A"] * 5 + ["missing"] * 2


def test_valid_locations_drops_zero_and_missing(crashes):
    out = valid_locations(crashes)
    assert (out["LATITUDE"] != 0).all()
    assert out["LONGITUDE"].notna().all()
    assert len(out) < len(crashes)


def test_derive_features_adds_columns(crashes):
    df, check = derive_features(crashes, threshold=100)
    for col in ("hour", "nkilled", "death", "factor1", "BOROUGH2"):
        assert col in df.columns
    assert set(df["factor1"]) == {"Unspecified", "Driver Inattention/Distraction", "Other"}
    assert df["hour"].between(0, 23).all()
    assert df["BOROUGH2"].isna().sum() == 0
    assert (df["BOROUGH2"] == "missing").sum() == 75
