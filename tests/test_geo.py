import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import box

from collision_eda.errors import CollisionDataError, ZipCodeParseError
from collision_eda.geo import (
    join_zip_aggregate,
    load_census,
    parse_income,
    prepare_census,
    prepare_zip_shapes,
    zip_from_name,
)


def test_zip_from_census_name():
    assert zip_from_name("ZCTA5 10001") == 10001


@pytest.mark.parametrize("name", ["ZCTA5 1000A", "1001", "", "ZCTA5 100"])
def test_malformed_census_name(name):
    with pytest.raises(ZipCodeParseError):
        zip_from_name(name)


def test_parse_income():
    out = parse_income(pd.Series(["52,311", "250,000+", "-", "2,500-", None]))
    assert out.iloc[0] == 52311
    assert out.iloc[1] == 250000
    assert pd.isna(out.iloc[2])
    assert out.iloc[3] == 2500
    assert pd.isna(out.iloc[4])


def test_prepare_census():
    raw = pd.DataFrame({
        "GEO_ID": ["a", "b"],
        "NAME": ["ZCTA5 10001", "ZCTA5 10003"],
        "S1903_C03_015E": ["88,526", "-"],
    })
    census = prepare_census(raw)
    assert census.columns.tolist() == ["NAME", "MEDIAN_INCOME", "ZIP_CODE"]
    assert census["ZIP_CODE"].tolist() == [10001, 10003]
    assert census["MEDIAN_INCOME"].iloc[0] == 88526


def test_prepare_census_requires_income_column():
    with pytest.raises(CollisionDataError):
        prepare_census(pd.DataFrame({"NAME": ["ZCTA5 10001"]}))


def test_load_census_skips_label_row(tmp_path):
    path = tmp_path / "acs.csv"
    path.write_text(
        "GEO_ID,NAME,S1903_C03_015E\n"
        "id,Geographic Area Name,Estimate!!Median income (dollars)!!HOUSEHOLD INCOME BY RACE\n"
        "8600000US10001,ZCTA5 10001,\"88,526\"\n"
        "8600000US10002,ZCTA5 10002,\"250,000+\"\n"
    )
    census = load_census(path)
    assert census["ZIP_CODE"].tolist() == [10001, 10002]
    assert census["MEDIAN_INCOME"].tolist() == [88526.0, 250000.0]


def test_prepare_zip_shapes_dissolves_and_reprojects():
    shapes = gpd.GeoDataFrame(
        {"ZIPCODE": ["10001", "10001", "10002"]},
        geometry=[box(0, 0, 1000, 1000), box(1000, 0, 2000, 1000), box(0, 1000, 1000, 2000)],
        crs="EPSG:3857",
    )
    out = prepare_zip_shapes(shapes)
    assert out["ZIP_CODE"].tolist() == [10001, 10002]
    assert out.crs == "EPSG:4326"
    assert out.geometry.iloc[0].bounds[2] > out.geometry.iloc[1].bounds[2]


def test_prepare_zip_shapes_rejects_bad_zip():
    shapes = gpd.GeoDataFrame({"ZIPCODE": ["1000X"]}, geometry=[box(0, 0, 1, 1)], crs="EPSG:4326")
    with pytest.raises(ZipCodeParseError):
        prepare_zip_shapes(shapes)


def test_join_keeps_only_zips_with_census_and_geometry():
    counts = pd.DataFrame({"ZIP_CODE": [10001, 10002], "count": [5, 7]})
    census = pd.DataFrame({"ZIP_CODE": [10001, 10003], "MEDIAN_INCOME": [88526.0, 61000.0]})
    shapes = gpd.GeoDataFrame(
        {"ZIP_CODE": [10001, 10002]},
        geometry=[box(0, 0, 1, 1), box(1, 0, 2, 1)],
        crs="EPSG:4326",
    )
    joined = join_zip_aggregate(counts, census, shapes)
    assert isinstance(joined, gpd.GeoDataFrame)
    assert joined["ZIP_CODE"].tolist() == [10001]
    assert joined["count"].tolist() == [5]
    assert joined["MEDIAN_INCOME"].tolist() == [88526.0]
    assert joined.crs == "EPSG:4326"


def test_join_drops_zip_with_unknown_income():
    counts = pd.DataFrame({"ZIP_CODE": [10001, 10002], "count": [5, 7]})
    census = pd.DataFrame({"ZIP_CODE": [10001, 10002], "MEDIAN_INCOME": [88526.0, float("nan")]})
    shapes = gpd.GeoDataFrame(
        {"ZIP_CODE": [10001, 10002, 10003]},
        geometry=[box(0, 0, 1, 1), box(1, 0, 2, 1), box(2, 0, 3, 1)],
        crs="EPSG:4326",
    )
    joined = join_zip_aggregate(counts, census, shapes)
    assert joined["ZIP_CODE"].tolist() == [10001]
