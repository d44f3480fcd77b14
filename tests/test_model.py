import numpy as np
import pandas as pd
import pytest

from collision_eda.errors import CollisionDataError
from collision_eda.model import DesignTerm, build_design_matrix, fit_logistic


def _logit(p):
    return np.log(p / (1 - p))


@pytest.fixture
def grouped():
    # 60 rows per group with death rates 0.2, 0.5 and 0.75
    group = ["A"] * 60 + ["B"] * 60 + ["C"] * 60
    death = [i < 12 for i in range(60)] + [i < 30 for i in range(60)] + [i < 45 for i in range(60)]
    hour = [i % 24 for i in range(180)]
    return pd.DataFrame({"group": group, "death": death, "hour": hour})


def test_design_matrix_columns(grouped):
    X = build_design_matrix(grouped, [DesignTerm("group"), DesignTerm("hour", "numeric")])
    assert X.columns.tolist() == ["Intercept", "group[T.B]", "group[T.C]", "hour"]
    assert (X["Intercept"] == 1.0).all()
    assert X.loc[0, ["group[T.B]", "group[T.C]"]].tolist() == [0.0, 0.0]
    assert X.loc[70, ["group[T.B]", "group[T.C]"]].tolist() == [1.0, 0.0]
    assert X["hour"].tolist() == grouped["hour"].astype(float).tolist()


def test_single_level_term_adds_nothing():
    df = pd.DataFrame({"g": ["x", "x"], "v": [1, 2]})
    X = build_design_matrix(df, [DesignTerm("g")])
    assert X.columns.tolist() == ["Intercept"]


def test_bad_encoding():
    with pytest.raises(ValueError):
        DesignTerm("group", "ordinal")


def test_saturated_model_recovers_group_logits(grouped):
    fit = fit_logistic(grouped, "death", [DesignTerm("group")])
    assert fit.converged
    assert fit.message == ""
    assert fit.n_obs == 180
    assert fit.coef.index.tolist() == ["Intercept", "group[T.B]", "group[T.C]"]
    assert fit.coef["Intercept"] == pytest.approx(_logit(0.2), abs=1e-6)
    assert fit.coef["group[T.B]"] == pytest.approx(_logit(0.5) - _logit(0.2), abs=1e-6)
    assert fit.coef["group[T.C]"] == pytest.approx(_logit(0.75) - _logit(0.2), abs=1e-6)
    assert (fit.stderr > 0).all()
    assert fit.deviance < fit.null_deviance
    assert fit.odds_ratios()["group[T.C]"] == pytest.approx((0.75 / 0.25) / (0.2 / 0.8), rel=1e-6)


def test_non_convergence_is_reported(grouped):
    fit = fit_logistic(grouped, "death", [DesignTerm("group"), DesignTerm("hour", "numeric")], maxiter=1)
    assert fit.converged is False
    assert fit.message
    assert fit.coef.index.tolist() == ["Intercept", "group[T.B]", "group[T.C]", "hour"]


def test_rows_with_missing_values_are_dropped(grouped):
    grouped.loc[[0, 1, 2], "group"] = None
    fit = fit_logistic(grouped, "death", [DesignTerm("group")])
    assert fit.n_obs == 177


def test_outcome_must_be_binary(grouped):
    grouped["death"] = grouped["hour"]
    with pytest.raises(CollisionDataError):
        fit_logistic(grouped, "death", [DesignTerm("group")])


def test_unknown_column(grouped):
    with pytest.raises(CollisionDataError):
        fit_logistic(grouped, "death", [DesignTerm("borough")])


def test_table_and_dict(grouped):
    fit = fit_logistic(grouped, "death", [DesignTerm("group")])
    table = fit.table()
    assert table.columns.tolist() == ["coef", "std_err", "p_value", "odds_ratio"]
    as_dict = fit.to_dict()
    assert as_dict["converged"] is True
    assert set(as_dict["coefficients"]) == {"Intercept", "group[T.B]", "group[T.C]"}


def test_perfect_separation_is_reported():
    df = pd.DataFrame({"g": ["A"] * 50 + ["B"] * 50, "death": [False] * 50 + [True] * 50})
    fit = fit_logistic(df, "death", [DesignTerm("g")])
    assert fit.converged is False
    assert "separation" in fit.message
    assert fit.coef.index.tolist() == ["Intercept", "g[T.B]"]
    assert fit.coef.isna().all()
    assert fit.n_obs == 100
