"""
Cross tables and Pearson chi-squared tests of independence.

``chi2_test`` uses scipy when every row and column total is positive. A
table with an empty row or column has zero expected counts, where scipy
refuses to compute the statistic; for those the statistic is summed
directly over the cells with E > 0 (cells with E = 0 necessarily have
O = 0 and contribute nothing). Tables with fewer than two non-empty rows
or columns, such as a death column where no crash was fatal, go the same
way and report no association.

In that path the degrees of freedom count only the non-empty rows and
columns, so they can be smaller than (rows - 1)(cols - 1) of the raw shape.
"""

import logging
from dataclasses import dataclass
from typing import Union

import numpy as np
import pandas as pd
from scipy import stats
from scipy.stats import chi2_contingency

from .errors import InvalidContingencyTable
from .features import fill_missing, sort_labels

logger = logging.getLogger(__name__)

TableLike = Union[pd.DataFrame, np.ndarray, list]


@dataclass
class ChisqResult:
    statistic: float
    dof: int
    p_value: float
    n: int
    expected: np.ndarray
    method: str  # "scipy" | "explicit"
    cramers_v: float

    @property
    def significant(self) -> bool:
        return self.p_value < 0.05

    def to_dict(self) -> dict:
        return {
            "statistic": self.statistic,
            "dof": self.dof,
            "p_value": self.p_value,
            "n": self.n,
            "method": self.method,
            "cramers_v": self.cramers_v,
            "significant": self.significant,
        }


def cross_tab(df: pd.DataFrame, row: str, col: str, missing: str = "bucket") -> pd.DataFrame:
    """
    Contingency table of ``row`` x ``col`` over all observed values.

    missing="bucket" keeps missing values as a "missing" category,
    missing="drop" leaves those records out.
    """
    if missing not in ("bucket", "drop"):
        raise ValueError(f"missing must be 'bucket' or 'drop', got {missing!r}")

    if missing == "bucket":
        rows, cols = fill_missing(df[row]), fill_missing(df[col])
    else:
        subset = df[[row, col]].dropna()
        rows, cols = subset[row], subset[col]

    table = pd.crosstab(rows.rename(row), cols.rename(col))
    table = table.reindex(index=sort_labels(table.index), columns=sort_labels(table.columns))
    return table.astype("int64")


def validate_table(observed: TableLike) -> np.ndarray:
    """Return the table as a float array or raise InvalidContingencyTable."""
    arr = np.asarray(observed, dtype=float)
    if arr.ndim != 2:
        raise InvalidContingencyTable(f"Contingency table must be 2-D, got shape {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise InvalidContingencyTable("Contingency table has non-finite cells")
    if np.any(arr < 0):
        raise InvalidContingencyTable("Contingency table has negative counts")
    if arr.sum() == 0:
        raise InvalidContingencyTable("Contingency table is empty (grand total is 0)")
    return arr


def expected_counts(observed: TableLike) -> np.ndarray:
    """E_ij = R_i * C_j / N"""
    arr = validate_table(observed)
    return np.outer(arr.sum(axis=1), arr.sum(axis=0)) / arr.sum()


def pearson_statistic(observed: TableLike) -> float:
    """Sum of (O - E)^2 / E over the cells with a positive expected count."""
    arr = validate_table(observed)
    expected = expected_counts(arr)
    cells = expected > 0
    return float((((arr - expected) ** 2)[cells] / expected[cells]).sum())


def cramers_v(statistic: float, n: int, shape) -> float:
    k = min(shape) - 1
    if n == 0 or k <= 0:
        return 0.0
    return float(np.sqrt(statistic / (n * k)))


def chi2_test(observed: TableLike) -> ChisqResult:
    """Pearson chi-squared test of independence (no continuity correction)."""
    arr = validate_table(observed)
    n = int(round(arr.sum()))
    row_totals, col_totals = arr.sum(axis=1), arr.sum(axis=0)

    if min(arr.shape) >= 2 and np.all(row_totals > 0) and np.all(col_totals > 0):
        statistic, p_value, dof, expected = chi2_contingency(arr, correction=False)
        result = ChisqResult(
            statistic=float(statistic),
            dof=int(dof),
            p_value=float(p_value),
            n=n,
            expected=expected,
            method="scipy",
            cramers_v=cramers_v(statistic, n, arr.shape),
        )
        check = pearson_statistic(arr)
        if not np.isclose(result.statistic, check, rtol=1e-9, atol=1e-9):
            logger.warning(
                f"Chi-squared cross-check disagrees: scipy={result.statistic!r} explicit={check!r}"
            )
        return result

    # Empty rows/columns carry no information about association.
    n_rows = int((row_totals > 0).sum())
    n_cols = int((col_totals > 0).sum())
    dof = (n_rows - 1) * (n_cols - 1)
    # a single non-empty row or column matches its expected counts exactly
    statistic = pearson_statistic(arr) if dof > 0 else 0.0
    p_value = float(stats.chi2.sf(statistic, dof)) if dof > 0 else 1.0
    logger.info(
        f"Table has {arr.shape[0] - n_rows} empty row(s) and {arr.shape[1] - n_cols} empty column(s); "
        f"using explicit chi-squared summation (dof={dof})"
    )
    return ChisqResult(
        statistic=statistic,
        dof=dof,
        p_value=p_value,
        n=n,
        expected=expected_counts(arr),
        method="explicit",
        cramers_v=cramers_v(statistic, n, (n_rows, n_cols)),
    )
