"""
Binomial logistic regression of a crash outcome on covariates.

The design matrix is built explicitly from (column, encoding) terms: an
``Intercept`` column, treatment dummies ``column[T.level]`` for categorical
terms (the first sorted level is the reference), and numeric terms as-is.
statsmodels' GLM does the fitting.
"""

import logging
import warnings
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

import numpy as np
import pandas as pd
import statsmodels.api as sm
from statsmodels.tools.sm_exceptions import ConvergenceWarning, PerfectSeparationWarning

from .errors import CollisionDataError
from .features import sort_labels

logger = logging.getLogger(__name__)

ENCODINGS = ("categorical", "numeric")


@dataclass(frozen=True)
class DesignTerm:
    column: str
    encoding: str = "categorical"

    def __post_init__(self):
        if self.encoding not in ENCODINGS:
            raise ValueError(f"encoding must be one of {ENCODINGS}, got {self.encoding!r}")


@dataclass
class LogitFit:
    coef: pd.Series
    stderr: pd.Series
    pvalues: pd.Series
    converged: bool
    n_obs: int
    iterations: int = 0
    deviance: float = float("nan")
    null_deviance: float = float("nan")
    aic: float = float("nan")
    message: str = ""
    terms: List[DesignTerm] = field(default_factory=list)

    def odds_ratios(self) -> pd.Series:
        return np.exp(self.coef)

    def table(self) -> pd.DataFrame:
        return pd.DataFrame({
            "coef": self.coef,
            "std_err": self.stderr,
            "p_value": self.pvalues,
            "odds_ratio": self.odds_ratios(),
        })

    def to_dict(self) -> dict:
        return {
            "converged": self.converged,
            "n_obs": self.n_obs,
            "iterations": self.iterations,
            "deviance": self.deviance,
            "null_deviance": self.null_deviance,
            "aic": self.aic,
            "message": self.message,
            "coefficients": {
                name: {"coef": row.coef, "std_err": row.std_err, "p_value": row.p_value}
                for name, row in self.table().iterrows()
            },
        }


def build_design_matrix(df: pd.DataFrame, terms: Sequence[DesignTerm]) -> pd.DataFrame:
    """Intercept + encoded covariates; rows are aligned to ``df`` (no NaNs allowed)."""
    parts = [pd.Series(1.0, index=df.index, name="Intercept")]

    for term in terms:
        values = df[term.column]
        if term.encoding == "numeric":
            parts.append(pd.to_numeric(values, errors="raise").astype(float).rename(term.column))
            continue

        levels = sort_labels(values.dropna().unique())
        if len(levels) < 2:
            logger.warning(f"{term.column} has a single level {levels!r}; it adds no columns")
            continue
        codes = pd.Categorical(values, categories=levels)
        dummies = pd.get_dummies(codes, drop_first=True, dtype=float)
        dummies.index = df.index
        dummies.columns = [f"{term.column}[T.{level}]" for level in levels[1:]]
        parts.append(dummies)

    return pd.concat(parts, axis=1)


def _model_frame(df: pd.DataFrame, outcome: str, terms: Sequence[DesignTerm]) -> Tuple[pd.Series, pd.DataFrame]:
    used = [outcome] + [t.column for t in terms]
    missing_cols = [c for c in used if c not in df.columns]
    if missing_cols:
        raise CollisionDataError(f"Model columns not found: {missing_cols}")

    frame = df[used].dropna()
    dropped = len(df) - len(frame)
    if dropped:
        logger.info(f"Dropped {dropped:,} rows with missing model values")
    if frame.empty:
        raise CollisionDataError("No complete rows left to fit the model")

    y = frame[outcome].astype(float)
    if not y.isin([0.0, 1.0]).all():
        raise CollisionDataError(f"Outcome {outcome!r} must be boolean or 0/1")
    return y, build_design_matrix(frame, terms)


def fit_logistic(df: pd.DataFrame, outcome: str, terms: Sequence[DesignTerm], maxiter: int = 100) -> LogitFit:
    """
    Fit ``outcome ~ terms`` with a binomial family and logit link.

    Non-convergence is reported through ``LogitFit.converged`` and
    ``LogitFit.message`` instead of raising. Under perfect separation the
    estimates diverge, so the coefficients are returned as NaN.
    """
    y, X = _model_frame(df, outcome, terms)
    nan = pd.Series(np.nan, index=X.columns)

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        res = sm.GLM(y, X, family=sm.families.Binomial()).fit(maxiter=maxiter)

    separation = [str(w.message) for w in caught if issubclass(w.category, PerfectSeparationWarning)]
    if separation:
        logger.warning(f"Logistic fit failed: {separation[0]}")
        return LogitFit(
            coef=nan, stderr=nan, pvalues=nan, converged=False,
            n_obs=len(y), iterations=int(res.fit_history.get("iteration", 0)),
            message=f"perfect separation: {separation[0]}", terms=list(terms),
        )

    messages = [str(w.message) for w in caught
                if issubclass(w.category, ConvergenceWarning)]
    converged = bool(getattr(res, "converged", True)) and not any(
        issubclass(w.category, ConvergenceWarning) for w in caught
    )
    if not converged and not messages:
        messages.append(f"IRLS did not converge in {maxiter} iterations")
    if not converged:
        logger.warning(f"Logistic fit did not converge: {'; '.join(messages)}")

    return LogitFit(
        coef=res.params,
        stderr=res.bse,
        pvalues=res.pvalues,
        converged=converged,
        n_obs=int(res.nobs),
        iterations=int(res.fit_history.get("iteration", 0)),
        deviance=float(res.deviance),
        null_deviance=float(res.null_deviance),
        aic=float(res.aic),
        message="; ".join(messages),
        terms=list(terms),
    )
