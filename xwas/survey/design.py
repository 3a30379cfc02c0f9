"""
Survey design with stratified, clustered, weighted sampling.

SurveyDesign holds a reference to an analysis frame plus the names of its
PSU, stratum and weight columns. Point estimates are weighted; standard
errors come from Taylor linearization over PSU totals within strata
(see xwas.survey.variance), so clustering and stratification are reflected
in every reported uncertainty.

Complete-case analyses are treated as domain estimates: rows with missing
model values get zero scores but stay in the design, so strata and PSU
counts are those of the full sample.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy import stats

from ..config import LOG_EPSILON, LONELY_PSU_CHOICES
from ..utils.data_types import AssociationResults, FormulaSpec, FormulaTerm
from ..utils.errors import FitError, InvalidDesignError, SingularFitError
from .variance import index_psus, lonely_strata, stratified_variance


@dataclass(frozen=True)
class FittedModel:
    """Survey-weighted linear model fit

    Arrays are ordered as `terms` (intercept first).
    """

    formula: FormulaSpec
    terms: Tuple[str, ...]
    params: np.ndarray
    std_errors: np.ndarray
    statistics: np.ndarray
    pvalues: np.ndarray
    cov_params: np.ndarray
    df_resid: int
    n_obs: int

    def to_dataframe(self) -> pd.DataFrame:
        """Coefficient table, one row per term"""
        return pd.DataFrame({
            'term': list(self.terms),
            'estimate': self.params,
            'std_error': self.std_errors,
            'statistic': self.statistics,
            'pvalue': self.pvalues,
            'n': self.n_obs,
            'df': self.df_resid,
        })

    def to_results(self, variable: str = '') -> AssociationResults:
        """Coefficient table as AssociationResults tagged with `variable`"""
        df = self.to_dataframe()
        df.insert(0, 'variable', variable)
        return AssociationResults(df)


def apply_transform(values: np.ndarray, term: FormulaTerm,
                    epsilon: float = LOG_EPSILON) -> np.ndarray:
    """Apply a term's scalar transform to complete-case values

    'standardize' uses the mean and sample SD (ddof=1) of `values` itself,
    so callers pass only the rows that enter the fit.
    """
    values = np.asarray(values, dtype=np.float64)
    if term.transform == 'identity':
        return values
    if term.transform == 'log':
        with np.errstate(divide='ignore', invalid='ignore'):
            out = np.log(values + epsilon)
        if not np.all(np.isfinite(out)):
            raise FitError(f"{term.label}: log of negative values")
        return out
    # standardize
    if values.size < 2:
        raise SingularFitError(f"{term.label}: fewer than two observations")
    sd = np.std(values, ddof=1)
    if not np.isfinite(sd) or sd <= 0:
        raise SingularFitError(f"{term.label}: zero variance, cannot standardize")
    return (values - values.mean()) / sd


class SurveyDesign:
    """Stratified cluster sample with sampling weights

    The design is immutable: it never modifies the frame it references, and
    every estimate is a pure function of (design, arguments), so one design
    may be shared by concurrent fits.

    Args:
        data: Analysis frame. Rows with zero, negative or missing weight must
            be removed beforehand (see xwas.data.loaders.prepare_cohort).
        cluster_column: PSU id column (nested in strata)
        stratum_column: Stratum id column
        weight_column: Sampling weight column
        lonely_psu: Single-PSU stratum policy ('fail', 'certainty',
            'remove', 'adjust')

    Raises:
        InvalidDesignError: Missing columns, empty data, missing ids,
            non-positive or missing weights, or a single-PSU stratum under
            the 'fail' policy
    """

    def __init__(self, data: pd.DataFrame,
                 cluster_column: str,
                 stratum_column: str,
                 weight_column: str,
                 *,
                 lonely_psu: str = 'fail'):
        if not isinstance(data, pd.DataFrame):
            raise InvalidDesignError("Design data must be a pandas DataFrame")
        if lonely_psu not in LONELY_PSU_CHOICES:
            raise InvalidDesignError(
                f"Unknown lonely_psu policy '{lonely_psu}'; expected one of {LONELY_PSU_CHOICES}"
            )

        for role, col in (('cluster', cluster_column),
                          ('stratum', stratum_column),
                          ('weight', weight_column)):
            if col not in data.columns:
                raise InvalidDesignError(f"Missing {role} column: {col}")
        if len(data) == 0:
            raise InvalidDesignError("Design data has no rows")

        weights = pd.to_numeric(data[weight_column], errors='coerce').to_numpy(dtype=np.float64)
        if not np.all(np.isfinite(weights)):
            raise InvalidDesignError(f"Weight column {weight_column} has missing or non-numeric values")
        if np.any(weights <= 0):
            raise InvalidDesignError(
                f"Weight column {weight_column} has {int(np.sum(weights <= 0))} non-positive values; "
                "filter them before building the design"
            )
        if data[cluster_column].isna().any():
            raise InvalidDesignError(f"Cluster column {cluster_column} has missing ids")
        if data[stratum_column].isna().any():
            raise InvalidDesignError(f"Stratum column {stratum_column} has missing ids")

        psu_codes, psu_strata = index_psus(data[stratum_column].to_numpy(),
                                           data[cluster_column].to_numpy())
        if lonely_psu == 'fail' and len(lonely_strata(psu_strata)) > 0:
            raise InvalidDesignError(
                f"{len(lonely_strata(psu_strata))} strata contain a single PSU; "
                "variance cannot be estimated under lonely_psu='fail'"
            )

        weights.setflags(write=False)
        psu_codes.setflags(write=False)
        psu_strata.setflags(write=False)

        self._data = data
        self._cluster_column = cluster_column
        self._stratum_column = stratum_column
        self._weight_column = weight_column
        self._lonely_psu = lonely_psu
        self._weights = weights
        self._psu_codes = psu_codes
        self._psu_strata = psu_strata

    @property
    def data(self) -> pd.DataFrame:
        """Referenced analysis frame (treat as read-only)"""
        return self._data

    @property
    def cluster_column(self) -> str:
        return self._cluster_column

    @property
    def stratum_column(self) -> str:
        return self._stratum_column

    @property
    def weight_column(self) -> str:
        return self._weight_column

    @property
    def lonely_psu(self) -> str:
        return self._lonely_psu

    @property
    def weights(self) -> np.ndarray:
        """Sampling weights (read-only view)"""
        return self._weights

    @property
    def n_obs(self) -> int:
        """Number of observations"""
        return len(self._weights)

    @property
    def n_psu(self) -> int:
        """Number of PSUs (distinct stratum/PSU pairs)"""
        return len(self._psu_strata)

    @property
    def n_strata(self) -> int:
        """Number of strata"""
        return int(self._psu_strata.max()) + 1

    @property
    def design_df(self) -> int:
        """Design degrees of freedom, PSUs minus strata"""
        return self.n_psu - self.n_strata

    @property
    def columns(self) -> List[str]:
        return list(self._data.columns)

    def has_column(self, name: str) -> bool:
        return name in self._data.columns

    def __repr__(self) -> str:
        return (f"SurveyDesign(n_obs={self.n_obs}, n_psu={self.n_psu}, "
                f"n_strata={self.n_strata}, weight='{self._weight_column}')")

    def _domain_df(self, mask: np.ndarray) -> int:
        """Design degrees of freedom counting only PSUs/strata with domain rows"""
        psus = np.unique(self._psu_codes[mask])
        strata = np.unique(self._psu_strata[psus])
        return len(psus) - len(strata)

    def _variance(self, scores: np.ndarray) -> np.ndarray:
        return stratified_variance(scores, self._psu_codes, self._psu_strata, self._lonely_psu)

    def _numeric(self, variable: str) -> np.ndarray:
        if variable not in self._data.columns:
            raise ValueError(f"Variable not in design data: {variable}")
        return pd.to_numeric(self._data[variable], errors='coerce').to_numpy(dtype=np.float64)

    def _mean_with_scores(self, values: np.ndarray, mask: np.ndarray) -> Tuple[float, float]:
        w = np.where(mask, self._weights, 0.0)
        y = np.where(mask, values, 0.0)
        total_w = w.sum()
        estimate = float(np.sum(w * y) / total_w)
        scores = w * (y - estimate) / total_w
        variance = self._variance(scores)
        return estimate, float(np.sqrt(max(variance[0, 0], 0.0)))

    def weighted_mean(self, variable: str) -> Tuple[float, float]:
        """Weighted mean of a variable with its linearized standard error

        Rows with a missing value are treated as outside the domain.

        Returns:
            Tuple of (estimate, standard_error)
        """
        values = self._numeric(variable)
        mask = np.isfinite(values)
        if not mask.any():
            raise ValueError(f"No non-missing values for {variable}")
        return self._mean_with_scores(values, mask)

    def weighted_variance(self, variable: str) -> Tuple[float, float]:
        """Weighted population variance with its linearized standard error

        The estimate is the weighted mean of n/(n-1) * (y - ybar)^2; its
        standard error treats ybar as fixed.

        Returns:
            Tuple of (estimate, standard_error)
        """
        values = self._numeric(variable)
        mask = np.isfinite(values)
        n = int(mask.sum())
        if n < 2:
            raise ValueError(f"Need at least two non-missing values for {variable}")
        mean, _ = self._mean_with_scores(values, mask)
        squared = np.where(mask, (values - mean) ** 2 * n / (n - 1.0), 0.0)
        return self._mean_with_scores(squared, mask)

    def fit_weighted_linear_model(self, formula: FormulaSpec) -> FittedModel:
        """Fit a survey-weighted linear model

        Rows missing any model column are dropped (complete case); term
        transforms are then applied to the retained rows. Coefficients are
        weighted least squares estimates; their covariance is the sandwich
        A^-1 V A^-1 with A = X'WX and V the design variance of the scores
        w_i x_i e_i. Tests use a t reference with (PSUs - strata) - p + 1
        degrees of freedom.

        Args:
            formula: Outcome and predictor terms; an intercept is added

        Returns:
            FittedModel

        Raises:
            ValueError: A formula column is not in the design
            SingularFitError: Rank-deficient design matrix, constant
                standardized term, or fewer rows than parameters
            FitError: Non-positive residual degrees of freedom or
                non-finite estimates
        """
        missing = [c for c in formula.columns if c not in self._data.columns]
        if missing:
            raise ValueError(f"Formula columns not in design data: {missing}")

        raw = {c: self._numeric(c) for c in formula.columns}
        mask = np.ones(self.n_obs, dtype=bool)
        for values in raw.values():
            mask &= np.isfinite(values)
        n = int(mask.sum())
        n_params = 1 + len(formula.predictors)
        if n <= n_params:
            raise SingularFitError(
                f"{n} complete observations for {n_params} parameters in '{formula}'"
            )

        y = apply_transform(raw[formula.outcome.column][mask], formula.outcome)
        columns = [np.ones(n, dtype=np.float64)]
        for term in formula.predictors:
            columns.append(apply_transform(raw[term.column][mask], term))
        X = np.column_stack(columns)

        if np.linalg.matrix_rank(X) < n_params:
            raise SingularFitError(f"Design matrix is rank deficient in '{formula}'")

        df_resid = self._domain_df(mask) - n_params + 1
        if df_resid <= 0:
            raise FitError(
                f"Residual design degrees of freedom {df_resid} <= 0 in '{formula}'"
            )

        w = self._weights[mask]
        fit = sm.WLS(y, X, weights=w).fit()
        params = np.asarray(fit.params, dtype=np.float64)
        bread = np.asarray(fit.normalized_cov_params, dtype=np.float64)
        resid = y - X @ params

        scores = np.zeros((self.n_obs, n_params), dtype=np.float64)
        scores[mask] = (X * (w * resid)[:, np.newaxis]) @ bread
        cov = self._variance(scores)

        se = np.sqrt(np.clip(np.diag(cov), 0.0, None))
        with np.errstate(divide='ignore', invalid='ignore'):
            t_stats = params / se
        if not (np.all(np.isfinite(params)) and np.all(np.isfinite(t_stats))):
            raise FitError(f"Non-finite estimates in '{formula}'")
        pvalues = 2.0 * stats.t.sf(np.abs(t_stats), df_resid)

        return FittedModel(
            formula=formula,
            terms=tuple(formula.term_labels),
            params=params,
            std_errors=se,
            statistics=t_stats,
            pvalues=pvalues,
            cov_params=cov,
            df_resid=int(df_resid),
            n_obs=n,
        )
