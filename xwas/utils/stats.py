"""
Multiple-testing correction and screen-level statistics for XWAS results
"""

import warnings
from typing import Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy import stats

from .data_types import CorrectedResults, ExposureVariable, ScreenResults

FDR_METHODS: Tuple[str, ...] = ('by', 'bh')


def adjusted_column(method: str) -> str:
    """Name of the adjusted p-value column for a correction method"""
    return f"pvalue_{method}"


def bonferroni_correction(pvalues: np.ndarray, alpha: float = 0.05) -> Tuple[np.ndarray, float]:
    """Apply Bonferroni correction for multiple testing

    Args:
        pvalues: Array of p-values (NaN entries are ignored and kept as NaN)
        alpha: Family-wise error rate (default: 0.05)

    Returns:
        Tuple of (corrected_pvalues, corrected_threshold)
    """
    pvalues = np.asarray(pvalues, dtype=float)
    n_tests = int(np.sum(np.isfinite(pvalues)))
    if n_tests == 0:
        return np.full(pvalues.shape, np.nan), np.nan
    corrected_threshold = alpha / n_tests
    corrected_pvalues = np.minimum(pvalues * n_tests, 1.0)

    return corrected_pvalues, corrected_threshold


def fdr_correction(pvalues: np.ndarray, alpha: float = 0.05, method: str = 'by') -> Tuple[np.ndarray, np.ndarray]:
    """Apply a False Discovery Rate step-up correction

    Benjamini-Yekutieli ('by', default) is valid under arbitrary dependence
    between tests; it scales the Benjamini-Hochberg ('bh') factor M/k by the
    harmonic number c(M) = sum_{i=1..M} 1/i.

    Args:
        pvalues: Array of p-values. NaN entries are excluded from M and
            returned as NaN.
        alpha: False discovery rate (default: 0.05)
        method: 'by' for Benjamini-Yekutieli, 'bh' for Benjamini-Hochberg

    Returns:
        Tuple of (rejected_hypotheses, corrected_pvalues), both in input
        order. A hypothesis is rejected when its corrected p-value is
        strictly below alpha.
    """
    if method not in FDR_METHODS:
        raise ValueError(f"Unknown method: {method}")

    pvalues = np.asarray(pvalues, dtype=float)
    corrected_pvalues = np.full(pvalues.shape, np.nan)
    rejected = np.zeros(pvalues.shape, dtype=bool)

    valid = np.isfinite(pvalues)
    n = int(valid.sum())
    if n == 0:
        return rejected, corrected_pvalues

    pvalid = pvalues[valid]
    if np.any((pvalid < 0) | (pvalid > 1)):
        raise ValueError("p-values must lie in [0, 1]")

    # Stable sort so tied p-values keep their input order
    pvalues_sortind = np.argsort(pvalid, kind='mergesort')
    pvalues_sorted = pvalid[pvalues_sortind]

    i = np.arange(1, n + 1)
    c_m = np.sum(1.0 / i) if method == 'by' else 1.0
    corrected = pvalues_sorted * n * c_m / i
    corrected = np.minimum.accumulate(corrected[::-1])[::-1]
    corrected = np.minimum(corrected, 1.0)

    unsorted = np.empty(n)
    unsorted[pvalues_sortind] = corrected
    corrected_pvalues[valid] = unsorted
    rejected[valid] = unsorted < alpha

    return rejected, corrected_pvalues


def correct(pvalues: np.ndarray, method: str = 'by') -> np.ndarray:
    """Adjusted p-values in input order (see fdr_correction)"""
    return fdr_correction(pvalues, method=method)[1]


def significance_threshold(results: Union[pd.DataFrame, CorrectedResults],
                           fdr_level: float = 0.05,
                           adjusted: str = 'pvalue_by') -> Optional[float]:
    """Largest raw p-value among rows whose adjusted p-value is below fdr_level

    Args:
        results: Corrected results, or a DataFrame with 'pvalue' and the
            adjusted column
        fdr_level: Target false discovery rate
        adjusted: Name of the adjusted p-value column

    Returns:
        The threshold, or None when no row qualifies
    """
    df = results.data if isinstance(results, CorrectedResults) else results
    if df is None or df.empty:
        return None
    passing = df.loc[df[adjusted].to_numpy(dtype=float) < fdr_level, 'pvalue']
    passing = passing.dropna()
    if passing.empty:
        return None
    return float(passing.max())


def _catalog_frame(catalog) -> pd.DataFrame:
    if isinstance(catalog, pd.DataFrame):
        cols = [c for c in ('variable', 'category', 'description') if c in catalog.columns]
        return catalog[cols].drop_duplicates('variable')
    rows = []
    for item in catalog:
        if isinstance(item, ExposureVariable):
            rows.append((item.name, item.category, item.description))
    return pd.DataFrame(rows, columns=['variable', 'category', 'description'])


def correct_results(screen: ScreenResults,
                    fdr_level: float = 0.05,
                    catalog: Optional[Union[pd.DataFrame, Sequence[ExposureVariable]]] = None,
                    method: str = 'by') -> CorrectedResults:
    """Attach adjusted p-values to screen results and rank them

    Rows keep their raw statistics and gain the FDR-adjusted p-value, a
    Bonferroni p-value and a `significant` flag. Results are ordered by the
    adjusted p-value, ties broken by variable name. Empty or all-NaN input
    yields an empty result with a warning rather than an error.

    Args:
        screen: Output of run_screen
        fdr_level: FDR level for the significant flag and the threshold
        catalog: Optional catalog (DataFrame or ExposureVariable list) whose
            category/description are merged onto the rows
        method: 'by' (default) or 'bh'

    Returns:
        CorrectedResults
    """
    df = screen.results.to_dataframe()
    adj_col = adjusted_column(method)
    out_columns = list(df.columns) + [adj_col, 'pvalue_bonferroni', 'significant']

    pvals = df['pvalue'].to_numpy(dtype=float)
    if df.empty or not np.any(np.isfinite(pvals)):
        warnings.warn("No finite p-values to correct; returning empty corrected results")
        return CorrectedResults(
            data=pd.DataFrame(columns=out_columns),
            fdr_level=fdr_level,
            threshold=None,
            failures=list(screen.failures),
        )

    _, adj = fdr_correction(pvals, alpha=fdr_level, method=method)
    bonf, _ = bonferroni_correction(pvals, alpha=fdr_level)
    df[adj_col] = adj
    df['pvalue_bonferroni'] = bonf
    df['significant'] = np.nan_to_num(adj, nan=np.inf) < fdr_level

    if catalog is not None:
        df = df.merge(_catalog_frame(catalog), on='variable', how='left')

    df = df.sort_values([adj_col, 'variable'], kind='mergesort', na_position='last')
    df = df.reset_index(drop=True)

    return CorrectedResults(
        data=df,
        fdr_level=fdr_level,
        threshold=significance_threshold(df, fdr_level, adjusted=adj_col),
        failures=list(screen.failures),
    )


def pvalue_inflation_factor(pvalues: np.ndarray) -> float:
    """Inflation of screen p-values relative to the uniform null

    Values well above 1 point to miscalibrated standard errors or broad
    confounding shared across exposures.

    Args:
        pvalues: Array of p-values

    Returns:
        Median observed chi-square (1 df) over its null expectation
    """
    pvalues = np.asarray(pvalues, dtype=float)
    valid_pvals = pvalues[np.isfinite(pvalues) & (pvalues > 0)]
    if len(valid_pvals) == 0:
        return 1.0

    chi2_values = stats.chi2.isf(valid_pvals, df=1)
    median_chi2 = np.median(chi2_values)
    expected_median = stats.chi2.ppf(0.5, df=1)

    return float(median_chi2 / expected_median)
