"""
Taylor-linearization variance for stratified cluster samples.

An estimator is linearized into per-observation scores. Scores are summed to
primary sampling unit (PSU) totals, centred within each stratum, and the
between-PSU spread gives the variance:

    V = sum_h  n_h / (n_h - 1) * sum_i (z_hi - zbar_h)(z_hi - zbar_h)^T

where n_h is the number of PSUs in stratum h and z_hi the total of PSU i.
PSUs are sampled with replacement within strata (no finite population
correction). PSU ids are nested in strata: the same id in two strata names
two different PSUs.
"""

from typing import Optional, Tuple

import numpy as np
import pandas as pd

from ..utils.errors import InvalidDesignError


def index_psus(strata: np.ndarray, psu: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Map observations to PSUs and PSUs to strata

    Args:
        strata: Stratum id per observation
        psu: PSU id per observation (interpreted within stratum)

    Returns:
        Tuple of (psu_codes, psu_strata): integer PSU index per observation
        (0..n_psu-1) and integer stratum index per PSU (0..n_strata-1)
    """
    frame = pd.DataFrame({'stratum': np.asarray(strata), 'psu': np.asarray(psu)})
    grouped = frame.groupby(['stratum', 'psu'], sort=True)
    psu_codes = grouped.ngroup().to_numpy()
    first_strata = grouped.size().index.get_level_values('stratum').to_numpy()
    psu_strata, _ = pd.factorize(first_strata, sort=True)
    return psu_codes, np.asarray(psu_strata)


def psu_totals(scores: np.ndarray, psu_codes: np.ndarray, n_psu: int) -> np.ndarray:
    """Sum observation scores (n x p) to PSU totals (n_psu x p)"""
    scores = np.asarray(scores, dtype=np.float64)
    if scores.ndim == 1:
        scores = scores[:, np.newaxis]
    totals = np.zeros((n_psu, scores.shape[1]), dtype=np.float64)
    np.add.at(totals, psu_codes, scores)
    return totals


def lonely_strata(psu_strata: np.ndarray) -> np.ndarray:
    """Stratum indices that contain a single PSU"""
    counts = np.bincount(psu_strata)
    return np.where(counts == 1)[0]


def stratified_variance(scores: np.ndarray,
                        psu_codes: np.ndarray,
                        psu_strata: np.ndarray,
                        lonely_psu: str = 'fail') -> np.ndarray:
    """Design-based covariance of a total from linearized scores

    Args:
        scores: Linearized scores (n x p, or length n). Observations outside
            an analysed domain carry zero scores but keep their PSU.
        psu_codes: PSU index per observation (from index_psus)
        psu_strata: Stratum index per PSU (from index_psus)
        lonely_psu: Handling of single-PSU strata: 'fail' raises,
            'certainty' and 'remove' contribute nothing, 'adjust' centres
            the lone PSU on the grand mean of PSU totals

    Returns:
        Covariance matrix (p x p)
    """
    n_psu = len(psu_strata)
    totals = psu_totals(scores, psu_codes, n_psu)
    p = totals.shape[1]
    variance = np.zeros((p, p), dtype=np.float64)
    grand_mean: Optional[np.ndarray] = None

    for h in range(int(psu_strata.max()) + 1 if n_psu else 0):
        t = totals[psu_strata == h]
        n_h = t.shape[0]
        if n_h == 0:
            continue
        if n_h == 1:
            if lonely_psu == 'fail':
                raise InvalidDesignError(
                    "Stratum with a single PSU; choose a lonely_psu policy"
                )
            if lonely_psu == 'adjust':
                if grand_mean is None:
                    grand_mean = totals.mean(axis=0)
                d = t - grand_mean
                variance += d.T @ d
            continue
        d = t - t.mean(axis=0)
        variance += (n_h / (n_h - 1.0)) * (d.T @ d)

    return variance
