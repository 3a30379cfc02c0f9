"""
XWAS screening engine.

Runs the single-exposure association model over every candidate exposure
against one shared design, then keeps the exposure-of-interest row of each
fit. The screen is a map-then-merge: every fit is a pure function of
(design, formula), fits may run on a thread pool, and merged output is
ordered by exposure name regardless of completion order.

An exposure whose fit fails (singular design, numerical failure, timeout) is
recorded in the failure list and the screen continues.
"""

import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from pandas.api.types import is_numeric_dtype
from tqdm import tqdm

from ..config import INTERCEPT_TERM
from ..survey.design import SurveyDesign
from ..utils.data_types import AssociationResults, ExposureVariable, FitFailure, ScreenResults
from ..utils.errors import FitError, InvalidDesignError
from .model import build_formula, exposure_name, fit

# Errors local to one exposure; anything else aborts the screen
RECOVERABLE_ERRORS = (FitError, np.linalg.LinAlgError, FloatingPointError, ValueError)

POLL_INTERVAL = 0.05  # seconds between timeout checks


def _fit_exposure(design: SurveyDesign,
                  name: str,
                  outcome: str,
                  adjustments: Sequence[str],
                  standardize: bool) -> AssociationResults:
    """Worker: fit one exposure and tag its rows"""
    formula = build_formula(name, adjustments, outcome, standardize=standardize)
    return fit(design, formula).with_variable(name)


def _failure(name: str, exc: BaseException) -> FitFailure:
    return FitFailure(variable=name, error_type=type(exc).__name__, message=str(exc))


def _sorted_exposure_names(exposures: Sequence[Union[str, ExposureVariable]]) -> List[str]:
    return sorted({exposure_name(e) for e in exposures})


def _run_sequential(design, names, outcome, adjustments, standardize, progress):
    outcomes: Dict[str, Union[AssociationResults, FitFailure]] = {}
    for name in names:
        try:
            outcomes[name] = _fit_exposure(design, name, outcome, adjustments, standardize)
        except RECOVERABLE_ERRORS as exc:
            outcomes[name] = _failure(name, exc)
        progress.update(1)
    return outcomes


def _run_pool(design, names, outcome, adjustments, standardize, progress,
              n_workers: int, timeout: Optional[float]):
    outcomes: Dict[str, Union[AssociationResults, FitFailure]] = {}
    started: Dict[str, float] = {}
    n_workers = max(1, n_workers)
    queue = deque(names)

    def task(name: str) -> AssociationResults:
        started[name] = time.monotonic()
        return _fit_exposure(design, name, outcome, adjustments, standardize)

    executor = ThreadPoolExecutor(max_workers=n_workers)
    pending: Dict[Future, str] = {}
    try:
        while queue or pending:
            # At most n_workers live fits, so every submission starts at once
            while queue and len(pending) < n_workers:
                name = queue.popleft()
                pending[executor.submit(task, name)] = name

            wait_for = POLL_INTERVAL if timeout is not None else None
            done, _ = wait(list(pending), timeout=wait_for, return_when=FIRST_COMPLETED)
            for future in done:
                name = pending.pop(future)
                try:
                    outcomes[name] = future.result()
                except RECOVERABLE_ERRORS as exc:
                    outcomes[name] = _failure(name, exc)
                progress.update(1)

            if timeout is None:
                continue
            now = time.monotonic()
            expired = [
                (future, name) for future, name in pending.items()
                if name in started and now - started[name] > timeout and not future.done()
            ]
            for future, name in expired:
                pending.pop(future)
                outcomes[name] = FitFailure(
                    variable=name,
                    error_type='TimeoutError',
                    message=f"fit exceeded {timeout:g}s",
                )
                progress.update(1)
            if expired:
                # Abandoned fits keep their threads; later fits get a fresh pool
                executor.shutdown(wait=False)
                executor = ThreadPoolExecutor(max_workers=n_workers)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
    return outcomes


def run_screen(design: SurveyDesign,
               exposures: Sequence[Union[str, ExposureVariable]],
               outcome: str,
               adjustments: Sequence[str],
               *,
               standardize: bool = True,
               n_workers: int = 1,
               timeout: Optional[float] = None,
               verbose: bool = False) -> ScreenResults:
    """Screen every exposure for association with the outcome

    Args:
        design: Survey design shared by all fits (never modified)
        exposures: Exposure names or ExposureVariables; duplicates are
            removed and the screen runs in ascending name order
        outcome: Outcome column
        adjustments: Adjustment covariate columns
        standardize: Standardize outcome and exposure in each model
        n_workers: Threads used for fitting; 1 runs sequentially
        timeout: Optional per-fit limit in seconds; a fit that runs longer
            is recorded as a failure and its worker is replaced, so the
            remaining exposures do not wait on it
        verbose: Print a summary and show a progress bar

    Returns:
        ScreenResults with one row per successful exposure, all term rows,
        and the failures

    Raises:
        ValueError: Empty exposure list
        InvalidDesignError: Outcome or adjustment column not in the design
            or not numeric
    """
    names = _sorted_exposure_names(exposures)
    if not names:
        raise ValueError("No exposure variables to screen")
    adjustments = list(adjustments)
    for col in [outcome] + adjustments:
        if not design.has_column(col):
            raise InvalidDesignError(f"Column not in design data: {col}")
        if not is_numeric_dtype(design.data[col]):
            raise InvalidDesignError(
                f"Column {col} is not numeric; encode categorical covariates as indicator columns"
            )

    if verbose:
        print(f"Screening {len(names)} exposures against {outcome} "
              f"({len(adjustments)} adjustment covariates, {design.n_obs} participants)")

    with tqdm(total=len(names), desc="XWAS", unit="exposure", disable=not verbose) as progress:
        if n_workers <= 1 and timeout is None:
            outcomes = _run_sequential(design, names, outcome, adjustments, standardize, progress)
        else:
            outcomes = _run_pool(design, names, outcome, adjustments, standardize,
                                 progress, n_workers, timeout)

    parts: List[AssociationResults] = []
    failures: List[FitFailure] = []
    for name in names:
        result = outcomes[name]
        if isinstance(result, FitFailure):
            failures.append(result)
        else:
            parts.append(result)

    all_terms = AssociationResults.concat(parts)
    results = all_terms.drop_terms([INTERCEPT_TERM] + adjustments)

    if verbose:
        print(f"XWAS screen complete. {results.n_rows}/{len(names)} exposures tested, "
              f"{len(failures)} failed")
        for failure in failures:
            print(f"   {failure.variable}: {failure.error_type}: {failure.message}")

    return ScreenResults(results=results, all_terms=all_terms, failures=failures)


def screen_summary(screen: ScreenResults) -> Tuple[int, int, float]:
    """(tested, failed, minimum p-value) for a screen"""
    pvals = screen.results.pvalues
    min_p = float(np.nanmin(pvals)) if pvals.size and np.any(np.isfinite(pvals)) else np.nan
    return screen.n_tested, screen.n_failed, min_p
