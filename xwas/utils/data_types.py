"""
Core data structures for pyXWAS package
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from ..config import INTERCEPT_TERM

TRANSFORMS: Tuple[str, ...] = ('identity', 'log', 'standardize')

RESULT_COLUMNS: List[str] = [
    'variable', 'term', 'estimate', 'std_error', 'statistic', 'pvalue', 'n', 'df'
]

FAILURE_COLUMNS: List[str] = ['variable', 'error_type', 'message']


@dataclass(frozen=True)
class ExposureVariable:
    """Candidate exposure drawn from the data catalog"""

    name: str
    category: str = ''
    description: str = ''


@dataclass(frozen=True)
class FormulaTerm:
    """One column of a model, optionally transformed before fitting"""

    column: str
    transform: str = 'identity'

    def __post_init__(self):
        if self.transform not in TRANSFORMS:
            raise ValueError(
                f"Unknown transform '{self.transform}'; expected one of {TRANSFORMS}"
            )

    @property
    def label(self) -> str:
        """Name of the term as it appears in model output"""
        if self.transform == 'identity':
            return self.column
        return f"{self.transform}({self.column})"


def _as_term(term: Union[str, FormulaTerm]) -> FormulaTerm:
    if isinstance(term, FormulaTerm):
        return term
    return FormulaTerm(str(term))


@dataclass(frozen=True)
class FormulaSpec:
    """Outcome plus ordered predictor terms; an intercept is always fitted"""

    outcome: FormulaTerm
    predictors: Tuple[FormulaTerm, ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, 'outcome', _as_term(self.outcome))
        object.__setattr__(self, 'predictors', tuple(_as_term(t) for t in self.predictors))
        labels = [t.label for t in self.predictors]
        if len(set(labels)) != len(labels):
            raise ValueError(f"Duplicate predictor terms in formula: {labels}")

    @property
    def columns(self) -> List[str]:
        """Distinct data columns referenced by the formula, outcome first"""
        seen = []
        for term in (self.outcome,) + self.predictors:
            if term.column not in seen:
                seen.append(term.column)
        return seen

    @property
    def term_labels(self) -> List[str]:
        """Coefficient labels in fit order, intercept first"""
        return [INTERCEPT_TERM] + [t.label for t in self.predictors]

    def __str__(self) -> str:
        rhs = ' + '.join(t.label for t in self.predictors) or '1'
        return f"{self.outcome.label} ~ {rhs}"


class AssociationResults:
    """Association statistics, one row per (exposure, regression term)

    Standard columns: variable, term, estimate, std_error, statistic,
    pvalue, n, df
    """

    def __init__(self, data: Optional[pd.DataFrame] = None):
        if data is None:
            data = pd.DataFrame(columns=RESULT_COLUMNS)
        missing = [c for c in RESULT_COLUMNS if c not in data.columns]
        if missing:
            raise ValueError(f"Missing required result columns: {missing}")
        self.data = data.reset_index(drop=True)

    @classmethod
    def concat(cls, parts: Iterable['AssociationResults']) -> 'AssociationResults':
        """Append result tables, preserving their order"""
        frames = [p.data for p in parts if p.n_rows > 0]
        if not frames:
            return cls()
        return cls(pd.concat(frames, ignore_index=True))

    @property
    def n_rows(self) -> int:
        """Number of result rows"""
        return len(self.data)

    @property
    def variables(self) -> List[str]:
        """Exposure names in row order"""
        return self.data['variable'].tolist()

    @property
    def terms(self) -> List[str]:
        """Term labels in row order"""
        return self.data['term'].tolist()

    @property
    def pvalues(self) -> np.ndarray:
        """Raw p-values"""
        return self.data['pvalue'].to_numpy(dtype=float)

    @property
    def effects(self) -> np.ndarray:
        """Point estimates"""
        return self.data['estimate'].to_numpy(dtype=float)

    def with_variable(self, name: str) -> 'AssociationResults':
        """Return a copy with every row tagged by exposure name"""
        df = self.data.copy()
        df['variable'] = name
        return AssociationResults(df)

    def drop_terms(self, terms: Sequence[str]) -> 'AssociationResults':
        """Return the rows whose term is not in `terms`"""
        keep = ~self.data['term'].isin(list(terms))
        return AssociationResults(self.data.loc[keep])

    def to_dataframe(self) -> pd.DataFrame:
        """Convert to pandas DataFrame"""
        return self.data[RESULT_COLUMNS].copy()

    def __len__(self) -> int:
        return self.n_rows

    def __repr__(self) -> str:
        return f"AssociationResults(n_rows={self.n_rows})"


@dataclass(frozen=True)
class FitFailure:
    """An exposure that produced no usable result, and why"""

    variable: str
    error_type: str
    message: str


def failures_to_dataframe(failures: Sequence[FitFailure]) -> pd.DataFrame:
    """Tabulate fit failures"""
    return pd.DataFrame(
        [(f.variable, f.error_type, f.message) for f in failures],
        columns=FAILURE_COLUMNS,
    )


@dataclass
class ScreenResults:
    """Output of one XWAS screen

    Attributes:
        results: One row per successfully analysed exposure (its own term)
        all_terms: Every term row from every successful fit
        failures: Exposures with no usable result
    """

    results: AssociationResults
    all_terms: AssociationResults
    failures: List[FitFailure] = field(default_factory=list)

    @property
    def n_tested(self) -> int:
        return self.results.n_rows

    @property
    def n_failed(self) -> int:
        return len(self.failures)

    @property
    def failed_variables(self) -> List[str]:
        return [f.variable for f in self.failures]

    def failures_dataframe(self) -> pd.DataFrame:
        return failures_to_dataframe(self.failures)


@dataclass
class CorrectedResults:
    """Screen results with multiple-testing adjusted p-values

    Attributes:
        data: Result rows with added pvalue_by, pvalue_bonferroni and
            significant columns (plus category/description when a catalog
            was merged), ordered by pvalue_by then variable
        fdr_level: FDR level used for the significant flag
        threshold: Largest raw p-value still significant, or None when
            no exposure passes
        failures: Exposures with no usable result, carried from the screen
    """

    data: pd.DataFrame
    fdr_level: float
    threshold: Optional[float] = None
    failures: List[FitFailure] = field(default_factory=list)

    @property
    def n_significant(self) -> int:
        if self.data.empty:
            return 0
        return int(self.data['significant'].sum())

    @property
    def is_empty(self) -> bool:
        return self.data.empty

    def significant(self) -> pd.DataFrame:
        """Rows passing the FDR level"""
        if self.data.empty:
            return self.data.copy()
        return self.data.loc[self.data['significant']].reset_index(drop=True)

    def to_dataframe(self) -> pd.DataFrame:
        return self.data.copy()

    def failures_dataframe(self) -> pd.DataFrame:
        return failures_to_dataframe(self.failures)
