"""
Data loading and preparation for XWAS analyses
"""

import warnings
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from ..config import LOG_EPSILON
from ..utils.data_types import ExposureVariable

CATALOG_COLUMNS = ('variable', 'category', 'description')


def detect_file_format(filepath: Union[str, Path]) -> str:
    """Detect a delimited table format from extension, then content

    Returns:
        'csv' or 'tsv'
    """
    filepath = Path(filepath)
    name_lower = filepath.name.lower()
    if name_lower.endswith(('.tsv', '.tsv.gz', '.txt', '.txt.gz')):
        return 'tsv'
    if name_lower.endswith(('.csv', '.csv.gz')):
        return 'csv'

    with open(filepath, 'r') as handle:
        first_line = handle.readline()
    if '\t' in first_line and first_line.count('\t') >= first_line.count(','):
        return 'tsv'
    return 'csv'


def _read_table(filepath: Union[str, Path], **kwargs) -> pd.DataFrame:
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"File not found: {filepath}")
    sep = '\t' if detect_file_format(filepath) == 'tsv' else ','
    return pd.read_csv(filepath, sep=sep, **kwargs)


def load_dataset(filepath: Union[str, Path],
                 columns: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """Load the participant-level dataset

    Args:
        filepath: CSV/TSV file with one row per participant
        columns: Optional subset of columns to keep; all must be present

    Returns:
        DataFrame
    """
    df = _read_table(filepath)
    if columns is not None:
        missing = [c for c in columns if c not in df.columns]
        if missing:
            raise ValueError(f"Dataset is missing columns: {missing}")
        df = df[list(columns)]
    return df


def load_catalog(filepath: Union[str, Path],
                 variable_column: str = 'var',
                 category_column: str = 'category',
                 description_column: str = 'var_desc') -> pd.DataFrame:
    """Load the data catalog (variable name, category, description)

    The returned frame always has the columns 'variable', 'category' and
    'description'; categories are lower-cased and stripped. When a variable
    is listed more than once the first entry wins.
    """
    df = _read_table(filepath, dtype=str)
    return normalize_catalog(df, variable_column, category_column, description_column)


def normalize_catalog(df: pd.DataFrame,
                      variable_column: str = 'var',
                      category_column: str = 'category',
                      description_column: str = 'var_desc') -> pd.DataFrame:
    """Rename and clean catalog columns to 'variable', 'category', 'description'"""
    rename = {variable_column: 'variable',
              category_column: 'category',
              description_column: 'description'}
    missing = [src for src, dst in rename.items() if src not in df.columns and dst not in df.columns]
    if missing:
        raise ValueError(f"Catalog is missing columns: {missing}")
    out = df.rename(columns={k: v for k, v in rename.items() if k in df.columns})
    out = out[list(CATALOG_COLUMNS)].copy()
    out['variable'] = out['variable'].astype(str).str.strip()
    out['category'] = out['category'].fillna('').astype(str).str.strip().str.lower()
    out['description'] = out['description'].fillna('').astype(str).str.strip()
    return out.drop_duplicates('variable', keep='first').reset_index(drop=True)


def select_exposures(catalog: pd.DataFrame,
                     categories: Iterable[str],
                     exclude: Iterable[str] = (),
                     available: Optional[Iterable[str]] = None) -> List[ExposureVariable]:
    """Pick the exposures to screen from the catalog

    An exposure is selected when its category is in `categories` and its
    name is not in `exclude`. With `available` (e.g. dataset columns),
    selected names absent from it are dropped with a warning.

    Returns:
        ExposureVariables sorted by name
    """
    wanted = {c.strip().lower() for c in categories}
    excluded = set(exclude)
    rows = catalog.loc[catalog['category'].isin(wanted) & ~catalog['variable'].isin(excluded)]

    if available is not None:
        available = set(available)
        absent = sorted(set(rows['variable']) - available)
        if absent:
            warnings.warn(
                f"{len(absent)} catalog exposures not found in dataset and skipped: "
                f"{', '.join(absent[:10])}{' ...' if len(absent) > 10 else ''}"
            )
        rows = rows.loc[rows['variable'].isin(available)]

    exposures = [
        ExposureVariable(name=r.variable, category=r.category, description=r.description)
        for r in rows.itertuples(index=False)
    ]
    return sorted(exposures, key=lambda e: e.name)


def prepare_cohort(data: pd.DataFrame, weight_column: str) -> pd.DataFrame:
    """Keep participants with a strictly positive weight

    Rows with zero, negative or missing weight in `weight_column` are
    dropped. Returns a new frame; `data` is not modified.
    """
    if weight_column not in data.columns:
        raise ValueError(f"Missing weight column: {weight_column}")
    weights = pd.to_numeric(data[weight_column], errors='coerce')
    keep = weights.notna() & (weights > 0)
    return data.loc[keep].reset_index(drop=True)


def log_transform(data: pd.DataFrame,
                  columns: Sequence[str],
                  epsilon: float = LOG_EPSILON) -> pd.DataFrame:
    """Natural log of exposure columns on a copy of the data

    `epsilon` is added before taking the log so zero readings map to
    log(epsilon) instead of -inf. Negative readings become NaN with a
    warning. The input frame is left untouched; build a new SurveyDesign
    on the returned frame.
    """
    out = data.copy()
    for col in columns:
        if col not in out.columns:
            raise ValueError(f"Cannot log-transform missing column: {col}")
        values = pd.to_numeric(out[col], errors='coerce').to_numpy(dtype=np.float64)
        negative = values < 0
        if np.any(negative):
            warnings.warn(f"{col}: {int(negative.sum())} negative values set to missing before log")
            values = np.where(negative, np.nan, values)
        out[col] = np.log(values + epsilon)
    return out
