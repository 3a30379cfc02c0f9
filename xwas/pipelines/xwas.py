"""
XWAS Pipeline Module

Object-oriented wrapper around the XWAS core: it loads the dataset and data
catalog, selects exposures, restricts to participants with positive weight,
log-transforms exposures on a copy, builds the survey design, runs the
screen, applies FDR correction and writes result tables and plots.
"""

import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .. import config
from ..association.screen import run_screen, screen_summary
from ..data.loaders import (
    load_catalog, load_dataset, log_transform, normalize_catalog,
    prepare_cohort, select_exposures,
)
from ..survey.design import SurveyDesign
from ..utils.data_types import CorrectedResults, ExposureVariable, ScreenResults
from ..utils.stats import correct_results, pvalue_inflation_factor

OUTPUT_CHOICES: Tuple[str, ...] = (
    'all_results',
    'significant_results',
    'failures',
    'summary',
    'volcano',
)


class XWASPipeline:
    """
    High-level pipeline for an X-wide association study (XWAS).

    Typical workflow:
        1. Initialize pipeline with output directory
        2. Load (or set) the dataset and data catalog
        3. Select exposures by catalog category
        4. Build the survey design (weight filter + log transform)
        5. Run the screen and FDR correction
        6. Results are saved to the output directory

    Attributes:
        data (DataFrame): Participants with positive weight, original scale
        analysis_data (DataFrame): Copy of `data` with exposures log-transformed
        catalog (DataFrame): Data catalog ('variable', 'category', 'description')
        exposures (list): Selected ExposureVariables
        design (SurveyDesign): Design built on `analysis_data`
        screen (ScreenResults): Raw screen output
        corrected (CorrectedResults): FDR-corrected results

    Example:
        >>> pipeline = XWASPipeline(output_dir='./telomere_xwas')
        >>> pipeline.load_data('nhanes.csv', 'catalog.csv')
        >>> pipeline.select_exposures(categories=['heavy metals', 'pcbs'])
        >>> pipeline.build_design(weight_column='WTMEC4YR')
        >>> pipeline.run_analysis(outcome='TELOMEAN', adjustments=['RIDAGEYR', 'female'])
    """

    def __init__(self, output_dir: str = "./XWAS_results", verbose: bool = True):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.verbose = verbose

        self.raw_data: Optional[pd.DataFrame] = None
        self.data: Optional[pd.DataFrame] = None
        self.analysis_data: Optional[pd.DataFrame] = None
        self.catalog: Optional[pd.DataFrame] = None
        self.exposures: List[ExposureVariable] = []

        self.design: Optional[SurveyDesign] = None
        self.screen: Optional[ScreenResults] = None
        self.corrected: Optional[CorrectedResults] = None
        self.summary: Dict[str, Any] = {}

    def log(self, message: str):
        """Internal logger"""
        if self.verbose:
            print(message)

    def log_step(self, step_name: str, start_time: Optional[float] = None):
        """Log a pipeline step with optional timing"""
        if start_time is not None:
            elapsed = time.time() - start_time
            self.log(f"{step_name} completed in {elapsed:.2f} seconds")
        else:
            self.log(f"{step_name}...")

    def load_data(self,
                  data_file: Union[str, Path],
                  catalog_file: Union[str, Path],
                  catalog_variable_column: str = 'var',
                  catalog_category_column: str = 'category',
                  catalog_description_column: str = 'var_desc'):
        """Load the participant dataset and the data catalog from CSV/TSV"""
        start = time.time()
        self.log_step("Loading data")
        data = load_dataset(data_file)
        catalog = load_catalog(
            catalog_file,
            variable_column=catalog_variable_column,
            category_column=catalog_category_column,
            description_column=catalog_description_column,
        )
        self.set_data(data, catalog)
        self.log(f"   Loaded {len(data)} participants x {data.shape[1]} columns, "
                 f"{len(catalog)} catalog entries")
        self.log_step("Loading data", start)

    def set_data(self, data: pd.DataFrame, catalog: pd.DataFrame):
        """Use in-memory dataset and catalog"""
        self.raw_data = data
        self.catalog = normalize_catalog(catalog)

    def select_exposures(self,
                         categories: Sequence[str] = config.DEFAULT_CATEGORIES,
                         exclude: Sequence[str] = config.DEFAULT_EXCLUDE) -> List[ExposureVariable]:
        """Choose exposures by catalog category, minus excluded names"""
        if self.raw_data is None or self.catalog is None:
            raise ValueError("Load data before selecting exposures")
        self.exposures = select_exposures(
            self.catalog, categories, exclude=exclude, available=self.raw_data.columns
        )
        self.log(f"   Selected {len(self.exposures)} exposures from "
                 f"{len(set(c.lower() for c in categories))} categories")
        if not self.exposures:
            raise ValueError("No exposures selected; check categories and catalog")
        return self.exposures

    def build_design(self,
                     cluster_column: str = config.DEFAULT_CLUSTER_COLUMN,
                     stratum_column: str = config.DEFAULT_STRATUM_COLUMN,
                     weight_column: str = config.DEFAULT_WEIGHT_COLUMN,
                     log_exposures: bool = True,
                     epsilon: float = config.LOG_EPSILON,
                     lonely_psu: str = 'fail') -> SurveyDesign:
        """Filter to positive weights, log-transform exposures and build the design

        The log transform works on a copy; `data` keeps the original scale.
        """
        if self.raw_data is None:
            raise ValueError("Load data before building the design")
        start = time.time()
        self.log_step("Building survey design")

        self.data = prepare_cohort(self.raw_data, weight_column)
        dropped = len(self.raw_data) - len(self.data)
        if dropped:
            self.log(f"   Dropped {dropped} participants with non-positive or missing {weight_column}")

        if log_exposures and self.exposures:
            self.analysis_data = log_transform(
                self.data, [e.name for e in self.exposures], epsilon=epsilon
            )
        else:
            self.analysis_data = self.data

        self.design = SurveyDesign(
            self.analysis_data,
            cluster_column=cluster_column,
            stratum_column=stratum_column,
            weight_column=weight_column,
            lonely_psu=lonely_psu,
        )
        self.summary.update({
            'weight_column': weight_column,
            'log_transformed': bool(log_exposures),
            'log_epsilon': epsilon if log_exposures else np.nan,
            'n_participants': self.design.n_obs,
            'n_psu': self.design.n_psu,
            'n_strata': self.design.n_strata,
        })
        self.log(f"   {self.design}")
        self.log_step("Building survey design", start)
        return self.design

    def run_analysis(self,
                     outcome: str = config.DEFAULT_OUTCOME,
                     adjustments: Sequence[str] = config.DEFAULT_ADJUSTMENTS,
                     fdr_level: float = config.DEFAULT_FDR_LEVEL,
                     n_workers: int = 1,
                     timeout: Optional[float] = None,
                     outputs: Optional[Sequence[str]] = None,
                     save: bool = True) -> CorrectedResults:
        """Run the screen, correct for multiple testing and save results"""
        if self.design is None:
            raise ValueError("Build the survey design before running the analysis")
        if not self.exposures:
            raise ValueError("No exposures selected")

        start = time.time()
        self.log_step(f"Running XWAS for {outcome}")
        self.screen = run_screen(
            self.design,
            self.exposures,
            outcome,
            adjustments,
            n_workers=n_workers,
            timeout=timeout,
            verbose=self.verbose,
        )
        self.corrected = correct_results(self.screen, fdr_level=fdr_level, catalog=self.exposures)

        tested, failed, min_p = screen_summary(self.screen)
        inflation = pvalue_inflation_factor(self.screen.results.pvalues)
        threshold = self.corrected.threshold
        self.summary.update({
            'outcome': outcome,
            'adjustments': ';'.join(adjustments),
            'n_exposures': len(self.exposures),
            'n_tested': tested,
            'n_failed': failed,
            'n_significant': self.corrected.n_significant,
            'fdr_level': fdr_level,
            'pvalue_threshold': threshold if threshold is not None else np.nan,
            'min_pvalue': min_p,
            'pvalue_inflation': inflation,
        })

        self.log(f"   P-value inflation (median chi-square ratio): {inflation:.3f}")
        if threshold is None:
            self.log(f"   No exposure passes FDR < {fdr_level:g}")
        else:
            self.log(f"   {self.corrected.n_significant} exposures pass FDR < {fdr_level:g} "
                     f"(p-value threshold {threshold:.3e})")
        self.log_step(f"XWAS for {outcome}", start)

        if save:
            self.save_results(outputs)
        return self.corrected

    def save_results(self, outputs: Optional[Sequence[str]] = None) -> Dict[str, Path]:
        """Write the selected outputs to the output directory"""
        if self.corrected is None:
            raise ValueError("No results to save; run the analysis first")
        outputs = list(outputs) if outputs else list(OUTPUT_CHOICES)
        written: Dict[str, Path] = {}

        if 'all_results' in outputs:
            path = self.output_dir / "XWAS_all_results.csv"
            self.corrected.to_dataframe().to_csv(path, index=False)
            written['all_results'] = path
        if 'significant_results' in outputs:
            path = self.output_dir / "XWAS_significant_results.csv"
            self.corrected.significant().to_csv(path, index=False)
            written['significant_results'] = path
        if 'failures' in outputs:
            path = self.output_dir / "XWAS_failures.csv"
            self.corrected.failures_dataframe().to_csv(path, index=False)
            written['failures'] = path
        if 'summary' in outputs:
            path = self.output_dir / "XWAS_summary.csv"
            pd.DataFrame([self.summary]).to_csv(path, index=False)
            written['summary'] = path
        if 'volcano' in outputs:
            from ..visualization.volcano import save_volcano_plot
            path = self.output_dir / "XWAS_volcano.png"
            save_volcano_plot(self.corrected, path, title=f"XWAS: {self.summary.get('outcome', '')}")
            written['volcano'] = path

        for key, path in written.items():
            self.log(f"   Saved {key} to {path}")
        return written
