"""
pyXWAS: X-wide association studies on complex survey data

Screens a panel of candidate exposures for association with one outcome
using survey-weighted linear regression (stratified, clustered, weighted
designs) and Benjamini-Yekutieli false discovery rate control.
"""

__version__ = "0.1.0"
__author__ = "pyXWAS Development Team"

from .survey.design import SurveyDesign, FittedModel
from .association.model import build_formula, fit
from .association.screen import run_screen
from .utils.data_types import (
    AssociationResults,
    CorrectedResults,
    ExposureVariable,
    FitFailure,
    FormulaSpec,
    FormulaTerm,
    ScreenResults,
)
from .utils.errors import FitError, InvalidDesignError, SingularFitError, XWASError
from .utils.stats import correct, correct_results, fdr_correction, significance_threshold
from .pipelines.xwas import XWASPipeline

__all__ = [
    'SurveyDesign',
    'FittedModel',
    'build_formula',
    'fit',
    'run_screen',
    'AssociationResults',
    'CorrectedResults',
    'ExposureVariable',
    'FitFailure',
    'FormulaSpec',
    'FormulaTerm',
    'ScreenResults',
    'FitError',
    'InvalidDesignError',
    'SingularFitError',
    'XWASError',
    'correct',
    'correct_results',
    'fdr_correction',
    'significance_threshold',
    'XWASPipeline',
]
