"""
Single-exposure association model.

Each exposure gets one survey-weighted linear model:

    standardize(outcome) ~ standardize(exposure) + adjustment_1 + ... + adjustment_k

Outcome and exposure are scaled to zero mean and unit SD within the analysed
(complete-case) sample, so the exposure coefficient reads as "outcome SDs
per 1 SD of exposure". Adjustment covariates enter unstandardized.
"""

from typing import Sequence, Union

from ..survey.design import SurveyDesign
from ..utils.data_types import AssociationResults, ExposureVariable, FormulaSpec, FormulaTerm


def exposure_name(exposure: Union[str, ExposureVariable]) -> str:
    """Column name of an exposure given as a name or ExposureVariable"""
    if isinstance(exposure, ExposureVariable):
        return exposure.name
    return str(exposure)


def build_formula(exposure: Union[str, ExposureVariable],
                  adjustments: Sequence[str],
                  outcome: str,
                  *,
                  standardize: bool = True) -> FormulaSpec:
    """Build the model for one exposure

    Args:
        exposure: Exposure column (name or ExposureVariable)
        adjustments: Adjustment covariate columns, in model order
        outcome: Outcome column
        standardize: Standardize outcome and exposure (default). When False
            both enter on their raw scale.

    Returns:
        FormulaSpec whose first predictor is the exposure term
    """
    transform = 'standardize' if standardize else 'identity'
    name = exposure_name(exposure)
    if name in adjustments:
        raise ValueError(f"Exposure {name} is also an adjustment covariate")
    predictors = [FormulaTerm(name, transform)]
    predictors.extend(FormulaTerm(col) for col in adjustments)
    return FormulaSpec(outcome=FormulaTerm(outcome, transform), predictors=tuple(predictors))


def fit(design: SurveyDesign, formula: FormulaSpec) -> AssociationResults:
    """Fit one model and return every term's statistics

    Rows include the intercept and adjustment covariates; the exposure
    row is the one whose term equals formula.predictors[0].label. The
    variable column is left empty for the caller to tag.

    Raises:
        SingularFitError: Rank-deficient design matrix (constant or
            collinear exposure)
        FitError: Other numerical failure of the fit
    """
    return design.fit_weighted_linear_model(formula).to_results()
