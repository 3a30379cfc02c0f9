import numpy as np
import pandas as pd
import pytest

from xwas.utils.data_types import (
    AssociationResults, FitFailure, FormulaSpec, FormulaTerm, ScreenResults,
)
from xwas.utils.errors import FitError, InvalidDesignError, SingularFitError, XWASError


def test_formula_term_labels() -> None:
    assert FormulaTerm('LBXCOT').label == 'LBXCOT'
    assert FormulaTerm('LBXCOT', 'log').label == 'log(LBXCOT)'
    assert FormulaTerm('LBXCOT', 'standardize').label == 'standardize(LBXCOT)'
    with pytest.raises(ValueError, match="Unknown transform"):
        FormulaTerm('LBXCOT', 'sqrt')


def test_formula_spec_columns_and_terms() -> None:
    formula = FormulaSpec('y', ('x', FormulaTerm('x', 'log'), 'age'))

    assert formula.outcome == FormulaTerm('y')
    assert formula.columns == ['y', 'x', 'age']
    assert formula.term_labels == ['Intercept', 'x', 'log(x)', 'age']
    assert str(formula) == 'y ~ x + log(x) + age'
    assert str(FormulaSpec('y')) == 'y ~ 1'

    with pytest.raises(ValueError, match="Duplicate"):
        FormulaSpec('y', ('x', 'x'))


def _results(variable: str, terms) -> AssociationResults:
    n = len(terms)
    return AssociationResults(pd.DataFrame({
        'variable': variable,
        'term': terms,
        'estimate': np.arange(n, dtype=float),
        'std_error': 0.1,
        'statistic': 1.0,
        'pvalue': np.linspace(0.01, 0.5, n),
        'n': 50,
        'df': 10,
    }))


def test_association_results_concat_and_filter() -> None:
    first = _results('', ['Intercept', 'standardize(A)', 'age']).with_variable('A')
    second = _results('B', ['Intercept', 'standardize(B)', 'age'])

    merged = AssociationResults.concat([first, AssociationResults(), second])

    assert len(merged) == 6
    assert merged.variables == ['A'] * 3 + ['B'] * 3
    kept = merged.drop_terms(['Intercept', 'age'])
    assert kept.terms == ['standardize(A)', 'standardize(B)']
    np.testing.assert_allclose(kept.effects, [1.0, 1.0])
    assert list(kept.to_dataframe().index) == [0, 1]

    assert AssociationResults.concat([]).n_rows == 0
    with pytest.raises(ValueError, match="Missing required result columns"):
        AssociationResults(pd.DataFrame({'variable': ['A']}))


def test_screen_results_failures() -> None:
    screen = ScreenResults(
        results=AssociationResults(),
        all_terms=AssociationResults(),
        failures=[FitFailure('LBXA', 'TimeoutError', 'fit exceeded 5s')],
    )

    assert screen.n_tested == 0
    assert screen.n_failed == 1
    assert screen.failed_variables == ['LBXA']
    assert screen.failures_dataframe().iloc[0].tolist() == ['LBXA', 'TimeoutError', 'fit exceeded 5s']


def test_error_hierarchy() -> None:
    assert issubclass(SingularFitError, FitError)
    assert issubclass(FitError, XWASError)
    assert issubclass(FitError, RuntimeError)
    assert issubclass(InvalidDesignError, ValueError)
    assert issubclass(InvalidDesignError, XWASError)
