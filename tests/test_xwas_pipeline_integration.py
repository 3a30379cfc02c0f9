"""Integration tests for XWASPipeline end-to-end workflows."""

import importlib.util
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from xwas.pipelines.xwas import XWASPipeline
from xwas.utils.errors import InvalidDesignError

ADJUSTMENTS = ['RIDAGEYR', 'female']
ROOT = Path(__file__).resolve().parent.parent


@pytest.fixture
def synthetic_data(tmp_path: Path):
    """NHANES-like dataset (15 strata x 2 PSUs x 10 participants) and catalog."""
    rng = np.random.default_rng(42)
    n_strata, n_psu, per_psu = 15, 2, 10
    n = n_strata * n_psu * per_psu

    cotinine = rng.lognormal(mean=0.0, sigma=1.0, size=n)
    lead = rng.lognormal(mean=0.5, sigma=0.5, size=n)
    cadmium = rng.lognormal(mean=-1.0, sigma=0.7, size=n)
    age = rng.uniform(20, 85, size=n)
    female = rng.integers(0, 2, size=n)
    telomere = 1.0 + 0.4 * np.log(cotinine) - 0.005 * age + rng.normal(scale=0.5, size=n)

    weights = rng.uniform(5000, 40000, size=n)
    weights[[3, 77]] = 0.0

    data = pd.DataFrame({
        'SEQN': np.arange(1, n + 1),
        'SDMVSTRA': np.repeat(np.arange(1, n_strata + 1), n_psu * per_psu),
        'SDMVPSU': np.tile(np.repeat([1, 2], per_psu), n_strata),
        'WTMEC4YR': weights,
        'RIDAGEYR': age,
        'female': female,
        'TELOMEAN': telomere,
        'LBXCOT': cotinine,
        'LBXBPB': lead,
        'LBXBCD': cadmium,
        'LBXBMN': np.full(n, 9.5),
        'LBXPCB': rng.lognormal(size=n),
    })
    data.loc[[10, 11], 'LBXBCD'] = np.nan

    catalog = pd.DataFrame({
        'var': ['LBXCOT', 'LBXBPB', 'LBXBCD', 'LBXBMN', 'LBXPCB', 'LBXBHG'],
        'category': ['cotinine', 'heavy metals', 'heavy metals', 'heavy metals', 'pcbs', 'heavy metals'],
        'var_desc': ['Cotinine', 'Lead', 'Cadmium', 'Manganese', 'PCB 153', 'Mercury'],
    })

    data_file = tmp_path / "nhanes.csv"
    catalog_file = tmp_path / "catalog.csv"
    data.to_csv(data_file, index=False)
    catalog.to_csv(catalog_file, index=False)
    return data_file, catalog_file


def _run(data_file, catalog_file, output_dir, **kwargs) -> XWASPipeline:
    pipeline = XWASPipeline(output_dir=str(output_dir), verbose=False)
    pipeline.load_data(data_file, catalog_file)
    with pytest.warns(UserWarning, match="LBXBHG"):
        pipeline.select_exposures(categories=['cotinine', 'heavy metals'])
    pipeline.build_design()
    pipeline.run_analysis(outcome='TELOMEAN', adjustments=ADJUSTMENTS, **kwargs)
    return pipeline


def test_pipeline_end_to_end(synthetic_data, tmp_path: Path) -> None:
    data_file, catalog_file = synthetic_data
    out_dir = tmp_path / "results"

    pipeline = _run(data_file, catalog_file, out_dir)

    assert [e.name for e in pipeline.exposures] == ['LBXBCD', 'LBXBMN', 'LBXBPB', 'LBXCOT']
    assert pipeline.design.n_obs == 298
    assert pipeline.design.n_psu == 30

    # original-scale data is kept apart from the analysis copy
    assert pipeline.data['LBXCOT'].min() > 0
    np.testing.assert_allclose(pipeline.analysis_data['LBXCOT'],
                               np.log(pipeline.data['LBXCOT'] + 1e-10))

    all_results = pd.read_csv(out_dir / "XWAS_all_results.csv")
    assert sorted(all_results['variable']) == ['LBXBCD', 'LBXBPB', 'LBXCOT']
    assert all_results['variable'].iloc[0] == 'LBXCOT'
    assert {'pvalue_by', 'pvalue_bonferroni', 'significant', 'category', 'description'} <= set(all_results.columns)
    assert all_results.loc[all_results['variable'] == 'LBXBCD', 'n'].item() == 296

    significant = pd.read_csv(out_dir / "XWAS_significant_results.csv")
    assert 'LBXCOT' in set(significant['variable'])

    failures = pd.read_csv(out_dir / "XWAS_failures.csv")
    assert failures['variable'].tolist() == ['LBXBMN']
    assert failures['error_type'].tolist() == ['SingularFitError']

    summary = pd.read_csv(out_dir / "XWAS_summary.csv").iloc[0]
    assert summary['outcome'] == 'TELOMEAN'
    assert summary['n_exposures'] == 4
    assert summary['n_tested'] == 3
    assert summary['n_failed'] == 1
    assert summary['n_participants'] == 298
    assert summary['pvalue_threshold'] > 0
    assert np.isfinite(summary['pvalue_inflation'])

    assert (out_dir / "XWAS_volcano.png").exists()


def test_pipeline_respects_output_selection(synthetic_data, tmp_path: Path) -> None:
    data_file, catalog_file = synthetic_data
    out_dir = tmp_path / "subset"

    _run(data_file, catalog_file, out_dir, outputs=['summary'], n_workers=2)

    assert (out_dir / "XWAS_summary.csv").exists()
    assert not (out_dir / "XWAS_all_results.csv").exists()
    assert not (out_dir / "XWAS_volcano.png").exists()


def test_pipeline_parallel_matches_sequential(synthetic_data, tmp_path: Path) -> None:
    data_file, catalog_file = synthetic_data

    sequential = _run(data_file, catalog_file, tmp_path / "seq", outputs=['summary'])
    parallel = _run(data_file, catalog_file, tmp_path / "par", outputs=['summary'], n_workers=3)

    pd.testing.assert_frame_equal(sequential.corrected.to_dataframe(),
                                  parallel.corrected.to_dataframe())


def test_pipeline_requires_steps_in_order(synthetic_data, tmp_path: Path) -> None:
    data_file, catalog_file = synthetic_data
    pipeline = XWASPipeline(output_dir=str(tmp_path / "order"), verbose=False)

    with pytest.raises(ValueError, match="Load data"):
        pipeline.select_exposures(categories=['cotinine'])
    pipeline.load_data(data_file, catalog_file)
    with pytest.raises(ValueError, match="Build the survey design"):
        pipeline.run_analysis()
    with pytest.raises(ValueError, match="No exposures selected"):
        pipeline.select_exposures(categories=['phthalates'])
    with pytest.raises(ValueError, match="run the analysis"):
        pipeline.save_results()


def test_pipeline_lonely_psu_policy(synthetic_data, tmp_path: Path) -> None:
    data_file, catalog_file = synthetic_data
    data = pd.read_csv(data_file)
    # stratum 1 keeps only PSU 1
    data = data.loc[~((data['SDMVSTRA'] == 1) & (data['SDMVPSU'] == 2))]
    catalog = pd.read_csv(catalog_file)

    pipeline = XWASPipeline(output_dir=str(tmp_path / "lonely"), verbose=False)
    pipeline.set_data(data, catalog)
    pipeline.select_exposures(categories=['cotinine'])
    with pytest.raises(InvalidDesignError, match="single PSU"):
        pipeline.build_design()

    pipeline.build_design(lonely_psu='adjust')
    corrected = pipeline.run_analysis(outcome='TELOMEAN', adjustments=ADJUSTMENTS, save=False)
    assert corrected.to_dataframe()['variable'].tolist() == ['LBXCOT']


def _load_script():
    spec = importlib.util.spec_from_file_location("run_XWAS", ROOT / "scripts" / "run_XWAS.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_run_xwas_script(synthetic_data, tmp_path: Path) -> None:
    data_file, catalog_file = synthetic_data
    script = _load_script()
    out_dir = tmp_path / "cli"

    with pytest.warns(UserWarning):
        status = script.main([
            "--data", str(data_file),
            "--catalog", str(catalog_file),
            "--categories", "cotinine,heavy metals",
            "--adjust", "RIDAGEYR,female",
            "--outputdir", str(out_dir),
            "--outputs", "all_results", "failures",
            "--quiet",
        ])

    assert status == 0
    assert (out_dir / "XWAS_all_results.csv").exists()
    assert (out_dir / "XWAS_failures.csv").exists()
    assert not (out_dir / "XWAS_summary.csv").exists()

    assert script.main(["--data", str(tmp_path / "absent.csv"),
                        "--catalog", str(catalog_file),
                        "--outputdir", str(out_dir), "--quiet"]) == 1


def test_run_xwas_script_applies_exclusions(synthetic_data, tmp_path: Path) -> None:
    data_file, catalog_file = synthetic_data
    script = _load_script()
    out_dir = tmp_path / "excluded"

    with pytest.warns(UserWarning):
        status = script.main([
            "--data", str(data_file),
            "--catalog", str(catalog_file),
            "--categories", "cotinine,heavy metals",
            "--exclude", "LBXBPB,LBXBMN",
            "--adjust", "RIDAGEYR,female",
            "--outputdir", str(out_dir),
            "--outputs", "all_results", "failures", "summary",
            "--quiet",
        ])

    assert status == 0
    all_results = pd.read_csv(out_dir / "XWAS_all_results.csv")
    assert sorted(all_results['variable']) == ['LBXBCD', 'LBXCOT']
    assert pd.read_csv(out_dir / "XWAS_failures.csv").empty
    summary = pd.read_csv(out_dir / "XWAS_summary.csv").iloc[0]
    assert summary['n_exposures'] == 2
    assert summary['pvalue_inflation'] > 0
