import sys
import pytest

from xwas import config
from xwas.cli import utils
from xwas.pipelines.xwas import OUTPUT_CHOICES


def test_normalize_outputs_defaults_and_filters() -> None:
    assert utils.normalize_outputs([]) == list(OUTPUT_CHOICES)
    assert utils.normalize_outputs([" volcano ", "summary", "unknown"]) == ["volcano", "summary"]
    assert utils.normalize_outputs(["all_results,failures", "failures"]) == ["all_results", "failures"]
    # all invalid falls back to defaults
    assert utils.normalize_outputs(["bad"]) == list(OUTPUT_CHOICES)


def test_split_list() -> None:
    assert utils.split_list(None) == []
    assert utils.split_list("") == []
    assert utils.split_list(" RIDAGEYR, female,,INDFMPIR ") == ["RIDAGEYR", "female", "INDFMPIR"]


def _run_parse_args(argv):
    orig = sys.argv
    try:
        sys.argv = argv
        return utils.parse_args()
    finally:
        sys.argv = orig


def test_parse_args_defaults(tmp_path) -> None:
    args = _run_parse_args(
        [
            "prog",
            "--data",
            str(tmp_path / "nhanes.csv"),
            "--catalog",
            str(tmp_path / "catalog.csv"),
        ]
    )
    assert args.data.endswith("nhanes.csv")
    assert args.catalog.endswith("catalog.csv")
    assert args.outcome == config.DEFAULT_OUTCOME
    assert utils.split_list(args.adjust) == list(config.DEFAULT_ADJUSTMENTS)
    assert utils.split_list(args.categories) == list(config.DEFAULT_CATEGORIES)
    assert utils.split_list(args.exclude) == []
    assert args.weight == "WTMEC4YR"
    assert args.cluster == "SDMVPSU"
    assert args.strata == "SDMVSTRA"
    assert args.lonely_psu == "fail"
    assert args.log_transform is True  # default
    assert args.fdr == pytest.approx(0.05)
    assert args.workers == 1
    assert args.timeout is None
    assert args.outputs == list(OUTPUT_CHOICES)


def test_parse_args_respects_overrides(tmp_path) -> None:
    args = utils.parse_args(
        [
            "-d",
            str(tmp_path / "d.tsv"),
            "-c",
            str(tmp_path / "c.tsv"),
            "-y",
            "BMXBMI",
            "--adjust",
            "RIDAGEYR,female",
            "--categories",
            "heavy metals,cotinine",
            "--weight",
            "WTMEC2YR",
            "--lonely-psu",
            "adjust",
            "--no-log-transform",
            "--fdr",
            "0.1",
            "--workers",
            "4",
            "--timeout",
            "30",
            "--outputs",
            "volcano",
            "summary",
            "--quiet",
        ]
    )
    assert args.outcome == "BMXBMI"
    assert utils.split_list(args.categories) == ["heavy metals", "cotinine"]
    assert args.weight == "WTMEC2YR"
    assert args.lonely_psu == "adjust"
    assert args.log_transform is False
    assert args.fdr == pytest.approx(0.1)
    assert args.workers == 4
    assert args.timeout == pytest.approx(30.0)
    assert args.outputs == ["volcano", "summary"]
    assert args.quiet is True


@pytest.mark.parametrize("level", ["0", "1", "1.5"])
def test_parse_args_rejects_fdr_outside_unit_interval(level) -> None:
    with pytest.raises(SystemExit):
        utils.parse_args(["-d", "d.csv", "-c", "c.csv", "--fdr", level])


def test_parse_args_requires_data_and_catalog() -> None:
    with pytest.raises(SystemExit):
        utils.parse_args(["--data", "d.csv"])
