import argparse
from typing import List, Optional, Sequence

from .. import config
from ..pipelines.xwas import OUTPUT_CHOICES


def normalize_outputs(outputs: List[str]) -> List[str]:
    """Helper to normalize output choices"""
    if not outputs:
        return list(OUTPUT_CHOICES)
    valid = []
    for o in outputs:
        for part in str(o).split(','):
            part = part.strip().lower()
            if part in OUTPUT_CHOICES and part not in valid:
                valid.append(part)
    return valid if valid else list(OUTPUT_CHOICES)


def split_list(value: Optional[str]) -> List[str]:
    """Split a comma-separated argument, dropping empty entries"""
    if not value:
        return []
    return [v.strip() for v in value.split(',') if v.strip()]


def parse_args(argv: Optional[Sequence[str]] = None):
    """Parse command line arguments for the XWAS pipeline"""
    parser = argparse.ArgumentParser(
        description="X-wide association study with survey-weighted regression",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    # Required arguments
    parser.add_argument("--data", "-d", required=True,
                       help="Participant dataset (CSV/TSV)")
    parser.add_argument("--catalog", "-c", required=True,
                       help="Data catalog (CSV/TSV) with variable, category and description columns")

    # Catalog columns
    parser.add_argument("--catalog-variable-column", default='var',
                       help="Catalog column holding variable names")
    parser.add_argument("--catalog-category-column", default='category',
                       help="Catalog column holding categories")
    parser.add_argument("--catalog-description-column", default='var_desc',
                       help="Catalog column holding descriptions")

    # Model
    parser.add_argument("--outcome", "-y", default=config.DEFAULT_OUTCOME,
                       help="Outcome column")
    parser.add_argument("--adjust", default=','.join(config.DEFAULT_ADJUSTMENTS),
                       help="Comma-separated adjustment covariates")
    parser.add_argument("--categories", default=','.join(config.DEFAULT_CATEGORIES),
                       help="Comma-separated exposure categories to screen")
    parser.add_argument("--exclude", default=','.join(config.DEFAULT_EXCLUDE),
                       help="Comma-separated exposure names to skip, e.g. dust-exposure proxies "
                            "in the selected categories (none by default)")
    parser.add_argument("--no-log-transform", action='store_false', dest='log_transform',
                       help="Analyse exposures on their original scale")
    parser.add_argument("--log-epsilon", type=float, default=config.LOG_EPSILON,
                       help="Constant added before log-transforming exposures")

    # Survey design
    parser.add_argument("--cluster", default=config.DEFAULT_CLUSTER_COLUMN,
                       help="PSU (cluster) id column")
    parser.add_argument("--strata", default=config.DEFAULT_STRATUM_COLUMN,
                       help="Stratum id column")
    parser.add_argument("--weight", default=config.DEFAULT_WEIGHT_COLUMN,
                       help="Sampling weight column")
    parser.add_argument("--lonely-psu", default='fail', choices=list(config.LONELY_PSU_CHOICES),
                       help="Handling of strata with a single PSU")

    # Thresholds and execution
    parser.add_argument("--fdr", type=float, default=config.DEFAULT_FDR_LEVEL,
                       help="False discovery rate level (Benjamini-Yekutieli)")
    parser.add_argument("--workers", type=int, default=1,
                       help="Threads for fitting exposures")
    parser.add_argument("--timeout", type=float, default=None,
                       help="Per-exposure fit time limit in seconds")

    # Output
    parser.add_argument("--outputdir", "-o", default="./XWAS_results",
                       help="Output directory")
    parser.add_argument("--outputs", nargs='+',
                       default=list(OUTPUT_CHOICES),
                       help=f"Outputs to generate ({', '.join(OUTPUT_CHOICES)})")
    parser.add_argument("--quiet", action='store_true',
                       help="Suppress progress messages")

    parser.set_defaults(log_transform=True)
    args = parser.parse_args(argv)
    args.outputs = normalize_outputs(args.outputs)
    if args.fdr <= 0 or args.fdr >= 1:
        parser.error("--fdr must be between 0 and 1")
    return args
