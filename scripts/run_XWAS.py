#!/usr/bin/env python3
"""
X-wide association study from the command line

Example:
    python scripts/run_XWAS.py --data nhanes_9902.csv --catalog catalog.csv \
        --outcome TELOMEAN --weight WTMEC4YR --fdr 0.05 --workers 4
"""
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from xwas.cli.utils import parse_args, split_list
from xwas.pipelines.xwas import XWASPipeline
from xwas.utils.errors import XWASError


def main(argv=None):
    args = parse_args(argv)

    pipeline = XWASPipeline(output_dir=args.outputdir, verbose=not args.quiet)

    try:
        pipeline.load_data(
            args.data,
            args.catalog,
            catalog_variable_column=args.catalog_variable_column,
            catalog_category_column=args.catalog_category_column,
            catalog_description_column=args.catalog_description_column,
        )
        pipeline.select_exposures(
            categories=split_list(args.categories),
            exclude=split_list(args.exclude),
        )
        pipeline.build_design(
            cluster_column=args.cluster,
            stratum_column=args.strata,
            weight_column=args.weight,
            log_exposures=args.log_transform,
            epsilon=args.log_epsilon,
            lonely_psu=args.lonely_psu,
        )
        pipeline.run_analysis(
            outcome=args.outcome,
            adjustments=split_list(args.adjust),
            fdr_level=args.fdr,
            n_workers=args.workers,
            timeout=args.timeout,
            outputs=args.outputs,
        )
    except (XWASError, ValueError, FileNotFoundError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print("\nXWAS Analysis Completed Successfully.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
