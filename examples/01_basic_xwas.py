#!/usr/bin/env python3
"""
Example 01: Basic XWAS Analysis

This example runs the simplest XWAS workflow: screen every exposure in a few
catalog categories for association with mean telomere length, adjusting for
demographics, on an NHANES-style stratified cluster sample.

Prerequisites:
- nhanes_9902.csv: one row per participant with SDMVPSU, SDMVSTRA,
  WTMEC4YR, TELOMEAN, the adjustment covariates and the exposures
- catalog.csv: data catalog with var, category and var_desc columns
"""

from xwas.pipelines.xwas import XWASPipeline


def main():
    print("=" * 70)
    print("EXAMPLE 01: Basic XWAS Analysis")
    print("=" * 70)

    pipeline = XWASPipeline(output_dir='./example01_results')

    print("\n1. Loading data...")
    pipeline.load_data(
        data_file='nhanes_9902.csv',
        catalog_file='catalog.csv'
    )

    print("\n2. Selecting exposures...")
    pipeline.select_exposures(categories=['heavy metals', 'cotinine', 'pcbs'])

    # Participants with zero weight are dropped; exposures are log-transformed
    print("\n3. Building survey design...")
    pipeline.build_design(weight_column='WTMEC4YR')

    print("\n4. Running XWAS...")
    pipeline.run_analysis(
        outcome='TELOMEAN',
        adjustments=['RIDAGEYR', 'female', 'black', 'mexican', 'INDFMPIR'],
        fdr_level=0.05,
        n_workers=4
    )

    print("\n" + "=" * 70)
    print("Analysis Complete!")
    print("=" * 70)
    print("\nResults saved to: ./example01_results/")
    print("- XWAS_all_results.csv          (all exposures, ranked by FDR)")
    print("- XWAS_significant_results.csv  (exposures passing FDR < 0.05)")
    print("- XWAS_failures.csv             (exposures that could not be fitted)")
    print("- XWAS_summary.csv              (run summary)")
    print("- XWAS_volcano.png              (volcano plot)")


if __name__ == '__main__':
    main()
