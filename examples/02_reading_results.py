#!/usr/bin/env python3
"""
Example 02: Reading XWAS Results

Loads the tables written by example 01 and shows how to filter and
re-plot them.

Prerequisites: Run example 01 first; this script reads from
'./example01_results/'.
"""

import matplotlib.pyplot as plt
import pandas as pd

from xwas.visualization.volcano import create_volcano_plot


def main():
    results = pd.read_csv('example01_results/XWAS_all_results.csv')
    failures = pd.read_csv('example01_results/XWAS_failures.csv')

    print(f"Exposures tested: {len(results)}")
    print(f"Exposures failed: {len(failures)}")
    print(f"\nColumns: {list(results.columns)}")

    hits = results[results['significant']]
    print(f"\nFDR-significant exposures: {len(hits)}")
    print(hits[['variable', 'description', 'estimate', 'std_error', 'pvalue', 'pvalue_by']].to_string(index=False))

    print("\nTop exposures by category:")
    top = results.sort_values('pvalue_by').groupby('category').head(1)
    print(top[['category', 'variable', 'estimate', 'pvalue_by']].to_string(index=False))

    if not failures.empty:
        print("\nFailures by type:")
        print(failures['error_type'].value_counts().to_string())

    # Label only significant exposures
    fig = create_volcano_plot(results, title="Telomere length XWAS", label_top=len(hits))
    fig.savefig('example01_results/volcano_labeled.png', dpi=150)
    plt.close(fig)


if __name__ == '__main__':
    main()
