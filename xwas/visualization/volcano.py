"""
Volcano plot for XWAS results
"""

import warnings
from pathlib import Path
from typing import Optional, Tuple, Union

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from matplotlib.figure import Figure

from ..utils.data_types import CorrectedResults


def create_volcano_plot(results: Union[CorrectedResults, pd.DataFrame],
                        threshold: Optional[float] = None,
                        title: str = "XWAS",
                        label_top: int = 10,
                        figsize: Tuple[float, float] = (7, 5),
                        point_size: float = 18.0,
                        significant_color: str = '#D55E00',
                        other_color: str = '#7F7F7F') -> Figure:
    """Effect size against -log10(p) for every screened exposure

    Args:
        results: Corrected results (or their DataFrame) with 'estimate',
            'pvalue', 'variable' and, optionally, 'significant'
        threshold: Raw p-value threshold drawn as a dashed line; defaults
            to the threshold stored on CorrectedResults
        title: Plot title
        label_top: Number of most significant exposures to annotate
        figsize: Figure size (width, height)
        point_size: Marker size
        significant_color: Colour for significant exposures
        other_color: Colour for the rest

    Returns:
        matplotlib Figure
    """
    if isinstance(results, CorrectedResults):
        if threshold is None:
            threshold = results.threshold
        df = results.to_dataframe()
    else:
        df = results.copy()

    fig, ax = plt.subplots(figsize=figsize)
    ax.set_xlabel("Effect (SD outcome per SD exposure)")
    ax.set_ylabel(r"$-\log_{10}(p)$")
    ax.set_title(title)

    if df.empty:
        warnings.warn("No results to plot")
        return fig

    pvals = df['pvalue'].to_numpy(dtype=float)
    effects = df['estimate'].to_numpy(dtype=float)
    valid = np.isfinite(pvals) & np.isfinite(effects) & (pvals > 0)
    if not valid.any():
        warnings.warn("No valid p-values found for volcano plot")
        return fig

    neglog = np.full(pvals.shape, np.nan)
    neglog[valid] = -np.log10(pvals[valid])
    if 'significant' in df.columns:
        sig = df['significant'].to_numpy(dtype=bool) & valid
    else:
        sig = np.zeros(pvals.shape, dtype=bool)
    rest = valid & ~sig

    ax.scatter(effects[rest], neglog[rest], s=point_size, c=other_color, alpha=0.7,
               edgecolors='none', label='Not significant')
    if sig.any():
        ax.scatter(effects[sig], neglog[sig], s=point_size, c=significant_color, alpha=0.9,
                   edgecolors='none', label='FDR significant')

    if threshold is not None and np.isfinite(threshold) and threshold > 0:
        ax.axhline(-np.log10(threshold), linestyle='--', color='black', linewidth=1.0)
    ax.axvline(0.0, linestyle=':', color='grey', linewidth=0.8)

    if label_top > 0:
        order = np.argsort(np.where(valid, pvals, np.inf), kind='mergesort')[:label_top]
        names = df['variable'].astype(str).to_numpy()
        for idx in order:
            if valid[idx]:
                ax.annotate(names[idx], (effects[idx], neglog[idx]), fontsize=7,
                            xytext=(3, 3), textcoords='offset points')

    ax.legend(loc='upper left', frameon=False, fontsize=8)
    fig.tight_layout()
    return fig


def save_volcano_plot(results: Union[CorrectedResults, pd.DataFrame],
                      output_path: Union[str, Path],
                      dpi: int = 300,
                      **kwargs) -> Path:
    """Render a volcano plot to file and close the figure"""
    output_path = Path(output_path)
    fig = create_volcano_plot(results, **kwargs)
    try:
        fig.savefig(output_path, dpi=dpi, bbox_inches='tight')
    finally:
        plt.close(fig)
    return output_path
