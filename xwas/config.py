"""
Default settings for an XWAS run.

Defaults follow the NHANES 1999-2002 telomere-length screen: combined
four-year MEC weights, masked variance PSUs and strata, and the standard
demographic/socioeconomic adjustment set. Every value can be overridden
through keyword arguments or the command line.
"""

from typing import Tuple

DEFAULT_OUTCOME = 'TELOMEAN'

DEFAULT_ADJUSTMENTS: Tuple[str, ...] = (
    'RIDAGEYR',
    'female',
    'black',
    'mexican',
    'other_hispanic',
    'other_eth',
    'INDFMPIR',
    'education',
)

DEFAULT_CLUSTER_COLUMN = 'SDMVPSU'
DEFAULT_STRATUM_COLUMN = 'SDMVSTRA'

# WTMEC2YR for a single 2-year cycle, WTMEC4YR for 1999-2002 combined
WEIGHT_COLUMNS: Tuple[str, ...] = ('WTMEC2YR', 'WTMEC4YR')
DEFAULT_WEIGHT_COLUMN = 'WTMEC4YR'

DEFAULT_CATEGORIES: Tuple[str, ...] = (
    'heavy metals',
    'pcbs',
    'dioxins',
    'furans',
    'cotinine',
    'phthalates',
    'phenols',
    'polyaromatic hydrocarbons',
    'volatile compounds',
    'pesticides',
    'phytoestrogens',
)

# Names to drop even when their category is selected, e.g. dust-exposure
# proxies catalogued alongside the biomarkers. Their names depend on the
# catalog release, so none are built in; pass them with --exclude.
DEFAULT_EXCLUDE: Tuple[str, ...] = ()

# Added before log-transforming exposures so zero readings stay finite
LOG_EPSILON = 1e-10

DEFAULT_FDR_LEVEL = 0.05

INTERCEPT_TERM = 'Intercept'

LONELY_PSU_CHOICES: Tuple[str, ...] = ('fail', 'certainty', 'remove', 'adjust')
