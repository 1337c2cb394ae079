"""
Gene-level preprocessing.

  filter_by_median_total   keep genes whose summed expression exceeds the
                           cohort median (strictly; ties at the median drop)
  zscore_rows              per-gene centring / scaling for display
"""

import logging

import numpy as np
import pandas as pd

from .errors import EmptyGeneSetError

log = logging.getLogger(__name__)


def filter_by_median_total(df: pd.DataFrame) -> pd.DataFrame:
    """
    Keep rows (genes) whose total across columns (samples) is strictly greater
    than the median of all row totals. Missing values are ignored in the sum.
    Row order and columns are preserved.
    """
    if df.empty:
        raise EmptyGeneSetError("Expression matrix is empty; nothing to filter")

    totals = df.sum(axis=1, skipna=True)
    median_total = float(totals.median())
    keep = totals > median_total
    result = df.loc[keep]

    log.info(f"  Median-total filter: median={median_total:.4g}  "
             f"{df.shape[0]:,} genes → {result.shape[0]:,}")
    if result.empty:
        raise EmptyGeneSetError(
            f"No gene total exceeds the median ({median_total:.4g}); "
            "all totals are tied"
        )
    return result


def zscore_rows(df: pd.DataFrame) -> pd.DataFrame:
    """
    Z-score normalise across samples (axis=1) for each gene (row).
    Genes with zero variance are set to 0 (not NaN); missing values stay NaN.
    """
    vals  = df.to_numpy(dtype=np.float64)
    means = np.nanmean(vals, axis=1, keepdims=True)
    stds  = np.nanstd(vals, axis=1, keepdims=True)
    stds[~(stds > 0)] = 1.0         # avoid divide-by-zero; result will be 0
    zscore = (vals - means) / stds
    return pd.DataFrame(zscore, index=df.index, columns=df.columns)
