"""
RNA-seq Normalization Methods
=============================

Transforms used by the report stages:
1. Median-of-ratios size factors followed by log2(x + 1) (PCA)
2. Row-wise z-score (heatmaps)

The variance stabilizing transform needs a fitted dispersion trend and
lives on DEAnalysis.

Normalized matrices are new DataFrames; raw counts are never modified.
"""

from typing import Optional

import pandas as pd
import numpy as np
from scipy import stats
from pydeseq2.preprocessing import deseq2_norm
import logging

logger = logging.getLogger(__name__)


class RNAseqNormalizer:
    """Normalize RNA-seq count data."""

    def __init__(self, counts_df: pd.DataFrame):
        """
        Initialize normalizer with counts DataFrame.

        Parameters
        ----------
        counts_df : pd.DataFrame
            Raw counts matrix (genes x samples)
        """
        self.counts_df = counts_df.copy()
        self.size_factors = None

    def median_of_ratios(self) -> pd.DataFrame:
        """
        Scale each sample by its DESeq2 median-of-ratios size factor.

        Returns
        -------
        pd.DataFrame
            Normalized counts (genes x samples)
        """
        normed, size_factors = deseq2_norm(self.counts_df.T.values.astype(float))
        size_factors = np.asarray(size_factors, dtype=float)

        if not np.all(np.isfinite(size_factors)) or np.any(size_factors <= 0):
            raise ValueError(
                "Size factors could not be estimated "
                "(every gene has a zero count in at least one sample)"
            )

        self.size_factors = pd.Series(size_factors, index=self.counts_df.columns)
        logger.info(f"Size factors: {self.size_factors.round(3).to_dict()}")

        return pd.DataFrame(
            np.asarray(normed).T,
            index=self.counts_df.index,
            columns=self.counts_df.columns
        )

    def log_normalized(self, pseudocount: float = 1.0) -> pd.DataFrame:
        """log2(size-factor normalized counts + pseudocount)."""
        return np.log2(self.median_of_ratios() + pseudocount)


def zscore_rows(expression: pd.DataFrame) -> pd.DataFrame:
    """
    Standardize every gene (row) across samples.

    Uses the sample standard deviation, so each row ends up with
    mean 0 and sd 1. Rows with zero variance have to be removed first.
    """
    flat = expression.std(axis=1, ddof=1) == 0
    if flat.any():
        raise ValueError(f"{int(flat.sum())} genes have zero variance and cannot be scaled")

    scaled = stats.zscore(expression.values.astype(float), axis=1, ddof=1)
    return pd.DataFrame(scaled, index=expression.index, columns=expression.columns)


def drop_constant_rows(expression: pd.DataFrame) -> pd.DataFrame:
    """Remove genes whose values are identical in every sample."""
    keep = expression.std(axis=1, ddof=1) > 0
    n_dropped = int((~keep).sum())
    if n_dropped:
        logger.info(f"Dropped {n_dropped} genes with zero variance")
    return expression.loc[keep]


def compare_library_sizes(counts_df: pd.DataFrame,
                          samples: Optional[pd.DataFrame] = None) -> pd.DataFrame:
    """
    Per-sample sequencing depth, for spotting shallow or failed libraries.

    Parameters
    ----------
    counts_df : pd.DataFrame
        Raw counts matrix (genes x samples)
    samples : pd.DataFrame, optional
        Sample metadata indexed by sample id; its columns are carried over

    Returns
    -------
    pd.DataFrame
        One row per sample: total reads, detected genes and depth relative
        to the median library
    """
    totals = counts_df.sum(axis=0)
    median_total = totals.median()

    sizes = pd.DataFrame({
        'total_counts': totals,
        'detected_genes': (counts_df > 0).sum(axis=0),
        'relative_depth': totals / median_total if median_total > 0 else np.nan,
    })
    sizes.index.name = 'sample_id'
    if samples is not None:
        sizes = samples.reindex(sizes.index).join(sizes)

    shallow = sizes.index[sizes['relative_depth'] < 0.25].tolist()
    if shallow:
        logger.warning(f"Libraries under a quarter of the median depth: {shallow}")
    return sizes.reset_index()
