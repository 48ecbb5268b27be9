"""
Differential Expression Analysis
================================

Thin wrapper around pydeseq2:
1. Median-of-ratios size factors
2. Negative binomial GLM with per-gene dispersion
3. Wald test of one treatment level against the control level
4. Benjamini-Hochberg adjusted p-values
5. Variance stabilizing transformation

Any failure inside pydeseq2 surfaces as DEModelError so that callers can
skip a single day/condition instead of aborting the run.
"""

import pandas as pd
import numpy as np
from pydeseq2.dds import DeseqDataSet
from pydeseq2.ds import DeseqStats
from pydeseq2.default_inference import DefaultInference
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)

RESULT_COLUMNS = ['baseMean', 'log2FoldChange', 'lfcSE', 'stat', 'pvalue', 'padj']


class DEModelError(RuntimeError):
    """The DE model could not be built or tested for this subset."""


class DEAnalysis:
    """Differential Expression Analysis against an explicit control level."""

    def __init__(
        self,
        counts: pd.DataFrame,
        metadata: pd.DataFrame,
        condition_col: str = 'condition',
        control: str = 'A',
        n_cpus: int = 1
    ):
        """
        Initialize DE analysis.

        Parameters
        ----------
        counts : pd.DataFrame
            Count matrix (genes x samples)
        metadata : pd.DataFrame
            Sample metadata indexed by sample id
        condition_col : str
            Column name for the grouping factor
        control : str
            Reference level; always placed first so fold changes read as
            treatment relative to control

        Raises
        ------
        DEModelError
            If the control level is missing or fewer than two levels exist
        """
        self.condition_col = condition_col
        self.control = control
        self.inference = DefaultInference(n_cpus=n_cpus)

        common_samples = [s for s in metadata.index if s in counts.columns]
        if len(common_samples) < 2:
            raise DEModelError(f"Need at least 2 samples, got {len(common_samples)}")

        self.counts = counts[common_samples].astype(int)
        levels = metadata.loc[common_samples, condition_col].astype(str)

        present = list(pd.unique(levels))
        if control not in present:
            raise DEModelError(f"Control level '{control}' not among levels {present}")
        if len(present) < 2:
            raise DEModelError(f"Grouping factor needs at least 2 levels, got {present}")

        self.levels = [control] + sorted(level for level in present if level != control)
        self.metadata = pd.DataFrame(
            {condition_col: pd.Categorical(levels, categories=self.levels)},
            index=pd.Index(common_samples, name=metadata.index.name)
        )
        self._dds: Optional[DeseqDataSet] = None

        logger.info(
            f"Initialized DE analysis with {len(common_samples)} samples, "
            f"{self.counts.shape[0]} genes, levels {self.levels}"
        )

    def _dataset(self) -> DeseqDataSet:
        return DeseqDataSet(
            counts=self.counts.T,
            metadata=self.metadata,
            design=f"~{self.condition_col}",
            refit_cooks=True,
            inference=self.inference,
            quiet=True
        )

    def fit(self) -> DeseqDataSet:
        """Fit size factors, dispersions and coefficients (cached)."""
        if self._dds is None:
            try:
                dds = self._dataset()
                dds.deseq2()
            except Exception as e:
                raise DEModelError(f"DESeq2 model fit failed: {e}") from e
            self._dds = dds
        return self._dds

    def run(self, treatment: str, alpha: float = 0.05) -> pd.DataFrame:
        """
        Test one treatment level against the control.

        Parameters
        ----------
        treatment : str
            Numerator level of the contrast
        alpha : float
            Significance level used for independent filtering

        Returns
        -------
        pd.DataFrame
            baseMean, log2FoldChange, lfcSE, stat, pvalue, padj per gene.
            Untestable genes (e.g. all-zero counts) carry NaN.
        """
        if treatment == self.control or treatment not in self.levels:
            raise DEModelError(
                f"Treatment '{treatment}' is not a non-control level of {self.levels}"
            )

        logger.info(f"Running DESeq2: {treatment} vs {self.control}")
        dds = self.fit()

        try:
            stat_res = DeseqStats(
                dds,
                contrast=[self.condition_col, treatment, self.control],
                alpha=alpha,
                inference=self.inference,
                quiet=True
            )
            stat_res.summary()
            results = stat_res.results_df.copy()
        except Exception as e:
            raise DEModelError(f"DESeq2 Wald test failed: {e}") from e

        results = results.reindex(self.counts.index)
        results.index.name = 'gene_id'

        n_sig = int((results['padj'] < alpha).sum())
        logger.info(f"Found {n_sig} genes with padj < {alpha} ({treatment} vs {self.control})")
        return results

    def variance_stabilize(self) -> pd.DataFrame:
        """
        Variance stabilizing transformation of the counts.

        Uses a design-blind dispersion trend, like DESeq2's vst(blind=TRUE).

        Returns
        -------
        pd.DataFrame
            Transformed expression (genes x samples)
        """
        try:
            dds = self._dataset()
            dds.vst(use_design=False)
            vst = np.asarray(dds.layers['vst_counts'])
        except Exception as e:
            raise DEModelError(f"Variance stabilizing transformation failed: {e}") from e

        return pd.DataFrame(vst.T, index=self.counts.index, columns=self.counts.columns)


def filter_low_counts(
    counts: pd.DataFrame,
    min_count: int = 10,
    min_samples: int = 2
) -> pd.DataFrame:
    """
    Filter genes with low counts.

    Keep genes that have at least `min_count` reads in at least `min_samples` samples.
    """
    keep = (counts >= min_count).sum(axis=1) >= min_samples
    filtered = counts.loc[keep]

    logger.info(f"Filtered genes: {counts.shape[0]} -> {filtered.shape[0]} "
                f"(removed {counts.shape[0] - filtered.shape[0]})")
    return filtered


def significance_mask(
    de_results: pd.DataFrame,
    padj_threshold: float = 0.05,
    log2fc_threshold: float = 1.0
) -> pd.Series:
    """True where padj < threshold and |log2FC| >= threshold; NaN rows are False."""
    return (
        (de_results['padj'] < padj_threshold) &
        (de_results['log2FoldChange'].abs() >= log2fc_threshold)
    ).astype(bool)


def filter_significant(
    de_results: pd.DataFrame,
    padj_threshold: float = 0.05,
    log2fc_threshold: float = 1.0
) -> pd.DataFrame:
    """Filter for significant genes based on padj and log2FC."""
    return de_results[significance_mask(de_results, padj_threshold, log2fc_threshold)]


def significant_gene_ids(
    de_results: pd.DataFrame,
    padj_threshold: float = 0.05,
    log2fc_threshold: float = 1.0
) -> List[str]:
    """Gene ids of the significant rows."""
    return filter_significant(de_results, padj_threshold, log2fc_threshold).index.tolist()
