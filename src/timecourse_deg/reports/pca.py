"""
PCA Reports
===========

Sample similarity for one day across every condition present:
size-factor normalization, log2(x + 1), per-gene centering and scaling,
then the first two principal components.
"""

from typing import Tuple

import pandas as pd
import numpy as np
import logging

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import seaborn as sns
from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler

from ..context import AnalysisContext, SkipReason, StepResult
from ..preprocessing.normalization import RNAseqNormalizer
from ..preprocessing.subsetting import subset_samples

logger = logging.getLogger(__name__)

STEP = 'pca'


def pca_analysis(data: pd.DataFrame, n_components: int = 2) -> Tuple[pd.DataFrame, np.ndarray]:
    """
    Perform PCA on the data.

    Parameters
    ----------
    data : pd.DataFrame
        Expression matrix (genes x samples)

    Returns
    -------
    Tuple[pd.DataFrame, np.ndarray]
        PCA scores (samples x components) and percent variance explained
    """
    # Transpose: samples as rows, genes as columns
    X = data.T.values

    # Standardize
    scaler = StandardScaler(with_mean=True, with_std=True)
    X_scaled = scaler.fit_transform(X)

    n_components = min(n_components, *X_scaled.shape)
    pca = PCA(n_components=n_components)
    scores = pca.fit_transform(X_scaled)

    scores_df = pd.DataFrame(
        scores,
        index=data.columns,
        columns=[f'PC{i+1}' for i in range(n_components)]
    )

    return scores_df, pca.explained_variance_ratio_ * 100


class PCAReportGenerator:
    """PCA scatter of every sample on one day."""

    def __init__(self, context: AnalysisContext):
        self.context = context

    def generate(self, day: str) -> StepResult:
        ctx = self.context
        day = str(day)

        subset = subset_samples(
            ctx.dataset, day, min_samples=ctx.thresholds.min_samples,
            day_col=ctx.day_col, condition_col=ctx.condition_col, step=STEP
        )
        if not subset.ok:
            return StepResult.skipped(STEP, subset.reason, subset.message, day=day)

        try:
            log_counts = RNAseqNormalizer(subset.value.counts).log_normalized()
        except ValueError as e:
            logger.debug(f"Day {day}: {e}")
            return StepResult.skipped(STEP, SkipReason.MODEL_FAILURE, str(e), day=day)

        scores, variance = pca_analysis(log_counts, n_components=2)
        if scores.shape[1] < 2:
            message = f"only {scores.shape[1]} principal component available"
            logger.debug(f"Day {day}: {message}")
            return StepResult.skipped(STEP, SkipReason.INSUFFICIENT_SAMPLES, message, day=day)

        scores[ctx.condition_col] = subset.value.samples.loc[scores.index, ctx.condition_col]
        scores['label'] = scores[ctx.condition_col].map(ctx.label_for)

        ctx.output_dir.mkdir(parents=True, exist_ok=True)
        scores_path = ctx.output_dir / f"PCA_scores_Day{day}.csv"
        scores.assign(
            PC1_variance_pct=variance[0], PC2_variance_pct=variance[1]
        ).to_csv(scores_path, index_label='sample_id')

        fig, ax = plt.subplots(figsize=(7, 6))
        sns.scatterplot(data=scores, x='PC1', y='PC2', hue='label', s=80, ax=ax)
        for sample_id, row in scores.iterrows():
            ax.annotate(sample_id, (row['PC1'], row['PC2']),
                        textcoords='offset points', xytext=(4, 4), fontsize=7)
        ax.set_xlabel(f"PC1 ({variance[0]:.1f}% variance)")
        ax.set_ylabel(f"PC2 ({variance[1]:.1f}% variance)")
        ax.set_title(f"PCA - Day {day}")
        ax.legend(title='Condition')

        plot_path = ctx.output_dir / f"PCA_plot_Day{day}.{ctx.plot_format}"
        plt.tight_layout()
        plt.savefig(plot_path, dpi=150)
        plt.close(fig)

        logger.info(f"Saved PCA for day {day}: PC1 {variance[0]:.1f}%, PC2 {variance[1]:.1f}%")
        return StepResult.success(STEP, scores, day=day, outputs=(plot_path, scores_path))
