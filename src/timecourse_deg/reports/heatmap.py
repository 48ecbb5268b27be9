"""
DEG Heatmaps
============

For one day and condition, show the condition's DEG union on VST
expression, z-scored per gene. Samples are hierarchically clustered;
genes keep a fixed order unless gene clustering is switched on.
"""

from typing import FrozenSet, Optional

import pandas as pd
import logging

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import seaborn as sns

from ..context import AnalysisContext, SkipReason, StepResult
from ..de_analysis.differential_expression import DEAnalysis, DEModelError
from ..preprocessing.normalization import drop_constant_rows, zscore_rows
from ..preprocessing.subsetting import subset_samples

logger = logging.getLogger(__name__)

STEP = 'heatmap'


def heatmap_file_name(day: str, condition: str, control: str, ext: str = 'png') -> str:
    return f"heatmap_Day{day}_{condition}_vs_{control}.{ext}"


class HeatmapReportGenerator:
    """Clustered heatmap of DEG-union genes for one day and condition."""

    def __init__(self, context: AnalysisContext):
        self.context = context

    def heatmap_genes(self, counts: pd.DataFrame, deg_union: FrozenSet[str]) -> list:
        """
        Union genes that are expressed in this day's samples.

        Genes with zero reads across the subset count as absent. The
        order follows the count matrix so it is stable across days.
        """
        expressed = counts.index[counts.sum(axis=1) > 0]
        return [g for g in expressed if g in deg_union]

    def generate(
        self,
        day: str,
        condition: str,
        deg_union: FrozenSet[str],
        label: Optional[str] = None
    ) -> StepResult:
        ctx = self.context
        day = str(day)
        label = label or ctx.label_for(condition)

        subset = subset_samples(
            ctx.dataset, day, conditions=[ctx.control, condition],
            min_samples=ctx.thresholds.min_samples, day_col=ctx.day_col,
            condition_col=ctx.condition_col, step=STEP
        )
        if not subset.ok:
            return StepResult.skipped(STEP, subset.reason, subset.message,
                                      day=day, condition=condition)

        counts = subset.value.counts
        genes = self.heatmap_genes(counts, deg_union)
        if not genes:
            message = f"none of the {len(deg_union)} union genes are expressed on day {day}"
            logger.debug(f"{condition}: {message}")
            return StepResult.skipped(STEP, SkipReason.EMPTY_RESULT, message,
                                      day=day, condition=condition)

        expressed = counts.loc[counts.sum(axis=1) > 0]
        try:
            vst = DEAnalysis(expressed, subset.value.samples,
                             condition_col=ctx.condition_col,
                             control=ctx.control).variance_stabilize()
        except DEModelError as e:
            logger.debug(f"Day {day}, {condition}: {e}")
            return StepResult.skipped(STEP, SkipReason.MODEL_FAILURE, str(e),
                                      day=day, condition=condition)

        matrix = drop_constant_rows(vst.loc[genes])
        if matrix.empty:
            message = "all union genes have constant expression on this day"
            logger.debug(f"Day {day}, {condition}: {message}")
            return StepResult.skipped(STEP, SkipReason.EMPTY_RESULT, message,
                                      day=day, condition=condition)

        zscores = zscore_rows(matrix)
        plot_path = self.plot(zscores, subset.value.samples, day, condition, label)

        logger.info(f"Saved heatmap for day {day} {condition}: "
                    f"{zscores.shape[0]} genes x {zscores.shape[1]} samples")
        return StepResult.success(STEP, zscores, day=day, condition=condition,
                                  outputs=(plot_path,))

    def plot(self, zscores: pd.DataFrame, samples: pd.DataFrame,
             day: str, condition: str, label: str):
        ctx = self.context

        groups = samples.loc[zscores.columns, ctx.condition_col]
        palette = dict(zip(sorted(groups.unique()), sns.color_palette('Set2', groups.nunique())))
        col_colors = groups.map(palette).rename('condition')

        n_genes = zscores.shape[0]
        grid = sns.clustermap(
            zscores,
            row_cluster=ctx.cluster_genes and n_genes > 1,
            col_cluster=True,
            col_colors=col_colors,
            cmap='RdBu_r',
            center=0,
            yticklabels=n_genes <= 60,
            figsize=(max(6, 0.5 * zscores.shape[1] + 4), min(20, max(6, 0.2 * n_genes + 3)))
        )
        grid.fig.suptitle(f"Day {day}: {label} vs {ctx.label_for(ctx.control)} "
                          f"({n_genes} DEGs, row z-score)", y=1.02)

        ctx.output_dir.mkdir(parents=True, exist_ok=True)
        plot_path = ctx.output_dir / heatmap_file_name(day, condition, ctx.control, ctx.plot_format)
        grid.savefig(plot_path, dpi=150, bbox_inches='tight')
        plt.close(grid.fig)
        return plot_path
