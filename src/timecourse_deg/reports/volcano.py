"""
Volcano Reports
===============

Per-day treatment vs control comparison:
1. DESeq2 on the day's control + treatment samples
2. Clamped -log10(padj) score and significance flag per gene
3. Volcano plot and a table with every gene
"""

from pathlib import Path
from typing import Tuple

import pandas as pd
import numpy as np
import logging

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import seaborn as sns

from ..context import AnalysisContext, SkipReason, StepResult, Thresholds
from ..de_analysis.differential_expression import (
    DEAnalysis,
    DEModelError,
    RESULT_COLUMNS,
    significance_mask
)
from ..preprocessing.subsetting import subset_samples

logger = logging.getLogger(__name__)

STEP = 'volcano'

LEADING_COLUMNS = ['log2FoldChange', 'pvalue', 'padj', 'neg_log10_padj', 'significant']


def annotate_de_results(results: pd.DataFrame, thresholds: Thresholds = Thresholds()) -> pd.DataFrame:
    """
    Add the plotting score and significance flag to DE results.

    neg_log10_padj = min(-log10(padj + eps), cap), floored at 0. Rows
    without a fold change or padj keep NaN as score and are never
    significant; they stay in the table.
    """
    table = results.copy()
    usable = table['log2FoldChange'].notna() & table['padj'].notna()

    score = -np.log10(table['padj'] + thresholds.score_epsilon)
    table['neg_log10_padj'] = score.clip(lower=0.0, upper=thresholds.score_cap).where(usable)
    table['significant'] = (
        significance_mask(table, thresholds.padj, thresholds.log2fc) & usable
    )

    rest = [c for c in RESULT_COLUMNS if c in table.columns and c not in LEADING_COLUMNS]
    extra = [c for c in table.columns if c not in LEADING_COLUMNS and c not in rest]
    return table[LEADING_COLUMNS + rest + extra]


def volcano_file_names(day: str, treatment: str, control: str, ext: str = 'png') -> Tuple[str, str]:
    """(plot name, table name) for one comparison."""
    plot_name = f"day{day}_{treatment}_vs_{control}_volcano_plot.{ext}"
    table_name = f"all_DEGs_day{day}_{treatment}_vs_{control}.csv"
    return plot_name, table_name


def plot_volcano(
    table: pd.DataFrame,
    output_path: Path,
    title: str,
    thresholds: Thresholds = Thresholds()
) -> Path:
    """Scatter of log2FC vs clamped -log10(padj), colored by significance."""
    plot_df = table.dropna(subset=['log2FoldChange', 'neg_log10_padj']).copy()
    plot_df['status'] = np.where(plot_df['significant'], 'DEG', 'not significant')

    fig, ax = plt.subplots(figsize=(8, 6))
    sns.scatterplot(
        data=plot_df,
        x='log2FoldChange',
        y='neg_log10_padj',
        hue='status',
        hue_order=['not significant', 'DEG'],
        palette={'not significant': 'grey', 'DEG': 'firebrick'},
        s=12,
        alpha=0.7,
        linewidth=0,
        ax=ax
    )

    ax.axvline(-thresholds.log2fc, color='black', linestyle='--', linewidth=0.8)
    ax.axvline(thresholds.log2fc, color='black', linestyle='--', linewidth=0.8)
    ax.axhline(-np.log10(thresholds.padj), color='black', linestyle='--', linewidth=0.8)

    n_sig = int(plot_df['significant'].sum())
    ax.set_xlabel('log2 fold change')
    ax.set_ylabel(f'-log10(adjusted p) (capped at {thresholds.score_cap:g})')
    ax.set_title(f"{title} ({n_sig} DEGs)")
    ax.legend(title=f"padj < {thresholds.padj:g} & |log2FC| >= {thresholds.log2fc:g}",
              loc='upper left')

    plt.tight_layout()
    plt.savefig(output_path, dpi=150)
    plt.close(fig)
    return output_path


class VolcanoReportGenerator:
    """Volcano plot + all-gene table for one day and treatment."""

    def __init__(self, context: AnalysisContext):
        self.context = context

    def generate(self, day: str, treatment: str) -> StepResult:
        ctx = self.context
        th = ctx.thresholds
        day = str(day)

        subset = subset_samples(
            ctx.dataset, day, conditions=[ctx.control, treatment],
            min_samples=th.min_samples, day_col=ctx.day_col,
            condition_col=ctx.condition_col, step=STEP
        )
        if not subset.ok:
            return StepResult.skipped(STEP, subset.reason, subset.message,
                                      day=day, condition=treatment)

        try:
            de = DEAnalysis(subset.value.counts, subset.value.samples,
                            condition_col=ctx.condition_col, control=ctx.control)
            results = de.run(treatment, alpha=th.padj)
        except DEModelError as e:
            logger.debug(f"Day {day}, {treatment} vs {ctx.control}: {e}")
            return StepResult.skipped(STEP, SkipReason.MODEL_FAILURE, str(e),
                                      day=day, condition=treatment)

        table = annotate_de_results(results, th)
        if ctx.dataset.genes is not None:
            table = table.join(ctx.dataset.genes, how='left')

        ctx.output_dir.mkdir(parents=True, exist_ok=True)
        plot_name, table_name = volcano_file_names(day, treatment, ctx.control, ctx.plot_format)

        table_path = ctx.output_dir / table_name
        table.to_csv(table_path, index_label='gene_id')

        plot_path = plot_volcano(
            table, ctx.output_dir / plot_name,
            title=f"Day {day}: {ctx.label_for(treatment)} vs {ctx.label_for(ctx.control)}",
            thresholds=th
        )

        logger.info(f"Saved volcano report for day {day} {treatment} vs {ctx.control}: "
                    f"{int(table['significant'].sum())} DEGs of {len(table)} genes")
        return StepResult.success(STEP, table, day=day, condition=treatment,
                                  outputs=(plot_path, table_path))
