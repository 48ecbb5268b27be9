"""
DEG union across days
=====================

For one treatment condition, run DESeq2 against the control on every day
and combine the significant genes into a single set. The set drives the
heatmaps for that condition.
"""

from pathlib import Path
from typing import Dict, FrozenSet, Optional

import pandas as pd
import logging

from ..context import AnalysisContext, SkipReason, StepResult
from ..preprocessing.subsetting import subset_samples
from .differential_expression import (
    DEAnalysis,
    DEModelError,
    filter_low_counts,
    significant_gene_ids
)

logger = logging.getLogger(__name__)

STEP = 'deg_union'


class DEGUnionAggregator:
    """Collect significant genes for one condition across all days."""

    def __init__(self, context: AnalysisContext):
        self.context = context
        self.day_results: Dict[str, StepResult] = {}

    def significant_for_day(self, day: str, condition: str) -> StepResult:
        """Significant gene ids of condition vs control on one day."""
        ctx = self.context
        th = ctx.thresholds

        subset = subset_samples(
            ctx.dataset, day, conditions=[ctx.control, condition],
            min_samples=th.min_samples, day_col=ctx.day_col,
            condition_col=ctx.condition_col, step=STEP
        )
        if not subset.ok:
            return StepResult.skipped(STEP, subset.reason, subset.message,
                                      day=str(day), condition=condition)

        counts = filter_low_counts(
            subset.value.counts, min_count=th.min_count, min_samples=th.min_count_samples
        )
        if counts.empty:
            return StepResult.skipped(
                STEP, SkipReason.EMPTY_RESULT,
                f"no genes with >= {th.min_count} reads in >= {th.min_count_samples} samples",
                day=str(day), condition=condition
            )

        try:
            de = DEAnalysis(counts, subset.value.samples,
                            condition_col=ctx.condition_col, control=ctx.control)
            results = de.run(condition, alpha=th.padj)
        except DEModelError as e:
            logger.debug(f"Day {day}, {condition} vs {ctx.control}: {e}")
            return StepResult.skipped(STEP, SkipReason.MODEL_FAILURE, str(e),
                                      day=str(day), condition=condition)

        genes = significant_gene_ids(results, th.padj, th.log2fc)
        logger.info(f"Day {day}: {len(genes)} DEGs for {condition} vs {ctx.control}")
        return StepResult.success(STEP, genes, day=str(day), condition=condition)

    def build(self, condition: str) -> StepResult:
        """
        Union of the per-day significant genes for one condition.

        Returns
        -------
        StepResult
            ``value`` is a frozenset of gene ids; skipped with
            ``SkipReason.EMPTY_RESULT`` when no day yields any DEG.
        """
        logger.info(f"Building DEG union for {condition} vs {self.context.control}")
        self.day_results = {}

        union: set = set()
        for day in self.context.days:
            result = self.significant_for_day(day, condition)
            self.day_results[str(day)] = result
            if result.ok:
                union.update(result.value)
            else:
                logger.warning(result.describe())

        if not union:
            message = f"no significant genes on any day for {condition}"
            logger.debug(f"{condition}: {message}; no heatmap can be produced")
            return StepResult.skipped(STEP, SkipReason.EMPTY_RESULT, message,
                                      condition=condition)

        logger.info(f"DEG union for {condition}: {len(union)} genes")
        return StepResult.success(STEP, frozenset(union), condition=condition)

    def membership_table(self) -> pd.DataFrame:
        """Genes x days boolean table of per-day significance."""
        per_day = {day: set(r.value) for day, r in self.day_results.items() if r.ok}
        genes = sorted(set().union(*per_day.values())) if per_day else []
        table = pd.DataFrame(
            {f"day{day}": [g in hits for g in genes] for day, hits in per_day.items()},
            index=pd.Index(genes, name='gene_id')
        )
        return table

    def export(self, condition: str, union: FrozenSet[str],
               output_dir: Optional[Path] = None) -> Path:
        """Write the union with its per-day membership to CSV."""
        output_dir = Path(output_dir or self.context.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        table = self.membership_table().reindex(sorted(union), fill_value=False)
        table['n_days'] = table.sum(axis=1).astype(int)
        if self.context.dataset.genes is not None:
            table = table.join(self.context.dataset.genes, how='left')

        path = output_dir / f"DEG_union_{condition}_vs_{self.context.control}.csv"
        table.to_csv(path, index_label='gene_id')
        logger.info(f"Saved DEG union for {condition} to {path}")
        return path

