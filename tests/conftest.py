"""Shared fixtures: synthetic time-course datasets and a scripted DE service."""

from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from timecourse_deg.context import AnalysisContext, Thresholds
from timecourse_deg.de_analysis.differential_expression import DEModelError, RESULT_COLUMNS
from timecourse_deg.preprocessing.data_loader import CleanDataset

GENES = [f"G{i}" for i in range(1, 41)] + ["G_ZERO"]


def make_samples(layout):
    """layout: {(day, condition): n_replicates} -> metadata indexed by sample id."""
    rows = []
    for (day, condition), n in layout.items():
        for rep in range(1, n + 1):
            rows.append({
                'sample_id': f"{condition}{day}_{rep}",
                'day': str(day),
                'condition': condition,
            })
    return pd.DataFrame(rows).set_index('sample_id')


def make_counts(samples, seed=0):
    rng = np.random.default_rng(seed)
    counts = pd.DataFrame(
        rng.negative_binomial(5, 0.05, size=(len(GENES), len(samples))) + 1,
        index=GENES,
        columns=samples.index
    )
    counts.loc['G_ZERO'] = 0
    return counts


def make_dataset(layout=None, seed=0, genes=None):
    if layout is None:
        layout = {(day, c): 3 for day in ('2', '3', '4') for c in 'ABCD'}
    samples = make_samples(layout)
    return CleanDataset(counts=make_counts(samples, seed), samples=samples, genes=genes)


def make_context(dataset, output_dir, **overrides):
    params = dict(
        dataset=dataset,
        control='A',
        days=('2', '3', '4'),
        conditions=('B', 'C', 'D'),
        output_dir=Path(output_dir),
        thresholds=Thresholds(),
    )
    params.update(overrides)
    return AnalysisContext(**params)


def scripted_de(plan):
    """
    Build a stand-in for DEAnalysis.

    plan maps (day, treatment) to {gene: (log2FoldChange, padj)} or to the
    string 'fail'. Genes not listed get an unremarkable result; genes with
    no reads get NaN, like the real model.
    """

    class ScriptedDE:
        calls = []

        def __init__(self, counts, metadata, condition_col='condition', control='A', n_cpus=1):
            self.counts = counts
            self.metadata = metadata
            self.condition_col = condition_col
            self.control = control
            if control not in set(metadata[condition_col]):
                raise DEModelError(f"Control level '{control}' missing")

        def run(self, treatment, alpha=0.05):
            day = str(self.metadata['day'].iloc[0])
            ScriptedDE.calls.append((day, treatment, tuple(self.counts.index)))
            entry = plan.get((day, treatment), {})
            if entry == 'fail':
                raise DEModelError("design matrix is singular")

            results = pd.DataFrame(index=self.counts.index, columns=RESULT_COLUMNS, dtype=float)
            results['baseMean'] = self.counts.mean(axis=1)
            results['log2FoldChange'] = 0.1
            results['lfcSE'] = 0.2
            results['stat'] = 0.5
            results['pvalue'] = 0.6
            results['padj'] = 0.9
            for gene, (lfc, padj) in entry.items():
                if gene in results.index:
                    results.loc[gene, ['log2FoldChange', 'padj', 'pvalue']] = [lfc, padj, padj / 10]
            zero = self.counts.sum(axis=1) == 0
            results.loc[zero, ['log2FoldChange', 'lfcSE', 'stat', 'pvalue', 'padj']] = np.nan
            results.index.name = 'gene_id'
            return results

        def variance_stabilize(self):
            return np.log2(self.counts.astype(float) + 1)

    return ScriptedDE


@pytest.fixture
def dataset():
    return make_dataset()


@pytest.fixture
def context(dataset, tmp_path):
    return make_context(dataset, tmp_path / "results")
