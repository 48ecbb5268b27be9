"""Tests for DEG heatmaps and the row z-score."""

from unittest.mock import patch

import numpy as np
import pandas as pd
import pytest

from timecourse_deg.context import SkipReason
from timecourse_deg.de_analysis.deg_union import DEGUnionAggregator
from timecourse_deg.preprocessing.data_loader import CleanDataset
from timecourse_deg.preprocessing.normalization import drop_constant_rows, zscore_rows
from timecourse_deg.reports.heatmap import HeatmapReportGenerator, heatmap_file_name

from conftest import make_context, make_counts, make_dataset, make_samples, scripted_de

TARGET = 'timecourse_deg.reports.heatmap.DEAnalysis'


def test_zscore_rows_mean_zero_sd_one():
    rng = np.random.default_rng(5)
    data = pd.DataFrame(rng.normal(8, 3, size=(25, 6)))

    scaled = zscore_rows(data)

    assert np.allclose(scaled.mean(axis=1), 0, atol=1e-12)
    assert np.allclose(scaled.std(axis=1, ddof=1), 1)
    assert scaled.index.equals(data.index)


def test_zscore_rows_rejects_constant_genes():
    data = pd.DataFrame([[1.0, 1.0, 1.0], [1.0, 2.0, 3.0]])
    with pytest.raises(ValueError, match="zero variance"):
        zscore_rows(data)
    assert drop_constant_rows(data).index.tolist() == [1]


def test_heatmap_genes_intersect_union_with_expressed_genes(context):
    counts = context.dataset.counts
    generator = HeatmapReportGenerator(context)

    genes = generator.heatmap_genes(counts, frozenset({"G3", "G1", "G_ZERO", "NOT_A_GENE"}))

    assert genes == ["G1", "G3"]


def test_heatmap_written_with_zscored_union_genes(context):
    union = frozenset({"G2", "G4", "G9"})
    with patch(TARGET, scripted_de({})):
        result = HeatmapReportGenerator(context).generate("2", "B", union, label="Treatment B")

    assert result.ok
    zscores = result.value
    assert sorted(zscores.index) == ["G2", "G4", "G9"]
    assert set(context.dataset.samples.loc[zscores.columns, 'condition']) == {"A", "B"}
    assert np.allclose(zscores.mean(axis=1), 0, atol=1e-9)
    assert np.allclose(zscores.std(axis=1, ddof=1), 1)

    (plot_path,) = result.outputs
    assert plot_path.name == heatmap_file_name("2", "B", "A")
    assert plot_path.exists()


def test_gene_order_is_fixed(context):
    union = frozenset({"G9", "G2", "G4"})
    with patch(TARGET, scripted_de({})):
        day2 = HeatmapReportGenerator(context).generate("2", "B", union)
        day3 = HeatmapReportGenerator(context).generate("3", "B", union)

    assert day2.value.index.tolist() == day3.value.index.tolist() == ["G2", "G4", "G9"]


def test_empty_intersection_skips_without_file(context):
    with patch(TARGET, scripted_de({})):
        result = HeatmapReportGenerator(context).generate("2", "B", frozenset({"G_ZERO"}))

    assert not result.ok
    assert result.reason is SkipReason.EMPTY_RESULT
    assert not list(context.output_dir.glob("heatmap_*"))


def test_insufficient_samples_skips(tmp_path):
    dataset = make_dataset({("2", "A"): 3, ("2", "B"): 1})
    context = make_context(dataset, tmp_path)
    with patch(TARGET, scripted_de({})):
        result = HeatmapReportGenerator(context).generate("2", "B", frozenset({"G1"}))

    assert result.reason is SkipReason.INSUFFICIENT_SAMPLES


def test_gene_clustering_is_configurable(tmp_path):
    context = make_context(make_dataset(), tmp_path, cluster_genes=True)
    with patch(TARGET, scripted_de({})), \
            patch('timecourse_deg.reports.heatmap.plt'), \
            patch('timecourse_deg.reports.heatmap.sns.clustermap') as clustermap:
        HeatmapReportGenerator(context).generate("4", "C", frozenset({"G1", "G2", "G3"}))

    kwargs = clustermap.call_args.kwargs
    assert kwargs['row_cluster'] is True
    assert kwargs['col_cluster'] is True


def test_union_and_heatmap_with_real_deseq2(tmp_path):
    samples = make_samples({(day, c): 3 for day in ("2", "3") for c in "AB"})
    counts = make_counts(samples, seed=7)
    treated = samples.index[samples['condition'] == "B"]
    counts.loc[["G1", "G2", "G3"], treated] *= 8
    context = make_context(CleanDataset(counts=counts, samples=samples), tmp_path,
                           days=("2", "3"), conditions=("B",))

    union = DEGUnionAggregator(context).build("B")
    assert union.ok
    assert union.value & {"G1", "G2", "G3"}
    assert "G_ZERO" not in union.value

    for day in ("2", "3"):
        result = HeatmapReportGenerator(context).generate(day, "B", union.value)
        assert result.ok
        assert set(result.value.index) <= union.value
        assert result.value.shape[1] == 6
        assert np.allclose(result.value.mean(axis=1), 0, atol=1e-9)
        assert result.outputs[0].exists()
