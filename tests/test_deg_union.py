"""Tests for the per-condition DEG union across days."""

from unittest.mock import patch

import pandas as pd

from timecourse_deg.context import SkipReason
from timecourse_deg.de_analysis.deg_union import DEGUnionAggregator

from conftest import make_context, make_dataset, scripted_de

TARGET = 'timecourse_deg.de_analysis.deg_union.DEAnalysis'


def test_union_is_a_set_union_across_days(context):
    plan = {
        ("2", "B"): {"G1": (2.0, 0.01), "G2": (-1.5, 0.02)},
        ("3", "B"): {"G1": (1.2, 0.04)},
        ("4", "B"): {"G3": (3.0, 0.001)},
    }
    with patch(TARGET, scripted_de(plan)):
        result = DEGUnionAggregator(context).build("B")

    assert result.ok
    assert result.value == frozenset({"G1", "G2", "G3"})


def test_each_day_compares_condition_with_control_only(context):
    fake = scripted_de({})
    with patch(TARGET, fake):
        DEGUnionAggregator(context).build("C")

    assert [call[:2] for call in fake.calls] == [("2", "C"), ("3", "C"), ("4", "C")]


def test_low_count_genes_filtered_before_testing(context):
    fake = scripted_de({})
    with patch(TARGET, fake):
        DEGUnionAggregator(context).build("B")

    for _, _, genes in fake.calls:
        assert "G_ZERO" not in genes
        assert "G1" in genes


def test_non_significant_days_contribute_nothing(context):
    plan = {
        ("2", "D"): {"G5": (0.5, 0.001)},
        ("3", "D"): {"G6": (2.0, 0.2)},
    }
    with patch(TARGET, scripted_de(plan)):
        result = DEGUnionAggregator(context).build("D")

    assert not result.ok
    assert result.reason is SkipReason.EMPTY_RESULT
    assert result.value is None


def test_model_failure_skips_only_that_day(context):
    plan = {
        ("2", "B"): 'fail',
        ("3", "B"): {"G7": (1.0, 0.01)},
    }
    aggregator = DEGUnionAggregator(context)
    with patch(TARGET, scripted_de(plan)):
        result = aggregator.build("B")

    assert result.value == frozenset({"G7"})
    assert aggregator.day_results["2"].reason is SkipReason.MODEL_FAILURE
    assert aggregator.day_results["3"].ok
    assert aggregator.day_results["4"].ok


def test_insufficient_day_is_skipped(tmp_path):
    layout = {("2", "A"): 3, ("2", "C"): 3, ("3", "A"): 3, ("3", "C"): 1}
    context = make_context(make_dataset(layout), tmp_path, days=("2", "3"))
    plan = {("2", "C"): {"G1": (2.0, 0.01)}, ("3", "C"): {"G2": (2.0, 0.01)}}

    aggregator = DEGUnionAggregator(context)
    with patch(TARGET, scripted_de(plan)):
        result = aggregator.build("C")

    assert result.value == frozenset({"G1"})
    assert aggregator.day_results["3"].reason is SkipReason.INSUFFICIENT_SAMPLES


def test_export_writes_membership(context):
    plan = {
        ("2", "B"): {"G1": (2.0, 0.01)},
        ("4", "B"): {"G1": (2.0, 0.01), "G2": (-2.0, 0.01)},
    }
    aggregator = DEGUnionAggregator(context)
    with patch(TARGET, scripted_de(plan)):
        result = aggregator.build("B")
    path = aggregator.export("B", result.value)

    assert path.name == "DEG_union_B_vs_A.csv"
    table = pd.read_csv(path, index_col='gene_id')
    assert table.index.tolist() == ["G1", "G2"]
    assert table.loc["G1", "n_days"] == 2
    assert bool(table.loc["G2", "day2"]) is False
    assert bool(table.loc["G2", "day4"]) is True
