"""
Tests for core/plots.py module.

Formatting helpers are checked for exact output; chart functions are checked
for returning figures whose bars, labels and axes follow the ranked-chart
layout.
"""

import numpy as np
import pandas as pd
import pytest
import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt

from rnaseq_qc.core.exceptions import DegenerateInput
from rnaseq_qc.core.metrics import (
    compute_mapped_reads_pct,
    compute_n_genes,
    extract_metadata,
    join_metrics,
)
from rnaseq_qc.core.plots import (
    bar_label_positions,
    category_palette,
    count_distribution_table,
    exact_labels,
    floor_labels,
    plot_53_bias,
    plot_count_distribution,
    plot_exonic_rate,
    plot_gene_saturation,
    plot_genes_detected,
    plot_intronic_rate,
    plot_mapped_reads,
    plot_mapping_rate,
    plot_rrna_rate,
    plot_total_reads,
    rank_samples,
    ranked_chart_table,
    round_labels,
    rrna_upper_limit,
)


@pytest.fixture
def augmented(three_samples):
    counts, metadata, metrics = three_samples
    joined, _ = join_metrics(extract_metadata(metadata), metrics)
    joined["mapped_reads_pct"] = compute_mapped_reads_pct(joined)
    joined["n_genes"] = joined["sample"].map(compute_n_genes(counts))
    return joined


def _bar_labels(fig):
    return [t.get_text() for t in fig.axes[0].texts]


def _tick_labels(fig):
    return [t.get_text() for t in fig.axes[0].get_yticklabels()]


class TestFormatting:
    def test_rank_samples_descending(self):
        values = pd.Series([1.0, 3.0, 2.0], index=["a", "b", "c"])
        assert rank_samples(values) == ["b", "c", "a"]

    def test_rank_samples_ties_keep_input_order(self):
        values = pd.Series([5, 7, 5, 7], index=["a", "b", "c", "d"])
        assert rank_samples(values) == ["b", "d", "a", "c"]

    def test_rank_samples_missing_last(self):
        values = pd.Series([np.nan, 1.0, 2.0], index=["a", "b", "c"])
        assert rank_samples(values) == ["c", "b", "a"]

    def test_floor_labels(self):
        assert floor_labels([10.0, 4.99, 0.5, np.nan]) == ["10", "4", "0", "NA"]

    def test_round_labels(self):
        assert round_labels([1.234, 10.0]) == ["1.23", "10.00"]

    def test_exact_labels(self):
        assert exact_labels([12345.0, 0.85, np.nan]) == ["12345", "0.85", "NA"]

    def test_bar_label_positions(self):
        pos = bar_label_positions([100.0, 50.0, np.nan])
        assert pos.tolist() == pytest.approx([101.0, 51.0, 1.0])

    def test_bar_label_positions_all_zero(self):
        assert bar_label_positions([0.0, 0.0]).tolist() == [0.01, 0.01]

    def test_rrna_upper_limit(self):
        assert rrna_upper_limit([1.0, 25.5, 3.0]) == 35.5
        assert rrna_upper_limit([np.nan]) == 10.0

    def test_category_palette_stable(self):
        p1 = category_palette(["B", "A", "B"])
        p2 = category_palette(["A", "B"])
        assert p1 == p2
        assert p1["A"] != p1["B"]


class TestRankedChartTable:
    def test_total_reads_order(self, augmented):
        values = augmented["total_reads"] / 1e6
        table = ranked_chart_table(augmented, values, floor_labels(values))
        assert table["sample"].tolist() == ["S1", "S2", "S3"]
        assert table["label"].tolist() == ["10", "5", "1"]

    def test_mapping_rate_order(self, augmented):
        values = augmented["mapped_reads_pct"]
        table = ranked_chart_table(augmented, values, round_labels(values))
        assert table["sample"].tolist() == ["S1", "S2", "S3"]
        assert table["value"].tolist() == pytest.approx([0.9, 0.8, 0.5])

    def test_ties_keep_input_order(self, augmented):
        values = pd.Series([1.0, 2.0, 2.0], index=augmented.index)
        table = ranked_chart_table(augmented, values, exact_labels(values))
        assert table["sample"].tolist() == ["S2", "S3", "S1"]
        assert table["category"].tolist() == ["A", "B", "A"]

    def test_does_not_mutate_input(self, augmented):
        before = augmented.copy()
        ranked_chart_table(
            augmented, augmented["x5_3_bias"], exact_labels(augmented["x5_3_bias"])
        )
        pd.testing.assert_frame_equal(augmented, before)


class TestBarCharts:
    def test_total_reads(self, augmented):
        fig = plot_total_reads(augmented)
        assert isinstance(fig, plt.Figure)
        assert _tick_labels(fig) == ["S1", "S2", "S3"]
        assert _bar_labels(fig) == ["10", "5", "1"]
        plt.close(fig)

    def test_total_reads_threshold_line(self, augmented):
        fig = plot_total_reads(augmented, limit=20e6)
        xs = [line.get_xdata()[0] for line in fig.axes[0].get_lines()]
        assert 20.0 in xs
        plt.close(fig)

    def test_mapped_reads_labels(self, augmented):
        fig = plot_mapped_reads(augmented)
        assert _bar_labels(fig) == ["9", "4", "0"]
        plt.close(fig)

    def test_mapped_reads_legacy_labels(self, augmented):
        fig = plot_mapped_reads(augmented, legacy_labels=True)
        # labelled with total reads in millions
        assert _bar_labels(fig) == ["10", "5", "1"]
        assert _tick_labels(fig) == ["S1", "S2", "S3"]
        plt.close(fig)

    def test_mapping_rate_labels(self, augmented):
        fig = plot_mapping_rate(augmented)
        assert _bar_labels(fig) == ["0.90", "0.80", "0.50"]
        assert _tick_labels(fig) == ["S1", "S2", "S3"]
        plt.close(fig)

    def test_mapping_rate_legacy_labels(self, augmented):
        fig = plot_mapping_rate(augmented, legacy_labels=True)
        assert _bar_labels(fig) == ["0", "0", "0"]
        assert _tick_labels(fig) == ["S1", "S2", "S3"]
        plt.close(fig)

    def test_genes_detected_axis(self, augmented):
        fig = plot_genes_detected(augmented)
        assert fig.axes[0].get_xlim() == (0, 30000)
        expected = sorted(augmented["n_genes"], reverse=True)
        assert _bar_labels(fig) == [str(v) for v in expected]
        plt.close(fig)

    def test_exonic_and_intronic(self, augmented):
        augmented = augmented.copy()
        augmented["exonic_rate"] = [0.75, 0.625, 0.5]
        augmented["intronic_rate"] = [0.125, 0.25, 0.375]

        fig = plot_exonic_rate(augmented)
        assert _bar_labels(fig) == ["75", "62", "50"]
        plt.close(fig)

        fig = plot_intronic_rate(augmented)
        assert _tick_labels(fig) == ["S3", "S2", "S1"]
        assert _bar_labels(fig) == ["37", "25", "12"]
        plt.close(fig)

    def test_rrna_rate_dynamic_axis(self, augmented):
        fig = plot_rrna_rate(augmented)
        lo, hi = fig.axes[0].get_xlim()
        assert lo == 0
        assert hi == pytest.approx(augmented["r_rna_rate"].max() * 100 + 10)
        assert _bar_labels(fig)[0] == "20.00"
        plt.close(fig)

    def test_53_bias_axis(self, augmented):
        fig = plot_53_bias(augmented)
        assert fig.axes[0].get_xlim() == pytest.approx((0.0, 1.1))
        assert _tick_labels(fig)[0] == "S3"
        plt.close(fig)

    def test_missing_value_renders(self, augmented):
        augmented = augmented.copy()
        augmented.loc[0, "mapped_reads_pct"] = np.nan
        fig = plot_mapping_rate(augmented)
        assert _tick_labels(fig)[-1] == "S1"
        assert _bar_labels(fig)[-1] == "NA"
        plt.close(fig)


class TestOtherCharts:
    def test_gene_saturation(self, augmented):
        fig = plot_gene_saturation(augmented)
        ax = fig.axes[0]
        labels = sorted(t.get_text() for t in ax.texts)
        assert labels == ["S1", "S2", "S3"]
        plt.close(fig)

    def test_gene_saturation_skips_zero_reads(self, augmented):
        augmented = augmented.copy()
        augmented.loc[2, "total_reads"] = 0
        fig = plot_gene_saturation(augmented)
        labels = sorted(t.get_text() for t in fig.axes[0].texts)
        assert labels == ["S1", "S2"]
        plt.close(fig)

    def test_count_distribution_table(self, three_samples):
        _, metadata, _ = three_samples
        counts = pd.DataFrame(
            {"S1": [0, 1, 3], "S2": [0, 0, 7], "S3": [0, 1, 1]},
            index=["zero", "g1", "g2"],
        )
        long = count_distribution_table(counts, extract_metadata(metadata))

        assert len(long) == 2 * 3
        assert "zero" not in set(long["gene"])
        row = long[(long["gene"] == "g2") & (long["sample"] == "S2")].iloc[0]
        assert row["log2_count"] == pytest.approx(3.0)
        assert row["category"] == "A"

    def test_count_distribution_plot(self, three_samples):
        counts, metadata, _ = three_samples
        fig = plot_count_distribution(counts, extract_metadata(metadata))
        assert isinstance(fig, plt.Figure)
        plt.close(fig)

    def test_count_distribution_all_zero(self, three_samples):
        _, metadata, _ = three_samples
        counts = pd.DataFrame(0, index=["g1"], columns=["S1", "S2", "S3"])
        with pytest.raises(DegenerateInput):
            plot_count_distribution(counts, extract_metadata(metadata))
