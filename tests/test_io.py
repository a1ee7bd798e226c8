"""
Tests for the services layer: bundle files, figure saving, plot writing and
the environment listing.
"""

import numpy as np
import pandas as pd
import pytest
import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt

from rnaseq_qc.core.exceptions import JoinMismatch, MalformedBundle
from rnaseq_qc.services import plots_io
from rnaseq_qc.services.environment import collect_session_info, package_versions
from rnaseq_qc.services.io import (
    load_qc_bundle,
    read_bundle,
    read_dataframe,
    save_figure,
    write_bundle,
)


class TestSaveFigure:
    def test_save_formats(self, tmp_path):
        fig, ax = plt.subplots()
        ax.plot([1, 2, 3], [1, 2, 3])

        paths = save_figure(fig, tmp_path / "nested", "plot", formats=["png", "pdf"])

        assert set(paths) == {"png", "pdf"}
        assert all(p.exists() for p in paths.values())
        assert paths["png"].name == "plot.png"
        plt.close(fig)


class TestReadDataframe:
    def test_read_csv(self, tmp_path):
        df = pd.DataFrame({"col1": [1, 2, 3], "col2": ["a", "b", "c"]})
        path = tmp_path / "test.csv"
        df.to_csv(path, index=False)

        assert read_dataframe(path).shape == (3, 2)

    def test_read_tsv(self, tmp_path):
        df = pd.DataFrame({"col1": [1, 2, 3]})
        path = tmp_path / "test.tsv"
        df.to_csv(path, sep="\t", index=False)

        assert read_dataframe(path)["col1"].tolist() == [1, 2, 3]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_dataframe(tmp_path / "nope.tsv")


class TestBundleFiles:
    def test_round_trip(self, tmp_path, three_samples):
        counts, metadata, metrics = three_samples
        path = write_bundle(counts, metadata, metrics, tmp_path / "b.h5ad")

        adata = read_bundle(path)
        assert "counts" in adata.layers
        assert adata.shape == (3, len(counts))

        bundle = load_qc_bundle(path)
        assert bundle.sample_ids == ["S1", "S2", "S3"]
        assert bundle.metrics["mapped_reads_pct"].tolist() == pytest.approx(
            [0.9, 0.8, 0.5]
        )
        assert (bundle.counts.to_numpy() == counts.to_numpy()).all()

    def test_write_from_files(self, tmp_path, three_samples):
        counts, metadata, metrics = three_samples
        counts.to_csv(tmp_path / "counts.tsv", sep="\t")
        metadata.to_csv(tmp_path / "meta.csv", index=False)
        metrics.to_csv(tmp_path / "metrics.tsv", sep="\t", index=False)

        path = write_bundle(
            tmp_path / "counts.tsv",
            tmp_path / "meta.csv",
            tmp_path / "metrics.tsv",
            tmp_path / "b.h5ad",
        )
        bundle = load_qc_bundle(path, derive=False)
        assert "n_genes" not in bundle.metrics.columns
        assert bundle.counts.index.tolist() == counts.index.tolist()

    def test_write_missing_sample_column(self, tmp_path, three_samples):
        counts, metadata, metrics = three_samples
        with pytest.raises(MalformedBundle, match="Samples missing"):
            write_bundle(
                counts.drop(columns="S2"), metadata, metrics, tmp_path / "b.h5ad"
            )

    def test_missing_bundle(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_bundle(tmp_path / "missing.h5ad")

    def test_unreadable_bundle(self, tmp_path):
        path = tmp_path / "broken.h5ad"
        path.write_text("not hdf5")
        with pytest.raises(MalformedBundle):
            read_bundle(path)

    def test_join_mismatch(self, tmp_path, three_samples):
        counts, metadata, metrics = three_samples
        path = write_bundle(
            counts, metadata, metrics.iloc[:2], tmp_path / "b.h5ad"
        )
        with pytest.raises(JoinMismatch):
            load_qc_bundle(path)


class TestPlotsIO:
    def test_write_diagnostic_plots(self, tmp_path, three_samples):
        counts, metadata, metrics = three_samples
        path = write_bundle(counts, metadata, metrics, tmp_path / "b.h5ad")
        bundle = load_qc_bundle(path)

        results = plots_io.write_diagnostic_plots(bundle, tmp_path / "plots")

        assert len(results) == 10
        assert all(r["error"] is None for r in results.values())
        assert (tmp_path / "plots" / "total_reads.png").exists()
        assert (tmp_path / "plots" / "count_distribution.png").exists()

    def test_failing_chart_is_isolated(self, tmp_path, three_samples, monkeypatch):
        counts, metadata, metrics = three_samples
        bundle = load_qc_bundle(
            write_bundle(counts, metadata, metrics, tmp_path / "b.h5ad")
        )

        def broken(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(plots_io, "plot_rrna_rate", broken)
        results = plots_io.write_diagnostic_plots(bundle, tmp_path / "plots")

        assert results["rrna_rate"]["error"] == "boom"
        assert results["rrna_rate"]["files"] == {}
        others = [r for k, r in results.items() if k != "rrna_rate"]
        assert all(r["error"] is None for r in others)
        assert (tmp_path / "plots" / "bias_53.png").exists()

    def test_similarity_degenerate(self, tmp_path, three_samples):
        _, metadata, metrics = three_samples
        counts = pd.DataFrame(
            {"S1": [0, 3], "S2": [0, 1], "S3": [0, 2]}, index=["z", "g"]
        )
        bundle = load_qc_bundle(
            write_bundle(counts, metadata, metrics, tmp_path / "b.h5ad")
        )
        result = plots_io.write_similarity_plot(bundle, tmp_path / "plots")

        assert result["error"] is None
        assert "1 gene" in result["message"]
        assert result["files"] == {}

    def test_similarity_plot(self, tmp_path, six_samples):
        counts, metadata, metrics = six_samples
        bundle = load_qc_bundle(
            write_bundle(counts, metadata, metrics, tmp_path / "b.h5ad")
        )
        result = plots_io.write_similarity_plot(
            bundle,
            tmp_path / "plots",
            transform=lambda filtered, meta: np.log2(filtered + 1),
        )
        assert result["message"] is None
        assert result["files"]["png"].exists()
        assert result["result"].n_genes == int((counts.sum(axis=1) > 0).sum())


class TestEnvironment:
    def test_package_versions(self):
        table = package_versions(["pandas", "surely-not-a-real-package"])
        versions = dict(zip(table["package"], table["version"]))
        assert versions["pandas"] == pd.__version__
        assert versions["surely-not-a-real-package"] == "not installed"

    def test_collect_session_info(self):
        info = collect_session_info()
        assert {"python", "platform", "packages"}.issubset(info)
        assert "numpy" in info["packages"]["package"].tolist()
