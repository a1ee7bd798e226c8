"""
Shared test data: small count matrices, metadata and metrics tables.
"""

import numpy as np
import pandas as pd
import matplotlib

matplotlib.use("Agg")

import pytest


def make_counts(samples, n_genes=200, n_zero_genes=5, seed=0):
    """Negative-binomial counts, genes x samples, with trailing all-zero genes."""
    rng = np.random.default_rng(seed)
    means = rng.lognormal(mean=4.0, sigma=1.5, size=n_genes)
    size = 5.0
    data = np.column_stack(
        [
            rng.negative_binomial(size, size / (size + means * (1 + 0.2 * j)))
            for j in range(len(samples))
        ]
    )
    data = np.vstack([data, np.zeros((n_zero_genes, len(samples)), dtype=int)])
    genes = [f"G{i}" for i in range(n_genes + n_zero_genes)]
    return pd.DataFrame(data.astype(int), index=genes, columns=list(samples))


def make_metrics(samples, total_reads, mapped_reads):
    n = len(samples)
    return pd.DataFrame(
        {
            "sample": list(samples),
            "total_reads": list(total_reads),
            "mapped_reads": list(mapped_reads),
            "exonic_rate": np.linspace(0.8, 0.5, n),
            "intronic_rate": np.linspace(0.1, 0.3, n),
            "r_rna_rate": np.linspace(0.01, 0.2, n),
            "x5_3_bias": np.linspace(0.9, 1.05, n),
        }
    )


@pytest.fixture
def three_samples():
    """The S1/S2/S3 scenario: categories A, A, B."""
    samples = ["S1", "S2", "S3"]
    metadata = pd.DataFrame(
        {"sample": samples, "category": ["A", "A", "B"], "batch": [1, 1, 2]}
    )
    metrics = make_metrics(
        samples, [10e6, 5e6, 1e6], [9e6, 4e6, 0.5e6]
    )
    counts = make_counts(samples)
    return counts, metadata, metrics


@pytest.fixture
def six_samples():
    samples = [f"S{i}" for i in range(1, 7)]
    metadata = pd.DataFrame(
        {"sample": samples, "category": ["ctrl"] * 3 + ["treat"] * 3}
    )
    metrics = make_metrics(
        samples,
        [30e6, 25e6, 25e6, 12e6, 40e6, 8e6],
        [28e6, 23e6, 20e6, 11e6, 39e6, 5e6],
    )
    counts = make_counts(samples, seed=1)
    return counts, metadata, metrics


@pytest.fixture
def anndata_bundle(three_samples):
    import anndata as ad

    counts, metadata, metrics = three_samples
    obs = metadata.copy()
    obs.index = pd.Index(metadata["sample"].tolist())
    adata = ad.AnnData(
        X=counts.T.to_numpy(dtype=np.float32),
        obs=obs,
        var=pd.DataFrame(index=pd.Index(counts.index.tolist())),
        layers={"counts": counts.T.to_numpy()},
    )
    adata.uns["metrics"] = metrics
    return adata
