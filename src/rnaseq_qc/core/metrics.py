"""
Per-sample QC metrics: bundle unpacking, metadata/metrics join and derived
statistics.

All functions in this module are pure: they take DataFrames (or an AnnData
object) and return new objects without touching their inputs.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from pandas import DataFrame
from scipy import sparse

from .exceptions import JoinMismatch, MalformedBundle

SAMPLE_COL = "sample"
CATEGORY_COL = "category"

REQUIRED_METRICS = [
    "total_reads",
    "mapped_reads",
    "exonic_rate",
    "intronic_rate",
    "r_rna_rate",
    "x5_3_bias",
]

# metric -> (direction, limit); "min" flags values below, "max" values above
DEFAULT_THRESHOLDS: Dict[str, Tuple[str, float]] = {
    "total_reads": ("min", 20e6),
    "mapped_reads_pct": ("min", 0.9),
    "n_genes": ("min", 20000),
    "exonic_rate": ("min", 0.6),
    "intronic_rate": ("max", 0.2),
    "r_rna_rate": ("max", 0.1),
}


@dataclass(frozen=True)
class QCBundle:
    """
    In-memory view of one input bundle.

    Attributes
    ----------
    metadata : DataFrame
        One row per sample with columns `sample` and `category`.
    metrics : DataFrame
        One row per sample, in metadata order, with the upstream metrics
        joined on `sample` (plus derived columns once computed).
    counts : DataFrame
        Raw counts, genes (rows) x samples (columns named by `sample`).
    warnings : list of str
        Non-fatal data-quality issues found while loading or deriving.
    """

    metadata: DataFrame
    metrics: DataFrame
    counts: DataFrame
    warnings: List[str] = field(default_factory=list)

    @property
    def sample_ids(self) -> List[str]:
        return self.metadata[SAMPLE_COL].tolist()


def extract_metadata(
    obs: DataFrame,
    sample_col: str = SAMPLE_COL,
    category_col: str = CATEGORY_COL,
) -> DataFrame:
    """
    Project sample annotations to the `sample` and `category` columns.

    Raises
    ------
    MalformedBundle
        If a column is missing or sample identifiers are not unique.
    """
    missing = [c for c in (sample_col, category_col) if c not in obs.columns]
    if missing:
        raise MalformedBundle(
            f"Sample metadata missing required columns: {missing}. "
            f"Found: {list(obs.columns)}"
        )
    metadata = pd.DataFrame(
        {
            SAMPLE_COL: obs[sample_col].astype(str).to_numpy(),
            CATEGORY_COL: obs[category_col].astype(str).to_numpy(),
        }
    )
    duplicated = metadata[SAMPLE_COL][metadata[SAMPLE_COL].duplicated()]
    if len(duplicated) > 0:
        raise MalformedBundle(
            f"Duplicated sample identifiers in metadata: "
            f"{sorted(set(duplicated))}"
        )
    return metadata


def validate_metrics_table(metrics: DataFrame) -> DataFrame:
    """Check the upstream metrics table and return a copy with `sample` as str."""
    if not isinstance(metrics, pd.DataFrame):
        raise MalformedBundle(
            f"Metrics table must be a DataFrame, got {type(metrics).__name__}"
        )
    required = [SAMPLE_COL] + REQUIRED_METRICS
    missing = [c for c in required if c not in metrics.columns]
    if missing:
        raise MalformedBundle(
            f"Metrics table missing required columns: {missing}. "
            f"Found: {list(metrics.columns)}"
        )
    metrics = metrics.reset_index(drop=True).copy()
    metrics[SAMPLE_COL] = metrics[SAMPLE_COL].astype(str)
    for col in REQUIRED_METRICS:
        if not pd.api.types.is_numeric_dtype(metrics[col]):
            raise MalformedBundle(
                f"Metrics column '{col}' contains non-numeric values"
            )
    return metrics


def join_metrics(
    metadata: DataFrame, metrics: DataFrame
) -> Tuple[DataFrame, List[str]]:
    """
    Left-join the metrics table onto the sample metadata by `sample`.

    The result has exactly one row per metadata row, in metadata order.

    Returns
    -------
    tuple
        (joined, warnings) where warnings lists metrics rows that had no
        metadata row and were therefore dropped.

    Raises
    ------
    JoinMismatch
        If a metadata sample has no metrics row, or a sample appears more
        than once in the metrics table.
    """
    dup = metrics[SAMPLE_COL][metrics[SAMPLE_COL].duplicated()]
    if len(dup) > 0:
        raise JoinMismatch(
            f"Samples with more than one metrics row: {sorted(set(dup))}"
        )

    known = set(metrics[SAMPLE_COL])
    unmatched = [s for s in metadata[SAMPLE_COL] if s not in known]
    if unmatched:
        raise JoinMismatch(f"Samples without a metrics row: {unmatched}")

    issues = []
    expected = set(metadata[SAMPLE_COL])
    extra = [s for s in metrics[SAMPLE_COL] if s not in expected]
    if extra:
        issues.append(
            f"Metrics rows without sample metadata were dropped: {extra}"
        )

    metric_cols = [c for c in metrics.columns if c != CATEGORY_COL]
    joined = metadata.merge(
        metrics[metric_cols],
        on=SAMPLE_COL,
        how="left",
        validate="one_to_one",
    )
    return joined, issues


def counts_from_layer(layer, sample_ids: List[str], gene_ids: List[str]) -> DataFrame:
    """
    Turn a samples x genes count layer into a genes x samples DataFrame.
    """
    if sparse.issparse(layer):
        layer = layer.toarray()
    values = np.asarray(layer)
    if values.shape != (len(sample_ids), len(gene_ids)):
        raise MalformedBundle(
            f"Count layer has shape {values.shape}, expected "
            f"{(len(sample_ids), len(gene_ids))}"
        )
    if not np.issubdtype(values.dtype, np.number):
        raise MalformedBundle("Count layer contains non-numeric values")
    if (values < 0).any():
        raise MalformedBundle("Count layer contains negative counts")
    return pd.DataFrame(values.T, index=list(gene_ids), columns=sample_ids)


def bundle_from_anndata(
    adata,
    counts_layer: str = "counts",
    metrics_key: str = "metrics",
    sample_col: str = SAMPLE_COL,
    category_col: str = CATEGORY_COL,
) -> QCBundle:
    """
    Unpack an AnnData bundle into metadata, joined metrics and counts.

    Parameters
    ----------
    adata : anndata.AnnData
        Samples as observations, genes as variables.
    counts_layer : str
        Name of the raw counts layer.
    metrics_key : str
        Key in `adata.uns` holding the upstream metrics DataFrame.
    sample_col, category_col : str
        Columns in `adata.obs` carrying sample id and experimental group.

    Returns
    -------
    QCBundle
    """
    if counts_layer not in adata.layers:
        raise MalformedBundle(
            f"Count layer '{counts_layer}' not found. "
            f"Available layers: {list(adata.layers.keys())}"
        )
    if metrics_key not in adata.uns:
        raise MalformedBundle(f"Metrics table '{metrics_key}' not found in uns")

    metadata = extract_metadata(adata.obs, sample_col, category_col)
    metrics = validate_metrics_table(adata.uns[metrics_key])
    joined, issues = join_metrics(metadata, metrics)
    counts = counts_from_layer(
        adata.layers[counts_layer],
        metadata[SAMPLE_COL].tolist(),
        list(adata.var_names),
    )
    for issue in issues:
        warnings.warn(issue)
    return QCBundle(
        metadata=metadata, metrics=joined, counts=counts, warnings=issues
    )


def compute_mapped_reads_pct(metrics: DataFrame) -> pd.Series:
    """
    mapped_reads / total_reads per sample.

    Samples with zero total reads get a missing value and trigger a
    RuntimeWarning naming them.
    """
    total = metrics["total_reads"].astype(float)
    mapped = metrics["mapped_reads"].astype(float)
    zero = total == 0
    pct = pd.Series(np.nan, index=metrics.index, dtype=float)
    pct[~zero] = mapped[~zero] / total[~zero]
    if zero.any():
        samples = metrics.loc[zero, SAMPLE_COL].tolist()
        warnings.warn(
            f"Mapping rate undefined for samples with zero total reads: "
            f"{samples}",
            RuntimeWarning,
        )
    return pct


def compute_n_genes(counts: DataFrame) -> pd.Series:
    """Number of genes with a count > 0, per sample column."""
    return (counts > 0).sum(axis=0).astype(int)


def filter_zero_genes(counts: DataFrame) -> DataFrame:
    """Drop genes whose counts sum to zero across all samples."""
    return counts.loc[counts.sum(axis=1) != 0]


def add_derived_metrics(bundle: QCBundle) -> QCBundle:
    """
    Append `mapped_reads_pct` and `n_genes` to the metrics table.

    Returns a new QCBundle; the input bundle is left untouched.
    """
    metrics = bundle.metrics.copy()
    issues = list(bundle.warnings)

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        metrics["mapped_reads_pct"] = compute_mapped_reads_pct(metrics)
    for w in caught:
        issues.append(str(w.message))
        warnings.warn(w.message, w.category)

    n_genes = compute_n_genes(bundle.counts)
    missing = [s for s in metrics[SAMPLE_COL] if s not in n_genes.index]
    if missing:
        raise MalformedBundle(f"Samples missing from count matrix: {missing}")
    metrics["n_genes"] = metrics[SAMPLE_COL].map(n_genes).astype(int)

    return replace(bundle, metrics=metrics, warnings=issues)


def flag_samples(
    metrics: DataFrame,
    thresholds: Optional[Dict[str, Tuple[str, float]]] = None,
) -> DataFrame:
    """
    Mark samples that fall outside the QC thresholds.

    Parameters
    ----------
    metrics : DataFrame
        Augmented metrics table.
    thresholds : dict, optional
        metric -> ("min" | "max", limit). Defaults to DEFAULT_THRESHOLDS.
        Metrics absent from the table are skipped.

    Returns
    -------
    DataFrame
        Columns: sample, category, one boolean column per checked metric
        (True = outside the threshold), n_failed and failed (comma-joined
        metric names). Missing metric values count as failures.
    """
    if thresholds is None:
        thresholds = DEFAULT_THRESHOLDS

    flags = metrics[[SAMPLE_COL, CATEGORY_COL]].copy()
    checked = []
    for metric, (direction, limit) in thresholds.items():
        if metric not in metrics.columns:
            continue
        values = metrics[metric].astype(float)
        if direction == "min":
            failed = values < limit
        elif direction == "max":
            failed = values > limit
        else:
            raise ValueError(
                f"Unknown threshold direction '{direction}' for {metric}"
            )
        flags[metric] = failed | values.isna()
        checked.append(metric)

    flags["n_failed"] = flags[checked].sum(axis=1).astype(int)
    flags["failed"] = [
        ", ".join(m for m in checked if row[m])
        for _, row in flags.iterrows()
    ]
    return flags
