from pathlib import Path
from typing import Dict, List, Union

import anndata as ad
import numpy as np
import pandas as pd
from pandas import DataFrame

from rnaseq_qc.core.exceptions import MalformedBundle
from rnaseq_qc.core.metrics import (
    CATEGORY_COL,
    QCBundle,
    SAMPLE_COL,
    add_derived_metrics,
    bundle_from_anndata,
)


def save_figure(
    f,
    folder: Union[Path, str],
    name: str,
    formats: List[str] = ["png"],
    bbox_inches="tight",
    dpi: int = 200,
) -> Dict[str, Path]:
    """Save a figure once per format; returns format -> path."""
    folder = Path(folder)
    folder.mkdir(exist_ok=True, parents=True)
    paths = {}
    for fmt in formats:
        path = folder / f"{name}.{fmt}"
        f.savefig(path, bbox_inches=bbox_inches, dpi=dpi)
        paths[fmt] = path
    return paths


def read_dataframe(path: Union[str, Path], **kwargs) -> DataFrame:
    """
    Read a tabular file into a pandas DataFrame based on file extension.

    Rules:
    - .csv        -> read as CSV
    - .tsv        -> read as TSV
    - .txt        -> treated as TSV
    - .xls/.xlsx  -> read as Excel
    - other       -> try TSV, raise error if that fails

    Additional keyword arguments are forwarded to the pandas reader.
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"File does not exist: {path}")

    suffix = path.suffix.lower()

    try:
        if suffix == ".csv":
            return pd.read_csv(path, **kwargs)

        if suffix in {".tsv", ".txt"}:
            return pd.read_csv(path, sep="\t", **kwargs)

        if suffix in {".xls", ".xlsx"}:
            return pd.read_excel(path, **kwargs)

        # Fallback: try TSV for unknown extensions
        try:
            return pd.read_csv(path, sep="\t", **kwargs)
        except Exception as exc:
            raise ValueError(
                f"Unsupported file extension '{suffix}'. "
                "Tried to read as TSV but failed."
            ) from exc

    except Exception as exc:
        raise RuntimeError(f"Failed to read file '{path}': {exc}") from exc


def _as_frame(table: Union[Path, str, DataFrame], **kwargs) -> DataFrame:
    if isinstance(table, (str, Path)):
        return read_dataframe(table, **kwargs)
    elif isinstance(table, DataFrame):
        return table
    raise TypeError("table must be a DataFrame or a path to a file")


def write_bundle(
    counts: Union[Path, str, DataFrame],
    metadata: Union[Path, str, DataFrame],
    metrics: Union[Path, str, DataFrame],
    path: Union[Path, str],
    counts_layer: str = "counts",
    metrics_key: str = "metrics",
) -> Path:
    """
    Write a QC bundle (.h5ad) from its three tables.

    Parameters
    ----------
    counts : DataFrame or path
        Genes x samples raw counts; columns are sample ids. When read from
        a file the first column is taken as the gene index.
    metadata : DataFrame or path
        At least columns sample and category.
    metrics : DataFrame or path
        Upstream metrics, one row per sample.
    path : Path or str
        Output .h5ad file.
    """
    counts = _as_frame(counts, index_col=0)
    metadata = _as_frame(metadata)
    metrics = _as_frame(metrics)

    missing = [c for c in (SAMPLE_COL, CATEGORY_COL) if c not in metadata]
    if missing:
        raise MalformedBundle(f"Metadata missing required columns: {missing}")
    samples = metadata[SAMPLE_COL].astype(str).tolist()
    absent = [s for s in samples if s not in counts.columns]
    if absent:
        raise MalformedBundle(f"Samples missing from count matrix: {absent}")

    obs = metadata.copy()
    obs[SAMPLE_COL] = obs[SAMPLE_COL].astype(str)
    obs[CATEGORY_COL] = obs[CATEGORY_COL].astype(str)
    obs.index = pd.Index(samples)
    var = pd.DataFrame(index=pd.Index([str(g) for g in counts.index]))
    matrix = counts[samples].T.to_numpy(dtype=np.int64)

    adata = ad.AnnData(
        X=matrix.astype(np.float32),
        obs=obs,
        var=var,
        layers={counts_layer: matrix},
    )
    adata.uns[metrics_key] = metrics.reset_index(drop=True)

    path = Path(path)
    path.parent.mkdir(exist_ok=True, parents=True)
    adata.write_h5ad(path)
    return path


def read_bundle(path: Union[Path, str]) -> ad.AnnData:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Bundle file not found: {path}")
    try:
        return ad.read_h5ad(path)
    except Exception as exc:
        raise MalformedBundle(f"Could not read bundle '{path}': {exc}") from exc


def load_qc_bundle(
    path: Union[Path, str],
    counts_layer: str = "counts",
    metrics_key: str = "metrics",
    sample_col: str = SAMPLE_COL,
    category_col: str = CATEGORY_COL,
    derive: bool = True,
) -> QCBundle:
    """
    Read a bundle file, join metrics onto metadata and (by default) append
    the derived metrics.
    """
    bundle = bundle_from_anndata(
        read_bundle(path),
        counts_layer=counts_layer,
        metrics_key=metrics_key,
        sample_col=sample_col,
        category_col=category_col,
    )
    if derive:
        bundle = add_derived_metrics(bundle)
    return bundle
