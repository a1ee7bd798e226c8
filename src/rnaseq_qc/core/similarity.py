"""
Sample similarity: variance-stabilised counts projected onto principal
components.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from adjustText import adjust_text
from matplotlib.figure import Figure
from pandas import DataFrame
from pydeseq2.dds import DeseqDataSet
from sklearn.decomposition import PCA

from .exceptions import DegenerateInput
from .metrics import CATEGORY_COL, SAMPLE_COL, filter_zero_genes
from .plots import category_palette


@dataclass
class PCAResult:
    """
    Attributes
    ----------
    coordinates : DataFrame
        Samples (index) x components PC1..PCn.
    variance_pct : list of float
        Percent of variance explained per component.
    n_genes : int
        Genes that entered the analysis (after dropping all-zero genes).
    """

    coordinates: DataFrame
    variance_pct: List[float]
    n_genes: int

    def axis_label(self, component: int) -> str:
        return f"PC{component}: {self.variance_pct[component - 1]:.1f}% variance"


def check_dimensions(filtered: DataFrame, n_components: int = 2) -> None:
    """
    Raise DegenerateInput when the matrix cannot support `n_components`.
    """
    n_genes, n_samples = filtered.shape
    if n_genes < n_components:
        raise DegenerateInput(
            f"Only {n_genes} gene(s) with nonzero counts; "
            f"{n_components} principal components requested"
        )
    if n_samples < max(2, n_components):
        raise DegenerateInput(
            f"Only {n_samples} sample(s); at least {max(2, n_components)} "
            f"needed for {n_components} principal components"
        )


def variance_stabilize(
    filtered: DataFrame, metadata: DataFrame
) -> DataFrame:
    """
    DESeq2 variance-stabilising transform of a genes x samples count matrix.

    The transform is blind to the experimental design.
    """
    samples = list(filtered.columns)
    design_meta = (
        metadata.set_index(SAMPLE_COL).loc[samples, [CATEGORY_COL]].copy()
    )
    design = (
        f"~{CATEGORY_COL}" if design_meta[CATEGORY_COL].nunique() > 1 else "~1"
    )
    dds = DeseqDataSet(
        counts=filtered.T.round().astype(int),
        metadata=design_meta,
        design=design,
        quiet=True,
    )
    dds.vst(use_design=False)
    return pd.DataFrame(
        np.asarray(dds.layers["vst_counts"]).T,
        index=filtered.index,
        columns=samples,
    )


def compute_pca(transformed: DataFrame, n_components: int = 2) -> PCAResult:
    """
    PCA with samples as observations on a genes x samples matrix.
    """
    check_dimensions(transformed, n_components)
    pca = PCA(n_components=n_components)
    coords = pca.fit_transform(transformed.T.to_numpy(dtype=float))
    coordinates = pd.DataFrame(
        coords,
        index=list(transformed.columns),
        columns=[f"PC{i + 1}" for i in range(n_components)],
    )
    coordinates.index.name = SAMPLE_COL
    return PCAResult(
        coordinates=coordinates,
        variance_pct=[float(v) * 100 for v in pca.explained_variance_ratio_],
        n_genes=int(transformed.shape[0]),
    )


def run_similarity(
    counts: DataFrame,
    metadata: DataFrame,
    n_components: int = 2,
    transform: Optional[Callable[[DataFrame, DataFrame], DataFrame]] = None,
) -> PCAResult:
    """
    Drop all-zero genes, stabilise variance, run PCA.

    Parameters
    ----------
    counts : DataFrame
        Raw counts, genes x samples.
    metadata : DataFrame
        Columns sample, category.
    n_components : int
        Components to keep (at least 2 for the scatter).
    transform : callable, optional
        (filtered_counts, metadata) -> transformed matrix of the same shape.
        Defaults to `variance_stabilize`.

    Raises
    ------
    DegenerateInput
        Too few genes survive filtering, or too few samples.
    """
    if transform is None:
        transform = variance_stabilize
    filtered = filter_zero_genes(counts)
    check_dimensions(filtered, n_components)
    transformed = transform(filtered, metadata)
    return compute_pca(transformed, n_components)


def plot_pca(
    result: PCAResult,
    metadata: DataFrame,
    components: Tuple[int, int] = (1, 2),
    figsize: Tuple[float, float] = (8, 6),
) -> Figure:
    """
    Scatter of two principal components, coloured by category and labelled
    with sample ids.
    """
    cx, cy = (f"PC{c}" for c in components)
    df = result.coordinates.reset_index().merge(
        metadata, on=SAMPLE_COL, how="left"
    )
    palette = category_palette(metadata[CATEGORY_COL])

    fig, ax = plt.subplots(figsize=figsize)
    for cat, sub in df.groupby(CATEGORY_COL, sort=True):
        ax.scatter(sub[cx], sub[cy], color=palette[cat], label=cat, s=50)

    texts = [
        ax.text(x, y, name, fontsize=8)
        for x, y, name in zip(df[cx], df[cy], df[SAMPLE_COL])
    ]
    if len(texts) > 1:
        adjust_text(texts, ax=ax)

    ax.set_xlabel(result.axis_label(components[0]))
    ax.set_ylabel(result.axis_label(components[1]))
    ax.set_title(f"PCA of {result.n_genes} genes")
    ax.legend(title=CATEGORY_COL, fontsize=8)
    fig.tight_layout()
    return fig
