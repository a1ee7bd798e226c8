"""
Diagnostic QC charts.

Every chart is a pure function of the metrics table (and the count matrix for
the per-gene distribution) and returns a matplotlib Figure. Ranked bar charts
share one layout: samples sorted descending by the plotted value, bars
coloured by category, each bar annotated just past its end.
"""

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from adjustText import adjust_text
from matplotlib.figure import Figure
from matplotlib.patches import Patch
from pandas import DataFrame

from .exceptions import DegenerateInput
from .metrics import CATEGORY_COL, SAMPLE_COL, filter_zero_genes

GENES_DETECTED_MAX = 30000
BIAS_LIMITS = (0.0, 1.1)


# -----------------------
# Formatting helpers
# -----------------------
def rank_samples(values: pd.Series) -> List:
    """
    Index labels of `values` sorted descending.

    Ties keep their input order, missing values go last.
    """
    v = values.astype(float).to_numpy()
    order = sorted(
        range(len(v)),
        key=lambda i: (np.isnan(v[i]), 0.0 if np.isnan(v[i]) else -v[i]),
    )
    return list(values.index[order])


def floor_labels(values: Iterable[float]) -> List[str]:
    return [
        "NA" if pd.isna(v) else str(int(np.floor(v))) for v in values
    ]


def round_labels(values: Iterable[float], decimals: int = 2) -> List[str]:
    return ["NA" if pd.isna(v) else f"{v:.{decimals}f}" for v in values]


def exact_labels(values: Iterable[float]) -> List[str]:
    out = []
    for v in values:
        if pd.isna(v):
            out.append("NA")
        elif float(v).is_integer():
            out.append(str(int(v)))
        else:
            out.append(format(float(v), "g"))
    return out


def bar_label_positions(
    values: Sequence[float], pad_fraction: float = 0.01
) -> np.ndarray:
    """
    x positions for bar annotations, just beyond each bar end.

    The padding is a fraction of the largest absolute value in the series,
    so labels sit at the same visual distance on every bar.
    """
    v = np.asarray(values, dtype=float)
    finite = v[np.isfinite(v)]
    span = float(np.abs(finite).max()) if finite.size else 0.0
    pad = span * pad_fraction if span > 0 else pad_fraction
    return np.where(np.isfinite(v), v, 0.0) + pad


def rrna_upper_limit(values: Sequence[float], headroom: float = 10.0) -> float:
    """Axis upper bound for rRNA rate (%): largest observed value + headroom."""
    v = np.asarray(values, dtype=float)
    finite = v[np.isfinite(v)]
    if finite.size == 0:
        return headroom
    return float(finite.max()) + headroom


def category_palette(categories: Iterable[str]) -> Dict[str, tuple]:
    """Category -> colour, assigned in sorted category order."""
    levels = sorted(set(categories))
    colors = sns.color_palette("tab10", n_colors=max(len(levels), 1))
    return {cat: colors[i % len(colors)] for i, cat in enumerate(levels)}


def _category_legend(ax, palette: Dict[str, tuple]) -> None:
    handles = [Patch(facecolor=c, label=cat) for cat, c in palette.items()]
    ax.legend(handles=handles, title=CATEGORY_COL, loc="best", fontsize=8)


def ranked_chart_table(
    metrics: DataFrame, values: pd.Series, labels: List[str]
) -> DataFrame:
    """
    Table behind a ranked bar chart.

    Parameters
    ----------
    metrics : DataFrame
        Augmented metrics table (provides sample and category).
    values : Series
        Plotted value per row of `metrics` (same index).
    labels : list of str
        Bar annotation per row of `metrics`, in `metrics` order.

    Returns
    -------
    DataFrame
        Columns sample, category, value, label; rows in plotting order
        (descending value, ties in input order).
    """
    table = pd.DataFrame(
        {
            SAMPLE_COL: metrics[SAMPLE_COL].to_numpy(),
            CATEGORY_COL: metrics[CATEGORY_COL].to_numpy(),
            "value": values.astype(float).to_numpy(),
            "label": list(labels),
        }
    )
    order = rank_samples(table["value"])
    return table.loc[order].reset_index(drop=True)


def plot_ranked_bar(
    table: DataFrame,
    title: str,
    xlabel: str,
    xlim: Optional[Tuple[float, float]] = None,
    limit: Optional[float] = None,
    figsize: Optional[Tuple[float, float]] = None,
) -> Figure:
    """
    Horizontal bar chart from a `ranked_chart_table` result.

    The first row of the table is drawn at the top.
    """
    n = len(table)
    if figsize is None:
        figsize = (8, max(3.0, 0.35 * n + 1.5))
    palette = category_palette(table[CATEGORY_COL])

    fig, ax = plt.subplots(figsize=figsize)
    positions = np.arange(n)
    ax.barh(
        positions,
        table["value"].fillna(0).to_numpy(),
        color=[palette[c] for c in table[CATEGORY_COL]],
    )
    ax.set_yticks(positions)
    ax.set_yticklabels(table[SAMPLE_COL])
    ax.invert_yaxis()

    for y, x, text in zip(
        positions, bar_label_positions(table["value"]), table["label"]
    ):
        ax.text(x, y, text, va="center", ha="left", fontsize=8)

    if limit is not None:
        ax.axvline(limit, color="black", linestyle="--", linewidth=1)
    if xlim is not None:
        ax.set_xlim(*xlim)

    ax.set_xlabel(xlabel)
    ax.set_ylabel(SAMPLE_COL)
    ax.set_title(title)
    _category_legend(ax, palette)
    fig.tight_layout()
    return fig


# -----------------------
# Ranked bar charts
# -----------------------
def plot_total_reads(
    metrics: DataFrame,
    limit: Optional[float] = None,
    figsize: Optional[Tuple[float, float]] = None,
) -> Figure:
    values = metrics["total_reads"] / 1e6
    table = ranked_chart_table(metrics, values, floor_labels(values))
    return plot_ranked_bar(
        table,
        title="Total reads",
        xlabel="total reads (million)",
        limit=None if limit is None else limit / 1e6,
        figsize=figsize,
    )


def plot_mapped_reads(
    metrics: DataFrame,
    legacy_labels: bool = False,
    figsize: Optional[Tuple[float, float]] = None,
) -> Figure:
    """
    Mapped reads per sample.

    With `legacy_labels` the raw counts are plotted and each bar is labelled
    with floor(total reads in millions), as the historical report did.
    Otherwise mapped reads are plotted in millions and labelled with their
    own floor.
    """
    if legacy_labels:
        values = metrics["mapped_reads"].astype(float)
        labels = floor_labels(metrics["total_reads"] / 1e6)
    else:
        values = metrics["mapped_reads"] / 1e6
        labels = floor_labels(values)
    table = ranked_chart_table(metrics, values, labels)
    return plot_ranked_bar(
        table,
        title="Mapped reads",
        xlabel="mapped reads (million)",
        figsize=figsize,
    )


def plot_mapping_rate(
    metrics: DataFrame,
    legacy_labels: bool = False,
    limit: Optional[float] = None,
    figsize: Optional[Tuple[float, float]] = None,
) -> Figure:
    """
    Fraction of reads mapped per sample.

    `legacy_labels` floors the fraction (so every label reads 0); the
    default labels with the rate rounded to two decimals.
    """
    values = metrics["mapped_reads_pct"].astype(float)
    labels = floor_labels(values) if legacy_labels else round_labels(values)
    table = ranked_chart_table(metrics, values, labels)
    return plot_ranked_bar(
        table,
        title="Mapping rate",
        xlabel="mapping rate",
        limit=limit,
        figsize=figsize,
    )


def plot_genes_detected(
    metrics: DataFrame,
    limit: Optional[float] = None,
    figsize: Optional[Tuple[float, float]] = None,
) -> Figure:
    values = metrics["n_genes"].astype(float)
    table = ranked_chart_table(metrics, values, exact_labels(values))
    return plot_ranked_bar(
        table,
        title="Number of genes detected",
        xlabel="genes detected",
        xlim=(0, GENES_DETECTED_MAX),
        limit=limit,
        figsize=figsize,
    )


def plot_exonic_rate(
    metrics: DataFrame,
    limit: Optional[float] = None,
    figsize: Optional[Tuple[float, float]] = None,
) -> Figure:
    values = metrics["exonic_rate"] * 100
    table = ranked_chart_table(metrics, values, floor_labels(values))
    return plot_ranked_bar(
        table,
        title="Exonic mapping rate",
        xlabel="exonic mapping rate (%)",
        limit=None if limit is None else limit * 100,
        figsize=figsize,
    )


def plot_intronic_rate(
    metrics: DataFrame,
    limit: Optional[float] = None,
    figsize: Optional[Tuple[float, float]] = None,
) -> Figure:
    values = metrics["intronic_rate"] * 100
    table = ranked_chart_table(metrics, values, floor_labels(values))
    return plot_ranked_bar(
        table,
        title="Intronic mapping rate",
        xlabel="intronic mapping rate (%)",
        limit=None if limit is None else limit * 100,
        figsize=figsize,
    )


def plot_rrna_rate(
    metrics: DataFrame,
    limit: Optional[float] = None,
    figsize: Optional[Tuple[float, float]] = None,
) -> Figure:
    values = metrics["r_rna_rate"] * 100
    table = ranked_chart_table(metrics, values, round_labels(values, 2))
    return plot_ranked_bar(
        table,
        title="rRNA mapping rate",
        xlabel="rRNA mapping rate (%)",
        xlim=(0, rrna_upper_limit(values)),
        limit=None if limit is None else limit * 100,
        figsize=figsize,
    )


def plot_53_bias(
    metrics: DataFrame,
    figsize: Optional[Tuple[float, float]] = None,
) -> Figure:
    values = metrics["x5_3_bias"].astype(float)
    table = ranked_chart_table(metrics, values, exact_labels(values))
    return plot_ranked_bar(
        table,
        title="5'->3' bias",
        xlabel="5'->3' bias",
        xlim=BIAS_LIMITS,
        figsize=figsize,
    )


# -----------------------
# Scatter / box charts
# -----------------------
def plot_gene_saturation(
    metrics: DataFrame,
    figsize: Tuple[float, float] = (8, 6),
    label_points: bool = True,
) -> Figure:
    """
    Genes detected against log10(total reads), one point per sample.

    Samples with no reads have no defined log10 and are left out.
    """
    df = metrics.loc[
        metrics["total_reads"] > 0, [SAMPLE_COL, CATEGORY_COL]
    ].copy()
    df["log10_total_reads"] = np.log10(
        metrics.loc[df.index, "total_reads"].astype(float)
    )
    df["n_genes"] = metrics.loc[df.index, "n_genes"]
    palette = category_palette(metrics[CATEGORY_COL])

    fig, ax = plt.subplots(figsize=figsize)
    for cat, sub in df.groupby(CATEGORY_COL, sort=True):
        ax.scatter(
            sub["log10_total_reads"],
            sub["n_genes"],
            color=palette[cat],
            label=cat,
            s=40,
            alpha=0.9,
        )

    if label_points:
        texts = [
            ax.text(x, y, name, fontsize=8)
            for x, y, name in zip(
                df["log10_total_reads"], df["n_genes"], df[SAMPLE_COL]
            )
        ]
        if len(texts) > 1:
            adjust_text(texts, ax=ax)

    ax.set_xlabel(r"$\log_{10}$(total reads)")
    ax.set_ylabel("genes detected")
    ax.set_title("Gene detection saturation")
    ax.legend(title=CATEGORY_COL, fontsize=8)
    fig.tight_layout()
    return fig


def count_distribution_table(
    counts: DataFrame, metadata: DataFrame
) -> DataFrame:
    """
    Long table of log2(count + 1), one row per (gene, sample) pair.

    Only genes with a nonzero total count are included.
    """
    filtered = filter_zero_genes(counts)
    long = (
        filtered.rename_axis("gene")
        .reset_index()
        .melt(id_vars="gene", var_name=SAMPLE_COL, value_name="count")
    )
    long["log2_count"] = np.log2(long["count"].astype(float) + 1)
    return long.merge(metadata, on=SAMPLE_COL, how="left")


def plot_count_distribution(
    counts: DataFrame,
    metadata: DataFrame,
    figsize: Optional[Tuple[float, float]] = None,
) -> Figure:
    long = count_distribution_table(counts, metadata)
    if long.empty:
        raise DegenerateInput("No genes with nonzero counts to plot")
    samples = metadata[SAMPLE_COL].tolist()
    if figsize is None:
        figsize = (max(6.0, 0.5 * len(samples) + 2), 5)
    palette = category_palette(metadata[CATEGORY_COL])

    fig, ax = plt.subplots(figsize=figsize)
    sns.boxplot(
        data=long,
        x=SAMPLE_COL,
        y="log2_count",
        hue=CATEGORY_COL,
        order=samples,
        palette=palette,
        dodge=False,
        fliersize=1,
        ax=ax,
    )
    ax.set_xlabel(SAMPLE_COL)
    ax.set_ylabel(r"$\log_2$(count + 1)")
    ax.set_title("Counts per gene")
    ax.tick_params(axis="x", labelrotation=90)
    fig.tight_layout()
    return fig
