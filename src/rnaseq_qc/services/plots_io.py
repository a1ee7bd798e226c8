from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

import matplotlib.pyplot as plt

from rnaseq_qc.core.exceptions import DegenerateInput
from rnaseq_qc.core.metrics import DEFAULT_THRESHOLDS, QCBundle
from rnaseq_qc.core.plots import (
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
)
from rnaseq_qc.core.similarity import plot_pca, run_similarity
from .io import save_figure


def _limit(thresholds: Optional[Dict], metric: str) -> Optional[float]:
    if not thresholds or metric not in thresholds:
        return None
    return thresholds[metric][1]


def diagnostic_charts(
    bundle: QCBundle,
    legacy_labels: bool = False,
    thresholds: Optional[Dict[str, Tuple[str, float]]] = DEFAULT_THRESHOLDS,
) -> List[Tuple[str, str, Callable]]:
    """
    (name, title, zero-argument plot callable) for every diagnostic chart,
    in report order.
    """
    m = bundle.metrics
    return [
        (
            "total_reads",
            "Total reads",
            lambda: plot_total_reads(m, limit=_limit(thresholds, "total_reads")),
        ),
        (
            "mapped_reads",
            "Mapped reads",
            lambda: plot_mapped_reads(m, legacy_labels=legacy_labels),
        ),
        (
            "mapping_rate",
            "Mapping rate",
            lambda: plot_mapping_rate(
                m,
                legacy_labels=legacy_labels,
                limit=_limit(thresholds, "mapped_reads_pct"),
            ),
        ),
        (
            "genes_detected",
            "Number of genes detected",
            lambda: plot_genes_detected(m, limit=_limit(thresholds, "n_genes")),
        ),
        (
            "gene_saturation",
            "Gene detection saturation",
            lambda: plot_gene_saturation(m),
        ),
        (
            "exonic_rate",
            "Exonic mapping rate",
            lambda: plot_exonic_rate(m, limit=_limit(thresholds, "exonic_rate")),
        ),
        (
            "intronic_rate",
            "Intronic mapping rate",
            lambda: plot_intronic_rate(
                m, limit=_limit(thresholds, "intronic_rate")
            ),
        ),
        (
            "rrna_rate",
            "rRNA mapping rate",
            lambda: plot_rrna_rate(m, limit=_limit(thresholds, "r_rna_rate")),
        ),
        ("bias_53", "5'->3' bias", lambda: plot_53_bias(m)),
        (
            "count_distribution",
            "Counts per gene",
            lambda: plot_count_distribution(bundle.counts, bundle.metadata),
        ),
    ]


def write_diagnostic_plots(
    bundle: QCBundle,
    output_dir: Union[Path, str],
    legacy_labels: bool = False,
    thresholds: Optional[Dict[str, Tuple[str, float]]] = DEFAULT_THRESHOLDS,
    save_formats: List[str] = ["png"],
) -> Dict[str, Dict]:
    """
    Render and save every diagnostic chart.

    A chart that fails is reported and skipped; the others still render.

    Returns
    -------
    dict
        name -> {"title", "files" (format -> path), "error" (str or None)}
    """
    output_dir = Path(output_dir)
    results = {}
    for name, title, plot_func in diagnostic_charts(
        bundle, legacy_labels=legacy_labels, thresholds=thresholds
    ):
        print(f"Generating {name} plot...")
        try:
            fig = plot_func()
            files = save_figure(fig, output_dir, name, formats=save_formats)
            plt.close(fig)
            results[name] = {"title": title, "files": files, "error": None}
            print(f"  Saved {name}")
        except Exception as e:
            plt.close("all")
            print(f"  Warning: Failed to generate {name}: {e}")
            results[name] = {"title": title, "files": {}, "error": str(e)}
    return results


def write_similarity_plot(
    bundle: QCBundle,
    output_dir: Union[Path, str],
    n_components: int = 2,
    save_formats: List[str] = ["png"],
    transform: Optional[Callable] = None,
) -> Dict:
    """
    Run the similarity analysis and save the PCA scatter.

    Returns
    -------
    dict
        {"title", "files", "error", "message", "result"}; `message` explains
        a degenerate input, `error` carries any other failure.
    """
    title = "Sample similarity (PCA)"
    print("Running similarity analysis...")
    try:
        result = run_similarity(
            bundle.counts,
            bundle.metadata,
            n_components=n_components,
            transform=transform,
        )
        fig = plot_pca(result, bundle.metadata)
        files = save_figure(fig, Path(output_dir), "pca", formats=save_formats)
        plt.close(fig)
    except DegenerateInput as e:
        print(f"  Skipping PCA: {e}")
        return {
            "title": title,
            "files": {},
            "error": None,
            "message": str(e),
            "result": None,
        }
    except Exception as e:
        plt.close("all")
        print(f"  Warning: Failed to generate pca: {e}")
        return {
            "title": title,
            "files": {},
            "error": str(e),
            "message": None,
            "result": None,
        }
    print(f"  Saved pca ({result.n_genes} genes)")
    return {
        "title": title,
        "files": files,
        "error": None,
        "message": None,
        "result": result,
    }
