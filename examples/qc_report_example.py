"""
Example script demonstrating the RNA-seq QC report.

This script shows how to pack upstream outputs into a QC bundle, build the
report standalone, and wire the same report into a pypipegraph workflow.
"""

from pathlib import Path

from rnaseq_qc.models import QCConfig, QCReport
from rnaseq_qc.services.io import load_qc_bundle, write_bundle
from rnaseq_qc.jobs.report_jobs import qc_report_job


def example_build_bundle():
    """
    Example: Combine counts, sample metadata and alignment metrics into one
    .h5ad bundle.
    """
    bundle = write_bundle(
        counts="results/featurecounts/counts.tsv",  # genes x samples
        metadata="incoming/samples.tsv",  # needs sample + category columns
        metrics="results/qc/alignment_metrics.tsv",
        path="results/qc/qc_bundle.h5ad",
    )
    print(f"Bundle written to {bundle}")
    return bundle


def example_standalone_report():
    """
    Example: Build the report without pypipegraph.
    """
    config = QCConfig(
        report_name="qc_report",
        out_dir="results/qc/report",
        save_formats=["png", "pdf"],
        # stricter library size, default limits otherwise
        thresholds={
            "total_reads": ("min", 30e6),
            "mapped_reads_pct": ("min", 0.9),
            "r_rna_rate": ("max", 0.05),
        },
    )
    report = QCReport(config, "results/qc/qc_bundle.h5ad")
    html = report.build(generate_pdf=True)

    flagged = report.flags[report.flags["n_failed"] > 0]
    print(f"\n{len(flagged)} sample(s) outside thresholds")
    for _, row in flagged.iterrows():
        print(f"  {row['sample']} ({row['category']}): {row['failed']}")

    failed = [n for n, r in report.plot_results.items() if r["error"]]
    if failed:
        print(f"Plots not rendered: {', '.join(failed)}")

    print(f"\nReport saved to: {html}")
    print("Files generated:")
    print("  - qc_report.md (Markdown report)")
    print("  - qc_report.html (self-contained HTML report)")
    print("  - qc_report.pdf (PDF report)")
    print("  - qc_assets/plots/*.png (QC plots)")
    print("  - qc_assets/tables/*.tsv, qc_summary.json (QC metrics)")
    return report


def example_inspect_metrics():
    """
    Example: Load a bundle and look at the derived metrics directly.
    """
    bundle = load_qc_bundle("results/qc/qc_bundle.h5ad")
    for issue in bundle.warnings:
        print(f"Warning: {issue}")

    table = bundle.metrics[
        ["sample", "category", "total_reads", "mapped_reads_pct", "n_genes"]
    ]
    print(table.to_string(index=False))
    return table


def example_pypipegraph_integration():
    """
    Example: Integrate the QC report into a pypipegraph workflow.

    This would typically be added to your main run.py script.
    """
    import pypipegraph2 as ppg2

    ppg2.new()

    results_dir = Path("results")
    bundle = results_dir / "qc" / "qc_bundle.h5ad"

    # bundle_job = ppg2.FileGeneratingJob(bundle, ...)

    qc_report_job(
        bundle_path=bundle,
        output_dir=results_dir / "qc" / "report",
        report_name="qc_report",
        legacy_labels=False,
        generate_pdf=False,
        dependencies=[],  # Add [bundle_job] if you have it
    )

    ppg2.run()


if __name__ == "__main__":
    example_standalone_report()
