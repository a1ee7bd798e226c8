"""
PyPipeGraph2 job wrappers for the RNA-seq QC report.
"""

from pathlib import Path
from typing import List, Union

from pypipegraph2 import Job, MultiFileGeneratingJob

from rnaseq_qc.models import QCConfig, QCReport


def qc_report_job(
    bundle_path: Union[Path, str],
    output_dir: Union[Path, str],
    report_name: str = "qc_report",
    legacy_labels: bool = False,
    generate_pdf: bool = False,
    dependencies: List[Job] = [],
) -> MultiFileGeneratingJob:
    """
    Create pypipegraph job that builds the QC report for one bundle.

    Parameters
    ----------
    bundle_path : Path or str
        QC bundle (.h5ad).
    output_dir : Path or str
        Report output directory.
    report_name : str
        Name of the report files.
    legacy_labels : bool
        Use the historical bar labels.
    generate_pdf : bool
        Also write a PDF copy (requires reportlab).
    dependencies : list
        List of pypipegraph Jobs to depend on.

    Returns
    -------
    MultiFileGeneratingJob
        Job that generates the markdown and HTML report.
    """
    output_dir = Path(output_dir)
    outfiles = [
        output_dir / f"{report_name}.md",
        output_dir / f"{report_name}.html",
    ]

    def __dump(
        outfiles,
        bundle_path=bundle_path,
        output_dir=output_dir,
        report_name=report_name,
        legacy_labels=legacy_labels,
        generate_pdf=generate_pdf,
    ):
        cfg = QCConfig(
            report_name=report_name,
            out_dir=output_dir,
            legacy_labels=legacy_labels,
        )
        QCReport(cfg, bundle_path).build(generate_pdf=generate_pdf)

    return MultiFileGeneratingJob(outfiles, __dump).depends_on(
        dependencies
    )
