from pathlib import Path
from typing import Optional

import typer

from .config import settings
from .models import QCConfig, QCReport
from .services.environment import collect_session_info

app = typer.Typer(help="Quality-control report for RNA-seq experiments")


@app.command()
def report(
    bundle: Optional[Path] = typer.Option(
        None, help="QC bundle (.h5ad). Defaults to RNASEQ_QC_BUNDLE_PATH."
    ),
    out_dir: Optional[Path] = typer.Option(None, help="Output directory."),
    name: Optional[str] = typer.Option(None, help="Report name."),
    pdf: bool = typer.Option(False, help="Also write a PDF copy."),
    legacy_labels: bool = typer.Option(
        False, help="Use the historical mapped-reads/mapping-rate bar labels."
    ),
) -> None:
    """Build the QC report for one bundle."""
    cfg = QCConfig(
        report_name=name or settings.report_name,
        out_dir=out_dir or settings.out_dir,
        legacy_labels=legacy_labels,
    )
    html = QCReport(cfg, bundle or settings.bundle_path).build(
        generate_pdf=pdf
    )
    typer.echo(f"Report: {html}")


@app.command()
def info() -> None:
    """Show environment and package versions."""
    session = collect_session_info()
    typer.echo(f"Python: {session['python']}")
    typer.echo(f"Platform: {session['platform']}")
    typer.echo(f"Bundle: {settings.bundle_path}")
    for _, row in session["packages"].iterrows():
        typer.echo(f"  {row['package']}: {row['version']}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
