"""
QC Report Module

Quality-control report for RNA-seq experiments. Loads one bundle, derives
per-sample metrics, renders the diagnostic charts and the sample similarity
PCA, and writes a markdown report plus a self-contained HTML copy.
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import markdown as md
import pandas as pd

from ..core.metrics import DEFAULT_THRESHOLDS, QCBundle, flag_samples
from ..services.environment import collect_session_info
from ..services.io import load_qc_bundle
from ..services.plots_io import write_diagnostic_plots, write_similarity_plot

try:
    from reportlab.lib.pagesizes import A4
    from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
    from reportlab.lib.units import inch
    from reportlab.lib import colors
    from reportlab.platypus import (
        SimpleDocTemplate,
        Paragraph,
        Spacer,
        Image,
        PageBreak,
        Table,
        TableStyle,
    )

    REPORTLAB_AVAILABLE = True
except ImportError:
    REPORTLAB_AVAILABLE = False


@dataclass
class QCConfig:
    """
    Configuration for QC report generation.

    Attributes
    ----------
    report_name : str
        Name of the report; the output files are `<report_name>.md` and
        `<report_name>.html` inside `out_dir`.
    out_dir : Union[str, Path]
        Root directory for all outputs.
    assets_dirname : str
        Directory name inside `out_dir` where plots and tables are stored.
    plots_dirname : str
        Directory name (inside `assets_dirname`) for generated plots.
    tables_dirname : str
        Directory name (inside `assets_dirname`) for generated tables.
    counts_layer : str
        AnnData layer holding raw counts.
    metrics_key : str
        Key in `uns` holding the upstream metrics table.
    sample_col : str
        Column in `obs` with the sample identifiers.
    category_col : str
        Column in `obs` with the experimental group.
    n_components : int
        Principal components computed for the similarity section.
    legacy_labels : bool
        Reproduce the historical bar labels of the mapped-reads and
        mapping-rate charts.
    thresholds : dict
        metric -> ("min" | "max", limit) used to flag samples and draw
        threshold lines. Empty dict disables both.
    save_formats : List[str]
        Figure formats; "png" is always written since the report embeds it.
    """

    report_name: str = "qc_report"
    out_dir: Union[str, Path] = "qc_out"
    assets_dirname: str = "qc_assets"
    plots_dirname: str = "plots"
    tables_dirname: str = "tables"

    counts_layer: str = "counts"
    metrics_key: str = "metrics"
    sample_col: str = "sample"
    category_col: str = "category"

    n_components: int = 2
    legacy_labels: bool = False
    thresholds: Dict[str, Tuple[str, float]] = field(
        default_factory=lambda: dict(DEFAULT_THRESHOLDS)
    )
    save_formats: List[str] = field(default_factory=lambda: ["png"])

    def __post_init__(self):
        if "png" not in self.save_formats:
            self.save_formats = ["png"] + list(self.save_formats)


class QCReport:
    """
    RNA-seq QC report generator.

    Fatal load errors (missing file, MalformedBundle, JoinMismatch) abort
    `build`. Every chart and the similarity analysis are rendered in
    isolation: a failure there becomes a note in its own section.
    """

    def __init__(self, config: QCConfig, bundle_path: Union[str, Path]):
        self.cfg = config
        self.bundle_path = Path(bundle_path)

        self.out_dir = Path(self.cfg.out_dir)
        self.assets_dir = self.out_dir / self.cfg.assets_dirname
        self.plots_dir = self.assets_dir / self.cfg.plots_dirname
        self.tables_dir = self.assets_dir / self.cfg.tables_dirname

        self.out_dir.mkdir(parents=True, exist_ok=True)
        self.plots_dir.mkdir(parents=True, exist_ok=True)
        self.tables_dir.mkdir(parents=True, exist_ok=True)

        # Loaded bundle with derived metrics
        self.bundle: Optional[QCBundle] = None
        # Per-sample threshold failures
        self.flags: Optional[pd.DataFrame] = None
        # name -> {"title", "files", "error"} per diagnostic chart
        self.plot_results: Dict[str, Dict] = {}
        # {"title", "files", "error", "message", "result"}
        self.similarity: Optional[Dict] = None
        self.session_info: Optional[Dict] = None
        self._summary: Optional[Dict] = None

    @property
    def markdown_path(self) -> Path:
        return self.out_dir / f"{self.cfg.report_name}.md"

    @property
    def html_path(self) -> Path:
        return self.out_dir / f"{self.cfg.report_name}.html"

    def build(self, generate_pdf: bool = False) -> Path:
        """
        Run the QC pipeline and write the report.

        Returns
        -------
        Path
            The self-contained HTML report.
        """
        print("=" * 60)
        print(f"RNA-seq Quality Control: {self.cfg.report_name}")
        print("=" * 60)

        self._load_data()
        self._write_tables()
        self._run_diagnostic_plots()
        self._run_similarity()
        self._make_summary()
        self._write_report()

        if generate_pdf:
            self.generate_pdf_report()

        print("\n" + "=" * 60)
        print("QC Report Complete!")
        print(f"Report saved to: {self.html_path}")
        print("=" * 60)
        return self.html_path

    def _load_data(self) -> None:
        print("\n[1/5] Loading bundle...")
        self.bundle = load_qc_bundle(
            self.bundle_path,
            counts_layer=self.cfg.counts_layer,
            metrics_key=self.cfg.metrics_key,
            sample_col=self.cfg.sample_col,
            category_col=self.cfg.category_col,
        )
        n_genes, n_samples = self.bundle.counts.shape
        print(f"  Loaded {n_genes} genes, {n_samples} samples")
        for issue in self.bundle.warnings:
            print(f"  Warning: {issue}")

    def _write_tables(self) -> None:
        print("\n[2/5] Writing metrics tables...")
        metrics_file = self.tables_dir / "metrics.tsv"
        self.bundle.metrics.to_csv(metrics_file, sep="\t", index=False)
        print(f"  Saved metrics to {metrics_file.name}")

        self.flags = flag_samples(self.bundle.metrics, self.cfg.thresholds)
        flags_file = self.tables_dir / "sample_flags.tsv"
        self.flags.to_csv(flags_file, sep="\t", index=False)
        n_flagged = int((self.flags["n_failed"] > 0).sum())
        print(f"  {n_flagged} sample(s) outside QC thresholds")

    def _run_diagnostic_plots(self) -> None:
        print("\n[3/5] Rendering diagnostic plots...")
        self.plot_results = write_diagnostic_plots(
            self.bundle,
            self.plots_dir,
            legacy_labels=self.cfg.legacy_labels,
            thresholds=self.cfg.thresholds,
            save_formats=self.cfg.save_formats,
        )

    def _run_similarity(self) -> None:
        print("\n[4/5] Sample similarity...")
        self.similarity = write_similarity_plot(
            self.bundle,
            self.plots_dir,
            n_components=self.cfg.n_components,
            save_formats=self.cfg.save_formats,
        )
        result = self.similarity["result"]
        if result is not None:
            coords_file = self.tables_dir / "pca_coordinates.tsv"
            result.coordinates.to_csv(coords_file, sep="\t")

    def _make_summary(self) -> Dict:
        self.session_info = collect_session_info()
        failed_plots = [
            name for name, r in self.plot_results.items() if r["error"]
        ]
        self._summary = {
            "report_name": self.cfg.report_name,
            "bundle": str(self.bundle_path),
            "generated_at": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "n_samples": int(self.bundle.counts.shape[1]),
            "n_genes": int(self.bundle.counts.shape[0]),
            "n_categories": int(self.bundle.metadata["category"].nunique()),
            "n_flagged_samples": int((self.flags["n_failed"] > 0).sum()),
            "failed_plots": failed_plots,
            "warnings": list(self.bundle.warnings),
        }
        summary_file = self.tables_dir / "qc_summary.json"
        with open(summary_file, "w") as f:
            json.dump(self._summary, f, indent=2)
        return self._summary

    # -----------------------
    # Report writer
    # -----------------------
    def _image_ref(self, path: Path, embed: bool) -> str:
        if embed:
            data = base64.b64encode(path.read_bytes()).decode("utf-8")
            return f"data:image/png;base64,{data}"
        return path.relative_to(self.out_dir).as_posix()

    def _section_text(self, result: Dict, embed: bool) -> str:
        text = f"## {result['title']}\n\n"
        if result.get("error"):
            text += (
                f"> **This section could not be rendered:** "
                f"{result['error']}\n\n"
            )
        elif result.get("message"):
            text += f"> {result['message']}\n\n"
        elif "png" in result["files"]:
            ref = self._image_ref(result["files"]["png"], embed)
            text += f"![{result['title']}]({ref})\n\n"
        return text

    def render_markdown(self, embed_images: bool = False) -> str:
        s = self._summary
        text = "# RNA-seq Quality Control Report\n\n"
        text += f"**Report:** {s['report_name']}\n\n"
        text += f"**Bundle:** `{s['bundle']}`\n\n"
        text += f"**Generated:** {s['generated_at']}\n\n"
        text += "---\n\n"

        text += "## Summary\n\n"
        text += f"- **Samples:** {s['n_samples']}\n"
        text += f"- **Genes:** {s['n_genes']:,}\n"
        text += f"- **Categories:** {s['n_categories']}\n"
        text += f"- **Samples outside thresholds:** {s['n_flagged_samples']}\n"
        if s["failed_plots"]:
            text += f"- **Failed plots:** {', '.join(s['failed_plots'])}\n"
        text += "\n"

        if s["warnings"]:
            text += "## Data warnings\n\n"
            for issue in s["warnings"]:
                text += f"- {issue}\n"
            text += "\n"

        text += "## Metadata\n\n"
        text += self.bundle.metadata.to_html(index=False) + "\n\n"

        if self.cfg.thresholds:
            text += "## Flagged samples\n\n"
            flagged = self.flags.loc[
                self.flags["n_failed"] > 0, ["sample", "category", "failed"]
            ]
            if flagged.empty:
                text += "All samples pass the QC thresholds.\n\n"
            else:
                text += flagged.to_html(index=False) + "\n\n"

        for result in self.plot_results.values():
            text += self._section_text(result, embed_images)

        if self.similarity is not None:
            text += self._section_text(self.similarity, embed_images)

        info = self.session_info
        text += "## Session information\n\n"
        text += f"- **Python:** {info['python']}\n"
        text += f"- **Platform:** {info['platform']}\n"
        text += f"- **Collected:** {info['collected_at']}\n\n"
        text += info["packages"].to_html(index=False) + "\n"
        return text

    def _write_report(self) -> None:
        print("\n[5/5] Writing report...")
        self.markdown_path.write_text(
            self.render_markdown(embed_images=False), encoding="utf-8"
        )
        print(f"  Saved markdown report to {self.markdown_path.name}")
        body = md.markdown(self.render_markdown(embed_images=True))
        html = (
            "<!DOCTYPE html>\n<html>\n<head>\n<meta charset=\"utf-8\">\n"
            f"<title>{self.cfg.report_name}</title>\n</head>\n<body>\n"
            f"{body}\n</body>\n</html>\n"
        )
        self.html_path.write_text(html, encoding="utf-8")
        print(f"  Saved HTML report to {self.html_path.name}")

    # -----------------------
    # PDF Generation
    # -----------------------
    def generate_pdf_report(self) -> Optional[Path]:
        """
        Generate a PDF copy of the report.

        Requires reportlab. Returns None if it is missing or the build fails.
        """
        if not REPORTLAB_AVAILABLE:
            print(
                "Warning: reportlab not available. Cannot generate PDF report."
            )
            print("Install with: pip install reportlab")
            return None

        pdf_path = self.out_dir / f"{self.cfg.report_name}.pdf"

        try:
            self._build_pdf(pdf_path)
            return pdf_path
        except Exception as e:
            print(f"Error generating PDF report: {e}")
            return None

    def _build_pdf(self, pdf_path: Path) -> None:
        doc = SimpleDocTemplate(
            str(pdf_path),
            pagesize=A4,
            topMargin=0.75 * inch,
            bottomMargin=0.75 * inch,
            leftMargin=0.75 * inch,
            rightMargin=0.75 * inch,
        )
        styles = getSampleStyleSheet()
        title_style = ParagraphStyle(
            "CustomTitle",
            parent=styles["Heading1"],
            fontSize=22,
            textColor=colors.HexColor("#2c3e50"),
            spaceAfter=24,
            alignment=1,
        )

        story = [
            Paragraph("RNA-seq Quality Control Report", title_style),
            Paragraph(
                f"{self.cfg.report_name} | {self._summary['generated_at']}",
                styles["Normal"],
            ),
            Spacer(1, 0.3 * inch),
        ]

        meta = self.bundle.metadata
        table = Table([list(meta.columns)] + meta.values.tolist())
        table.setStyle(
            TableStyle(
                [
                    ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
                    ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
                ]
            )
        )
        story.append(table)
        story.append(PageBreak())

        sections = list(self.plot_results.values())
        if self.similarity is not None:
            sections.append(self.similarity)
        for result in sections:
            story.append(Paragraph(result["title"], styles["Heading2"]))
            if result.get("error"):
                story.append(
                    Paragraph(
                        f"Not rendered: {result['error']}", styles["BodyText"]
                    )
                )
            elif result.get("message"):
                story.append(Paragraph(result["message"], styles["BodyText"]))
            elif "png" in result["files"]:
                img = Image(
                    str(result["files"]["png"]), width=6 * inch, height=4 * inch
                )
                img.hAlign = "CENTER"
                story.append(img)
            story.append(Spacer(1, 0.2 * inch))

        doc.build(story)
        print(f"  Saved PDF report to {pdf_path.name}")
