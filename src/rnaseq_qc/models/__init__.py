"""
Report generators for RNA-seq QC.

This includes:
- QCReport: Loads a bundle, renders all QC sections and writes the report
- QCConfig: Configuration for QC reports
"""

from .qc_report import QCReport, QCConfig

__all__ = [
    "QCReport",
    "QCConfig",
]
