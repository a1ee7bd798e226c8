"""
RNA-seq QC – per-sample quality-control metrics and report.

This package provides:
- core
- models
- services
- jobs
"""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("rnaseq-qc")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.1.0"


from .core.exceptions import DegenerateInput, JoinMismatch, MalformedBundle
from .models import QCConfig, QCReport
from .services.io import load_qc_bundle, write_bundle

__all__ = [
    "DegenerateInput",
    "JoinMismatch",
    "MalformedBundle",
    "QCConfig",
    "QCReport",
    "load_qc_bundle",
    "write_bundle",
]
