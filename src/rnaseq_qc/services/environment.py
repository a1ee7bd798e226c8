"""
Runtime environment listing embedded at the end of every report.
"""

import platform
import sys
from datetime import datetime
from importlib.metadata import PackageNotFoundError, version
from typing import Dict, Iterable, Optional

import pandas as pd
from pandas import DataFrame

DEFAULT_PACKAGES = [
    "rnaseq-qc",
    "anndata",
    "numpy",
    "pandas",
    "scipy",
    "matplotlib",
    "seaborn",
    "adjustText",
    "scikit-learn",
    "pydeseq2",
    "markdown",
    "reportlab",
]


def package_versions(packages: Optional[Iterable[str]] = None) -> DataFrame:
    """Installed version per distribution name ("not installed" if absent)."""
    if packages is None:
        packages = DEFAULT_PACKAGES
    rows = []
    for name in packages:
        try:
            v = version(name)
        except PackageNotFoundError:
            v = "not installed"
        rows.append({"package": name, "version": v})
    return pd.DataFrame(rows, columns=["package", "version"])


def collect_session_info(packages: Optional[Iterable[str]] = None) -> Dict:
    """
    Read the current interpreter, platform and package versions.

    Returns
    -------
    dict
        Keys python, platform, executable, collected_at, packages
        (DataFrame with columns package, version).
    """
    return {
        "python": sys.version.split()[0],
        "platform": platform.platform(),
        "executable": sys.executable,
        "collected_at": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        "packages": package_versions(packages),
    }
