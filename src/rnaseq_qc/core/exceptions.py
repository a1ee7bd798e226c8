"""
Error types raised by the QC pipeline.
"""


class QCError(ValueError):
    """Base class for QC pipeline errors."""


class MalformedBundle(QCError):
    """A required layer, table or column is missing from the input bundle."""


class JoinMismatch(QCError):
    """Sample metadata and the metrics table disagree on sample identifiers."""


class DegenerateInput(QCError):
    """Too few genes or samples for the requested analysis."""
