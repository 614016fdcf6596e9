"""
Error types raised by the trial-data pipelines.

All of them subclass ValueError, so callers catching ValueError keep working.
"""


class NetworkDataError(ValueError):
    """Base class for trial-data problems that must abort a run."""


class SchemaError(NetworkDataError):
    """Expected columns are absent or malformed."""


class ReferentialError(NetworkDataError):
    """An edge references a treatment missing from the node table."""


class DegenerateInputError(NetworkDataError):
    """Input has no studies, no treatments, or a study with no usable arms."""
