"""Exception hierarchy for tnfuse.

Row-level errors are raised by constructors and primitives and caught by the
network, which logs them and skips the offending row.
"""

from typing import Optional, Tuple


class FuseError(Exception):
    """Base class for all tnfuse errors."""


class ValidationError(FuseError, ValueError):
    """An attribute value or fragment field is outside its declared type or range."""

    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        expected_type: Optional[str] = None,
        expected_range: Optional[Tuple[Optional[float], Optional[float]]] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.expected_type = expected_type
        self.expected_range = expected_range


class UnsupportedKind(ValidationError):
    """The attribute kind is not part of the catalogue."""


class MalformedGeometry(FuseError, ValueError):
    """Line text could not be parsed, or was empty where a line is required."""


class OverlapRejected(FuseError):
    """A new edge fragment has common geometry with one already on its link."""


class SplitFailure(FuseError):
    """A required cut could not be realised within tolerance."""

    def __init__(self, message: str, tolerance: float):
        super().__init__(message)
        self.tolerance = tolerance


class SinkUnavailable(FuseError, OSError):
    """An output file could not be created or written."""
