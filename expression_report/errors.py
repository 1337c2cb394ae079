"""
Exception types raised by the report stages.

Fatal conditions (ValidationError, SourceUnavailable, EmptyGeneSetError)
propagate out of the stage that detects them and stop the run. FitDegenerate
is local to a single gene and is absorbed by the ranking pass.
"""


class ReportError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(ReportError):
    """Expression columns and sample metadata rows do not correspond."""

    def __init__(self, message: str, failures: tuple[str, ...] = ()):
        super().__init__(message)
        self.failures = tuple(failures)


class SourceUnavailable(ReportError):
    """The GEO series could not be downloaded or parsed."""


class FitDegenerate(ReportError):
    """The per-gene linear model is ill-defined for this gene."""


class EmptyGeneSetError(ReportError):
    """No genes left to work on."""
