"""
Comparison Errors - Fatal Failure Types.

Only configuration problems and internal invariant violations are raised.
Ambiguity (unresolved parties, weak matches) is carried in results instead.
"""

from collections.abc import Iterable


class ComparisonError(Exception):
    """Base class for failures that abort a comparison."""

    pass


class ConfigurationError(ComparisonError):
    """Raised when inputs or settings are invalid and must be fixed by the caller."""

    def __init__(self, message: str, offending_ids: Iterable[str] = ()) -> None:
        self.offending_ids = sorted(set(offending_ids))
        if self.offending_ids:
            message = f"{message} (offending ids: {', '.join(self.offending_ids)})"
        super().__init__(message)


class InvariantViolation(ComparisonError):
    """Raised when an internal invariant is broken, e.g. a hole id crossing owner scopes."""

    pass
