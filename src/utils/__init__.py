"""
Utility modules for the comparison engine.

Provides logging, the error hierarchy and text normalization helpers.
"""

from src.utils.errors import (
    ComparisonError,
    ConfigurationError,
    InvariantViolation,
)
from src.utils.logger import (
    LogContext,
    get_logger,
    setup_logging,
)

__all__ = [
    # Errors
    "ComparisonError",
    "ConfigurationError",
    "InvariantViolation",
    # Logging
    "get_logger",
    "setup_logging",
    "LogContext",
]
