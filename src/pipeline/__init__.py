"""
Pipeline Layer - Comparison Orchestration and Results.
"""

from src.pipeline.comparator import ContractComparator
from src.pipeline.schemas import (
    ComparisonResult,
    ExternalResolution,
    ResolutionKind,
)

__all__ = [
    "ContractComparator",
    "ComparisonResult",
    "ExternalResolution",
    "ResolutionKind",
]
