"""
Matching Layer - Three-Zone Match Classification.
"""

from src.matching.classifier import MatchClassifier
from src.matching.schemas import (
    AmbiguityReason,
    MatchResult,
    MatchSubject,
    MatchZone,
    ResolutionHint,
)

__all__ = [
    "MatchClassifier",
    "MatchResult",
    "MatchZone",
    "MatchSubject",
    "AmbiguityReason",
    "ResolutionHint",
]
