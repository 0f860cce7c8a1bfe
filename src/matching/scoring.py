"""
Match Scoring.

Zone boundaries and the fixed confidences of the special ambiguity cases.
"""

from src.matching.schemas import MatchZone
from src.utils.errors import ConfigurationError

DEFAULT_UPPER_THRESHOLD = 0.85
DEFAULT_LOWER_THRESHOLD = 0.3
BOTH_UNRESOLVED_CONFIDENCE = 0.7
CONFLICTING_CHAINS_CONFIDENCE = 0.5


def check_thresholds(lower: float, upper: float) -> None:
    """
    Zones must partition [0, 1] without overlap.

    Raises:
        ConfigurationError: If the thresholds are out of range or inverted
    """
    if not (0.0 <= lower < upper <= 1.0):
        raise ConfigurationError(f"Invalid match thresholds: lower={lower}, upper={upper}")


def zone_for(score: float, lower: float, upper: float) -> MatchZone:
    """Score >= upper is Definite, score <= lower is NoMatch, anything between is Indeterminate."""
    if score >= upper:
        return MatchZone.DEFINITE
    if score <= lower:
        return MatchZone.NO_MATCH
    return MatchZone.INDETERMINATE


def clamp(score: float) -> float:
    return max(0.0, min(1.0, score))
