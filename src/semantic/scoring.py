"""
Semantic Diff Scoring.

Risk rules, party impacts and change confidence in one place, so the
engine, rescoring after external resolutions, and tests share the same
arithmetic.
"""

from collections.abc import Iterable, Sequence

from src.matching.schemas import MatchResult, MatchZone
from src.semantic.schemas import ChangeStatus, ChangeType, Impact, ModalStrength, RiskLevel

DEFAULT_VERIFICATION_DISCOUNT = 0.85
DEFAULT_BENEFICIARY_CONFIDENCE_FLOOR = 0.6
ACTION_OVERLAP_THRESHOLD = 0.7

# (old, new) -> (risk, obligor impact, beneficiary impact)
MODAL_RULES: dict[tuple[ModalStrength, ModalStrength], tuple[RiskLevel, Impact, Impact]] = {
    # Loosening a duty frees the obligor and costs the beneficiary
    (ModalStrength.DUTY, ModalStrength.PERMISSION): (RiskLevel.HIGH, Impact.FAVORABLE, Impact.UNFAVORABLE),
    (ModalStrength.PERMISSION, ModalStrength.DUTY): (RiskLevel.HIGH, Impact.UNFAVORABLE, Impact.FAVORABLE),
    (ModalStrength.PERMISSION, ModalStrength.PROHIBITION): (RiskLevel.HIGH, Impact.UNFAVORABLE, Impact.FAVORABLE),
    (ModalStrength.PROHIBITION, ModalStrength.PERMISSION): (RiskLevel.HIGH, Impact.FAVORABLE, Impact.UNFAVORABLE),
    # A duty turned into its own prohibition inverts the clause
    (ModalStrength.DUTY, ModalStrength.PROHIBITION): (RiskLevel.CRITICAL, Impact.NEUTRAL, Impact.UNFAVORABLE),
    (ModalStrength.PROHIBITION, ModalStrength.DUTY): (RiskLevel.CRITICAL, Impact.UNFAVORABLE, Impact.NEUTRAL),
}

FIXED_RISK: dict[ChangeType, RiskLevel] = {
    ChangeType.TERM_REDEFINITION: RiskLevel.CRITICAL,
    ChangeType.TERM_REMOVED: RiskLevel.HIGH,
    ChangeType.TERM_ADDED: RiskLevel.LOW,
    ChangeType.PARTY_SUBSTITUTION: RiskLevel.HIGH,
    ChangeType.CONDITION_ADDED: RiskLevel.MEDIUM,
    ChangeType.CONDITION_REMOVED: RiskLevel.MEDIUM,
    ChangeType.SECTION_ADDED: RiskLevel.MEDIUM,
    ChangeType.SECTION_REMOVED: RiskLevel.HIGH,
    ChangeType.SECTION_RESTRUCTURED: RiskLevel.LOW,
}

# Modal keywords for the annotation-free fallback
MODAL_KEYWORDS: dict[str, ModalStrength] = {
    "shall": ModalStrength.DUTY,
    "must": ModalStrength.DUTY,
    "will": ModalStrength.DUTY,
    "may": ModalStrength.PERMISSION,
    "can": ModalStrength.PERMISSION,
    "cannot": ModalStrength.PROHIBITION,
}

NEGATION = "not"
# "shall not be required to" releases a duty instead of forbidding the act
RELEASE_WORDS = frozenset({"required", "obligated"})

UNIT_DAYS = {
    "day": 1,
    "days": 1,
    "business_day": 1,
    "business_days": 1,
    "week": 7,
    "weeks": 7,
    "month": 30,
    "months": 30,
    "year": 365,
    "years": 365,
}


def modal_rule(old: ModalStrength, new: ModalStrength) -> tuple[RiskLevel, Impact, Impact] | None:
    """Risk and (obligor, beneficiary) impacts of a modal shift; None when unchanged."""
    if old == new:
        return None
    return MODAL_RULES[(old, new)]


def parse_modal(value: str | None) -> ModalStrength | None:
    """Read a modal attribute or keyword."""
    if not value:
        return None
    value = value.strip().lower()
    try:
        return ModalStrength(value)
    except ValueError:
        return MODAL_KEYWORDS.get(value)


def read_modal(words: Sequence[str]) -> tuple[ModalStrength, int] | None:
    """
    Modal meaning of the phrase starting at ``words[0]``.

    A "not" after the keyword makes the phrase a prohibition ("shall not",
    "may not"), unless it reads "<modal> not be required/obligated", which
    leaves the act to the party and so counts as a permission.

    Args:
        words: Non-space token texts, starting at a candidate keyword

    Returns:
        (strength, number of words the phrase spans), or None when the first
        word is not a modal keyword
    """
    lowered = [word.lower() for word in words[:4]]
    if not lowered or lowered[0] not in MODAL_KEYWORDS:
        return None
    if len(lowered) > 1 and lowered[1] == NEGATION:
        if len(lowered) > 3 and lowered[2] == "be" and lowered[3] in RELEASE_WORDS:
            return ModalStrength.PERMISSION, 4
        return ModalStrength.PROHIBITION, 2
    return MODAL_KEYWORDS[lowered[0]], 1


def fixed_risk(change_type: ChangeType) -> RiskLevel:
    return FIXED_RISK[change_type]


def temporal_risk(old_days: float, new_days: float) -> tuple[RiskLevel, str]:
    """Shortened periods are Medium, lengthened ones Low."""
    if new_days < old_days:
        return RiskLevel.MEDIUM, "shortened"
    return RiskLevel.LOW, "extended"


def to_days(value: float, unit: str | None) -> float:
    return float(value) * UNIT_DAYS.get((unit or "days").strip().lower().replace(" ", "_"), 1)


def opposite(impact: Impact) -> Impact:
    if impact == Impact.FAVORABLE:
        return Impact.UNFAVORABLE
    if impact == Impact.UNFAVORABLE:
        return Impact.FAVORABLE
    return Impact.NEUTRAL


def needs_verification(
    verification_refs: Iterable[str],
    ambiguous_modal: bool = False,
) -> bool:
    return bool(list(verification_refs)) or ambiguous_modal


def support_confidence(result: MatchResult) -> float:
    """
    How strongly one match result supports a change.

    A NoMatch backs a substitution by being a confident non-match, so its
    weight is one minus the similarity it recorded.
    """
    if result.zone == MatchZone.NO_MATCH:
        return 1.0 - result.confidence
    return result.confidence


def change_confidence(
    supporting: Iterable[MatchResult],
    needs_check: bool,
    discount: float = DEFAULT_VERIFICATION_DISCOUNT,
) -> float:
    """
    Product of supporting match confidences, discounted when any
    supporting binding still needs verification.
    """
    confidence = 1.0
    for result in supporting:
        confidence *= support_confidence(result)
    if needs_check:
        confidence *= discount
    return max(0.0, min(1.0, confidence))


def change_status(supporting: Iterable[MatchResult]) -> ChangeStatus:
    """Definite when no supporting result is left Indeterminate."""
    results = list(supporting)
    if results and all(result.zone != MatchZone.INDETERMINATE for result in results):
        return ChangeStatus.DEFINITE
    return ChangeStatus.INDETERMINATE


def sort_key(risk: RiskLevel, section_order: int, sequence: int) -> tuple[int, int, int]:
    """Descending risk, then section order, then detection order."""
    return (-risk.rank, section_order, sequence)
