"""
Match Classifier - Three-Zone Match Judgments.

Fellegi-Sunter style: a score at or above the upper threshold is a
Definite match, at or below the lower threshold is NoMatch, and anything
between is Indeterminate with a reason and a resolution hint.

Entity bindings get a case analysis before the score is consulted:
1. Same coreference chain -> Definite
2. Same canonical name, different chains -> ConflictingChains
3. Both unresolved with identical text -> BothUnresolved
4. Otherwise -> zones on the similarity score
"""

from src.alignment.schemas import CorrespondenceKind, SectionCorrespondence
from src.knowledge.schemas import EntityBinding, HoleBinding, ResolvedBinding
from src.matching.schemas import (
    AmbiguityReason,
    MatchResult,
    MatchSubject,
    MatchZone,
    ResolutionHint,
)
from src.matching.scoring import (
    BOTH_UNRESOLVED_CONFIDENCE,
    CONFLICTING_CHAINS_CONFIDENCE,
    DEFAULT_LOWER_THRESHOLD,
    DEFAULT_UPPER_THRESHOLD,
    check_thresholds,
    clamp,
    zone_for,
)
from src.utils.logger import get_logger
from src.utils.text import normalize_mention

logger = get_logger(__name__)


class MatchClassifier:
    """
    Classify compared pairs into Definite / Indeterminate / NoMatch.

    Usage:
        classifier = MatchClassifier(upper=0.85, lower=0.3)
        result = classifier.classify_bindings("m_1", left, right, similarity=0.9)
    """

    def __init__(
        self,
        upper: float = DEFAULT_UPPER_THRESHOLD,
        lower: float = DEFAULT_LOWER_THRESHOLD,
        both_unresolved_confidence: float = BOTH_UNRESOLVED_CONFIDENCE,
        conflicting_chains_confidence: float = CONFLICTING_CHAINS_CONFIDENCE,
    ) -> None:
        """
        Initialize the classifier.

        Raises:
            ConfigurationError: If lower >= upper or either is outside [0, 1]
        """
        check_thresholds(lower, upper)
        self.upper = upper
        self.lower = lower
        self.both_unresolved_confidence = both_unresolved_confidence
        self.conflicting_chains_confidence = conflicting_chains_confidence

    def zone(self, score: float) -> MatchZone:
        return zone_for(score, self.lower, self.upper)

    # ------------------------------------------------------------------------
    # Entity bindings
    # ------------------------------------------------------------------------

    def classify_bindings(
        self,
        match_id: str,
        left: EntityBinding,
        right: EntityBinding,
        similarity: float,
    ) -> MatchResult:
        """
        Judge whether two bindings denote the same party.

        Args:
            match_id: Id to give the result
            left: Binding from the older document
            right: Binding from the newer document
            similarity: Name similarity in [0, 1]

        Returns:
            MatchResult for the pair
        """
        base = {
            "match_id": match_id,
            "subject": MatchSubject.ENTITY,
            "left_ref": left.ref,
            "right_ref": right.ref,
            "left_text": left.display_text,
            "right_text": right.display_text,
        }

        if isinstance(left, ResolvedBinding) and isinstance(right, ResolvedBinding):
            if left.chain_id == right.chain_id:
                return MatchResult(
                    **base,
                    zone=MatchZone.DEFINITE,
                    confidence=1.0,
                    explanation=f"Same coreference chain {left.chain_id}",
                )
            if normalize_mention(left.canonical_name) == normalize_mention(right.canonical_name):
                return MatchResult(
                    **base,
                    zone=MatchZone.INDETERMINATE,
                    confidence=self.conflicting_chains_confidence,
                    reason=AmbiguityReason.CONFLICTING_CHAINS,
                    hint=ResolutionHint.LEGAL_INTERPRETATION,
                    explanation=(
                        f"'{left.canonical_name}' resolves to chains {left.chain_id} and {right.chain_id}"
                    ),
                )

        if isinstance(left, HoleBinding) and isinstance(right, HoleBinding):
            # A document compared with itself shares one registry scope
            if left.hole_id == right.hole_id:
                return MatchResult(
                    **base,
                    zone=MatchZone.DEFINITE,
                    confidence=1.0,
                    explanation=f"Same hole {left.hole_id}",
                )
            if normalize_mention(left.display_text) == normalize_mention(right.display_text):
                return MatchResult(
                    **base,
                    zone=MatchZone.INDETERMINATE,
                    confidence=self.both_unresolved_confidence,
                    reason=AmbiguityReason.BOTH_UNRESOLVED,
                    hint=ResolutionHint.HUMAN_CONFIRMATION,
                    explanation=f"'{left.display_text}' is unresolved in both documents",
                )

        return self._by_score(base, similarity, f"'{left.display_text}' vs '{right.display_text}'")

    # ------------------------------------------------------------------------
    # Section correspondences
    # ------------------------------------------------------------------------

    def classify_correspondence(self, correspondence: SectionCorrespondence) -> MatchResult:
        """Judge a section correspondence by its alignment confidence."""
        base = {
            "match_id": f"m_{correspondence.correspondence_id}",
            "subject": MatchSubject.SECTION,
            "left_ref": ",".join(correspondence.source_ids) or None,
            "right_ref": ",".join(correspondence.target_ids) or None,
        }
        if correspondence.hinted:
            return MatchResult(
                **base,
                zone=MatchZone.DEFINITE,
                confidence=correspondence.confidence,
                explanation="Forced by alignment hint",
            )
        if correspondence.kind == CorrespondenceKind.EXACT_MATCH:
            return MatchResult(
                **base,
                zone=MatchZone.DEFINITE,
                confidence=correspondence.confidence,
                explanation="Identical title and body",
            )
        return self._by_score(base, correspondence.confidence, f"{correspondence.kind.value} correspondence")

    # ------------------------------------------------------------------------
    # External verdicts
    # ------------------------------------------------------------------------

    def resolve(self, result: MatchResult, confirmed: bool, resolved_by: str) -> MatchResult:
        """
        Apply an external verdict.

        A confirmation makes the match Definite with full confidence; a
        rejection makes it NoMatch with zero confidence.
        """
        if confirmed:
            update = {"zone": MatchZone.DEFINITE, "confidence": 1.0}
        else:
            update = {"zone": MatchZone.NO_MATCH, "confidence": 0.0}
        update.update({"reason": None, "hint": None, "resolved_by": resolved_by})
        logger.debug(f"{result.match_id} resolved by {resolved_by}: {update['zone'].value}")
        return result.model_copy(update=update)

    def _by_score(self, base: dict, score: float, label: str) -> MatchResult:
        score = clamp(score)
        zone = self.zone(score)
        if zone == MatchZone.INDETERMINATE:
            return MatchResult(
                **base,
                zone=zone,
                confidence=score,
                reason=AmbiguityReason.SEMANTIC_AMBIGUITY,
                hint=ResolutionHint.SEMANTIC_ANALYSIS,
                explanation=f"{label}: similarity {score:.2f} between thresholds",
            )
        return MatchResult(**base, zone=zone, confidence=score, explanation=f"{label}: similarity {score:.2f}")
