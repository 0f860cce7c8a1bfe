"""
Entity Matcher - Cross-Document Party Identity.

Recognizes that "Acme Corp." in one version and "ACME Corporation" in the
next are the same party. Uses rule-based name matching, then hands the
score to the Match Classifier for a three-zone judgment.

Unresolved pairs that the classifier cannot settle are recorded as merge
hypotheses in the comparison-scoped registry. The document registries the
bindings came from are never touched.
"""

import re
import threading
from typing import TYPE_CHECKING

from src.knowledge.hole_registry import HoleRegistry
from src.knowledge.schemas import (
    EntityBinding,
    HoleBinding,
    MergeHypothesis,
    ResolutionCandidate,
)
from src.matching.schemas import MatchResult, MatchZone
from src.utils.logger import get_logger
from src.utils.text import edit_ratio, normalize_mention

if TYPE_CHECKING:
    from src.matching.classifier import MatchClassifier

logger = get_logger(__name__)


# ============================================================================
# Configuration
# ============================================================================

# Common titles to strip for matching
TITLES = {
    "mr",
    "mrs",
    "ms",
    "dr",
    "prof",
    "sir",
    "madam",
    "hon",
}

# Common organizational suffixes
ORG_SUFFIXES = {
    "inc",
    "incorporated",
    "corp",
    "corporation",
    "llc",
    "llp",
    "ltd",
    "limited",
    "plc",
    "co",
    "company",
    "gmbh",
    "sa",
    "ag",
    "group",
    "holdings",
}

ARTICLES = {"the", "a", "an"}


# ============================================================================
# Entity Matcher
# ============================================================================


class EntityMatcher:
    """
    Compare party bindings across the two documents of a comparison.

    Results are cached per (left ref, right ref), so repeated lookups from
    different sections return the same MatchResult and the same id.

    Usage:
        matcher = EntityMatcher(classifier, comparison_registry)
        result = matcher.match(left_binding, right_binding)
        if result.zone == MatchZone.INDETERMINATE:
            print(result.reason, result.hint)
    """

    def __init__(self, classifier: "MatchClassifier", registry: HoleRegistry) -> None:
        """
        Initialize the matcher.

        Args:
            classifier: Three-zone classifier
            registry: Comparison-scoped registry receiving merge hypotheses
        """
        self.classifier = classifier
        self.registry = registry
        self._lock = threading.Lock()
        self._cache: dict[tuple[str, str], MatchResult] = {}
        self._results: dict[str, MatchResult] = {}

    @property
    def results(self) -> dict[str, MatchResult]:
        """Match results by id, in creation order."""
        return dict(self._results)

    @property
    def hypotheses(self) -> list[MergeHypothesis]:
        return self.registry.hypotheses

    def match(self, left: EntityBinding, right: EntityBinding) -> MatchResult:
        """
        Classify one cross-document binding pair.

        Args:
            left: Binding from the older document
            right: Binding from the newer document

        Returns:
            Cached or freshly computed MatchResult
        """
        key = (left.ref, right.ref)
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                return cached

            score, match_type = self.similarity(left.display_text, right.display_text)
            match_id = f"m_ent_{len(self._cache) + 1}"
            result = self.classifier.classify_bindings(match_id, left, right, score)
            logger.debug(
                f"{match_id}: {left.display_text!r} ~ {right.display_text!r} "
                f"-> {result.zone.value} ({match_type}, {score:.2f})"
            )

            self._cache[key] = result
            self._results[match_id] = result
            if (
                isinstance(left, HoleBinding)
                and isinstance(right, HoleBinding)
                and result.zone == MatchZone.INDETERMINATE
            ):
                self._propose(left, right, result)
            return result

    def match_all(self, left: list[EntityBinding], right: list[EntityBinding]) -> list[MatchResult]:
        """Classify every left/right pair, in a stable order."""
        return [self.match(a, b) for a in left for b in right]

    def best_match(self, left: EntityBinding, right: list[EntityBinding]) -> MatchResult | None:
        """Most confident non-NoMatch result for one binding against candidates."""
        best: MatchResult | None = None
        for candidate in right:
            result = self.match(left, candidate)
            if result.zone == MatchZone.NO_MATCH:
                continue
            if best is None or _rank(result) > _rank(best):
                best = result
        return best

    def lookup(self, left_ref: str, right_ref: str) -> MatchResult | None:
        return self._cache.get((left_ref, right_ref))

    # ------------------------------------------------------------------------
    # Hypotheses
    # ------------------------------------------------------------------------

    def _propose(self, left: HoleBinding, right: HoleBinding, result: MatchResult) -> None:
        """Record a Hole<->Hole identity hypothesis in the comparison registry."""
        left_local = self.registry.adopt(left.hole_id, left.display_text)
        right_local = self.registry.adopt(right.hole_id, right.display_text)
        reason = result.reason.value if result.reason else ""
        provenance = f"cross-document match {result.match_id} ({reason})"

        self.registry.add_candidate(
            left_local,
            ResolutionCandidate(
                ref=right_local, display_name=right.display_text, score=result.confidence, provenance=provenance
            ),
        )
        self.registry.add_candidate(
            right_local,
            ResolutionCandidate(
                ref=left_local, display_name=left.display_text, score=result.confidence, provenance=provenance
            ),
        )
        hypothesis = MergeHypothesis(
            hypothesis_id=f"hyp_{len(self.registry.hypotheses) + 1}",
            left_ref=left.hole_id,
            right_ref=right.hole_id,
            left_local=left_local,
            right_local=right_local,
            match_id=result.match_id,
            confidence=result.confidence,
            reason=reason,
        )
        self.registry.record_hypothesis(hypothesis)
        logger.debug(f"Hypothesis {hypothesis.hypothesis_id}: {left_local} ~ {right_local} ({result.confidence})")

    # ------------------------------------------------------------------------
    # Name similarity
    # ------------------------------------------------------------------------

    def similarity(self, name_a: str, name_b: str) -> tuple[float, str]:
        """
        Score two party names.

        Returns:
            (score, match_type) where match_type is one of
            exact, organization, initial, prefix, token, edit, none
        """
        if normalize_mention(name_a) == normalize_mention(name_b):
            return (1.0, "exact")

        norm_a = self._normalize_name(name_a)
        norm_b = self._normalize_name(name_b)
        if not norm_a or not norm_b:
            return (0.0, "none")

        if norm_a == norm_b:
            return (0.95, "organization")

        initial_score = self._match_initials(norm_a, norm_b)
        if initial_score >= 0.85:
            return (initial_score, "initial")

        if norm_a.startswith(norm_b + " ") or norm_b.startswith(norm_a + " "):
            return (0.88, "prefix")

        token_score = self._token_similarity(norm_a, norm_b)
        edit_score = edit_ratio(norm_a, norm_b)
        if token_score >= edit_score:
            return (token_score, "token")
        return (edit_score, "edit")

    def _normalize_name(self, name: str) -> str:
        """Lowercase, strip punctuation, articles, titles and corporate suffixes."""
        name = re.sub(r"[^\w\s]", "", name.lower())
        words = [w for w in name.split() if w not in TITLES and w not in ARTICLES]
        words = [w for w in words if w not in ORG_SUFFIXES]
        return " ".join(words).strip()

    def _match_initials(self, norm_a: str, norm_b: str) -> float:
        """
        Match names with initials.

        "john doe" ~ "j doe" (0.95)
        """
        a_parts = norm_a.split()
        b_parts = norm_b.split()
        if len(a_parts) != len(b_parts) or len(a_parts) < 2:
            return 0.0

        matches = 0.0
        for a_part, b_part in zip(a_parts, b_parts):
            if a_part == b_part:
                matches += 1
            elif len(a_part) == 1 and b_part.startswith(a_part):
                matches += 0.9
            elif len(b_part) == 1 and a_part.startswith(b_part):
                matches += 0.9
            else:
                return 0.0
        return matches / len(a_parts)

    def _token_similarity(self, text_a: str, text_b: str) -> float:
        """Jaccard similarity of word tokens."""
        tokens_a = set(text_a.split())
        tokens_b = set(text_b.split())
        if not tokens_a or not tokens_b:
            return 0.0
        return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)


def _rank(result: MatchResult) -> tuple[int, float]:
    return (1 if result.zone == MatchZone.DEFINITE else 0, result.confidence)
