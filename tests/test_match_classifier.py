"""
Tests for the Match Classifier.

Three zones, the fixed-confidence ambiguity cases, correspondence
classification and external verdicts.
"""

import pytest

from src.alignment.schemas import CorrespondenceKind, SectionCorrespondence
from src.knowledge.schemas import HoleBinding, ResolvedBinding
from src.matching.classifier import MatchClassifier
from src.matching.schemas import AmbiguityReason, MatchResult, MatchSubject, MatchZone, ResolutionHint
from src.matching.scoring import zone_for
from src.utils.errors import ConfigurationError


class TestZones:
    """Zone boundaries."""

    @pytest.mark.parametrize(
        ("score", "zone"),
        [
            (1.0, MatchZone.DEFINITE),
            (0.85, MatchZone.DEFINITE),
            (0.84, MatchZone.INDETERMINATE),
            (0.31, MatchZone.INDETERMINATE),
            (0.3, MatchZone.NO_MATCH),
            (0.0, MatchZone.NO_MATCH),
        ],
    )
    def test_default_boundaries(self, score, zone) -> None:
        assert zone_for(score, 0.3, 0.85) == zone

    @pytest.mark.parametrize(("lower", "upper"), [(0.9, 0.5), (0.5, 0.5), (-0.1, 0.5), (0.2, 1.2)])
    def test_invalid_thresholds_raise(self, lower, upper) -> None:
        with pytest.raises(ConfigurationError):
            MatchClassifier(upper=upper, lower=lower)


class TestBindingClassification:
    """Entity binding pairs."""

    def test_similarity_in_middle_zone(self, classifier) -> None:
        left = ResolvedBinding(chain_id="c1", canonical_name="Northwind Traders")
        right = ResolvedBinding(chain_id="c2", canonical_name="Northwind Logistics")

        result = classifier.classify_bindings("m_1", left, right, similarity=0.5)

        assert result.zone == MatchZone.INDETERMINATE
        assert result.reason == AmbiguityReason.SEMANTIC_AMBIGUITY
        assert result.hint == ResolutionHint.SEMANTIC_ANALYSIS
        assert result.subject == MatchSubject.ENTITY
        assert result.refs == ("c1", "c2")

    def test_both_unresolved_overrides_similarity(self, classifier) -> None:
        left = HoleBinding(hole_id="document:a@1#h1", display_text="the Vendor")
        right = HoleBinding(hole_id="document:a@2#h1", display_text="The vendor")

        result = classifier.classify_bindings("m_1", left, right, similarity=1.0)

        assert result.zone == MatchZone.INDETERMINATE
        assert result.confidence == 0.7
        assert result.reason == AmbiguityReason.BOTH_UNRESOLVED

    def test_same_hole_is_definite(self, classifier) -> None:
        """A document compared with itself shares hole ids."""
        hole = HoleBinding(hole_id="document:a@1#h1", display_text="the Vendor")

        result = classifier.classify_bindings("m_1", hole, hole, similarity=1.0)

        assert result.zone == MatchZone.DEFINITE

    def test_low_similarity_is_no_match(self, classifier) -> None:
        left = HoleBinding(hole_id="document:a@1#h1", display_text="the Vendor")
        right = HoleBinding(hole_id="document:a@2#h2", display_text="the Customer")

        result = classifier.classify_bindings("m_1", left, right, similarity=0.1)

        assert result.zone == MatchZone.NO_MATCH
        assert result.reason is None

    def test_indeterminate_requires_reason(self) -> None:
        with pytest.raises(ValueError):
            MatchResult(match_id="m", subject=MatchSubject.ENTITY, zone=MatchZone.INDETERMINATE, confidence=0.5)


class TestCorrespondenceClassification:
    """Section correspondences."""

    def _correspondence(self, kind, confidence, hinted=False) -> SectionCorrespondence:
        return SectionCorrespondence(
            correspondence_id="corr_1",
            kind=kind,
            source_ids=("a",),
            target_ids=("b",),
            confidence=confidence,
            hinted=hinted,
        )

    def test_exact_match_is_definite(self, classifier) -> None:
        result = classifier.classify_correspondence(self._correspondence(CorrespondenceKind.EXACT_MATCH, 1.0))

        assert result.match_id == "m_corr_1"
        assert result.zone == MatchZone.DEFINITE
        assert result.subject == MatchSubject.SECTION

    def test_weak_modified_is_indeterminate(self, classifier) -> None:
        result = classifier.classify_correspondence(self._correspondence(CorrespondenceKind.MODIFIED, 0.6))

        assert result.zone == MatchZone.INDETERMINATE
        assert result.confidence == 0.6

    def test_hinted_is_definite(self, classifier) -> None:
        result = classifier.classify_correspondence(
            self._correspondence(CorrespondenceKind.MODIFIED, 1.0, hinted=True)
        )
        assert result.zone == MatchZone.DEFINITE


class TestVerdicts:
    """External verdicts on ambiguous results."""

    @pytest.fixture
    def ambiguous(self, classifier) -> MatchResult:
        left = HoleBinding(hole_id="document:a@1#h1", display_text="the Vendor")
        right = HoleBinding(hole_id="document:a@2#h1", display_text="the Vendor")
        return classifier.classify_bindings("m_ent_1", left, right, similarity=1.0)

    def test_confirmation_promotes(self, classifier, ambiguous) -> None:
        resolved = classifier.resolve(ambiguous, confirmed=True, resolved_by="reviewer")

        assert resolved.zone == MatchZone.DEFINITE
        assert resolved.confidence == 1.0
        assert resolved.reason is None and resolved.hint is None
        assert resolved.resolved_by == "reviewer"
        assert ambiguous.zone == MatchZone.INDETERMINATE

    def test_rejection_demotes(self, classifier, ambiguous) -> None:
        resolved = classifier.resolve(ambiguous, confirmed=False, resolved_by="reviewer")

        assert resolved.zone == MatchZone.NO_MATCH
        assert resolved.confidence == 0.0
