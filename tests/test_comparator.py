"""
Tests for the Contract Comparator.

End-to-end comparisons of small supply contracts, followed by external
resolutions applied to the finished result.
"""

import pytest

from app.config import Settings
from src.alignment.schemas import CorrespondenceKind
from src.knowledge.hole_registry import HoleRegistry
from src.knowledge.schemas import RegistryKind
from src.matching.schemas import AmbiguityReason, MatchZone
from src.pipeline.comparator import ContractComparator
from src.pipeline.schemas import ComparisonResult, ExternalResolution, ResolutionKind
from src.semantic.schemas import ChangeStatus, ChangeType, DetectionFlag, RiskLevel
from src.utils.errors import ConfigurationError
from tests.conftest import DEFINITIONS_TEXT, PAYMENT_TEXT

LEFT_VENDOR = "document:supply@1#h1"
RIGHT_VENDOR = "document:supply@2#h1"


def unresolved_contract(builder, version: str, modal_word: str, extra_section: bool = False):
    """Delivery clause whose Vendor has no coreference chain."""
    modal = {"shall": "duty", "may": "permission"}[modal_word]
    doc = (
        builder("supply", version)
        .section(
            "delivery",
            f"The Vendor {modal_word} deliver the Goods to the Customer within thirty days of each order.",
            title="Delivery",
        )
        .mention("The Vendor")
        .mention("the Customer", chain_id="chain-customer", canonical_name="Customer")
        .obligation(
            f"The Vendor {modal_word} deliver the Goods",
            modal=modal,
            obligor="The Vendor",
            beneficiary="the Customer",
            action="deliver the Goods",
        )
    )
    if extra_section:
        doc.section("notices", "Notices must be given in writing to the registered address.", title="Notices")
    return doc.build()


def seller_contract(builder, version: str):
    """Clause naming two unresolved parties with similar names."""
    return (
        builder("supply", version)
        .section(
            "delivery",
            "The Seller shall deliver the Goods to the Sellers Agent within thirty days.",
            title="Delivery",
        )
        .mention("The Seller")
        .mention("the Sellers Agent")
        .build()
    )


# ============================================================================
# Comparison
# ============================================================================


class TestCompare:
    """Full comparison runs."""

    def test_identical_versions(self, comparator, contract_factory) -> None:
        result = comparator.compare(contract_factory("1"), contract_factory("2"))

        assert [c.kind for c in result.correspondences] == [CorrespondenceKind.EXACT_MATCH] * 2
        assert result.changes == []
        assert result.summary.total == 0
        assert set(result.token_alignments) == {"corr_1", "corr_2"}
        assert all(a.is_identical for a in result.token_alignments.values())
        assert result.warnings == []

    def test_modal_change(self, comparator, contract_factory) -> None:
        result = comparator.compare(contract_factory("1"), contract_factory("2", delivery_modal="may"))

        [change] = result.changes
        assert change.change_type == ChangeType.MODAL_STRENGTH
        assert change.risk == RiskLevel.HIGH
        assert change.status == ChangeStatus.DEFINITE
        delivery = result.match_results["m_corr_2"]
        assert delivery.zone == MatchZone.DEFINITE
        assert delivery.confidence == pytest.approx(0.3 + 0.7 * 18 / 19)
        assert [m.zone for m in result.matches_for(change)] == [MatchZone.DEFINITE, MatchZone.DEFINITE]

    def test_split_section(self, comparator, builder) -> None:
        left = (
            builder("supply", "1")
            .section("a", DEFINITIONS_TEXT, title="Definitions")
            .section("b", PAYMENT_TEXT, title="Payment")
            .build()
        )
        right = (
            builder("supply", "2")
            .section("a", DEFINITIONS_TEXT, title="Definitions")
            .section("b1", "Customer shall pay all invoices within thirty days.", title="Payment Terms")
            .section("b2", "Late payments accrue interest at two percent monthly.", title="Late Payment")
            .build()
        )

        result = comparator.compare(left, right)

        split = result.correspondences[1]
        assert split.kind == CorrespondenceKind.SPLIT
        assert split.token_alignment is not None
        [change] = result.changes
        assert change.change_type == ChangeType.SECTION_RESTRUCTURED
        assert change.risk == RiskLevel.LOW
        assert change.target_section_ids == ("b1", "b2")

    def test_unresolved_party_in_both(self, comparator, builder) -> None:
        result = comparator.compare(
            unresolved_contract(builder, "1", "shall"),
            unresolved_contract(builder, "2", "shall"),
        )

        [hypothesis] = result.hypotheses
        assert (hypothesis.left_ref, hypothesis.right_ref) == (LEFT_VENDOR, RIGHT_VENDOR)
        assert hypothesis.confidence == 0.7
        assert hypothesis.reason == "both_unresolved"
        match = result.match_results[hypothesis.match_id]
        assert match.reason == AmbiguityReason.BOTH_UNRESOLVED
        assert any("indeterminate" in w for w in result.warnings)

    def test_registry_snapshots(self, comparator, builder) -> None:
        result = comparator.compare(
            unresolved_contract(builder, "1", "shall"),
            unresolved_contract(builder, "2", "shall"),
        )

        assert set(result.registry_snapshots) == {
            "document:supply@1",
            "document:supply@2",
            "comparison:supply@1|supply@2",
        }
        left = result.registry_snapshots["document:supply@1"]
        assert [h.hole_id for h in left.holes] == [LEFT_VENDOR]
        assert left.hypotheses == []

    def test_self_comparison(self, comparator, builder) -> None:
        """A document compared with itself yields no changes and no hypotheses."""
        document = unresolved_contract(builder, "1", "shall")

        result = comparator.compare(document, document)

        assert result.changes == []
        assert result.hypotheses == []
        kinds = {s.owner.kind for s in result.registry_snapshots.values()}
        assert kinds == {RegistryKind.DOCUMENT, RegistryKind.COMPARISON}

    def test_without_hierarchy(self, comparator, contract_factory) -> None:
        result = comparator.compare(contract_factory("1"), contract_factory("2"), include_hierarchy=False)
        assert result.hierarchy is None

    def test_duplicate_sections_raise(self, comparator, builder) -> None:
        broken = builder("supply", "1").section("a", "One.").section("a", "Two.").build()

        with pytest.raises(ConfigurationError) as exc_info:
            comparator.compare(broken, broken)

        assert exc_info.value.offending_ids == ["a"]

    def test_from_settings(self) -> None:
        settings = Settings(upper_threshold=0.9, lower_threshold=0.2, max_workers=1)

        comparator = ContractComparator.from_settings(settings)

        assert comparator.classifier.upper == 0.9
        assert comparator.classifier.lower == 0.2
        assert comparator.max_workers == 1


# ============================================================================
# External Resolutions
# ============================================================================


class TestResolutions:
    """Verdicts applied after detection."""

    @pytest.fixture
    def result(self, comparator, builder) -> ComparisonResult:
        return comparator.compare(
            unresolved_contract(builder, "1", "shall"),
            unresolved_contract(builder, "2", "may", extra_section=True),
        )

    def test_before_resolution(self, result) -> None:
        modal, added = result.changes

        assert modal.change_type == ChangeType.MODAL_STRENGTH
        assert modal.status == ChangeStatus.INDETERMINATE
        assert modal.verification_refs == (LEFT_VENDOR, RIGHT_VENDOR)
        assert modal.flags == (DetectionFlag.UNRESOLVED_PARTY,)
        assert added.change_type == ChangeType.SECTION_ADDED
        assert added.status == ChangeStatus.INDETERMINATE

    def test_party_confirmation_settles_dependent_change(self, comparator, result) -> None:
        """Only the change depending on the confirmed party is rescored."""
        modal, added = result.changes
        resolution = ExternalResolution(
            kind=ResolutionKind.PARTY_CONFIRMATION, target_ref=LEFT_VENDOR, canonical_name="Vendor"
        )

        updated = comparator.apply_resolutions(result, [resolution])

        new_modal = updated.change(modal.change_id)
        assert new_modal.status == ChangeStatus.DEFINITE
        assert new_modal.verification_refs == (RIGHT_VENDOR,)
        assert new_modal.confidence == pytest.approx(modal.confidence / 0.7)
        assert updated.change(added.change_id) == added
        assert updated.resolutions == [resolution]
        assert result.change(modal.change_id).status == ChangeStatus.INDETERMINATE

    def test_confirming_both_sides_clears_verification(self, comparator, result) -> None:
        modal = result.changes[0]
        updated = comparator.apply_resolutions(
            result,
            [
                ExternalResolution(kind="party_confirmation", target_ref=LEFT_VENDOR, canonical_name="Vendor"),
                ExternalResolution(kind="party_confirmation", target_ref=RIGHT_VENDOR, canonical_name="Vendor"),
            ],
        )

        new_modal = updated.change(modal.change_id)
        assert new_modal.verification_refs == ()
        assert new_modal.flags == ()
        assert new_modal.confidence == pytest.approx(modal.confidence / 0.7 / 0.85)

    def test_confirmation_fills_comparison_registry(self, comparator, result) -> None:
        updated = comparator.apply_resolutions(
            result,
            [ExternalResolution(kind="party_confirmation", target_ref=LEFT_VENDOR, canonical_name="Vendor")],
        )

        comparison = updated.registry_snapshots["comparison:supply@1|supply@2"]
        assert [f.canonical_name for f in comparison.fills.values()] == ["Vendor"]
        assert updated.registry_snapshots["document:supply@1"] == result.registry_snapshots["document:supply@1"]

    def test_semantic_verdict_on_section_match(self, comparator, result) -> None:
        added = result.changes[1]
        [match_id] = added.supporting_match_ids

        updated = comparator.apply_resolutions(
            result,
            [ExternalResolution(kind="semantic_verdict", match_id=match_id, source="reviewer")],
        )

        assert updated.match_results[match_id].resolved_by == "reviewer"
        new_added = updated.change(added.change_id)
        assert new_added.status == ChangeStatus.DEFINITE
        assert new_added.confidence == pytest.approx(1.0)

    def test_confirmation_leaves_differently_named_party_open(self, comparator, builder) -> None:
        """Confirming the Seller does not settle its near-match with the Sellers Agent."""
        seller = "document:supply@1#h1"
        agent = "document:supply@2#h2"
        result = comparator.compare(seller_contract(builder, "1"), seller_contract(builder, "2"))
        [near_match] = [m for m in result.match_results.values() if m.refs == (seller, agent)]
        [same_name] = [m for m in result.match_results.values() if m.refs == (seller, "document:supply@2#h1")]
        assert near_match.reason == AmbiguityReason.SEMANTIC_AMBIGUITY

        updated = comparator.apply_resolutions(
            result, [ExternalResolution(kind="party_confirmation", target_ref=seller)]
        )

        assert updated.match_results[near_match.match_id] == near_match
        assert updated.match_results[same_name.match_id].zone == MatchZone.DEFINITE
        registry = HoleRegistry.from_snapshot(updated.registry_snapshots["comparison:supply@1|supply@2"])
        assert registry.find(registry.local_for(seller)) != registry.find(registry.local_for(agent))

    def test_canonical_name_settles_matching_near_match(self, comparator, builder) -> None:
        seller = "document:supply@1#h1"
        agent = "document:supply@2#h2"
        result = comparator.compare(seller_contract(builder, "1"), seller_contract(builder, "2"))
        [near_match] = [m for m in result.match_results.values() if m.refs == (seller, agent)]

        updated = comparator.apply_resolutions(
            result,
            [ExternalResolution(kind="party_confirmation", target_ref=seller, canonical_name="Sellers Agent")],
        )

        assert updated.match_results[near_match.match_id].zone == MatchZone.DEFINITE

    def test_unknown_targets_raise(self, comparator, result) -> None:
        with pytest.raises(ConfigurationError):
            comparator.apply_resolutions(
                result, [ExternalResolution(kind="party_confirmation", target_ref="document:supply@1#h99")]
            )
        with pytest.raises(ConfigurationError):
            comparator.apply_resolutions(result, [ExternalResolution(kind="legal_interpretation", match_id="m_nope")])

    def test_resolution_requires_target(self) -> None:
        with pytest.raises(ValueError):
            ExternalResolution(kind="semantic_verdict")


# ============================================================================
# Result Schema
# ============================================================================


class TestResultSchema:
    """Versioned, forward-compatible result payloads."""

    def test_round_trip_ignores_unknown_fields(self, comparator, contract_factory) -> None:
        result = comparator.compare(contract_factory("1"), contract_factory("2", delivery_modal="may"))
        payload = result.to_dict()
        payload["added_in_a_later_version"] = [1, 2, 3]

        restored = ComparisonResult.model_validate(payload)

        assert restored.schema_version == 1
        assert restored.changes == result.changes
        assert restored.hierarchy == result.hierarchy
