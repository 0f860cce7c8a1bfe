"""
Contract Comparator - End-to-End Comparison Pipeline.

Runs one comparison of two document versions:
1. Validate both documents and bind their mentions (document registries)
2. Align sections, applying external hints first
3. Diff tokens of every matched correspondence on worker threads
4. Match parties across documents (comparison registry)
5. Classify correspondences, detect semantic changes, assemble the tree

External resolutions are applied afterwards without re-running detection.
"""

from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from src.alignment.schemas import SectionCorrespondence
from src.alignment.section_aligner import SectionAligner
from src.diffing.schemas import TokenAlignment
from src.diffing.token_diff import TokenDiffer
from src.ingestion.schemas import AlignmentHint, Document, Section, Token
from src.knowledge.binder import DocumentBinder, DocumentBindings
from src.knowledge.entity_matcher import EntityMatcher
from src.knowledge.hole_registry import HoleRegistry
from src.knowledge.schemas import EntityBinding, RegistryKind, RegistryOwner, ResolvedBinding
from src.matching.classifier import MatchClassifier
from src.matching.schemas import MatchResult, MatchZone
from src.pipeline.schemas import ComparisonResult, ExternalResolution, ResolutionKind
from src.semantic.diff_engine import SemanticDiffEngine
from src.semantic.hierarchy import DiffTree
from src.semantic.schemas import DiffSummary, SemanticChange
from src.semantic.scoring import sort_key
from src.utils.errors import ConfigurationError
from src.utils.logger import LogContext, get_logger
from src.utils.text import normalize_mention

if TYPE_CHECKING:
    from app.config import Settings

logger = get_logger(__name__)


class ContractComparator:
    """
    Compare two versions of a contract.

    Usage:
        comparator = ContractComparator.from_settings()
        result = comparator.compare(doc_v1, doc_v2)
        for change in result.changes:
            print(change.risk, change.explanation)

        result = comparator.apply_resolutions(result, [
            ExternalResolution(kind="party_confirmation", target_ref=hole_id, canonical_name="Acme Corp."),
        ])
    """

    def __init__(
        self,
        aligner: SectionAligner | None = None,
        differ: TokenDiffer | None = None,
        classifier: MatchClassifier | None = None,
        verification_discount: float = 0.85,
        beneficiary_confidence_floor: float = 0.6,
        max_workers: int = 4,
    ) -> None:
        """
        Initialize the comparator.

        Args:
            aligner: Section aligner (defaults if None)
            differ: Token differ (defaults if None)
            classifier: Match classifier (defaults if None)
            verification_discount: Passed to the semantic diff engine
            beneficiary_confidence_floor: Passed to the semantic diff engine
            max_workers: Threads for per-correspondence token diffs
        """
        self.aligner = aligner or SectionAligner()
        self.differ = differ or TokenDiffer()
        self.classifier = classifier or MatchClassifier()
        self.verification_discount = verification_discount
        self.beneficiary_confidence_floor = beneficiary_confidence_floor
        self.max_workers = max_workers

    @classmethod
    def from_settings(cls, settings: "Settings | None" = None) -> "ContractComparator":
        """Build a comparator from application settings."""
        if settings is None:
            from app.config import get_settings

            settings = get_settings()
        return cls(
            aligner=SectionAligner(
                title_weight=settings.title_weight,
                body_weight=settings.body_weight,
                accept_threshold=settings.accept_threshold,
                split_candidate_threshold=settings.split_candidate_threshold,
                split_accept_threshold=settings.split_accept_threshold,
                split_merge_discount=settings.split_merge_discount,
                unmatched_confidence=settings.unmatched_confidence,
                review_threshold=settings.review_threshold,
            ),
            differ=TokenDiffer(
                mode=settings.whitespace_mode,
                similar_threshold=settings.token_similar_threshold,
            ),
            classifier=MatchClassifier(
                upper=settings.upper_threshold,
                lower=settings.lower_threshold,
                both_unresolved_confidence=settings.both_unresolved_confidence,
                conflicting_chains_confidence=settings.conflicting_chains_confidence,
            ),
            verification_discount=settings.verification_discount,
            beneficiary_confidence_floor=settings.beneficiary_confidence_floor,
            max_workers=settings.max_workers,
        )

    # ------------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------------

    def compare(
        self,
        left: Document,
        right: Document,
        hints: Sequence[AlignmentHint] | None = None,
        include_hierarchy: bool = True,
    ) -> ComparisonResult:
        """
        Compare an older and a newer document version.

        Args:
            left: Older version
            right: Newer version
            hints: Forced section pairs, applied before automatic matching
            include_hierarchy: Also assemble the drill-down tree

        Returns:
            ComparisonResult with changes, match results and registry snapshots

        Raises:
            ConfigurationError: On duplicate section ids or invalid hints
        """
        left.check_integrity()
        right.check_integrity()
        comparison_id = f"{left.owner_key}|{right.owner_key}"

        with LogContext(logger, comparison_id=comparison_id):
            logger.info(
                f"Comparing {left.owner_key} ({len(left.sections)} sections) "
                f"with {right.owner_key} ({len(right.sections)} sections)"
            )

            left_registry = HoleRegistry.for_document(left.owner_key)
            right_registry = HoleRegistry.for_document(right.owner_key)
            left_bindings = DocumentBinder(left_registry).bind(left)
            right_bindings = DocumentBinder(right_registry).bind(right)
            comparison_registry = HoleRegistry.for_comparison(left.owner_key, right.owner_key)

            alignment = self.aligner.align(left.sections, right.sections, hints or ())
            correspondences = self._diff_tokens(alignment.correspondences, left, right)
            token_alignments = {
                c.correspondence_id: c.token_alignment for c in correspondences if c.token_alignment is not None
            }

            matcher = EntityMatcher(self.classifier, comparison_registry)
            self._match_parties(matcher, correspondences, left_bindings, right_bindings)

            section_matches = {
                c.correspondence_id: self.classifier.classify_correspondence(c) for c in correspondences
            }

            engine = self._engine(matcher)
            changes = engine.detect(
                correspondences, left, right, left_bindings, right_bindings, section_matches
            )

            match_results: dict[str, MatchResult] = {m.match_id: m for m in section_matches.values()}
            match_results.update(matcher.results)

            warnings = list(alignment.warnings)
            indeterminate = sum(1 for m in match_results.values() if m.zone == MatchZone.INDETERMINATE)
            if indeterminate:
                warnings.append(f"{indeterminate} match results are indeterminate and may need review")

            snapshots = {
                registry.key: registry.snapshot()
                for registry in (left_registry, right_registry, comparison_registry)
            }

            result = ComparisonResult(
                comparison_id=comparison_id,
                left_document=left.owner_key,
                right_document=right.owner_key,
                correspondences=correspondences,
                token_alignments=token_alignments,
                match_results=match_results,
                hypotheses=comparison_registry.hypotheses,
                changes=changes,
                hierarchy=DiffTree.build(changes).nodes() if include_hierarchy else None,
                summary=DiffSummary.from_changes(changes),
                registry_snapshots=snapshots,
                warnings=warnings,
            )
            logger.info(
                f"Comparison done: {len(changes)} changes, {len(match_results)} match results, "
                f"{len(result.hypotheses)} hypotheses"
            )
            return result

    def _engine(self, matcher: EntityMatcher) -> SemanticDiffEngine:
        return SemanticDiffEngine(
            matcher,
            verification_discount=self.verification_discount,
            beneficiary_confidence_floor=self.beneficiary_confidence_floor,
        )

    def _diff_tokens(
        self,
        correspondences: list[SectionCorrespondence],
        left: Document,
        right: Document,
    ) -> list[SectionCorrespondence]:
        """Attach token diffs to matched correspondences, in parallel."""
        matched = [(i, c) for i, c in enumerate(correspondences) if c.is_matched]
        left_sections = {s.section_id: s for s in left.sections}
        right_sections = {s.section_id: s for s in right.sections}

        def diff(item: tuple[int, SectionCorrespondence]) -> tuple[int, TokenAlignment]:
            index, correspondence = item
            left_tokens = _tokens([left_sections[sid] for sid in correspondence.source_ids])
            right_tokens = _tokens([right_sections[sid] for sid in correspondence.target_ids])
            return index, self.differ.diff(left_tokens, right_tokens)

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            diffs = dict(executor.map(diff, matched))

        logger.debug(f"Token diffs computed for {len(diffs)} correspondences")
        return [
            c.model_copy(update={"token_alignment": diffs[i]}) if i in diffs else c
            for i, c in enumerate(correspondences)
        ]

    def _match_parties(
        self,
        matcher: EntityMatcher,
        correspondences: list[SectionCorrespondence],
        left_bindings: DocumentBindings,
        right_bindings: DocumentBindings,
    ) -> None:
        """Match bindings of every matched correspondence, in correspondence order."""
        for correspondence in correspondences:
            if not correspondence.is_matched:
                continue
            left = _section_bindings(left_bindings, correspondence.source_ids)
            right = _section_bindings(right_bindings, correspondence.target_ids)
            matcher.match_all(left, right)

    # ------------------------------------------------------------------------
    # External resolutions
    # ------------------------------------------------------------------------

    def apply_resolutions(
        self,
        result: ComparisonResult,
        resolutions: Sequence[ExternalResolution],
    ) -> ComparisonResult:
        """
        Apply human or downstream verdicts to a finished comparison.

        Only changes that depend on a resolved match or a confirmed party
        are rescored; nothing is re-detected.

        Args:
            result: Comparison to update
            resolutions: Verdicts to apply, in order

        Returns:
            New ComparisonResult; the input is not modified

        Raises:
            ConfigurationError: If a resolution names an unknown match or party
        """
        with LogContext(logger, comparison_id=result.comparison_id):
            match_results = dict(result.match_results)
            registry = self._comparison_registry(result)
            hole_refs = _document_holes(result)
            touched: set[str] = set()
            confirmed_refs: set[str] = set()

            for resolution in resolutions:
                if resolution.kind == ResolutionKind.PARTY_CONFIRMATION:
                    ref = resolution.target_ref or ""
                    related = [m for m in match_results.values() if ref in (m.left_ref, m.right_ref)]
                    if not related:
                        raise ConfigurationError("Resolution targets unknown party", [ref])
                    for match in related:
                        if match.zone == MatchZone.INDETERMINATE and _same_identity(match, ref, resolution):
                            match_results[match.match_id] = self.classifier.resolve(
                                match, resolution.confirmed, resolution.source
                            )
                            touched.add(match.match_id)
                    if resolution.confirmed:
                        confirmed_refs.add(ref)
                        if ref in hole_refs:
                            self._fill(registry, ref, resolution.canonical_name or hole_refs[ref])
                else:
                    match_id = resolution.match_id or ""
                    match = match_results.get(match_id)
                    if match is None:
                        raise ConfigurationError("Resolution targets unknown match", [match_id])
                    match_results[match_id] = self.classifier.resolve(match, resolution.confirmed, resolution.source)
                    touched.add(match_id)

            # Confirmed hole pairs become one identity in the comparison scope
            for hypothesis in registry.hypotheses:
                match = match_results.get(hypothesis.match_id)
                if hypothesis.match_id in touched and match is not None and match.zone == MatchZone.DEFINITE:
                    registry.unify(hypothesis.left_local, hypothesis.right_local)

            engine = self._engine(EntityMatcher(self.classifier, registry))
            changes: list[SemanticChange] = []
            rescored = 0
            for change in result.changes:
                depends = touched.intersection(change.supporting_match_ids) or confirmed_refs.intersection(
                    change.verification_refs
                )
                if depends:
                    change = engine.rescore(change, match_results, confirmed_refs)
                    rescored += 1
                changes.append(change)
            changes.sort(key=lambda c: sort_key(c.risk, c.section_order, c.sequence))

            snapshots = dict(result.registry_snapshots)
            snapshots[registry.key] = registry.snapshot()
            logger.info(
                f"Applied {len(resolutions)} resolutions: {len(touched)} matches settled, {rescored} changes rescored"
            )
            return result.model_copy(
                update={
                    "match_results": match_results,
                    "hypotheses": registry.hypotheses,
                    "changes": changes,
                    "hierarchy": DiffTree.build(changes).nodes() if result.hierarchy is not None else None,
                    "summary": DiffSummary.from_changes(changes),
                    "registry_snapshots": snapshots,
                    "resolutions": [*result.resolutions, *resolutions],
                }
            )

    @staticmethod
    def _comparison_registry(result: ComparisonResult) -> HoleRegistry:
        owner = RegistryOwner(kind=RegistryKind.COMPARISON, owner_id=result.comparison_id)
        snapshot = result.registry_snapshots.get(owner.key)
        if snapshot is None:
            return HoleRegistry(owner)
        return HoleRegistry.from_snapshot(snapshot)

    @staticmethod
    def _fill(registry: HoleRegistry, hole_ref: str, canonical_name: str) -> None:
        """Fill the comparison-scoped hole adopting a document hole."""
        local = registry.local_for(hole_ref) or registry.adopt(hole_ref, canonical_name)
        previous = registry.fill(local, ResolvedBinding(chain_id=local, canonical_name=canonical_name))
        if previous is not None:
            logger.warning(f"Confirmation of {hole_ref} replaced earlier fill '{previous.canonical_name}'")


def _tokens(sections: list[Section]) -> list[Token]:
    return [token for section in sections for token in section.tokens]


def _section_bindings(bindings: DocumentBindings, section_ids: tuple[str, ...]) -> list[EntityBinding]:
    seen: dict[str, EntityBinding] = {}
    for section_id in section_ids:
        for binding in bindings.for_section(section_id):
            seen.setdefault(binding.ref, binding)
    return list(seen.values())


def _document_holes(result: ComparisonResult) -> dict[str, str]:
    """Hole ids of both document registries with their display text."""
    holes: dict[str, str] = {}
    for snapshot in result.registry_snapshots.values():
        if snapshot.owner.kind != RegistryKind.DOCUMENT:
            continue
        for hole in snapshot.holes:
            holes[hole.hole_id] = hole.display_text
    return holes


def _same_identity(match: MatchResult, ref: str, resolution: ExternalResolution) -> bool:
    """
    Whether confirming ``ref`` also settles the other side of ``match``.

    The confirmed party is known by its own text and, when given, by the
    confirmed canonical name. A near-match whose other side carries a
    different name stays open for a verdict on its match id.
    """
    if match.left_ref == ref:
        own, other = match.left_text, match.right_text
    else:
        own, other = match.right_text, match.left_text
    if other is None:
        return False
    names = {normalize_mention(name) for name in (own, resolution.canonical_name) if name}
    return normalize_mention(other) in names
