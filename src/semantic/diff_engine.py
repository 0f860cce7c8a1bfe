"""
Semantic Diff Engine - Legally Significant Changes.

Consumes aligned sections (with nested token diffs), entity bindings and
match results, and emits typed changes classified by risk:
- Modal strength shifts (duty / permission / prohibition)
- Term redefinitions, additions and removals
- Obligor and beneficiary substitutions
- Conditions added to or removed from an obligation
- Changed time periods
- Sections added, removed, split or merged

Every change records which match results support it, so its confidence
can be recomputed when an external resolution settles one of them.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from src.alignment.schemas import CorrespondenceKind, SectionCorrespondence
from src.diffing.schemas import AlignedTokenPair, TokenAlignment, TokenRelation
from src.ingestion.schemas import Annotation, AnnotationType, Document, Section, Token
from src.knowledge.binder import DocumentBindings
from src.knowledge.entity_matcher import EntityMatcher
from src.knowledge.schemas import EntityBinding, HoleBinding
from src.matching.schemas import MatchResult, MatchZone
from src.semantic.schemas import (
    ChangeType,
    DetectionFlag,
    Impact,
    ModalStrength,
    PartyImpact,
    RiskLevel,
    SemanticChange,
)
from src.semantic.scoring import (
    ACTION_OVERLAP_THRESHOLD,
    DEFAULT_BENEFICIARY_CONFIDENCE_FLOOR,
    DEFAULT_VERIFICATION_DISCOUNT,
    change_confidence,
    change_status,
    fixed_risk,
    modal_rule,
    needs_verification,
    opposite,
    parse_modal,
    read_modal,
    sort_key,
    temporal_risk,
    to_days,
)
from src.utils.logger import get_logger
from src.utils.text import normalize_mention, normalize_whitespace, word_overlap

logger = get_logger(__name__)

# Flags that only hold while some binding is unverified
_VERIFICATION_FLAGS = frozenset(
    {
        DetectionFlag.UNRESOLVED_PARTY,
        DetectionFlag.UNVERIFIED_BINDING,
        DetectionFlag.LOW_CONFIDENCE_BENEFICIARY,
    }
)


# ============================================================================
# Internal records
# ============================================================================


@dataclass
class _Obligation:
    """An obligation annotation with its parties bound."""

    annotation: Annotation
    section_id: str
    modal: ModalStrength | None
    obligor: EntityBinding | None
    beneficiary: EntityBinding | None
    action: str
    conditions: list[str]
    beneficiary_confidence: float | None
    modal_ambiguous: bool

    @property
    def label(self) -> str:
        obligor = self.obligor.display_text if self.obligor else "?"
        beneficiary = self.beneficiary.display_text if self.beneficiary else "*"
        return f"{obligor} -> {beneficiary}: {self.action}"


@dataclass
class _Context:
    """One correspondence being examined."""

    correspondence: SectionCorrespondence
    left: list[Section]
    right: list[Section]
    section_match: MatchResult

    @property
    def alignment(self) -> TokenAlignment | None:
        return self.correspondence.token_alignment


@dataclass(frozen=True)
class _ModalPhrase:
    """A modal keyword, with any negation, on one side of a token diff."""

    strength: ModalStrength
    text: str
    first: int  # pair indexes into the alignment
    last: int

    def overlaps(self, start: int, end: int) -> bool:
        return self.first <= end and self.last >= start


@dataclass
class _Collector:
    """Accumulates changes in detection order."""

    changes: list[SemanticChange] = field(default_factory=list)


# ============================================================================
# Semantic Diff Engine
# ============================================================================


class SemanticDiffEngine:
    """
    Detect typed changes between two aligned document versions.

    Usage:
        engine = SemanticDiffEngine(matcher)
        changes = engine.detect(correspondences, doc_a, doc_b, bindings_a, bindings_b, section_matches)
        for change in changes:
            print(change.risk, change.explanation)
    """

    def __init__(
        self,
        matcher: EntityMatcher,
        verification_discount: float = DEFAULT_VERIFICATION_DISCOUNT,
        beneficiary_confidence_floor: float = DEFAULT_BENEFICIARY_CONFIDENCE_FLOOR,
    ) -> None:
        """
        Initialize the engine.

        Args:
            matcher: Cross-document entity matcher for party identity
            verification_discount: Multiplier when a supporting binding needs verification
            beneficiary_confidence_floor: Beneficiary detections below this need verification
        """
        self.matcher = matcher
        self.verification_discount = verification_discount
        self.beneficiary_confidence_floor = beneficiary_confidence_floor

    def detect(
        self,
        correspondences: list[SectionCorrespondence],
        source: Document,
        target: Document,
        left_bindings: DocumentBindings,
        right_bindings: DocumentBindings,
        section_matches: dict[str, MatchResult],
    ) -> list[SemanticChange]:
        """
        Detect all changes.

        Args:
            correspondences: Section cover in source order, token diffs attached
            source: Older document version
            target: Newer document version
            left_bindings: Bindings of the older version
            right_bindings: Bindings of the newer version
            section_matches: Match results keyed by correspondence id

        Returns:
            Changes ordered by descending risk, then section order
        """
        collector = _Collector()
        left_sections = {s.section_id: s for s in source.sections}
        right_sections = {s.section_id: s for s in target.sections}

        for correspondence in correspondences:
            context = _Context(
                correspondence=correspondence,
                left=[left_sections[sid] for sid in correspondence.source_ids],
                right=[right_sections[sid] for sid in correspondence.target_ids],
                section_match=section_matches[correspondence.correspondence_id],
            )
            self._detect_structural(collector, context)
            if correspondence.is_matched:
                self._detect_obligations(collector, context, left_bindings, right_bindings)
                self._detect_temporal(collector, context)

        self._detect_terms(collector, correspondences, source, target, section_matches)

        changes = sorted(collector.changes, key=lambda c: sort_key(c.risk, c.section_order, c.sequence))
        logger.info(
            f"Detected {len(changes)} semantic changes "
            f"({sum(1 for c in changes if c.risk.rank >= RiskLevel.HIGH.rank)} high or critical)"
        )
        return changes

    def rescore(
        self,
        change: SemanticChange,
        match_results: dict[str, MatchResult],
        confirmed_refs: Iterable[str] = (),
    ) -> SemanticChange:
        """
        Recompute confidence and status after match results changed.

        Args:
            change: Change to rescore
            match_results: Current match results by id
            confirmed_refs: Binding refs confirmed externally since detection

        Returns:
            Updated copy of the change
        """
        confirmed = set(confirmed_refs)
        refs = tuple(ref for ref in change.verification_refs if ref not in confirmed)
        flags = change.flags if refs else tuple(f for f in change.flags if f not in _VERIFICATION_FLAGS)
        supporting = [match_results[mid] for mid in change.supporting_match_ids]
        return change.model_copy(
            update={
                "verification_refs": refs,
                "flags": flags,
                "confidence": self._confidence(supporting, refs, flags),
                "status": change_status(supporting),
            }
        )

    # ------------------------------------------------------------------------
    # Emission
    # ------------------------------------------------------------------------

    def _confidence(
        self,
        supporting: list[MatchResult],
        verification_refs: Iterable[str],
        flags: Iterable[DetectionFlag],
    ) -> float:
        ambiguous = DetectionFlag.AMBIGUOUS_MODAL in set(flags)
        return change_confidence(
            supporting,
            needs_verification(verification_refs, ambiguous),
            self.verification_discount,
        )

    def _emit(
        self,
        collector: _Collector,
        context: _Context | None,
        change_type: ChangeType,
        risk: RiskLevel,
        explanation: str,
        supporting: list[MatchResult],
        verification_refs: list[str] | None = None,
        flags: list[DetectionFlag] | None = None,
        section_order: int | None = None,
        **fields: object,
    ) -> SemanticChange:
        unique_support = list({result.match_id: result for result in supporting}.values())
        refs = tuple(dict.fromkeys(verification_refs or []))
        flag_tuple = tuple(dict.fromkeys(flags or []))
        sequence = len(collector.changes)

        if context is not None:
            fields.setdefault("correspondence_id", context.correspondence.correspondence_id)
            fields.setdefault("source_section_ids", context.correspondence.source_ids)
            fields.setdefault("target_section_ids", context.correspondence.target_ids)
            if section_order is None:
                section_order = context.correspondence.order

        change = SemanticChange(
            change_id=f"chg_{sequence + 1}",
            sequence=sequence,
            change_type=change_type,
            section_order=section_order or 0,
            explanation=explanation,
            risk=risk,
            confidence=self._confidence(unique_support, refs, flag_tuple),
            status=change_status(unique_support),
            supporting_match_ids=tuple(result.match_id for result in unique_support),
            verification_refs=refs,
            flags=flag_tuple,
            **fields,
        )
        collector.changes.append(change)
        logger.debug(f"{change.change_id} {change_type.value} [{risk.value}] {explanation}")
        return change

    # ------------------------------------------------------------------------
    # Structural changes
    # ------------------------------------------------------------------------

    def _detect_structural(self, collector: _Collector, context: _Context) -> None:
        kind = context.correspondence.kind
        if kind == CorrespondenceKind.INSERTED:
            titles = ", ".join(_section_label(s) for s in context.right)
            self._emit(
                collector,
                context,
                ChangeType.SECTION_ADDED,
                fixed_risk(ChangeType.SECTION_ADDED),
                f"Section added: {titles}",
                [context.section_match],
            )
        elif kind == CorrespondenceKind.DELETED:
            titles = ", ".join(_section_label(s) for s in context.left)
            self._emit(
                collector,
                context,
                ChangeType.SECTION_REMOVED,
                fixed_risk(ChangeType.SECTION_REMOVED),
                f"Section removed: {titles}",
                [context.section_match],
            )
        elif kind in (CorrespondenceKind.SPLIT, CorrespondenceKind.MERGED):
            left = ", ".join(_section_label(s) for s in context.left)
            right = ", ".join(_section_label(s) for s in context.right)
            self._emit(
                collector,
                context,
                ChangeType.SECTION_RESTRUCTURED,
                fixed_risk(ChangeType.SECTION_RESTRUCTURED),
                f"Section {kind.value}: {left} -> {right}",
                [context.section_match],
            )

    # ------------------------------------------------------------------------
    # Obligations
    # ------------------------------------------------------------------------

    def _detect_obligations(
        self,
        collector: _Collector,
        context: _Context,
        left_bindings: DocumentBindings,
        right_bindings: DocumentBindings,
    ) -> None:
        left_obligations = _obligations(context.left, left_bindings)
        right_obligations = _obligations(context.right, right_bindings)

        if not left_obligations and not right_obligations:
            self._detect_modal_tokens(collector, context)
            return

        pairs, unpaired_left, unpaired_right = self._pair_obligations(left_obligations, right_obligations)

        for left, right, obligor_match in pairs:
            self._compare_pair(collector, context, left, right, obligor_match)

        # Same action, different obligor
        for left in unpaired_left:
            for right in list(unpaired_right):
                if word_overlap(left.action, right.action) < ACTION_OVERLAP_THRESHOLD:
                    continue
                party = self._party_match(left.obligor, right.obligor)
                if party is None or party.zone != MatchZone.NO_MATCH:
                    continue
                self._emit_substitution(collector, context, left, right, "obligor", party, [])
                unpaired_right.remove(right)
                break

    def _pair_obligations(
        self,
        left_obligations: list[_Obligation],
        right_obligations: list[_Obligation],
    ) -> tuple[list[tuple[_Obligation, _Obligation, MatchResult | None]], list[_Obligation], list[_Obligation]]:
        """Pair obligations by obligor identity and action overlap."""
        pairs: list[tuple[_Obligation, _Obligation, MatchResult | None]] = []
        unpaired_left: list[_Obligation] = []
        unpaired_right = list(right_obligations)

        for left in left_obligations:
            best: tuple[_Obligation, MatchResult | None] | None = None
            best_score = (-1.0, -1.0)
            for right in unpaired_right:
                overlap = word_overlap(left.action, right.action)
                if overlap < ACTION_OVERLAP_THRESHOLD:
                    continue
                party = self._party_match(left.obligor, right.obligor)
                if party is not None and party.zone == MatchZone.NO_MATCH:
                    continue
                score = (overlap, party.confidence if party else 0.0)
                if score > best_score:
                    best, best_score = (right, party), score
            if best is None:
                unpaired_left.append(left)
                continue
            pairs.append((left, best[0], best[1]))
            unpaired_right.remove(best[0])
        return pairs, unpaired_left, unpaired_right

    def _party_match(self, left: EntityBinding | None, right: EntityBinding | None) -> MatchResult | None:
        if left is None or right is None:
            return None
        return self.matcher.match(left, right)

    def _compare_pair(
        self,
        collector: _Collector,
        context: _Context,
        left: _Obligation,
        right: _Obligation,
        obligor_match: MatchResult | None,
    ) -> None:
        supporting = [context.section_match] + ([obligor_match] if obligor_match else [])
        refs, flags = _verification([left.obligor, right.obligor])
        evidence = _evidence(context.alignment, left.annotation, right.annotation)
        relationship = right.label
        entity_refs = _refs([left.obligor, right.obligor, left.beneficiary, right.beneficiary])

        # Modal strength
        rule = modal_rule(left.modal, right.modal) if left.modal and right.modal else None
        if rule is not None:
            risk, obligor_impact, beneficiary_impact = rule
            modal_refs, modal_flags = list(refs), list(flags)
            if left.modal_ambiguous or right.modal_ambiguous:
                modal_flags.append(DetectionFlag.AMBIGUOUS_MODAL)
            beneficiary = right.beneficiary or left.beneficiary
            if beneficiary is not None and self._low_beneficiary(left, right):
                modal_refs.append(beneficiary.ref)
                modal_flags.append(DetectionFlag.LOW_CONFIDENCE_BENEFICIARY)
            impacts = _impacts(right.obligor or left.obligor, obligor_impact, beneficiary, beneficiary_impact)
            self._emit(
                collector,
                context,
                ChangeType.MODAL_STRENGTH,
                risk,
                f"{relationship}: {left.modal.value} became {right.modal.value}",
                supporting,
                verification_refs=modal_refs,
                flags=modal_flags,
                entity_refs=entity_refs,
                relationship=relationship,
                party_impacts=impacts,
                old_value=left.modal.value,
                new_value=right.modal.value,
                token_evidence=evidence,
            )

        # Beneficiary substitution under the same obligor
        if left.beneficiary is not None and right.beneficiary is not None:
            beneficiary_match = self.matcher.match(left.beneficiary, right.beneficiary)
            if beneficiary_match.zone == MatchZone.NO_MATCH:
                self._emit_substitution(
                    collector, context, left, right, "beneficiary", beneficiary_match, supporting
                )

        # Conditions
        left_conditions = {_condition_key(c): c for c in left.conditions}
        right_conditions = {_condition_key(c): c for c in right.conditions}
        for key, condition in right_conditions.items():
            if key not in left_conditions:
                self._emit_condition(
                    collector, context, right, condition, ChangeType.CONDITION_ADDED,
                    Impact.FAVORABLE, supporting, refs, flags, evidence,
                )
        for key, condition in left_conditions.items():
            if key not in right_conditions:
                self._emit_condition(
                    collector, context, right, condition, ChangeType.CONDITION_REMOVED,
                    Impact.UNFAVORABLE, supporting, refs, flags, evidence,
                )

    def _emit_condition(
        self,
        collector: _Collector,
        context: _Context,
        obligation: _Obligation,
        condition: str,
        change_type: ChangeType,
        obligor_impact: Impact,
        supporting: list[MatchResult],
        refs: list[str],
        flags: list[DetectionFlag],
        evidence: tuple[AlignedTokenPair, ...],
    ) -> None:
        verb = "added to" if change_type == ChangeType.CONDITION_ADDED else "removed from"
        self._emit(
            collector,
            context,
            change_type,
            fixed_risk(change_type),
            f"Condition '{condition}' {verb} {obligation.label}",
            supporting,
            verification_refs=refs,
            flags=flags,
            entity_refs=_refs([obligation.obligor, obligation.beneficiary]),
            relationship=obligation.label,
            party_impacts=_impacts(
                obligation.obligor, obligor_impact, obligation.beneficiary, opposite(obligor_impact)
            ),
            old_value=condition if change_type == ChangeType.CONDITION_REMOVED else None,
            new_value=condition if change_type == ChangeType.CONDITION_ADDED else None,
            token_evidence=evidence,
        )

    def _emit_substitution(
        self,
        collector: _Collector,
        context: _Context,
        left: _Obligation,
        right: _Obligation,
        role: str,
        party_match: MatchResult,
        supporting: list[MatchResult],
    ) -> None:
        old = left.obligor if role == "obligor" else left.beneficiary
        new = right.obligor if role == "obligor" else right.beneficiary
        if old is None or new is None:
            return
        refs, flags = _verification([left.obligor, right.obligor, old, new])
        # A replaced obligor is relieved; a replaced beneficiary loses the benefit
        old_impact = Impact.FAVORABLE if role == "obligor" else Impact.UNFAVORABLE
        impacts = (
            PartyImpact(party_ref=old.ref, party_name=old.display_text, role=role, impact=old_impact),
            PartyImpact(party_ref=new.ref, party_name=new.display_text, role=role, impact=opposite(old_impact)),
        )
        self._emit(
            collector,
            context,
            ChangeType.PARTY_SUBSTITUTION,
            fixed_risk(ChangeType.PARTY_SUBSTITUTION),
            f"{role.capitalize()} of '{right.action}' changed from '{old.display_text}' to '{new.display_text}'",
            [context.section_match, *supporting, party_match],
            verification_refs=refs,
            flags=flags,
            entity_refs=_refs([old, new]),
            relationship=right.label,
            party_impacts=impacts,
            old_value=old.display_text,
            new_value=new.display_text,
            token_evidence=_evidence(context.alignment, left.annotation, right.annotation),
        )

    def _low_beneficiary(self, left: _Obligation, right: _Obligation) -> bool:
        for obligation in (left, right):
            confidence = obligation.beneficiary_confidence
            if confidence is not None and confidence < self.beneficiary_confidence_floor:
                return True
        return False

    # ------------------------------------------------------------------------
    # Modal fallback from tokens
    # ------------------------------------------------------------------------

    def _detect_modal_tokens(self, collector: _Collector, context: _Context) -> None:
        """
        Modal shifts in the token diff when no obligations are annotated.

        Modal phrases are read on both sides, negation included, so a block
        that only inserts or drops "not" still shifts "shall" to "shall not".
        A change block is widened to the phrases it touches before the two
        sides are compared.
        """
        alignment = context.alignment
        if alignment is None:
            return
        pairs = alignment.pairs
        left_phrases = _modal_phrases(pairs, "left")
        right_phrases = _modal_phrases(pairs, "right")
        seen: set[tuple[int, int]] = set()

        for first, last in _change_ranges(pairs):
            touched = [p for p in (*left_phrases, *right_phrases) if p.overlaps(first, last)]
            if not touched:
                continue
            start = min(first, *(p.first for p in touched))
            end = max(last, *(p.last for p in touched))
            old = [p for p in left_phrases if p.overlaps(start, end)]
            new = [p for p in right_phrases if p.overlaps(start, end)]
            if len(old) != 1 or len(new) != 1 or (old[0].first, new[0].first) in seen:
                continue
            rule = modal_rule(old[0].strength, new[0].strength)
            if rule is None:
                continue
            seen.add((old[0].first, new[0].first))
            self._emit(
                collector,
                context,
                ChangeType.MODAL_STRENGTH,
                rule[0],
                f"Modal '{old[0].text}' became '{new[0].text}'",
                [context.section_match],
                flags=[DetectionFlag.MODAL_FROM_TOKENS],
                old_value=old[0].strength.value,
                new_value=new[0].strength.value,
                token_evidence=tuple(p for p in pairs[start : end + 1] if p.is_change),
            )

    # ------------------------------------------------------------------------
    # Temporal
    # ------------------------------------------------------------------------

    def _detect_temporal(self, collector: _Collector, context: _Context) -> None:
        left = [a for s in context.left for a in s.find(AnnotationType.TEMPORAL)]
        right = [a for s in context.right for a in s.find(AnnotationType.TEMPORAL)]
        if len(left) != len(right):
            return
        for old, new in zip(left, right):
            if old.attr("value") is None or new.attr("value") is None:
                continue
            old_days = to_days(float(old.attr("value")), old.attr("unit"))
            new_days = to_days(float(new.attr("value")), new.attr("unit"))
            if old_days == new_days:
                continue
            risk, direction = temporal_risk(old_days, new_days)
            self._emit(
                collector,
                context,
                ChangeType.TEMPORAL,
                risk,
                f"Period {direction}: '{old.text}' became '{new.text}'",
                [context.section_match],
                old_value=old.text,
                new_value=new.text,
                token_evidence=_evidence(context.alignment, old, new),
            )

    # ------------------------------------------------------------------------
    # Defined terms
    # ------------------------------------------------------------------------

    def _detect_terms(
        self,
        collector: _Collector,
        correspondences: list[SectionCorrespondence],
        source: Document,
        target: Document,
        section_matches: dict[str, MatchResult],
    ) -> None:
        by_source = {sid: c for c in correspondences for sid in c.source_ids}
        by_target = {sid: c for c in correspondences for sid in c.target_ids}
        left_terms = _definitions(source)
        right_terms = _definitions(target)

        def support(*correspondences_: SectionCorrespondence | None) -> list[MatchResult]:
            return [section_matches[c.correspondence_id] for c in correspondences_ if c is not None]

        for key, (left_def, left_section) in left_terms.items():
            left_corr = by_source.get(left_section.section_id)
            term = str(left_def.attr("term") or left_def.text)

            if key not in right_terms:
                self._emit(
                    collector,
                    None,
                    ChangeType.TERM_REMOVED,
                    fixed_risk(ChangeType.TERM_REMOVED),
                    f"Defined term '{term}' removed",
                    support(left_corr),
                    section_order=left_corr.order if left_corr else 0,
                    correspondence_id=left_corr.correspondence_id if left_corr else None,
                    source_section_ids=(left_section.section_id,),
                    old_value=_definition_text(left_def),
                    affected_section_ids=_mentioning(source, term, left_section.section_id),
                )
                continue

            right_def, right_section = right_terms[key]
            if _normalize_definition(_definition_text(left_def)) == _normalize_definition(
                _definition_text(right_def)
            ):
                continue
            right_corr = by_target.get(right_section.section_id)
            anchor = right_corr or left_corr
            self._emit(
                collector,
                None,
                ChangeType.TERM_REDEFINITION,
                fixed_risk(ChangeType.TERM_REDEFINITION),
                f"Defined term '{term}' redefined",
                support(left_corr, right_corr),
                section_order=anchor.order if anchor else 0,
                correspondence_id=anchor.correspondence_id if anchor else None,
                source_section_ids=(left_section.section_id,),
                target_section_ids=(right_section.section_id,),
                old_value=_definition_text(left_def),
                new_value=_definition_text(right_def),
                affected_section_ids=_mentioning(target, term, right_section.section_id),
            )

        for key, (right_def, right_section) in right_terms.items():
            if key in left_terms:
                continue
            right_corr = by_target.get(right_section.section_id)
            term = str(right_def.attr("term") or right_def.text)
            self._emit(
                collector,
                None,
                ChangeType.TERM_ADDED,
                fixed_risk(ChangeType.TERM_ADDED),
                f"Defined term '{term}' added",
                support(right_corr),
                section_order=right_corr.order if right_corr else 0,
                correspondence_id=right_corr.correspondence_id if right_corr else None,
                target_section_ids=(right_section.section_id,),
                new_value=_definition_text(right_def),
                affected_section_ids=_mentioning(target, term, right_section.section_id),
            )


# ============================================================================
# Helpers
# ============================================================================


def _section_label(section: Section) -> str:
    return f"{section.section_id} ({section.title})" if section.title else section.section_id


def _obligations(sections: list[Section], bindings: DocumentBindings) -> list[_Obligation]:
    obligations: list[_Obligation] = []
    for section in sections:
        for annotation in section.find(AnnotationType.OBLIGATION):
            obligor = annotation.attr("obligor")
            beneficiary = annotation.attr("beneficiary")
            confidence = annotation.attr("beneficiary_confidence")
            obligations.append(
                _Obligation(
                    annotation=annotation,
                    section_id=section.section_id,
                    modal=parse_modal(annotation.attr("modal")),
                    obligor=bindings.lookup(obligor) if obligor else None,
                    beneficiary=bindings.lookup(beneficiary) if beneficiary else None,
                    action=str(annotation.attr("action") or annotation.text),
                    conditions=[str(c) for c in annotation.attr("conditions") or []],
                    beneficiary_confidence=float(confidence) if confidence is not None else None,
                    modal_ambiguous=bool(annotation.attr("modal_ambiguous", False)),
                )
            )
    return obligations


def _verification(bindings: list[EntityBinding | None]) -> tuple[list[str], list[DetectionFlag]]:
    """Refs of bindings needing verification and the matching flags."""
    refs: list[str] = []
    flags: list[DetectionFlag] = []
    for binding in bindings:
        if binding is None or not binding.needs_verification:
            continue
        refs.append(binding.ref)
        flags.append(
            DetectionFlag.UNRESOLVED_PARTY if isinstance(binding, HoleBinding) else DetectionFlag.UNVERIFIED_BINDING
        )
    return list(dict.fromkeys(refs)), list(dict.fromkeys(flags))


def _refs(bindings: list[EntityBinding | None]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(b.ref for b in bindings if b is not None))


def _impacts(
    obligor: EntityBinding | None,
    obligor_impact: Impact,
    beneficiary: EntityBinding | None,
    beneficiary_impact: Impact,
) -> tuple[PartyImpact, ...]:
    impacts: list[PartyImpact] = []
    if obligor is not None:
        impacts.append(
            PartyImpact(party_ref=obligor.ref, party_name=obligor.display_text, role="obligor", impact=obligor_impact)
        )
    if beneficiary is not None:
        impacts.append(
            PartyImpact(
                party_ref=beneficiary.ref,
                party_name=beneficiary.display_text,
                role="beneficiary",
                impact=beneficiary_impact,
            )
        )
    return tuple(impacts)


def _evidence(
    alignment: TokenAlignment | None,
    left: Annotation,
    right: Annotation,
) -> tuple[AlignedTokenPair, ...]:
    """Changed token pairs inside the left span or the right span."""
    if alignment is None:
        return ()
    selected = []
    for pair in alignment.changes():
        in_left = pair.left is not None and pair.left.start < left.end and left.start < pair.left.end
        in_right = pair.right is not None and pair.right.start < right.end and right.start < pair.right.end
        if in_left or in_right:
            selected.append(pair)
    return tuple(selected)


def _change_ranges(pairs: Sequence[AlignedTokenPair]) -> list[tuple[int, int]]:
    """Inclusive pair-index ranges of the change blocks."""
    ranges: list[tuple[int, int]] = []
    start: int | None = None
    for index, pair in enumerate(pairs):
        if pair.is_change:
            if start is None:
                start = index
        elif start is not None:
            ranges.append((start, index - 1))
            start = None
    if start is not None:
        ranges.append((start, len(pairs) - 1))
    return ranges


def _modal_phrases(pairs: Sequence[AlignedTokenPair], side: str) -> list[_ModalPhrase]:
    """Modal phrases of one side of an alignment, located by pair index."""
    words: list[tuple[int, Token]] = []
    for index, pair in enumerate(pairs):
        token = pair.left if side == "left" else pair.right
        if token is not None and not token.is_space:
            words.append((index, token))

    texts = [token.text for _, token in words]
    phrases: list[_ModalPhrase] = []
    position = 0
    while position < len(words):
        read = read_modal(texts[position:])
        if read is None:
            position += 1
            continue
        strength, length = read
        span = words[position : position + length]
        phrases.append(
            _ModalPhrase(
                strength=strength,
                text=" ".join(token.text for _, token in span),
                first=span[0][0],
                last=span[-1][0],
            )
        )
        position += length
    return phrases


def _condition_key(condition: str) -> str:
    return normalize_whitespace(condition).casefold()


def _definitions(document: Document) -> dict[str, tuple[Annotation, Section]]:
    """First definition of each term, keyed by normalized term."""
    definitions: dict[str, tuple[Annotation, Section]] = {}
    for section in document.sections:
        for annotation in section.find(AnnotationType.DEFINED_TERM):
            term = str(annotation.attr("term") or annotation.text)
            definitions.setdefault(normalize_mention(term), (annotation, section))
    return definitions


def _definition_text(annotation: Annotation) -> str:
    return str(annotation.attr("definition") or annotation.text)


def _normalize_definition(text: str) -> str:
    return normalize_whitespace(text).casefold().rstrip(".")


def _mentioning(document: Document, term: str, defining_section: str) -> tuple[str, ...]:
    """Sections, other than the defining one, whose text uses the term."""
    needle = term.casefold()
    return tuple(
        s.section_id
        for s in document.sections
        if s.section_id != defining_section and needle in s.text.casefold()
    )
