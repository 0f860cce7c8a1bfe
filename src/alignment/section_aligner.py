"""
Section Aligner - Match Sections Between Two Document Versions.

Produces an exact cover of both section lists:
1. External hints are applied first and never overridden; forbidden pairs
   are kept out of every later pass
2. Optimal one-to-one assignment over a title/body similarity matrix
3. Split/Merge detection over what remains
4. Leftovers become Deleted/Inserted
"""

from collections import Counter, defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np
from scipy.optimize import linear_sum_assignment

from src.alignment.schemas import (
    MATCHED_KINDS,
    AlignmentResult,
    CorrespondenceKind,
    SectionCorrespondence,
)
from src.alignment.scoring import (
    blend,
    body_similarity,
    containment,
    coverage,
    fingerprint,
    normalized_title,
    same_content,
    split_merge_confidence,
    title_similarity,
)
from src.ingestion.schemas import AlignmentHint, HintKind, Section
from src.utils.errors import ConfigurationError
from src.utils.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Configuration
# ============================================================================

DEFAULT_TITLE_WEIGHT = 0.3
DEFAULT_BODY_WEIGHT = 0.7
DEFAULT_ACCEPT_THRESHOLD = 0.5
DEFAULT_SPLIT_CANDIDATE_THRESHOLD = 0.5
DEFAULT_SPLIT_ACCEPT_THRESHOLD = 0.6
DEFAULT_SPLIT_GAIN = 0.1
DEFAULT_SPLIT_MERGE_DISCOUNT = 0.85
DEFAULT_UNMATCHED_CONFIDENCE = 0.6
DEFAULT_REVIEW_THRESHOLD = 0.75


@dataclass
class _Draft:
    """A correspondence under construction."""

    kind: CorrespondenceKind
    sources: list[str] = field(default_factory=list)
    targets: list[str] = field(default_factory=list)
    confidence: float = 1.0
    hinted: bool = False


# ============================================================================
# Section Aligner
# ============================================================================


class SectionAligner:
    """
    Align the sections of two document versions.

    Usage:
        aligner = SectionAligner()
        result = aligner.align(doc_a.sections, doc_b.sections, hints)
        for correspondence in result.correspondences:
            print(correspondence.kind, correspondence.source_ids, correspondence.target_ids)
    """

    def __init__(
        self,
        title_weight: float = DEFAULT_TITLE_WEIGHT,
        body_weight: float = DEFAULT_BODY_WEIGHT,
        accept_threshold: float = DEFAULT_ACCEPT_THRESHOLD,
        split_candidate_threshold: float = DEFAULT_SPLIT_CANDIDATE_THRESHOLD,
        split_accept_threshold: float = DEFAULT_SPLIT_ACCEPT_THRESHOLD,
        split_gain: float = DEFAULT_SPLIT_GAIN,
        split_merge_discount: float = DEFAULT_SPLIT_MERGE_DISCOUNT,
        unmatched_confidence: float = DEFAULT_UNMATCHED_CONFIDENCE,
        review_threshold: float = DEFAULT_REVIEW_THRESHOLD,
    ) -> None:
        """
        Initialize the aligner.

        Args:
            title_weight: Weight of title similarity in the blend
            body_weight: Weight of body similarity in the blend
            accept_threshold: Minimum similarity for a one-to-one match
            split_candidate_threshold: Minimum containment to join a split/merge group
            split_accept_threshold: Minimum combined coverage for a split/merge
            split_gain: Coverage a split must add over an existing single partner
            split_merge_discount: Confidence multiplier for split/merge
            unmatched_confidence: Confidence of Inserted/Deleted calls
            review_threshold: Matched correspondences below this are reported in warnings
        """
        if title_weight + body_weight <= 0:
            raise ConfigurationError("Title and body weights cannot both be zero")
        self.title_weight = title_weight
        self.body_weight = body_weight
        self.accept_threshold = accept_threshold
        self.split_candidate_threshold = split_candidate_threshold
        self.split_accept_threshold = split_accept_threshold
        self.split_gain = split_gain
        self.split_merge_discount = split_merge_discount
        self.unmatched_confidence = unmatched_confidence
        self.review_threshold = review_threshold

    def align(
        self,
        source: Sequence[Section],
        target: Sequence[Section],
        hints: Sequence[AlignmentHint] = (),
    ) -> AlignmentResult:
        """
        Align two ordered section lists.

        Args:
            source: Sections of the older version, in document order
            target: Sections of the newer version, in document order
            hints: Forced or forbidden (source, target) pairs

        Returns:
            AlignmentResult whose correspondences cover every section once

        Raises:
            ConfigurationError: On duplicate section ids or invalid hints
        """
        source = list(source)
        target = list(target)
        _check_unique(source, "source")
        _check_unique(target, "target")

        by_source = {s.section_id: s for s in source}
        by_target = {t.section_id: t for t in target}
        source_pos = {s.section_id: i for i, s in enumerate(source)}
        target_pos = {t.section_id: i for i, t in enumerate(target)}

        forbidden = {(h.source_id, h.target_id) for h in hints if h.kind == HintKind.FORCE_NO_MATCH}
        drafts = self._apply_hints(hints, by_source, by_target, source_pos, target_pos)

        fingerprints = {("s", s.section_id): fingerprint(s) for s in source}
        fingerprints.update({("t", t.section_id): fingerprint(t) for t in target})

        used_source = {sid for d in drafts for sid in d.sources}
        used_target = {tid for d in drafts for tid in d.targets}
        drafts.extend(self._assign(source, target, used_source, used_target, forbidden))

        self._detect_groups(drafts, source, target, fingerprints, target_pos, forbidden, split=True)
        self._detect_groups(drafts, target, source, fingerprints, source_pos, forbidden, split=False)

        used_source = {sid for d in drafts for sid in d.sources}
        used_target = {tid for d in drafts for tid in d.targets}
        for section in source:
            if section.section_id not in used_source:
                drafts.append(
                    _Draft(CorrespondenceKind.DELETED, sources=[section.section_id], confidence=self.unmatched_confidence)
                )
        for section in target:
            if section.section_id not in used_target:
                drafts.append(
                    _Draft(CorrespondenceKind.INSERTED, targets=[section.section_id], confidence=self.unmatched_confidence)
                )

        result = self._finalize(drafts, source_pos, target_pos)
        logger.info(
            f"Aligned {len(source)} source / {len(target)} target sections into "
            f"{len(result.correspondences)} correspondences: "
            + ", ".join(f"{k}={v}" for k, v in result.stats.items() if v)
        )
        return result

    # ------------------------------------------------------------------------
    # Similarity
    # ------------------------------------------------------------------------

    def similarity(self, left: Section, right: Section) -> float:
        """Blended title/body similarity of two sections."""
        return blend(
            title_similarity(normalized_title(left), normalized_title(right)),
            body_similarity(fingerprint(left), fingerprint(right)),
            self.title_weight,
            self.body_weight,
        )

    def similarity_matrix(self, rows: Sequence[Section], cols: Sequence[Section]) -> np.ndarray:
        """Pairwise similarity matrix, rows = source sections."""
        row_titles = [normalized_title(s) for s in rows]
        col_titles = [normalized_title(t) for t in cols]
        row_prints = [fingerprint(s) for s in rows]
        col_prints = [fingerprint(t) for t in cols]

        matrix = np.zeros((len(rows), len(cols)), dtype=float)
        for i in range(len(rows)):
            for j in range(len(cols)):
                matrix[i, j] = blend(
                    title_similarity(row_titles[i], col_titles[j]),
                    body_similarity(row_prints[i], col_prints[j]),
                    self.title_weight,
                    self.body_weight,
                )
        return matrix

    # ------------------------------------------------------------------------
    # Hints
    # ------------------------------------------------------------------------

    def _apply_hints(
        self,
        hints: Sequence[AlignmentHint],
        by_source: dict[str, Section],
        by_target: dict[str, Section],
        source_pos: dict[str, int],
        target_pos: dict[str, int],
    ) -> list[_Draft]:
        """Turn forced pairs into correspondences; each connected group becomes one."""
        unknown = [h.source_id for h in hints if h.source_id not in by_source]
        unknown += [h.target_id for h in hints if h.target_id not in by_target]
        if unknown:
            raise ConfigurationError("Alignment hints reference unknown sections", offending_ids=unknown)

        forbidden = {(h.source_id, h.target_id) for h in hints if h.kind == HintKind.FORCE_NO_MATCH}
        forced = [h for h in hints if h.kind == HintKind.FORCE_MATCH]
        contradicted = [h.source_id for h in forced if (h.source_id, h.target_id) in forbidden]
        if contradicted:
            raise ConfigurationError("Alignment hints both force and forbid a pair", offending_ids=contradicted)

        parent: dict[tuple[str, str], tuple[str, str]] = {}

        def find(node: tuple[str, str]) -> tuple[str, str]:
            parent.setdefault(node, node)
            while parent[node] != node:
                parent[node] = parent[parent[node]]
                node = parent[node]
            return node

        for hint in forced:
            a, b = find(("s", hint.source_id)), find(("t", hint.target_id))
            if a != b:
                parent[b] = a

        groups: dict[tuple[str, str], tuple[set[str], set[str]]] = defaultdict(lambda: (set(), set()))
        for node in list(parent):
            side, section_id = node
            sources, targets = groups[find(node)]
            (sources if side == "s" else targets).add(section_id)

        drafts: list[_Draft] = []
        for sources, targets in groups.values():
            if len(sources) > 1 and len(targets) > 1:
                raise ConfigurationError(
                    "Alignment hints form a many-to-many group",
                    offending_ids=sources | targets,
                )
            ordered_sources = sorted(sources, key=source_pos.__getitem__)
            ordered_targets = sorted(targets, key=target_pos.__getitem__)
            if len(ordered_targets) > 1:
                kind = CorrespondenceKind.SPLIT
            elif len(ordered_sources) > 1:
                kind = CorrespondenceKind.MERGED
            elif same_content(by_source[ordered_sources[0]], by_target[ordered_targets[0]]):
                kind = CorrespondenceKind.EXACT_MATCH
            else:
                kind = CorrespondenceKind.MODIFIED
            drafts.append(_Draft(kind, ordered_sources, ordered_targets, confidence=1.0, hinted=True))
            logger.debug(f"Hinted {kind.value}: {ordered_sources} -> {ordered_targets}")
        return drafts

    # ------------------------------------------------------------------------
    # One-to-one assignment
    # ------------------------------------------------------------------------

    def _assign(
        self,
        source: list[Section],
        target: list[Section],
        used_source: set[str],
        used_target: set[str],
        forbidden: set[tuple[str, str]],
    ) -> list[_Draft]:
        rows = [s for s in source if s.section_id not in used_source]
        cols = [t for t in target if t.section_id not in used_target]
        if not rows or not cols:
            return []

        matrix = self.similarity_matrix(rows, cols)
        # Forbidden pairs score zero and are never accepted
        for i, row in enumerate(rows):
            for j, col in enumerate(cols):
                if (row.section_id, col.section_id) in forbidden:
                    matrix[i, j] = 0.0
        row_idx, col_idx = linear_sum_assignment(1.0 - matrix)

        drafts: list[_Draft] = []
        for r, c in zip(row_idx, col_idx):
            score = float(matrix[r, c])
            left, right = rows[r], cols[c]
            if score < self.accept_threshold or (left.section_id, right.section_id) in forbidden:
                logger.debug(f"Rejected {left.section_id} -> {right.section_id} ({score:.2f})")
                continue
            kind = CorrespondenceKind.EXACT_MATCH if same_content(left, right) else CorrespondenceKind.MODIFIED
            drafts.append(_Draft(kind, [left.section_id], [right.section_id], confidence=min(1.0, score)))
        return drafts

    # ------------------------------------------------------------------------
    # Split / Merge
    # ------------------------------------------------------------------------

    def _detect_groups(
        self,
        drafts: list[_Draft],
        wholes: list[Section],
        parts: list[Section],
        fingerprints: dict[tuple[str, str], Counter[str]],
        part_pos: dict[str, int],
        forbidden: set[tuple[str, str]],
        split: bool,
    ) -> None:
        """
        Group several parts under one whole.

        With split=True the wholes are source sections and the parts are
        target sections; with split=False the roles swap and groups are merges.
        """
        whole_side, part_side = ("s", "t") if split else ("t", "s")

        def whole_ids(d: _Draft) -> list[str]:
            return d.sources if split else d.targets

        def part_ids(d: _Draft) -> list[str]:
            return d.targets if split else d.sources

        def allowed(whole_id: str, part_id: str) -> bool:
            return ((whole_id, part_id) if split else (part_id, whole_id)) not in forbidden

        for whole in wholes:
            whole_id = whole.section_id
            owner = next((d for d in drafts if whole_id in whole_ids(d)), None)

            partner: str | None = None
            if owner is not None:
                # Only plain automatic Modified pairs can grow into a group
                if owner.hinted or owner.kind != CorrespondenceKind.MODIFIED:
                    continue
                partner = part_ids(owner)[0]

            used_parts = {pid for d in drafts for pid in part_ids(d)}
            whole_print = fingerprints[(whole_side, whole_id)]
            candidates = [
                p.section_id
                for p in parts
                if p.section_id not in used_parts
                and allowed(whole_id, p.section_id)
                and containment(fingerprints[(part_side, p.section_id)], whole_print)
                >= self.split_candidate_threshold
            ]
            group = sorted(candidates + ([partner] if partner else []), key=part_pos.__getitem__)
            if len(group) < 2:
                continue

            combined = coverage(whole_print, [fingerprints[(part_side, pid)] for pid in group])
            if combined < self.split_accept_threshold:
                continue
            if partner is not None:
                single = coverage(whole_print, [fingerprints[(part_side, partner)]])
                if combined - single < self.split_gain:
                    continue
                if owner is not None:
                    drafts.remove(owner)

            kind = CorrespondenceKind.SPLIT if split else CorrespondenceKind.MERGED
            draft = _Draft(kind, confidence=split_merge_confidence(combined, self.split_merge_discount))
            if split:
                draft.sources, draft.targets = [whole_id], group
            else:
                draft.sources, draft.targets = group, [whole_id]
            drafts.append(draft)
            logger.debug(f"{kind.value}: {draft.sources} -> {draft.targets} (coverage {combined:.2f})")

    # ------------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------------

    def _finalize(
        self,
        drafts: list[_Draft],
        source_pos: dict[str, int],
        target_pos: dict[str, int],
    ) -> AlignmentResult:
        """Order by source position, slotting inserted sections after their predecessor."""
        anchored = sorted(
            (d for d in drafts if d.sources),
            key=lambda d: min(source_pos[sid] for sid in d.sources),
        )
        inserted = sorted(
            (d for d in drafts if not d.sources),
            key=lambda d: target_pos[d.targets[0]],
        )

        leading: list[_Draft] = []
        trailing: dict[int, list[_Draft]] = defaultdict(list)
        for draft in inserted:
            position = target_pos[draft.targets[0]]
            best_index, best_pos = None, -1
            for k, candidate in enumerate(anchored):
                for tid in candidate.targets:
                    if best_pos < target_pos[tid] < position:
                        best_index, best_pos = k, target_pos[tid]
            if best_index is None:
                leading.append(draft)
            else:
                trailing[best_index].append(draft)

        ordered = list(leading)
        for k, draft in enumerate(anchored):
            ordered.append(draft)
            ordered.extend(trailing[k])

        correspondences: list[SectionCorrespondence] = []
        warnings: list[str] = []
        for order, draft in enumerate(ordered):
            correspondence = SectionCorrespondence(
                correspondence_id=f"corr_{order + 1}",
                kind=draft.kind,
                source_ids=tuple(draft.sources),
                target_ids=tuple(draft.targets),
                confidence=draft.confidence,
                hinted=draft.hinted,
                order=order,
            )
            correspondences.append(correspondence)
            if correspondence.kind in MATCHED_KINDS and correspondence.confidence < self.review_threshold:
                warnings.append(
                    f"Low-confidence {correspondence.kind.value} correspondence "
                    f"{correspondence.correspondence_id} ({correspondence.confidence:.2f}) needs review"
                )
        return AlignmentResult(correspondences=correspondences, warnings=warnings)


def _check_unique(sections: list[Section], side: str) -> None:
    seen: set[str] = set()
    duplicates: set[str] = set()
    for section in sections:
        if section.section_id in seen:
            duplicates.add(section.section_id)
        seen.add(section.section_id)
    if duplicates:
        raise ConfigurationError(f"Duplicate section ids in {side} sections", offending_ids=duplicates)
