"""
Hole Registry - Owner-Scoped Identities for Unresolved Mentions.

Maps normalized mention text to stable hole ids inside one owner scope
(a document version or a comparison). Holes can be unified as evidence
arrives (union-find) and filled once a real identity is known.

Ids embed the owner key, so ids from two scopes never collide and a
foreign id is detected the moment it is used without a cross-reference.
"""

import threading
from typing import Protocol

from src.knowledge.schemas import (
    REGISTRY_SCHEMA_VERSION,
    EntityBinding,
    Hole,
    HoleBinding,
    MentionOccurrence,
    MergeHypothesis,
    RegistryKind,
    RegistryOwner,
    RegistrySnapshot,
    ResolutionCandidate,
    ResolvedBinding,
)
from src.utils.errors import InvariantViolation
from src.utils.logger import get_logger
from src.utils.text import normalize_mention

logger = get_logger(__name__)


# ============================================================================
# Durable Storage Seam
# ============================================================================


class RegistryStore(Protocol):
    """Where callers choose to persist registry snapshots."""

    def save(self, snapshot: RegistrySnapshot) -> None: ...

    def load(self, kind: RegistryKind, owner_id: str) -> RegistrySnapshot | None: ...


class InMemoryRegistryStore:
    """Process-local RegistryStore, keyed by (kind, owner id)."""

    def __init__(self) -> None:
        self._snapshots: dict[tuple[RegistryKind, str], RegistrySnapshot] = {}

    def save(self, snapshot: RegistrySnapshot) -> None:
        self._snapshots[(snapshot.owner.kind, snapshot.owner.owner_id)] = snapshot

    def load(self, kind: RegistryKind, owner_id: str) -> RegistrySnapshot | None:
        return self._snapshots.get((kind, owner_id))

    def __len__(self) -> int:
        return len(self._snapshots)


# ============================================================================
# Hole Registry
# ============================================================================


class HoleRegistry:
    """
    Owner-scoped hole registry.

    Every mutating call takes the registry lock, so id allocation stays
    consistent when several workers share one registry.

    Usage:
        registry = HoleRegistry.for_document("msa@2")
        vendor = registry.resolve_or_create("the Vendor")
        assert registry.resolve_or_create("The  vendor") == vendor
    """

    def __init__(self, owner: RegistryOwner) -> None:
        self.owner = owner
        self._lock = threading.RLock()
        self._counter = 0
        self._holes: dict[str, Hole] = {}
        self._text_index: dict[str, str] = {}
        self._adopted: dict[str, str] = {}
        self._parents: dict[str, str] = {}
        self._ranks: dict[str, int] = {}
        self._canonical: dict[str, str] = {}
        self._fills: dict[str, ResolvedBinding] = {}
        self._links: dict[str, list[str]] = {}
        self._hypotheses: list[MergeHypothesis] = []

    @classmethod
    def for_document(cls, document_key: str) -> "HoleRegistry":
        return cls(RegistryOwner(kind=RegistryKind.DOCUMENT, owner_id=document_key))

    @classmethod
    def for_comparison(cls, left_key: str, right_key: str) -> "HoleRegistry":
        return cls(RegistryOwner(kind=RegistryKind.COMPARISON, owner_id=f"{left_key}|{right_key}"))

    @property
    def key(self) -> str:
        return self.owner.key

    # ------------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------------

    def resolve_or_create(self, text: str, occurrence: MentionOccurrence | None = None) -> str:
        """
        Return the hole for a mention, allocating one on first sight.

        Args:
            text: Mention text; normalized before lookup
            occurrence: Optional location to record on the hole

        Returns:
            Canonical (root) hole id for the normalized text

        Raises:
            ValueError: If the text normalizes to nothing
        """
        normalized = normalize_mention(text)
        if not normalized:
            raise ValueError(f"Cannot create a hole for blank mention {text!r}")

        with self._lock:
            hole_id = self._text_index.get(normalized)
            if hole_id is None:
                hole_id = self._allocate(text.strip(), normalized)
                self._text_index[normalized] = hole_id
            root = self._find(hole_id)
            if occurrence is not None:
                hole = self._holes[root]
                if occurrence not in hole.occurrences:
                    hole.occurrences.append(occurrence)
            return root

    def adopt(self, foreign_id: str, display_text: str) -> str:
        """
        Create (once) a local hole standing for a hole of another owner.

        The foreign registry is not touched; the link is recorded as an
        explicit cross-reference.
        """
        self._check_foreign(foreign_id)
        with self._lock:
            local = self._adopted.get(foreign_id)
            if local is None:
                local = self._allocate(display_text.strip(), normalize_mention(display_text))
                self._adopted[foreign_id] = local
                self._links.setdefault(local, []).append(foreign_id)
            return self._find(local)

    def _allocate(self, display_text: str, normalized: str) -> str:
        self._counter += 1
        hole_id = f"{self.key}#h{self._counter}"
        self._holes[hole_id] = Hole(hole_id=hole_id, display_text=display_text, normalized_text=normalized)
        self._parents[hole_id] = hole_id
        self._ranks[hole_id] = 0
        self._canonical[hole_id] = hole_id
        logger.debug(f"Allocated {hole_id} for {display_text!r}")
        return hole_id

    # ------------------------------------------------------------------------
    # Union-find
    # ------------------------------------------------------------------------

    def find(self, hole_id: str) -> str:
        """Canonical id of a hole: the oldest member of its set."""
        with self._lock:
            return self._find(hole_id)

    def _find(self, hole_id: str) -> str:
        return self._canonical[self._tree_root(hole_id)]

    def _tree_root(self, hole_id: str) -> str:
        self._check_owned(hole_id)
        if hole_id not in self._parents:
            raise KeyError(hole_id)

        root = hole_id
        steps = 0
        while self._parents[root] != root:
            root = self._parents[root]
            steps += 1
            if steps > len(self._parents):
                raise InvariantViolation(f"Union-find cycle reached from {hole_id} in {self.key}")

        # Path compression
        node = hole_id
        while self._parents[node] != root:
            self._parents[node], node = root, self._parents[node]
        return root

    def unify(self, a: str, b: str) -> str:
        """
        Merge two holes and return the canonical id of the merged set.

        The tree is balanced by rank, while the canonical id is always the
        lowest-numbered member, so any sequence of unifications over the
        same sets ends with the same canonical id.
        """
        with self._lock:
            tree_a, tree_b = self._tree_root(a), self._tree_root(b)
            if tree_a == tree_b:
                return self._canonical[tree_a]

            if self._ranks[tree_a] < self._ranks[tree_b]:
                tree_a, tree_b = tree_b, tree_a
            elif self._ranks[tree_a] == self._ranks[tree_b]:
                self._ranks[tree_a] += 1
            self._parents[tree_b] = tree_a

            keep, drop = sorted((self._canonical[tree_a], self._canonical[tree_b]), key=_hole_number)
            self._canonical[tree_a] = keep
            self._canonical.pop(tree_b, None)
            self._absorb(keep, drop)
            logger.debug(f"Unified {drop} into {keep}")
            return keep

    def _absorb(self, root: str, child: str) -> None:
        target, source = self._holes[root], self._holes[child]
        for occurrence in source.occurrences:
            if occurrence not in target.occurrences:
                target.occurrences.append(occurrence)
        for candidate in source.candidates:
            self._merge_candidate(target, candidate)

        child_fill = self._fills.pop(child, None)
        if child_fill is not None:
            existing = self._fills.get(root)
            if existing is None:
                self._fills[root] = child_fill
            elif existing != child_fill:
                logger.warning(
                    f"Unify of {child} into {root} drops fill {child_fill.chain_id} "
                    f"in favour of {existing.chain_id}"
                )

        links = self._links.pop(child, [])
        if links:
            merged = self._links.setdefault(root, [])
            merged.extend(ref for ref in links if ref not in merged)

    # ------------------------------------------------------------------------
    # Fill / bindings
    # ------------------------------------------------------------------------

    def fill(self, hole_id: str, binding: ResolvedBinding) -> ResolvedBinding | None:
        """
        Promote a hole to a resolved binding.

        Re-applying the same binding is a no-op. Overwriting a different
        fill is allowed but logged; the previous binding is returned so the
        caller can audit it.
        """
        with self._lock:
            root = self._find(hole_id)
            previous = self._fills.get(root)
            if previous == binding:
                return None
            if previous is not None:
                logger.warning(f"Overwriting fill of {root}: {previous.chain_id} -> {binding.chain_id}")
            self._fills[root] = binding
            return previous

    def binding_for(self, hole_id: str) -> EntityBinding:
        with self._lock:
            root = self._find(hole_id)
            fill = self._fills.get(root)
            if fill is not None:
                return fill
            hole = self._holes[root]
            return HoleBinding(
                hole_id=root,
                display_text=hole.display_text,
                candidates=tuple(hole.ranked_candidates()),
            )

    def is_filled(self, hole_id: str) -> bool:
        with self._lock:
            return self._find(hole_id) in self._fills

    def add_candidate(self, hole_id: str, candidate: ResolutionCandidate) -> None:
        with self._lock:
            self._merge_candidate(self._holes[self._find(hole_id)], candidate)

    @staticmethod
    def _merge_candidate(hole: Hole, candidate: ResolutionCandidate) -> None:
        for i, existing in enumerate(hole.candidates):
            if existing.ref == candidate.ref:
                if candidate.score > existing.score:
                    hole.candidates[i] = candidate
                return
        hole.candidates.append(candidate)

    def hole(self, hole_id: str) -> Hole:
        """Copy of the root record behind a hole id."""
        with self._lock:
            return self._holes[self._find(hole_id)].model_copy(deep=True)

    def roots(self) -> list[str]:
        with self._lock:
            return sorted(self._canonical.values(), key=_hole_number)

    def __len__(self) -> int:
        return len(self._holes)

    def __contains__(self, hole_id: object) -> bool:
        return hole_id in self._holes

    # ------------------------------------------------------------------------
    # Cross-references and hypotheses
    # ------------------------------------------------------------------------

    def cross_reference(self, local_id: str, foreign_id: str) -> None:
        """Record that a local hole corresponds to a hole of another owner."""
        self._check_foreign(foreign_id)
        with self._lock:
            root = self._find(local_id)
            links = self._links.setdefault(root, [])
            if foreign_id not in links:
                links.append(foreign_id)

    def linked_refs(self, hole_id: str) -> list[str]:
        with self._lock:
            return list(self._links.get(self._find(hole_id), []))

    def local_for(self, foreign_id: str) -> str | None:
        """Root of the local hole adopting a foreign id, if any."""
        with self._lock:
            local = self._adopted.get(foreign_id)
            return self._find(local) if local is not None else None

    def record_hypothesis(self, hypothesis: MergeHypothesis) -> None:
        with self._lock:
            self._hypotheses.append(hypothesis)

    @property
    def hypotheses(self) -> list[MergeHypothesis]:
        return list(self._hypotheses)

    # ------------------------------------------------------------------------
    # Scope checks
    # ------------------------------------------------------------------------

    def _check_owned(self, hole_id: str) -> None:
        if not hole_id.startswith(f"{self.key}#h"):
            raise InvariantViolation(f"Hole {hole_id} does not belong to registry {self.key}")

    def _check_foreign(self, hole_id: str) -> None:
        if hole_id.startswith(f"{self.key}#h"):
            raise InvariantViolation(f"Hole {hole_id} is local to {self.key}, not a cross-reference")

    # ------------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------------

    def snapshot(self) -> RegistrySnapshot:
        with self._lock:
            return RegistrySnapshot(
                schema_version=REGISTRY_SCHEMA_VERSION,
                owner=self.owner,
                counter=self._counter,
                holes=[hole.model_copy(deep=True) for hole in self._holes.values()],
                text_index=dict(self._text_index),
                adopted=dict(self._adopted),
                parents=dict(self._parents),
                ranks=dict(self._ranks),
                fills=dict(self._fills),
                links={k: list(v) for k, v in self._links.items()},
                hypotheses=list(self._hypotheses),
            )

    @classmethod
    def from_snapshot(cls, snapshot: RegistrySnapshot) -> "HoleRegistry":
        """
        Re-hydrate a registry.

        Raises:
            InvariantViolation: If the snapshot holds ids of another owner
        """
        registry = cls(snapshot.owner)
        prefix = f"{registry.key}#h"
        referenced = [h.hole_id for h in snapshot.holes] + list(snapshot.parents) + list(snapshot.parents.values())
        foreign = sorted({hole_id for hole_id in referenced if not hole_id.startswith(prefix)})
        if foreign:
            raise InvariantViolation(f"Snapshot for {registry.key} contains foreign holes: {', '.join(foreign)}")

        registry._counter = snapshot.counter
        registry._holes = {h.hole_id: h.model_copy(deep=True) for h in snapshot.holes}
        registry._text_index = dict(snapshot.text_index)
        registry._adopted = dict(snapshot.adopted)
        registry._parents = dict(snapshot.parents) or {h: h for h in registry._holes}
        registry._ranks = {h: snapshot.ranks.get(h, 0) for h in registry._parents}
        for hole_id in sorted(registry._parents, key=_hole_number):
            registry._canonical.setdefault(registry._tree_root(hole_id), hole_id)
        registry._fills = dict(snapshot.fills)
        registry._links = {k: list(v) for k, v in snapshot.links.items()}
        registry._hypotheses = list(snapshot.hypotheses)

        if registry._counter < len(registry._holes):
            raise InvariantViolation(f"Snapshot counter {registry._counter} below hole count for {registry.key}")
        return registry

    def promote(self, store: RegistryStore) -> RegistrySnapshot:
        """Hand the current state to durable storage chosen by the caller."""
        snapshot = self.snapshot()
        store.save(snapshot)
        logger.info(f"Promoted registry {self.key} ({len(snapshot.holes)} holes)")
        return snapshot


def _hole_number(hole_id: str) -> int:
    return int(hole_id.rsplit("#h", 1)[1])
