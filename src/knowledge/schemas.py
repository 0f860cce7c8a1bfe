"""
Pydantic Schemas for Knowledge Layer.

Entity bindings, holes and registry snapshots.
A binding is either Resolved (linked to an upstream coreference chain) or a
Hole (a stable placeholder identity for a mention nobody has linked yet).
"""

from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

REGISTRY_SCHEMA_VERSION = 1


class RegistryKind(str, Enum):
    """Scope a hole registry is owned by."""

    DOCUMENT = "document"  # one document version
    COMPARISON = "comparison"  # one pair of document versions


class RegistryOwner(BaseModel):
    """Owner scope of a hole registry."""

    model_config = ConfigDict(frozen=True)

    kind: RegistryKind = Field(...)
    owner_id: str = Field(..., min_length=1, description="Document key or comparison key")

    @property
    def key(self) -> str:
        return f"{self.kind.value}:{self.owner_id}"


class MentionOccurrence(BaseModel):
    """Where a mention was seen."""

    model_config = ConfigDict(frozen=True)

    document_key: str = Field(..., description="Owner key of the document")
    section_id: str = Field(...)
    start: int = Field(..., ge=0)
    end: int = Field(..., ge=0)
    text: str = Field(default="")


class ResolutionCandidate(BaseModel):
    """A ranked guess at what a hole refers to."""

    model_config = ConfigDict(frozen=True)

    ref: str = Field(..., description="Chain id or hole id of the candidate")
    display_name: str = Field(...)
    score: float = Field(..., ge=0.0, le=1.0)
    provenance: str = Field(..., description="Which component proposed it and why")


class Hole(BaseModel):
    """Registry record behind a hole id."""

    hole_id: str = Field(...)
    display_text: str = Field(..., description="Literal text of the first mention")
    normalized_text: str = Field(...)
    occurrences: list[MentionOccurrence] = Field(default_factory=list)
    candidates: list[ResolutionCandidate] = Field(default_factory=list)

    def ranked_candidates(self) -> list[ResolutionCandidate]:
        """Candidates by descending score, ties by ref."""
        return sorted(self.candidates, key=lambda c: (-c.score, c.ref))


class ResolvedBinding(BaseModel):
    """A mention linked to an upstream coreference chain."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["resolved"] = "resolved"
    chain_id: str = Field(...)
    canonical_name: str = Field(...)
    verified: bool = Field(default=True, description="False when the link came from a weak heuristic")

    @property
    def ref(self) -> str:
        return self.chain_id

    @property
    def display_text(self) -> str:
        return self.canonical_name

    @property
    def needs_verification(self) -> bool:
        return not self.verified


class HoleBinding(BaseModel):
    """A mention with no coreference link, identified by its hole id."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["hole"] = "hole"
    hole_id: str = Field(...)
    display_text: str = Field(...)
    candidates: tuple[ResolutionCandidate, ...] = Field(default_factory=tuple)

    @property
    def ref(self) -> str:
        return self.hole_id

    @property
    def needs_verification(self) -> bool:
        return True


EntityBinding = Annotated[ResolvedBinding | HoleBinding, Field(discriminator="kind")]


class MergeHypothesis(BaseModel):
    """A proposed cross-document identity between two holes, not yet applied."""

    model_config = ConfigDict(frozen=True)

    hypothesis_id: str = Field(...)
    left_ref: str = Field(..., description="Hole id in the left document registry")
    right_ref: str = Field(..., description="Hole id in the right document registry")
    left_local: str = Field(..., description="Comparison-scoped hole adopting left_ref")
    right_local: str = Field(..., description="Comparison-scoped hole adopting right_ref")
    match_id: str = Field(..., description="Match result that judged the pair")
    confidence: float = Field(..., ge=0.0, le=1.0)
    reason: str = Field(default="")


class RegistrySnapshot(BaseModel):
    """
    Serializable registry state, keyed by (kind, owner id).

    Readers ignore unknown fields so newer snapshots stay loadable.
    """

    model_config = ConfigDict(extra="ignore")

    schema_version: int = Field(default=REGISTRY_SCHEMA_VERSION)
    owner: RegistryOwner = Field(...)
    counter: int = Field(default=0, ge=0)
    holes: list[Hole] = Field(default_factory=list)
    text_index: dict[str, str] = Field(default_factory=dict, description="Normalized text -> hole id")
    adopted: dict[str, str] = Field(default_factory=dict, description="Foreign hole id -> local hole id")
    parents: dict[str, str] = Field(default_factory=dict)
    ranks: dict[str, int] = Field(default_factory=dict)
    fills: dict[str, ResolvedBinding] = Field(default_factory=dict)
    links: dict[str, list[str]] = Field(default_factory=dict, description="Local id -> cross-referenced foreign ids")
    hypotheses: list[MergeHypothesis] = Field(default_factory=list)

    @property
    def key(self) -> str:
        return self.owner.key
