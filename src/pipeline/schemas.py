"""
Pydantic Schemas for Comparison Results.

A ComparisonResult is versioned. Readers ignore fields they do not know,
so a consumer that only understands the flat change list can still parse
payloads that carry the hierarchy.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.alignment.schemas import SectionCorrespondence
from src.diffing.schemas import TokenAlignment
from src.knowledge.schemas import MergeHypothesis, RegistrySnapshot
from src.matching.schemas import MatchResult
from src.semantic.hierarchy import DiffTreeNode
from src.semantic.schemas import DiffSummary, SemanticChange

RESULT_SCHEMA_VERSION = 1


class ResolutionKind(str, Enum):
    """What an external resolution settles."""

    PARTY_CONFIRMATION = "party_confirmation"  # a hole or chain ref
    SEMANTIC_VERDICT = "semantic_verdict"  # one match id
    LEGAL_INTERPRETATION = "legal_interpretation"  # one match id


class ExternalResolution(BaseModel):
    """A human or downstream verdict on an ambiguous identity or match."""

    model_config = ConfigDict(frozen=True)

    kind: ResolutionKind = Field(...)
    target_ref: str | None = Field(default=None, description="Hole id or chain id for party confirmations")
    match_id: str | None = Field(default=None, description="Match result id for verdicts")
    confirmed: bool = Field(default=True, description="False rejects the match")
    canonical_name: str | None = Field(default=None, description="Confirmed party name")
    source: str = Field(default="external", description="Who resolved it")

    @model_validator(mode="after")
    def check_target(self) -> "ExternalResolution":
        if self.kind == ResolutionKind.PARTY_CONFIRMATION and not self.target_ref:
            raise ValueError("party_confirmation requires target_ref")
        if self.kind != ResolutionKind.PARTY_CONFIRMATION and not self.match_id:
            raise ValueError(f"{self.kind.value} requires match_id")
        return self

    @property
    def target(self) -> str:
        return self.target_ref or self.match_id or ""


class ComparisonResult(BaseModel):
    """Everything one comparison produced."""

    model_config = ConfigDict(extra="ignore")

    schema_version: int = Field(default=RESULT_SCHEMA_VERSION)
    comparison_id: str = Field(..., description="left_key|right_key")
    left_document: str = Field(..., description="Owner key of the older version")
    right_document: str = Field(..., description="Owner key of the newer version")
    correspondences: list[SectionCorrespondence] = Field(default_factory=list)
    token_alignments: dict[str, TokenAlignment] = Field(
        default_factory=dict, description="Token diffs by correspondence id"
    )
    match_results: dict[str, MatchResult] = Field(default_factory=dict)
    hypotheses: list[MergeHypothesis] = Field(default_factory=list)
    changes: list[SemanticChange] = Field(default_factory=list)
    hierarchy: list[DiffTreeNode] | None = Field(default=None, description="Flattened diff tree")
    summary: DiffSummary = Field(default_factory=DiffSummary)
    registry_snapshots: dict[str, RegistrySnapshot] = Field(
        default_factory=dict, description="Keyed by kind:owner"
    )
    resolutions: list[ExternalResolution] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    def change(self, change_id: str) -> SemanticChange | None:
        return next((c for c in self.changes if c.change_id == change_id), None)

    def matches_for(self, change: SemanticChange) -> list[MatchResult]:
        """Match results supporting a change."""
        return [self.match_results[mid] for mid in change.supporting_match_ids if mid in self.match_results]

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
