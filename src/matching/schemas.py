"""
Pydantic Schemas for Match Classification.

A MatchResult is the tri-state judgment on one compared pair: two entity
bindings or two sides of a section correspondence.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class MatchZone(str, Enum):
    """Three-zone outcome."""

    DEFINITE = "definite"
    INDETERMINATE = "indeterminate"
    NO_MATCH = "no_match"


class AmbiguityReason(str, Enum):
    """Why a pair landed in the indeterminate zone."""

    BOTH_UNRESOLVED = "both_unresolved"  # same text, neither side linked
    CONFLICTING_CHAINS = "conflicting_chains"  # same canonical name, different chains
    SEMANTIC_AMBIGUITY = "semantic_ambiguity"  # near match without identity signal


class ResolutionHint(str, Enum):
    """Who or what can settle an indeterminate match."""

    HUMAN_CONFIRMATION = "human_confirmation"
    SEMANTIC_ANALYSIS = "semantic_analysis"
    LEGAL_INTERPRETATION = "legal_interpretation"


class MatchSubject(str, Enum):
    """What kind of pair was compared."""

    ENTITY = "entity"
    SECTION = "section"


class MatchResult(BaseModel):
    """Outcome of comparing one pair."""

    model_config = ConfigDict(frozen=True)

    match_id: str = Field(..., description="Id the result is indexed by")
    subject: MatchSubject = Field(...)
    zone: MatchZone = Field(...)
    confidence: float = Field(..., ge=0.0, le=1.0)
    reason: AmbiguityReason | None = Field(default=None)
    hint: ResolutionHint | None = Field(default=None)
    left_ref: str | None = Field(default=None, description="Binding ref or correspondence id")
    right_ref: str | None = Field(default=None)
    left_text: str | None = Field(default=None, description="Display text of the left party")
    right_text: str | None = Field(default=None, description="Display text of the right party")
    explanation: str = Field(default="")
    resolved_by: str | None = Field(default=None, description="External source that settled the match")

    @model_validator(mode="after")
    def check_ambiguity_metadata(self) -> "MatchResult":
        if self.zone == MatchZone.INDETERMINATE and (self.reason is None or self.hint is None):
            raise ValueError(f"Indeterminate match {self.match_id} needs a reason and a hint")
        return self

    @property
    def is_definite(self) -> bool:
        return self.zone == MatchZone.DEFINITE

    @property
    def refs(self) -> tuple[str, ...]:
        return tuple(ref for ref in (self.left_ref, self.right_ref) if ref)
