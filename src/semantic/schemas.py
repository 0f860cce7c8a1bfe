"""
Pydantic Schemas for Semantic Diffs.

Typed, risk-classified changes and their summaries.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from src.diffing.schemas import AlignedTokenPair


class ChangeType(str, Enum):
    """Kinds of legally significant change."""

    MODAL_STRENGTH = "modal_strength"
    TERM_REDEFINITION = "term_redefinition"
    TERM_ADDED = "term_added"
    TERM_REMOVED = "term_removed"
    PARTY_SUBSTITUTION = "party_substitution"
    CONDITION_ADDED = "condition_added"
    CONDITION_REMOVED = "condition_removed"
    TEMPORAL = "temporal"
    SECTION_ADDED = "section_added"
    SECTION_REMOVED = "section_removed"
    SECTION_RESTRUCTURED = "section_restructured"


class RiskLevel(str, Enum):
    """Risk of a change, from Low to Critical."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]


_RISK_RANK = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2, RiskLevel.CRITICAL: 3}


class Impact(str, Enum):
    """Effect of a change on one party."""

    FAVORABLE = "favorable"
    NEUTRAL = "neutral"
    UNFAVORABLE = "unfavorable"


class ModalStrength(str, Enum):
    """Deontic force of an obligation."""

    DUTY = "duty"
    PERMISSION = "permission"
    PROHIBITION = "prohibition"


class ChangeStatus(str, Enum):
    """Definite only when no supporting match is left Indeterminate."""

    DEFINITE = "definite"
    INDETERMINATE = "indeterminate"


class DetectionFlag(str, Enum):
    """Detection-quality notes carried alongside a change."""

    UNRESOLVED_PARTY = "unresolved_party"
    UNVERIFIED_BINDING = "unverified_binding"
    LOW_CONFIDENCE_BENEFICIARY = "low_confidence_beneficiary"
    AMBIGUOUS_MODAL = "ambiguous_modal"
    MODAL_FROM_TOKENS = "modal_from_tokens"


class PartyImpact(BaseModel):
    """How a change affects one party."""

    model_config = ConfigDict(frozen=True)

    party_ref: str = Field(..., description="Binding ref of the party")
    party_name: str = Field(...)
    role: str = Field(..., description="obligor or beneficiary")
    impact: Impact = Field(...)


class SemanticChange(BaseModel):
    """One detected difference with its risk, impact and confidence."""

    model_config = ConfigDict(frozen=True)

    change_id: str = Field(..., description="chg_N, numbered in detection order")
    sequence: int = Field(..., ge=0, description="Detection order")
    change_type: ChangeType = Field(...)
    correspondence_id: str | None = Field(default=None)
    section_order: int = Field(default=0, ge=0, description="Correspondence position in source order")
    source_section_ids: tuple[str, ...] = Field(default_factory=tuple)
    target_section_ids: tuple[str, ...] = Field(default_factory=tuple)
    entity_refs: tuple[str, ...] = Field(default_factory=tuple, description="Bindings the change concerns")
    relationship: str | None = Field(default=None, description="obligor -> beneficiary: action")
    explanation: str = Field(...)
    risk: RiskLevel = Field(...)
    party_impacts: tuple[PartyImpact, ...] = Field(default_factory=tuple)
    old_value: str | None = Field(default=None)
    new_value: str | None = Field(default=None)
    affected_section_ids: tuple[str, ...] = Field(
        default_factory=tuple, description="Sections whose meaning shifts with this change"
    )
    confidence: float = Field(..., ge=0.0, le=1.0)
    status: ChangeStatus = Field(...)
    supporting_match_ids: tuple[str, ...] = Field(default_factory=tuple)
    verification_refs: tuple[str, ...] = Field(
        default_factory=tuple, description="Binding refs still needing verification"
    )
    flags: tuple[DetectionFlag, ...] = Field(default_factory=tuple)
    token_evidence: tuple[AlignedTokenPair, ...] = Field(default_factory=tuple)


class PartySummary(BaseModel):
    """Roll-up of impacts on one party."""

    party_ref: str = Field(...)
    party_name: str = Field(...)
    favorable: int = Field(default=0)
    unfavorable: int = Field(default=0)
    neutral: int = Field(default=0)
    high_risk_change_ids: list[str] = Field(default_factory=list)


class DiffSummary(BaseModel):
    """Counts over a change list."""

    total: int = Field(default=0)
    by_risk: dict[str, int] = Field(default_factory=dict)
    by_type: dict[str, int] = Field(default_factory=dict)
    definite: int = Field(default=0)
    indeterminate: int = Field(default=0)
    parties: list[PartySummary] = Field(default_factory=list)

    @classmethod
    def from_changes(cls, changes: list[SemanticChange]) -> "DiffSummary":
        by_risk = {level.value: 0 for level in RiskLevel}
        by_type: dict[str, int] = {}
        parties: dict[str, PartySummary] = {}
        definite = 0
        for change in changes:
            by_risk[change.risk.value] += 1
            by_type[change.change_type.value] = by_type.get(change.change_type.value, 0) + 1
            if change.status == ChangeStatus.DEFINITE:
                definite += 1
            for impact in change.party_impacts:
                summary = parties.setdefault(
                    impact.party_ref,
                    PartySummary(party_ref=impact.party_ref, party_name=impact.party_name),
                )
                if impact.impact == Impact.FAVORABLE:
                    summary.favorable += 1
                elif impact.impact == Impact.UNFAVORABLE:
                    summary.unfavorable += 1
                else:
                    summary.neutral += 1
                if change.risk.rank >= RiskLevel.HIGH.rank and change.change_id not in summary.high_risk_change_ids:
                    summary.high_risk_change_ids.append(change.change_id)
        return cls(
            total=len(changes),
            by_risk=by_risk,
            by_type=by_type,
            definite=definite,
            indeterminate=len(changes) - definite,
            parties=list(parties.values()),
        )
